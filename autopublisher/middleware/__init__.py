"""
HTTP middleware stack for the publisher API.

Provides:
- Request ID injection
- Request/response logging
- Error sanitization
"""

from autopublisher.middleware.error_sanitization import ErrorSanitizationMiddleware
from autopublisher.middleware.logging import RequestLoggingMiddleware
from autopublisher.middleware.request_id import RequestIDMiddleware

__all__ = [
    "RequestIDMiddleware",
    "RequestLoggingMiddleware",
    "ErrorSanitizationMiddleware",
]
