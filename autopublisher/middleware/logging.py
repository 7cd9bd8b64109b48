"""
Request Logging Middleware
"""

import time
from typing import Callable, Optional, Set

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from autopublisher.config import logger

HEALTH_PATHS = {"/health", "/healthz", "/ready"}


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs method, path, status, duration and request ID of every API call."""

    def __init__(self, app: ASGIApp, exclude_paths: Optional[Set[str]] = None):
        super().__init__(app)
        self.exclude_paths = exclude_paths if exclude_paths is not None else HEALTH_PATHS

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        start_time = time.time()
        request_id = getattr(request.state, "request_id", "unknown")
        forwarded = request.headers.get("X-Forwarded-For")
        client_ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else "unknown")

        logger.info(
            "Request: %s %s | client=%s | request_id=%s",
            request.method,
            request.url.path,
            client_ip,
            request_id,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error(
                "Request failed: %s %s | error=%s | duration=%.2fms | request_id=%s",
                request.method,
                request.url.path,
                exc,
                (time.time() - start_time) * 1000,
                request_id,
            )
            raise

        logger.info(
            "Response: %s %s | status=%d | duration=%.2fms | request_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (time.time() - start_time) * 1000,
            request_id,
        )
        return response
