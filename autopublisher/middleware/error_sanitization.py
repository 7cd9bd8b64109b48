"""
Error Sanitization Middleware

Outside debug mode, 5xx JSON responses and unhandled exceptions are replaced
by a generic body carrying only the request ID. HTML responses (the OAuth
callback page) pass through untouched.
"""

from typing import Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from autopublisher.config import logger


def _internal_error(request: Request) -> JSONResponse:
    request_id = getattr(request.state, "request_id", "unknown")
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "request_id": request_id},
    )


class ErrorSanitizationMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            response = await call_next(request)
        except Exception as exc:
            request_id = getattr(request.state, "request_id", "unknown")
            logger.exception("Unhandled exception in request %s: %s", request_id, exc)
            if self.debug:
                raise
            return _internal_error(request)

        content_type = response.headers.get("content-type", "")
        if response.status_code >= 500 and not self.debug and content_type.startswith("application/json"):
            return _internal_error(request)
        return response
