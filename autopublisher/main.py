"""YouTube Auto Publisher - FastAPI Application Entry Point.

The application lifespan owns the pipeline: it builds the context, wires the
stages to the event bus, runs the folder watcher, and drains in-flight
handlers on shutdown.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.middleware.trustedhost import TrustedHostMiddleware

from autopublisher.config import (
    ALLOWED_HOSTS,
    CORS_ORIGINS,
    DEBUG,
    WATCHER_ENABLED,
    logger,
)
from autopublisher.core.pipeline import PipelineContext, build_pipeline_context, register_pipeline
from autopublisher.core.watcher import get_folder_watcher
from autopublisher.middleware import (
    ErrorSanitizationMiddleware,
    RequestIDMiddleware,
    RequestLoggingMiddleware,
)
from autopublisher.routers import auth, traces
from autopublisher.schemas import HealthResponse
from autopublisher.version import __version__


def create_app(
    pipeline: Optional[PipelineContext] = None,
    watcher_enabled: bool = WATCHER_ENABLED,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting YouTube Auto Publisher v%s", __version__)
        ctx = pipeline or build_pipeline_context()
        register_pipeline(ctx)
        app.state.pipeline = ctx

        watcher = get_folder_watcher(ctx.bus, ctx.store) if watcher_enabled else None
        if watcher is not None:
            await watcher.start()
        try:
            yield
        finally:
            if watcher is not None:
                await watcher.stop()
            await ctx.bus.drain()
            logger.info("Shutting down YouTube Auto Publisher")

    app = FastAPI(
        title="YouTube Auto Publisher",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if DEBUG else None,
        redoc_url="/redoc" if DEBUG else None,
        openapi_url="/openapi.json" if DEBUG else None,
    )

    # -------------------------------------------------------------------------
    # Middleware Stack (order matters - first added = last executed)
    # -------------------------------------------------------------------------

    app.add_middleware(ErrorSanitizationMiddleware, debug=DEBUG)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    if ALLOWED_HOSTS and ALLOWED_HOSTS != ["*"]:
        app.add_middleware(TrustedHostMiddleware, allowed_hosts=ALLOWED_HOSTS)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID"],
        expose_headers=["X-Request-ID"],
        max_age=600,
    )

    # -------------------------------------------------------------------------
    # Exception Handlers
    # -------------------------------------------------------------------------

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        clean_errors = [
            {"field": ".".join(str(loc) for loc in err.get("loc", [])), "message": err.get("msg", "Invalid value")}
            for err in exc.errors()[:5]
        ]
        return JSONResponse(
            status_code=422,
            content={"detail": "Validation error", "errors": clean_errors},
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.detail},
            headers=getattr(exc, "headers", None),
        )

    # -------------------------------------------------------------------------
    # Health Check Endpoints
    # -------------------------------------------------------------------------

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    @app.get("/healthz", response_model=HealthResponse, include_in_schema=False)
    async def health_check() -> HealthResponse:
        return HealthResponse(
            status="healthy",
            version=__version__,
            timestamp=datetime.now(timezone.utc),
        )

    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Ready once the pipeline is wired."""
        ctx = getattr(request.app.state, "pipeline", None)
        if ctx is None:
            return JSONResponse(status_code=503, content={"status": "starting"})
        return {
            "status": "ready",
            "subscriptions": len(ctx.bus.subscriptions()),
            "oauthConfigured": ctx.oauth.is_configured(),
            "mailerConfigured": ctx.mailer.is_configured(),
        }

    app.include_router(auth.router)
    app.include_router(traces.router)

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "autopublisher.main:app",
        host="0.0.0.0",
        port=3000,
        reload=DEBUG,
    )
