from fastapi import HTTPException, Request, status

from autopublisher.core.pipeline import PipelineContext


def get_pipeline(request: Request) -> PipelineContext:
    """Pipeline context built by the application lifespan."""
    ctx = getattr(request.app.state, "pipeline", None)
    if ctx is None:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Pipeline not started")
    return ctx
