import logging
from typing import Any, Optional, TypeVar

from autopublisher.core.exceptions import PreconditionError
from autopublisher.core.pipeline.context import PipelineContext

logger = logging.getLogger(__name__)

T = TypeVar("T")


def require(value: Optional[T], message: str) -> T:
    """Raise PreconditionError when a required trace field is absent."""
    if value is None:
        raise PreconditionError(message)
    return value


async def fail_stage(
    ctx: PipelineContext,
    trace_id: str,
    failed_status: str,
    error_topic: str,
    step: str,
    message: str,
    **extra: Any,
) -> None:
    """Mark the stage failed and emit its error topic. Emission happens even if the status write fails."""
    try:
        await ctx.trace(trace_id).set_status(failed_status, error=message)
    except Exception:
        logger.exception("Trace %s: could not record %s", trace_id, failed_status)

    await ctx.emit(error_topic, {"traceId": trace_id, "error": message, "step": step, **extra})
