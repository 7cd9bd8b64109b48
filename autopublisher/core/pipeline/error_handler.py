"""
Error aggregator: fan-in sink for every error topic.

Appends an ErrorLog entry, marks the trace failed and refreshes
errorSummary in a single transaction, so errorSummary.totalErrors always
equals the length of errors. Never raises.
"""

import logging
from typing import Any, Dict

from autopublisher.core.events import Event
from autopublisher.core.pipeline import status as st
from autopublisher.core.pipeline import topics
from autopublisher.core.pipeline.context import PipelineContext
from autopublisher.core.pipeline.models import ErrorEvent, ErrorLog, ErrorSummary, StatusRecord
from autopublisher.core.pipeline.trace import ERROR_SUMMARY, ERRORS, STATUS
from autopublisher.core.utils import utc_now_iso

logger = logging.getLogger(__name__)

NAME = "ErrorHandler"
SUBSCRIBES = topics.ERROR_TOPICS

ERROR_MESSAGES: Dict[str, str] = {
    topics.FILE_UPLOAD_ERROR: "Failed to upload video file",
    topics.PROMPTS_GENERATION_ERROR: "Failed to generate AI prompts",
    topics.THUMBNAIL_GENERATION_ERROR: "Failed to generate thumbnail image",
    topics.TITLE_GENERATION_ERROR: "Failed to generate final title",
    topics.YOUTUBE_UPLOAD_ERROR: "Failed to upload video to YouTube",
    topics.PIPELINE_ERROR: "Pipeline encountered an error",
}
DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"

LOG_LABELS: Dict[str, str] = {
    topics.FILE_UPLOAD_ERROR: "File upload failed",
    topics.PROMPTS_GENERATION_ERROR: "AI prompt generation failed",
    topics.THUMBNAIL_GENERATION_ERROR: "Thumbnail generation failed",
    topics.TITLE_GENERATION_ERROR: "Final title generation failed",
    topics.YOUTUBE_UPLOAD_ERROR: "YouTube upload failed",
    topics.PIPELINE_ERROR: "Pipeline error occurred",
}


def friendly_message(topic: str) -> str:
    return ERROR_MESSAGES.get(topic, DEFAULT_ERROR_MESSAGE)


def resolve_trace_id(payload: ErrorEvent) -> str:
    return payload.trace_id or payload.job_id or "unknown"


def build_error_log(topic: str, payload: ErrorEvent) -> ErrorLog:
    return ErrorLog(
        trace_id=resolve_trace_id(payload),
        step=payload.step or topic.replace(".error", "", 1),
        error=payload.error or friendly_message(topic),
        details=payload.details,
    )


async def record_error(ctx: PipelineContext, topic: str, payload: ErrorEvent) -> Dict[str, Any]:
    """Append the entry and flip the trace to failed. Returns the fields written."""
    trace_id = resolve_trace_id(payload)
    entry = build_error_log(topic, payload)
    failed_at = utc_now_iso()
    status = StatusRecord(
        status=st.FAILED,
        error=entry.error,
        updated_at=failed_at,
        failedStep=payload.step or topic,
        failedAt=failed_at,
    )

    def _append(snapshot: Dict[str, Any]) -> Dict[str, Any]:
        existing = snapshot.get(ERRORS)
        if not isinstance(existing, list):
            existing = []
        errors = existing + [entry.to_state()]
        summary = ErrorSummary(total_errors=len(errors), last_error=entry, failed_at=failed_at)
        return {ERRORS: errors, STATUS: status.to_state(), ERROR_SUMMARY: summary.to_state()}

    return await ctx.store.transact(trace_id, _append)


async def handle(event: Event, ctx: PipelineContext) -> None:
    topic = event.topic
    payload = event.payload
    if not isinstance(payload, ErrorEvent):
        try:
            payload = ErrorEvent.model_validate(payload or {})
        except ValueError:
            payload = ErrorEvent()
    trace_id = resolve_trace_id(payload)

    try:
        logger.warning("Error event received on %s for trace %s: %s", topic, trace_id, payload.error)
        written = await record_error(ctx, topic, payload)

        label = LOG_LABELS.get(topic, "Unknown error occurred")
        logger.error(
            "%s (trace %s, step %s, file %s, video %s): %s",
            label,
            trace_id,
            payload.step,
            payload.file_name,
            payload.video_id,
            payload.error,
        )
        logger.info(
            "Error handled and logged for trace %s (%s, total errors: %d)",
            trace_id,
            topic,
            written[ERROR_SUMMARY]["totalErrors"],
        )
    except Exception as e:
        logger.error(
            "Critical: error handler failed for trace %s on %s (original error: %s): %s",
            trace_id,
            topic,
            payload.error,
            e,
            exc_info=True,
        )
