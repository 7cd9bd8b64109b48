"""
Typed access to one trace's state document.

Every named field has a model; reads validate at this boundary so stages
never handle raw dicts from the store.
"""

import logging
from typing import Any, Callable, Dict, Type

from autopublisher.core.pipeline import status as st
from autopublisher.core.pipeline.models import (
    CamelModel,
    EmailNotification,
    ErrorLog,
    ErrorSummary,
    GeneratedTitle,
    PromptSet,
    StatusRecord,
    Thumbnail,
    UploadClaim,
    UploadResult,
    VideoData,
    VideoMetadata,
)
from autopublisher.core.state import TraceStore
from autopublisher.core.utils import utc_now_iso

logger = logging.getLogger(__name__)

VIDEO_DATA = "videoData"
METADATA = "metadata"
PROMPTS = "prompts"
THUMBNAIL = "thumbnail"
GENERATED_TITLE = "generatedTitle"
UPLOAD_CLAIM = "uploadClaim"
UPLOAD_RESULT = "uploadResult"
STATUS = "status"
ERRORS = "errors"
ERROR_SUMMARY = "errorSummary"
EMAIL_NOTIFICATION = "emailNotification"

FIELD_MODELS: Dict[str, Type[CamelModel]] = {
    VIDEO_DATA: VideoData,
    METADATA: VideoMetadata,
    PROMPTS: PromptSet,
    THUMBNAIL: Thumbnail,
    GENERATED_TITLE: GeneratedTitle,
    UPLOAD_CLAIM: UploadClaim,
    UPLOAD_RESULT: UploadResult,
    STATUS: StatusRecord,
    ERROR_SUMMARY: ErrorSummary,
    EMAIL_NOTIFICATION: EmailNotification,
}


def parse_field(field: str, raw: Any) -> Any:
    if raw is None:
        return None
    if field == ERRORS:
        return [ErrorLog.from_state(entry) for entry in raw]
    return FIELD_MODELS[field].from_state(raw)


class TraceState:
    """State document of a single trace."""

    def __init__(self, store: TraceStore, trace_id: str):
        self.store = store
        self.trace_id = trace_id

    async def snapshot(self) -> Dict[str, Any]:
        return await self.store.get_all(self.trace_id)

    async def read(self, field: str) -> Any:
        """Return the field's model (or list of ErrorLog), None when absent."""
        return parse_field(field, await self.store.get(self.trace_id, field))

    async def write(self, field: str, value: CamelModel) -> None:
        await self.store.set(self.trace_id, field, value.to_state())

    async def update(self, field: str, fn: Callable[[Any], CamelModel]) -> Any:
        """Atomic read-modify-write of a field through its model."""
        def _apply(raw: Any) -> Dict[str, Any]:
            return fn(parse_field(field, raw)).to_state()

        return await self.store.update(self.trace_id, field, _apply)

    async def set_status(self, new_status: str, **extra: Any) -> bool:
        """
        Move the trace to new_status if the transition is allowed.

        Returns:
            True if written, False if a later or terminal status was already set
        """
        record = StatusRecord(status=new_status, updated_at=utc_now_iso(), **extra).to_state()

        def _apply(snapshot: Dict[str, Any]) -> Dict[str, Any]:
            if st.can_transition(snapshot.get(STATUS), new_status):
                return {STATUS: record}
            return {}

        written = await self.store.transact(self.trace_id, _apply)
        if not written:
            logger.debug("Trace %s: status %s not applied", self.trace_id, new_status)
        return bool(written)
