"""
Pydantic models for trace state fields and topic payloads.

Attributes are snake_case; stored documents and event payloads use the
camelCase aliases (videoData.storageKey, metadata.autoGenerateTitle, ...),
which downstream stages and the dashboard read.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from autopublisher import config
from autopublisher.core.utils import utc_now_iso

PRIVACY_STATUSES = ("public", "unlisted", "private")


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase documents."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @classmethod
    def from_state(cls, data: Dict[str, Any]):
        return cls.model_validate(data)

    def to_state(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# -----------------------------------------------------------------------------
# Trace state fields
# -----------------------------------------------------------------------------

class StatusRecord(CamelModel):
    model_config = ConfigDict(extra="allow")

    status: str
    updated_at: str = Field(default_factory=utc_now_iso)
    error: Optional[str] = None

    def to_state(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class VideoData(CamelModel):
    file_name: str
    original_filename: str
    file_path: Optional[str] = None
    storage_key: str
    url: str
    format: str
    mimetype: str
    file_size: int = Field(default=0, ge=0)
    uploaded_at: str = Field(default_factory=utc_now_iso)


class VideoMetadata(CamelModel):
    title: Optional[str] = None
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    privacy: str = Field(default_factory=lambda: config.DEFAULT_PRIVACY)
    auto_generate_title: bool = True

    @field_validator("privacy")
    @classmethod
    def validate_privacy(cls, v: str) -> str:
        v = (v or "").strip().lower()
        if v not in PRIVACY_STATUSES:
            raise ValueError(f"privacy must be one of: {', '.join(PRIVACY_STATUSES)}")
        return v

    @field_validator("tags", mode="before")
    @classmethod
    def split_tags(cls, v: Any) -> Any:
        if isinstance(v, str):
            return [tag.strip() for tag in v.split(",") if tag.strip()]
        return v


class PromptSet(CamelModel):
    """AI-generated starting metadata and thumbnail brief."""
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    thumbnail_prompt: str = ""
    thumbnail_style: str = ""
    thumbnail_colors: List[str] = Field(default_factory=list)
    thumbnail_text_overlay: str = ""
    generated_at: str = Field(default_factory=utc_now_iso)


class Thumbnail(CamelModel):
    storage_key: Optional[str] = None
    url: Optional[str] = None
    format: Optional[str] = None
    size: Optional[int] = None
    description: Optional[str] = None
    is_placeholder: bool = False
    generated_at: str = Field(default_factory=utc_now_iso)


class GeneratedTitle(CamelModel):
    title: str
    is_generated: bool
    previous_title: Optional[str] = None
    previous_title_analysis: Optional[Dict[str, Any]] = None
    all_titles: List[Dict[str, Any]] = Field(default_factory=list)
    recommended_index: int = 0
    recommended_reason: Optional[str] = None
    generated_at: str = Field(default_factory=utc_now_iso)


class UploadClaim(CamelModel):
    """Idempotency flag: set once, by the trigger that starts the YouTube upload."""
    claimed_at: str = Field(default_factory=utc_now_iso)
    trigger: str


class UploadResult(CamelModel):
    video_id: str
    video_url: str
    channel_id: Optional[str] = None
    channel_title: Optional[str] = None
    published_at: Optional[str] = None
    thumbnail_uploaded: bool = False
    uploaded_at: str = Field(default_factory=utc_now_iso)


class ErrorLog(CamelModel):
    trace_id: str
    step: str
    error: str
    timestamp: str = Field(default_factory=utc_now_iso)
    resolved: bool = False
    details: Optional[Any] = None


class ErrorSummary(CamelModel):
    total_errors: int
    last_error: ErrorLog
    failed_at: str = Field(default_factory=utc_now_iso)


class EmailNotification(CamelModel):
    sent: bool
    to: Optional[str] = None
    sent_at: Optional[str] = None
    error: Optional[str] = None
    failed_at: Optional[str] = None

    def to_state(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


# -----------------------------------------------------------------------------
# Topic payloads
# -----------------------------------------------------------------------------

class EventPayload(CamelModel):
    model_config = ConfigDict(extra="allow")


class FileDetected(EventPayload):
    file_name: str
    file_path: str
    trace_id: Optional[str] = None
    metadata: Optional[VideoMetadata] = None
    delete_source: bool = False


class FileUploaded(EventPayload):
    trace_id: str
    storage_key: str
    file_name: str


class PromptsGenerated(EventPayload):
    trace_id: str
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    thumbnail_prompt: str = ""
    thumbnail_style: str = ""
    thumbnail_colors: List[str] = Field(default_factory=list)
    thumbnail_text_overlay: str = ""


class ThumbnailGenerated(EventPayload):
    trace_id: str
    thumbnail_storage_key: Optional[str] = None
    thumbnail_url: Optional[str] = None
    has_image: bool
    description: Optional[str] = None


class TitleGenerated(EventPayload):
    trace_id: str
    title: str
    previous_title: Optional[str] = None
    all_titles: List[str] = Field(default_factory=list)
    analysis: Optional[Dict[str, Any]] = None


class UploadCompleted(EventPayload):
    trace_id: str
    video_id: str
    video_url: str
    title: str
    privacy: str
    thumbnail_uploaded: bool = False


class ErrorEvent(EventPayload):
    """Payload shared by every *.error topic and pipeline.error."""
    trace_id: Optional[str] = None
    job_id: Optional[str] = None
    error: Optional[str] = None
    step: Optional[str] = None
    video_id: Optional[str] = None
    file_name: Optional[str] = None
    details: Optional[Any] = None
