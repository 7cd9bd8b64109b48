"""
Event topics: the wire contract between stages.

Topic names are stable identifiers; renaming one breaks every stage and
dashboard that subscribes to it.
"""

from typing import Dict, Type

from autopublisher.core.pipeline.models import (
    ErrorEvent,
    EventPayload,
    FileDetected,
    FileUploaded,
    PromptsGenerated,
    ThumbnailGenerated,
    TitleGenerated,
    UploadCompleted,
)

FILE_NEW_DETECTED = "file.new.detected"
FILE_UPLOADED = "file.uploaded"
FILE_UPLOAD_ERROR = "file.upload.error"
PROMPTS_GENERATED = "prompts.generated"
PROMPTS_GENERATION_ERROR = "prompts.generation.error"
THUMBNAIL_GENERATED = "thumbnail.image.generated"
THUMBNAIL_GENERATION_ERROR = "thumbnail.image.generation.error"
TITLE_GENERATED = "final.title.generated"
TITLE_GENERATION_ERROR = "final.title.generation.error"
YOUTUBE_UPLOAD_COMPLETED = "youtube.upload.completed"
YOUTUBE_UPLOAD_ERROR = "youtube.upload.error"
PIPELINE_ERROR = "pipeline.error"

ERROR_TOPICS = (
    FILE_UPLOAD_ERROR,
    PROMPTS_GENERATION_ERROR,
    THUMBNAIL_GENERATION_ERROR,
    TITLE_GENERATION_ERROR,
    YOUTUBE_UPLOAD_ERROR,
    PIPELINE_ERROR,
)

TOPIC_MODELS: Dict[str, Type[EventPayload]] = {
    FILE_NEW_DETECTED: FileDetected,
    FILE_UPLOADED: FileUploaded,
    PROMPTS_GENERATED: PromptsGenerated,
    THUMBNAIL_GENERATED: ThumbnailGenerated,
    TITLE_GENERATED: TitleGenerated,
    YOUTUBE_UPLOAD_COMPLETED: UploadCompleted,
    **{topic: ErrorEvent for topic in ERROR_TOPICS},
}
