"""
Trace status values and their ordering.

Parallel stages share one status field, so writes are guarded: a status only
replaces one of equal or lower rank, and nothing replaces `failed`.
"""

from typing import Any, Dict, Optional

CREATED = "created"
UPLOADING = "uploading"
UPLOADED = "uploaded"
GENERATING_PROMPTS = "generating-prompts"
PROMPTS_GENERATED = "prompts-generated"
GENERATING_THUMBNAIL = "generating-thumbnail"
GENERATING_TITLE = "generating-title"
THUMBNAIL_GENERATED = "thumbnail-generated"
THUMBNAIL_DESCRIPTION_GENERATED = "thumbnail-description-generated"
TITLE_GENERATED = "title-generated"
UPLOADING_TO_YOUTUBE = "uploading-to-youtube"
COMPLETED = "completed"

FILE_UPLOAD_FAILED = "file-upload-failed"
PROMPTS_GENERATION_FAILED = "prompts-generation-failed"
THUMBNAIL_GENERATION_FAILED = "thumbnail-generation-failed"
TITLE_GENERATION_FAILED = "title-generation-failed"
UPLOAD_FAILED = "upload-failed"
FAILED = "failed"

STATUS_RANK: Dict[str, int] = {
    CREATED: 0,
    UPLOADING: 10,
    UPLOADED: 20,
    GENERATING_PROMPTS: 30,
    PROMPTS_GENERATED: 40,
    GENERATING_THUMBNAIL: 50,
    GENERATING_TITLE: 50,
    THUMBNAIL_GENERATED: 60,
    THUMBNAIL_DESCRIPTION_GENERATED: 60,
    TITLE_GENERATED: 60,
    UPLOADING_TO_YOUTUBE: 70,
    COMPLETED: 80,
    FILE_UPLOAD_FAILED: 90,
    PROMPTS_GENERATION_FAILED: 90,
    THUMBNAIL_GENERATION_FAILED: 90,
    TITLE_GENERATION_FAILED: 90,
    UPLOAD_FAILED: 90,
    FAILED: 100,
}


def status_rank(status: Optional[str]) -> int:
    if status is None:
        return -1
    if status in STATUS_RANK:
        return STATUS_RANK[status]
    # unknown stage-specific failure
    if status.endswith("-failed"):
        return STATUS_RANK[UPLOAD_FAILED]
    return -1


def is_failed(record: Optional[Dict[str, Any]]) -> bool:
    return bool(record) and record.get("status") == FAILED


def can_transition(current: Optional[Dict[str, Any]], new_status: str) -> bool:
    if not current:
        return True
    current_status = current.get("status")
    if current_status == FAILED:
        return False
    return status_rank(new_status) >= status_rank(current_status)
