import re
import secrets
import time
import uuid
from datetime import datetime, timezone
from pathlib import PurePath

from fastapi import Request

REQUEST_ID_HEADER = "X-Request-ID"

VIDEO_CONTENT_TYPES = {
    "mp4": "video/mp4",
    "mov": "video/quicktime",
    "avi": "video/x-msvideo",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
}

THUMBNAIL_CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}

THUMBNAIL_EXTENSIONS = {
    "jpeg": "jpg",
    "png": "png",
    "webp": "webp",
}


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def generate_trace_id() -> str:
    """
    Generates a unique trace ID for one pipeline run.
    Format: trace_YYYYMMDDHHMMSS_RANDOM
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    return f"trace_{timestamp}_{uuid.uuid4().hex[:12]}"


def file_extension(filename: str) -> str:
    suffix = PurePath(filename).suffix
    return suffix[1:].lower() if suffix else ""


def is_valid_video_format(filename: str) -> bool:
    return file_extension(filename) in VIDEO_CONTENT_TYPES


def generate_video_filename(original_filename: str) -> str:
    """
    Collision-free storage name for an uploaded video.
    Format: video_{epochMillis}_{uuid}.{ext}
    """
    ext = file_extension(original_filename) or "mp4"
    return f"video_{int(time.time() * 1000)}_{uuid.uuid4()}.{ext}"


def generate_thumbnail_filename(fmt: str = "jpeg") -> str:
    ext = THUMBNAIL_EXTENSIONS.get(fmt, "jpg")
    return f"thumb_{int(time.time() * 1000)}_{uuid.uuid4()}.{ext}"


def format_file_size(size_bytes: int) -> str:
    if size_bytes < 1024:
        return f"{size_bytes} B"
    if size_bytes < 1024 * 1024:
        return f"{size_bytes / 1024:.1f} KB"
    if size_bytes < 1024 * 1024 * 1024:
        return f"{size_bytes / (1024 * 1024):.1f} MB"
    return f"{size_bytes / (1024 * 1024 * 1024):.2f} GB"


def normalize_email(email: str) -> str:
    return email.strip().lower()


def generate_request_id() -> str:
    """Generate a unique request ID."""
    return secrets.token_hex(16)


def get_request_id(request: Request) -> str:
    """Get or generate request ID from request."""
    request_id = request.headers.get(REQUEST_ID_HEADER)
    if request_id and len(request_id) <= 64 and re.match(r"^[a-zA-Z0-9_-]+$", request_id):
        return request_id
    return generate_request_id()
