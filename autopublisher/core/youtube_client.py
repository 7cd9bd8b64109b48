"""
YouTube Data API v3 client: video insert and custom thumbnail.

Calls are blocking (googleapiclient); pipeline stages run them through
asyncio.to_thread.
"""

import logging
from typing import Any, BinaryIO, Dict, List, Optional

from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from googleapiclient.http import MediaIoBaseUpload

from autopublisher import config
from autopublisher.core.exceptions import YouTubeUploadError
from autopublisher.core.oauth import AuthenticatedClient

logger = logging.getLogger(__name__)

UPLOAD_CHUNK_SIZE = 8 * 1024 * 1024
DEFAULT_DESCRIPTION = "Uploaded via YouTube Auto Publisher"


def video_url(video_id: str) -> str:
    return f"https://www.youtube.com/watch?v={video_id}"


def _status_of(exc: BaseException) -> Optional[int]:
    if isinstance(exc, YouTubeUploadError):
        return exc.status_code
    if isinstance(exc, HttpError):
        try:
            return int(exc.resp.status)
        except (TypeError, ValueError):
            return None
    return getattr(exc, "status_code", None)


def _message_of(exc: BaseException) -> str:
    if isinstance(exc, HttpError):
        return getattr(exc, "reason", None) or str(exc)
    return str(exc)


def describe_youtube_error(exc: BaseException) -> str:
    """User-facing message for a failed YouTube call."""
    if isinstance(exc, YouTubeUploadError):
        return str(exc)
    status = _status_of(exc)
    message = _message_of(exc)
    if status == 403:
        return "YouTube API quota exceeded or permission denied"
    if status == 401:
        return "YouTube authentication expired. Please reconnect your account."
    if status == 400:
        return f"Invalid request: {message}"
    return message


class YouTubeClient:
    def __init__(self, category_id: Optional[str] = None):
        self.category_id = category_id or config.YOUTUBE_CATEGORY_ID

    def _service(self, auth: AuthenticatedClient):
        credentials = auth.ensure_fresh()
        return build("youtube", "v3", credentials=credentials, cache_discovery=False)

    def upload_video(
        self,
        auth: AuthenticatedClient,
        stream: BinaryIO,
        mimetype: str,
        title: str,
        description: str,
        tags: List[str],
        privacy: str,
    ) -> Dict[str, Any]:
        """
        Insert a video with a resumable upload.

        Returns:
            The inserted video resource (id, snippet, status)

        Raises:
            YouTubeUploadError: On any API failure, with the HTTP status when known
        """
        body = {
            "snippet": {
                "title": title,
                "description": description or DEFAULT_DESCRIPTION,
                "tags": tags,
                "categoryId": self.category_id,
                "defaultLanguage": "en",
                "defaultAudioLanguage": "en",
            },
            "status": {
                "privacyStatus": privacy or config.DEFAULT_PRIVACY,
                "selfDeclaredMadeForKids": False,
            },
        }
        media = MediaIoBaseUpload(stream, mimetype=mimetype, chunksize=UPLOAD_CHUNK_SIZE, resumable=True)

        try:
            request = self._service(auth).videos().insert(
                part="snippet,status",
                body=body,
                media_body=media,
            )
            response = None
            while response is None:
                progress, response = request.next_chunk()
                if progress is not None:
                    logger.debug("Upload progress: %d%%", int(progress.progress() * 100))
        except HttpError as e:
            raise YouTubeUploadError(describe_youtube_error(e), status_code=_status_of(e)) from e

        if not response or not response.get("id"):
            raise YouTubeUploadError("YouTube did not return a video id")
        return response

    def set_thumbnail(
        self,
        auth: AuthenticatedClient,
        video_id: str,
        stream: BinaryIO,
        mimetype: str = "image/jpeg",
    ) -> None:
        media = MediaIoBaseUpload(stream, mimetype=mimetype, resumable=False)
        try:
            self._service(auth).thumbnails().set(videoId=video_id, media_body=media).execute()
        except HttpError as e:
            raise YouTubeUploadError(describe_youtube_error(e), status_code=_status_of(e)) from e
