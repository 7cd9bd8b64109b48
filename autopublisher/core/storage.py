"""
Video and thumbnail object storage.

Two interchangeable adapters behind one capability set
(save_stream, save_buffer, get_stream, delete, get_public_url):

- LocalStorageAdapter: files under LOCAL_STORAGE_PATH
- S3StorageAdapter: S3 or any S3-compatible bucket (R2, MinIO)

The adapter is chosen once from STORAGE_TYPE and cached for the process.
All methods are blocking; pipeline stages call them through asyncio.to_thread.
"""

import logging
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, BinaryIO, Dict, Optional, Union

import boto3
from botocore.client import Config
from botocore.exceptions import ClientError

from autopublisher import config
from autopublisher.core.exceptions import StorageError, StorageNotFoundError, ValidationError
from autopublisher.core.utils import (
    THUMBNAIL_CONTENT_TYPES,
    VIDEO_CONTENT_TYPES,
    file_extension,
    generate_thumbnail_filename,
    generate_video_filename,
    is_valid_video_format,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
SPOOL_MAX_MEMORY = 64 * 1024 * 1024
_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


class StorageAdapter(ABC):
    """Uniform interface over the object store."""

    @abstractmethod
    def save_stream(self, stream: BinaryIO, key: str, content_type: Optional[str] = None) -> str:
        """Persist a readable binary stream under key and return the key."""

    @abstractmethod
    def save_buffer(self, buffer: bytes, key: str, content_type: Optional[str] = None) -> str:
        """Persist bytes under key and return the key."""

    @abstractmethod
    def get_stream(self, key: str) -> BinaryIO:
        """Open the object for reading. Raises StorageNotFoundError if absent."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove the object."""

    @abstractmethod
    def get_public_url(self, key: str) -> str:
        """URL under which the object can be fetched."""


class LocalStorageAdapter(StorageAdapter):
    def __init__(self, base_path: Union[str, Path, None] = None, base_url: Optional[str] = None):
        self.base_path = Path(base_path or config.LOCAL_STORAGE_PATH)
        self.base_url = (base_url or config.LOCAL_STORAGE_URL).rstrip("/")
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _path_for(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path.resolve()):
            raise StorageError(f"Storage key escapes base path: {key}")
        return path

    def save_stream(self, stream: BinaryIO, key: str, content_type: Optional[str] = None) -> str:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as out:
            shutil.copyfileobj(stream, out)
        logger.debug("Saved stream to %s", path)
        return key

    def save_buffer(self, buffer: bytes, key: str, content_type: Optional[str] = None) -> str:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(buffer)
        logger.debug("Saved %d bytes to %s", len(buffer), path)
        return key

    def get_stream(self, key: str) -> BinaryIO:
        path = self._path_for(key)
        if not path.is_file():
            raise StorageNotFoundError(key)
        return open(path, "rb")

    def delete(self, key: str) -> None:
        # Already absent is not an error for local files
        self._path_for(key).unlink(missing_ok=True)

    def get_public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"


class S3StorageAdapter(StorageAdapter):
    def __init__(self, bucket_name: Optional[str] = None, region: Optional[str] = None, client: Any = None):
        self.bucket_name = bucket_name or config.AWS_S3_BUCKET_NAME
        self.region = region or config.AWS_REGION
        if not self.bucket_name:
            raise StorageError("AWS_S3_BUCKET_NAME must be configured for s3 storage")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            session = boto3.session.Session()
            self._client = session.client(
                "s3",
                endpoint_url=config.AWS_S3_ENDPOINT_URL or None,
                aws_access_key_id=config.AWS_ACCESS_KEY_ID or None,
                aws_secret_access_key=config.AWS_SECRET_ACCESS_KEY or None,
                config=Config(signature_version="s3v4"),
                region_name=self.region,
            )
        return self._client

    def save_stream(self, stream: BinaryIO, key: str, content_type: Optional[str] = None) -> str:
        extra_args: Dict[str, Any] = {"ContentType": content_type or DEFAULT_CONTENT_TYPE}
        try:
            self.client.upload_fileobj(stream, self.bucket_name, key, ExtraArgs=extra_args)
        except ClientError as exc:
            logger.error("Failed to upload %s: %s", key, exc)
            raise StorageError(f"Failed to upload {key}: {exc}") from exc
        return key

    def save_buffer(self, buffer: bytes, key: str, content_type: Optional[str] = None) -> str:
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=buffer,
                ContentType=content_type or DEFAULT_CONTENT_TYPE,
            )
        except ClientError as exc:
            logger.error("Failed to upload %s: %s", key, exc)
            raise StorageError(f"Failed to upload {key}: {exc}") from exc
        return key

    def get_stream(self, key: str) -> BinaryIO:
        try:
            obj = self.client.get_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            code = str(exc.response.get("Error", {}).get("Code", ""))
            if code in _NOT_FOUND_CODES:
                raise StorageNotFoundError(key) from exc
            logger.error("Failed to get object %s: %s", key, exc)
            raise StorageError(f"Failed to read {key}: {exc}") from exc
        return obj["Body"]

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=key)
        except ClientError as exc:
            logger.error("Failed to delete object %s: %s", key, exc)
            raise StorageError(f"Failed to delete {key}: {exc}") from exc

    def get_public_url(self, key: str) -> str:
        if config.S3_PUBLIC_BASE_URL:
            return f"{config.S3_PUBLIC_BASE_URL.rstrip('/')}/{key}"
        return f"https://{self.bucket_name}.s3.{self.region}.amazonaws.com/{key}"


_storage: Optional[StorageAdapter] = None


def get_storage() -> StorageAdapter:
    global _storage
    if _storage is None:
        if config.STORAGE_TYPE == "s3":
            _storage = S3StorageAdapter()
        else:
            _storage = LocalStorageAdapter()
        logger.info("Using %s storage adapter", type(_storage).__name__)
    return _storage


def upload_video(
    stream: BinaryIO,
    original_filename: str,
    storage: Optional[StorageAdapter] = None,
) -> Dict[str, str]:
    """
    Store a source video under videos/ with a collision-free name.

    Returns:
        Dict with storageKey, url and format

    Raises:
        ValidationError: If the file extension is not a supported video format
    """
    if not is_valid_video_format(original_filename):
        raise ValidationError(f"Invalid video format: {original_filename}")

    storage = storage or get_storage()
    storage_key = f"videos/{generate_video_filename(original_filename)}"
    fmt = file_extension(original_filename)
    content_type = VIDEO_CONTENT_TYPES.get(fmt, "video/mp4")

    storage.save_stream(stream, storage_key, content_type)
    url = storage.get_public_url(storage_key)
    return {"storageKey": storage_key, "url": url, "format": fmt}


def upload_thumbnail(
    image: bytes,
    fmt: str = "jpeg",
    storage: Optional[StorageAdapter] = None,
) -> Dict[str, str]:
    storage = storage or get_storage()
    storage_key = f"thumbnails/{generate_thumbnail_filename(fmt)}"
    content_type = THUMBNAIL_CONTENT_TYPES.get(fmt, "image/jpeg")

    storage.save_buffer(image, storage_key, content_type)
    url = storage.get_public_url(storage_key)
    return {"storageKey": storage_key, "url": url}


def spool(key: str, storage: Optional[StorageAdapter] = None) -> BinaryIO:
    """Copy an object into a seekable temporary file (resumable uploads need seek)."""
    stream = (storage or get_storage()).get_stream(key)
    spooled = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_MEMORY)
    try:
        shutil.copyfileobj(stream, spooled)
    finally:
        stream.close()
    spooled.seek(0)
    return spooled


def delete_file(key: str, storage: Optional[StorageAdapter] = None) -> None:
    (storage or get_storage()).delete(key)


def cleanup_after_upload(
    video_key: str,
    thumbnail_key: Optional[str] = None,
    storage: Optional[StorageAdapter] = None,
) -> None:
    delete_file(video_key, storage)
    if thumbnail_key:
        delete_file(thumbnail_key, storage)
