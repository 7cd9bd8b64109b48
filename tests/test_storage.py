"""
Tests for storage adapters and upload helpers.

Run with: pytest tests/test_storage.py -v
"""

import io
import re
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from autopublisher.core.exceptions import StorageError, StorageNotFoundError, ValidationError
from autopublisher.core.storage import (
    S3StorageAdapter,
    cleanup_after_upload,
    spool,
    upload_thumbnail,
    upload_video,
)
from autopublisher.core.utils import (
    format_file_size,
    generate_thumbnail_filename,
    generate_trace_id,
    generate_video_filename,
)


class TestFilenames:
    def test_video_filename_keeps_extension(self):
        name = generate_video_filename("My Holiday.MOV")
        assert re.fullmatch(r"video_\d{13}_[0-9a-f-]{36}\.mov", name)

    def test_thumbnail_filename_uses_format_extension(self):
        assert generate_thumbnail_filename("jpeg").endswith(".jpg")
        assert generate_thumbnail_filename("png").endswith(".png")
        assert generate_thumbnail_filename("webp").startswith("thumb_")

    def test_names_do_not_collide(self):
        names = {generate_video_filename("a.mp4") for _ in range(200)}
        assert len(names) == 200

    def test_trace_id_format(self):
        assert re.fullmatch(r"trace_\d{14}_[0-9a-f]{12}", generate_trace_id())

    def test_format_file_size(self):
        assert format_file_size(512) == "512 B"
        assert format_file_size(2048) == "2.0 KB"
        assert format_file_size(5 * 1024 * 1024) == "5.0 MB"


class TestLocalStorageAdapter:
    def test_round_trip(self, storage):
        storage.save_buffer(b"hello world", "videos/a.mp4")
        with storage.get_stream("videos/a.mp4") as stream:
            assert stream.read() == b"hello world"

    def test_save_stream_creates_parent_dirs(self, storage):
        storage.save_stream(io.BytesIO(b"abc"), "deep/nested/dir/file.bin")
        assert (storage.base_path / "deep/nested/dir/file.bin").read_bytes() == b"abc"

    def test_get_after_delete_raises_not_found(self, storage):
        storage.save_buffer(b"x", "thumbnails/t.jpg")
        storage.delete("thumbnails/t.jpg")
        with pytest.raises(StorageNotFoundError) as exc_info:
            storage.get_stream("thumbnails/t.jpg")
        assert exc_info.value.key == "thumbnails/t.jpg"

    def test_delete_missing_is_noop(self, storage):
        storage.delete("videos/never-existed.mp4")

    def test_key_cannot_escape_base_path(self, storage):
        with pytest.raises(StorageError):
            storage.save_buffer(b"x", "../outside.txt")

    def test_public_url(self, storage):
        assert storage.get_public_url("videos/a.mp4") == "http://files.test/videos/a.mp4"


class TestUploadHelpers:
    def test_upload_video(self, storage):
        result = upload_video(io.BytesIO(b"video-bytes"), "clip.webm", storage)
        assert result["storageKey"].startswith("videos/video_")
        assert result["storageKey"].endswith(".webm")
        assert result["format"] == "webm"
        assert result["url"] == f"http://files.test/{result['storageKey']}"
        with storage.get_stream(result["storageKey"]) as stream:
            assert stream.read() == b"video-bytes"

    def test_upload_video_rejects_unknown_format(self, storage):
        with pytest.raises(ValidationError, match="Invalid video format"):
            upload_video(io.BytesIO(b"x"), "notes.txt", storage)

    def test_upload_thumbnail(self, storage):
        result = upload_thumbnail(b"png", "png", storage)
        assert re.fullmatch(r"thumbnails/thumb_\d{13}_[0-9a-f-]{36}\.png", result["storageKey"])

    def test_spool_is_seekable_copy(self, storage):
        storage.save_buffer(b"0123456789", "videos/v.mp4")
        spooled = spool("videos/v.mp4", storage)
        try:
            assert spooled.read() == b"0123456789"
            spooled.seek(3)
            assert spooled.read(2) == b"34"
        finally:
            spooled.close()

    def test_cleanup_after_upload(self, storage):
        storage.save_buffer(b"v", "videos/v.mp4")
        storage.save_buffer(b"t", "thumbnails/t.jpg")
        cleanup_after_upload("videos/v.mp4", "thumbnails/t.jpg", storage)
        for key in ("videos/v.mp4", "thumbnails/t.jpg"):
            with pytest.raises(StorageNotFoundError):
                storage.get_stream(key)


class TestS3StorageAdapter:
    def _adapter(self, client):
        return S3StorageAdapter(bucket_name="bucket", region="eu-west-1", client=client)

    def test_requires_bucket(self, monkeypatch):
        monkeypatch.setattr("autopublisher.config.AWS_S3_BUCKET_NAME", "")
        with pytest.raises(StorageError):
            S3StorageAdapter(client=MagicMock())

    def test_save_buffer_sets_content_type(self):
        client = MagicMock()
        self._adapter(client).save_buffer(b"img", "thumbnails/t.png", "image/png")
        client.put_object.assert_called_once_with(
            Bucket="bucket", Key="thumbnails/t.png", Body=b"img", ContentType="image/png"
        )

    def test_missing_key_maps_to_not_found(self):
        client = MagicMock()
        client.get_object.side_effect = ClientError(
            {"Error": {"Code": "NoSuchKey", "Message": "The specified key does not exist."}},
            "GetObject",
        )
        with pytest.raises(StorageNotFoundError):
            self._adapter(client).get_stream("videos/gone.mp4")

    def test_other_client_errors_are_storage_errors(self):
        client = MagicMock()
        client.get_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "denied"}},
            "GetObject",
        )
        with pytest.raises(StorageError) as exc_info:
            self._adapter(client).get_stream("videos/a.mp4")
        assert not isinstance(exc_info.value, StorageNotFoundError)

    def test_public_url(self, monkeypatch):
        monkeypatch.setattr("autopublisher.config.S3_PUBLIC_BASE_URL", "")
        adapter = self._adapter(MagicMock())
        assert adapter.get_public_url("videos/a.mp4") == "https://bucket.s3.eu-west-1.amazonaws.com/videos/a.mp4"
        monkeypatch.setattr("autopublisher.config.S3_PUBLIC_BASE_URL", "https://cdn.example.com/")
        assert adapter.get_public_url("videos/a.mp4") == "https://cdn.example.com/videos/a.mp4"
