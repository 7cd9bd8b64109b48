"""
Tests for the pipeline stage handlers, individually and wired together.

Run with: pytest tests/test_stages.py -v
"""

import asyncio
from unittest.mock import MagicMock

import pytest
from googleapiclient.errors import HttpError

from autopublisher.core.exceptions import YouTubeUploadError
from autopublisher.core.pipeline import (
    ingest,
    notify,
    prompts,
    publish,
    register_pipeline,
    thumbnail,
    title,
    topics,
)
from autopublisher.core.pipeline.models import (
    GeneratedTitle,
    Thumbnail,
    VideoData,
    VideoMetadata,
)
from autopublisher.core.pipeline.trace import GENERATED_TITLE, METADATA, THUMBNAIL, VIDEO_DATA
from autopublisher.core.youtube_client import describe_youtube_error
from tests.conftest import PNG_BYTES, EventRecorder, FakeGemini


def event_for(ctx, topic, data):
    return ctx.bus.build_event(topic, data)


async def seed_trace(ctx, trace_id="trace_1", metadata=None, video_bytes=b"video-bytes"):
    ctx.storage.save_buffer(video_bytes, "videos/video_1.mp4")
    trace = ctx.trace(trace_id)
    await trace.write(
        VIDEO_DATA,
        VideoData(
            file_name="sourdough.mp4",
            original_filename="sourdough.mp4",
            storage_key="videos/video_1.mp4",
            url="http://files.test/videos/video_1.mp4",
            format="mp4",
            mimetype="video/mp4",
            file_size=len(video_bytes),
        ),
    )
    await trace.write(METADATA, metadata or VideoMetadata())
    return trace


def prompts_event(ctx, trace_id="trace_1"):
    return event_for(
        ctx,
        topics.PROMPTS_GENERATED,
        {
            "traceId": trace_id,
            "title": "Baking Sourdough at Home",
            "description": "Everything you need.",
            "tags": ["sourdough"],
            "thumbnailPrompt": "A golden loaf",
            "thumbnailStyle": "rustic",
            "thumbnailColors": ["#F5A623"],
            "thumbnailTextOverlay": "EASY",
        },
    )


class TestIngestStage:
    @pytest.mark.asyncio
    async def test_stores_file_and_emits(self, ctx, video_file):
        recorder = EventRecorder(ctx.bus, topics.FILE_UPLOADED)
        event = event_for(
            ctx,
            topics.FILE_NEW_DETECTED,
            {"fileName": video_file.name, "filePath": str(video_file), "traceId": "trace_in"},
        )
        await ingest.handle(event, ctx)
        await ctx.bus.drain()

        state = await ctx.store.get_all("trace_in")
        video = state["videoData"]
        assert video["fileName"] == "sourdough.mp4"
        assert video["storageKey"].startswith("videos/video_")
        assert video["mimetype"] == "video/mp4"
        assert video["fileSize"] == video_file.stat().st_size
        assert state["metadata"] == {
            "title": None,
            "description": "",
            "tags": [],
            "privacy": "private",
            "autoGenerateTitle": True,
        }
        assert state["status"]["status"] == "uploaded"
        assert recorder.events[0].payload.storage_key == video["storageKey"]
        assert video_file.exists()

    @pytest.mark.asyncio
    async def test_generates_trace_id_and_applies_metadata(self, ctx, video_file):
        recorder = EventRecorder(ctx.bus, topics.FILE_UPLOADED)
        event = event_for(
            ctx,
            topics.FILE_NEW_DETECTED,
            {
                "fileName": video_file.name,
                "filePath": str(video_file),
                "metadata": {"title": "My Video", "autoGenerateTitle": False, "privacy": "unlisted"},
                "deleteSource": True,
            },
        )
        await ingest.handle(event, ctx)
        await ctx.bus.drain()

        trace_id = recorder.events[0].payload.trace_id
        assert trace_id.startswith("trace_")
        metadata = await ctx.trace(trace_id).read(METADATA)
        assert metadata.title == "My Video"
        assert metadata.auto_generate_title is False
        assert metadata.privacy == "unlisted"
        assert not video_file.exists()

    @pytest.mark.asyncio
    async def test_invalid_format_fails_stage(self, ctx, tmp_path):
        bad = tmp_path / "notes.txt"
        bad.write_text("hello")
        recorder = EventRecorder(ctx.bus, topics.FILE_UPLOAD_ERROR, topics.FILE_UPLOADED)
        event = event_for(
            ctx, topics.FILE_NEW_DETECTED, {"fileName": bad.name, "filePath": str(bad), "traceId": "trace_bad"}
        )
        await ingest.handle(event, ctx)
        await ctx.bus.drain()

        assert recorder.topics() == [topics.FILE_UPLOAD_ERROR]
        payload = recorder.events[0].payload
        assert payload.step == "upload-file"
        assert payload.file_name == "notes.txt"
        assert "Invalid video format" in payload.error
        assert (await ctx.store.get("trace_bad", "status"))["status"] == "file-upload-failed"


class TestPromptStage:
    @pytest.mark.asyncio
    async def test_writes_prompts_and_fills_metadata(self, ctx):
        await seed_trace(ctx)
        recorder = EventRecorder(ctx.bus, topics.PROMPTS_GENERATED)
        event = event_for(
            ctx, topics.FILE_UPLOADED, {"traceId": "trace_1", "storageKey": "videos/video_1.mp4", "fileName": "a.mp4"}
        )
        await prompts.handle(event, ctx)
        await ctx.bus.drain()

        state = await ctx.store.get_all("trace_1")
        assert state["prompts"]["thumbnailPrompt"] == "A golden sourdough loaf on a wooden board"
        assert state["metadata"]["description"] == "Everything you need for a crusty loaf."
        assert state["metadata"]["tags"] == ["sourdough", "baking"]
        assert state["status"]["status"] == "prompts-generated"
        payload = recorder.events[0].payload
        assert payload.title == "Baking Sourdough at Home"
        assert payload.thumbnail_text_overlay == "EASY SOURDOUGH"

    @pytest.mark.asyncio
    async def test_keeps_user_description(self, ctx):
        await seed_trace(ctx, metadata=VideoMetadata(description="Mine", tags=["own"]))
        event = event_for(
            ctx, topics.FILE_UPLOADED, {"traceId": "trace_1", "storageKey": "videos/video_1.mp4", "fileName": "a.mp4"}
        )
        await prompts.handle(event, ctx)
        metadata = await ctx.trace("trace_1").read(METADATA)
        assert metadata.description == "Mine"
        assert metadata.tags == ["own"]

    @pytest.mark.asyncio
    async def test_missing_video_data_is_precondition_failure(self, ctx):
        recorder = EventRecorder(ctx.bus, topics.PROMPTS_GENERATION_ERROR)
        event = event_for(ctx, topics.FILE_UPLOADED, {"traceId": "trace_x", "storageKey": "k", "fileName": "a.mp4"})
        await prompts.handle(event, ctx)
        await ctx.bus.drain()
        assert recorder.events[0].payload.error == "Video data not found in state"
        assert recorder.events[0].payload.step == "generate-prompts"
        assert (await ctx.store.get("trace_x", "status"))["status"] == "prompts-generation-failed"

    @pytest.mark.asyncio
    async def test_malformed_ai_response_fails(self, ctx):
        ctx.gemini = FakeGemini(prompts={"description": "no title here"})
        await seed_trace(ctx)
        recorder = EventRecorder(ctx.bus, topics.PROMPTS_GENERATION_ERROR)
        event = event_for(
            ctx, topics.FILE_UPLOADED, {"traceId": "trace_1", "storageKey": "videos/video_1.mp4", "fileName": "a.mp4"}
        )
        await prompts.handle(event, ctx)
        await ctx.bus.drain()
        assert "Failed to parse prompts response" in recorder.events[0].payload.error


class TestThumbnailStage:
    @pytest.mark.asyncio
    async def test_stores_generated_image(self, ctx):
        await seed_trace(ctx)
        recorder = EventRecorder(ctx.bus, topics.THUMBNAIL_GENERATED)
        await thumbnail.handle(prompts_event(ctx), ctx)
        await ctx.bus.drain()

        stored = await ctx.trace("trace_1").read(THUMBNAIL)
        assert stored.is_placeholder is False
        assert stored.format == "png"
        assert stored.size == len(PNG_BYTES)
        with ctx.storage.get_stream(stored.storage_key) as stream:
            assert stream.read() == PNG_BYTES
        payload = recorder.events[0].payload
        assert payload.has_image is True
        assert payload.thumbnail_storage_key == stored.storage_key
        assert (await ctx.store.get("trace_1", "status"))["status"] == "thumbnail-generated"
        assert 'Text to include: "EASY"' in ctx.gemini.image_calls[0]

    @pytest.mark.asyncio
    async def test_no_image_stores_placeholder_and_succeeds(self, ctx):
        ctx.gemini = FakeGemini(image=None)
        await seed_trace(ctx)
        recorder = EventRecorder(ctx.bus, topics.THUMBNAIL_GENERATED, topics.THUMBNAIL_GENERATION_ERROR)
        await thumbnail.handle(prompts_event(ctx), ctx)
        await ctx.bus.drain()

        raw = await ctx.store.get("trace_1", "thumbnail")
        assert raw["isPlaceholder"] is True
        assert raw["storageKey"] is None
        assert raw["url"] is None
        assert raw["description"] == ctx.gemini.description
        assert recorder.topics() == [topics.THUMBNAIL_GENERATED]
        assert recorder.events[0].payload.has_image is False
        assert (await ctx.store.get("trace_1", "status"))["status"] == "thumbnail-description-generated"

    @pytest.mark.asyncio
    async def test_model_error_fails_stage(self, ctx):
        ctx.gemini = FakeGemini(image=RuntimeError("model overloaded"))
        await seed_trace(ctx)
        recorder = EventRecorder(ctx.bus, topics.THUMBNAIL_GENERATION_ERROR)
        await thumbnail.handle(prompts_event(ctx), ctx)
        await ctx.bus.drain()
        assert recorder.events[0].payload.error == "model overloaded"
        assert recorder.events[0].payload.step == "generate-thumbnail"


class TestTitleStage:
    @pytest.mark.asyncio
    async def test_user_title_bypasses_generation(self, ctx):
        await seed_trace(ctx, metadata=VideoMetadata(title="My Video", auto_generate_title=False))
        recorder = EventRecorder(ctx.bus, topics.TITLE_GENERATED)
        await title.handle(prompts_event(ctx), ctx)
        await ctx.bus.drain()

        assert recorder.events[0].payload.title == "My Video"
        generated = await ctx.trace("trace_1").read(GENERATED_TITLE)
        assert generated.title == "My Video"
        assert generated.is_generated is False
        assert ctx.gemini.json_calls == []
        assert (await ctx.store.get("trace_1", "status"))["status"] == "title-generated"

    @pytest.mark.asyncio
    async def test_generates_recommended_title(self, ctx):
        await seed_trace(ctx)
        recorder = EventRecorder(ctx.bus, topics.TITLE_GENERATED)
        await title.handle(prompts_event(ctx), ctx)
        await ctx.bus.drain()

        payload = recorder.events[0].payload
        assert payload.title == "5 Sourdough Secrets Bakers Won't Tell You"
        assert payload.previous_title == "Baking Sourdough at Home"
        assert len(payload.all_titles) == 2
        metadata = await ctx.trace("trace_1").read(METADATA)
        assert metadata.title == payload.title
        generated = await ctx.trace("trace_1").read(GENERATED_TITLE)
        assert generated.is_generated is True
        assert generated.recommended_index == 1

    def test_out_of_range_recommendation_falls_back_to_first(self):
        picked = title.pick_title({"titles": [{"title": "A"}, {"title": "B"}], "recommended": 7})
        assert picked.title == "A"
        assert picked.recommended_index == 0

    @pytest.mark.asyncio
    async def test_no_titles_fails_stage(self, ctx):
        ctx.gemini = FakeGemini(titles={"titles": []})
        await seed_trace(ctx)
        recorder = EventRecorder(ctx.bus, topics.TITLE_GENERATION_ERROR)
        await title.handle(prompts_event(ctx), ctx)
        await ctx.bus.drain()
        assert recorder.events[0].payload.error == "No titles generated"
        assert (await ctx.store.get("trace_1", "status"))["status"] == "title-generation-failed"


async def seed_join(ctx, trace_id="trace_1", placeholder=False):
    trace = await seed_trace(ctx, trace_id, metadata=VideoMetadata(description="Desc", tags=["t"]))
    if placeholder:
        await trace.write(THUMBNAIL, Thumbnail(description="desc", is_placeholder=True))
    else:
        ctx.storage.save_buffer(PNG_BYTES, "thumbnails/thumb_1.png")
        await trace.write(
            THUMBNAIL, Thumbnail(storage_key="thumbnails/thumb_1.png", url="u", format="png", size=len(PNG_BYTES))
        )
    await trace.write(GENERATED_TITLE, GeneratedTitle(title="Final Title", is_generated=True))
    return trace


def thumbnail_done(ctx, trace_id="trace_1"):
    return event_for(ctx, topics.THUMBNAIL_GENERATED, {"traceId": trace_id, "hasImage": True})


def title_done(ctx, trace_id="trace_1"):
    return event_for(ctx, topics.TITLE_GENERATED, {"traceId": trace_id, "title": "Final Title"})


class TestPublishStage:
    @pytest.mark.asyncio
    async def test_waits_for_both_branches(self, ctx, connected_user):
        await seed_trace(ctx)
        await ctx.trace("trace_1").write(THUMBNAIL, Thumbnail(description="d", is_placeholder=True))
        await publish.handle(thumbnail_done(ctx), ctx)
        assert ctx.youtube.uploads == []
        assert await ctx.store.get("trace_1", "uploadClaim") is None

    @pytest.mark.asyncio
    async def test_uploads_video_and_thumbnail(self, ctx, connected_user):
        await seed_join(ctx)
        recorder = EventRecorder(ctx.bus, topics.YOUTUBE_UPLOAD_COMPLETED)
        await publish.handle(title_done(ctx), ctx)
        await ctx.bus.drain()

        upload = ctx.youtube.uploads[0]
        assert upload["email"] == "creator@example.com"
        assert upload["data"] == b"video-bytes"
        assert upload["title"] == "Final Title"
        assert upload["description"] == "Desc"
        assert upload["privacy"] == "private"
        assert ctx.youtube.thumbnails == [{"video_id": "vid123", "data": PNG_BYTES, "mimetype": "image/png"}]

        state = await ctx.store.get_all("trace_1")
        assert state["uploadResult"]["videoUrl"] == "https://www.youtube.com/watch?v=vid123"
        assert state["uploadResult"]["channelTitle"] == "Bake Club"
        assert state["uploadResult"]["thumbnailUploaded"] is True
        assert state["status"]["status"] == "completed"
        assert state["status"]["videoId"] == "vid123"
        assert state["uploadClaim"]["trigger"] == topics.TITLE_GENERATED
        assert recorder.events[0].payload.thumbnail_uploaded is True

    @pytest.mark.asyncio
    async def test_concurrent_triggers_upload_once(self, ctx, connected_user):
        await seed_join(ctx)
        recorder = EventRecorder(ctx.bus, topics.YOUTUBE_UPLOAD_COMPLETED)
        await asyncio.gather(
            publish.handle(thumbnail_done(ctx), ctx),
            publish.handle(title_done(ctx), ctx),
            publish.handle(title_done(ctx), ctx),
        )
        await ctx.bus.drain()
        assert len(ctx.youtube.uploads) == 1
        assert len(recorder.events) == 1

    @pytest.mark.asyncio
    async def test_placeholder_thumbnail_is_not_uploaded(self, ctx, connected_user):
        await seed_join(ctx, placeholder=True)
        await publish.handle(title_done(ctx), ctx)
        assert len(ctx.youtube.uploads) == 1
        assert ctx.youtube.thumbnails == []
        assert (await ctx.store.get("trace_1", "uploadResult"))["thumbnailUploaded"] is False

    @pytest.mark.asyncio
    async def test_thumbnail_failure_is_not_fatal(self, ctx, connected_user):
        ctx.youtube.thumbnail_error = YouTubeUploadError("forbidden", status_code=403)
        await seed_join(ctx)
        await publish.handle(title_done(ctx), ctx)
        assert (await ctx.store.get("trace_1", "status"))["status"] == "completed"

    @pytest.mark.asyncio
    async def test_skips_failed_trace(self, ctx, connected_user):
        await seed_join(ctx)
        await ctx.trace("trace_1").set_status("failed")
        await publish.handle(title_done(ctx), ctx)
        assert ctx.youtube.uploads == []

    @pytest.mark.asyncio
    async def test_no_connected_account_fails(self, ctx):
        await seed_join(ctx)
        recorder = EventRecorder(ctx.bus, topics.YOUTUBE_UPLOAD_ERROR)
        await publish.handle(title_done(ctx), ctx)
        await ctx.bus.drain()
        payload = recorder.events[0].payload
        assert payload.error == "No YouTube account connected. Please connect your account first."
        assert payload.step == "upload-youtube"
        assert (await ctx.store.get("trace_1", "status"))["status"] == "upload-failed"

    @pytest.mark.asyncio
    async def test_quota_error_is_translated(self, ctx, connected_user):
        resp = MagicMock(status=403, reason="Forbidden")
        ctx.youtube.error = HttpError(resp, b'{"error": {"message": "quotaExceeded"}}')
        await seed_join(ctx)
        recorder = EventRecorder(ctx.bus, topics.YOUTUBE_UPLOAD_ERROR)
        await publish.handle(title_done(ctx), ctx)
        await ctx.bus.drain()
        assert recorder.events[0].payload.error == "YouTube API quota exceeded or permission denied"

    @pytest.mark.asyncio
    async def test_cleanup_after_upload(self, ctx, connected_user, monkeypatch):
        monkeypatch.setattr("autopublisher.config.CLEANUP_AFTER_UPLOAD", True)
        await seed_join(ctx)
        await publish.handle(title_done(ctx), ctx)
        assert not (ctx.storage.base_path / "videos/video_1.mp4").exists()
        assert not (ctx.storage.base_path / "thumbnails/thumb_1.png").exists()


class TestDescribeYouTubeError:
    @pytest.mark.parametrize(
        "status,expected",
        [
            (403, "YouTube API quota exceeded or permission denied"),
            (401, "YouTube authentication expired. Please reconnect your account."),
        ],
    )
    def test_known_statuses(self, status, expected):
        error = HttpError(MagicMock(status=status, reason="x"), b"{}")
        assert describe_youtube_error(error) == expected

    def test_bad_request_keeps_message(self):
        error = HttpError(MagicMock(status=400, reason="Bad Request"), b"{}")
        assert describe_youtube_error(error).startswith("Invalid request: ")

    def test_other_errors_pass_through(self):
        assert describe_youtube_error(RuntimeError("socket closed")) == "socket closed"


class TestNotifyStage:
    def completed_event(self, ctx):
        return event_for(
            ctx,
            topics.YOUTUBE_UPLOAD_COMPLETED,
            {
                "traceId": "trace_1",
                "videoId": "vid123",
                "videoUrl": "https://www.youtube.com/watch?v=vid123",
                "title": "Final Title",
                "privacy": "private",
                "thumbnailUploaded": False,
            },
        )

    @pytest.mark.asyncio
    async def test_sends_confirmation(self, ctx, connected_user, brevo):
        await notify.handle(self.completed_event(ctx), ctx)
        payload = brevo.payloads()[0]
        assert payload["to"] == [{"email": "creator@example.com"}]
        assert payload["subject"] == 'Video Published: "Final Title"'
        assert "https://www.youtube.com/watch?v=vid123" in payload["textContent"]
        assert "Custom thumbnail upload may have failed" in payload["htmlContent"]
        assert brevo.requests[0].headers["api-key"] == "brevo-key"
        record = await ctx.store.get("trace_1", "emailNotification")
        assert record["sent"] is True
        assert record["to"] == "creator@example.com"

    @pytest.mark.asyncio
    async def test_skips_without_connected_user(self, ctx, brevo):
        await notify.handle(self.completed_event(ctx), ctx)
        assert brevo.requests == []
        assert await ctx.store.get("trace_1", "emailNotification") is None

    @pytest.mark.asyncio
    async def test_skips_when_mailer_not_configured(self, ctx, connected_user, brevo):
        ctx.mailer.api_key = ""
        await notify.handle(self.completed_event(ctx), ctx)
        assert brevo.requests == []

    @pytest.mark.asyncio
    async def test_provider_error_emits_pipeline_error(self, ctx, connected_user, brevo):
        brevo.status_code = 401
        brevo.body = {"message": "Key not found"}
        recorder = EventRecorder(ctx.bus, topics.PIPELINE_ERROR)
        await notify.handle(self.completed_event(ctx), ctx)
        await ctx.bus.drain()

        payload = recorder.events[0].payload
        assert payload.step == "send-email"
        assert payload.video_id == "vid123"
        assert payload.error == "Failed to send email: Key not found"
        record = await ctx.store.get("trace_1", "emailNotification")
        assert record["sent"] is False
        assert "failedAt" in record


class TestFullPipeline:
    @pytest.mark.asyncio
    async def test_file_to_published_video(self, ctx, connected_user, video_file, brevo):
        register_pipeline(ctx)
        await ctx.emit(
            topics.FILE_NEW_DETECTED,
            {"fileName": video_file.name, "filePath": str(video_file), "traceId": "trace_e2e"},
        )
        await ctx.bus.drain()

        state = await ctx.store.get_all("trace_e2e")
        assert state["status"]["status"] == "completed"
        assert "errors" not in state
        assert len(ctx.youtube.uploads) == 1
        assert ctx.youtube.uploads[0]["title"] == "5 Sourdough Secrets Bakers Won't Tell You"
        assert ctx.youtube.uploads[0]["tags"] == ["sourdough", "baking"]
        assert state["emailNotification"]["sent"] is True
        assert len(brevo.requests) == 1

    @pytest.mark.asyncio
    async def test_title_failure_stops_before_upload(self, ctx, connected_user, video_file):
        ctx.gemini = FakeGemini(titles={"titles": []})
        register_pipeline(ctx)
        await ctx.emit(
            topics.FILE_NEW_DETECTED,
            {"fileName": video_file.name, "filePath": str(video_file), "traceId": "trace_fail"},
        )
        await ctx.bus.drain()

        state = await ctx.store.get_all("trace_fail")
        assert state["status"]["status"] == "failed"
        assert state["status"]["failedStep"] == "generate-title"
        assert state["errorSummary"]["totalErrors"] == len(state["errors"]) == 1
        assert ctx.youtube.uploads == []
