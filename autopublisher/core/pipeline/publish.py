"""
Stage 4: publish to YouTube once both thumbnail and title exist.

thumbnail.image.generated + final.title.generated
    -> youtube.upload.completed | youtube.upload.error

Both topics trigger this stage. The trigger that finds the join complete sets
`uploadClaim` in the same transaction, so the video is uploaded once per
trace no matter how many triggers arrive or in which order.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from autopublisher import config
from autopublisher.core.events import Event
from autopublisher.core.exceptions import AuthenticationError
from autopublisher.core.pipeline import status as st
from autopublisher.core.pipeline import topics
from autopublisher.core.pipeline.common import fail_stage, require
from autopublisher.core.pipeline.context import PipelineContext
from autopublisher.core.pipeline.models import (
    GeneratedTitle,
    Thumbnail,
    UploadClaim,
    UploadResult,
    VideoData,
    VideoMetadata,
)
from autopublisher.core.pipeline.trace import (
    GENERATED_TITLE,
    METADATA,
    STATUS,
    THUMBNAIL,
    UPLOAD_CLAIM,
    UPLOAD_RESULT,
    VIDEO_DATA,
)
from autopublisher.core.storage import cleanup_after_upload, spool
from autopublisher.core.utils import THUMBNAIL_CONTENT_TYPES
from autopublisher.core.youtube_client import describe_youtube_error, video_url

logger = logging.getLogger(__name__)

NAME = "UploadToYouTube"
SUBSCRIBES = (topics.THUMBNAIL_GENERATED, topics.TITLE_GENERATED)
STEP = "upload-youtube"


async def claim_upload(ctx: PipelineContext, trace_id: str, trigger: str) -> bool:
    """Check the join and take the one-time upload claim atomically."""

    def _claim(snapshot: Dict[str, Any]) -> Dict[str, Any]:
        if snapshot.get(THUMBNAIL) is None or snapshot.get(GENERATED_TITLE) is None:
            return {}
        if st.is_failed(snapshot.get(STATUS)) or snapshot.get(UPLOAD_CLAIM):
            return {}
        return {UPLOAD_CLAIM: UploadClaim(trigger=trigger).to_state()}

    return bool(await ctx.store.transact(trace_id, _claim))


def _upload_video(ctx: PipelineContext, auth, video: VideoData, metadata: VideoMetadata, title: str) -> Dict[str, Any]:
    stream = spool(video.storage_key, ctx.storage)
    try:
        return ctx.youtube.upload_video(
            auth,
            stream,
            video.mimetype,
            title=title,
            description=metadata.description,
            tags=metadata.tags,
            privacy=metadata.privacy,
        )
    finally:
        stream.close()


def _upload_thumbnail(ctx: PipelineContext, auth, video_id: str, thumbnail: Thumbnail) -> None:
    stream = spool(thumbnail.storage_key, ctx.storage)
    try:
        mimetype = THUMBNAIL_CONTENT_TYPES.get(thumbnail.format or "jpeg", "image/jpeg")
        ctx.youtube.set_thumbnail(auth, video_id, stream, mimetype)
    finally:
        stream.close()


async def handle(event: Event, ctx: PipelineContext) -> None:
    trace_id = event.payload.trace_id

    if not await claim_upload(ctx, trace_id, event.topic):
        logger.debug("Trace %s: upload not ready or already claimed (trigger %s)", trace_id, event.topic)
        return

    trace = ctx.trace(trace_id)
    try:
        logger.info("Trace %s: starting YouTube upload", trace_id)
        video: VideoData = require(await trace.read(VIDEO_DATA), "Video data not found in state")
        metadata: VideoMetadata = require(await trace.read(METADATA), "Metadata not found in state")
        generated_title: Optional[GeneratedTitle] = await trace.read(GENERATED_TITLE)
        thumbnail: Optional[Thumbnail] = await trace.read(THUMBNAIL)

        await trace.set_status(st.UPLOADING_TO_YOUTUBE)

        user = await asyncio.to_thread(ctx.oauth.get_first_connected_user)
        if user is None:
            raise AuthenticationError("No YouTube account connected. Please connect your account first.")
        auth = await asyncio.to_thread(ctx.oauth.get_authenticated_client, user.email)

        title = (generated_title.title if generated_title else None) or metadata.title or video.file_name
        logger.info("Trace %s: uploading %s as %r (%s)", trace_id, video.storage_key, title, metadata.privacy)
        response = await asyncio.to_thread(_upload_video, ctx, auth, video, metadata, title)

        video_id = response["id"]
        url = video_url(video_id)
        snippet = response.get("snippet") or {}

        thumbnail_uploaded = False
        if thumbnail and not thumbnail.is_placeholder and thumbnail.storage_key:
            try:
                await asyncio.to_thread(_upload_thumbnail, ctx, auth, video_id, thumbnail)
                thumbnail_uploaded = True
            except Exception as e:
                # the video is already live; a missing custom thumbnail is not fatal
                logger.warning("Trace %s: thumbnail upload failed for %s: %s", trace_id, video_id, e)

        await trace.write(
            UPLOAD_RESULT,
            UploadResult(
                video_id=video_id,
                video_url=url,
                channel_id=snippet.get("channelId"),
                channel_title=snippet.get("channelTitle"),
                published_at=snippet.get("publishedAt"),
                thumbnail_uploaded=thumbnail_uploaded,
            ),
        )
        await trace.set_status(st.COMPLETED, videoId=video_id, videoUrl=url)
        logger.info("Trace %s: published %s (thumbnail=%s)", trace_id, url, thumbnail_uploaded)

        if config.CLEANUP_AFTER_UPLOAD:
            thumbnail_key = thumbnail.storage_key if thumbnail else None
            try:
                await asyncio.to_thread(cleanup_after_upload, video.storage_key, thumbnail_key, ctx.storage)
            except Exception as e:
                logger.warning("Trace %s: storage cleanup failed: %s", trace_id, e)

        await ctx.emit(
            topics.YOUTUBE_UPLOAD_COMPLETED,
            {
                "traceId": trace_id,
                "videoId": video_id,
                "videoUrl": url,
                "title": title,
                "privacy": metadata.privacy,
                "thumbnailUploaded": thumbnail_uploaded,
            },
        )
    except Exception as e:
        message = describe_youtube_error(e)
        logger.error("Trace %s: YouTube upload failed: %s", trace_id, message, exc_info=True)
        await fail_stage(ctx, trace_id, st.UPLOAD_FAILED, topics.YOUTUBE_UPLOAD_ERROR, STEP, message)
