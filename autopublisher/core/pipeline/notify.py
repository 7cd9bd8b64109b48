"""
Stage 5: confirmation email to the connected account.

youtube.upload.completed -> (nothing) | pipeline.error
"""

import asyncio
import logging
from typing import Optional

from autopublisher.core.events import Event
from autopublisher.core.mailer import build_confirmation_email
from autopublisher.core.pipeline import topics
from autopublisher.core.pipeline.context import PipelineContext
from autopublisher.core.pipeline.models import EmailNotification, UploadCompleted, UploadResult
from autopublisher.core.pipeline.trace import EMAIL_NOTIFICATION, UPLOAD_RESULT
from autopublisher.core.utils import utc_now_iso

logger = logging.getLogger(__name__)

NAME = "SendCompletionEmail"
SUBSCRIBES = (topics.YOUTUBE_UPLOAD_COMPLETED,)
STEP = "send-email"


async def handle(event: Event, ctx: PipelineContext) -> None:
    payload: UploadCompleted = event.payload
    trace_id = payload.trace_id
    trace = ctx.trace(trace_id)

    try:
        user = await asyncio.to_thread(ctx.oauth.get_first_connected_user)
        if user is None:
            logger.warning("Trace %s: no connected YouTube user, skipping email notification", trace_id)
            return
        if not ctx.mailer.is_configured():
            logger.warning("Trace %s: Brevo not configured, skipping email notification", trace_id)
            return

        upload_result: Optional[UploadResult] = await trace.read(UPLOAD_RESULT)
        message = build_confirmation_email(
            title=payload.title,
            video_url=payload.video_url,
            video_id=payload.video_id,
            privacy=payload.privacy,
            thumbnail_uploaded=payload.thumbnail_uploaded,
            channel_title=upload_result.channel_title if upload_result else None,
            uploaded_at=upload_result.uploaded_at if upload_result else None,
        )
        await ctx.mailer.send(user.email, message)
        await trace.write(EMAIL_NOTIFICATION, EmailNotification(sent=True, to=user.email, sent_at=utc_now_iso()))
        logger.info("Trace %s: confirmation email sent to %s", trace_id, user.email)
    except Exception as e:
        logger.error("Trace %s: confirmation email failed: %s", trace_id, e, exc_info=True)
        try:
            await trace.write(
                EMAIL_NOTIFICATION,
                EmailNotification(sent=False, error=str(e), failed_at=utc_now_iso()),
            )
        except Exception:
            logger.exception("Trace %s: could not record email failure", trace_id)
        await ctx.emit(
            topics.PIPELINE_ERROR,
            {"traceId": trace_id, "step": STEP, "error": str(e), "videoId": payload.video_id},
        )
