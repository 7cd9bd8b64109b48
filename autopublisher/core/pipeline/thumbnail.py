"""
Stage 3a: thumbnail image.

prompts.generated -> thumbnail.image.generated | thumbnail.image.generation.error

When the image model answers without an image, a text description is stored
as a placeholder and the stage still succeeds (hasImage: false).
"""

import asyncio
import logging
import textwrap

from autopublisher.core.events import Event
from autopublisher.core.pipeline import status as st
from autopublisher.core.pipeline import topics
from autopublisher.core.pipeline.common import fail_stage, require
from autopublisher.core.pipeline.context import PipelineContext
from autopublisher.core.pipeline.models import PromptsGenerated, Thumbnail, VideoData, VideoMetadata
from autopublisher.core.pipeline.trace import METADATA, THUMBNAIL, VIDEO_DATA
from autopublisher.core.storage import upload_thumbnail

logger = logging.getLogger(__name__)

NAME = "GenerateThumbnailImage"
SUBSCRIBES = (topics.PROMPTS_GENERATED,)
STEP = "generate-thumbnail"


def default_thumbnail_prompt(subject: str) -> str:
    return textwrap.dedent(
        f"""
        Create a vibrant, eye-catching YouTube thumbnail image for a video titled "{subject}".

        Design Requirements:
        - Bold, attention-grabbing composition
        - Bright, contrasting colors that pop
        - Clear focal point in the center
        - High contrast and saturation for visibility at small sizes
        - Suitable for 1280x720 dimensions
        """
    ).strip()


def build_image_prompt(payload: PromptsGenerated, subject: str) -> str:
    base = payload.thumbnail_prompt or default_thumbnail_prompt(subject)
    colors = ", ".join(payload.thumbnail_colors) or "bright, contrasting colors"
    overlay = (
        f'Text to include: "{payload.thumbnail_text_overlay}"'
        if payload.thumbnail_text_overlay
        else "No text overlay needed"
    )
    return "\n".join(
        [
            base,
            "",
            f"Style: {payload.thumbnail_style or 'vibrant and professional'}",
            f"Color Scheme: {colors}",
            overlay,
            "",
            "Requirements:",
            "- YouTube thumbnail dimensions (1280x720 aspect ratio)",
            "- Bold, eye-catching design",
            "- High contrast for visibility at small sizes",
        ]
    )


async def handle(event: Event, ctx: PipelineContext) -> None:
    payload: PromptsGenerated = event.payload
    trace_id = payload.trace_id
    trace = ctx.trace(trace_id)

    try:
        video: VideoData = require(await trace.read(VIDEO_DATA), "Video data or metadata not found in state")
        metadata: VideoMetadata = require(await trace.read(METADATA), "Video data or metadata not found in state")
        await trace.set_status(st.GENERATING_THUMBNAIL)

        subject = metadata.title or payload.title or video.file_name
        gemini = ctx.get_gemini()
        image = await asyncio.to_thread(gemini.generate_image, build_image_prompt(payload, subject))

        if image is None:
            logger.warning("Trace %s: no image returned, storing a description placeholder", trace_id)
            description = await asyncio.to_thread(
                gemini.generate_text,
                f'Describe a YouTube thumbnail for: "{subject}". '
                "Include colors, layout, and visual elements. Keep it brief.",
            )
            await trace.write(THUMBNAIL, Thumbnail(description=description, is_placeholder=True))
            await trace.set_status(st.THUMBNAIL_DESCRIPTION_GENERATED)
            await ctx.emit(
                topics.THUMBNAIL_GENERATED,
                {
                    "traceId": trace_id,
                    "thumbnailStorageKey": None,
                    "thumbnailUrl": None,
                    "hasImage": False,
                    "description": description,
                },
            )
            return

        stored = await asyncio.to_thread(upload_thumbnail, image.data, image.format, ctx.storage)
        await trace.write(
            THUMBNAIL,
            Thumbnail(
                storage_key=stored["storageKey"],
                url=stored["url"],
                format=image.format,
                size=len(image.data),
                is_placeholder=False,
            ),
        )
        await trace.set_status(st.THUMBNAIL_GENERATED)
        logger.info("Trace %s: thumbnail stored as %s", trace_id, stored["storageKey"])

        await ctx.emit(
            topics.THUMBNAIL_GENERATED,
            {
                "traceId": trace_id,
                "thumbnailStorageKey": stored["storageKey"],
                "thumbnailUrl": stored["url"],
                "hasImage": True,
            },
        )
    except Exception as e:
        logger.error("Trace %s: thumbnail generation failed: %s", trace_id, e, exc_info=True)
        await fail_stage(
            ctx, trace_id, st.THUMBNAIL_GENERATION_FAILED, topics.THUMBNAIL_GENERATION_ERROR, STEP, str(e)
        )
