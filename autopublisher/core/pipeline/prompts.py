"""
Stage 2: starting metadata and thumbnail brief from Gemini.

file.uploaded -> prompts.generated | prompts.generation.error
"""

import asyncio
import logging
import textwrap

from autopublisher.core.events import Event
from autopublisher.core.exceptions import ResponseParseError
from autopublisher.core.pipeline import status as st
from autopublisher.core.pipeline import topics
from autopublisher.core.pipeline.common import fail_stage, require
from autopublisher.core.pipeline.context import PipelineContext
from autopublisher.core.pipeline.models import FileUploaded, PromptSet, VideoData, VideoMetadata
from autopublisher.core.pipeline.trace import METADATA, PROMPTS, VIDEO_DATA

logger = logging.getLogger(__name__)

NAME = "GeneratePrompts"
SUBSCRIBES = (topics.FILE_UPLOADED,)
STEP = "generate-prompts"

SYSTEM_INSTRUCTION = (
    "You are a YouTube content strategist. You write search-friendly metadata and "
    "briefs for thumbnail designers. Always respond with valid JSON."
)


def build_prompt(video: VideoData, metadata: VideoMetadata) -> str:
    return textwrap.dedent(
        f"""
        Create starting YouTube metadata and a thumbnail brief for an uploaded video.

        VIDEO CONTEXT:
        - File Name: {video.file_name}
        - User Provided Title: {metadata.title or "Not provided"}
        - User Provided Description: {metadata.description or "Not provided"}
        - User Provided Tags: {", ".join(metadata.tags) or "Not provided"}

        Respond in JSON format only:
        {{
          "title": "Engaging title under 60 characters",
          "description": "2-3 paragraph description with a call to action",
          "tags": ["tag1", "tag2"],
          "thumbnailPrompt": "Detailed image generation prompt for the thumbnail",
          "thumbnailStyle": "Visual style of the thumbnail",
          "thumbnailColors": ["#FF0000", "#FFFFFF"],
          "thumbnailTextOverlay": "Short text for the thumbnail, or empty"
        }}
        """
    ).strip()


async def handle(event: Event, ctx: PipelineContext) -> None:
    payload: FileUploaded = event.payload
    trace_id = payload.trace_id
    trace = ctx.trace(trace_id)

    try:
        video: VideoData = require(await trace.read(VIDEO_DATA), "Video data not found in state")
        metadata: VideoMetadata = require(await trace.read(METADATA), "Metadata not found in state")
        await trace.set_status(st.GENERATING_PROMPTS)

        gemini = ctx.get_gemini()
        raw = await asyncio.to_thread(gemini.generate_json, build_prompt(video, metadata), SYSTEM_INSTRUCTION)
        try:
            prompts = PromptSet.from_state(raw)
        except ValueError as e:
            raise ResponseParseError(f"Failed to parse prompts response from AI: {e}") from e

        await trace.write(PROMPTS, prompts)

        def _fill(current: VideoMetadata) -> VideoMetadata:
            current = current or metadata
            updates = {}
            if not current.description:
                updates["description"] = prompts.description
            if not current.tags:
                updates["tags"] = list(prompts.tags)
            return current.model_copy(update=updates)

        await trace.update(METADATA, _fill)
        await trace.set_status(st.PROMPTS_GENERATED)
        logger.info("Trace %s: prompts generated (title=%s)", trace_id, prompts.title)

        data = prompts.to_state()
        data.pop("generatedAt", None)
        await ctx.emit(topics.PROMPTS_GENERATED, {"traceId": trace_id, **data})
    except Exception as e:
        logger.error("Trace %s: prompt generation failed: %s", trace_id, e, exc_info=True)
        await fail_stage(ctx, trace_id, st.PROMPTS_GENERATION_FAILED, topics.PROMPTS_GENERATION_ERROR, STEP, str(e))
