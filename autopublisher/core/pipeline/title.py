"""
Stage 3b: final title.

prompts.generated -> final.title.generated | final.title.generation.error

A user-provided title with autoGenerateTitle off is published unchanged.
"""

import asyncio
import logging
import textwrap
from typing import Any, Dict, List

from autopublisher.core.events import Event
from autopublisher.core.exceptions import ResponseParseError
from autopublisher.core.pipeline import status as st
from autopublisher.core.pipeline import topics
from autopublisher.core.pipeline.common import fail_stage, require
from autopublisher.core.pipeline.context import PipelineContext
from autopublisher.core.pipeline.models import (
    GeneratedTitle,
    PromptSet,
    PromptsGenerated,
    VideoData,
    VideoMetadata,
)
from autopublisher.core.pipeline.trace import GENERATED_TITLE, METADATA, PROMPTS, VIDEO_DATA

logger = logging.getLogger(__name__)

NAME = "GenerateFinalTitle"
SUBSCRIBES = (topics.PROMPTS_GENERATED,)
STEP = "generate-title"

SYSTEM_INSTRUCTION = (
    "You are a YouTube SEO and viral content expert. Generate optimized titles that maximize "
    "click-through rates while maintaining authenticity. Always respond with valid JSON."
)


def build_prompt(previous_title: str, description: str, tags: List[str], video: VideoData, metadata: VideoMetadata) -> str:
    return textwrap.dedent(
        f"""
        Analyze the previously generated content and create 5 improved, modern, engaging YouTube titles.

        PREVIOUSLY GENERATED CONTENT:
        - Initial Title: {previous_title}
        - Description: {description}
        - Tags: {", ".join(tags)}

        VIDEO CONTEXT:
        - File Name: {video.file_name}
        - User Provided Title: {metadata.title or "Not provided"}

        First, analyze the previous title for strengths, weaknesses, SEO opportunities
        and emotional appeal. Then write titles that:
        - Keep under 60 characters
        - Front-load important keywords
        - Create curiosity without being clickbait
        - Cover these styles: How To, List/Number, Question, Bold Statement, Curiosity Gap

        Respond in JSON format only:
        {{
          "previousTitleAnalysis": {{
            "strengths": ["..."],
            "weaknesses": ["..."],
            "seoScore": "1-10",
            "emotionalAppeal": "Low/Medium/High"
          }},
          "titles": [
            {{"title": "...", "style": "...", "reasoning": "...", "estimatedCTR": "High / Medium"}}
          ],
          "recommended": 0,
          "recommendedReason": "..."
        }}
        """
    ).strip()


def pick_title(response: Dict[str, Any]) -> GeneratedTitle:
    """
    Choose the recommended candidate, falling back to the first one.

    Raises:
        ResponseParseError: If the response carries no usable title
    """
    titles = [t for t in response.get("titles") or [] if isinstance(t, dict)]
    index = response.get("recommended") or 0
    if not isinstance(index, int) or not 0 <= index < len(titles):
        index = 0
    chosen = titles[index].get("title") if titles else None
    if not chosen and titles:
        chosen = titles[0].get("title")
    if not chosen:
        raise ResponseParseError("No titles generated")
    return GeneratedTitle(
        title=chosen,
        is_generated=True,
        previous_title_analysis=response.get("previousTitleAnalysis"),
        all_titles=titles,
        recommended_index=index,
        recommended_reason=response.get("recommendedReason"),
    )


async def handle(event: Event, ctx: PipelineContext) -> None:
    payload: PromptsGenerated = event.payload
    trace_id = payload.trace_id
    trace = ctx.trace(trace_id)

    try:
        video: VideoData = require(await trace.read(VIDEO_DATA), "Video data or metadata not found in state")
        metadata: VideoMetadata = require(await trace.read(METADATA), "Video data or metadata not found in state")

        if not metadata.auto_generate_title and metadata.title:
            logger.info("Trace %s: using user-provided title", trace_id)
            await trace.write(GENERATED_TITLE, GeneratedTitle(title=metadata.title, is_generated=False))
            await trace.set_status(st.TITLE_GENERATED)
            await ctx.emit(topics.TITLE_GENERATED, {"traceId": trace_id, "title": metadata.title})
            return

        await trace.set_status(st.GENERATING_TITLE)

        prompts: PromptSet = await trace.read(PROMPTS)
        previous_title = payload.title or (prompts.title if prompts else "")
        description = payload.description or metadata.description
        tags = payload.tags or metadata.tags

        gemini = ctx.get_gemini()
        response = await asyncio.to_thread(
            gemini.generate_json,
            build_prompt(previous_title, description, tags, video, metadata),
            SYSTEM_INSTRUCTION,
        )
        generated = pick_title(response).model_copy(update={"previous_title": previous_title})

        await trace.write(GENERATED_TITLE, generated)
        await trace.update(METADATA, lambda current: (current or metadata).model_copy(update={"title": generated.title}))
        await trace.set_status(st.TITLE_GENERATED)
        logger.info("Trace %s: title generated: %s", trace_id, generated.title)

        await ctx.emit(
            topics.TITLE_GENERATED,
            {
                "traceId": trace_id,
                "title": generated.title,
                "previousTitle": previous_title,
                "allTitles": [t.get("title") for t in generated.all_titles if t.get("title")],
                "analysis": generated.previous_title_analysis,
            },
        )
    except Exception as e:
        logger.error("Trace %s: title generation failed: %s", trace_id, e, exc_info=True)
        await fail_stage(ctx, trace_id, st.TITLE_GENERATION_FAILED, topics.TITLE_GENERATION_ERROR, STEP, str(e))
