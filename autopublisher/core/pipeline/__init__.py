"""
Publishing pipeline: stage handlers wired to the event bus.

    file.new.detected -> ingest -> file.uploaded -> prompts -> prompts.generated
        -> thumbnail ∥ title -> publish (join) -> youtube.upload.completed -> notify

Every *.error topic (and pipeline.error) feeds the error aggregator.
"""

import functools
import logging

from autopublisher.core.pipeline import (
    error_handler,
    ingest,
    notify,
    prompts,
    publish,
    thumbnail,
    title,
)
from autopublisher.core.pipeline.context import PipelineContext, build_pipeline_context

logger = logging.getLogger(__name__)

STAGES = (ingest, prompts, thumbnail, title, publish, notify, error_handler)


def register_pipeline(ctx: PipelineContext) -> None:
    for stage in STAGES:
        handler = functools.partial(stage.handle, ctx=ctx)
        for topic in stage.SUBSCRIBES:
            ctx.bus.subscribe(topic, handler, name=stage.NAME)
    logger.info("Registered %d pipeline stages", len(STAGES))


__all__ = [
    "PipelineContext",
    "STAGES",
    "build_pipeline_context",
    "register_pipeline",
]
