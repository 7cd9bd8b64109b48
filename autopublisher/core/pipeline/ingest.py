"""
Stage 1: move a detected video file into object storage.

file.new.detected -> file.uploaded | file.upload.error
"""

import asyncio
import logging
from pathlib import Path
from typing import Any, Dict, Tuple

from autopublisher.core.events import Event
from autopublisher.core.pipeline import status as st
from autopublisher.core.pipeline import topics
from autopublisher.core.pipeline.common import fail_stage
from autopublisher.core.pipeline.context import PipelineContext
from autopublisher.core.pipeline.models import FileDetected, VideoData, VideoMetadata
from autopublisher.core.pipeline.trace import METADATA, VIDEO_DATA
from autopublisher.core.storage import upload_video
from autopublisher.core.utils import VIDEO_CONTENT_TYPES, format_file_size, generate_trace_id

logger = logging.getLogger(__name__)

NAME = "ProcessFile"
SUBSCRIBES = (topics.FILE_NEW_DETECTED,)
STEP = "upload-file"


def _store_file(ctx: PipelineContext, payload: FileDetected) -> Tuple[Dict[str, Any], int]:
    path = Path(payload.file_path)
    size = path.stat().st_size
    with open(path, "rb") as fh:
        stored = upload_video(fh, payload.file_name, ctx.storage)
    return stored, size


async def handle(event: Event, ctx: PipelineContext) -> None:
    payload: FileDetected = event.payload
    trace_id = payload.trace_id or generate_trace_id()
    trace = ctx.trace(trace_id)

    try:
        logger.info("Trace %s: ingesting %s", trace_id, payload.file_path)
        await trace.set_status(st.UPLOADING)

        stored, size = await asyncio.to_thread(_store_file, ctx, payload)
        video_data = VideoData(
            file_name=payload.file_name,
            original_filename=payload.file_name,
            file_path=payload.file_path,
            storage_key=stored["storageKey"],
            url=stored["url"],
            format=stored["format"],
            mimetype=VIDEO_CONTENT_TYPES.get(stored["format"], "video/mp4"),
            file_size=size,
        )
        await trace.write(VIDEO_DATA, video_data)
        await trace.write(METADATA, payload.metadata or VideoMetadata())
        await trace.set_status(st.UPLOADED)
        logger.info(
            "Trace %s: stored %s (%s) as %s",
            trace_id,
            payload.file_name,
            format_file_size(size),
            video_data.storage_key,
        )

        if payload.delete_source:
            try:
                Path(payload.file_path).unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Trace %s: could not remove source %s: %s", trace_id, payload.file_path, e)

        await ctx.emit(
            topics.FILE_UPLOADED,
            {"traceId": trace_id, "storageKey": video_data.storage_key, "fileName": payload.file_name},
        )
    except Exception as e:
        logger.error("Trace %s: file upload failed: %s", trace_id, e, exc_info=True)
        await fail_stage(
            ctx,
            trace_id,
            st.FILE_UPLOAD_FAILED,
            topics.FILE_UPLOAD_ERROR,
            STEP,
            str(e),
            fileName=payload.file_name,
        )
