import asyncio
import logging
import shutil
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from pydantic import ValidationError as PydanticValidationError

from autopublisher import config
from autopublisher.core.pipeline import PipelineContext, topics
from autopublisher.core.pipeline.models import VideoMetadata
from autopublisher.core.utils import generate_trace_id, is_valid_video_format
from autopublisher.routers.deps import get_pipeline
from autopublisher.schemas import TraceStateResponse, UploadAcceptedResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Pipeline"])


def _stage_upload(upload: UploadFile, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    with open(destination, "wb") as out:
        shutil.copyfileobj(upload.file, out)


@router.post("/videos", status_code=status.HTTP_202_ACCEPTED, response_model=UploadAcceptedResponse)
async def submit_video(
    file: UploadFile = File(...),
    title: Optional[str] = Form(None),
    description: str = Form(""),
    tags: str = Form(""),
    privacy: Optional[str] = Form(None),
    auto_generate_title: bool = Form(True, alias="autoGenerateTitle"),
    ctx: PipelineContext = Depends(get_pipeline),
) -> UploadAcceptedResponse:
    """Start a pipeline run for an uploaded video."""
    file_name = Path(file.filename or "").name
    if not file_name or not is_valid_video_format(file_name):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid video format: {file_name}")

    try:
        metadata = VideoMetadata(
            title=title or None,
            description=description,
            tags=tags,
            privacy=privacy or config.DEFAULT_PRIVACY,
            auto_generate_title=auto_generate_title,
        )
    except PydanticValidationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=e.errors()[0].get("msg", "Invalid metadata"))

    trace_id = generate_trace_id()
    staged = config.STAGING_DIR / f"{trace_id}_{file_name}"
    try:
        await asyncio.to_thread(_stage_upload, file, staged)
    finally:
        await file.close()

    await ctx.emit(
        topics.FILE_NEW_DETECTED,
        {
            "traceId": trace_id,
            "fileName": file_name,
            "filePath": str(staged),
            "metadata": metadata.to_state(),
            "deleteSource": True,
        },
    )
    logger.info("Trace %s: accepted upload %s", trace_id, file_name)
    return UploadAcceptedResponse(trace_id=trace_id)


@router.get("/traces/{trace_id}", response_model=TraceStateResponse)
async def get_trace(trace_id: str, ctx: PipelineContext = Depends(get_pipeline)) -> TraceStateResponse:
    # other scopes (fileWatcher, oauth-state:*) share the store
    state = await ctx.trace(trace_id).snapshot() if trace_id.startswith("trace_") else {}
    if not state:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trace not found")
    return TraceStateResponse(trace_id=trace_id, state=state)
