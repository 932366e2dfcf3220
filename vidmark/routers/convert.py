from fastapi import APIRouter, Depends, File, Form, UploadFile
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask

from vidmark.routers.deps import get_orchestrator
from vidmark.services.orchestrator import JobOrchestrator

router = APIRouter(prefix="/convert", tags=["convert"])


@router.post("")
def convert_media(
    file: UploadFile | None = File(default=None),
    source_url: str | None = Form(default=None, alias="sourceUrl"),
    output_container: str = Form(default="webm", alias="outputContainer"),
    quality_tier: str = Form(default="medium", alias="qualityTier"),
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
) -> StreamingResponse:
    try:
        media = orchestrator.stream_convert(
            upload=file.file if file is not None else None,
            file_name=file.filename if file is not None else None,
            source_url=source_url,
            output_container=output_container,
            quality_tier=quality_tier,
        )
    finally:
        if file is not None:
            file.file.close()
    return StreamingResponse(media.chunks, media_type=media.media_type, background=BackgroundTask(media.close))
