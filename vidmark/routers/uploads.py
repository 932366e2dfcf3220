from fastapi import APIRouter, Depends, File, UploadFile, status

from vidmark.core.container import Container
from vidmark.core.errors import InvalidParameters
from vidmark.models.job import JobStatus
from vidmark.routers.deps import get_container, get_job_store
from vidmark.schemas.job import JobCreateResponse
from vidmark.schemas.upload import PresignRequest, PresignResponse
from vidmark.services.job_store import JobStore

router = APIRouter(prefix="/uploads", tags=["uploads"])


@router.post("/presign", response_model=PresignResponse)
def presign_upload(payload: PresignRequest, container: Container = Depends(get_container)) -> PresignResponse:
    presigned = container.storage.issue_presigned_upload_url(payload.file_name, payload.content_type)
    return PresignResponse(upload_url=presigned.upload_url, public_url=presigned.public_url, key=presigned.key)


@router.post("", response_model=JobCreateResponse, status_code=status.HTTP_201_CREATED)
def create_upload(
    file: UploadFile = File(...),
    container: Container = Depends(get_container),
    store: JobStore = Depends(get_job_store),
) -> JobCreateResponse:
    content_type = file.content_type or ""
    if not content_type.startswith("video/"):
        raise InvalidParameters("Invalid file type. Only video files are allowed.")
    max_bytes = container.settings.max_upload_size_mb * 1024 * 1024
    if file.size is not None and file.size > max_bytes:
        raise InvalidParameters(f"File size too large. Maximum size is {container.settings.max_upload_size_mb}MB.")

    try:
        _, public_url = container.storage.put_stream(file.file, file.filename or "upload", content_type)
    finally:
        file.file.close()
    job_id = store.create(public_url, JobStatus.UPLOADED)
    return JobCreateResponse(id=job_id, source_url=public_url)
