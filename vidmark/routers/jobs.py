import uuid

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from vidmark.core.container import Container
from vidmark.models.job import JobStatus
from vidmark.routers.deps import get_container, get_job_store, get_orchestrator
from vidmark.schemas.job import (
    JobCreateRequest,
    JobCreateResponse,
    JobListResponse,
    JobRead,
    JobStatusResponse,
    ResetResponse,
    WatermarkAcceptedResponse,
    WatermarkRequest,
    WatermarkResultResponse,
)
from vidmark.services.job_store import DEFAULT_LIST_LIMIT, JobStore
from vidmark.services.orchestrator import JobOrchestrator, WatermarkOptions
from vidmark.workers.tasks import enqueue_watermark_job

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", response_model=JobCreateResponse, status_code=status.HTTP_201_CREATED)
def register_job(payload: JobCreateRequest, store: JobStore = Depends(get_job_store)) -> JobCreateResponse:
    job_id = store.create(payload.source_url, JobStatus.UPLOADED)
    return JobCreateResponse(id=job_id, source_url=payload.source_url)


@router.get("", response_model=JobListResponse)
def list_jobs(limit: int = Query(default=DEFAULT_LIST_LIMIT), store: JobStore = Depends(get_job_store)) -> JobListResponse:
    jobs = store.list_recent(limit)
    return JobListResponse(items=[JobRead.model_validate(job) for job in jobs])


@router.get("/{job_id}", response_model=JobStatusResponse)
def get_job(job_id: int, store: JobStore = Depends(get_job_store)) -> JobStatusResponse:
    return JobStatusResponse.model_validate(store.get_by_id(job_id))


@router.post("/{job_id}/watermark")
def watermark_job(
    job_id: int,
    payload: WatermarkRequest,
    orchestrator: JobOrchestrator = Depends(get_orchestrator),
    container: Container = Depends(get_container),
):
    options = WatermarkOptions(
        watermark_selector=payload.watermark_selector,
        position=payload.position,
        opacity=payload.opacity,
        scale=payload.scale,
        output_container=payload.output_container,
        quality_tier=payload.quality_tier,
    )

    if payload.mode == "stream":
        media = orchestrator.stream_watermark(job_id, options)
        return StreamingResponse(media.chunks, media_type=media.media_type, background=BackgroundTask(media.close))

    if payload.mode == "sync":
        orchestrator.request_processing(job_id, options)
        job = orchestrator.process_watermark(job_id)
        return WatermarkResultResponse(id=job.id, status=job.status, result_url=job.result_url)

    task_id = str(uuid.uuid4())
    orchestrator.request_processing(job_id, options, task_id=task_id)
    enqueue_watermark_job(container, job_id, task_id)
    accepted = WatermarkAcceptedResponse(id=job_id, task_id=task_id)
    return JSONResponse(status_code=status.HTTP_202_ACCEPTED, content=accepted.model_dump(by_alias=True))


@router.post("/{job_id}/reset", response_model=ResetResponse)
def reset_job(job_id: int, orchestrator: JobOrchestrator = Depends(get_orchestrator)) -> ResetResponse:
    job = orchestrator.reset(job_id)
    return ResetResponse(id=job.id, status=job.status)
