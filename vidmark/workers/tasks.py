import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

from celery import Task
from celery.signals import worker_process_init, worker_process_shutdown

from vidmark.core.config import get_settings
from vidmark.core.container import Container, build_container
from vidmark.core.errors import DispatchError
from vidmark.services.scratch import run_scratch_cleanup
from vidmark.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

# Set per worker process; inline runs scope the caller's container instead.
_worker_container: Container | None = None
_inline_container: ContextVar[Container | None] = ContextVar("vidmark_inline_container", default=None)


def get_container() -> Container:
    global _worker_container
    container = _inline_container.get()
    if container is not None:
        return container
    if _worker_container is None:
        _worker_container = build_container(get_settings())
    return _worker_container


@contextmanager
def running_with(container: Container) -> Iterator[None]:
    token = _inline_container.set(container)
    try:
        yield
    finally:
        _inline_container.reset(token)


@worker_process_init.connect
def _init_worker_container(**_: object) -> None:
    global _worker_container
    _worker_container = build_container(get_settings())


@worker_process_shutdown.connect
def _dispose_worker_container(**_: object) -> None:
    if _worker_container is not None:
        _worker_container.dispose()


class WatermarkTask(Task):
    def on_failure(self, exc, task_id, args, kwargs, einfo) -> None:
        job_id = args[0] if args else kwargs.get("job_id")
        if job_id is None:
            return
        logger.error("watermark_task_failed", extra={"job_id": job_id, "task_id": task_id, "error": str(exc)})
        get_container().orchestrator().record_abandoned(job_id, exc)


@celery_app.task(base=WatermarkTask, name="vidmark.process_watermark_job")
def process_watermark_job(job_id: int) -> dict:
    job = get_container().orchestrator().process_watermark(job_id)
    return {"job_id": job.id, "status": job.status, "result_url": job.result_url}


def enqueue_watermark_job(container: Container, job_id: int, task_id: str) -> None:
    try:
        if container.settings.celery_task_always_eager:
            with running_with(container):
                process_watermark_job.apply(args=[job_id], task_id=task_id)
        else:
            process_watermark_job.apply_async(args=[job_id], task_id=task_id)
    except Exception as exc:
        error = DispatchError(f"Failed to dispatch job {job_id}: {exc}")
        logger.error("watermark_dispatch_failed", extra={"job_id": job_id, "task_id": task_id, "error": str(exc)})
        container.orchestrator().record_abandoned(job_id, error)
        raise error from exc


@celery_app.task(name="vidmark.sweep_scratch")
def sweep_scratch_job() -> int:
    settings = get_container().settings
    return run_scratch_cleanup(settings.scratch_dir, settings.scratch_max_age_hours)
