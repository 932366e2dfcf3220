import dataclasses

import pytest

from vidmark.core.errors import DispatchError
from vidmark.db.base import Base
from vidmark.db.session import build_engine, build_session_factory
from vidmark.main import create_app
from vidmark.services.job_store import JobStore
from vidmark.services.orchestrator import WatermarkOptions
from vidmark.workers.tasks import enqueue_watermark_job, process_watermark_job

SOURCE_URL = "https://store/videos/a.mp4"


@pytest.fixture()
def other_container(container, tmp_path):
    settings = container.settings.model_copy(update={"database_url": f"sqlite:///{tmp_path / 'other.db'}"})
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    yield dataclasses.replace(
        container,
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
    )
    engine.dispose()


def _queued(container, task_id):
    with container.session_factory() as db:
        job_id = JobStore(db).create(SOURCE_URL)
    container.orchestrator().request_processing(job_id, WatermarkOptions(watermark_selector="kling"), task_id=task_id)
    return job_id


def _status(container, job_id):
    with container.session_factory() as db:
        return JobStore(db).get_by_id(job_id)


def test_inline_run_uses_the_given_container(container, other_container):
    create_app(container=container)
    create_app(container=other_container)

    job_id = _queued(container, "task-1")
    enqueue_watermark_job(container, job_id, "task-1")

    assert _status(container, job_id).status == "completed"


def test_broker_failure_marks_job_failed(container, monkeypatch):
    worker_mode = dataclasses.replace(
        container,
        settings=container.settings.model_copy(update={"celery_task_always_eager": False}),
    )

    def _broker_down(*args, **kwargs):
        raise ConnectionRefusedError("Connection refused")

    monkeypatch.setattr(process_watermark_job, "apply_async", _broker_down)
    job_id = _queued(worker_mode, "task-2")

    with pytest.raises(DispatchError) as excinfo:
        enqueue_watermark_job(worker_mode, job_id, "task-2")

    job = _status(worker_mode, job_id)
    assert job.status == "failed"
    assert job.error_message == excinfo.value.message
    assert excinfo.value.status_code == 500
