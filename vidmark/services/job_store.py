import logging
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vidmark.core.errors import DatabaseError, InvalidParameters, JobConflict, NotFound
from vidmark.models.common import utcnow
from vidmark.models.job import Job, JobStatus

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 20
MAX_LIST_LIMIT = 100

FORWARD_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.UPLOADED: {JobStatus.PENDING, JobStatus.QUEUED, JobStatus.PROCESSING},
    JobStatus.PENDING: {JobStatus.QUEUED, JobStatus.PROCESSING},
    JobStatus.QUEUED: {JobStatus.PROCESSING, JobStatus.FAILED},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

OPTION_FIELDS = {"watermark_selector", "position", "opacity", "scale", "output_container", "quality_tier", "task_id"}


def allowed_sources(target: JobStatus) -> list[str]:
    if target is JobStatus.PENDING:
        # manual reset may move a job back from any state
        return [status.value for status in JobStatus]
    return [source.value for source, targets in FORWARD_TRANSITIONS.items() if target in targets]


def clamp_limit(limit: int | None) -> int:
    if limit is None:
        return DEFAULT_LIST_LIMIT
    return max(1, min(int(limit), MAX_LIST_LIMIT))


class JobStore:
    def __init__(self, db: Session) -> None:
        self.db = db

    def create(self, source_url: str, status: JobStatus = JobStatus.UPLOADED) -> int:
        if not source_url:
            raise InvalidParameters("sourceUrl is required")
        if status not in (JobStatus.UPLOADED, JobStatus.PENDING):
            raise InvalidParameters(f"Jobs cannot be created in status {status.value}")
        job = Job(source_url=source_url, status=status.value)
        self.db.add(job)
        self._commit()
        self.db.refresh(job)
        logger.info("job_created", extra={"job_id": job.id})
        return job.id

    def get_by_id(self, job_id: int) -> Job:
        try:
            job = self.db.scalar(select(Job).where(Job.id == job_id))
        except SQLAlchemyError as exc:
            raise DatabaseError(str(exc)) from exc
        if not job:
            raise NotFound(f"Job {job_id} not found")
        return job

    def list_recent(self, limit: int | None = DEFAULT_LIST_LIMIT) -> list[Job]:
        stmt = select(Job).order_by(Job.created_at.desc(), Job.id.desc()).limit(clamp_limit(limit))
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as exc:
            raise DatabaseError(str(exc)) from exc

    def update_status(self, job_id: int, status: JobStatus, fields: dict[str, Any] | None = None) -> Job:
        fields = dict(fields or {})
        values: dict[str, Any] = {"status": status.value, "updated_at": utcnow()}

        if status is JobStatus.FAILED:
            if not fields.get("error_message"):
                raise InvalidParameters("errorMessage is required when marking a job failed")
            values.update(error_message=fields.pop("error_message"), result_url=None)
        elif status is JobStatus.COMPLETED:
            if not fields.get("result_url"):
                raise InvalidParameters("resultUrl is required when marking a job completed")
            values.update(result_url=fields.pop("result_url"), error_message=None)
        else:
            values.update(error_message=None, result_url=None)

        unknown = set(fields) - OPTION_FIELDS
        if unknown:
            raise InvalidParameters(f"Unknown job fields: {', '.join(sorted(unknown))}")
        values.update(fields)

        stmt = (
            update(Job)
            .where(Job.id == job_id, Job.status.in_(allowed_sources(status)))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self.db.execute(stmt)
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DatabaseError(str(exc)) from exc
        self._commit()

        if result.rowcount == 0:
            current = self.get_by_id(job_id)
            raise JobConflict(f"Job {job_id} is {current.status}; cannot move to {status.value}")
        logger.info("job_status_changed", extra={"job_id": job_id, "status": status.value})
        return self.get_by_id(job_id)

    def queue(self, job_id: int, options: dict[str, Any]) -> Job:
        return self.update_status(job_id, JobStatus.QUEUED, options)

    def claim(self, job_id: int) -> Job:
        return self.update_status(job_id, JobStatus.PROCESSING)

    def complete(self, job_id: int, result_url: str) -> Job:
        return self.update_status(job_id, JobStatus.COMPLETED, {"result_url": result_url})

    def fail(self, job_id: int, error_message: str) -> Job:
        return self.update_status(job_id, JobStatus.FAILED, {"error_message": error_message})

    def reset(self, job_id: int) -> Job:
        return self.update_status(job_id, JobStatus.PENDING)

    def _commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise DatabaseError(str(exc)) from exc
