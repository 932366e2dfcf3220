import logging
import shutil
import uuid
from collections.abc import Callable, Iterator
from contextlib import ExitStack
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import BinaryIO

from sqlalchemy.orm import Session

from vidmark.core.errors import InvalidParameters, JobConflict, NotFound, VidmarkError
from vidmark.models.job import Job, JobStatus
from vidmark.services.commands import (
    CommandParams,
    Operation,
    build_args,
    content_type_for,
    normalize_container,
    normalize_position,
    normalize_quality,
)
from vidmark.services.job_store import JobStore
from vidmark.services.runner import ProcessRunner
from vidmark.services.storage import StorageGateway, sanitize_file_name
from vidmark.services.watermarks import WatermarkCatalog, resolve_scale

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class WatermarkOptions:
    watermark_selector: str
    position: str = "bottom-right"
    opacity: float = 0.8
    scale: float | str = 0.1
    output_container: str = "mp4"
    quality_tier: str = "medium"

    @classmethod
    def from_job(cls, job: Job) -> "WatermarkOptions":
        if not job.watermark_selector:
            raise InvalidParameters(f"Job {job.id} has no watermark selection")
        return cls(
            watermark_selector=job.watermark_selector,
            position=job.position or "bottom-right",
            opacity=job.opacity if job.opacity is not None else 0.8,
            scale=job.scale if job.scale is not None else 0.1,
            output_container=job.output_container or "mp4",
            quality_tier=job.quality_tier or "medium",
        )


@dataclass(slots=True)
class MediaStream:
    chunks: Iterator[bytes]
    media_type: str
    close: Callable[[], None]


def failure_message(exc: BaseException) -> str:
    if isinstance(exc, VidmarkError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class JobOrchestrator:
    def __init__(
        self,
        session_factory: Callable[[], Session],
        storage: StorageGateway,
        runner: ProcessRunner,
        catalog: WatermarkCatalog,
        *,
        ffmpeg_path: str = "ffmpeg",
        result_key_prefix: str = "videos/watermarked",
    ) -> None:
        self.session_factory = session_factory
        self.storage = storage
        self.runner = runner
        self.catalog = catalog
        self.ffmpeg_path = ffmpeg_path
        self.result_key_prefix = result_key_prefix.strip("/")

    def normalize_options(self, options: WatermarkOptions) -> WatermarkOptions:
        scale = resolve_scale(options.scale)
        if not 0.0 < scale <= 1.0:
            raise InvalidParameters("scale must be greater than 0 and at most 1")
        if not 0.0 <= options.opacity <= 1.0:
            raise InvalidParameters("opacity must be between 0 and 1")
        return WatermarkOptions(
            watermark_selector=self.catalog.normalize(options.watermark_selector),
            position=normalize_position(options.position).value,
            opacity=float(options.opacity),
            scale=scale,
            output_container=normalize_container(options.output_container).value,
            quality_tier=normalize_quality(options.quality_tier).value,
        )

    def request_processing(self, job_id: int, options: WatermarkOptions, task_id: str | None = None) -> Job:
        fields = asdict(self.normalize_options(options))
        if task_id:
            fields["task_id"] = task_id
        with self.session_factory() as db:
            return JobStore(db).queue(job_id, fields)

    def process_watermark(self, job_id: int) -> Job:
        with self.session_factory() as db:
            store = JobStore(db)
            job = store.claim(job_id)
            logger.info("job_processing", extra={"job_id": job_id})
            try:
                options = WatermarkOptions.from_job(job)
                result_url = self._watermark_pipeline(job_id, job.source_url, options)
                completed = store.complete(job_id, result_url)
            except Exception as exc:
                self._record_failure(store, job_id, exc)
                raise
            logger.info("job_completed", extra={"job_id": job_id, "result_url": result_url})
            return completed

    def reset(self, job_id: int) -> Job:
        with self.session_factory() as db:
            job = JobStore(db).reset(job_id)
        logger.info("job_reset", extra={"job_id": job_id})
        return job

    def record_abandoned(self, job_id: int, exc: BaseException) -> None:
        if isinstance(exc, (JobConflict, NotFound)):
            return
        with self.session_factory() as db:
            store = JobStore(db)
            try:
                job = store.get_by_id(job_id)
            except VidmarkError:
                logger.exception("job_failure_not_recorded", extra={"job_id": job_id})
                return
            if job.status in (JobStatus.QUEUED.value, JobStatus.PROCESSING.value):
                self._record_failure(store, job_id, exc)

    def stream_watermark(self, job_id: int, options: WatermarkOptions) -> MediaStream:
        options = self.normalize_options(options)
        with self.session_factory() as db:
            source_url = JobStore(db).get_by_id(job_id).source_url
        stack = ExitStack()
        try:
            scratch = stack.enter_context(self.storage.scratch(f"stream-{job_id}"))
            source = self.storage.fetch_to_local(source_url, scratch, "source" + _suffix(source_url))
            overlay = self.storage.fetch_to_local(self.catalog.asset_url(options.watermark_selector), scratch, "overlay.png")
            args = build_args(Operation.WATERMARK, self._watermark_params(source, overlay, None, options))
        except BaseException:
            stack.close()
            raise
        return self._media_stream(args, options.output_container, stack)

    def stream_convert(
        self,
        *,
        upload: BinaryIO | None = None,
        file_name: str | None = None,
        source_url: str | None = None,
        output_container: str | None = None,
        quality_tier: str | None = None,
    ) -> MediaStream:
        if upload is None and not source_url:
            raise InvalidParameters("A source file or sourceUrl is required")
        container = normalize_container(output_container)
        stack = ExitStack()
        try:
            scratch = stack.enter_context(self.storage.scratch("convert"))
            if upload is not None:
                source = scratch / f"source_{sanitize_file_name(file_name or 'upload')}"
                with source.open("wb") as handle:
                    shutil.copyfileobj(upload, handle)
            else:
                source = self.storage.fetch_to_local(source_url, scratch, "source" + _suffix(source_url))
            args = build_args(
                Operation.CONVERT,
                CommandParams(
                    input_path=str(source),
                    output_container=container.value,
                    quality_tier=quality_tier,
                ),
            )
        except BaseException:
            stack.close()
            raise
        return self._media_stream(args, container.value, stack)

    def _watermark_pipeline(self, job_id: int, source_url: str, options: WatermarkOptions) -> str:
        with self.storage.scratch(f"job-{job_id}") as scratch:
            source = self.storage.fetch_to_local(source_url, scratch, "source" + _suffix(source_url))
            overlay = self.storage.fetch_to_local(self.catalog.asset_url(options.watermark_selector), scratch, "overlay.png")
            container = normalize_container(options.output_container)
            output = scratch / f"output.{container.value}"
            args = build_args(Operation.WATERMARK, self._watermark_params(source, overlay, output, options))
            self.runner.run(self.ffmpeg_path, args)
            key = f"{self.result_key_prefix}/{uuid.uuid4()}_{job_id}.{container.value}"
            return self.storage.push_from_local(output, key, content_type_for(container.value))

    def _watermark_params(self, source: Path, overlay: Path, output: Path | None, options: WatermarkOptions) -> CommandParams:
        return CommandParams(
            input_path=str(source),
            output_path=str(output) if output else None,
            watermark_path=str(overlay),
            position=options.position,
            opacity=options.opacity,
            scale=options.scale,
            output_container=options.output_container,
            quality_tier=options.quality_tier,
        )

    def _media_stream(self, args: list[str], container: str, stack: ExitStack) -> MediaStream:
        def chunks() -> Iterator[bytes]:
            with stack:
                try:
                    yield from self.runner.stream(self.ffmpeg_path, args)
                except VidmarkError as exc:
                    logger.error("stream_failed", extra={"error": exc.message})
                    raise

        return MediaStream(chunks=chunks(), media_type=content_type_for(container), close=stack.close)

    def _record_failure(self, store: JobStore, job_id: int, exc: BaseException) -> None:
        message = failure_message(exc)
        logger.warning("job_failed", extra={"job_id": job_id, "error": message})
        try:
            store.fail(job_id, message)
        except VidmarkError:
            logger.exception("job_failure_not_recorded", extra={"job_id": job_id})


def _suffix(url: str) -> str:
    suffix = Path(url.split("?", 1)[0]).suffix.lower()
    return suffix if suffix.isascii() and len(suffix) <= 6 else ""
