from dataclasses import dataclass

from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from vidmark.core.config import Settings
from vidmark.db.session import build_engine, build_session_factory
from vidmark.services.orchestrator import JobOrchestrator
from vidmark.services.runner import ProcessRunner
from vidmark.services.storage import StorageGateway
from vidmark.services.watermarks import WatermarkCatalog


@dataclass
class Container:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker[Session]
    storage: StorageGateway
    runner: ProcessRunner
    catalog: WatermarkCatalog

    def orchestrator(self) -> JobOrchestrator:
        return JobOrchestrator(
            self.session_factory,
            self.storage,
            self.runner,
            self.catalog,
            ffmpeg_path=self.settings.ffmpeg_path,
            result_key_prefix=self.settings.result_key_prefix,
        )

    def dispose(self) -> None:
        self.storage.http.close()
        self.engine.dispose()


def build_catalog(settings: Settings) -> WatermarkCatalog:
    return WatermarkCatalog(settings.watermark_catalog, settings.public_base_url, settings.watermark_key_prefix)


def build_container(settings: Settings) -> Container:
    engine = build_engine(settings)
    return Container(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        storage=StorageGateway.from_settings(settings),
        runner=ProcessRunner(settings.process_timeout_seconds, settings.diagnostic_limit_bytes),
        catalog=build_catalog(settings),
    )
