import os
from pathlib import Path

import pytest
import requests
from botocore.exceptions import ClientError
from fastapi.testclient import TestClient

os.environ["CELERY_BROKER_URL"] = "memory://"
os.environ["CELERY_RESULT_BACKEND"] = "cache+memory://"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"

from vidmark.core.config import Settings
from vidmark.core.container import Container, build_catalog
from vidmark.db.base import Base
from vidmark.db.session import build_engine, build_session_factory
from vidmark.main import create_app
from vidmark.services.job_store import JobStore
from vidmark.services.storage import StorageGateway

PUBLIC_BASE = "https://store"
SOURCE_URL = f"{PUBLIC_BASE}/videos/a.mp4"
WATERMARK_URL = f"{PUBLIC_BASE}/images/watermark/kling.png"


class FakeS3Client:
    def __init__(self) -> None:
        self.objects: dict[str, tuple[bytes, str | None]] = {}
        self.fail_uploads = False

    def _reject(self) -> None:
        raise ClientError({"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject")

    def upload_file(self, filename, bucket, key, ExtraArgs=None):
        if self.fail_uploads:
            self._reject()
        self.objects[key] = (Path(filename).read_bytes(), (ExtraArgs or {}).get("ContentType"))

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None):
        if self.fail_uploads:
            self._reject()
        self.objects[key] = (fileobj.read(), (ExtraArgs or {}).get("ContentType"))

    def generate_presigned_url(self, operation, Params, ExpiresIn):
        return f"https://r2.example/{Params['Bucket']}/{Params['Key']}?X-Amz-Expires={ExpiresIn}&X-Amz-Signature=abc"


class FakeResponse:
    def __init__(self, status_code: int, body: bytes = b"") -> None:
        self.status_code = status_code
        self.body = body

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.body), chunk_size):
            yield self.body[start : start + chunk_size]

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class FakeHttpSession:
    def __init__(self) -> None:
        self.routes: dict[str, bytes] = {}
        self.unreachable: set[str] = set()
        self.requested: list[str] = []

    def get(self, url, stream=False, timeout=None):
        self.requested.append(url)
        if url in self.unreachable:
            raise requests.ConnectionError(f"Connection refused: {url}")
        if url not in self.routes:
            return FakeResponse(404)
        return FakeResponse(200, self.routes[url])

    def close(self) -> None:
        pass


class FakeRunner:
    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.fail_with: Exception | None = None

    def run(self, executable, args, *, input_stream=None, output_sink=None):
        self.calls.append((executable, list(args)))
        if self.fail_with is not None:
            raise self.fail_with
        Path(args[-1]).write_bytes(b"watermarked-video")

    def stream(self, executable, args, *, input_stream=None):
        self.calls.append((executable, list(args)))
        yield b"chunk-1"
        yield b"chunk-2"


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        _env_file=None,
        environment="test",
        database_url=f"sqlite:///{tmp_path / 'test.db'}",
        scratch_dir=str(tmp_path / "scratch"),
        public_base_url=PUBLIC_BASE,
        s3_bucket="test-bucket",
        celery_task_always_eager=True,
        rate_limit_per_minute=10_000,
    )


@pytest.fixture()
def fake_s3():
    return FakeS3Client()


@pytest.fixture()
def fake_http():
    session = FakeHttpSession()
    session.routes[SOURCE_URL] = b"source-video-bytes"
    session.routes[WATERMARK_URL] = b"png-bytes"
    return session


@pytest.fixture()
def fake_runner():
    return FakeRunner()


@pytest.fixture()
def storage(settings, fake_s3, fake_http):
    return StorageGateway(
        fake_s3,
        fake_http,
        bucket=settings.s3_bucket,
        public_base_url=settings.public_base_url,
        scratch_root=settings.scratch_dir,
    )


@pytest.fixture()
def container(settings, storage, fake_runner):
    engine = build_engine(settings)
    Base.metadata.create_all(bind=engine)
    yield Container(
        settings=settings,
        engine=engine,
        session_factory=build_session_factory(engine),
        storage=storage,
        runner=fake_runner,
        catalog=build_catalog(settings),
    )
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture()
def db(container):
    session = container.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db):
    return JobStore(db)


@pytest.fixture()
def orchestrator(container):
    return container.orchestrator()


@pytest.fixture()
def scratch_root(settings):
    return Path(settings.scratch_dir)


@pytest.fixture()
def client(container):
    app = create_app(container=container)
    with TestClient(app) as test_client:
        yield test_client
