import logging
import re
import shutil
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO
from urllib.parse import urlparse

import boto3
import requests
from boto3.exceptions import S3UploadFailedError
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from vidmark.core.config import Settings
from vidmark.core.errors import FetchError, InvalidParameters, UploadError

logger = logging.getLogger(__name__)

DOWNLOAD_CHUNK_SIZE = 1024 * 1024
_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9._-]")


@dataclass(slots=True)
class PresignedUpload:
    upload_url: str
    public_url: str
    key: str


def sanitize_file_name(file_name: str) -> str:
    cleaned = _UNSAFE_NAME_CHARS.sub("_", Path(file_name or "").name)
    return cleaned or "upload"


def build_s3_client(settings: Settings) -> Any:
    return boto3.client(
        "s3",
        endpoint_url=settings.s3_endpoint_url or None,
        region_name=settings.s3_region,
        aws_access_key_id=settings.s3_access_key_id or None,
        aws_secret_access_key=settings.s3_secret_access_key or None,
        config=Config(signature_version="s3v4"),
    )


class StorageGateway:
    def __init__(
        self,
        s3_client: Any,
        http: requests.Session,
        *,
        bucket: str,
        public_base_url: str,
        scratch_root: str | Path,
        upload_key_prefix: str = "videos",
        presign_expires_seconds: int = 600,
        fetch_timeout_seconds: float = 60,
    ) -> None:
        self.s3 = s3_client
        self.http = http
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.scratch_root = Path(scratch_root)
        self.upload_key_prefix = upload_key_prefix.strip("/")
        self.presign_expires_seconds = presign_expires_seconds
        self.fetch_timeout_seconds = fetch_timeout_seconds

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageGateway":
        return cls(
            build_s3_client(settings),
            requests.Session(),
            bucket=settings.s3_bucket,
            public_base_url=settings.public_base_url,
            scratch_root=settings.scratch_dir,
            upload_key_prefix=settings.upload_key_prefix,
            presign_expires_seconds=settings.presign_expires_seconds,
            fetch_timeout_seconds=settings.fetch_timeout_seconds,
        )

    def public_url(self, key: str) -> str:
        return f"{self.public_base_url}/{key.lstrip('/')}"

    def new_upload_key(self, file_name: str) -> str:
        return f"{self.upload_key_prefix}/{uuid.uuid4()}_{sanitize_file_name(file_name)}"

    @contextmanager
    def scratch(self, label: str = "attempt") -> Iterator[Path]:
        self.scratch_root.mkdir(parents=True, exist_ok=True)
        directory = self.scratch_root / f"{label}-{uuid.uuid4().hex[:12]}"
        directory.mkdir()
        try:
            yield directory
        finally:
            shutil.rmtree(directory, ignore_errors=True)

    def fetch_to_local(self, remote_url: str, directory: Path, file_name: str | None = None) -> Path:
        parsed = urlparse(remote_url)
        if parsed.scheme not in {"http", "https"}:
            raise FetchError(f"Unsupported URL for fetch: {remote_url}")
        target = directory / (file_name or sanitize_file_name(Path(parsed.path).name))

        try:
            with self.http.get(remote_url, stream=True, timeout=self.fetch_timeout_seconds) as response:
                if not 200 <= response.status_code < 300:
                    raise FetchError(f"Failed to fetch {remote_url}: HTTP {response.status_code}")
                with target.open("wb") as handle:
                    for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE):
                        if chunk:
                            handle.write(chunk)
        except requests.RequestException as exc:
            raise FetchError(f"Failed to fetch {remote_url}: {exc}") from exc

        logger.info("fetched_to_local", extra={"url": remote_url, "path": str(target)})
        return target

    def push_from_local(self, local_path: Path, destination_key: str, content_type: str) -> str:
        try:
            self.s3.upload_file(
                str(local_path),
                self.bucket,
                destination_key,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError, S3UploadFailedError, OSError) as exc:
            raise UploadError(f"Failed to upload {destination_key}: {exc}") from exc
        logger.info("pushed_from_local", extra={"key": destination_key})
        return self.public_url(destination_key)

    def put_stream(self, stream: BinaryIO, file_name: str, content_type: str) -> tuple[str, str]:
        key = self.new_upload_key(file_name)
        try:
            self.s3.upload_fileobj(stream, self.bucket, key, ExtraArgs={"ContentType": content_type})
        except (BotoCoreError, ClientError, S3UploadFailedError) as exc:
            raise UploadError(f"Failed to upload {key}: {exc}") from exc
        return key, self.public_url(key)

    def issue_presigned_upload_url(self, file_name: str, content_type: str) -> PresignedUpload:
        if not file_name or not content_type:
            raise InvalidParameters("fileName and contentType are required")
        key = self.new_upload_key(file_name)
        try:
            upload_url = self.s3.generate_presigned_url(
                "put_object",
                Params={"Bucket": self.bucket, "Key": key, "ContentType": content_type},
                ExpiresIn=self.presign_expires_seconds,
            )
        except (BotoCoreError, ClientError) as exc:
            raise UploadError(f"Failed to presign upload for {key}: {exc}") from exc
        return PresignedUpload(upload_url=upload_url, public_url=self.public_url(key), key=key)
