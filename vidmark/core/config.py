import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "Video Watermark Service"
    environment: Literal["dev", "test", "prod"] = "dev"
    debug: bool = False

    database_url: str = "sqlite:///./vidmark.db"
    auto_create_tables: bool = True

    cors_origins: list[str] = Field(default_factory=lambda: ["http://localhost:3000", "http://127.0.0.1:3000"])
    rate_limit_per_minute: int = 60

    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = ""
    celery_task_always_eager: bool = False

    ffmpeg_path: str = "ffmpeg"
    process_timeout_seconds: float = 300
    diagnostic_limit_bytes: int = 8192

    scratch_dir: str = str(Path(tempfile.gettempdir()) / "vidmark")
    scratch_max_age_hours: int = 6

    s3_endpoint_url: str | None = None
    s3_region: str = "auto"
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_bucket: str = "vidmark"
    public_base_url: str = "http://localhost:9000/vidmark"
    presign_expires_seconds: int = 600
    fetch_timeout_seconds: float = 60

    max_upload_size_mb: int = 100
    upload_key_prefix: str = "videos"
    result_key_prefix: str = "videos/watermarked"
    watermark_key_prefix: str = "images/watermark"
    watermark_catalog: list[str] = Field(
        default_factory=lambda: ["kling", "pika", "runway", "stability", "vidu", "veo", "luma"]
    )

    def get_celery_broker_url(self) -> str:
        return self.celery_broker_url

    def get_celery_result_backend(self) -> str:
        return self.celery_result_backend or self.celery_broker_url


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
