from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class JobRead(CamelModel):
    id: int
    status: str
    source_url: str
    result_url: str | None = None
    error_message: str | None = None
    watermark_selector: str | None = None
    position: str | None = None
    opacity: float | None = None
    scale: float | None = None
    output_container: str | None = None
    quality_tier: str | None = None
    created_at: datetime
    updated_at: datetime


class JobStatusResponse(JobRead):
    success: bool = True


class JobListResponse(CamelModel):
    success: bool = True
    items: list[JobRead]


class JobCreateRequest(CamelModel):
    source_url: str

    @field_validator("source_url")
    @classmethod
    def _require_http_url(cls, value: str) -> str:
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("sourceUrl must be an http(s) URL")
        return value


class JobCreateResponse(CamelModel):
    success: bool = True
    id: int
    source_url: str


class WatermarkRequest(CamelModel):
    watermark_selector: str = Field(min_length=1)
    position: str = "bottom-right"
    opacity: float = Field(default=0.8, ge=0, le=1)
    scale: float | str = 0.1
    output_container: str = "mp4"
    quality_tier: str = "medium"
    mode: Literal["async", "sync", "stream"] = "async"


class WatermarkAcceptedResponse(CamelModel):
    success: bool = True
    accepted: bool = True
    id: int
    task_id: str


class WatermarkResultResponse(CamelModel):
    success: bool = True
    id: int
    status: str
    result_url: str | None


class ResetResponse(CamelModel):
    success: bool = True
    id: int
    status: str
