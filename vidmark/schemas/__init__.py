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
from vidmark.schemas.upload import PresignRequest, PresignResponse

__all__ = [
    "JobRead",
    "JobStatusResponse",
    "JobListResponse",
    "JobCreateRequest",
    "JobCreateResponse",
    "WatermarkRequest",
    "WatermarkAcceptedResponse",
    "WatermarkResultResponse",
    "ResetResponse",
    "PresignRequest",
    "PresignResponse",
]
