import enum

from sqlalchemy import Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from vidmark.db.base import Base
from vidmark.models.common import TimestampMixin


class JobStatus(str, enum.Enum):
    UPLOADED = "uploaded"
    PENDING = "pending"
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(TimestampMixin, Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_url: Mapped[str] = mapped_column(String(1000), nullable=False)
    result_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default=JobStatus.UPLOADED.value, nullable=False, index=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    watermark_selector: Mapped[str | None] = mapped_column(String(100), nullable=True)
    position: Mapped[str | None] = mapped_column(String(32), nullable=True)
    opacity: Mapped[float | None] = mapped_column(Float, nullable=True)
    scale: Mapped[float | None] = mapped_column(Float, nullable=True)
    output_container: Mapped[str | None] = mapped_column(String(16), nullable=True)
    quality_tier: Mapped[str | None] = mapped_column(String(16), nullable=True)
    task_id: Mapped[str | None] = mapped_column(String(100), nullable=True, index=True)
