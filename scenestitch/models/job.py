"""
RenderJobRecord model for SceneStitch.

Persists the externally visible status of a render job when the
``database`` job store is configured.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.database import Base


class RenderJobRecord(Base):
    """
    One row per render job, overwritten after every stage transition.

    Only the pipeline that owns ``job_id`` writes to it; pollers read it.
    """

    __tablename__ = "render_jobs"

    job_id: Mapped[str] = mapped_column(
        String(255),
        primary_key=True,
        doc="Caller-supplied job identifier"
    )
    status: Mapped[str] = mapped_column(
        String(20),
        default="preparing",
        nullable=False,
        index=True,
        doc="preparing, downloading, processing, rendering, uploading, complete, error"
    )
    stage: Mapped[str] = mapped_column(String(20), default="preparing", nullable=False)
    progress_percent: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    progress_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    estimated_seconds_remaining: Mapped[Optional[int]] = mapped_column(
        Integer,
        nullable=True,
    )
    output_url: Mapped[Optional[str]] = mapped_column(
        String(1000),
        nullable=True,
        doc="Public URL of the artifact once complete"
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<RenderJobRecord(job_id={self.job_id}, status={self.status}, "
            f"percent={self.progress_percent})>"
        )
