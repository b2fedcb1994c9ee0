"""
Module: joinery_kernel.models.activity_log
Responsibility: ORM row for one job activity entry (the audit trail of
    accepted transitions).  Append-only by usage: the log store never updates
    or deletes rows.
"""

from datetime import datetime

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from joinery_kernel.db.base import Base
from joinery_kernel.domain.dtos import ActivityEntry


class ActivityLogModel(Base):
    """ORM model for job activity log entries."""

    __tablename__ = "job_activity_log"

    __table_args__ = (
        Index("idx_activity_log_job", "job_id", "created_at"),
    )

    job_id: Mapped[str] = mapped_column(String(64))
    action: Mapped[str] = mapped_column(String(100))
    detail: Mapped[str] = mapped_column(Text, default="")
    meta: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    def to_dto(self) -> ActivityEntry:
        return ActivityEntry(
            job_id=self.job_id,
            action=self.action,
            detail=self.detail or "",
            created_at=self.created_at,
            meta=dict(self.meta or {}),
        )
