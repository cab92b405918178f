# vendor_dispatch/models/jobs.py
from __future__ import annotations
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import JSON, String, Integer, DateTime, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from vendor_dispatch.db import Base

# Job statuses
PENDING = "pending"
PROCESSING = "processing"
COMPLETE = "complete"
FAILED = "failed"

ACTIVE_STATUSES = (PENDING, PROCESSING)
TERMINAL_STATUSES = (COMPLETE, FAILED)
ALL_STATUSES = ACTIVE_STATUSES + TERMINAL_STATUSES


def utcnow() -> datetime:
    # naive UTC, the same on SQLite and Postgres
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Job(Base):
    __tablename__ = "jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_id: Mapped[str] = mapped_column(String(64), unique=True, index=True)
    payload: Mapped[Any] = mapped_column(JSON)
    status: Mapped[str] = mapped_column(String(32), default=PENDING, index=True)
    vendor: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)
    result: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    started_processing_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    failed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    vendor_response_received_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_jobs_status_created", "status", "created_at"),
        Index("idx_jobs_vendor_status", "vendor", "status"),
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_public(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "request_id": self.request_id,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if self.status == COMPLETE:
            out["result"] = self.result
        elif self.status == FAILED:
            out["error"] = self.error_message
        return out
