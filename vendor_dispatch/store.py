# vendor_dispatch/store.py
#
# Job store over the async SQLAlchemy engine. Every status transition is one
# conditional UPDATE keyed by request_id so that the worker, retry timers and
# webhooks can write the same row without locks.
from __future__ import annotations

import enum
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from vendor_dispatch.errors import JobNotFound
from vendor_dispatch.models.jobs import (
    ACTIVE_STATUSES,
    ALL_STATUSES,
    PENDING,
    PROCESSING,
    TERMINAL_STATUSES,
    Job,
    utcnow,
)

logger = logging.getLogger("uvicorn.error")


class UpdateStatus(str, enum.Enum):
    APPLIED = "applied"
    ALREADY_FINALIZED = "already_finalized"
    NOT_FOUND = "not_found"
    # row exists, still active, but not in a status the transition accepts
    IN_PROGRESS = "in_progress"


class JobStore:
    def __init__(self, sessionmaker: async_sessionmaker[AsyncSession]) -> None:
        self._sessionmaker = sessionmaker

    # ---------------------------
    # Reads
    # ---------------------------

    async def get(self, request_id: str) -> Optional[Job]:
        async with self._sessionmaker() as session:
            res = await session.execute(select(Job).where(Job.request_id == request_id))
            return res.scalar_one_or_none()

    async def require(self, request_id: str) -> Job:
        job = await self.get(request_id)
        if job is None:
            raise JobNotFound(request_id)
        return job

    async def count_by_status(self) -> Dict[str, int]:
        out = {s: 0 for s in ALL_STATUSES}
        async with self._sessionmaker() as session:
            res = await session.execute(select(Job.status, func.count(Job.id)).group_by(Job.status))
            for status, n in res.all():
                out[status] = int(n)
        return out

    # ---------------------------
    # Writes
    # ---------------------------

    async def create(self, request_id: str, payload: Any) -> Job:
        now = utcnow()
        job = Job(
            request_id=request_id,
            payload=payload,
            status=PENDING,
            retry_count=0,
            created_at=now,
            updated_at=now,
        )
        async with self._sessionmaker() as session:
            session.add(job)
            await session.commit()
        return job

    async def _conditional_update(
        self,
        request_id: str,
        values: Dict[str, Any],
        from_statuses: Sequence[str] = ACTIVE_STATUSES,
    ) -> UpdateStatus:
        stmt = (
            update(Job)
            .where(Job.request_id == request_id, Job.status.in_(from_statuses))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._sessionmaker() as session:
            res = await session.execute(stmt)
            await session.commit()
            if res.rowcount == 1:
                return UpdateStatus.APPLIED
            found = await session.execute(select(Job.status).where(Job.request_id == request_id))
            current = found.scalar_one_or_none()
            if current is None:
                return UpdateStatus.NOT_FOUND
            if current in TERMINAL_STATUSES:
                return UpdateStatus.ALREADY_FINALIZED
            return UpdateStatus.IN_PROGRESS

    async def mark_processing(self, request_id: str, vendor: str, *, reclaim: bool = False) -> UpdateStatus:
        """
        Claim a pending job for a dispatch attempt. A job already processing is
        only taken over with ``reclaim=True`` (its previous worker died).
        """
        now = utcnow()
        return await self._conditional_update(
            request_id,
            {
                "status": PROCESSING,
                "vendor": vendor,
                "started_processing_at": now,
                "updated_at": now,
            },
            ACTIVE_STATUSES if reclaim else (PENDING,),
        )

    async def mark_pending(self, request_id: str) -> UpdateStatus:
        return await self._conditional_update(request_id, {"status": PENDING, "updated_at": utcnow()})

    async def touch(self, request_id: str, **values: Any) -> UpdateStatus:
        """Non-terminal bookkeeping write (e.g. vendor ack received)."""
        values.setdefault("updated_at", utcnow())
        return await self._conditional_update(request_id, values)

    async def finalize(self, request_id: str, values: Dict[str, Any]) -> UpdateStatus:
        """
        Terminal write. Applied only while the job is pending or processing;
        a finalized job is never touched again.
        """
        if values.get("status") not in TERMINAL_STATUSES:
            raise ValueError(f"finalize needs a terminal status, got {values.get('status')!r}")
        return await self._conditional_update(request_id, values)

    async def increment_retry(self, request_id: str, max_retries: int) -> Optional[int]:
        """
        Bump retry_count by one if the job is still active and below the bound.
        Returns the new count, or None when nothing was updated.
        """
        stmt = (
            update(Job)
            .where(
                Job.request_id == request_id,
                Job.status.in_(ACTIVE_STATUSES),
                Job.retry_count < max_retries,
            )
            .values(retry_count=Job.retry_count + 1, updated_at=utcnow())
            .returning(Job.retry_count)
            .execution_options(synchronize_session=False)
        )
        async with self._sessionmaker() as session:
            res = await session.execute(stmt)
            new_count = res.scalar_one_or_none()
            await session.commit()
        return new_count

    async def purge_expired(self, retention_days: int, *, now: Optional[datetime] = None) -> int:
        """Delete terminal jobs last updated before the retention window."""
        cutoff = (now or utcnow()) - timedelta(days=retention_days)
        stmt = (
            delete(Job)
            .where(Job.status.in_(TERMINAL_STATUSES), Job.updated_at < cutoff)
            .execution_options(synchronize_session=False)
        )
        async with self._sessionmaker() as session:
            res = await session.execute(stmt)
            await session.commit()
        if res.rowcount:
            logger.info("[DB] purged %d terminal job(s) older than %d days", res.rowcount, retention_days)
        return res.rowcount or 0

    async def list_stale_pending(self, older_than_seconds: float, *, now: Optional[datetime] = None) -> List[Job]:
        """Pending jobs untouched for a while; their queue message may have been lost."""
        cutoff = (now or utcnow()) - timedelta(seconds=older_than_seconds)
        async with self._sessionmaker() as session:
            res = await session.execute(
                select(Job).where(Job.status == PENDING, Job.updated_at < cutoff).order_by(Job.created_at)
            )
            return list(res.scalars().all())
