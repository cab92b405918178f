# vendor_dispatch/deps.py
# FastAPI dependencies shared by the routers. Tests swap them through
# app.dependency_overrides.
from __future__ import annotations

from typing import Optional

from fastapi import Depends

from vendor_dispatch.config import settings
from vendor_dispatch.db import get_sessionmaker
from vendor_dispatch.job_queue import JobQueue, build_queue
from vendor_dispatch.reconciler import JobReconciler
from vendor_dispatch.store import JobStore

_queue: Optional[JobQueue] = None


def get_store() -> JobStore:
    return JobStore(get_sessionmaker())


def get_queue() -> JobQueue:
    global _queue
    if _queue is None:
        _queue = build_queue(settings.QUEUE_BACKEND, redis_url=settings.REDIS_URL, name=settings.QUEUE_NAME)
    return _queue


def get_reconciler(store: JobStore = Depends(get_store)) -> JobReconciler:
    return JobReconciler(store, settings.SENSITIVE_FIELDS)


async def close_queue() -> None:
    global _queue
    if _queue is not None:
        await _queue.close()
    _queue = None
