# vendor_dispatch/retry.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Set

from vendor_dispatch.errors import DispatchFailure, RetriesExhausted
from vendor_dispatch.job_queue import JobQueue, QueueMessage
from vendor_dispatch.reconciler import JobReconciler, Outcome
from vendor_dispatch.store import JobStore, UpdateStatus

logger = logging.getLogger("uvicorn.error")


class RetryScheduler:
    """
    Handles dispatch failures only. Vendor-reported business errors go straight
    to the reconciler.

    Backoff is linear: ``base_delay * retry_count``. The re-enqueue runs as a
    detached task so the worker loop keeps consuming meanwhile.
    """

    def __init__(
        self,
        store: JobStore,
        queue: JobQueue,
        reconciler: JobReconciler,
        *,
        max_retries: int = 3,
        base_delay: float = 1.0,
    ) -> None:
        self.store = store
        self.queue = queue
        self.reconciler = reconciler
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._tasks: Set[asyncio.Task] = set()

    def delay_for(self, retry_count: int) -> float:
        return self.base_delay * retry_count

    async def handle_failure(self, request_id: str, payload: Any, failure: DispatchFailure | Exception) -> Optional[int]:
        """
        Returns the new retry_count when a retry was scheduled, otherwise None
        (job finalized as failed, missing, or already terminal).
        """
        detail = str(failure)
        new_count = await self.store.increment_retry(request_id, self.max_retries)
        if new_count is None:
            job = await self.store.get(request_id)
            if job is None:
                logger.warning("[RETRY] request_id=%s vanished; nothing to retry", request_id)
                return None
            if job.is_terminal:
                logger.info("[RETRY] request_id=%s already %s; failure ignored", request_id, job.status)
                return None
            # retry_count already at the bound
            await self._exhausted(request_id, detail)
            return None

        if new_count >= self.max_retries:
            await self._exhausted(request_id, detail)
            return None

        if await self.store.mark_pending(request_id) is not UpdateStatus.APPLIED:
            logger.info("[RETRY] request_id=%s finalized meanwhile; retry dropped", request_id)
            return None

        delay = self.delay_for(new_count)
        message = QueueMessage(request_id=request_id, payload=payload, retry=True, retry_count=new_count)
        task = asyncio.create_task(self._requeue_later(message, delay), name=f"retry-{request_id}-{new_count}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        logger.warning("[RETRY] request_id=%s attempt %d/%d failed (%s); requeue in %.1fs",
                       request_id, new_count, self.max_retries, detail, delay)
        return new_count

    async def _exhausted(self, request_id: str, detail: str) -> None:
        err = RetriesExhausted(request_id, detail)
        logger.error("[RETRY] request_id=%s failed after max retries: %s", request_id, detail)
        await self.reconciler.reconcile(request_id, Outcome.failure(str(err)))

    async def _requeue_later(self, message: QueueMessage, delay: float) -> None:
        await asyncio.sleep(delay)
        try:
            await self.queue.push(message)
        except Exception:
            # job stays pending in the store; the startup sweep re-enqueues it
            logger.exception("[RETRY] requeue failed for request_id=%s", message.request_id)
            return
        logger.info("[RETRY] request_id=%s requeued (retry_count=%d)", message.request_id, message.retry_count)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait for every scheduled re-enqueue (tests, orderly shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
