# ---------------------------
# vendor_dispatch/workers/jobs_worker.py
# ---------------------------
import asyncio
import logging
import random
import signal
from typing import Optional, Set

from vendor_dispatch.config import settings
from vendor_dispatch.db import close_db, get_sessionmaker, init_db
from vendor_dispatch.errors import DispatchFailure, JobNotFound
from vendor_dispatch.job_queue import JobQueue, QueueMessage, build_queue
from vendor_dispatch.models.jobs import Job
from vendor_dispatch.rate_limiter import SlidingWindowRateLimiter
from vendor_dispatch.reconciler import JobReconciler, Outcome
from vendor_dispatch.retry import RetryScheduler
from vendor_dispatch.store import JobStore, UpdateStatus
from vendor_dispatch.vendors.client import VendorClient, VendorResponse

logger = logging.getLogger("uvicorn.error")

RANDOM = "random"
STICKY = "sticky"


class VendorWorker:
    """
    Consumes job references from the queue one at a time and drives each job
    through vendor dispatch. All mutable worker state (limiter counters,
    pending retry tasks) lives on this object.
    """

    def __init__(
        self,
        *,
        store: JobStore,
        queue: JobQueue,
        client: VendorClient,
        limiter: SlidingWindowRateLimiter,
        reconciler: JobReconciler,
        retry: RetryScheduler,
        pop_timeout: float = 5.0,
        error_backoff: float = 5.0,
        selection: str = RANDOM,
        stale_pending_seconds: float = 600.0,
        rng: Optional[random.Random] = None,
    ) -> None:
        if selection not in (RANDOM, STICKY):
            raise ValueError(f"unknown vendor selection policy: {selection}")
        self.store = store
        self.queue = queue
        self.client = client
        self.limiter = limiter
        self.reconciler = reconciler
        self.retry = retry
        self.pop_timeout = pop_timeout
        self.error_backoff = error_backoff
        self.selection = selection
        self.stale_pending_seconds = stale_pending_seconds
        self._rng = rng or random.Random()
        self.is_running = False
        # raw messages this worker moved back from the in-flight list
        self._recovered: Set[str] = set()

    # ---------------------------
    # Lifecycle
    # ---------------------------

    async def startup(self) -> None:
        """
        Verify the queue is reachable, put back messages a previous worker
        popped but never finished, and re-enqueue pending jobs whose message
        was lost. Raises InfrastructureError when the queue is down.
        """
        await self.queue.ping()
        self._recovered.update(await self.queue.recover())

        stale = await self.store.list_stale_pending(self.stale_pending_seconds)
        for job in stale:
            await self.queue.push(
                QueueMessage(
                    request_id=job.request_id,
                    payload=job.payload,
                    retry=job.retry_count > 0,
                    retry_count=job.retry_count,
                )
            )
            await self.store.touch(job.request_id)
        if stale:
            logger.warning("[WORKER] re-enqueued %d stale pending job(s)", len(stale))

    async def run(self, stop_event: asyncio.Event) -> None:
        if self.is_running:
            logger.warning("[WORKER] already running")
            return
        self.is_running = True
        logger.info("[WORKER] started, waiting for jobs...")

        try:
            while not stop_event.is_set():
                try:
                    message = await self.queue.pop(self.pop_timeout)
                except Exception as e:
                    logger.error("[WORKER] queue error: %s", e)
                    await self._backoff(stop_event)
                    continue

                if message is None:
                    continue

                try:
                    await self.process_message(message)
                except Exception:
                    # store/queue trouble; the message stays un-acked for recovery
                    logger.exception("[WORKER] failed handling request_id=%s", message.request_id)
                    await self._backoff(stop_event)
        finally:
            self.is_running = False
            logger.info("[WORKER] stopped")

    async def shutdown(self) -> None:
        """
        Call after run() returned. Pending retry timers are not cancelled: they
        fire and push their messages before the queue is closed.
        """
        if self.retry.pending:
            logger.info("[WORKER] waiting for %d scheduled retry(ies)", self.retry.pending)
        await self.retry.drain()
        await self.queue.close()

    async def _backoff(self, stop_event: asyncio.Event) -> None:
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=self.error_backoff)
        except asyncio.TimeoutError:
            pass

    # ---------------------------
    # Per-message handling
    # ---------------------------

    def select_vendor(self, job: Job) -> str:
        names = self.client.names
        if self.selection == STICKY and job.vendor in names:
            return job.vendor
        return self._rng.choice(names)

    async def process_message(self, message: QueueMessage) -> None:
        request_id = message.request_id
        logger.info("[WORKER] processing request_id=%s retry=%s retry_count=%d",
                    request_id, message.retry, message.retry_count)

        try:
            job = await self.store.require(request_id)
        except JobNotFound as e:
            logger.error("[WORKER] %s, dropping message", e)
            await self.queue.ack(message)
            return
        if job.is_terminal:
            logger.info("[WORKER] request_id=%s already %s, dropping duplicate message", request_id, job.status)
            await self.queue.ack(message)
            return

        # only a message recovered from a dead worker may take over a processing job
        reclaim = message.raw is not None and message.raw in self._recovered
        self._recovered.discard(message.raw)

        vendor = self.select_vendor(job)
        marked = await self.store.mark_processing(request_id, vendor, reclaim=reclaim)
        if marked is not UpdateStatus.APPLIED:
            logger.info("[WORKER] request_id=%s not claimable (%s), dropping message", request_id, marked.value)
            await self.queue.ack(message)
            return
        logger.info("[WORKER] selected vendor=%s request_id=%s", vendor, request_id)

        await self.limiter.wait_for_slot(vendor)

        try:
            response = await self.client.dispatch(vendor, request_id, job.payload)
        except DispatchFailure as e:
            logger.error("[WORKER] dispatch failed request_id=%s: %s", request_id, e)
            await self.retry.handle_failure(request_id, job.payload, e)
        else:
            await self._apply_response(request_id, response)

        await self.queue.ack(message)

    async def _apply_response(self, request_id: str, response: VendorResponse) -> None:
        if response.accepted:
            # completion arrives through the vendor webhook
            logger.info("[WORKER] request_id=%s accepted by vendor, waiting for webhook", request_id)
            return
        if response.kind == "success":
            outcome = Outcome.success(response.data)
        else:
            outcome = Outcome.failure(response.error)
        await self.reconciler.reconcile(request_id, outcome, vendor_response=True)


# ---------------------------
# Wiring
# ---------------------------

def build_worker(queue: Optional[JobQueue] = None, store: Optional[JobStore] = None) -> VendorWorker:
    store = store or JobStore(get_sessionmaker())
    queue = queue or build_queue(settings.QUEUE_BACKEND, redis_url=settings.REDIS_URL, name=settings.QUEUE_NAME)
    reconciler = JobReconciler(store, settings.SENSITIVE_FIELDS)
    retry = RetryScheduler(
        store,
        queue,
        reconciler,
        max_retries=settings.MAX_RETRIES,
        base_delay=settings.RETRY_BASE_DELAY,
    )
    limiter = SlidingWindowRateLimiter.from_config(
        settings.VENDOR_RATE_LIMITS,
        poll_interval=settings.RATE_LIMIT_POLL_INTERVAL,
    )
    return VendorWorker(
        store=store,
        queue=queue,
        client=VendorClient(),
        limiter=limiter,
        reconciler=reconciler,
        retry=retry,
        pop_timeout=settings.QUEUE_POP_TIMEOUT,
        error_backoff=settings.WORKER_ERROR_BACKOFF,
        selection=settings.VENDOR_SELECTION,
        stale_pending_seconds=settings.STALE_PENDING_SECONDS,
    )


async def run_standalone() -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
        except NotImplementedError:
            pass

    worker: Optional[VendorWorker] = None
    try:
        await init_db()
        worker = build_worker()
        await worker.startup()
    except Exception as e:
        # store or queue unreachable at startup is fatal
        logger.error("[WORKER] failed to start: %s", e)
        if worker is not None:
            await worker.queue.close()
        await close_db()
        return 1

    try:
        await worker.run(stop_event)
    finally:
        await worker.shutdown()
        await close_db()
    return 0


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s | %(message)s",
    )
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    from vendor_dispatch.logging_filters import install_filters

    install_filters()
    raise SystemExit(asyncio.run(run_standalone()))


if __name__ == "__main__":
    main()
