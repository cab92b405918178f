#=================================================================
# vendor_dispatch/main_app.py
# FastAPI application entry-point: job API, vendor webhooks and,
# optionally, the dispatch worker in the same event loop.
#=================================================================

import logging, asyncio, time
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from vendor_dispatch.webhooks.vendor import router as vendor_webhooks_router
from vendor_dispatch.routes import router as jobs_router

from vendor_dispatch.workers.housekeeping import housekeeping_loop
from vendor_dispatch.workers.jobs_worker import VendorWorker, build_worker
from vendor_dispatch.db import init_db, close_db
from vendor_dispatch.deps import close_queue, get_queue, get_store
from vendor_dispatch.config import settings
import vendor_dispatch.logging_filters  # noqa: F401  (installs the PII log filter)

# --- FastAPI instance ---
app = FastAPI(
    title="Vendor Dispatch Service",
    description="Dispatches jobs to sync/async vendors and reconciles their results.",
)

# --- Logging setup (console) ---
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s | %(message)s"
)
logger = logging.getLogger("uvicorn.error")
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ---------------- Include routers ----------------

app.include_router(jobs_router)               # /jobs
app.include_router(vendor_webhooks_router)    # /vendor-webhook/{vendor}

_started_at = time.monotonic()


@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "uptime": round(time.monotonic() - _started_at, 3),
    }


# --- Global error handler (keeps full stack trace in logs) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error"},
    )

# ---- Background tasks lifecycle ----
_stop: asyncio.Event | None = None
_worker: VendorWorker | None = None
_worker_task: asyncio.Task | None = None
_housekeeping_task: asyncio.Task | None = None


@app.on_event("startup")
async def _startup():
    global _stop, _worker, _worker_task, _housekeeping_task
    # store unreachable at startup is fatal
    await init_db()
    await get_queue().ping()

    _stop = asyncio.Event()
    _housekeeping_task = asyncio.create_task(
        housekeeping_loop(
            get_store(),
            _stop,
            retention_days=settings.JOB_RETENTION_DAYS,
            interval=settings.HOUSEKEEPING_INTERVAL,
        )
    )
    if settings.RUN_WORKER_IN_APP:
        _worker = build_worker(queue=get_queue())
        await _worker.startup()
        _worker_task = asyncio.create_task(_worker.run(_stop))


@app.on_event("shutdown")
async def _shutdown():
    global _worker_task, _housekeeping_task, _worker
    if _stop:
        _stop.set()
    if _housekeeping_task is not None:
        try:
            await asyncio.wait_for(_housekeeping_task, timeout=5.0)
        except Exception:
            _housekeeping_task.cancel()
    if _worker_task is not None:
        # the loop finishes the message in hand, vendor call included
        await _worker_task
    if _worker is not None:
        # scheduled retries still push their messages
        await _worker.retry.drain()
    _worker_task = _housekeeping_task = _worker = None
    # resources go only after the loop left its pop cycle
    await close_queue()
    await close_db()


def run() -> None:
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
