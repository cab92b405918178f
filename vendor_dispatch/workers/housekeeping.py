# vendor_dispatch/workers/housekeeping.py
import asyncio
import logging

from vendor_dispatch.store import JobStore

logger = logging.getLogger("uvicorn.error")


async def housekeeping_loop(
    store: JobStore,
    stop_event: asyncio.Event,
    *,
    retention_days: int = 30,
    interval: float = 3600.0,
) -> None:
    """Expire terminal jobs past the retention window, once per interval."""
    logger.info("[HOUSEKEEPING] started (retention=%dd every %.0fs)", retention_days, interval)
    while not stop_event.is_set():
        try:
            await store.purge_expired(retention_days)
        except Exception as e:
            logger.error("[HOUSEKEEPING] purge failed: %s", e)
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
        except asyncio.TimeoutError:
            pass
    logger.info("[HOUSEKEEPING] stopped")
