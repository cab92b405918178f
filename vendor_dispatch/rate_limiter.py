# vendor_dispatch/rate_limiter.py
from __future__ import annotations

import asyncio
import logging
import time
from collections import deque
from typing import Callable, Deque, Dict, Mapping, Tuple

logger = logging.getLogger("uvicorn.error")


class SlidingWindowRateLimiter:
    """
    One sliding-window counter per vendor.

    Within this process no more than ``limit`` acquisitions succeed in any
    interval of ``window`` seconds. Counters are in memory only, so several
    worker processes against the same vendor do not share a limit.
    """

    def __init__(
        self,
        limits: Mapping[str, Tuple[int, float]],
        *,
        clock: Callable[[], float] = time.monotonic,
        poll_interval: float = 1.0,
    ) -> None:
        self._limits: Dict[str, Tuple[int, float]] = {}
        for vendor, (limit, window) in limits.items():
            if limit < 1 or window <= 0:
                raise ValueError(f"invalid rate limit for {vendor}: limit={limit} window={window}")
            self._limits[vendor] = (int(limit), float(window))
        self._requests: Dict[str, Deque[float]] = {v: deque() for v in self._limits}
        self._clock = clock
        self.poll_interval = poll_interval

    @classmethod
    def from_config(cls, raw: Mapping[str, Mapping], **kwargs) -> "SlidingWindowRateLimiter":
        """Build from {"vendor": {"limit": N, "window": seconds}}."""
        limits = {name: (int(cfg["limit"]), float(cfg["window"])) for name, cfg in raw.items()}
        return cls(limits, **kwargs)

    def _evict(self, vendor: str, now: float) -> Deque[float]:
        _, window = self._limits[vendor]
        q = self._requests[vendor]
        while q and q[0] <= now - window:
            q.popleft()
        return q

    def try_acquire(self, vendor: str) -> bool:
        if vendor not in self._limits:
            return True
        now = self._clock()
        q = self._evict(vendor, now)
        limit, _ = self._limits[vendor]
        if len(q) >= limit:
            return False
        q.append(now)
        return True

    def retry_after(self, vendor: str) -> float:
        """Seconds until the oldest recorded request leaves the window (0 if a slot is free)."""
        if vendor not in self._limits:
            return 0.0
        now = self._clock()
        q = self._evict(vendor, now)
        limit, window = self._limits[vendor]
        if len(q) < limit:
            return 0.0
        return max(0.0, window - (now - q[0]))

    async def wait_for_slot(self, vendor: str) -> None:
        logged = False
        while not self.try_acquire(vendor):
            if not logged:
                logger.info("[RATE] limit reached for %s, next slot in %.1fs", vendor, self.retry_after(vendor))
                logged = True
            await asyncio.sleep(self.poll_interval)

    def in_window(self, vendor: str) -> int:
        if vendor not in self._limits:
            return 0
        return len(self._evict(vendor, self._clock()))
