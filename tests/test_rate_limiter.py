import asyncio
import random
import time

import pytest

from vendor_dispatch.rate_limiter import SlidingWindowRateLimiter


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_admits_up_to_limit_then_blocks_until_window_passes():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter({"sync": (3, 10.0)}, clock=clock)

    assert [limiter.try_acquire("sync") for _ in range(4)] == [True, True, True, False]

    clock.now = 9.99
    assert limiter.try_acquire("sync") is False
    assert limiter.retry_after("sync") == pytest.approx(0.01)

    clock.now = 10.0
    assert limiter.try_acquire("sync") is True
    assert limiter.in_window("sync") == 1


def test_vendors_are_counted_separately():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter({"sync": (1, 60.0), "async": (1, 60.0)}, clock=clock)
    assert limiter.try_acquire("sync")
    assert limiter.try_acquire("async")
    assert not limiter.try_acquire("sync")


def test_unknown_vendor_is_not_limited():
    limiter = SlidingWindowRateLimiter({"sync": (1, 60.0)}, clock=FakeClock())
    assert all(limiter.try_acquire("other") for _ in range(100))


def test_no_window_sees_more_than_limit():
    limit, window = 5, 1.0
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter({"v": (limit, window)}, clock=clock)
    rng = random.Random(7)

    admitted = []
    for _ in range(2000):
        clock.now += rng.uniform(0.0, 0.15)
        if limiter.try_acquire("v"):
            admitted.append(clock.now)

    assert admitted
    for i, t in enumerate(admitted):
        in_window = [s for s in admitted[: i + 1] if s > t - window]
        assert len(in_window) <= limit


def test_invalid_limits_rejected():
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter({"v": (0, 1.0)})
    with pytest.raises(ValueError):
        SlidingWindowRateLimiter({"v": (1, 0)})


def test_from_config():
    limiter = SlidingWindowRateLimiter.from_config({"sync": {"limit": 2, "window": 5}}, clock=FakeClock())
    assert limiter.try_acquire("sync") and limiter.try_acquire("sync")
    assert not limiter.try_acquire("sync")


def test_wait_for_slot_blocks_until_window_frees():
    limiter = SlidingWindowRateLimiter({"v": (1, 0.1)}, poll_interval=0.01)

    async def scenario():
        assert limiter.try_acquire("v")
        started = time.monotonic()
        await limiter.wait_for_slot("v")
        return time.monotonic() - started

    waited = asyncio.run(scenario())
    assert waited >= 0.05
    assert limiter.in_window("v") == 1
