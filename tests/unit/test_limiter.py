"""Tests for prodshot.core.limiter - sliding-window job-start limiter.

A fake clock drives the window; sleeping advances it instead of blocking.
"""

from __future__ import annotations

import asyncio

import pytest

from prodshot.core.limiter import SlidingWindowLimiter


class FakeClock:
    """Manually advanced epoch clock whose ``sleep`` moves time forward."""

    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _limiter(fake_redis, clock: FakeClock, max_starts: int = 2, window: float = 10.0):
    return SlidingWindowLimiter(
        fake_redis,
        "test:limiter",
        max_starts,
        window,
        clock=clock,
        sleep=clock.sleep,
    )


class TestTryAcquire:
    """Non-blocking acquisition."""

    def test_allows_up_to_capacity(self, fake_redis):
        clock = FakeClock()
        limiter = _limiter(fake_redis, clock)

        async def scenario():
            return [await limiter.try_acquire() for _ in range(3)]

        first, second, third = asyncio.run(scenario())
        assert first == 0.0
        assert second == 0.0
        assert third == pytest.approx(10.0)

    def test_wait_counts_down_from_oldest_start(self, fake_redis):
        clock = FakeClock()
        limiter = _limiter(fake_redis, clock)

        async def scenario():
            await limiter.try_acquire()
            clock.now += 4
            await limiter.try_acquire()
            clock.now += 1
            return await limiter.try_acquire()

        # Oldest start was 5s ago in a 10s window.
        assert asyncio.run(scenario()) == pytest.approx(5.0)

    def test_old_starts_leave_the_window(self, fake_redis):
        clock = FakeClock()
        limiter = _limiter(fake_redis, clock)

        async def scenario():
            await limiter.try_acquire()
            await limiter.try_acquire()
            clock.now += 10.001
            return await limiter.try_acquire()

        assert asyncio.run(scenario()) == 0.0


class TestAcquire:
    """Blocking acquisition."""

    def test_sleeps_until_slot_frees(self, fake_redis):
        clock = FakeClock()
        limiter = _limiter(fake_redis, clock)

        async def scenario():
            for _ in range(3):
                await limiter.acquire()

        asyncio.run(scenario())
        assert len(clock.sleeps) == 1
        assert clock.sleeps[0] == pytest.approx(10.0)

    def test_never_more_than_capacity_in_any_window(self, fake_redis):
        """Start times of eight acquisitions respect 2 per 10s."""
        clock = FakeClock()
        limiter = _limiter(fake_redis, clock)
        starts: list[float] = []

        async def scenario():
            for _ in range(8):
                await limiter.acquire()
                starts.append(clock.now)

        asyncio.run(scenario())
        for index in range(2, len(starts)):
            assert starts[index] - starts[index - 2] >= 10.0 - 1e-6

    def test_reset_forgets_starts(self, fake_redis):
        clock = FakeClock()
        limiter = _limiter(fake_redis, clock, max_starts=1)

        async def scenario():
            await limiter.acquire()
            await limiter.reset()
            return await limiter.try_acquire()

        assert asyncio.run(scenario()) == 0.0
