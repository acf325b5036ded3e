"""Sliding-window rate limiter for job starts.

Job start times are kept in a Redis sorted set (member = unique token,
score = start time in milliseconds).  Once the worker has reserved the next
job, and before it activates it, the worker *acquires* a slot: entries older
than the window are pruned, and if fewer than ``max_starts`` remain a new
entry is added.  Otherwise the worker sleeps until the oldest entry leaves
the window and tries again.

The reserved job is held while the worker sleeps, so a delayed start never
lets a later job overtake an earlier one, and idle polls of an empty queue
never consume a slot.

The limiter is global to one Redis namespace but does not coordinate across
multiple worker processes beyond what the shared sorted set provides; the
prune/count/add sequence runs in a MULTI block, not a Lua script.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Awaitable, Callable

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class SlidingWindowLimiter:
    """At most ``max_starts`` acquisitions per ``window_seconds``.

    Attributes:
        key: Redis key of the sorted set holding start times.
        max_starts: Window capacity.
        window_seconds: Window length.
    """

    def __init__(
        self,
        client: redis.Redis,
        key: str,
        max_starts: int,
        window_seconds: float,
        *,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._client = client
        self.key = key
        self.max_starts = max_starts
        self.window_seconds = window_seconds
        self._clock = clock
        self._sleep = sleep

    async def try_acquire(self) -> float:
        """Attempt to take a slot without waiting.

        Returns:
            ``0.0`` if a slot was taken, otherwise the number of seconds
            until the oldest start leaves the window.
        """
        now_ms = self._clock() * 1000
        window_ms = self.window_seconds * 1000

        async with self._client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(self.key, "-inf", now_ms - window_ms)
            pipe.zcard(self.key)
            pipe.zrange(self.key, 0, 0, withscores=True)
            _, count, oldest = await pipe.execute()

        if count < self.max_starts:
            await self._client.zadd(self.key, {uuid.uuid4().hex: now_ms})
            await self._client.pexpire(self.key, int(window_ms) + 1000)
            return 0.0

        oldest_ms = oldest[0][1] if oldest else now_ms
        return max((oldest_ms + window_ms - now_ms) / 1000, 0.001)

    async def acquire(self) -> None:
        """Block until a slot is available and take it."""
        while True:
            wait = await self.try_acquire()
            if wait == 0.0:
                return
            logger.info(
                "Rate limit reached (%d starts per %.0fs); waiting %.1fs.",
                self.max_starts,
                self.window_seconds,
                wait,
            )
            await self._sleep(wait)

    async def reset(self) -> None:
        """Forget all recorded starts."""
        await self._client.delete(self.key)
