"""Durable FIFO job queue backed by Redis.

Layout (``{name}`` is the configured queue name)::

    {name}:wait           LIST   job ids waiting to run, oldest at the head
    {name}:active         LIST   job ids reserved by the worker
    {name}:job:{id}       HASH   id, request_id, request (JSON), state,
                                 created_at, result (JSON), error
    {name}:events:{id}    PUBSUB terminal event for one job

Producers append to ``wait`` and never block on processing.  The single
worker moves the head of ``wait`` to ``active`` with a blocking ``BLMOVE``,
so a job reserved by a worker that dies mid-flight is not lost:
:meth:`JobQueue.recover_stalled` puts it back at the head of ``wait`` on the
next start.

Terminal transitions write the result into the job hash (then set a TTL of
``retention_seconds``) *before* publishing the event, so a waiter that
subscribes late can still read the outcome from the hash.
"""

from __future__ import annotations

import json
import logging
import time
import uuid
from typing import Any

import redis.asyncio as redis

from prodshot.core.models import GenerationRequest, Job, JobResult, JobState

logger = logging.getLogger(__name__)


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def new_job_id() -> str:
    """Generate a unique job identifier."""
    return uuid.uuid4().hex


class JobQueue:
    """FIFO job store with a per-job terminal-event channel.

    Attributes:
        client: Async Redis client.
        name: Key namespace.
        retention_seconds: TTL applied to terminal job records.
    """

    def __init__(self, client: redis.Redis, name: str, retention_seconds: int = 3600) -> None:
        self.client = client
        self.name = name
        self.retention_seconds = retention_seconds

    # -- Keys ---------------------------------------------------------------

    @property
    def wait_key(self) -> str:
        return f"{self.name}:wait"

    @property
    def active_key(self) -> str:
        return f"{self.name}:active"

    @property
    def limiter_key(self) -> str:
        return f"{self.name}:limiter"

    def job_key(self, job_id: str) -> str:
        return f"{self.name}:job:{job_id}"

    def events_channel(self, job_id: str) -> str:
        return f"{self.name}:events:{job_id}"

    # -- Producer side ------------------------------------------------------

    async def enqueue(
        self,
        request: GenerationRequest,
        *,
        request_id: str | None = None,
        job_id: str | None = None,
    ) -> Job:
        """Store a job and append it to the wait list.

        Args:
            request: Validated request; its defaults are serialised as-is.
            request_id: Caller correlation id (generated when omitted).
            job_id: Pre-allocated job id, used by waiters that subscribe to
                the event channel before enqueueing.

        Returns:
            The stored :class:`Job` in state ``WAITING``.
        """
        job = Job(
            id=job_id or new_job_id(),
            request_id=request_id or str(uuid.uuid4()),
            request=request,
        )

        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(
                self.job_key(job.id),
                mapping={
                    "id": job.id,
                    "request_id": job.request_id,
                    "request": request.model_dump_json(by_alias=True),
                    "state": job.state.value,
                    "created_at": repr(job.created_at),
                },
            )
            pipe.rpush(self.wait_key, job.id)
            await pipe.execute()

        logger.info("Job %s enqueued (request %s).", job.id, job.request_id)
        return job

    async def get(self, job_id: str) -> Job | None:
        """Load a job record, or ``None`` if it does not exist (or expired)."""
        raw = await self.client.hgetall(self.job_key(job_id))
        if not raw:
            return None
        data = {_text(k): _text(v) for k, v in raw.items()}
        if "request" not in data:
            return None

        result = data.get("result")
        return Job(
            id=data["id"],
            request_id=data.get("request_id") or "",
            request=GenerationRequest.model_validate_json(data["request"]),
            state=JobState(data.get("state") or JobState.WAITING.value),
            created_at=float(data.get("created_at") or 0.0),
            result=JobResult.model_validate_json(result) if result else None,
            error=data.get("error"),
        )

    async def waiting_count(self) -> int:
        """Number of jobs not yet reserved by the worker."""
        return await self.client.llen(self.wait_key)

    # -- Consumer side ------------------------------------------------------

    async def reserve_next(self, timeout: float) -> str | None:
        """Move the oldest waiting job id to the active list.

        Blocks for up to *timeout* seconds.  Returns ``None`` on timeout.
        """
        job_id = await self.client.blmove(
            self.wait_key, self.active_key, timeout, "LEFT", "RIGHT"
        )
        return _text(job_id)

    async def activate(self, job_id: str) -> Job | None:
        """Mark a reserved job active and return it.

        A reserved id whose record has vanished is dropped from the active
        list and ``None`` is returned.  A record that no longer decodes is
        failed and ``None`` is returned.
        """
        try:
            job = await self.get(job_id)
        except (KeyError, ValueError) as exc:
            logger.error("Job %s has an unreadable record; failing it: %s", job_id, exc)
            await self.fail(job_id, f"Invalid job record: {exc}")
            return None

        if job is None:
            logger.warning("Job %s has no record; dropping it.", job_id)
            await self.client.lrem(self.active_key, 0, job_id)
            return None

        await self.client.hset(self.job_key(job_id), "state", JobState.ACTIVE.value)
        job.state = JobState.ACTIVE
        return job

    async def dequeue_next(self, timeout: float) -> Job | None:
        """Reserve and activate the next job in FIFO order."""
        while True:
            job_id = await self.reserve_next(timeout)
            if job_id is None:
                return None
            job = await self.activate(job_id)
            if job is not None:
                return job

    async def complete(self, job_id: str, result: JobResult) -> None:
        """Record a successful terminal transition and notify the waiter."""
        await self._finish(
            job_id,
            JobState.COMPLETED,
            {"result": result.model_dump_json(by_alias=True)},
            {"state": JobState.COMPLETED.value, "result": result.model_dump(by_alias=True)},
        )

    async def fail(self, job_id: str, error: str) -> None:
        """Record a failed terminal transition and notify the waiter."""
        await self._finish(
            job_id,
            JobState.FAILED,
            {"error": error},
            {"state": JobState.FAILED.value, "error": error},
        )

    async def _finish(
        self,
        job_id: str,
        state: JobState,
        fields: dict[str, str],
        event: dict[str, Any],
    ) -> None:
        key = self.job_key(job_id)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.hset(key, mapping={"state": state.value, "finished_at": repr(time.time()), **fields})
            pipe.expire(key, self.retention_seconds)
            pipe.lrem(self.active_key, 0, job_id)
            await pipe.execute()

        await self.client.publish(self.events_channel(job_id), json.dumps(event))

    async def recover_stalled(self) -> int:
        """Return jobs left in the active list to the head of the wait list.

        Called once when a worker starts.  Preserves their original order.

        Returns:
            Number of recovered jobs.
        """
        recovered = 0
        while True:
            # Tail of active to head of wait, so the original order survives.
            job_id = _text(await self.client.lmove(self.active_key, self.wait_key, "RIGHT", "LEFT"))
            if job_id is None:
                break
            key = self.job_key(job_id)
            if await self.client.exists(key):
                await self.client.hset(key, "state", JobState.WAITING.value)
            recovered += 1

        if recovered:
            logger.warning("Recovered %d stalled job(s) from a previous worker.", recovered)
        return recovered
