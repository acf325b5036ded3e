"""Blocking request/response bridge over the asynchronous job queue.

HTTP callers expect ``POST /api/generate`` to answer with finished images,
while the work itself runs on the queue's single worker, possibly in another
process.  :class:`CompletionBridge` closes that gap:

1. allocate a job id
2. subscribe to that job's event channel
3. enqueue the job
4. await the first terminal event on the channel

Subscribing before enqueueing means the terminal event cannot be published
before anyone is listening.  The job hash is also consulted once after
subscribing, so an outcome that is already recorded (for example on a
redelivered wait) is observed without waiting for a new event.

A timeout only stops the waiting.  The job is not cancelled and finishes in
the background; its record expires after the queue's retention period.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from prodshot.core.errors import JobFailedError, JobTimeoutError
from prodshot.core.models import GenerationRequest, JobResult, JobState
from prodshot.core.queue import JobQueue, new_job_id

logger = logging.getLogger(__name__)


class CompletionBridge:
    """Submit a job and wait for exactly that job's terminal state."""

    def __init__(self, queue: JobQueue, default_timeout: float = 300.0) -> None:
        self._queue = queue
        self._default_timeout = default_timeout

    async def submit_and_wait(
        self,
        request: GenerationRequest,
        timeout: float | None = None,
        *,
        request_id: str | None = None,
    ) -> JobResult:
        """Enqueue *request* and block until its job completes or fails.

        Args:
            request: Validated generation request.
            timeout: Seconds to wait; defaults to the bridge's default.
            request_id: Optional caller correlation id.

        Returns:
            The job's :class:`JobResult`.

        Raises:
            JobFailedError: The worker reported a failure.
            JobTimeoutError: *timeout* elapsed first.  The job keeps running.
        """
        timeout = self._default_timeout if timeout is None else timeout
        job_id = new_job_id()
        channel = self._queue.events_channel(job_id)

        pubsub = self._queue.client.pubsub()
        await pubsub.subscribe(channel)
        try:
            await self._queue.enqueue(request, request_id=request_id, job_id=job_id)
            logger.info("Waiting for job %s (timeout %.0fs).", job_id, timeout)
            try:
                event = await asyncio.wait_for(self._wait_for_event(job_id, pubsub), timeout)
            except asyncio.TimeoutError:
                logger.warning("Stopped waiting for job %s after %.0fs.", job_id, timeout)
                raise JobTimeoutError(job_id, timeout) from None
        finally:
            await pubsub.unsubscribe(channel)
            await pubsub.aclose()

        if event["state"] == JobState.COMPLETED.value:
            return JobResult.model_validate(event["result"])
        raise JobFailedError(job_id, event.get("error") or "Job failed")

    async def _wait_for_event(self, job_id: str, pubsub) -> dict[str, Any]:
        """Return the first terminal event for *job_id*."""
        recorded = await self._queue.get(job_id)
        if recorded is not None and recorded.state.is_terminal:
            return self._event_from_job(recorded)

        async for message in pubsub.listen():
            if message.get("type") != "message":
                continue
            data = message["data"]
            if isinstance(data, bytes):
                data = data.decode("utf-8")
            event = json.loads(data)
            if event.get("state") in (JobState.COMPLETED.value, JobState.FAILED.value):
                return event

        # The subscription closed underneath us; fall back to the stored record.
        recorded = await self._queue.get(job_id)
        if recorded is not None and recorded.state.is_terminal:
            return self._event_from_job(recorded)
        raise JobFailedError(job_id, "Event channel closed before the job finished")

    @staticmethod
    def _event_from_job(job) -> dict[str, Any]:
        if job.state is JobState.COMPLETED and job.result is not None:
            return {"state": job.state.value, "result": job.result.model_dump(by_alias=True)}
        return {"state": JobState.FAILED.value, "error": job.error}
