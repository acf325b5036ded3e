"""Lifecycle owner for one generation pipeline.

:class:`GenerationService` wires the Redis connection, job queue, rate
limiter, completion bridge, storage and synthesis client together, and
optionally runs the single :class:`~prodshot.core.worker.Worker` as a
background task.  Nothing here is a module-level singleton: every
collaborator is built from the config passed in, or injected, so tests can
run several isolated pipelines side by side.

Usage
-----
::

    service = GenerationService(config)
    await service.start()
    result = await service.generate(request)
    await service.stop()

or as an async context manager::

    async with GenerationService(config) as service:
        result = await service.generate(request)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

import redis.asyncio as redis

from prodshot.core.bridge import CompletionBridge
from prodshot.core.config import ProdshotConfig
from prodshot.core.limiter import SlidingWindowLimiter
from prodshot.core.models import GenerationRequest, JobResult
from prodshot.core.queue import JobQueue
from prodshot.core.storage import ImageStorage
from prodshot.core.synthesis import SynthesisClient
from prodshot.core.worker import Worker

logger = logging.getLogger(__name__)


class GenerationService:
    """Owns the queue, bridge and (optionally) the worker for one pipeline.

    Attributes:
        config (ProdshotConfig): Configuration the pipeline was built from.
        storage (ImageStorage): Blob storage, available before :meth:`start`.
        queue (JobQueue | None): Set by :meth:`start`.
        bridge (CompletionBridge | None): Set by :meth:`start`.
        worker (Worker | None): Set by :meth:`start` when running a worker.
    """

    def __init__(
        self,
        config: ProdshotConfig,
        *,
        redis_client: redis.Redis | None = None,
        synthesis: SynthesisClient | None = None,
        storage: ImageStorage | None = None,
        run_worker: bool | None = None,
    ) -> None:
        """Initialise the service without connecting to anything.

        Args:
            config: Application configuration.
            redis_client: Pre-built async Redis client.  When omitted one is
                created from ``config.redis_url`` and closed on :meth:`stop`.
            synthesis: Pre-built synthesis client.
            storage: Pre-built storage.
            run_worker: Run the worker in this process.  Defaults to
                ``config.embedded_worker``.
        """
        self.config = config
        self.storage = storage or ImageStorage(config)
        self._redis = redis_client
        self._owns_redis = redis_client is None
        self._synthesis = synthesis
        self._owns_synthesis = synthesis is None
        self._run_worker = config.embedded_worker if run_worker is None else run_worker

        self.queue: JobQueue | None = None
        self.bridge: CompletionBridge | None = None
        self.worker: Worker | None = None
        self._worker_task: asyncio.Task | None = None

    # -- Lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Connect and, if configured, start the worker task."""
        if self.queue is not None:
            return

        if self._redis is None:
            self._redis = redis.from_url(self.config.redis_url, decode_responses=True)
        if self._synthesis is None:
            self._synthesis = SynthesisClient(self.config)

        self.queue = JobQueue(
            self._redis,
            self.config.queue_name,
            retention_seconds=self.config.job_retention_seconds,
        )
        self.bridge = CompletionBridge(
            self.queue, default_timeout=self.config.job_wait_timeout_seconds
        )

        if self._run_worker:
            limiter = SlidingWindowLimiter(
                self._redis,
                self.queue.limiter_key,
                self.config.rate_limit_max,
                self.config.rate_limit_window_seconds,
            )
            self.worker = Worker(
                self.queue,
                limiter,
                self._synthesis,
                self.storage,
                dequeue_timeout=self.config.dequeue_timeout_seconds,
            )
            self._worker_task = asyncio.create_task(self.worker.run(), name="prodshot-worker")

        logger.info(
            "Generation service started (queue=%r, worker=%s).",
            self.config.queue_name,
            "embedded" if self._run_worker else "external",
        )

    async def stop(self) -> None:
        """Stop the worker task and release owned connections."""
        if self.worker is not None:
            self.worker.stop()
        if self._worker_task is not None:
            self._worker_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker_task
            self._worker_task = None
            self.worker = None

        if self._synthesis is not None and self._owns_synthesis:
            await self._synthesis.aclose()
            self._synthesis = None
        if self._redis is not None and self._owns_redis:
            await self._redis.aclose()
            self._redis = None

        self.queue = None
        self.bridge = None
        logger.info("Generation service stopped.")

    async def __aenter__(self) -> GenerationService:
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.stop()

    async def wait_worker(self) -> None:
        """Block until the worker task exits."""
        if self._worker_task is None:
            raise RuntimeError("No worker is running in this service.")
        await self._worker_task

    # -- Operations ---------------------------------------------------------

    async def generate(
        self,
        request: GenerationRequest,
        timeout: float | None = None,
        *,
        request_id: str | None = None,
    ) -> JobResult:
        """Submit a job and wait for its result.  See :class:`CompletionBridge`."""
        if self.bridge is None:
            raise RuntimeError("GenerationService.start() has not been called.")
        return await self.bridge.submit_and_wait(request, timeout, request_id=request_id)
