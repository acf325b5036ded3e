"""Integration tests for prodshot.core.service - a whole pipeline in-process.

A :class:`GenerationService` runs its embedded worker against fake Redis and
a scripted synthesis client, so submit-and-wait is exercised end to end:
queue, limiter, worker, storage, compositor and completion bridge.
"""

from __future__ import annotations

import asyncio

import pytest

from prodshot.core.errors import JobFailedError, JobTimeoutError, SynthesisError
from prodshot.core.models import GenerationRequest
from prodshot.core.service import GenerationService


def _service(test_config, fake_redis, synthesis, storage, **kwargs) -> GenerationService:
    return GenerationService(
        test_config,
        redis_client=fake_redis,
        synthesis=synthesis,
        storage=storage,
        **kwargs,
    )


class TestEndToEnd:
    """Submit a request and receive stored images."""

    def test_generate_with_embedded_worker(
        self, test_config, fake_redis, fake_synthesis, storage, png_reader
    ):
        request = GenerationRequest(
            description="Red running shoe, mesh upper",
            category="footwear",
            settings={"numImages": 2, "resolution": "512x512"},
            logo={"type": "text", "content": "ACME", "position": "bottom-right"},
        )

        async def scenario():
            async with _service(
                test_config, fake_redis, fake_synthesis, storage, run_worker=True
            ) as service:
                return await service.generate(request, timeout=10)

        result = asyncio.run(scenario())

        assert len(result.images) == 2
        assert "Red running shoe" in result.prompt
        for image in result.images:
            assert png_reader(storage.get(image.filename)).size == (512, 512)
        assert sorted(storage.list()) == sorted(img.filename for img in result.images)

    def test_failed_job_raises(self, test_config, fake_redis, synthesis_factory, storage):
        synthesis = synthesis_factory([SynthesisError("quota exceeded", status_code=429)])

        async def scenario():
            async with _service(
                test_config, fake_redis, synthesis, storage, run_worker=True
            ) as service:
                await service.generate(GenerationRequest(description="Mug"), timeout=10)

        with pytest.raises(JobFailedError, match="quota exceeded"):
            asyncio.run(scenario())

    def test_without_worker_times_out(self, test_config, fake_redis, fake_synthesis, storage):
        """With the worker running elsewhere, a waiter times out but the job stays queued."""

        async def scenario():
            async with _service(
                test_config, fake_redis, fake_synthesis, storage, run_worker=False
            ) as service:
                with pytest.raises(JobTimeoutError):
                    await service.generate(GenerationRequest(description="Mug"), timeout=0.1)
                return await service.queue.waiting_count()

        assert asyncio.run(scenario()) == 1
        assert fake_synthesis.calls == []


class TestLifecycle:
    """start() and stop() manage the worker and owned resources."""

    def test_generate_before_start(self, test_config, fake_redis, fake_synthesis, storage):
        service = _service(test_config, fake_redis, fake_synthesis, storage)
        with pytest.raises(RuntimeError):
            asyncio.run(service.generate(GenerationRequest(description="Mug")))

    def test_injected_clients_are_not_closed(
        self, test_config, fake_redis, fake_synthesis, storage
    ):
        async def scenario():
            service = _service(test_config, fake_redis, fake_synthesis, storage, run_worker=True)
            await service.start()
            assert service.worker is not None
            await service.stop()
            return service

        service = asyncio.run(scenario())
        assert service.worker is None
        assert service.queue is None
        assert fake_synthesis.closed is False

    def test_wait_worker_requires_worker(self, test_config, fake_redis, fake_synthesis, storage):
        async def scenario():
            async with _service(
                test_config, fake_redis, fake_synthesis, storage, run_worker=False
            ) as service:
                await service.wait_worker()

        with pytest.raises(RuntimeError):
            asyncio.run(scenario())
