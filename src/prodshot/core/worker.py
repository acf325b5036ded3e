"""The single queue consumer that turns jobs into stored product images.

Job Lifecycle
-------------
::

    dequeued -> optimizing-prompt -> generating (index 0..n-1)
             -> persisting (each image right after it is generated)
             -> compositing (only when a logo is requested)
             -> completed | failed

Failure Policy
--------------
- Images are generated strictly one after another; the synthesis endpoint
  and the rate limiter both assume a single in-flight request.
- If image 0 fails to synthesise, the whole job fails (fail-fast).
- If image 1+ fails, it is skipped and generation carries on.
- A storage failure skips that image only.
- A compositing failure keeps the original, uncomposited image.
- A job that ends with zero images is failed, never completed.

Concurrency
-----------
Exactly one job is active at a time: :meth:`Worker.run` processes jobs
inline in its loop.  Before each job starts the worker takes a slot from the
sliding-window limiter, *after* reserving the job but *before* activating it,
so rate-limit delays never reorder the queue.

CLI
---
``prodshot-worker`` runs a standalone worker process against the configured
Redis server (for deployments where the API runs with
``PRODSHOT_EMBEDDED_WORKER=false``).
"""

from __future__ import annotations

import asyncio
import io
import logging
import time
from collections.abc import Callable

from PIL import Image
from redis.exceptions import RedisError

from prodshot.core.compositor import apply_logo
from prodshot.core.errors import (
    ProdshotError,
    StorageError,
    SynthesisError,
)
from prodshot.core.limiter import SlidingWindowLimiter
from prodshot.core.models import GeneratedImage, ImageLogo, Job, JobResult
from prodshot.core.prompt_builder import description_preview, optimize_prompt
from prodshot.core.queue import JobQueue
from prodshot.core.storage import ImageStorage, image_filename, new_batch_id
from prodshot.core.synthesis import SynthesisClient

logger = logging.getLogger(__name__)


def fit_to_resolution(data: bytes, width: int, height: int) -> bytes:
    """Re-encode *data* as PNG at exactly ``width x height``.

    PNG images already at the requested size are returned unchanged.

    Raises:
        SynthesisError: The service returned bytes that are not a usable image.
    """
    try:
        with Image.open(io.BytesIO(data)) as image:
            if image.size == (width, height) and image.format == "PNG":
                return data
            image.load()
            if image.size == (width, height):
                fitted = image.copy()
            else:
                fitted = image.resize((width, height), Image.Resampling.LANCZOS)
    except (OSError, Image.DecompressionBombError) as exc:
        raise SynthesisError(f"Synthesis returned an unreadable image: {exc}") from exc

    # PNG has no CMYK or YCbCr mode.
    if fitted.mode in ("CMYK", "YCbCr"):
        fitted = fitted.convert("RGB")

    output = io.BytesIO()
    fitted.save(output, format="PNG")
    return output.getvalue()


class Worker:
    """Drains the job queue one job at a time.

    Attributes:
        _queue (JobQueue): Source of jobs and sink for terminal events.
        _limiter (SlidingWindowLimiter): Job-start rate limit.
        _synthesis (SynthesisClient): External image generation.
        _storage (ImageStorage): Image and logo blob storage.
    """

    def __init__(
        self,
        queue: JobQueue,
        limiter: SlidingWindowLimiter,
        synthesis: SynthesisClient,
        storage: ImageStorage,
        *,
        dequeue_timeout: float = 5,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._queue = queue
        self._limiter = limiter
        self._synthesis = synthesis
        self._storage = storage
        self._dequeue_timeout = dequeue_timeout
        self._clock = clock
        self._running = False

    # -- Loop ---------------------------------------------------------------

    async def run(self) -> None:
        """Consume jobs until :meth:`stop` is called or the task is cancelled."""
        self._running = True
        await self._queue.recover_stalled()
        logger.info("Worker ready and listening for jobs on queue %r.", self._queue.name)

        while self._running:
            try:
                await self.run_once()
            except RedisError:
                logger.exception(
                    "Queue unavailable; retrying in %.0fs.", self._dequeue_timeout
                )
                await asyncio.sleep(self._dequeue_timeout)
            except Exception:
                logger.exception("Unexpected worker error; continuing with the next job.")

        logger.info("Worker stopped.")

    async def run_once(self) -> bool:
        """Wait for, rate-limit, and process at most one job.

        Returns:
            ``True`` if a job was processed.
        """
        job_id = await self._queue.reserve_next(self._dequeue_timeout)
        if job_id is None:
            return False

        await self._limiter.acquire()

        job = await self._queue.activate(job_id)
        if job is None:
            return False

        await self.handle(job)
        return True

    def stop(self) -> None:
        """Ask the loop to exit after the current job."""
        self._running = False

    async def handle(self, job: Job) -> None:
        """Process *job* and publish its terminal state."""
        try:
            result = await self.process(job)
        except Exception as exc:
            logger.error("Job %s failed: %s", job.id, exc, exc_info=True)
            await self._queue.fail(job.id, str(exc) or type(exc).__name__)
            return

        await self._queue.complete(job.id, result)
        logger.info("Job %s completed: %d image(s) saved.", job.id, len(result.images))

    # -- Job processing -----------------------------------------------------

    async def process(self, job: Job) -> JobResult:
        """Run the generation pipeline for one job.

        Returns:
            :class:`JobResult` with at least one image.

        Raises:
            SynthesisError: The first image could not be generated.
            ProdshotError: No image survived generation and storage.
        """
        request = job.request
        num_images = request.settings.num_images
        width, height = request.settings.dimensions

        logger.info(
            'Starting job %s: "%s" (%d image(s) at %s [%s/%s/%s])',
            job.id,
            description_preview(request.description),
            num_images,
            request.settings.resolution,
            request.category,
            request.style,
            request.angle,
        )

        optimized = optimize_prompt(
            request.description,
            request.category,
            request.style,
            request.angle,
            request.color,
        )

        batch_id = new_batch_id()
        timestamp_ms = int(self._clock() * 1000)
        stored: list[GeneratedImage] = []

        for index in range(num_images):
            logger.info("Job %s: generating image %d/%d.", job.id, index + 1, num_images)
            try:
                data = await self._synthesis.generate(
                    optimized.prompt, optimized.negative_prompt
                )
                data = await asyncio.to_thread(fit_to_resolution, data, width, height)
            except SynthesisError:
                if index == 0:
                    raise
                logger.warning(
                    "Job %s: skipping image %d/%d after synthesis failure.",
                    job.id,
                    index + 1,
                    num_images,
                    exc_info=True,
                )
                continue

            filename = image_filename(timestamp_ms, batch_id, index)
            try:
                saved = await asyncio.to_thread(self._storage.put, data, filename)
            except StorageError:
                logger.exception("Job %s: failed to save image %d.", job.id, index + 1)
                continue
            stored.append(GeneratedImage(url=saved.url, filename=saved.filename))

        if request.wants_logo:
            for position, image in enumerate(stored, start=1):
                await self._composite(job, image, position, len(stored))

        if not stored:
            raise ProdshotError("No images were produced")

        return JobResult(images=stored, prompt=optimized.prompt)

    async def _composite(
        self, job: Job, image: GeneratedImage, position: int, total: int
    ) -> None:
        """Apply the job's logo to one stored image in place.

        On any failure the stored original is left untouched.
        """
        logo = job.request.logo
        try:
            logo_path = (
                self._storage.logo_path(logo.content) if isinstance(logo, ImageLogo) else None
            )
            original = await asyncio.to_thread(self._storage.get, image.filename)
            composited = await asyncio.to_thread(apply_logo, original, logo, logo_path)
            await asyncio.to_thread(self._storage.put, composited, image.filename)
        except Exception:
            logger.exception(
                "Job %s: failed to apply logo to image %d/%d; keeping original.",
                job.id,
                position,
                total,
            )
            return

        logger.info("Job %s: logo applied to image %d/%d.", job.id, position, total)


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Run a standalone worker process until interrupted.

    Registered as the ``prodshot-worker`` console script in ``pyproject.toml``.
    """
    from prodshot.core.config import config
    from prodshot.core.service import GenerationService

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    async def _serve() -> None:
        service = GenerationService(config, run_worker=True)
        await service.start()
        try:
            await service.wait_worker()
        finally:
            await service.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        logger.info("Worker interrupted.")


if __name__ == "__main__":
    main()
