"""Prodshot - FastAPI Application.

This module is the HTTP entry point.  It defines the FastAPI ``app``
instance, the REST routes, and the ``main()`` CLI function that launches the
uvicorn server.

Architecture
------------
- **Generation** is delegated to a :class:`~prodshot.core.service.GenerationService`
  created in the application lifespan and stored on ``app.state``.  The
  route blocks on the service's completion bridge, so callers get finished
  images in a single request/response even though the work runs on the
  Redis-backed queue.
- **Storage** is two flat directories served by ``StaticFiles`` under
  ``/generated`` and ``/logos``.
- **Validation** failures (pydantic or semantic) are answered with HTTP 400
  and nothing is enqueued.

Endpoints
---------
========  ==========================  ======================================
Method    Path                        Purpose
========  ==========================  ======================================
GET       ``/health``                 Liveness check
POST      ``/api/generate``           Generate product images (blocking)
POST      ``/api/upload-logo``        Upload a logo file for image overlays
GET       ``/api/images``             List stored generated images
DELETE    ``/api/images/{filename}``  Delete a generated image
========  ==========================  ======================================

Usage
-----
CLI (installed entry point)::

    prodshot

Direct invocation::

    python -m prodshot.api.main
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from redis.exceptions import RedisError

from prodshot import __version__
from prodshot.api.models import GenerateResponse, GenerationMetadata, UploadLogoResponse
from prodshot.core.config import config
from prodshot.core.errors import ProdshotError, RequestValidationFailed
from prodshot.core.keep_alive import keep_alive_loop
from prodshot.core.models import GenerationRequest
from prodshot.core.prompt_builder import description_preview
from prodshot.core.service import GenerationService

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Application lifecycle - generation service setup and teardown.
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application startup and shutdown lifecycle.

    On startup:
        Builds and starts a :class:`GenerationService` (which runs the
        embedded worker unless ``PRODSHOT_EMBEDDED_WORKER=false``) and stores
        it on ``app.state``.  Starts the keep-alive loop when
        ``PRODSHOT_KEEP_ALIVE_URL`` is configured.

    On shutdown:
        Cancels the keep-alive loop and stops the service, closing its Redis
        and HTTP connections.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control back to the application for the duration of its lifetime.
    """
    # --- Startup -----------------------------------------------------------
    service = GenerationService(config)
    await service.start()
    app.state.generation_service = service

    keep_alive_task: asyncio.Task | None = None
    if config.keep_alive_url:
        keep_alive_task = asyncio.create_task(
            keep_alive_loop(config.keep_alive_url, config.keep_alive_interval_seconds)
        )

    yield  # Application runs here.

    # --- Shutdown ----------------------------------------------------------
    if keep_alive_task is not None:
        keep_alive_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await keep_alive_task
    await service.stop()


# ---------------------------------------------------------------------------
# FastAPI application instance.
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Prodshot",
    description="Product photography generation with logo and watermark overlays.",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Generated images and uploaded logos are served straight from disk.
app.mount(
    config.generated_url_prefix,
    StaticFiles(directory=str(config.generated_dir)),
    name="generated",
)
app.mount(
    config.logos_url_prefix,
    StaticFiles(directory=str(config.logos_dir)),
    name="logos",
)


def _service() -> GenerationService:
    return app.state.generation_service


def _format_validation_errors(exc: RequestValidationError) -> str:
    """Flatten pydantic errors into one human-readable sentence."""
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()) if part != "body")
        message = error.get("msg", "Invalid value").removeprefix("Value error, ")
        messages.append(f"{location}: {message}" if location else message)
    return "; ".join(messages) or "Invalid request"


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Answer malformed requests with 400 and the standard failure body."""
    message = _format_validation_errors(exc)
    logger.info("Rejected invalid request to %s: %s", request.url.path, message)
    body = GenerateResponse(success=False, error=message)
    return JSONResponse(status_code=400, content=body.model_dump(by_alias=True))


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------


@app.get("/health")
async def health() -> dict:
    """Liveness check used by hosts and the keep-alive loop."""
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/api/generate")
async def generate_images(req: GenerationRequest) -> JSONResponse:
    """Generate product images and wait for the result.

    The request is validated (defaults applied) by FastAPI, submitted to the
    queue, and the handler blocks until the worker reports a terminal state
    or the configured timeout elapses.

    Args:
        req: Validated :class:`GenerationRequest` payload.

    Returns:
        :class:`GenerateResponse` as JSON: 200 on success, 500 with
        ``images: []`` when the job failed or timed out.
    """
    started = time.monotonic()
    metadata = GenerationMetadata(settings=req.settings)

    logger.info(
        'Generating %d image(s) for: "%s"%s',
        req.settings.num_images,
        description_preview(req.description),
        f" in {req.color}" if req.color else "",
    )

    try:
        result = await _service().generate(req, request_id=str(uuid.uuid4()))
    except (ProdshotError, RedisError) as exc:
        elapsed = int((time.monotonic() - started) * 1000)
        logger.error("Generation failed after %dms: %s", elapsed, exc)
        body = GenerateResponse(
            success=False,
            metadata=metadata,
            processing_time=elapsed,
            error=str(exc) or type(exc).__name__,
        )
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True))

    elapsed = int((time.monotonic() - started) * 1000)
    logger.info("Generation finished in %dms with %d image(s).", elapsed, len(result.images))

    metadata.prompt = result.prompt
    body = GenerateResponse(
        success=True,
        images=result.images,
        metadata=metadata,
        processing_time=elapsed,
    )
    return JSONResponse(content=body.model_dump(by_alias=True))


@app.post("/api/upload-logo")
async def upload_logo(logo: UploadFile | None = File(default=None)) -> JSONResponse:
    """Store an uploaded logo for use with ``logo.type = "image"``.

    Args:
        logo: Multipart file field named ``logo``.

    Returns:
        :class:`UploadLogoResponse` as JSON: 200 with the stored filename and
        URL, 400 for a missing, oversized or unsupported file.
    """
    if logo is None or not logo.filename:
        body = UploadLogoResponse(success=False, error="No logo file provided")
        return JSONResponse(status_code=400, content=body.model_dump(by_alias=True))

    storage = _service().storage
    # Read one byte past the cap so oversize uploads are detected without
    # buffering arbitrarily large bodies.
    data = await logo.read(config.logo_max_file_bytes + 1)

    logger.info("Uploading logo: %s (%d bytes)", logo.filename, len(data))
    try:
        stored = await asyncio.to_thread(storage.save_logo, data, logo.filename)
    except RequestValidationFailed as exc:
        body = UploadLogoResponse(success=False, error=str(exc))
        return JSONResponse(status_code=400, content=body.model_dump(by_alias=True))
    except ProdshotError as exc:
        logger.error("Logo upload failed: %s", exc)
        body = UploadLogoResponse(success=False, error=str(exc))
        return JSONResponse(status_code=500, content=body.model_dump(by_alias=True))

    body = UploadLogoResponse(success=True, filename=stored.filename, url=stored.url)
    return JSONResponse(content=body.model_dump(by_alias=True))


@app.get("/api/images")
async def list_images() -> dict:
    """List stored generated images, newest filename first."""
    storage = _service().storage
    filenames = sorted(await asyncio.to_thread(storage.list), reverse=True)
    return {
        "images": [{"url": storage.url_for(name), "filename": name} for name in filenames],
    }


@app.delete("/api/images/{filename}")
async def delete_image(filename: str) -> dict:
    """Delete a generated image from storage.

    Raises:
        HTTPException: 404 if the image does not exist.
    """
    if not await asyncio.to_thread(_service().storage.delete, filename):
        raise HTTPException(status_code=404, detail="Image not found")
    return {"success": True, "deleted": filename}


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host and port from :data:`~prodshot.core.config.config` (which
    loads from ``PRODSHOT_SERVER_HOST`` and ``PRODSHOT_SERVER_PORT``).

    This function is registered as the ``prodshot`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    uvicorn.run(
        "prodshot.api.main:app",
        host=config.server_host,
        port=config.server_port,
        reload=False,
    )


if __name__ == "__main__":
    main()
