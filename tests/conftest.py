"""Shared pytest fixtures for Prodshot tests."""

from __future__ import annotations

import io
import shutil
import tempfile
import uuid
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import fakeredis
import pytest
from PIL import Image

from prodshot.core.config import ProdshotConfig
from prodshot.core.storage import ImageStorage


def make_png(
    size: tuple[int, int] = (64, 64),
    color: tuple[int, ...] = (200, 30, 30),
    mode: str = "RGB",
) -> bytes:
    """Encode a solid-colour PNG.

    Args:
        size: ``(width, height)`` of the image.
        color: Fill colour matching *mode*.
        mode: Pillow image mode.

    Returns:
        PNG-encoded bytes.
    """
    buffer = io.BytesIO()
    Image.new(mode, size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def open_png(data: bytes) -> Image.Image:
    """Decode image bytes into a loaded Pillow image."""
    with Image.open(io.BytesIO(data)) as image:
        image.load()
        return image.copy()


class FakeSynthesis:
    """Scripted stand-in for :class:`~prodshot.core.synthesis.SynthesisClient`.

    Each call to :meth:`generate` consumes the next scripted outcome: bytes
    are returned, exceptions are raised.  Once the script is exhausted every
    call returns ``default``.

    Attributes:
        calls: ``(prompt, negative_prompt)`` for every call, in order.
    """

    def __init__(self, outcomes: list | None = None, default: bytes | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.default = default if default is not None else make_png((1024, 1024))
        self.calls: list[tuple[str, str]] = []
        self.closed = False

    async def generate(self, prompt: str, negative_prompt: str) -> bytes:
        self.calls.append((prompt, negative_prompt))
        if not self.outcomes:
            return self.default
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files.

    Yields:
        Path to temporary directory

    Cleanup:
        Directory is removed after test completes
    """
    temp_path = Path(tempfile.mkdtemp())
    try:
        yield temp_path
    finally:
        shutil.rmtree(temp_path, ignore_errors=True)


@pytest.fixture
def test_config(temp_dir: Path) -> ProdshotConfig:
    """Create a test configuration with temporary directories.

    The queue name is unique per test so Redis keys never leak between
    tests, and a dummy inference token is set so synthesis calls reach the
    (mocked) transport.

    Args:
        temp_dir: Temporary directory from fixture

    Returns:
        ProdshotConfig instance for testing
    """
    return ProdshotConfig(
        generated_dir=temp_dir / "generated",
        logos_dir=temp_dir / "logos",
        queue_name=f"test-{uuid.uuid4().hex[:8]}",
        hf_api_token="hf_test_token",
        rate_limit_max=5,
        rate_limit_window_seconds=60.0,
        job_wait_timeout_seconds=5.0,
        dequeue_timeout_seconds=1,
        embedded_worker=False,
        _env_file=None,
    )


@pytest.fixture
def storage(test_config: ProdshotConfig) -> ImageStorage:
    """Image storage rooted in the test directories."""
    return ImageStorage(test_config)


@pytest.fixture
def fake_redis() -> fakeredis.FakeAsyncRedis:
    """Isolated in-memory async Redis.

    Each test gets its own server.  Use it from a single ``asyncio.run``
    call per test; the client binds its connection to the first event loop.
    """
    return fakeredis.FakeAsyncRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def png_factory() -> Callable[..., bytes]:
    """Factory for solid-colour PNG bytes (see :func:`make_png`)."""
    return make_png


@pytest.fixture
def png_reader() -> Callable[[bytes], Image.Image]:
    """Decoder for image bytes (see :func:`open_png`)."""
    return open_png


@pytest.fixture
def synthesis_factory() -> type[FakeSynthesis]:
    """The scripted synthesis class, for tests that need a custom script."""
    return FakeSynthesis


@pytest.fixture
def fake_synthesis() -> FakeSynthesis:
    """Synthesis client that always returns a 1024x1024 PNG."""
    return FakeSynthesis()
