"""Filesystem blob storage for generated images and uploaded logos.

Two flat directories are managed here:

- the generated-image directory, served under ``generated_url_prefix``
- the logo directory, served under ``logos_url_prefix``

Filenames are the only identifiers.  Generated images are named
``img_{timestamp}_{batchId}_{index}.png`` where one timestamp and one short
random batch id are shared by every image of a job, so concurrent writers
never collide and no locking is needed.

Writes are best-effort and not atomic across a batch: a failure writing one
image raises :class:`~prodshot.core.errors.StorageError` for that image only,
and the caller decides whether to carry on.
"""

from __future__ import annotations

import logging
import time
import uuid
from pathlib import Path
from typing import NamedTuple

from prodshot.core.config import ProdshotConfig
from prodshot.core.errors import RequestValidationFailed, StorageError

logger = logging.getLogger(__name__)

IMAGE_PREFIX = "img_"
IMAGE_EXTENSION = ".png"
BATCH_ID_LENGTH = 8

ALLOWED_LOGO_EXTENSIONS = frozenset({"png", "jpg", "jpeg", "webp", "svg"})


class StoredFile(NamedTuple):
    """Result of a storage write."""

    filename: str
    url: str


def new_batch_id() -> str:
    """Return a short random identifier shared by all images of one job."""
    return uuid.uuid4().hex[:BATCH_ID_LENGTH]


def image_filename(timestamp_ms: int, batch_id: str, index: int) -> str:
    """Build the collision-free filename for image *index* of a batch."""
    return f"{IMAGE_PREFIX}{timestamp_ms}_{batch_id}_{index}{IMAGE_EXTENSION}"


def logo_extension(filename: str) -> str:
    """Lower-cased extension of *filename* without the dot."""
    return Path(filename).suffix.lower().lstrip(".")


def is_valid_logo_format(filename: str) -> bool:
    """Whether *filename* has an extension accepted for logo uploads."""
    return logo_extension(filename) in ALLOWED_LOGO_EXTENSIONS


def _safe_name(filename: str) -> str:
    """Reject names that would escape the storage directory."""
    name = Path(filename).name
    if not name or name != filename or name in (".", ".."):
        raise StorageError(f"Invalid filename: {filename!r}")
    return name


class ImageStorage:
    """Blob storage over the generated-image and logo directories.

    Attributes:
        generated_dir: Directory holding generated images.
        logos_dir: Directory holding uploaded logos.
    """

    def __init__(self, config: ProdshotConfig) -> None:
        self.generated_dir = Path(config.generated_dir)
        self.logos_dir = Path(config.logos_dir)
        self._generated_prefix = config.generated_url_prefix.rstrip("/")
        self._logos_prefix = config.logos_url_prefix.rstrip("/")
        self._max_logo_bytes = config.logo_max_file_bytes

        self.generated_dir.mkdir(parents=True, exist_ok=True)
        self.logos_dir.mkdir(parents=True, exist_ok=True)

    # -- Generated images ---------------------------------------------------

    def image_path(self, filename: str) -> Path:
        """Absolute path of a generated image."""
        return self.generated_dir / _safe_name(filename)

    def url_for(self, filename: str) -> str:
        """Public URL of a generated image."""
        return f"{self._generated_prefix}/{filename}"

    def put(self, data: bytes, filename: str | None = None) -> StoredFile:
        """Write image bytes, overwriting any existing file of the same name.

        Args:
            data: Encoded image bytes.
            filename: Target filename.  A fresh single-image name is generated
                when omitted.

        Returns:
            :class:`StoredFile` with the filename and public URL.

        Raises:
            StorageError: If the file cannot be written.
        """
        if filename is None:
            filename = image_filename(int(time.time() * 1000), new_batch_id(), 0)

        path = self.image_path(filename)
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to write {filename}: {exc}") from exc

        logger.info("Saved image: %s", filename)
        return StoredFile(filename=filename, url=self.url_for(filename))

    def get(self, filename: str) -> bytes:
        """Read a generated image.

        Raises:
            StorageError: If the file is missing or unreadable.
        """
        path = self.image_path(filename)
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {filename}: {exc}") from exc

    def delete(self, filename: str) -> bool:
        """Delete a generated image.

        Returns:
            ``True`` if a file was removed, ``False`` if it did not exist or
            could not be removed.
        """
        try:
            path = self.image_path(filename)
        except StorageError:
            return False

        if not path.exists():
            return False

        try:
            path.unlink()
        except OSError:
            logger.exception("Failed to delete image: %s", filename)
            return False
        return True

    def list(self) -> list[str]:
        """Filenames of all stored generated images, oldest name first."""
        return sorted(
            entry.name
            for entry in self.generated_dir.iterdir()
            if entry.is_file() and entry.suffix == IMAGE_EXTENSION
        )

    # -- Logos --------------------------------------------------------------

    def save_logo(self, data: bytes, original_name: str) -> StoredFile:
        """Persist an uploaded logo under a fresh unique name.

        Args:
            data: Raw uploaded bytes.
            original_name: Client-side filename, used only for its extension.

        Returns:
            :class:`StoredFile` for the saved logo.

        Raises:
            RequestValidationFailed: Empty upload, oversized upload, or
                unsupported extension.
            StorageError: If the file cannot be written.
        """
        if not data:
            raise RequestValidationFailed("No logo file provided")
        if len(data) > self._max_logo_bytes:
            raise RequestValidationFailed(
                f"Logo file exceeds the {self._max_logo_bytes // (1024 * 1024)}MB limit"
            )
        if not is_valid_logo_format(original_name):
            raise RequestValidationFailed(
                "Invalid file format. Supported formats: "
                + ", ".join(sorted(ALLOWED_LOGO_EXTENSIONS))
            )

        ext = logo_extension(original_name)
        filename = f"logo_{int(time.time() * 1000)}_{new_batch_id()}.{ext}"
        path = self.logos_dir / filename
        try:
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"Failed to write logo {filename}: {exc}") from exc

        logger.info("Saved logo: %s (%d bytes)", filename, len(data))
        return StoredFile(filename=filename, url=f"{self._logos_prefix}/{filename}")

    def logo_path(self, content: str) -> Path:
        """Resolve a logo reference to a path in the logo directory.

        ``content`` may be a bare filename or a URL/path whose last segment
        is the filename (as returned by the upload endpoint).

        Raises:
            StorageError: If no usable filename can be extracted.
        """
        name = content.strip().split("?", 1)[0].rstrip("/").rsplit("/", 1)[-1]
        return self.logos_dir / _safe_name(name)
