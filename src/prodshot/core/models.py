"""Domain models for product image generation.

These pydantic models define the shape of a generation job as it travels
from the HTTP layer, through the Redis queue, to the worker.  Field names are
snake_case in Python and camelCase on the wire (``numImages``, ``offsetX``),
matching the JSON the frontend sends.

Defaults are applied exactly once, when a :class:`GenerationRequest` is
validated.  The serialised request stored on the queue therefore always
carries every field, and the worker never re-derives a default.

Models
------
GenerationRequest
    Everything needed to run one job: description, vocabulary choices,
    batch settings and optional logo overlay.
LogoSettings
    Tagged union of :class:`NoLogo`, :class:`ImageLogo` and :class:`TextLogo`
    discriminated by ``type``.
GeneratedImage / JobResult
    Output of a completed job.
Job / JobState
    Queue record and its lifecycle.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# ---------------------------------------------------------------------------
# Closed vocabularies and limits.
# ---------------------------------------------------------------------------

ProductCategory = Literal[
    "clothing",
    "footwear",
    "electronics",
    "furniture",
    "beauty",
    "jewelry",
    "home-decor",
    "toy",
    "other",
]

ImageStyle = Literal["studio", "lifestyle", "nature", "urban", "minimalist", "vintage"]

CameraAngle = Literal[
    "front",
    "side",
    "back",
    "top",
    "bottom",
    "45_degree",
    "close_up",
    "wide",
    "eye_level",
]

Resolution = Literal["512x512", "768x768", "1024x1024"]

LogoPosition = Literal[
    "center",
    "top-left",
    "top-center",
    "top-right",
    "middle-left",
    "middle-right",
    "bottom-left",
    "bottom-center",
    "bottom-right",
]

MIN_IMAGES = 1
MAX_IMAGES = 4
DEFAULT_RESOLUTION: Resolution = "1024x1024"

MIN_DESCRIPTION_LENGTH = 3
MAX_DESCRIPTION_LENGTH = 1000

MIN_LOGO_SIZE = 5
MAX_LOGO_SIZE = 50
DEFAULT_LOGO_SIZE = 20
DEFAULT_LOGO_OPACITY = 80

DEFAULT_TEXT_COLOR = "#FFFFFF"
DEFAULT_FONT_FAMILY = "Arial"


def parse_resolution(resolution: str) -> tuple[int, int]:
    """Split a ``"WIDTHxHEIGHT"`` string into integers.

    Any axis that cannot be parsed falls back to 1024.

    Args:
        resolution: Resolution string such as ``"768x768"``.

    Returns:
        Tuple of ``(width, height)``.
    """
    parts = resolution.lower().split("x")

    def _axis(index: int) -> int:
        try:
            value = int(parts[index])
        except (IndexError, ValueError):
            return 1024
        return value or 1024

    return _axis(0), _axis(1)


class _CamelModel(BaseModel):
    """Base model that reads and writes camelCase JSON."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Logo settings (tagged union).
# ---------------------------------------------------------------------------


class NoLogo(_CamelModel):
    """No overlay; the compositor passes the image through untouched."""

    type: Literal["none"] = "none"


class _OverlaySettings(_CamelModel):
    """Placement and blending fields shared by image and text overlays.

    Attributes:
        content: Logo filename/URL for image logos, literal text for text
            watermarks.  Required and non-empty.
        position: One of the nine anchor positions.
        size: Overlay width as a percentage of the base image width.  Values
            outside 5–50 are clamped rather than rejected.
        opacity: Uniform alpha multiplier in percent (0–100).
        rotation: Clockwise rotation in degrees (−360..360).
        offset_x: Signed pixel offset added after anchoring.
        offset_y: Signed pixel offset added after anchoring.
    """

    content: str
    position: LogoPosition = "bottom-right"
    size: int = DEFAULT_LOGO_SIZE
    opacity: int = Field(default=DEFAULT_LOGO_OPACITY, ge=0, le=100)
    rotation: float | None = Field(default=None, ge=-360, le=360)
    offset_x: float = 0
    offset_y: float = 0

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("content is required for image and text logos")
        return value

    @field_validator("size")
    @classmethod
    def _clamp_size(cls, value: int) -> int:
        return min(max(value, MIN_LOGO_SIZE), MAX_LOGO_SIZE)


class ImageLogo(_OverlaySettings):
    """An uploaded logo file composited onto every image."""

    type: Literal["image"] = "image"


class TextLogo(_OverlaySettings):
    """A text watermark rendered with an outline stroke."""

    type: Literal["text"] = "text"
    text_color: str = DEFAULT_TEXT_COLOR
    font_family: str = DEFAULT_FONT_FAMILY


LogoSettings = Annotated[
    Union[NoLogo, ImageLogo, TextLogo],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# Generation request.
# ---------------------------------------------------------------------------


class GenerationSettings(_CamelModel):
    """Batch settings: how many images and at what size."""

    num_images: int = Field(default=MIN_IMAGES, ge=MIN_IMAGES, le=MAX_IMAGES)
    resolution: Resolution = DEFAULT_RESOLUTION

    @property
    def dimensions(self) -> tuple[int, int]:
        """``(width, height)`` parsed from :attr:`resolution`."""
        return parse_resolution(self.resolution)


class GenerationRequest(_CamelModel):
    """Inputs to one generation job.

    Attributes:
        description: Product description, 3–1000 characters after trimming.
        category: Product category vocabulary entry.
        style: Photographic style vocabulary entry.
        angle: Camera angle vocabulary entry.
        color: Optional product colour, prefixed to the description.
        settings: Batch size and resolution.
        logo: Optional overlay settings; ``None`` behaves like ``type="none"``.
    """

    description: str
    category: ProductCategory = "other"
    style: ImageStyle = "studio"
    angle: CameraAngle = "front"
    color: str | None = None
    settings: GenerationSettings = Field(default_factory=GenerationSettings)
    logo: LogoSettings | None = None

    @field_validator("description")
    @classmethod
    def _check_description(cls, value: str) -> str:
        trimmed = value.strip()
        if len(trimmed) < MIN_DESCRIPTION_LENGTH:
            raise ValueError(
                f"Description must be at least {MIN_DESCRIPTION_LENGTH} characters long"
            )
        if len(trimmed) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(
                f"Description must not exceed {MAX_DESCRIPTION_LENGTH} characters"
            )
        return trimmed

    @field_validator("color")
    @classmethod
    def _blank_color_is_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()

    @property
    def wants_logo(self) -> bool:
        """Whether a compositing step should run for this request."""
        return self.logo is not None and not isinstance(self.logo, NoLogo)


# ---------------------------------------------------------------------------
# Results.
# ---------------------------------------------------------------------------


class GeneratedImage(_CamelModel):
    """A stored image: its public URL and storage filename."""

    url: str
    filename: str


class JobResult(_CamelModel):
    """Terminal payload of a completed job.

    ``images`` holds one entry per image that was produced, in index order.
    It may be shorter than requested but is never empty for a completed job.
    """

    images: list[GeneratedImage]
    prompt: str


# ---------------------------------------------------------------------------
# Queue records.
# ---------------------------------------------------------------------------


class JobState(str, Enum):
    """Lifecycle of a queued job.  ``COMPLETED`` and ``FAILED`` are terminal."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.COMPLETED, JobState.FAILED)


@dataclass
class Job:
    """A job as stored on the queue.

    Attributes:
        id: Unique job identifier assigned at submission.
        request_id: Caller-supplied correlation identifier.
        request: The fully defaulted generation request.
        state: Current lifecycle state.
        created_at: Submission time (epoch seconds).
        result: Set once the job completes.
        error: Failure reason once the job fails.
    """

    id: str
    request_id: str
    request: GenerationRequest
    state: JobState = JobState.WAITING
    created_at: float = field(default_factory=time.time)
    result: JobResult | None = None
    error: str | None = None
