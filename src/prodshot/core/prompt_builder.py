"""Product prompt optimisation for the image generator.

A raw product description (often pasted straight from a shop listing) is
turned into a photography prompt by cleaning the description and appending
fixed vocabularies for the selected camera angle, style and category, plus a
block of quality modifiers that every prompt carries.

Prompt Structure::

    Professional product photography of [color ][cleaned description], [category noun],
    [angle modifier], [style modifier], [category enhancement], [quality modifiers...]

Description Cleaning
--------------------
Listings tend to carry technical noise that confuses diffusion models, so
the description is reduced to its first two meaningful lines:

- literal ``\\n`` escape sequences (from JSON payloads) become newlines
- blank lines are dropped
- lines containing ``%`` (material composition), ``;`` (variant lists), or
  starting with ``Print Method:`` are dropped
- the first two surviving lines are joined with a space
- runs of whitespace collapse to one space
- parenthetical asides are removed

Usage
-----
::

    optimized = optimize_prompt(
        "Red running shoe, mesh upper",
        category="footwear",
        style="studio",
        angle="side",
    )
    optimized.prompt
    optimized.negative_prompt
"""

from __future__ import annotations

import re
from typing import NamedTuple

from prodshot.core.models import CameraAngle, ImageStyle, ProductCategory

# ---------------------------------------------------------------------------
# Vocabularies.
# ---------------------------------------------------------------------------

_STYLE_MODIFIERS: dict[str, str] = {
    "studio": (
        "studio lighting, softbox lighting, neutral background, sharp focus, "
        "professional studio setup"
    ),
    "lifestyle": (
        "natural lighting, lifestyle setting, in-use context, realistic environment, candid feel"
    ),
    "nature": "natural outdoor setting, soft natural light, organic environment, fresh and vibrant",
    "urban": "urban environment, city backdrop, modern architecture, contemporary setting",
    "minimalist": "minimalist composition, clean lines, subtle shadows, simple elegant background",
    "vintage": "vintage aesthetic, retro styling, warm tones, nostalgic feel, classic photography",
}

_ANGLE_MODIFIERS: dict[str, str] = {
    "front": "front view, facing camera, straight on shot",
    "side": "side view, profile shot, lateral angle",
    "back": "back view, rear angle, showing back side",
    "top": "top-down view, bird's eye view, overhead shot, looking down",
    "bottom": "bottom-up view, low angle shot, looking up",
    "45_degree": "45-degree angle, three-quarter view, dynamic angle",
    "close_up": "close-up shot, macro detail, zoomed in on details",
    "wide": "wide angle shot, environmental context, showing surroundings",
    "eye_level": "eye-level shot, straight on, natural perspective",
}

_CATEGORY_ENHANCEMENTS: dict[str, str] = {
    "clothing": "fashion photography, fabric texture visible, proper draping, apparel detail",
    "footwear": "footwear photography, showing texture and detail, proper shoe positioning",
    "electronics": (
        "tech product photography, sleek and modern, showing device details, clean presentation"
    ),
    "furniture": (
        "interior photography, showing scale and proportion, lifestyle context, home decor"
    ),
    "beauty": (
        "beauty product photography, clean aesthetic, luxurious feel, cosmetic presentation"
    ),
    "jewelry": "jewelry photography, elegant presentation, detail-focused, precious metal and gems",
    "home-decor": (
        "home decor photography, interior styling, aesthetic presentation, decorative item"
    ),
    "toy": "toy photography, playful presentation, vibrant colors, engaging composition",
    "other": "professional product photography, commercial quality",
}

_QUALITY_MODIFIERS = (
    "8K resolution",
    "high detail",
    "commercial photography",
    "professional lighting",
    "sharp focus",
    "photorealistic",
)

NEGATIVE_PROMPT = ", ".join(
    (
        "blurry",
        "distorted",
        "low quality",
        "watermark",
        "text",
        "logo",
        "deformed",
        "ugly",
        "bad anatomy",
        "disfigured",
        "poorly drawn",
        "mutation",
        "mutated",
        "extra limbs",
        "duplicate",
        "morbid",
        "out of frame",
        "cropped",
        "pixelated",
        "grainy",
        "noise",
    )
)

_MAX_DESCRIPTION_LINES = 2

_PARENTHETICAL_RE = re.compile(r"\([^)]*\)")
_WHITESPACE_RE = re.compile(r"\s+")


class OptimizedPrompt(NamedTuple):
    """Positive and negative prompt pair sent to the synthesis service."""

    prompt: str
    negative_prompt: str


def _is_technical_line(line: str) -> bool:
    return "%" in line or ";" in line or line.startswith("Print Method:")


def clean_description(description: str) -> str:
    """Reduce a listing description to its descriptive core.

    Args:
        description: Raw product description.

    Returns:
        The cleaned description (may be empty if every line was filtered).
    """
    normalized = description.replace("\\n", "\n")
    lines = [line.strip() for line in normalized.split("\n")]
    lines = [line for line in lines if line and not _is_technical_line(line)]

    relevant = " ".join(lines[:_MAX_DESCRIPTION_LINES])
    relevant = _WHITESPACE_RE.sub(" ", relevant).strip()

    return _PARENTHETICAL_RE.sub("", relevant)


def optimize_prompt(
    description: str,
    category: ProductCategory = "other",
    style: ImageStyle = "studio",
    angle: CameraAngle = "front",
    color: str | None = None,
) -> OptimizedPrompt:
    """Build the synthesis prompt for a product description.

    Args:
        description: Raw product description.
        category: Product category; ``"other"`` renders as "product".
        style: Photographic style.
        angle: Camera angle.
        color: Optional colour placed directly before the description.

    Returns:
        :class:`OptimizedPrompt` with the comma-joined prompt and the fixed
        negative prompt.
    """
    cleaned = clean_description(description)
    color_prefix = f"{color} " if color else ""
    category_noun = "product" if category == "other" else category
    base_prompt = (
        f"Professional product photography of {color_prefix}{cleaned}, {category_noun}"
    ).strip()

    parts = [
        base_prompt,
        _ANGLE_MODIFIERS[angle],
        _STYLE_MODIFIERS[style],
        _CATEGORY_ENHANCEMENTS[category],
        *_QUALITY_MODIFIERS,
    ]
    return OptimizedPrompt(prompt=", ".join(parts), negative_prompt=NEGATIVE_PROMPT)


def description_preview(description: str, max_length: int = 50) -> str:
    """Collapse whitespace and truncate a description for log lines."""
    collapsed = _WHITESPACE_RE.sub(" ", description.strip())
    if len(collapsed) <= max_length:
        return collapsed
    return collapsed[:max_length] + "..."
