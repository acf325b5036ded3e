"""Logo and text-watermark compositing.

The compositor blends an overlay onto a generated product image.  It is pure
and synchronous: the same base bytes and settings always produce the same
output bytes.

Pipeline
--------
Image logos and text watermarks differ only in how the overlay asset is
produced.  Everything after that is shared:

1. **Produce** - an image logo is loaded from the logo directory (SVG logos
   are rasterised with CairoSVG) and scaled so its width is
   ``round(W * size / 100)`` (aspect ratio kept, enlargement allowed).  A text watermark is rendered with an outline stroke into a
   transparent canvas as wide as the base image, with a font size of
   ``round(W * size / 100 * 0.5)``; it is already at its target size.
2. **Rotate** - around the overlay's own centre, clockwise, expanding the
   canvas and filling exposed corners with transparency.
3. **Fade** - the alpha channel is multiplied by ``opacity / 100``.
4. **Measure** - the *post-rotation* overlay size is used from here on.
5. **Position** - one of nine anchors with edge padding ``P``, plus the
   signed pixel offsets, rounded half-up.  No clamping: an overlay may hang
   partly or wholly off the canvas.
6. **Blend** - standard "over" alpha compositing.

Anchor Table (``W, H`` base size, ``w, h`` overlay size)::

    top-left      (P, P)              top-center    ((W-w)/2, P)        top-right    (W-w-P, P)
    middle-left   (P, (H-h)/2)        center        ((W-w)/2, (H-h)/2)  middle-right (W-w-P, (H-h)/2)
    bottom-left   (P, H-h-P)          bottom-center ((W-w)/2, H-h-P)    bottom-right (W-w-P, H-h-P)
"""

from __future__ import annotations

import io
import logging
import math
from dataclasses import dataclass
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError

from prodshot.core.errors import (
    CompositingError,
    MissingLogoAssetError,
    UnsupportedLogoTypeError,
)
from prodshot.core.models import ImageLogo, NoLogo, TextLogo

logger = logging.getLogger(__name__)

EDGE_PADDING = 20

TEXT_FONT_FACTOR = 0.5
TEXT_STROKE_WIDTH = 2
TEXT_STROKE_COLOR = "#000000"

_FALLBACK_FONTS = ("DejaVuSans-Bold.ttf", "Arial Bold.ttf", "LiberationSans-Bold.ttf")

# position -> (horizontal anchor, vertical anchor)
_ANCHORS: dict[str, tuple[str, str]] = {
    "center": ("center", "middle"),
    "top-left": ("left", "top"),
    "top-center": ("center", "top"),
    "top-right": ("right", "top"),
    "middle-left": ("left", "middle"),
    "middle-right": ("right", "middle"),
    "bottom-left": ("left", "bottom"),
    "bottom-center": ("center", "bottom"),
    "bottom-right": ("right", "bottom"),
}

OverlaySettings = ImageLogo | TextLogo


@dataclass(frozen=True)
class CompositeOperation:
    """Geometry of one overlay placement.  Computed fresh for every image."""

    base_width: int
    base_height: int
    overlay_width: int
    overlay_height: int
    left: int
    top: int


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Geometry.
# ---------------------------------------------------------------------------


def calculate_position(
    base_width: int,
    base_height: int,
    overlay_width: int,
    overlay_height: int,
    position: str,
    offset_x: float = 0,
    offset_y: float = 0,
) -> tuple[int, int]:
    """Top-left pixel coordinate for an overlay at a named anchor.

    Args:
        base_width: Width of the base image.
        base_height: Height of the base image.
        overlay_width: Width of the overlay after scaling and rotation.
        overlay_height: Height of the overlay after scaling and rotation.
        position: One of the nine anchor names.
        offset_x: Signed horizontal offset in pixels.
        offset_y: Signed vertical offset in pixels.

    Returns:
        ``(left, top)`` rounded half-up to integer pixels.

    Raises:
        CompositingError: If *position* is not a known anchor.
    """
    try:
        horizontal, vertical = _ANCHORS[position]
    except KeyError:
        raise CompositingError(f"Unknown logo position: {position!r}") from None

    left = {
        "left": EDGE_PADDING,
        "center": (base_width - overlay_width) / 2,
        "right": base_width - overlay_width - EDGE_PADDING,
    }[horizontal]
    top = {
        "top": EDGE_PADDING,
        "middle": (base_height - overlay_height) / 2,
        "bottom": base_height - overlay_height - EDGE_PADDING,
    }[vertical]

    return _round_half_up(left + offset_x), _round_half_up(top + offset_y)


def resize_overlay(overlay: Image.Image, base_width: int, size_percent: int) -> Image.Image:
    """Scale an overlay to ``size_percent`` of the base width, keeping aspect ratio."""
    target_width = max(1, _round_half_up(base_width * size_percent / 100))
    target_height = max(1, _round_half_up(overlay.height * target_width / overlay.width))
    return overlay.resize((target_width, target_height), Image.Resampling.LANCZOS)


def apply_effects(overlay: Image.Image, opacity: int, rotation: float | None = None) -> Image.Image:
    """Rotate (clockwise, expanding) and fade an RGBA overlay.

    ``opacity=100`` and a missing or zero rotation leave the pixels untouched.
    """
    processed = overlay.convert("RGBA")

    if rotation:
        processed = processed.rotate(
            -rotation,
            resample=Image.Resampling.BICUBIC,
            expand=True,
            fillcolor=(0, 0, 0, 0),
        )

    if opacity < 100:
        factor = opacity / 100
        alpha = processed.getchannel("A").point(lambda v: _round_half_up(v * factor))
        processed.putalpha(alpha)

    return processed


# ---------------------------------------------------------------------------
# Overlay assets.
# ---------------------------------------------------------------------------


def _load_font(font_family: str, size: int) -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load *font_family* at *size*, falling back to bundled fonts."""
    candidates = (font_family, f"{font_family}.ttf", f"{font_family} Bold.ttf", *_FALLBACK_FONTS)
    for name in candidates:
        try:
            return ImageFont.truetype(name, size=size)
        except OSError:
            continue
    logger.debug("Font %r not found; using Pillow's default font.", font_family)
    return ImageFont.load_default(size=size)


def rasterize_svg(path: Path, width: int) -> Image.Image:
    """Render an SVG logo to an RGBA image *width* pixels wide.

    Raises:
        CompositingError: The SVG could not be parsed or rendered.
    """
    # Needs the native cairo library; only SVG logos pay for loading it.
    import cairosvg

    try:
        png = cairosvg.svg2png(url=str(path), output_width=width)
        with Image.open(io.BytesIO(png)) as rendered:
            rendered.load()
            return rendered.convert("RGBA")
    except (OSError, ValueError, SyntaxError) as exc:
        raise CompositingError(f"Failed to rasterize SVG logo {path.name}: {exc}") from exc


def render_text_watermark(
    text: str,
    base_width: int,
    size_percent: int,
    color: str,
    font_family: str,
) -> Image.Image:
    """Render *text* centred in a transparent canvas as wide as the base image.

    The canvas is twice the font size tall.  Glyphs get a dark outline so the
    watermark stays legible over any background.
    """
    font_size = max(1, _round_half_up(base_width * size_percent / 100 * TEXT_FONT_FACTOR))
    canvas = Image.new("RGBA", (base_width, font_size * 2), (0, 0, 0, 0))
    draw = ImageDraw.Draw(canvas)
    draw.text(
        (base_width / 2, font_size),
        text,
        font=_load_font(font_family, font_size),
        fill=color,
        anchor="mm",
        stroke_width=TEXT_STROKE_WIDTH,
        stroke_fill=TEXT_STROKE_COLOR,
    )
    return canvas


def build_overlay(
    base_width: int,
    settings: OverlaySettings,
    logo_path: Path | None = None,
) -> Image.Image:
    """Produce the scaled overlay asset for *settings*.

    Raises:
        MissingLogoAssetError: Image logo without an existing file, or text
            watermark without text.
        UnsupportedLogoTypeError: Settings of any other type.
    """
    if isinstance(settings, ImageLogo):
        if logo_path is None or not Path(logo_path).is_file():
            raise MissingLogoAssetError(
                f"Logo file not found: {logo_path if logo_path is not None else settings.content}"
            )
        if Path(logo_path).suffix.lower() == ".svg":
            target_width = max(1, _round_half_up(base_width * settings.size / 100))
            asset = rasterize_svg(Path(logo_path), target_width)
        else:
            with Image.open(logo_path) as logo:
                logo.load()
                asset = logo.convert("RGBA")
        return resize_overlay(asset, base_width, settings.size)

    if isinstance(settings, TextLogo):
        if not settings.content.strip():
            raise MissingLogoAssetError("Text content is required for text watermark")
        return render_text_watermark(
            settings.content,
            base_width,
            settings.size,
            settings.text_color,
            settings.font_family,
        )

    raise UnsupportedLogoTypeError(
        f"Unsupported logo type: {getattr(settings, 'type', type(settings).__name__)!r}"
    )


def plan_composite(
    base_size: tuple[int, int],
    overlay: Image.Image,
    settings: OverlaySettings,
) -> tuple[Image.Image, CompositeOperation]:
    """Apply rotation and opacity, then position against the rotated size."""
    processed = apply_effects(overlay, settings.opacity, settings.rotation)
    base_width, base_height = base_size
    left, top = calculate_position(
        base_width,
        base_height,
        processed.width,
        processed.height,
        settings.position,
        settings.offset_x,
        settings.offset_y,
    )
    operation = CompositeOperation(
        base_width=base_width,
        base_height=base_height,
        overlay_width=processed.width,
        overlay_height=processed.height,
        left=left,
        top=top,
    )
    return processed, operation


def blend(base: Image.Image, overlay: Image.Image, operation: CompositeOperation) -> Image.Image:
    """Alpha-composite *overlay* onto *base* at the planned position.

    The overlay is first copied into a transparent layer the size of the
    base so that negative or out-of-bounds coordinates are clipped instead
    of rejected.
    """
    canvas = base.convert("RGBA")
    layer = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
    layer.paste(overlay, (operation.left, operation.top))
    return Image.alpha_composite(canvas, layer)


# ---------------------------------------------------------------------------
# Public entry point.
# ---------------------------------------------------------------------------


def apply_logo(
    base_image: bytes,
    settings: NoLogo | ImageLogo | TextLogo | None,
    logo_path: Path | None = None,
) -> bytes:
    """Composite a logo or watermark onto encoded image bytes.

    Args:
        base_image: Encoded base image.
        settings: Overlay settings.  ``None`` or :class:`NoLogo` returns
            *base_image* unchanged.
        logo_path: Resolved logo file, required for :class:`ImageLogo`.

    Returns:
        PNG-encoded composited image.

    Raises:
        UnsupportedLogoTypeError: Unknown settings type.
        MissingLogoAssetError: Logo file missing or empty watermark text.
        CompositingError: The base image or logo could not be decoded or
            blended.
    """
    if settings is None or isinstance(settings, NoLogo):
        logger.debug("No logo to apply.")
        return base_image

    if not isinstance(settings, (ImageLogo, TextLogo)):
        raise UnsupportedLogoTypeError(
            f"Unsupported logo type: {getattr(settings, 'type', type(settings).__name__)!r}"
        )

    try:
        with Image.open(io.BytesIO(base_image)) as opened:
            opened.load()
            base = opened.copy()

        overlay = build_overlay(base.width, settings, logo_path)
        processed, operation = plan_composite(base.size, overlay, settings)
        result = blend(base, processed, operation)
    except CompositingError:
        raise
    except (OSError, ValueError, UnidentifiedImageError, Image.DecompressionBombError) as exc:
        raise CompositingError(f"Failed to apply {settings.type} logo: {exc}") from exc

    logger.info(
        "Applied %s logo at %s (%d, %d), size %d%%, opacity %d%%.",
        settings.type,
        settings.position,
        operation.left,
        operation.top,
        settings.size,
        settings.opacity,
    )

    if "A" not in base.getbands():
        result = result.convert("RGB")

    output = io.BytesIO()
    result.save(output, format="PNG")
    return output.getvalue()
