"""Canvas geometry derived from padding, aspect ratio and placement."""

from __future__ import annotations

import logging

from ..config import Config
from ..constants import FIXED_ASPECT_RATIOS
from ..enums import AspectRatioMode
from ..models import CompositeLayout, LayoutRect, PlacementConfig
from ..validators import (
    validate_aspect_ratio,
    validate_dimensions,
    validate_padding,
    validate_placement,
)

logger = logging.getLogger("studioshot.composition.geometry")


def scaled_value(value: float, canvas_width: int, reference_width: int = Config.REFERENCE_WIDTH) -> float:
    """Scale an effect size tuned for ``reference_width`` to ``canvas_width``."""
    return value * canvas_width / reference_width


def resolve_aspect_ratio(
    mode: AspectRatioMode | str,
    padded_size: tuple[float, float],
    backdrop_size: tuple[int, int] | None = None,
    numeric_ratio: float | None = None,
) -> float:
    """Width / height ratio of the target canvas.

    Fixed modes use their constant. ``original`` uses ``numeric_ratio``, then
    the backdrop ratio, then the padded subject box.
    """
    mode = AspectRatioMode(mode)
    if mode in FIXED_ASPECT_RATIOS:
        return FIXED_ASPECT_RATIOS[mode]

    if numeric_ratio is not None:
        validate_aspect_ratio(numeric_ratio)
        return float(numeric_ratio)
    if backdrop_size is not None and backdrop_size[0] > 0 and backdrop_size[1] > 0:
        return backdrop_size[0] / backdrop_size[1]
    return padded_size[0] / padded_size[1]


def compute_canvas_size(
    subject_w: float,
    subject_h: float,
    padding_fraction: float,
    mode: AspectRatioMode | str,
    backdrop_size: tuple[int, int] | None = None,
    numeric_ratio: float | None = None,
) -> tuple[int, int]:
    """Smallest canvas of the target ratio that holds the padded subject.

    The subject is padded by ``padding_fraction`` of the canvas on every side,
    so the padded box is ``subject / (1 - 2p)``. The canvas starts at the
    padded width; if the resulting height is too short it is grown from the
    padded height instead.

    Args:
        subject_w: Subject width in pixels.
        subject_h: Subject height in pixels.
        padding_fraction: Per-side padding as a fraction of the canvas.
        mode: Aspect ratio mode.
        backdrop_size: Backdrop (width, height), used by ``original`` mode.
        numeric_ratio: Explicit ratio for ``original`` mode.

    Returns:
        Canvas (width, height) in whole pixels.

    Raises:
        ValidationError: If dimensions or padding are out of range.
    """
    validate_dimensions(subject_w, subject_h)
    validate_padding(padding_fraction)

    usable = 1.0 - 2.0 * padding_fraction
    padded_w = subject_w / usable
    padded_h = subject_h / usable
    ratio = resolve_aspect_ratio(mode, (padded_w, padded_h), backdrop_size, numeric_ratio)

    canvas_w = padded_w
    canvas_h = canvas_w / ratio
    if canvas_h < padded_h:
        canvas_h = padded_h
        canvas_w = canvas_h * ratio

    return max(1, round(canvas_w)), max(1, round(canvas_h))


def inner_box(canvas_size: tuple[int, int], padding_fraction: float) -> LayoutRect:
    """The canvas inset by ``padding_fraction`` on each side."""
    width, height = canvas_size
    pad_x = round(width * padding_fraction)
    pad_y = round(height * padding_fraction)
    return LayoutRect(pad_x, pad_y, max(1, width - 2 * pad_x), max(1, height - 2 * pad_y))


def _clamp(value: int, low: int, high: int) -> int:
    return max(low, min(value, high))


def compute_composite_layout(
    shadow_size: tuple[int, int],
    clean_size: tuple[int, int],
    padding_fraction: float,
    mode: AspectRatioMode | str,
    placement: PlacementConfig | None = None,
    backdrop_size: tuple[int, int] | None = None,
    numeric_ratio: float | None = None,
) -> CompositeLayout:
    """Compute canvas size and every layer rectangle for one composite.

    The shadowed subject is drawn at ``placement.scale`` of the largest size
    that fits the inner box, centred on ``x * W`` with its foot on ``y * H``,
    then clamped into the inner box. The clean product sits centred inside
    the shadowed subject; the reflection starts at the product's foot line,
    pulled up by ``Config.REFLECTION_FOOT_OVERLAP`` of the vertical shadow padding.

    Args:
        shadow_size: Shadowed subject (width, height); includes shadow padding.
        clean_size: Clean product (width, height).
        padding_fraction: Per-side padding as a fraction of the canvas.
        mode: Aspect ratio mode.
        placement: Normalized anchor and scale.
        backdrop_size: Backdrop (width, height), used by ``original`` mode.
        numeric_ratio: Explicit ratio for ``original`` mode.

    Returns:
        The CompositeLayout.
    """
    placement = placement or PlacementConfig()
    validate_placement(placement)
    validate_dimensions(*clean_size)

    shadow_w, shadow_h = shadow_size
    clean_w, clean_h = clean_size
    width, height = compute_canvas_size(
        shadow_w, shadow_h, padding_fraction, mode, backdrop_size, numeric_ratio
    )
    box = inner_box((width, height), padding_fraction)

    fit = min(box.width / shadow_w, box.height / shadow_h)
    scale = min(fit * placement.scale, fit)

    draw_w = _clamp(round(shadow_w * scale), 1, box.width)
    draw_h = _clamp(round(shadow_h * scale), 1, box.height)
    x = _clamp(round(width * placement.x - draw_w / 2), box.x, box.x2 - draw_w)
    y = _clamp(round(height * placement.y - draw_h), box.y, box.y2 - draw_h)
    subject_rect = LayoutRect(x, y, draw_w, draw_h)

    product_w = max(1, round(clean_w * scale))
    product_h = max(1, round(clean_h * scale))
    product_rect = LayoutRect(
        x + round((shadow_w - clean_w) / 2 * scale),
        y + round((shadow_h - clean_h) / 2 * scale),
        product_w,
        product_h,
    )

    vertical_padding = max(0.0, (shadow_h - clean_h) * scale)
    reflection_rect = LayoutRect(
        product_rect.x,
        product_rect.y2 - round(vertical_padding * Config.REFLECTION_FOOT_OVERLAP),
        product_w,
        product_h,
    )

    logger.debug(
        "Layout: canvas %dx%d, subject %s, product %s, scale %.3f",
        width,
        height,
        subject_rect,
        product_rect,
        scale,
    )
    return CompositeLayout(
        width=width,
        height=height,
        padding_fraction=padding_fraction,
        aspect_ratio_mode=AspectRatioMode(mode),
        inner_box=box,
        subject_rect=subject_rect,
        product_rect=product_rect,
        reflection_rect=reflection_rect,
        scale=scale,
    )
