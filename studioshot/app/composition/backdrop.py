"""Backdrop fitting and the depth-of-field layer."""

from __future__ import annotations

import logging

import cv2
import numpy as np
from PIL import Image

from ..config import Config
from .geometry import scaled_value
from .resize import cover_resize

logger = logging.getLogger("studioshot.composition.backdrop")

DEFAULT_BACKDROP_COLOR = (255, 255, 255, 255)


def fit_backdrop(
    backdrop: Image.Image | None, canvas_size: tuple[int, int]
) -> tuple[Image.Image, list[str]]:
    """Cover-fit the backdrop to the canvas.

    Args:
        backdrop: Backdrop image, or None for a plain white canvas.
        canvas_size: Canvas (width, height).

    Returns:
        Tuple of (RGBA canvas-sized backdrop, warnings).
    """
    warnings: list[str] = []
    if backdrop is None:
        return Image.new("RGBA", canvas_size, DEFAULT_BACKDROP_COLOR), warnings

    bg_w, bg_h = backdrop.size
    target_w, target_h = canvas_size
    upscale = max(target_w / bg_w, target_h / bg_h) if bg_w and bg_h else 0.0
    if upscale > 1.5:
        warnings.append(f"Backdrop upscaled {upscale:.1f}x, output may look soft")

    return cover_resize(backdrop.convert("RGBA"), canvas_size), warnings


def create_fade_mask(
    size: tuple[int, int],
    fade_start: float = Config.DOF_FADE_START,
    fade_end: float = Config.DOF_FADE_END,
) -> Image.Image:
    """Vertical mask, opaque above ``fade_start`` and clear below ``fade_end``.

    Both limits are fractions of the height; the ramp between them is linear.
    """
    w, h = size
    rows = np.linspace(0.0, 1.0, h, dtype=np.float32) if h > 1 else np.zeros(1, np.float32)
    span = max(fade_end - fade_start, 1e-6)
    column = np.clip((fade_end - rows) / span, 0.0, 1.0)
    arr = np.repeat((column * 255).astype(np.uint8)[:, None], w, axis=1)
    return Image.fromarray(arr)


def blur_backdrop(backdrop: Image.Image, radius: float) -> Image.Image:
    """Gaussian-blurred copy of the backdrop."""
    if radius <= 0:
        return backdrop.copy()

    arr = np.asarray(backdrop.convert("RGBA"))
    sigma = max(radius / 2.0, 0.1)
    blurred = cv2.GaussianBlur(arr, (0, 0), sigmaX=sigma, sigmaY=sigma)
    return Image.fromarray(blurred)


def apply_depth_of_field(
    backdrop: Image.Image,
    blur_radius: float | None = None,
    fade_start: float = Config.DOF_FADE_START,
    fade_end: float = Config.DOF_FADE_END,
) -> Image.Image:
    """Blend a blurred copy over the sharp backdrop, fading out toward the floor.

    Args:
        backdrop: Canvas-sized sharp backdrop.
        blur_radius: Blur radius in pixels; defaults to ``Config.DOF_BLUR_RADIUS``
            scaled to the canvas width.
        fade_start: Height fraction where the blur starts fading.
        fade_end: Height fraction where the blur is gone.

    Returns:
        RGBA backdrop with the depth-of-field layer applied.
    """
    sharp = backdrop.convert("RGBA")
    if blur_radius is None:
        blur_radius = scaled_value(Config.DOF_BLUR_RADIUS, sharp.width)

    blurred = blur_backdrop(sharp, blur_radius)
    mask = create_fade_mask(sharp.size, fade_start, fade_end)
    logger.debug("Depth of field: radius %.1f, fade %.2f-%.2f", blur_radius, fade_start, fade_end)
    return Image.composite(blurred, sharp, mask)
