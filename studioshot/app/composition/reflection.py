"""Glossy-floor reflection generation."""

from __future__ import annotations

import logging

import numpy as np
from PIL import Image, ImageFilter, ImageOps

from ..constants import LUMA_WEIGHTS
from ..models import ReflectionSpec
from ..validators import validate_reflection_spec

logger = logging.getLogger("studioshot.composition.reflection")


def gradient_alpha(rows: int, stops: tuple[tuple[float, float], ...]) -> np.ndarray:
    """Per-row alpha multiplier interpolated linearly between gradient stops."""
    offsets = np.array([s[0] for s in stops], dtype=np.float32)
    alphas = np.array([s[1] for s in stops], dtype=np.float32)
    positions = np.linspace(0.0, 1.0, rows, dtype=np.float32) if rows > 1 else np.zeros(1, np.float32)
    return np.interp(positions, offsets, alphas).astype(np.float32)


def grade_colors(
    rgb: np.ndarray, brightness: float, contrast: float, saturation: float
) -> np.ndarray:
    """Brightness, contrast around mid-grey, then saturation around luma.

    Args:
        rgb: Float array of shape (h, w, 3) in 0..255.

    Returns:
        Graded array clipped to 0..255.
    """
    graded = rgb * brightness
    graded = (graded - 128.0) * contrast + 128.0
    luma = graded @ np.array(LUMA_WEIGHTS, dtype=np.float32)
    graded = luma[..., None] + (graded - luma[..., None]) * saturation
    return np.clip(graded, 0, 255)


def generate_reflection(clean_subject: Image.Image, spec: ReflectionSpec | None = None) -> Image.Image:
    """Build the floor reflection of a clean (shadow-free) subject.

    Takes the bottom ``spec.height_fraction`` of the rows, flips them, fades
    alpha from top to bottom along the gradient stops, grades the colours and
    blurs the result.

    Args:
        clean_subject: Subject at the size it is drawn on the canvas.
        spec: Reflection parameters.

    Returns:
        RGBA image as wide as the subject and ``height_fraction`` as tall.
    """
    spec = spec or ReflectionSpec()
    validate_reflection_spec(spec)

    subject = clean_subject.convert("RGBA")
    width, height = subject.size
    rows = max(1, int(height * spec.height_fraction))

    region = subject.crop((0, height - rows, width, height))
    flipped = ImageOps.flip(region)

    arr = np.asarray(flipped, dtype=np.float32).copy()
    arr[..., :3] = grade_colors(arr[..., :3], spec.brightness, spec.contrast, spec.saturation)
    fade = gradient_alpha(rows, spec.gradient_stops) * spec.opacity
    arr[..., 3] *= fade[:, None]

    reflection = Image.fromarray(np.round(arr).astype(np.uint8))
    if spec.blur_radius > 0:
        reflection = reflection.filter(ImageFilter.GaussianBlur(radius=spec.blur_radius))

    logger.debug("Reflection %dx%d from %dx%d subject", width, rows, width, height)
    return reflection
