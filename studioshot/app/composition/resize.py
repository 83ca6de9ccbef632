"""Gamma-correct resizing of cut-out subjects and backdrops."""

from __future__ import annotations

import logging

import cv2
import numpy as np
from PIL import Image

from ..config import Config

logger = logging.getLogger("studioshot.composition.resize")


def high_quality_resize(
    image: Image.Image, target_size: tuple[int, int]
) -> Image.Image:
    """Resize in linear light with premultiplied alpha.

    Returns the image unchanged for a non-positive target.

    Args:
        image: Source PIL image.
        target_size: Target (width, height).

    Returns:
        Resized RGB or RGBA image.
    """
    target_w, target_h = target_size
    if target_w <= 0 or target_h <= 0:
        return image
    if image.size == (target_w, target_h) and image.mode in ("RGB", "RGBA"):
        return image.copy()

    if image.mode not in ("RGB", "RGBA"):
        image = image.convert("RGBA")
    has_alpha = image.mode == "RGBA"

    arr = np.asarray(image, dtype=np.float32) / 255.0
    linear = np.power(arr[..., :3], Config.GAMMA)

    if has_alpha:
        alpha = arr[..., 3:4]
        stacked = np.concatenate([linear * alpha, alpha], axis=2)
    else:
        stacked = linear

    shrinking = target_w < image.width and target_h < image.height
    interpolation = cv2.INTER_AREA if shrinking else cv2.INTER_LANCZOS4
    resized = cv2.resize(stacked, (target_w, target_h), interpolation=interpolation)
    resized = np.clip(resized, 0.0, 1.0)

    if has_alpha:
        alpha = resized[..., 3:4]
        safe = np.where(alpha > 1e-6, alpha, 1.0)
        rgb = np.where(alpha > 1e-6, resized[..., :3] / safe, 0.0)
        encoded = np.concatenate([np.power(np.clip(rgb, 0, 1), 1.0 / Config.GAMMA), alpha], axis=2)
    else:
        encoded = np.power(resized, 1.0 / Config.GAMMA)

    return Image.fromarray(np.round(encoded * 255.0).astype(np.uint8))


def cover_resize(image: Image.Image, target_size: tuple[int, int]) -> Image.Image:
    """Scale to cover ``target_size`` and centre-crop the overflow."""
    target_w, target_h = target_size
    src_w, src_h = image.size
    if src_w <= 0 or src_h <= 0:
        return Image.new("RGBA", target_size, (255, 255, 255, 255))

    scale = max(target_w / src_w, target_h / src_h)
    new_w = max(target_w, round(src_w * scale))
    new_h = max(target_h, round(src_h * scale))
    scaled = high_quality_resize(image, (new_w, new_h))

    x = (new_w - target_w) // 2
    y = (new_h - target_h) // 2
    return scaled.crop((x, y, x + target_w, y + target_h))
