"""Composition engine for StudioShot."""

from .engine import Compositor, encode_image
from .geometry import compute_canvas_size, compute_composite_layout, scaled_value
from .reflection import generate_reflection

__all__ = [
    "Compositor",
    "compute_canvas_size",
    "compute_composite_layout",
    "encode_image",
    "generate_reflection",
    "scaled_value",
]
