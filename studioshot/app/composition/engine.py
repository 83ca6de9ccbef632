"""Composition engine for assembling final studio images."""

from __future__ import annotations

import io
import logging
from dataclasses import replace

import cv2
from PIL import Image

from ..config import Config
from ..exceptions import CompositingError, ValidationError
from ..models import CompositionResult, LayoutRect, RenderRules
from .backdrop import apply_depth_of_field, fit_backdrop
from .geometry import compute_composite_layout, scaled_value
from .reflection import generate_reflection
from .resize import high_quality_resize

logger = logging.getLogger("studioshot.composition")


class Compositor:
    """Compose the final image of one subject.

    Layers, bottom to top:
    - sharp backdrop, cover-fitted to the canvas
    - optional depth-of-field copy of the backdrop, fading out toward the floor
    - floor reflection of the clean product
    - shadowed subject
    """

    def compose(
        self,
        shadowed: Image.Image,
        rules: RenderRules,
        backdrop: Image.Image | None = None,
        clean: Image.Image | None = None,
        name: str = "",
    ) -> CompositionResult:
        """Compose final image.

        Args:
            shadowed: Subject with its drop shadow, including shadow padding.
            rules: Placement and effect settings.
            backdrop: Backdrop image; white when omitted.
            clean: Shadow-free product used for the reflection. Falls back
                to the shadowed subject.
            name: Image name carried into the result.

        Returns:
            CompositionResult with the RGB image and its layout.

        Raises:
            CompositingError: If geometry or rendering fails.
        """
        clean = clean or shadowed
        try:
            layout = compute_composite_layout(
                shadowed.size,
                clean.size,
                rules.padding_fraction,
                rules.aspect_ratio_mode,
                rules.placement,
                backdrop_size=backdrop.size if backdrop is not None else None,
                numeric_ratio=rules.numeric_aspect_ratio,
            )
        except ValidationError as e:
            raise CompositingError(f"Invalid geometry for '{name}': {e}") from e

        canvas_size = (layout.width, layout.height)
        try:
            canvas, warnings = fit_backdrop(backdrop, canvas_size)

            if rules.blur_background:
                canvas = apply_depth_of_field(canvas)

            if rules.reflection is not None and rules.reflection.opacity > 0:
                canvas = self._draw_reflection(canvas, clean, layout.reflection_rect, rules)

            subject = high_quality_resize(shadowed.convert("RGBA"), layout.subject_rect.size)
            canvas.paste(subject, (layout.subject_rect.x, layout.subject_rect.y), subject)
        except (OSError, ValueError, cv2.error) as e:
            raise CompositingError(f"Could not render '{name}': {e}") from e

        if rules.placement.scale > 1.0:
            warnings.append("Placement scale above 1 was limited to the padded area")

        logger.info("Composited '%s' at %dx%d", name, layout.width, layout.height)
        return CompositionResult(
            name=name,
            image=canvas.convert("RGB"),
            layout=layout,
            warnings=warnings,
        )

    def _draw_reflection(
        self,
        canvas: Image.Image,
        clean: Image.Image,
        rect: LayoutRect,
        rules: RenderRules,
    ) -> Image.Image:
        """Draw the reflection of the clean product below its foot line."""
        product = high_quality_resize(clean.convert("RGBA"), rect.size)
        spec = replace(
            rules.reflection,
            blur_radius=scaled_value(rules.reflection.blur_radius, canvas.width),
        )
        reflection = generate_reflection(product, spec)
        canvas.paste(reflection, (rect.x, rect.y), reflection)
        return canvas


def encode_image(image: Image.Image, fmt: str = Config.OUTPUT_FORMAT) -> bytes:
    """Encode a PIL image to bytes."""
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()
