"""Input validation for StudioShot."""

from __future__ import annotations

from collections.abc import Sequence

from .config import Config
from .constants import MIB
from .exceptions import ValidationError
from .models import ImageDescriptor, PlacementConfig, ReflectionSpec


def validate_dimensions(width: int, height: int) -> None:
    """Validate subject or canvas dimensions.

    Args:
        width: Width in pixels.
        height: Height in pixels.

    Raises:
        ValidationError: If dimensions are invalid.
    """
    if not isinstance(width, int | float) or not isinstance(height, int | float):
        raise ValidationError(
            f"Dimensions must be numbers, got {type(width).__name__} and {type(height).__name__}"
        )

    if width <= 0 or height <= 0:
        raise ValidationError(f"Dimensions must be positive, got {width}x{height}")


def validate_padding(padding_fraction: float) -> None:
    """Validate a per-side padding fraction.

    Padding is applied on both sides, so it must stay below one half.

    Raises:
        ValidationError: If the padding leaves no room for the subject.
    """
    if not isinstance(padding_fraction, int | float):
        raise ValidationError(
            f"Padding must be a number, got {type(padding_fraction).__name__}"
        )
    if padding_fraction < 0 or padding_fraction >= 0.5:
        raise ValidationError(
            f"Padding fraction must be in [0, 0.5), got {padding_fraction}"
        )


def validate_aspect_ratio(ratio: float) -> None:
    """Validate a numeric width / height ratio."""
    if not isinstance(ratio, int | float) or ratio <= 0:
        raise ValidationError(f"Aspect ratio must be a positive number, got {ratio!r}")


def validate_placement(placement: PlacementConfig) -> None:
    """Validate a normalized placement anchor.

    Raises:
        ValidationError: If the anchor is outside the unit square or scale is not positive.
    """
    if not 0.0 <= placement.x <= 1.0 or not 0.0 <= placement.y <= 1.0:
        raise ValidationError(
            f"Placement anchor must be within [0, 1], got ({placement.x}, {placement.y})"
        )
    if placement.scale <= 0:
        raise ValidationError(f"Placement scale must be positive, got {placement.scale}")


def validate_reflection_spec(spec: ReflectionSpec) -> None:
    """Validate reflection parameters and gradient stops.

    Raises:
        ValidationError: If any parameter is out of range.
    """
    if not 0.0 < spec.height_fraction <= 1.0:
        raise ValidationError(
            f"Reflection height fraction must be in (0, 1], got {spec.height_fraction}"
        )
    if spec.blur_radius < 0:
        raise ValidationError(f"Reflection blur radius must be >= 0, got {spec.blur_radius}")
    if not 0.0 <= spec.opacity <= 1.0:
        raise ValidationError(f"Reflection opacity must be in [0, 1], got {spec.opacity}")
    if not spec.gradient_stops:
        raise ValidationError("Reflection gradient needs at least one stop")

    previous = -1.0
    for offset, alpha in spec.gradient_stops:
        if not 0.0 <= offset <= 1.0 or not 0.0 <= alpha <= 1.0:
            raise ValidationError(
                f"Gradient stop ({offset}, {alpha}) must lie within [0, 1]"
            )
        if offset < previous:
            raise ValidationError("Gradient stop offsets must be ascending")
        previous = offset


def validate_descriptors(
    descriptors: Sequence[ImageDescriptor], max_item_bytes: int = Config.MAX_ITEM_BYTES
) -> None:
    """Validate a batch of image descriptors before partitioning.

    Raises:
        ValidationError: If a descriptor has no payload, a duplicate name,
            or a declared size at or above ``max_item_bytes``.
    """
    seen: set[str] = set()
    for descriptor in descriptors:
        if not descriptor.name:
            raise ValidationError("Image descriptor needs a name")
        if descriptor.name in seen:
            raise ValidationError(f"Duplicate image name: {descriptor.name}")
        seen.add(descriptor.name)

        if not descriptor.reference and not descriptor.inline_data:
            raise ValidationError(
                f"Image '{descriptor.name}' has neither a reference nor inline data"
            )
        if descriptor.size_bytes is not None and descriptor.size_bytes >= max_item_bytes:
            raise ValidationError(
                f"Image '{descriptor.name}' is too large "
                f"({descriptor.size_bytes / MIB:.2f}MB). "
                f"Maximum allowed size is {max_item_bytes / MIB:.0f}MB per image."
            )
