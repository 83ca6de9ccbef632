"""Tests for input validation."""

import pytest

from studioshot.app.constants import MIB
from studioshot.app.exceptions import ValidationError
from studioshot.app.models import ImageDescriptor, PlacementConfig, ReflectionSpec
from studioshot.app.validators import (
    validate_aspect_ratio,
    validate_descriptors,
    validate_dimensions,
    validate_padding,
    validate_placement,
    validate_reflection_spec,
)


class TestValidateDimensions:
    def test_valid_dimensions(self):
        validate_dimensions(1080, 1920)  # No exception

    def test_zero_width_rejected(self):
        with pytest.raises(ValidationError, match="positive"):
            validate_dimensions(0, 100)

    def test_negative_height_rejected(self):
        with pytest.raises(ValidationError, match="positive"):
            validate_dimensions(100, -50)

    def test_non_numeric_rejected(self):
        with pytest.raises(ValidationError, match="numbers"):
            validate_dimensions("100", 100)


class TestValidatePadding:
    @pytest.mark.parametrize("padding", [0, 0.1, 0.49])
    def test_valid(self, padding):
        validate_padding(padding)

    @pytest.mark.parametrize("padding", [0.5, 1.2, -0.01])
    def test_out_of_range(self, padding):
        with pytest.raises(ValidationError, match=r"\[0, 0.5\)"):
            validate_padding(padding)


class TestValidateAspectRatio:
    def test_positive_ratio(self):
        validate_aspect_ratio(1.5)

    def test_zero_rejected(self):
        with pytest.raises(ValidationError):
            validate_aspect_ratio(0)


class TestValidatePlacement:
    def test_defaults(self):
        validate_placement(PlacementConfig())

    def test_corners_allowed(self):
        validate_placement(PlacementConfig(x=0.0, y=1.0))

    def test_anchor_outside_canvas(self):
        with pytest.raises(ValidationError, match="anchor"):
            validate_placement(PlacementConfig(y=1.1))

    def test_zero_scale(self):
        with pytest.raises(ValidationError, match="scale"):
            validate_placement(PlacementConfig(scale=0))


class TestValidateReflectionSpec:
    def test_defaults(self):
        validate_reflection_spec(ReflectionSpec())

    def test_negative_blur(self):
        with pytest.raises(ValidationError, match="blur"):
            validate_reflection_spec(ReflectionSpec(blur_radius=-1))

    def test_opacity_above_one(self):
        with pytest.raises(ValidationError, match="opacity"):
            validate_reflection_spec(ReflectionSpec(opacity=1.5))

    def test_empty_gradient(self):
        with pytest.raises(ValidationError, match="stop"):
            validate_reflection_spec(ReflectionSpec(gradient_stops=()))

    def test_stop_outside_unit_range(self):
        with pytest.raises(ValidationError, match="within"):
            validate_reflection_spec(ReflectionSpec(gradient_stops=((0.0, 1.5),)))


class TestValidateDescriptors:
    def test_valid_batch(self):
        validate_descriptors(
            [
                ImageDescriptor(name="a", reference="blob-a"),
                ImageDescriptor(name="b", inline_data="aGVsbG8="),
            ]
        )

    def test_missing_name(self):
        with pytest.raises(ValidationError, match="name"):
            validate_descriptors([ImageDescriptor(name="", reference="r")])

    def test_duplicate_names(self):
        with pytest.raises(ValidationError, match="Duplicate image name"):
            validate_descriptors(
                [ImageDescriptor(name="a", reference="r1"), ImageDescriptor(name="a", reference="r2")]
            )

    def test_no_payload(self):
        with pytest.raises(ValidationError, match="neither a reference nor inline data"):
            validate_descriptors([ImageDescriptor(name="a")])

    def test_declared_size_at_ceiling(self):
        with pytest.raises(ValidationError, match="too large"):
            validate_descriptors([ImageDescriptor(name="a", reference="r", size_bytes=300 * MIB)])

    def test_custom_ceiling(self):
        big = ImageDescriptor(name="a", reference="r", size_bytes=350 * MIB)
        validate_descriptors([big], max_item_bytes=400 * MIB)
        with pytest.raises(ValidationError, match="Maximum allowed size is 100MB"):
            validate_descriptors([big], max_item_bytes=100 * MIB)
