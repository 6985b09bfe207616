"""
Tests for intrinsics resolution.
"""

import math

import pytest

from pixel_geolocation.config import DEFAULT_FOV_DEG, IntrinsicsHints
from pixel_geolocation.intrinsics import (
    CALIBRATION_PRESETS,
    crop_factor_for_model,
    focal_from_metadata,
    resolve_intrinsics,
    sensor_width_for_model,
)
from pixel_geolocation.metadata import intrinsics_hints_from_metadata


class TestResolveIntrinsics:
    """Tests for the intrinsics fallback chain."""

    def test_explicit_focal(self):
        K = resolve_intrinsics(IntrinsicsHints(image_width=1000, image_height=800, fx=900.0))
        assert K.fx == 900.0
        assert K.fy == 900.0
        assert (K.cx, K.cy) == (500.0, 400.0)

    def test_explicit_principal_point_and_distortion(self):
        hints = IntrinsicsHints(
            image_width=1000, image_height=800, fx=900.0, fy=910.0, cx=480.0, cy=410.0, k1=-0.1,
        )
        K = resolve_intrinsics(hints)
        assert (K.fy, K.cx, K.cy, K.k1) == (910.0, 480.0, 410.0, -0.1)

    def test_preset_scaled_to_resolution(self):
        preset = CALIBRATION_PRESETS["ILCE-5100"]
        K = resolve_intrinsics(IntrinsicsHints(image_width=3000, image_height=2000, preset="ilce-5100"))
        assert K.fx == pytest.approx(preset.fx / 2)
        assert K.fy == pytest.approx(preset.fy / 2)
        assert K.cx == pytest.approx(preset.cx / 2)
        assert K.k3 == preset.k3
        assert K.has_distortion

    def test_explicit_focal_wins_over_preset(self):
        hints = IntrinsicsHints(image_width=6000, image_height=4000, fx=5000.0, preset="ILCE-5100")
        K = resolve_intrinsics(hints)
        assert K.fx == 5000.0
        assert not K.has_distortion

    def test_unknown_preset(self):
        with pytest.raises(ValueError):
            resolve_intrinsics(IntrinsicsHints(image_width=100, image_height=100, preset="nope"))

    def test_physical_focal_length(self):
        hints = IntrinsicsHints(
            image_width=6000, image_height=4000, focal_length_mm=16.0, model="ILCE-5100",
        )
        K = resolve_intrinsics(hints)
        assert K.fx == pytest.approx(16.0 * 6000 / 23.5)
        assert K.fy == pytest.approx(16.0 * 4000 / 23.5)

    def test_model_preset_without_focal_length(self):
        """A known body with no usable focal length gets its lab calibration."""
        hints = intrinsics_hints_from_metadata({"Model": "ILCE-5100"}, 6000, 4000)
        preset = CALIBRATION_PRESETS["ILCE-5100"]
        K = resolve_intrinsics(hints)
        assert K.fx == pytest.approx(preset.fx)
        assert K.cy == pytest.approx(preset.cy)
        assert K.k1 == preset.k1
        assert K.p2 == preset.p2

    def test_focal_length_wins_over_model_preset(self):
        hints = intrinsics_hints_from_metadata(
            {"Model": "ILCE-5100", "FocalLength": "16.0 mm"}, 6000, 4000,
        )
        K = resolve_intrinsics(hints)
        assert K.fx == pytest.approx(16.0 * 6000 / 23.5)
        assert not K.has_distortion

    def test_model_without_preset_uses_field_of_view(self):
        K = resolve_intrinsics(IntrinsicsHints(image_width=1000, image_height=1000, model="FC6310"))
        assert K.fx == pytest.approx(500 / math.tan(math.radians(DEFAULT_FOV_DEG / 2)))

    def test_field_of_view(self):
        K = resolve_intrinsics(IntrinsicsHints(image_width=1000, image_height=1000, fov_deg=90.0))
        assert K.fx == pytest.approx(500.0)
        assert K.fy == K.fx

    def test_default_field_of_view(self):
        K = resolve_intrinsics(IntrinsicsHints(image_width=6000, image_height=4000))
        assert K.fx == pytest.approx(3000 / math.tan(math.radians(DEFAULT_FOV_DEG / 2)))

    def test_invalid_image_size(self):
        with pytest.raises(ValueError):
            resolve_intrinsics(IntrinsicsHints(image_width=0, image_height=100, fx=10.0))


class TestFocalFromMetadata:
    """Tests for focal length derived from lens tags."""

    def test_equivalent_focal_on_apsc(self):
        hints = IntrinsicsHints(
            image_width=6000, image_height=4000, focal_length_35mm=24.0, model="ILCE-6000",
        )
        fx, fy, focal_mm = focal_from_metadata(hints)
        assert focal_mm == pytest.approx(24.0 / 1.53)
        assert fx == pytest.approx(focal_mm * 6000 / 23.5)

    def test_equivalent_focal_unknown_body(self):
        hints = IntrinsicsHints(image_width=6000, image_height=4000, focal_length_35mm=24.0)
        fx, _, focal_mm = focal_from_metadata(hints)
        assert focal_mm == 24.0
        assert fx == pytest.approx(4000.0)

    def test_explicit_sensor_width(self):
        hints = IntrinsicsHints(
            image_width=4000, image_height=3000, focal_length_mm=8.8, sensor_width_mm=13.2,
        )
        fx, _, _ = focal_from_metadata(hints)
        assert fx == pytest.approx(8.8 * 4000 / 13.2)

    def test_no_focal_length(self):
        assert focal_from_metadata(IntrinsicsHints(image_width=10, image_height=10)) is None


class TestModelTables:
    """Tests for sensor lookups."""

    def test_sensor_width(self):
        assert sensor_width_for_model("ILCE-5100") == 23.5
        assert sensor_width_for_model("ilce-7000") == 23.5
        assert sensor_width_for_model("Mystery Cam") == 36.0
        assert sensor_width_for_model(None) == 36.0

    def test_crop_factor(self):
        assert crop_factor_for_model("ILCE-5100") == 1.53
        assert crop_factor_for_model("FC6310") == 1.0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
