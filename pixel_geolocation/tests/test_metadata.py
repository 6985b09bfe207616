"""
Tests for metadata normalization.
"""

import pytest

from pixel_geolocation.metadata import (
    intrinsics_hints_from_metadata,
    normalize_yaw,
    number_from_mixed,
    parse_user_comment,
    pose_from_metadata,
    to_decimal_degrees,
)
from pixel_geolocation.transforms import CameraPose


class TestNumbers:
    """Tests for numeric tag parsing."""

    @pytest.mark.parametrize("value,expected", [
        (12.5, 12.5),
        ("+12.50", 12.5),
        ("-30.2 deg", -30.2),
        ("120 m", 120.0),
        (7, 7.0),
    ])
    def test_number_from_mixed(self, value, expected):
        assert number_from_mixed(value) == pytest.approx(expected)

    def test_not_a_number(self):
        assert number_from_mixed("n/a") is None
        assert number_from_mixed(None) is None
        assert number_from_mixed(True) is None


class TestDecimalDegrees:
    """Tests for GPS coordinate conversion."""

    def test_dms_list_southern(self):
        assert to_decimal_degrees([40, 30, 0], "S") == pytest.approx(-40.5)

    def test_dms_string(self):
        assert to_decimal_degrees("40 deg 30' 0.00\" N") == pytest.approx(40.5)

    def test_comma_string_western(self):
        assert to_decimal_degrees("44, 30, 36", "W") == pytest.approx(-44.51)

    def test_decimal_with_ref(self):
        assert to_decimal_degrees(12.25, "W") == pytest.approx(-12.25)
        assert to_decimal_degrees(12.25, "E") == pytest.approx(12.25)

    def test_dms_string_uses_separate_ref(self):
        assert to_decimal_degrees("33 deg 52' 0\"", "S") == pytest.approx(-(33 + 52 / 60))

    def test_dms_string_letter_wins_over_ref(self):
        assert to_decimal_degrees("33 deg 52' 0\" N", "S") == pytest.approx(33 + 52 / 60)

    def test_negative_decimal(self):
        assert to_decimal_degrees(-33.5) == pytest.approx(-33.5)


class TestYaw:
    """Tests for yaw normalization."""

    def test_dji_heading_is_mirrored(self):
        assert normalize_yaw({"Make": "DJI", "GimbalYawDegree": "+90.0"}) == pytest.approx(270.0)

    def test_dji_negative_heading(self):
        assert normalize_yaw({"Make": "DJI", "GimbalYawDegree": -90.0}) == pytest.approx(90.0)

    def test_sony_heading_is_mirrored(self):
        assert normalize_yaw({"Make": "SONY", "Yaw": 45.0}) == pytest.approx(315.0)

    def test_other_makers_wrap_only(self):
        assert normalize_yaw({"Make": "Parrot", "Yaw": -90.0}) == pytest.approx(270.0)

    def test_fallback(self):
        assert normalize_yaw({}, fallback=10.0) == pytest.approx(10.0)
        assert normalize_yaw({}) is None


class TestPoseFromMetadata:
    """Tests for pose extraction."""

    def test_dji_tags(self):
        meta = {
            "Make": "DJI",
            "GPSLatitude": [40, 30, 0],
            "GPSLatitudeRef": "N",
            "GPSLongitude": [44, 30, 36],
            "GPSLongitudeRef": "E",
            "AbsoluteAltitude": "+1120.50",
            "RelativeAltitude": "+120.10",
            "GimbalYawDegree": "+30.0",
            "GimbalPitchDegree": "-45.5",
            "GimbalRollDegree": "+0.0",
        }
        pose = pose_from_metadata(meta)
        assert pose.has_gps
        assert pose.lat == pytest.approx(40.5)
        assert pose.lon == pytest.approx(44.51)
        assert pose.altitude_amsl == pytest.approx(1120.5)
        assert pose.relative_altitude == pytest.approx(120.1)
        assert pose.yaw == pytest.approx(330.0)
        assert pose.pitch == pytest.approx(-45.5)
        assert pose.roll == pytest.approx(0.0)

    def test_user_comment(self):
        meta = {"UserComment": "Lat=40.1 Lon=44.2 Yaw=10 Pitch=-5 Roll=1.5"}
        pose = pose_from_metadata(meta)
        assert (pose.lat, pose.lon) == (40.1, 44.2)
        assert pose.yaw == pytest.approx(10.0)
        assert pose.pitch == -5.0
        assert pose.roll == 1.5

    def test_parse_user_comment(self):
        assert parse_user_comment(None) == {}
        assert parse_user_comment("yaw = 12.5") == {"yaw": 12.5}

    def test_no_gps(self):
        pose = pose_from_metadata({"GimbalPitchDegree": -90})
        assert not pose.has_gps
        with pytest.raises(ValueError):
            pose.to_pose()

    def test_to_pose_keeps_base_values(self):
        base = CameraPose(1.0, 2.0, 300.0, yaw=5.0, pitch=6.0, roll=7.0)
        pose = pose_from_metadata({"Pitch": -20}).to_pose(base)
        assert pose == CameraPose(1.0, 2.0, 300.0, yaw=5.0, pitch=-20.0, roll=7.0)


class TestIntrinsicsHints:
    """Tests for lens tag extraction."""

    def test_hints(self):
        meta = {"Model": "ILCE-5100", "FocalLength": "16.0 mm", "FocalLengthIn35mmFormat": "24 mm"}
        hints = intrinsics_hints_from_metadata(meta, 6000, 4000)
        assert hints.model == "ILCE-5100"
        assert hints.focal_length_mm == 16.0
        assert hints.focal_length_35mm == 24.0
        assert hints.fov_deg is None
        assert (hints.image_width, hints.image_height) == (6000, 4000)

    def test_missing_model(self):
        assert intrinsics_hints_from_metadata({}, 10, 10).model is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
