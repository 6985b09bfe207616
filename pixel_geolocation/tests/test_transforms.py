"""
Tests for coordinate transformation module.

These tests verify the correctness of:
    - Orientation composition (camera -> ENU)
    - Meters per degree series expansion
    - ENU offset to geodetic conversion
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose
from scipy.spatial.transform import Rotation

from pixel_geolocation.transforms import (
    CameraPose,
    R_BASE,
    camera_ray_to_enu,
    compose_rotation,
    enu_offset_to_geodetic,
    meters_per_degree,
    validate_rotation_matrix,
)


class TestComposeRotation:
    """Tests for the camera-to-ENU rotation."""

    def test_zero_attitude_is_base(self):
        """Zero angles should give the nadir base alignment."""
        R = compose_rotation(0, 0, 0)
        assert_allclose(R, np.diag([1, -1, -1]), atol=1e-12)

    def test_zero_attitude_axes(self):
        """Camera X -> East, Y -> South, Z (forward) -> Down."""
        R = compose_rotation(0, 0, 0)
        assert_allclose(R @ [1, 0, 0], [1, 0, 0], atol=1e-12)
        assert_allclose(R @ [0, 1, 0], [0, -1, 0], atol=1e-12)
        assert_allclose(R @ [0, 0, 1], [0, 0, -1], atol=1e-12)

    def test_rotation_is_proper(self):
        """Composed matrices should be orthonormal with det +1."""
        angles = [
            (0, 0, 0), (45, 10, -5), (-120, 80, 30), (359, -60, 89), (10, 0, -170),
        ]
        for yaw, pitch, roll in angles:
            R = compose_rotation(yaw, pitch, roll)
            assert validate_rotation_matrix(R), f"Failed at {(yaw, pitch, roll)}"

    def test_positive_pitch_tilts_towards_north(self):
        """At zero yaw a positive pitch moves the optical axis north."""
        forward = compose_rotation(0, 30, 0) @ [0, 0, 1]
        assert forward[1] == pytest.approx(np.sin(np.radians(30)))
        assert forward[2] == pytest.approx(-np.cos(np.radians(30)))
        assert forward[0] == pytest.approx(0, abs=1e-12)

    def test_positive_roll_tilts_towards_east(self):
        """At zero yaw a positive roll moves the optical axis east."""
        forward = compose_rotation(0, 0, 20) @ [0, 0, 1]
        assert forward[0] == pytest.approx(np.sin(np.radians(20)))
        assert forward[1] == pytest.approx(0, abs=1e-12)

    def test_positive_roll_raises_right_edge(self):
        """Image-right (camera +X) gains an Up component under positive roll."""
        right = compose_rotation(0, 0, 20) @ [1, 0, 0]
        assert_allclose(right, [np.cos(np.radians(20)), 0, np.sin(np.radians(20))], atol=1e-12)

    def test_yaw_rotates_counter_clockwise_about_up(self):
        """Yaw 90 turns the image-right axis from East to North."""
        right = compose_rotation(90, 0, 0) @ [1, 0, 0]
        assert_allclose(right, [0, 1, 0], atol=1e-12)

    def test_matches_scipy_intrinsic_zxy(self):
        """Composition equals Rz(yaw) Rx(pitch) Ry(-roll) @ base."""
        for yaw, pitch, roll in [(12.0, 34.0, -5.0), (-170.0, 5.0, 60.0)]:
            expected = Rotation.from_euler(
                'ZXY', [yaw, pitch, -roll], degrees=True
            ).as_matrix() @ R_BASE
            assert_allclose(compose_rotation(yaw, pitch, roll), expected, atol=1e-12)


class TestCameraRayToENU:
    """Tests for ray rotation and normalization."""

    def test_result_is_unit_length(self):
        d = camera_ray_to_enu(np.array([0.3, -0.2, 1.0]), compose_rotation(10, 20, 30))
        assert np.linalg.norm(d) == pytest.approx(1.0)

    def test_nadir_ray_points_down(self):
        d = camera_ray_to_enu(np.array([0.0, 0.0, 1.0]), compose_rotation(0, 0, 0))
        assert_allclose(d, [0, 0, -1], atol=1e-12)


class TestMetersPerDegree:
    """Tests for the WGS84 meters-per-degree series."""

    def test_equator(self):
        m_lat, m_lon = meters_per_degree(0.0)
        assert m_lat == pytest.approx(111132.92 - 559.82 + 1.175 - 0.0023)
        assert m_lon == pytest.approx(111412.84 - 93.5 + 0.118)

    def test_longitude_shrinks_with_latitude(self):
        _, m_lon_0 = meters_per_degree(0.0)
        _, m_lon_40 = meters_per_degree(40.0)
        _, m_lon_80 = meters_per_degree(80.0)
        assert m_lon_0 > m_lon_40 > m_lon_80 > 0

    def test_latitude_grows_towards_pole(self):
        assert meters_per_degree(60.0)[0] > meters_per_degree(0.0)[0]

    def test_symmetric_hemispheres(self):
        assert meters_per_degree(-35.0) == pytest.approx(meters_per_degree(35.0))


class TestENUOffsetToGeodetic:
    """Tests for shifting a geodetic point by local meters."""

    def test_zero_offset(self):
        assert enu_offset_to_geodetic(40.0, 44.5, 0.0, 0.0) == (40.0, 44.5)

    def test_north_offset(self):
        m_lat, _ = meters_per_degree(40.0)
        lat, lon = enu_offset_to_geodetic(40.0, 44.5, 0.0, m_lat)
        assert lat == pytest.approx(41.0)
        assert lon == pytest.approx(44.5)

    def test_east_offset_uses_scale_latitude(self):
        _, m_lon = meters_per_degree(41.0)
        lat, lon = enu_offset_to_geodetic(40.0, 44.5, m_lon, 0.0, scale_lat=41.0)
        assert lon == pytest.approx(45.5)


class TestCameraPose:
    """Tests for GPS validity checks."""

    def test_valid(self):
        assert CameraPose(40.0, 44.5, 120.0).has_valid_gps()

    @pytest.mark.parametrize("lat,lon", [
        (float('nan'), 44.5),
        (40.0, float('inf')),
        (91.0, 0.0),
        (0.0, -181.0),
    ])
    def test_invalid(self, lat, lon):
        assert not CameraPose(lat, lon, 120.0).has_valid_gps()


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
