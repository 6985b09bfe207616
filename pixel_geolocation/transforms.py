"""
Coordinate transformation module for pixel geolocation.

This module handles the frame changes between the camera and the ground:
    1. Camera frame to local ENU (orientation composition)
    2. Local ENU metre offsets to WGS84 degrees

Coordinate System Definitions:
    - Camera: X-right, Y-down (image rows), Z-forward (optical axis)
    - ENU: East-North-Up (local tangent plane centred on the camera)

Rotation Conventions:
    - All elementary rotations are right-handed
    - Zero attitude is a nadir-pointing camera with image-up towards North:
      camera +X -> East, camera +Y -> South, camera +Z -> Down
    - Full composition: R = Rz(yaw) @ Rx(pitch) @ Ry(-roll) @ R_BASE
    - Yaw is counter-clockwise about Up (compass headings are converted
      upstream, see metadata.normalize_yaw)
    - Positive pitch swings the optical axis towards +North at zero yaw
    - Positive roll swings the optical axis towards +East at zero yaw
"""

import numpy as np
from typing import Tuple
from dataclasses import dataclass
import logging
import math

logger = logging.getLogger(__name__)

# Camera-to-ENU alignment at zero attitude
R_BASE = np.array([
    [1, 0, 0],
    [0, -1, 0],
    [0, 0, -1]
], dtype=np.float64)


@dataclass(frozen=True)
class CameraPose:
    """
    Camera position and attitude at capture time.

    Attributes:
        lat: Geodetic latitude in degrees
        lon: Geodetic longitude in degrees
        altitude_amsl: Camera altitude above mean sea level in meters
        yaw: Rotation about Up in degrees (0 = image-up towards North)
        pitch: Tilt about East in degrees
        roll: Tilt about North in degrees
    """
    lat: float
    lon: float
    altitude_amsl: float
    yaw: float = 0.0
    pitch: float = 0.0
    roll: float = 0.0

    def has_valid_gps(self) -> bool:
        """True if lat/lon are finite and inside the WGS84 ranges."""
        if self.lat is None or self.lon is None:
            return False
        if not (math.isfinite(self.lat) and math.isfinite(self.lon)):
            return False
        return -90.0 <= self.lat <= 90.0 and -180.0 <= self.lon <= 180.0


def rot_x(angle: float) -> np.ndarray:
    """Right-handed rotation about X (East) by angle in radians."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [1, 0, 0],
        [0, c, -s],
        [0, s, c]
    ])


def rot_y(angle: float) -> np.ndarray:
    """Right-handed rotation about Y (North) by angle in radians."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, 0, s],
        [0, 1, 0],
        [-s, 0, c]
    ])


def rot_z(angle: float) -> np.ndarray:
    """Right-handed rotation about Z (Up) by angle in radians."""
    c, s = np.cos(angle), np.sin(angle)
    return np.array([
        [c, -s, 0],
        [s, c, 0],
        [0, 0, 1]
    ])


def compose_rotation(yaw: float, pitch: float, roll: float) -> np.ndarray:
    """
    Build the rotation matrix mapping camera-frame vectors to ENU.

    The roll angle is negated before its rotation is built, so at zero yaw
    a positive roll swings the optical axis towards +East and raises the
    right edge of the image.

    Args:
        yaw: Yaw angle in degrees
        pitch: Pitch angle in degrees
        roll: Roll angle in degrees

    Returns:
        3x3 orthonormal rotation matrix (camera -> ENU)
    """
    R_yaw = rot_z(np.deg2rad(yaw))
    R_pitch = rot_x(np.deg2rad(pitch))
    R_roll = rot_y(np.deg2rad(-roll))

    return R_yaw @ R_pitch @ R_roll @ R_BASE


def camera_ray_to_enu(ray_camera: np.ndarray, R_enu_cam: np.ndarray) -> np.ndarray:
    """
    Rotate a camera-frame direction into ENU and normalize it.

    Args:
        ray_camera: Direction in camera frame (any non-zero length)
        R_enu_cam: Rotation from compose_rotation()

    Returns:
        Unit direction vector (east, north, up)
    """
    d_cam = np.asarray(ray_camera, dtype=np.float64)
    norm = np.linalg.norm(d_cam)
    if norm > 0:
        d_cam = d_cam / norm
    return R_enu_cam @ d_cam


def meters_per_degree(lat: float) -> Tuple[float, float]:
    """
    Length of one degree of latitude and longitude at a given latitude.

    Uses the WGS84 ellipsoidal series expansion.

    Args:
        lat: Latitude in degrees

    Returns:
        Tuple of (meters per degree latitude, meters per degree longitude)
    """
    L = math.radians(lat)

    m_lat = (111132.92
             - 559.82 * math.cos(2 * L)
             + 1.175 * math.cos(4 * L)
             - 0.0023 * math.cos(6 * L))
    m_lon = (111412.84 * math.cos(L)
             - 93.5 * math.cos(3 * L)
             + 0.118 * math.cos(5 * L))

    return m_lat, m_lon


def enu_offset_to_geodetic(
    lat0: float,
    lon0: float,
    east: float,
    north: float,
    scale_lat: float = None,
) -> Tuple[float, float]:
    """
    Shift a geodetic point by a local East/North offset in meters.

    Args:
        lat0: Origin latitude in degrees
        lon0: Origin longitude in degrees
        east: East offset in meters
        north: North offset in meters
        scale_lat: Latitude at which the meter/degree scale is evaluated
            (defaults to lat0)

    Returns:
        Tuple of (lat, lon) in degrees
    """
    if scale_lat is None:
        scale_lat = lat0
    m_lat, m_lon = meters_per_degree(scale_lat)
    return lat0 + north / m_lat, lon0 + east / m_lon


def validate_rotation_matrix(R: np.ndarray, tol: float = 1e-6) -> bool:
    """
    Validate that a matrix is a proper rotation matrix.

    A proper rotation matrix must:
        1. Be orthogonal: R @ R.T = I
        2. Have determinant = +1 (not a reflection)

    Args:
        R: 3x3 matrix to validate
        tol: Numerical tolerance

    Returns:
        True if R is a valid rotation matrix
    """
    if R.shape != (3, 3):
        return False

    if not np.allclose(R @ R.T, np.eye(3), atol=tol):
        return False

    return bool(np.isclose(np.linalg.det(R), 1.0, atol=tol))
