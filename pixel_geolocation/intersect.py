"""
Closed-form intersection of a camera ray with a horizontal ground plane.
"""

import math
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

# Rays with a smaller Up-component are treated as parallel to the ground
PARALLEL_EPS = 1e-6


class FailureKind(Enum):
    """Expected reasons a projection yields no ground point."""
    RAY_PARALLEL_TO_GROUND = "ray didn't hit ground (parallel to the ground plane)"
    RAY_POINTS_AWAY = "ray didn't hit ground (intersection behind the camera)"
    DEM_OUT_OF_BOUNDS = "point lies outside the DEM extent"
    DEM_WRONG_CRS = "DEM is not in a geographic coordinate reference"
    DEM_NO_DATA = "DEM has no data around the point"
    POSE_AMBIGUOUS = "no valid ground intersection for any yaw/pitch/roll sign combination"
    MISSING_GPS = "camera pose has no usable latitude/longitude"

    @property
    def message(self) -> str:
        return self.value


@dataclass(frozen=True)
class GroundHit:
    """Horizontal offset of a ground intersection from the camera."""
    east: float  # meters
    north: float  # meters
    t: float  # ray parameter

    @property
    def range_m(self) -> float:
        return math.hypot(self.east, self.north)


def ray_parameter(
    dz: float, camera_altitude_amsl: float, ground_elevation_amsl: float
) -> Optional[float]:
    """
    Ray parameter where the Up-component reaches the ground elevation.

    Returns:
        t >= 0, or None for parallel rays and intersections behind the camera
    """
    if abs(dz) < PARALLEL_EPS:
        return None
    t = (ground_elevation_amsl - camera_altitude_amsl) / dz
    if not math.isfinite(t) or t < 0:
        return None
    return t


def classify_miss(dz: float) -> FailureKind:
    """Failure kind for a ray that produced no flat-ground intersection."""
    if abs(dz) < PARALLEL_EPS:
        return FailureKind.RAY_PARALLEL_TO_GROUND
    return FailureKind.RAY_POINTS_AWAY


def intersect_flat_ground(
    direction_enu: Sequence[float],
    camera_altitude_amsl: float,
    ground_elevation_amsl: float,
) -> Optional[GroundHit]:
    """
    Intersect a ray from the camera with a horizontal plane.

    Args:
        direction_enu: Ray direction (east, north, up)
        camera_altitude_amsl: Camera altitude in meters AMSL
        ground_elevation_amsl: Plane elevation in meters AMSL

    Returns:
        GroundHit with the East/North offset, or None when the ray is
        parallel to the plane or the plane lies behind the camera
    """
    dx, dy, dz = direction_enu
    t = ray_parameter(dz, camera_altitude_amsl, ground_elevation_amsl)
    if t is None:
        logger.debug(f"No flat-ground intersection: dz={dz}")
        return None
    return GroundHit(east=t * dx, north=t * dy, t=t)
