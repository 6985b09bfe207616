"""
DEM-aware refinement of a ray/ground intersection.

The flat-plane intersection assumes one ground elevation. Over real terrain
the elevation depends on where the ray lands, so the ray parameter t is
iterated to a fixed point:

    t_{k+1} = (z_DEM(point(t_k)) - camera_altitude) / dz

Each candidate point is converted to degrees with the meter/degree scale of
the previous candidate's latitude. The iteration stops when |t_{k+1} - t_k|
falls below the tolerance or after a fixed number of iterations; a result
that exhausts the budget is still returned but flagged as not converged.
No guard exists against oscillation over cliffs or sharp discontinuities.
"""

import math
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from .dem import DEMSample
from .intersect import FailureKind, PARALLEL_EPS
from .transforms import CameraPose, meters_per_degree

logger = logging.getLogger(__name__)

SampleFn = Callable[[float, float], DEMSample]


@dataclass(frozen=True)
class RefinementResult:
    """Ground point found by the DEM refiner."""
    lat: float
    lon: float
    range_m: float  # Horizontal distance from the camera nadir
    ground_elevation_amsl: float
    t: float  # Final ray parameter
    iterations: int
    converged: bool
    dem_fallback: Optional[FailureKind] = None  # Why the DEM had no value at the final candidate


def refine_against_dem(
    direction_enu: Sequence[float],
    pose: CameraPose,
    sample: SampleFn,
    ground_elevation_amsl: float,
    max_iterations: int = 8,
    tolerance_m: float = 0.05,
) -> Optional[RefinementResult]:
    """
    Iteratively intersect a camera ray with the terrain.

    Args:
        direction_enu: Unit ray direction (east, north, up)
        pose: Camera pose (lat/lon origin and altitude)
        sample: DEM sampling function (lat, lon) -> DEMSample
        ground_elevation_amsl: Configured flat ground elevation, used to
            seed the iteration and whenever the DEM has no value
        max_iterations: Iteration budget
        tolerance_m: Convergence threshold on the ray parameter

    Returns:
        RefinementResult, or None if the ray is parallel to the ground or
        never reaches the ground in front of the camera
    """
    dx, dy, dz = direction_enu
    if abs(dz) < PARALLEL_EPS:
        return None

    altitude = pose.altitude_amsl
    t = (ground_elevation_amsl - altitude) / dz
    have_valid_t = math.isfinite(t) and t >= 0
    if not have_valid_t:
        t = 1.0

    lat_cur = pose.lat
    fallback = None
    iterations = 0

    for i in range(max_iterations):
        iterations = i + 1
        m_lat, m_lon = meters_per_degree(lat_cur)
        east, north = t * dx, t * dy
        lat_guess = pose.lat + north / m_lat
        lon_guess = pose.lon + east / m_lon

        result = sample(lat_guess, lon_guess)
        z_ground = result.elevation
        fallback = result.failure
        if z_ground is None:
            z_ground = ground_elevation_amsl
        if z_ground is None or not math.isfinite(z_ground):
            break

        t_new = (z_ground - altitude) / dz
        if not math.isfinite(t_new) or t_new < 0:
            logger.debug(f"Refinement stopped at iteration {iterations}: t_new={t_new}")
            break

        logger.debug(
            f"Refinement iteration {iterations}: t={t:.3f} -> {t_new:.3f}, "
            f"ground={z_ground:.2f} m at ({lat_guess:.7f}, {lon_guess:.7f})"
        )
        have_valid_t = True

        if abs(t_new - t) < tolerance_m:
            return RefinementResult(
                lat=lat_guess,
                lon=lon_guess,
                range_m=math.hypot(east, north),
                ground_elevation_amsl=z_ground,
                t=t,
                iterations=iterations,
                converged=True,
                dem_fallback=fallback,
            )

        t = t_new
        lat_cur = lat_guess

    if not have_valid_t:
        return None

    m_lat, m_lon = meters_per_degree(lat_cur)
    east, north = t * dx, t * dy
    logger.warning(
        f"DEM refinement did not converge within {iterations} iterations; "
        f"returning best-effort point"
    )
    return RefinementResult(
        lat=pose.lat + north / m_lat,
        lon=pose.lon + east / m_lon,
        range_m=math.hypot(east, north),
        ground_elevation_amsl=altitude + t * dz,
        t=t,
        iterations=iterations,
        converged=False,
        dem_fallback=fallback,
    )
