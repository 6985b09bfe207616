"""
Pixel-to-ground projection pipeline.

This is the main module that orchestrates the geolocation of a pixel:
    1. Back-project the pixel into a camera-frame ray (with undistortion)
    2. Rotate the ray into ENU with the camera attitude
    3. Intersect with the ground:
        a. DEM-aware refinement when a DEM is loaded and enabled
        b. Flat plane at the configured ground elevation otherwise
    4. Convert the East/North offset to latitude/longitude

A GroundProjector holds only immutable inputs, so one instance can serve
concurrent projections. Changing the pose produces a new projector.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

import numpy as np

from .autofix import PoseCorrection, auto_fix_pose
from .camera import CameraModel
from .config import CameraIntrinsics, Config, RefinementSettings
from .dem import DEMSample, DEMSampler, DigitalElevationModel, make_nodata_policy
from .intersect import FailureKind, classify_miss, intersect_flat_ground
from .intrinsics import resolve_intrinsics
from .refine import refine_against_dem
from .transforms import (
    CameraPose,
    camera_ray_to_enu,
    compose_rotation,
    enu_offset_to_geodetic,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectionResult:
    """Ground point for one clicked pixel."""
    lat: float
    lon: float
    ground_elevation_amsl: float
    slant_range_m: float  # Horizontal distance from the camera nadir
    agl_m: float  # Camera height above the ground point
    pixel_u: float
    pixel_v: float
    converged: bool = True
    iterations: int = 0
    used_dem: bool = False


@dataclass(frozen=True)
class ProjectionOutcome:
    """A ProjectionResult or the reason there is none."""
    result: Optional[ProjectionResult]
    failure: Optional[FailureKind] = None

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def message(self) -> str:
        if self.failure is not None:
            return self.failure.message
        return "ok"


class GroundProjector:
    """
    Maps image pixels of one photograph to geographic ground points.

    Example usage:
        config = Config.from_yaml("config.yaml")
        projector = GroundProjector.from_config(config)
        outcome = projector.project_pixel(3000, 2000)
        if outcome.ok:
            print(outcome.result.lat, outcome.result.lon)
    """

    def __init__(
        self,
        intrinsics: CameraIntrinsics,
        pose: CameraPose,
        ground_elevation_amsl: float = 0.0,
        sampler: Optional[DEMSampler] = None,
        auto_sample_dem: bool = True,
        refinement: Optional[RefinementSettings] = None,
    ):
        """
        Initialize the projector.

        Args:
            intrinsics: Resolved camera intrinsics
            pose: Camera pose
            ground_elevation_amsl: Flat ground elevation, also the DEM fallback
            sampler: DEM sampler, or None for flat-ground projection only
            auto_sample_dem: Use the DEM refiner when a sampler is present
            refinement: Solver iteration settings
        """
        self.intrinsics = intrinsics
        self.pose = pose
        self.ground_elevation_amsl = ground_elevation_amsl
        self.sampler = sampler
        self.auto_sample_dem = auto_sample_dem
        self.refinement = refinement if refinement is not None else RefinementSettings()

        self.camera = CameraModel(intrinsics, self.refinement.distortion_iterations)
        self.R_enu_cam = compose_rotation(pose.yaw, pose.pitch, pose.roll)

    @classmethod
    def from_config(
        cls, config: Config, dem: Optional[DigitalElevationModel] = None
    ) -> "GroundProjector":
        """
        Build a projector from a Config and an optional loaded DEM.

        Args:
            config: Loaded configuration
            dem: Elevation model (see dem.load_dem), or None

        Returns:
            GroundProjector
        """
        intrinsics = resolve_intrinsics(config.camera)
        sampler = None
        if dem is not None:
            sampler = DEMSampler(
                dem,
                policy=make_nodata_policy(config.ground.nodata_policy),
                vertical_offset_m=config.ground.vertical_offset_m,
                read_timeout_s=config.ground.read_timeout_s,
                read_retries=config.ground.read_retries,
            )
        return cls(
            intrinsics=intrinsics,
            pose=config.pose,
            ground_elevation_amsl=config.ground.elevation_amsl,
            sampler=sampler,
            auto_sample_dem=config.ground.auto_sample_dem,
            refinement=config.refinement,
        )

    @property
    def uses_dem(self) -> bool:
        return self.sampler is not None and self.auto_sample_dem

    def with_pose(self, pose: CameraPose) -> "GroundProjector":
        return GroundProjector(
            self.intrinsics,
            pose,
            self.ground_elevation_amsl,
            self.sampler,
            self.auto_sample_dem,
            self.refinement,
        )

    def with_ground_elevation(self, ground_elevation_amsl: float) -> "GroundProjector":
        return GroundProjector(
            self.intrinsics,
            self.pose,
            ground_elevation_amsl,
            self.sampler,
            self.auto_sample_dem,
            self.refinement,
        )

    def ray_enu(self, u: float, v: float) -> np.ndarray:
        """Unit ENU direction of the ray through pixel (u, v)."""
        return camera_ray_to_enu(self.camera.pixel_to_camera_ray(u, v), self.R_enu_cam)

    def _project_flat(self, u: float, v: float, d_enu: np.ndarray) -> ProjectionOutcome:
        hit = intersect_flat_ground(d_enu, self.pose.altitude_amsl, self.ground_elevation_amsl)
        if hit is None:
            return ProjectionOutcome(None, classify_miss(d_enu[2]))

        lat, lon = enu_offset_to_geodetic(self.pose.lat, self.pose.lon, hit.east, hit.north)
        return ProjectionOutcome(ProjectionResult(
            lat=lat,
            lon=lon,
            ground_elevation_amsl=self.ground_elevation_amsl,
            slant_range_m=hit.range_m,
            agl_m=self.pose.altitude_amsl - self.ground_elevation_amsl,
            pixel_u=u,
            pixel_v=v,
        ))

    def _project_dem(self, u: float, v: float, d_enu: np.ndarray) -> ProjectionOutcome:
        refined = refine_against_dem(
            d_enu,
            self.pose,
            self.sampler.sample,
            self.ground_elevation_amsl,
            max_iterations=self.refinement.max_iterations,
            tolerance_m=self.refinement.tolerance_m,
        )
        if refined is None:
            return ProjectionOutcome(None, classify_miss(d_enu[2]))

        if refined.dem_fallback is not None:
            logger.debug(f"DEM unavailable at final point ({refined.dem_fallback.message}); flat ground used")

        return ProjectionOutcome(ProjectionResult(
            lat=refined.lat,
            lon=refined.lon,
            ground_elevation_amsl=refined.ground_elevation_amsl,
            slant_range_m=refined.range_m,
            agl_m=self.pose.altitude_amsl - refined.ground_elevation_amsl,
            pixel_u=u,
            pixel_v=v,
            converged=refined.converged,
            iterations=refined.iterations,
            used_dem=refined.dem_fallback is None,
        ))

    def project_pixel(self, u: float, v: float) -> ProjectionOutcome:
        """
        Geolocate one pixel.

        Args:
            u: Horizontal pixel coordinate in sensor orientation
            v: Vertical pixel coordinate in sensor orientation

        Returns:
            ProjectionOutcome holding a ProjectionResult or a FailureKind
        """
        if not self.pose.has_valid_gps():
            return ProjectionOutcome(None, FailureKind.MISSING_GPS)

        d_enu = self.ray_enu(u, v)
        if self.uses_dem:
            outcome = self._project_dem(u, v, d_enu)
        else:
            outcome = self._project_flat(u, v, d_enu)

        if outcome.ok:
            r = outcome.result
            logger.debug(
                f"Pixel ({u:.1f}, {v:.1f}) -> ({r.lat:.7f}, {r.lon:.7f}) "
                f"ground={r.ground_elevation_amsl:.2f} m range={r.slant_range_m:.2f} m"
            )
        else:
            logger.debug(f"Pixel ({u:.1f}, {v:.1f}): {outcome.message}")
        return outcome

    def project_pixels(self, pixels: Iterable[Tuple[float, float]]) -> List[ProjectionOutcome]:
        return [self.project_pixel(u, v) for u, v in pixels]

    def footprint(self) -> List[ProjectionOutcome]:
        """Ground projections of the four image corners."""
        return self.project_pixels(self.camera.corners())

    def ground_elevation_at_camera(self) -> DEMSample:
        """
        DEM elevation directly below the camera.

        Returns:
            DEMSample; DEM_NO_DATA if no DEM is loaded
        """
        if self.sampler is None:
            return DEMSample(None, FailureKind.DEM_NO_DATA)
        if not self.pose.has_valid_gps():
            return DEMSample(None, FailureKind.MISSING_GPS)
        sample = self.sampler.sample(self.pose.lat, self.pose.lon)
        if sample.ok:
            logger.info(
                f"DEM@Cam: ground={sample.elevation:.2f} m AMSL -> "
                f"AGL={self.pose.altitude_amsl - sample.elevation:.2f} m"
            )
        else:
            logger.warning(f"DEM sample failed at camera GPS: {sample.failure.message}")
        return sample

    def _evaluate_center(self, pose: CameraPose) -> Optional[Tuple[float, float]]:
        candidate = self.with_pose(pose)
        u0, v0 = candidate.camera.center
        d_enu = candidate.ray_enu(u0, v0)
        outcome = candidate._project_flat(u0, v0, d_enu)
        if not outcome.ok:
            return None
        return outcome.result.slant_range_m, float(d_enu[2])

    def auto_fix_pose(self) -> Optional[PoseCorrection]:
        """
        Resolve yaw/pitch/roll sign ambiguity against the flat ground.

        Returns:
            PoseCorrection (apply it with correction.apply(pose)), or None
            if no sign combination reaches the ground
        """
        if not self.pose.has_valid_gps():
            logger.warning(f"Auto-fix skipped: {FailureKind.MISSING_GPS.message}")
            return None
        return auto_fix_pose(self.pose, self._evaluate_center)
