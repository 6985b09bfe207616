"""
Configuration module for pixel geolocation.

Handles loading and validation of configuration from YAML files.
"""

import yaml
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Optional, Dict, Any
import logging

from .transforms import CameraPose

logger = logging.getLogger(__name__)

DEFAULT_FOV_DEG = 54.55


@dataclass(frozen=True)
class CameraIntrinsics:
    """Resolved camera intrinsic parameters."""
    image_width: int  # Image width in pixels
    image_height: int  # Image height in pixels
    fx: float  # Focal length in x (pixels)
    fy: float  # Focal length in y (pixels)
    cx: float  # Principal point x (pixels)
    cy: float  # Principal point y (pixels)
    k1: float = 0.0  # Radial distortion coefficient
    k2: float = 0.0  # Radial distortion coefficient
    k3: float = 0.0  # Radial distortion coefficient
    p1: float = 0.0  # Tangential distortion coefficient
    p2: float = 0.0  # Tangential distortion coefficient

    def __post_init__(self):
        if self.image_width <= 0 or self.image_height <= 0:
            raise ValueError(
                f"Image size must be positive, got {self.image_width}x{self.image_height}"
            )
        if not (self.fx > 0 and self.fy > 0):
            raise ValueError(f"Focal lengths must be positive, got fx={self.fx}, fy={self.fy}")

    @property
    def has_distortion(self) -> bool:
        return any(c != 0 for c in (self.k1, self.k2, self.k3, self.p1, self.p2))

    def scaled_to_resolution(self, width: int, height: int) -> "CameraIntrinsics":
        """
        Rescale focal lengths and principal point to a new image resolution.

        Distortion coefficients act on normalized coordinates and are kept.
        """
        sx = width / self.image_width
        sy = height / self.image_height
        return replace(
            self,
            image_width=width,
            image_height=height,
            fx=self.fx * sx,
            fy=self.fy * sy,
            cx=self.cx * sx,
            cy=self.cy * sy,
        )


@dataclass
class IntrinsicsHints:
    """
    Partial intrinsics as delivered by metadata extraction or a config file.

    Any of the optional fields may be missing; see intrinsics.resolve_intrinsics
    for the order in which they are used.
    """
    image_width: int
    image_height: int
    fx: Optional[float] = None
    fy: Optional[float] = None
    cx: Optional[float] = None
    cy: Optional[float] = None
    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    fov_deg: Optional[float] = None  # Horizontal field of view
    focal_length_mm: Optional[float] = None
    focal_length_35mm: Optional[float] = None
    sensor_width_mm: Optional[float] = None
    model: Optional[str] = None  # Camera model string from metadata
    preset: Optional[str] = None  # Calibration preset name


@dataclass
class GroundSettings:
    """Ground reference: flat plane elevation and optional DEM."""
    elevation_amsl: float = 0.0  # Flat ground elevation (meters AMSL)
    dem_path: Optional[str] = None  # GeoTIFF elevation model
    auto_sample_dem: bool = True  # Refine against the DEM when one is loaded
    vertical_offset_m: float = 0.0  # Added to every DEM sample
    nodata_policy: str = 'nearest'  # 'nearest' or 'idw'
    read_timeout_s: Optional[float] = 5.0  # Per raster window read
    read_retries: int = 2


@dataclass
class RefinementSettings:
    """Iteration budgets for the numerical solvers."""
    max_iterations: int = 8  # DEM refinement iterations
    tolerance_m: float = 0.05  # Convergence threshold on the ray parameter
    distortion_iterations: int = 5  # Undistortion fixed-point iterations


@dataclass
class Config:
    """
    Main configuration class for pixel geolocation.

    Attributes:
        camera: Intrinsics hints for the image
        pose: Camera pose at capture time
        ground: Ground reference settings
        refinement: Solver iteration settings
    """
    camera: IntrinsicsHints
    pose: CameraPose
    ground: GroundSettings = field(default_factory=GroundSettings)
    refinement: RefinementSettings = field(default_factory=RefinementSettings)

    @classmethod
    def from_yaml(cls, config_path: str) -> "Config":
        """
        Load configuration from a YAML file.

        Args:
            config_path: Path to the YAML configuration file

        Returns:
            Config object with loaded parameters

        Example YAML structure:
            camera:
              image_width: 6000
              image_height: 4000
              model: ILCE-5100
              preset: ILCE-5100
              fov_deg: 54.55
            pose:
              lat: 40.0
              lon: 44.5
              altitude_amsl: 1120.0
              yaw: 0.0
              pitch: 0.0
              roll: 0.0
            ground:
              elevation_amsl: 1000.0
              dem_path: "dem.tif"
              auto_sample_dem: true
              vertical_offset_m: 0.0
              nodata_policy: nearest
            refinement:
              max_iterations: 8
              tolerance_m: 0.05
              distortion_iterations: 5
        """
        path = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(path, 'r') as f:
            data = yaml.safe_load(f) or {}

        logger.info(f"Loading configuration from {config_path}")

        cam_data = data.get('camera') or {}
        if 'image_width' not in cam_data or 'image_height' not in cam_data:
            raise ValueError("camera.image_width and camera.image_height are required")

        camera = IntrinsicsHints(
            image_width=int(cam_data['image_width']),
            image_height=int(cam_data['image_height']),
            fx=cam_data.get('fx'),
            fy=cam_data.get('fy'),
            cx=cam_data.get('cx'),
            cy=cam_data.get('cy'),
            k1=cam_data.get('k1', 0.0),
            k2=cam_data.get('k2', 0.0),
            k3=cam_data.get('k3', 0.0),
            p1=cam_data.get('p1', 0.0),
            p2=cam_data.get('p2', 0.0),
            fov_deg=cam_data.get('fov_deg'),
            focal_length_mm=cam_data.get('focal_length_mm'),
            focal_length_35mm=cam_data.get('focal_length_35mm'),
            sensor_width_mm=cam_data.get('sensor_width_mm'),
            model=cam_data.get('model'),
            preset=cam_data.get('preset'),
        )

        pose_data = data.get('pose') or {}
        if 'lat' not in pose_data or 'lon' not in pose_data:
            raise ValueError("pose.lat and pose.lon are required")
        if 'altitude_amsl' not in pose_data:
            logger.warning("pose.altitude_amsl missing, assuming 0 m AMSL")

        pose = CameraPose(
            lat=float(pose_data['lat']),
            lon=float(pose_data['lon']),
            altitude_amsl=float(pose_data.get('altitude_amsl', 0.0)),
            yaw=float(pose_data.get('yaw', 0.0)),
            pitch=float(pose_data.get('pitch', 0.0)),
            roll=float(pose_data.get('roll', 0.0)),
        )

        ground_data = data.get('ground') or {}
        # Resolve DEM path relative to config file location
        dem_path = ground_data.get('dem_path')
        if dem_path:
            dem_path = str(path.parent / dem_path)

        ground = GroundSettings(
            elevation_amsl=float(ground_data.get('elevation_amsl', 0.0)),
            dem_path=dem_path,
            auto_sample_dem=bool(ground_data.get('auto_sample_dem', True)),
            vertical_offset_m=float(ground_data.get('vertical_offset_m', 0.0)),
            nodata_policy=ground_data.get('nodata_policy', 'nearest'),
            read_timeout_s=ground_data.get('read_timeout_s', 5.0),
            read_retries=int(ground_data.get('read_retries', 2)),
        )

        ref_data = data.get('refinement') or {}
        refinement = RefinementSettings(
            max_iterations=int(ref_data.get('max_iterations', 8)),
            tolerance_m=float(ref_data.get('tolerance_m', 0.05)),
            distortion_iterations=int(ref_data.get('distortion_iterations', 5)),
        )

        return cls(
            camera=camera,
            pose=pose,
            ground=ground,
            refinement=refinement,
        )

    def to_dict(self) -> Dict[str, Any]:
        cam = self.camera
        return {
            'camera': {
                'image_width': cam.image_width,
                'image_height': cam.image_height,
                'fx': cam.fx,
                'fy': cam.fy,
                'cx': cam.cx,
                'cy': cam.cy,
                'k1': cam.k1,
                'k2': cam.k2,
                'k3': cam.k3,
                'p1': cam.p1,
                'p2': cam.p2,
                'fov_deg': cam.fov_deg,
                'focal_length_mm': cam.focal_length_mm,
                'focal_length_35mm': cam.focal_length_35mm,
                'sensor_width_mm': cam.sensor_width_mm,
                'model': cam.model,
                'preset': cam.preset,
            },
            'pose': {
                'lat': self.pose.lat,
                'lon': self.pose.lon,
                'altitude_amsl': self.pose.altitude_amsl,
                'yaw': self.pose.yaw,
                'pitch': self.pose.pitch,
                'roll': self.pose.roll,
            },
            'ground': {
                'elevation_amsl': self.ground.elevation_amsl,
                'dem_path': self.ground.dem_path,
                'auto_sample_dem': self.ground.auto_sample_dem,
                'vertical_offset_m': self.ground.vertical_offset_m,
                'nodata_policy': self.ground.nodata_policy,
                'read_timeout_s': self.ground.read_timeout_s,
                'read_retries': self.ground.read_retries,
            },
            'refinement': {
                'max_iterations': self.refinement.max_iterations,
                'tolerance_m': self.refinement.tolerance_m,
                'distortion_iterations': self.refinement.distortion_iterations,
            },
        }

    def to_yaml(self, config_path: str) -> None:
        """Save configuration to a YAML file."""
        with open(config_path, 'w') as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {config_path}")
