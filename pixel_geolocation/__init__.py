"""
Pixel Geolocation Package

A Python package to compute the ground coordinates (latitude, longitude,
elevation) seen by a single pixel of a photograph, given the camera pose
and intrinsics, on a flat ground plane or a digital elevation model.

Coordinate System Chain:
    Pixel (u,v) → Camera ray → Local ENU → Ground intersection → WGS84 (lat, lon)

Conventions:
    - Camera frame: X-right, Y-down, Z-forward
    - Zero attitude: nadir camera, image-up towards North
    - Rotation: R = Rz(yaw) @ Rx(pitch) @ Ry(-roll) @ diag(1, -1, -1)
    - Altitudes in meters above mean sea level

Supported Inputs:
    - YAML configuration files
    - GeoTIFF elevation models in geographic coordinates
    - Parsed photo metadata dictionaries (EXIF/XMP tags)
"""

from .config import Config, CameraIntrinsics, IntrinsicsHints, GroundSettings, RefinementSettings
from .transforms import CameraPose, compose_rotation, meters_per_degree
from .camera import CameraModel, focal_from_fov
from .intrinsics import resolve_intrinsics, CALIBRATION_PRESETS
from .intersect import FailureKind, GroundHit, intersect_flat_ground
from .dem import (
    DigitalElevationModel,
    DEMSampler,
    DEMSample,
    NearestValidNeighbor,
    InverseDistanceWeighted,
    load_dem,
    sample_elevation,
)
from .refine import RefinementResult, refine_against_dem
from .autofix import PoseCorrection, auto_fix_pose
from .projector import GroundProjector, ProjectionResult, ProjectionOutcome
from .metadata import pose_from_metadata, intrinsics_hints_from_metadata

__version__ = "1.0.0"
__all__ = [
    "Config",
    "CameraIntrinsics",
    "IntrinsicsHints",
    "GroundSettings",
    "RefinementSettings",
    "CameraPose",
    "compose_rotation",
    "meters_per_degree",
    "CameraModel",
    "focal_from_fov",
    "resolve_intrinsics",
    "CALIBRATION_PRESETS",
    "FailureKind",
    "GroundHit",
    "intersect_flat_ground",
    "DigitalElevationModel",
    "DEMSampler",
    "DEMSample",
    "NearestValidNeighbor",
    "InverseDistanceWeighted",
    "load_dem",
    "sample_elevation",
    "RefinementResult",
    "refine_against_dem",
    "PoseCorrection",
    "auto_fix_pose",
    "GroundProjector",
    "ProjectionResult",
    "ProjectionOutcome",
    "pose_from_metadata",
    "intrinsics_hints_from_metadata",
]
