"""
Resolution of partial intrinsics into a complete CameraIntrinsics.

Metadata rarely carries a full calibration. The resolution order is:
    1. Explicit fx (and optionally fy) from the hints
    2. A named calibration preset, scaled to the image resolution
    3. Physical focal length (mm) with the sensor width (mm)
    4. The calibration preset of the camera model, if one exists
    5. Horizontal field of view (default 54.55 degrees)

fy falls back to fx and the principal point falls back to the image center.
"""

import math
import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from .camera import focal_from_fov
from .config import CameraIntrinsics, IntrinsicsHints, DEFAULT_FOV_DEG

logger = logging.getLogger(__name__)

FULL_FRAME_SENSOR_WIDTH_MM = 36.0
APSC_CROP_FACTOR = 1.53

# Sensor widths for FOV estimation
SENSOR_WIDTH_MM_BY_MODEL: Dict[str, float] = {
    "ILCE-5100": 23.5,
    "ILCE-6000": 23.5,
    "ILCE-6100": 23.5,
    "ILCE-6300": 23.5,
    "ILCE-6400": 23.5,
}


@dataclass(frozen=True)
class CalibrationPreset:
    """Lab calibration at a reference resolution."""
    name: str
    width: int
    height: int
    fx: float
    fy: float
    cx: float
    cy: float
    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    p1: float = 0.0
    p2: float = 0.0

    def for_resolution(self, width: int, height: int) -> CameraIntrinsics:
        reference = CameraIntrinsics(
            image_width=self.width,
            image_height=self.height,
            fx=self.fx,
            fy=self.fy,
            cx=self.cx,
            cy=self.cy,
            k1=self.k1,
            k2=self.k2,
            k3=self.k3,
            p1=self.p1,
            p2=self.p2,
        )
        return reference.scaled_to_resolution(width, height)


CALIBRATION_PRESETS: Dict[str, CalibrationPreset] = {
    "ILCE-5100": CalibrationPreset(
        name="ILCE-5100",
        width=6000,
        height=4000,
        fx=6398.08616,
        fy=6432.14696,
        cx=2959.871024,
        cy=1963.453368,
        k1=-0.0232568293,
        k2=-0.403632348,
        p1=0.00123362391,
        p2=-0.00155940272,
        k3=2.41647816,
    ),
}


def _positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def sensor_width_for_model(model: Optional[str]) -> float:
    """Sensor width in mm for a camera model string (full frame if unknown)."""
    key = (model or "").upper().strip()
    if key in SENSOR_WIDTH_MM_BY_MODEL:
        return SENSOR_WIDTH_MM_BY_MODEL[key]
    if "ILCE-" in key:
        return 23.5
    return FULL_FRAME_SENSOR_WIDTH_MM


def crop_factor_for_model(model: Optional[str]) -> float:
    key = (model or "").upper()
    if "ILCE-" in key or "DMC-" in key or "E-M" in key:
        return APSC_CROP_FACTOR
    return 1.0


def focal_from_metadata(hints: IntrinsicsHints) -> Optional[Tuple[float, float, float]]:
    """
    Focal lengths in pixels from the physical lens focal length.

    Falls back to the 35 mm-equivalent focal length divided by the crop
    factor. Both fx and fy are derived from the sensor width.

    Returns:
        (fx, fy, focal_mm), or None if no usable focal length is present
    """
    focal_mm = hints.focal_length_mm
    if not _positive(focal_mm) and _positive(hints.focal_length_35mm):
        focal_mm = hints.focal_length_35mm / crop_factor_for_model(hints.model)
    if not _positive(focal_mm):
        return None

    sensor_width = hints.sensor_width_mm
    if not _positive(sensor_width):
        sensor_width = sensor_width_for_model(hints.model)

    fx = focal_mm * (hints.image_width / sensor_width)
    fy = focal_mm * (hints.image_height / sensor_width)
    return fx, fy, focal_mm


def find_preset(hints: IntrinsicsHints) -> Optional[CalibrationPreset]:
    if hints.preset:
        preset = CALIBRATION_PRESETS.get(hints.preset.upper())
        if preset is None:
            raise ValueError(f"Unknown calibration preset: {hints.preset}")
        return preset
    return None


def preset_for_model(model: Optional[str]) -> Optional[CalibrationPreset]:
    """Calibration preset keyed by a camera model string, if any."""
    return CALIBRATION_PRESETS.get((model or "").upper().strip())


def resolve_intrinsics(hints: IntrinsicsHints) -> CameraIntrinsics:
    """
    Turn partial intrinsics into a complete CameraIntrinsics.

    Args:
        hints: Whatever intrinsics information is available

    Returns:
        Resolved intrinsics

    Raises:
        ValueError: If the image size is invalid or the preset is unknown
    """
    W, H = hints.image_width, hints.image_height
    if W <= 0 or H <= 0:
        raise ValueError(f"Image size must be positive, got {W}x{H}")

    preset = find_preset(hints)
    if not _positive(hints.fx) and preset is None and focal_from_metadata(hints) is None:
        preset = preset_for_model(hints.model)
    if not _positive(hints.fx) and preset is not None:
        logger.info(
            f"Applied {preset.name} calibration ({preset.width}x{preset.height}) "
            f"scaled to {W}x{H}"
        )
        return preset.for_resolution(W, H)

    if _positive(hints.fx):
        fx = hints.fx
        fy = hints.fy if _positive(hints.fy) else fx
    else:
        from_metadata = focal_from_metadata(hints)
        if from_metadata is not None:
            fx, fy, focal_mm = from_metadata
            logger.info(f"Intrinsics from metadata: {focal_mm:.2f}mm -> fx={fx:.1f}, fy={fy:.1f}")
        else:
            fov = hints.fov_deg if _positive(hints.fov_deg) else DEFAULT_FOV_DEG
            fx = focal_from_fov(W, fov)
            fy = fx
            logger.info(f"Intrinsics from field of view {fov:.2f} deg -> fx={fx:.1f}")

    cx = hints.cx if hints.cx is not None and math.isfinite(hints.cx) else W / 2
    cy = hints.cy if hints.cy is not None and math.isfinite(hints.cy) else H / 2

    return CameraIntrinsics(
        image_width=W,
        image_height=H,
        fx=fx,
        fy=fy,
        cx=cx,
        cy=cy,
        k1=hints.k1,
        k2=hints.k2,
        k3=hints.k3,
        p1=hints.p1,
        p2=hints.p2,
    )
