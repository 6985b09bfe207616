"""
Camera model module for turning image pixels into viewing rays.

Implements the pinhole camera model with Brown-Conrady lens distortion.

Coordinate System:
    - Camera frame: X-right, Y-down, Z-forward (looking along +Z)
    - Image frame: u-right, v-down (origin at top-left corner), in sensor
      orientation (EXIF rotation already removed by the caller)

Back-projection Model:
    1. Normalize: xn = (u - cx)/fx, yn = (v - cy)/fy
    2. Undistort (optional): invert the distortion by fixed-point iteration
    3. Ray: (x, y, 1)
"""

import math
import numpy as np
from typing import Tuple
import logging

from .config import CameraIntrinsics

logger = logging.getLogger(__name__)


def focal_from_fov(image_width: int, fov_deg: float) -> float:
    """
    Focal length in pixels from a horizontal field of view.

    Args:
        image_width: Image width in pixels
        fov_deg: Horizontal field of view in degrees

    Returns:
        fx in pixels
    """
    half = math.tan(math.radians((fov_deg or 1e-6) / 2))
    return image_width / 2 / max(half, 1e-9)


class CameraModel:
    """
    Camera back-projection model implementing pinhole rays with distortion.

    The distortion model follows OpenCV conventions:
        - Radial distortion: k1, k2, k3
        - Tangential distortion: p1, p2

    Distortion equations (applied to normalized coordinates x', y'):
        r² = x'² + y'²
        x'' = x'(1 + k1*r² + k2*r⁴ + k3*r⁶) + 2*p1*x'*y' + p2*(r² + 2*x'²)
        y'' = y'(1 + k1*r² + k2*r⁴ + k3*r⁶) + p1*(r² + 2*y'²) + 2*p2*x'*y'
    """

    def __init__(self, intrinsics: CameraIntrinsics, distortion_iterations: int = 5):
        """
        Initialize camera model with intrinsic parameters.

        Args:
            intrinsics: Camera intrinsic parameters
            distortion_iterations: Fixed iteration count of the undistortion solver
        """
        self.intrinsics = intrinsics
        self.fx = intrinsics.fx
        self.fy = intrinsics.fy
        self.cx = intrinsics.cx
        self.cy = intrinsics.cy

        self.k1 = intrinsics.k1
        self.k2 = intrinsics.k2
        self.k3 = intrinsics.k3
        self.p1 = intrinsics.p1
        self.p2 = intrinsics.p2

        self.image_width = intrinsics.image_width
        self.image_height = intrinsics.image_height

        self.has_distortion = intrinsics.has_distortion
        self.distortion_iterations = distortion_iterations

        logger.debug(f"Camera model initialized: fx={self.fx}, fy={self.fy}")
        logger.debug(f"Principal point: ({self.cx}, {self.cy})")
        logger.debug(f"Distortion enabled: {self.has_distortion}")

    def distort_normalized(
        self, x_norm: float, y_norm: float
    ) -> Tuple[float, float]:
        """
        Apply lens distortion to normalized coordinates.

        Args:
            x_norm: Ideal normalized x coordinate
            y_norm: Ideal normalized y coordinate

        Returns:
            Distorted (x, y) normalized coordinates
        """
        r2 = x_norm ** 2 + y_norm ** 2
        r4 = r2 ** 2
        r6 = r2 ** 3

        radial = 1 + self.k1 * r2 + self.k2 * r4 + self.k3 * r6

        x_tangential = 2 * self.p1 * x_norm * y_norm + self.p2 * (r2 + 2 * x_norm ** 2)
        y_tangential = self.p1 * (r2 + 2 * y_norm ** 2) + 2 * self.p2 * x_norm * y_norm

        return x_norm * radial + x_tangential, y_norm * radial + y_tangential

    def undistort_normalized(
        self, x_dist: float, y_dist: float
    ) -> Tuple[float, float]:
        """
        Remove distortion from observed normalized coordinates.

        Fixed-point iteration with a fixed budget and no convergence test:
        each step subtracts the residual between the re-distorted estimate
        and the observation.

        Args:
            x_dist: Observed normalized x coordinate
            y_dist: Observed normalized y coordinate

        Returns:
            Ideal (x, y) normalized coordinates
        """
        if not self.has_distortion:
            return x_dist, y_dist

        x, y = x_dist, y_dist
        for _ in range(self.distortion_iterations):
            x_est, y_est = self.distort_normalized(x, y)
            x -= x_est - x_dist
            y -= y_est - y_dist

        return x, y

    def undistort_point(self, u: float, v: float) -> Tuple[float, float]:
        """
        Remove distortion from pixel coordinates.

        Args:
            u: Distorted u coordinate
            v: Distorted v coordinate

        Returns:
            Undistorted (u, v) pixel coordinates
        """
        x, y = self.undistort_normalized((u - self.cx) / self.fx, (v - self.cy) / self.fy)
        return self.fx * x + self.cx, self.fy * y + self.cy

    def pixel_to_camera_ray(self, u: float, v: float) -> np.ndarray:
        """
        Back-project a pixel into a camera-frame direction.

        Pixels outside the image are not rejected.

        Args:
            u: Horizontal pixel coordinate (sensor orientation)
            v: Vertical pixel coordinate (sensor orientation)

        Returns:
            Direction (x, y, 1); not normalized to unit length
        """
        x, y = self.undistort_normalized((u - self.cx) / self.fx, (v - self.cy) / self.fy)
        return np.array([x, y, 1.0])

    @property
    def center(self) -> Tuple[float, float]:
        """Image center pixel."""
        return self.image_width / 2, self.image_height / 2

    def corners(self) -> Tuple[Tuple[float, float], ...]:
        """Image corners clockwise from the top-left."""
        W, H = self.image_width, self.image_height
        return ((0.0, 0.0), (W, 0.0), (W, H), (0.0, H))
