"""
Quality evaluation for a prospective perspective correction.

Three metrics decide whether a capture is worth taking:
    - camera angle above the plane (0 = edge-on, 90 = straight down)
    - all four projected corners inside the image, with a pixel margin
    - pixels per meter, estimated from the projected quad area

The resolution estimate divides the shoelace area of the projected quad
by the region's physical area and takes the square root, which stays
meaningful under skew and foreshortening.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional
import logging

from .camera import Size
from .config import QualitySettings
from .region import RegionPose
from .rotations import transform_axis

logger = logging.getLogger(__name__)

GOOD_QUALITY = "Good quality"
PARTIALLY_OUTSIDE = "Plane partially outside view"
ANGLE_TOO_LOW = "Camera angle too low - move more directly above"
LOW_RESOLUTION = "Low resolution - move closer"


@dataclass(frozen=True)
class TransformQuality:
    """
    Quality metrics of a perspective transformation.

    Attributes:
        camera_angle_deg: Camera angle from the horizontal plane in degrees
        all_corners_visible: Whether every corner lies inside the image margin
        pixels_per_meter: Estimated linear resolution on the plane
        min_camera_angle: Strict lower bound for a good angle
        min_pixels_per_meter: Strict lower bound for a good resolution
    """
    camera_angle_deg: float
    all_corners_visible: bool
    pixels_per_meter: float
    min_camera_angle: float = 20.0
    min_pixels_per_meter: float = 50.0

    @property
    def is_good(self) -> bool:
        return (
            self.camera_angle_deg > self.min_camera_angle
            and self.all_corners_visible
            and self.pixels_per_meter > self.min_pixels_per_meter
        )

    @property
    def description(self) -> str:
        """Actionable diagnosis, most important problem first."""
        if self.is_good:
            return GOOD_QUALITY
        if not self.all_corners_visible:
            return PARTIALLY_OUTSIDE
        if self.camera_angle_deg <= self.min_camera_angle:
            return ANGLE_TOO_LOW
        return LOW_RESOLUTION


def camera_angle(plane_transform: np.ndarray, camera_transform: np.ndarray) -> float:
    """
    Angle between the camera's viewing axis and the plane, in degrees.

    Args:
        plane_transform: 4x4 plane transform (column 1 is the normal)
        camera_transform: 4x4 camera-to-world transform (column 2 is the
            camera Z axis)

    Returns:
        Angle from the horizontal in [0, 90]. 90 means looking straight down.
    """
    normal = transform_axis(plane_transform, 1)
    direction = transform_axis(camera_transform, 2)

    cos_theta = np.clip(np.dot(normal, direction), -1.0, 1.0)
    angle_from_normal = np.degrees(np.arccos(cos_theta))
    return float(abs(angle_from_normal - 90.0))


def corners_visible(
    corners2d: np.ndarray,
    image_size: Size,
    margin: float = 10.0,
) -> bool:
    """
    True if every corner lies within the image, inset by margin pixels.

    Bounds are inclusive. NaN coordinates (points behind the camera)
    always fail.
    """
    c = np.asarray(corners2d, dtype=np.float64)
    width, height = image_size
    x = c[:, 0]
    y = c[:, 1]
    inside = (x >= margin) & (x <= width - margin) & (y >= margin) & (y <= height - margin)
    return bool(np.all(inside))


def shoelace_area(corners2d: np.ndarray) -> float:
    """Unsigned area of a simple polygon given its vertices in order."""
    c = np.asarray(corners2d, dtype=np.float64)
    x = c[:, 0]
    y = c[:, 1]
    return float(abs(np.dot(x, np.roll(y, -1)) - np.dot(np.roll(x, -1), y)) / 2.0)


def pixels_per_meter(corners2d: np.ndarray, region: RegionPose) -> float:
    """
    Estimated linear resolution of the region in the camera image.

    Args:
        corners2d: Projected corners [TL, TR, BR, BL]
        region: Region supplying the physical width and height in meters

    Returns:
        sqrt(pixel area / physical area)
    """
    area = shoelace_area(corners2d)
    if not np.isfinite(area):
        return 0.0
    return float(np.sqrt(area / region.area))


def evaluate_quality(
    corners2d: np.ndarray,
    region: RegionPose,
    camera_angle_deg: float,
    image_size: Size,
    margin: Optional[float] = None,
    settings: Optional[QualitySettings] = None,
) -> TransformQuality:
    """
    Combine angle, visibility and resolution into a quality verdict.

    Args:
        corners2d: Projected corners [TL, TR, BR, BL]
        region: Region the corners were projected from
        camera_angle_deg: Result of camera_angle()
        image_size: Landscape image size in pixels
        margin: Visibility inset; defaults to settings.visibility_margin
        settings: Thresholds; defaults to QualitySettings()

    Returns:
        TransformQuality
    """
    settings = settings or QualitySettings()
    if margin is None:
        margin = settings.visibility_margin

    quality = TransformQuality(
        camera_angle_deg=float(camera_angle_deg),
        all_corners_visible=corners_visible(corners2d, image_size, margin),
        pixels_per_meter=pixels_per_meter(corners2d, region),
        min_camera_angle=settings.min_camera_angle,
        min_pixels_per_meter=settings.min_pixels_per_meter,
    )

    logger.debug(
        f"Quality: angle={quality.camera_angle_deg:.1f} deg, "
        f"visible={quality.all_corners_visible}, "
        f"ppm={quality.pixels_per_meter:.0f} -> {quality.description}"
    )
    return quality
