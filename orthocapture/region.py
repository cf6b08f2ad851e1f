"""
Region geometry calculator.

A capture region is a rectangle lying on a detected plane. Its pose is the
plane's 4x4 transform (columns: local X, up-normal Y, local Z, position),
a centre point on the plane and an extra rotation about the plane normal.

Corner order used everywhere in the package:
    [top-left, top-right, bottom-right, bottom-left]
where "top" and "bottom" refer to the rotated plane Z axis
(TL = -X-Z, TR = +X-Z, BR = +X+Z, BL = -X+Z).
"""

import numpy as np
from dataclasses import dataclass, field
from typing import Optional
import logging

from .camera import CameraProjector, Size
from .rotations import IDENTITY_QUAT, normalize, quat_rotate, transform_axis

logger = logging.getLogger(__name__)

# Sign pattern (x, z) for TL, TR, BR, BL
CORNER_SIGNS = np.array([
    [-1.0, -1.0],
    [1.0, -1.0],
    [1.0, 1.0],
    [-1.0, 1.0],
])


@dataclass(frozen=True, eq=False)
class RegionPose:
    """
    Rectangular capture region anchored to a detected plane.

    Attributes:
        width: Extent along the rotated plane X axis in meters
        height: Extent along the rotated plane Z axis in meters
        center: Centre of the region in world coordinates
        plane_transform: 4x4 transform of the plane
        in_plane_rotation: Quaternion [w, x, y, z] applied to the plane axes
    """
    width: float
    height: float
    center: np.ndarray
    plane_transform: np.ndarray
    in_plane_rotation: np.ndarray = field(default_factory=lambda: IDENTITY_QUAT.copy())

    def __post_init__(self):
        if not (self.width > 0 and self.height > 0):
            raise ValueError(
                f"Region dimensions must be positive, got {self.width} x {self.height}"
            )
        object.__setattr__(self, 'center', np.asarray(self.center, dtype=np.float64))
        object.__setattr__(
            self, 'plane_transform', np.asarray(self.plane_transform, dtype=np.float64)
        )
        object.__setattr__(
            self, 'in_plane_rotation', np.asarray(self.in_plane_rotation, dtype=np.float64)
        )

    @property
    def aspect_ratio(self) -> float:
        return self.width / self.height

    @property
    def area(self) -> float:
        """Physical area in square meters."""
        return self.width * self.height

    @property
    def plane_normal(self) -> np.ndarray:
        return transform_axis(self.plane_transform, 1)


def compute_corners(
    region: RegionPose,
    rotation: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Compute the four corners of a region in world space.

    Args:
        region: Region pose
        rotation: Optional quaternion overriding region.in_plane_rotation

    Returns:
        4x3 array of world positions ordered TL, TR, BR, BL
    """
    q = region.in_plane_rotation if rotation is None else rotation

    x_axis = quat_rotate(q, normalize(region.plane_transform[:3, 0]))
    z_axis = quat_rotate(q, normalize(region.plane_transform[:3, 2]))

    half_width = region.width / 2.0
    half_height = region.height / 2.0

    offsets = (
        CORNER_SIGNS[:, 0:1] * x_axis * half_width
        + CORNER_SIGNS[:, 1:2] * z_axis * half_height
    )
    return region.center + offsets


def project_corners(
    corners3d: np.ndarray,
    camera: CameraProjector,
    viewport: Size,
) -> np.ndarray:
    """
    Project world-space corners into pixel coordinates.

    Args:
        corners3d: Nx3 world positions (typically from compute_corners)
        camera: Any object implementing the CameraProjector interface
        viewport: Landscape image size in pixels

    Returns:
        Nx2 array of (x, y) pixel coordinates in the same order
    """
    projected = np.zeros((len(corners3d), 2))
    for i, corner in enumerate(corners3d):
        projected[i] = camera.project_point(corner, viewport)
    return projected


def edge_lengths(corners2d: np.ndarray) -> np.ndarray:
    """
    Pixel lengths of the quad edges: [top, right, bottom, left]
    (TL-TR, TR-BR, BL-BR, TL-BL).
    """
    c = np.asarray(corners2d, dtype=np.float64)
    return np.array([
        np.linalg.norm(c[1] - c[0]),
        np.linalg.norm(c[2] - c[1]),
        np.linalg.norm(c[2] - c[3]),
        np.linalg.norm(c[3] - c[0]),
    ])


def compute_output_size(
    corners2d: np.ndarray,
    region: RegionPose,
    max_width: float = 2048.0,
) -> Size:
    """
    Output raster size for the rectified region.

    The longer of the top and bottom edges is used as the working width so
    the foreshortened edge is never upsampled, then clamped to max_width.
    Height follows the region's physical aspect ratio.

    Args:
        corners2d: Projected corners [TL, TR, BR, BL]
        region: Region the corners were projected from
        max_width: Maximum output width in pixels

    Returns:
        Size(width, height) in pixels
    """
    top, _, bottom, _ = edge_lengths(corners2d)
    output_width = min(max_width, max(top, bottom))
    output_height = output_width / region.aspect_ratio
    return Size(float(output_width), float(output_height))
