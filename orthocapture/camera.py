"""
Camera projection adapter.

The geometry core only needs two things from a camera: its 4x4 world
transform and a function projecting a 3D world point into pixel coordinates
for a given viewport size. Anything exposing `world_transform` and
`project_point(point, viewport)` can be used (see CameraProjector).

Coordinate System:
    - World: right-handed, +Y up (gravity aligned)
    - Camera frame: X-right, Y-up, looking along -Z
    - Image frame: x-right, y-down (origin at top-left corner), landscape
      sensor buffer layout

Projection Model (PinholeCamera):
    1. World to camera: p_c = inv(T_world_camera) @ p_w
    2. Perspective division by depth d = -Z_c
    3. Pixel mapping: u = fx*X/d + cx, v = cy - fy*Y/d,
       scaled from the intrinsics' reference resolution to the viewport
"""

import numpy as np
from typing import Callable, NamedTuple, Protocol, Sequence, Tuple
from dataclasses import dataclass
import logging

from .config import CameraIntrinsics
from .rotations import normalize

logger = logging.getLogger(__name__)


class Size(NamedTuple):
    """Width and height in pixels."""
    width: float
    height: float


class CameraProjector(Protocol):
    """Capability interface the geometry core depends on."""
    world_transform: np.ndarray

    def project_point(self, point: np.ndarray, viewport: Size) -> Tuple[float, float]:
        ...


def camera_position(world_transform: np.ndarray) -> np.ndarray:
    """World position of a camera (translation column)."""
    return np.asarray(world_transform, dtype=np.float64)[:3, 3].copy()


def camera_viewing_direction(world_transform: np.ndarray) -> np.ndarray:
    """Unit vector the camera looks along (the negated Z column)."""
    return -normalize(np.asarray(world_transform, dtype=np.float64)[:3, 2])


@dataclass(frozen=True)
class CameraPose:
    """
    Camera pose supplied by an external tracker.

    Attributes:
        world_transform: 4x4 camera-to-world transform
        projection: Callable (point, viewport) -> (x, y) pixel coordinates,
            encapsulating intrinsics, extrinsics and the landscape viewport
            orientation
    """
    world_transform: np.ndarray
    projection: Callable[[np.ndarray, Size], Sequence[float]]

    def project_point(self, point: np.ndarray, viewport: Size) -> Tuple[float, float]:
        x, y = self.projection(np.asarray(point, dtype=np.float64), Size(*viewport))
        return float(x), float(y)

    @property
    def position(self) -> np.ndarray:
        return camera_position(self.world_transform)


class PinholeCamera:
    """
    Synthetic pinhole camera implementing the CameraProjector interface.

    Used for simulation, the `plan` command and unit tests. No lens
    distortion is modelled.
    """

    def __init__(self, intrinsics: CameraIntrinsics, world_transform: np.ndarray):
        """
        Initialize the camera.

        Args:
            intrinsics: Pinhole intrinsics for the landscape sensor buffer
            world_transform: 4x4 camera-to-world transform
        """
        self.intrinsics = intrinsics
        self.world_transform = np.asarray(world_transform, dtype=np.float64)
        self._world_to_camera = np.linalg.inv(self.world_transform)

        logger.debug(f"Pinhole camera: fx={intrinsics.fx}, fy={intrinsics.fy}")
        logger.debug(f"Camera position: {camera_position(self.world_transform)}")

    @property
    def position(self) -> np.ndarray:
        return camera_position(self.world_transform)

    @property
    def image_size(self) -> Size:
        return Size(self.intrinsics.image_width, self.intrinsics.image_height)

    def to_camera_frame(self, point: np.ndarray) -> np.ndarray:
        """Transform a world point into the camera frame."""
        p = np.append(np.asarray(point, dtype=np.float64), 1.0)
        return (self._world_to_camera @ p)[:3]

    def project_point(self, point: np.ndarray, viewport: Size) -> Tuple[float, float]:
        """
        Project a 3D world point to pixel coordinates in the given viewport.

        Points at or behind the camera plane have no image; (nan, nan) is
        returned so that every bounds check on them fails.
        """
        X, Y, Z = self.to_camera_frame(point)
        depth = -Z
        if depth <= 0:
            logger.debug(f"Point behind camera: depth={depth}")
            return float('nan'), float('nan')

        width, height = viewport
        sx = width / self.intrinsics.image_width
        sy = height / self.intrinsics.image_height

        u = (self.intrinsics.fx * X / depth + self.intrinsics.cx) * sx
        v = (self.intrinsics.cy - self.intrinsics.fy * Y / depth) * sy
        return float(u), float(v)

    def as_pose(self) -> CameraPose:
        """Wrap this camera as a CameraPose with a plain projection callable."""
        return CameraPose(self.world_transform, self.project_point)


def look_at(eye, target, up=(0.0, 1.0, 0.0)) -> np.ndarray:
    """
    Camera-to-world transform for a camera at `eye` looking at `target`.

    When the viewing direction is parallel to `up` (looking straight down or
    up) world -Z is used as the image up direction instead.
    """
    eye = np.asarray(eye, dtype=np.float64)
    target = np.asarray(target, dtype=np.float64)
    z_axis = normalize(eye - target)
    x_axis = np.cross(up, z_axis)
    if np.linalg.norm(x_axis) < 1e-9:
        x_axis = np.cross([0.0, 0.0, -1.0], z_axis)
    x_axis = normalize(x_axis)
    y_axis = np.cross(z_axis, x_axis)

    T = np.eye(4)
    T[:3, 0] = x_axis
    T[:3, 1] = y_axis
    T[:3, 2] = z_axis
    T[:3, 3] = eye
    return T


# --- Landscape / portrait boundary ------------------------------------------
#
# All geometry in the package uses the landscape sensor buffer layout. The
# conversions below are applied once, where a portrait display is involved.

def landscape_to_portrait(points, image_height: float) -> np.ndarray:
    """
    Rotate landscape pixel coordinates 90 degrees clockwise:
    x' = image_height - y, y' = x.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return np.column_stack([image_height - pts[:, 1], pts[:, 0]])


def portrait_to_landscape(points, image_height: float) -> np.ndarray:
    """Inverse of landscape_to_portrait. image_height is the landscape height."""
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    return np.column_stack([pts[:, 1], image_height - pts[:, 0]])
