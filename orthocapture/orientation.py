"""
Orientation solver.

Aligns the capture square with the direction the camera views the plane
from, so the rectified image turns with the device instead of staying fixed
to the plane's arbitrary axes. The rotation is purely about the plane
normal.
"""

import numpy as np
import logging

from .rotations import (
    normalize,
    quat_from_axis_angle,
    quat_from_two_vectors,
    transform_axis,
)

logger = logging.getLogger(__name__)


def rotation_from_viewing_direction(
    plane_transform: np.ndarray,
    camera_position: np.ndarray,
    hit_point: np.ndarray,
    epsilon: float = 1e-3,
) -> np.ndarray:
    """
    In-plane rotation aligning the plane's forward axis with the viewing azimuth.

    The vector from the hit point back to the camera is projected onto the
    plane; the returned quaternion rotates the plane Z axis onto it.

    When the camera is directly above the hit point the projected direction
    is shorter than epsilon and undefined; the identity rotation about the
    plane normal is returned.

    Args:
        plane_transform: 4x4 plane transform
        camera_position: Camera position in world space
        hit_point: Where the screen-centre ray meets the plane
        epsilon: Minimum length of the projected direction

    Returns:
        Quaternion [w, x, y, z]
    """
    forward = transform_axis(plane_transform, 2)
    normal = transform_axis(plane_transform, 1)

    to_camera = normalize(
        np.asarray(camera_position, dtype=np.float64) - np.asarray(hit_point, dtype=np.float64)
    )
    projected = to_camera - normal * np.dot(to_camera, normal)

    if np.linalg.norm(projected) < epsilon:
        logger.debug("Camera directly above hit point, using identity rotation")
        return quat_from_axis_angle(normal, 0.0)

    return quat_from_two_vectors(forward, normalize(projected), fallback_axis=normal)
