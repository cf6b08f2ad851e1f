"""
Visible-region solver.

Finds the largest square, centred on a fixed point of the plane and with a
fixed in-plane rotation, whose four projected corners stay inside the camera
image. A wider pixel margin is used here than for the quality check so that
frame-to-frame tracking jitter does not immediately push a corner out of
view.
"""

import numpy as np
import logging

from .camera import CameraProjector, Size
from .quality import corners_visible
from .region import RegionPose, compute_corners, project_corners
from .rotations import quat_to_euler

logger = logging.getLogger(__name__)


def solve_max_square(
    plane_transform: np.ndarray,
    center: np.ndarray,
    rotation: np.ndarray,
    camera: CameraProjector,
    viewport: Size,
    min_size: float = 0.4,
    max_size: float = 5.0,
    margin: float = 50.0,
    max_iterations: int = 20,
    tolerance: float = 0.01,
) -> RegionPose:
    """
    Binary search for the largest visible square side length.

    Each trial builds a square RegionPose, projects its corners and tests
    them against the image with `margin`. A visible trial becomes the new
    lower bound and best-so-far; otherwise the upper bound shrinks.

    The result is never smaller than min_size, even when a min_size square
    does not fit (for example when the camera is badly placed). Callers
    must check quality before trusting it.

    Args:
        plane_transform: 4x4 plane transform
        center: World position of the square's centre (on the plane)
        rotation: In-plane rotation quaternion [w, x, y, z]
        camera: Camera used to project trial corners
        viewport: Landscape image size in pixels
        min_size: Smallest side length in meters
        max_size: Largest side length attempted in meters
        margin: Required pixel inset for every corner
        max_iterations: Iteration cap
        tolerance: Stop once the search bracket is no wider than this

    Returns:
        Square RegionPose with the best side length found
    """
    if min_size > max_size:
        raise ValueError(f"min_size ({min_size}) exceeds max_size ({max_size})")

    lower = min_size
    upper = max_size
    best_size = min_size

    iteration = 0
    while iteration < max_iterations and (upper - lower) > tolerance:
        test_size = (lower + upper) / 2.0

        trial = RegionPose(
            width=test_size,
            height=test_size,
            center=center,
            plane_transform=plane_transform,
            in_plane_rotation=rotation,
        )
        corners2d = project_corners(compute_corners(trial), camera, viewport)

        if corners_visible(corners2d, viewport, margin):
            best_size = test_size
            lower = test_size
        else:
            upper = test_size

        iteration += 1

    center = np.asarray(center, dtype=np.float64)
    logger.debug("Visible square region calculation:")
    logger.debug(f"  Capture center: ({center[0]:.3f}, {center[1]:.3f}, {center[2]:.3f})")
    logger.debug(f"  Square size: {best_size:.2f}m x {best_size:.2f}m")
    logger.debug(f"  Rotation (roll, pitch, yaw deg): {np.round(quat_to_euler(rotation), 1)}")
    logger.debug(f"  Iterations: {iteration}")

    return RegionPose(
        width=best_size,
        height=best_size,
        center=center,
        plane_transform=plane_transform,
        in_plane_rotation=rotation,
    )
