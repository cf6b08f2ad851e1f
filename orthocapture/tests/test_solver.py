"""
Tests for the visible-region solver and the orientation solver.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from orthocapture.camera import PinholeCamera, Size, look_at
from orthocapture.config import CameraIntrinsics
from orthocapture.orientation import rotation_from_viewing_direction
from orthocapture.quality import corners_visible
from orthocapture.region import compute_corners, project_corners
from orthocapture.rotations import IDENTITY_QUAT, quat_from_axis_angle, quat_rotate
from orthocapture.solver import solve_max_square

VIEWPORT = Size(640, 480)


@pytest.fixture
def overhead_camera():
    """Camera 1m above the origin looking straight down, fx = 400 px."""
    intrinsics = CameraIntrinsics(fx=400.0, fy=400.0, cx=320.0, cy=240.0, image_width=640, image_height=480)
    return PinholeCamera(intrinsics, look_at([0, 1, 0], [0, 0, 0]))


class TestSolveMaxSquare:
    """Tests for the binary search."""

    def test_centered_square(self, overhead_camera):
        """Vertical extent limits the side: 240 - 200 * s >= 50 -> s <= 0.95."""
        region = solve_max_square(np.eye(4), [0, 0, 0], IDENTITY_QUAT, overhead_camera, VIEWPORT)

        assert region.width == region.height
        assert 0.94 <= region.width <= 0.95 + 1e-9

    def test_result_is_visible(self, overhead_camera):
        region = solve_max_square(np.eye(4), [0.1, 0, 0.05], IDENTITY_QUAT, overhead_camera, VIEWPORT)
        corners2d = project_corners(compute_corners(region), overhead_camera, VIEWPORT)
        assert corners_visible(corners2d, VIEWPORT, margin=50)

    def test_shrinks_toward_frame_edge(self, overhead_camera):
        sizes = [
            solve_max_square(
                np.eye(4), [offset, 0, 0], IDENTITY_QUAT, overhead_camera, VIEWPORT, min_size=0.2
            ).width
            for offset in (0.0, 0.3, 0.5)
        ]
        assert sizes[0] >= sizes[1] >= sizes[2]
        assert sizes[2] == pytest.approx(0.35, abs=0.01)

    def test_never_below_min_size(self, overhead_camera):
        """Even when nothing fits, min_size is returned."""
        region = solve_max_square(
            np.eye(4), [2.0, 0, 0], IDENTITY_QUAT, overhead_camera, VIEWPORT, min_size=0.4
        )
        assert region.width == pytest.approx(0.4)

    def test_respects_max_size(self, overhead_camera):
        region = solve_max_square(
            np.eye(4), [0, 0, 0], IDENTITY_QUAT, overhead_camera, VIEWPORT, min_size=0.1, max_size=0.5
        )
        assert region.width <= 0.5
        assert region.width >= 0.49

    def test_keeps_rotation_and_center(self, overhead_camera):
        rotation = quat_from_axis_angle([0, 1, 0], 0.3)
        region = solve_max_square(np.eye(4), [0.05, 0, 0], rotation, overhead_camera, VIEWPORT)
        assert_allclose(region.in_plane_rotation, rotation)
        assert_allclose(region.center, [0.05, 0, 0])

    def test_invalid_range(self, overhead_camera):
        with pytest.raises(ValueError):
            solve_max_square(
                np.eye(4), [0, 0, 0], IDENTITY_QUAT, overhead_camera, VIEWPORT, min_size=2.0, max_size=1.0
            )


class TestViewingDirectionRotation:
    """Tests for aligning the region with the viewing azimuth."""

    def test_directly_overhead_is_identity(self):
        q = rotation_from_viewing_direction(np.eye(4), [0, 1, 0], [0, 0, 0])
        assert_allclose(q, IDENTITY_QUAT, atol=1e-12)

    def test_nearly_overhead_is_identity(self):
        q = rotation_from_viewing_direction(np.eye(4), [0.0001, 1, 0], [0, 0, 0])
        assert_allclose(q, IDENTITY_QUAT, atol=1e-12)

    def test_camera_along_forward_axis(self):
        q = rotation_from_viewing_direction(np.eye(4), [0, 1, 1], [0, 0, 0])
        assert_allclose(q, IDENTITY_QUAT, atol=1e-12)

    def test_camera_to_the_side(self):
        """Forward (+Z) turns toward the camera (+X), about the plane normal."""
        q = rotation_from_viewing_direction(np.eye(4), [2, 1, 0], [0, 0, 0])

        assert_allclose(quat_rotate(q, [0, 0, 1]), [1, 0, 0], atol=1e-12)
        assert_allclose(quat_rotate(q, [0, 1, 0]), [0, 1, 0], atol=1e-12)

    def test_camera_behind(self):
        """Anti-parallel case turns half way round the plane normal."""
        q = rotation_from_viewing_direction(np.eye(4), [0, 1, -1], [0, 0, 0])

        assert_allclose(quat_rotate(q, [0, 0, 1]), [0, 0, -1], atol=1e-12)
        assert_allclose(quat_rotate(q, [0, 1, 0]), [0, 1, 0], atol=1e-12)

    def test_uses_hit_point(self):
        """Only the direction from the hit point to the camera matters."""
        q1 = rotation_from_viewing_direction(np.eye(4), [1, 1, 1], [0, 0, 0])
        q2 = rotation_from_viewing_direction(np.eye(4), [3, 1, 2], [2, 0, 1])
        assert_allclose(q1, q2, atol=1e-12)
