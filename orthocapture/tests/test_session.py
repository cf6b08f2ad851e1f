"""
Tests for the tracking session: plane lock policy, update channel and
per-tick region estimation.
"""

import pytest
import numpy as np
from numpy.testing import assert_allclose

from orthocapture.camera import PinholeCamera, Size, look_at
from orthocapture.config import CameraIntrinsics
from orthocapture.exceptions import NoPlaneLocked, RaycastMiss
from orthocapture.session import (
    PlanePoseUpdate,
    PlaneRaycaster,
    PlaneUpdateChannel,
    TrackingSession,
)

VIEWPORT = Size(640, 480)


def plane_at(height):
    T = np.eye(4)
    T[1, 3] = height
    return T


@pytest.fixture
def intrinsics():
    return CameraIntrinsics(fx=400.0, fy=400.0, cx=320.0, cy=240.0, image_width=640, image_height=480)


@pytest.fixture
def overhead_camera(intrinsics):
    return PinholeCamera(intrinsics, look_at([0, 1, 0], [0, 0, 0]))


@pytest.fixture
def floor_raycast():
    return PlaneRaycaster(plane_at(0.0))


def never_hits(origin, direction):
    return None


class TestPlaneUpdateChannel:
    """Tests for the single-slot channel."""

    def test_empty(self):
        assert PlaneUpdateChannel().drain() is None

    def test_newest_wins(self):
        channel = PlaneUpdateChannel()
        first = PlanePoseUpdate(plane_at(0.0), "a")
        second = PlanePoseUpdate(plane_at(0.1), "a")

        channel.put(first)
        channel.put(second)

        assert channel.drain() is second
        assert channel.drain() is None


class TestPlaneRaycaster:
    """Tests for the synthetic plane raycast."""

    def test_hit(self):
        hit = PlaneRaycaster(plane_at(0.0))(np.array([0.2, 1.0, 0.3]), np.array([0.0, -1.0, 0.0]))
        assert_allclose(hit, [0.2, 0.0, 0.3])

    def test_oblique_hit(self):
        direction = np.array([0.0, -1.0, -1.0]) / np.sqrt(2)
        hit = PlaneRaycaster(plane_at(0.0))(np.array([0.0, 1.0, 1.0]), direction)
        assert_allclose(hit, [0.0, 0.0, 0.0], atol=1e-12)

    def test_parallel_ray(self):
        assert PlaneRaycaster(plane_at(0.0))(np.array([0, 1, 0]), np.array([1, 0, 0])) is None

    def test_plane_behind_ray(self):
        assert PlaneRaycaster(plane_at(0.0))(np.array([0, 1, 0]), np.array([0, 1, 0])) is None


class TestPlaneLock:
    """Tests for the first-plane lock policy."""

    def test_locks_first_plane(self):
        session = TrackingSession()
        assert session.apply_update(PlanePoseUpdate(plane_at(0.0), "a"))
        assert session.locked_plane_id == "a"

    def test_ignores_other_planes(self):
        session = TrackingSession()
        session.apply_update(PlanePoseUpdate(plane_at(0.0), "a"))

        accepted = session.apply_update(PlanePoseUpdate(plane_at(-0.7), "b"))

        assert not accepted
        assert session.locked_plane_id == "a"
        assert_allclose(session.plane_transform, plane_at(0.0))

    def test_refines_locked_plane(self):
        session = TrackingSession()
        session.apply_update(PlanePoseUpdate(plane_at(0.0), "a"))

        assert session.apply_update(PlanePoseUpdate(plane_at(0.02), "a"))
        assert_allclose(session.plane_transform, plane_at(0.02))


class TestTick:
    """Tests for per-frame region estimation."""

    def test_no_plane_yields_nothing(self, overhead_camera, floor_raycast):
        session = TrackingSession()
        assert session.tick(overhead_camera, VIEWPORT, floor_raycast) is None
        assert session.latest is None

    def test_estimate_region_without_plane(self, overhead_camera, floor_raycast):
        with pytest.raises(NoPlaneLocked):
            TrackingSession().estimate_region(overhead_camera, VIEWPORT, floor_raycast)

    def test_overhead_estimate(self, overhead_camera, floor_raycast):
        session = TrackingSession()
        session.channel.put(PlanePoseUpdate(plane_at(0.0), "floor"))

        estimate = session.tick(overhead_camera, VIEWPORT, floor_raycast)

        assert estimate is session.latest
        assert session.locked_plane_id == "floor"
        assert_allclose(estimate.region.center, [0, 0, 0], atol=1e-12)
        assert 0.94 <= estimate.region.width <= 0.95 + 1e-9
        assert estimate.corners.shape == (4, 2)
        assert estimate.quality.camera_angle_deg == pytest.approx(90.0)
        assert estimate.quality.pixels_per_meter == pytest.approx(400.0)
        assert estimate.quality.is_good

    def test_other_plane_does_not_move_region(self, overhead_camera, floor_raycast):
        session = TrackingSession()
        session.channel.put(PlanePoseUpdate(plane_at(0.0), "floor"))
        first = session.tick(overhead_camera, VIEWPORT, floor_raycast)

        session.channel.put(PlanePoseUpdate(plane_at(0.5), "table"))
        second = session.tick(overhead_camera, VIEWPORT, floor_raycast)

        assert_allclose(second.region.center, first.region.center)
        assert_allclose(second.corners, first.corners)

    def test_raycast_miss_keeps_previous(self, overhead_camera, floor_raycast):
        session = TrackingSession()
        session.channel.put(PlanePoseUpdate(plane_at(0.0), "floor"))
        first = session.tick(overhead_camera, VIEWPORT, floor_raycast)

        assert session.tick(overhead_camera, VIEWPORT, never_hits) is None
        assert session.latest is first

    def test_estimate_region_raycast_miss(self, overhead_camera):
        session = TrackingSession()
        session.apply_update(PlanePoseUpdate(plane_at(0.0), "floor"))
        with pytest.raises(RaycastMiss):
            session.estimate_region(overhead_camera, VIEWPORT, never_hits)

    def test_oblique_camera(self, intrinsics, floor_raycast):
        """The region is centred on the screen-centre hit and turned toward the camera."""
        camera = PinholeCamera(intrinsics, look_at([0.8, 0.9, 0.0], [0.0, 0.0, 0.0]))
        session = TrackingSession()
        session.channel.put(PlanePoseUpdate(plane_at(0.0), "floor"))

        estimate = session.tick(camera, VIEWPORT, floor_raycast)

        assert_allclose(estimate.region.center, [0, 0, 0], atol=1e-9)
        assert 40.0 < estimate.quality.camera_angle_deg < 50.0
        # Top edge (TL -> TR) runs left to right in the image
        assert estimate.corners[1, 0] > estimate.corners[0, 0]
        assert estimate.quality.all_corners_visible
