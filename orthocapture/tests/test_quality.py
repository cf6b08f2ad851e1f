"""
Tests for capture quality evaluation.
"""

import pytest
import numpy as np

from orthocapture.camera import Size, look_at
from orthocapture.config import STRICT_MIN_PIXELS_PER_METER, QualitySettings
from orthocapture.quality import (
    ANGLE_TOO_LOW,
    GOOD_QUALITY,
    LOW_RESOLUTION,
    PARTIALLY_OUTSIDE,
    TransformQuality,
    camera_angle,
    corners_visible,
    evaluate_quality,
    pixels_per_meter,
    shoelace_area,
)
from orthocapture.region import RegionPose

IMAGE = Size(1920, 1440)

# Mildly skewed quad of a 0.2m x 0.2m region
SKEWED_QUAD = np.array([[100, 100], [400, 120], [420, 420], [80, 400]], dtype=float)


@pytest.fixture
def tile():
    return RegionPose(width=0.2, height=0.2, center=[0, 0, 0], plane_transform=np.eye(4))


class TestTransformQuality:
    """Tests for the quality verdict."""

    def test_good(self):
        quality = TransformQuality(camera_angle_deg=60.0, all_corners_visible=True, pixels_per_meter=800.0)
        assert quality.is_good
        assert quality.description == GOOD_QUALITY

    def test_angle_threshold_is_strict(self):
        quality = TransformQuality(camera_angle_deg=20.0, all_corners_visible=True, pixels_per_meter=800.0)
        assert not quality.is_good
        assert quality.description == ANGLE_TOO_LOW

    def test_resolution_threshold_is_strict(self):
        quality = TransformQuality(camera_angle_deg=60.0, all_corners_visible=True, pixels_per_meter=50.0)
        assert not quality.is_good
        assert quality.description == LOW_RESOLUTION

    def test_visibility_reported_first(self):
        """Corners outside the view take priority over the other problems."""
        quality = TransformQuality(camera_angle_deg=5.0, all_corners_visible=False, pixels_per_meter=10.0)
        assert quality.description == PARTIALLY_OUTSIDE

    def test_angle_reported_before_resolution(self):
        quality = TransformQuality(camera_angle_deg=5.0, all_corners_visible=True, pixels_per_meter=10.0)
        assert quality.description == ANGLE_TOO_LOW


class TestCameraAngle:
    """Tests for the camera angle above the plane."""

    def test_straight_down(self):
        assert camera_angle(np.eye(4), look_at([0, 2, 0], [0, 0, 0])) == pytest.approx(90.0)

    def test_edge_on(self):
        assert camera_angle(np.eye(4), look_at([0, 0, 1], [0, 0, -1])) == pytest.approx(0.0, abs=1e-9)

    def test_forty_five_degrees(self):
        assert camera_angle(np.eye(4), look_at([0, 1, 1], [0, 0, 0])) == pytest.approx(45.0)

    def test_looking_up_at_plane(self):
        """The angle is measured from the plane regardless of side."""
        assert camera_angle(np.eye(4), look_at([0, -1, 1], [0, 0, 0])) == pytest.approx(45.0)


class TestCornersVisible:
    """Tests for the in-view check."""

    def test_inside(self):
        assert corners_visible(SKEWED_QUAD, IMAGE, margin=10)

    def test_corner_outside(self):
        corners = SKEWED_QUAD.copy()
        corners[0, 0] = -50.0
        assert not corners_visible(corners, IMAGE, margin=10)

    def test_bounds_inclusive(self):
        corners = np.array([[10, 10], [1910, 10], [1910, 1430], [10, 1430]], dtype=float)
        assert corners_visible(corners, IMAGE, margin=10)
        assert not corners_visible(corners, IMAGE, margin=10.5)

    def test_nan_fails(self):
        corners = SKEWED_QUAD.copy()
        corners[2] = np.nan
        assert not corners_visible(corners, IMAGE, margin=0)


class TestPixelsPerMeter:
    """Tests for the area-based resolution estimate."""

    def test_shoelace_area(self):
        assert shoelace_area(SKEWED_QUAD) == pytest.approx(96000.0)

    def test_skewed_quad(self, tile):
        assert pixels_per_meter(SKEWED_QUAD, tile) == pytest.approx(1549.1933384829668)

    def test_translation_invariant(self, tile):
        shifted = SKEWED_QUAD + [523.0, -41.0]
        assert pixels_per_meter(shifted, tile) == pytest.approx(pixels_per_meter(SKEWED_QUAD, tile))

    def test_winding_invariant(self, tile):
        assert pixels_per_meter(SKEWED_QUAD[::-1], tile) == pytest.approx(pixels_per_meter(SKEWED_QUAD, tile))

    def test_nan_corners(self, tile):
        corners = SKEWED_QUAD.copy()
        corners[1] = np.nan
        assert pixels_per_meter(corners, tile) == 0.0


class TestEvaluateQuality:
    """Tests for the combined verdict."""

    def test_skewed_quad_is_good(self, tile):
        quality = evaluate_quality(SKEWED_QUAD, tile, 65.0, IMAGE)
        assert quality.all_corners_visible
        assert quality.pixels_per_meter == pytest.approx(1549.1933384829668)
        assert quality.is_good

    def test_partially_outside_regardless_of_metrics(self, tile):
        corners = SKEWED_QUAD.copy()
        corners[3, 0] = -50.0
        quality = evaluate_quality(corners, tile, 85.0, IMAGE)
        assert quality.description == PARTIALLY_OUTSIDE

    def test_angle_exactly_at_threshold(self, tile):
        quality = evaluate_quality(SKEWED_QUAD, tile, 20.0, IMAGE)
        assert not quality.is_good
        assert quality.description == ANGLE_TOO_LOW

    def test_strict_resolution_preset(self):
        settings = QualitySettings(min_pixels_per_meter=STRICT_MIN_PIXELS_PER_METER)
        # 0.5m x 0.5m region: ppm = sqrt(96000 / 0.25) ~ 620
        wide = RegionPose(width=0.5, height=0.5, center=[0, 0, 0], plane_transform=np.eye(4))

        quality = evaluate_quality(SKEWED_QUAD, wide, 65.0, IMAGE, settings=settings)
        assert quality.pixels_per_meter < STRICT_MIN_PIXELS_PER_METER
        assert quality.description == LOW_RESOLUTION

        relaxed = evaluate_quality(SKEWED_QUAD, wide, 65.0, IMAGE)
        assert relaxed.is_good

    def test_custom_margin(self, tile):
        quality = evaluate_quality(SKEWED_QUAD, tile, 65.0, IMAGE, margin=90.0)
        assert not quality.all_corners_visible
