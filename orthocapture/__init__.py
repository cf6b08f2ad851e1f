"""
Planar Capture and Rectification Package

Turns an oblique photograph of a flat surface into an orthogonal, top-down
image. A tracked plane and camera pose drive a per-frame geometry pipeline
that places the largest visible square on the plane and grades how good a
capture would be; a user-triggered capture warps the frozen frame in the
background.

Coordinate System Chain:
    Plane (world, Y-up) → Camera (X-right, Y-up, -Z forward) → Image (x, y-down)

Conventions:
    - 4x4 transforms: columns X, Y (plane normal), Z, position
    - Quaternions: [w, x, y, z]
    - Corners: [top-left, top-right, bottom-right, bottom-left]
    - Pixel coordinates refer to the landscape sensor buffer
"""

from .config import Config, CameraIntrinsics, SolverSettings, QualitySettings, OutputSettings
from .camera import Size, CameraPose, PinholeCamera, look_at
from .region import RegionPose, compute_corners, project_corners, compute_output_size
from .quality import TransformQuality, camera_angle, evaluate_quality
from .solver import solve_max_square
from .orientation import rotation_from_viewing_direction
from .warp import PerspectiveTransform, apply_perspective_correction, compute_homography
from .session import PlanePoseUpdate, PlaneRaycaster, RegionEstimate, TrackingSession
from .capture import CaptureController, CapturedFrame, RectifiedImage, save_rectified
from .exceptions import (
    OrthoCaptureError,
    NoPlaneLocked,
    RaycastMiss,
    CaptureError,
    ImageDecodeError,
    WarpComputeError,
    RenderError,
)

__version__ = "1.0.0"
__all__ = [
    "Config",
    "CameraIntrinsics",
    "SolverSettings",
    "QualitySettings",
    "OutputSettings",
    "Size",
    "CameraPose",
    "PinholeCamera",
    "look_at",
    "RegionPose",
    "compute_corners",
    "project_corners",
    "compute_output_size",
    "TransformQuality",
    "camera_angle",
    "evaluate_quality",
    "solve_max_square",
    "rotation_from_viewing_direction",
    "PerspectiveTransform",
    "apply_perspective_correction",
    "compute_homography",
    "PlanePoseUpdate",
    "PlaneRaycaster",
    "RegionEstimate",
    "TrackingSession",
    "CaptureController",
    "CapturedFrame",
    "RectifiedImage",
    "save_rectified",
    "OrthoCaptureError",
    "NoPlaneLocked",
    "RaycastMiss",
    "CaptureError",
    "ImageDecodeError",
    "WarpComputeError",
    "RenderError",
]
