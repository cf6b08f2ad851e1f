"""
Tracking session.

Owns the state of one active scan: the locked plane and the most recent
capture region estimate. The external tracker pushes plane updates into a
single-slot channel; each call to `tick` drains it and runs the synchronous
geometry pipeline:

    plane update -> raycast -> orientation -> largest visible square
                 -> projected corners -> quality

Geometry failures (no plane yet, ray missed the plane) are absorbed: the
tick logs them and returns None, leaving the previous estimate in place.

The latest estimate has a single writer (`tick`) and any number of
readers (capture requests), guarded by a lock.
"""

import threading
import time
import numpy as np
from dataclasses import dataclass, field
from typing import Callable, Hashable, Optional
import logging

from .camera import CameraProjector, Size, camera_position, camera_viewing_direction
from .config import QualitySettings, SolverSettings
from .exceptions import NoPlaneLocked, RaycastMiss
from .orientation import rotation_from_viewing_direction
from .quality import TransformQuality, camera_angle, evaluate_quality
from .region import RegionPose, compute_corners, project_corners
from .rotations import quat_to_euler, transform_axis, transform_position, transform_to_quat
from .solver import solve_max_square

logger = logging.getLogger(__name__)

Raycast = Callable[[np.ndarray, np.ndarray], Optional[np.ndarray]]


@dataclass(frozen=True, eq=False)
class PlanePoseUpdate:
    """Plane detection or refinement event from the tracker."""
    transform: np.ndarray
    identifier: Hashable

    def __post_init__(self):
        object.__setattr__(self, 'transform', np.asarray(self.transform, dtype=np.float64))


@dataclass(frozen=True, eq=False)
class RegionEstimate:
    """
    Result of one tracking tick.

    Attributes:
        region: Largest visible square region
        corners: Projected corners [TL, TR, BR, BL] in landscape pixels
        viewport: Landscape image size the corners refer to
        quality: Quality of a capture taken now
        camera_transform: Camera-to-world transform used for the estimate
        timestamp: Time of the tick (seconds since the epoch)
    """
    region: RegionPose
    corners: np.ndarray
    viewport: Size
    quality: TransformQuality
    camera_transform: np.ndarray
    timestamp: float = field(default_factory=time.time)


class PlaneUpdateChannel:
    """
    Single-slot channel between the tracker and the geometry pipeline.

    `put` overwrites any undrained update, so the pipeline only ever sees
    the newest one.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._slot: Optional[PlanePoseUpdate] = None

    def put(self, update: PlanePoseUpdate) -> None:
        with self._lock:
            self._slot = update

    def drain(self) -> Optional[PlanePoseUpdate]:
        with self._lock:
            update, self._slot = self._slot, None
        return update


class PlaneRaycaster:
    """
    Raycast against the infinite plane of a 4x4 plane transform.

    Stands in for the tracker's raycast query in simulations and the CLI.
    """

    def __init__(self, plane_transform: np.ndarray):
        self.origin = transform_position(plane_transform)
        self.normal = transform_axis(plane_transform, 1)

    def __call__(self, origin: np.ndarray, direction: np.ndarray) -> Optional[np.ndarray]:
        origin = np.asarray(origin, dtype=np.float64)
        direction = np.asarray(direction, dtype=np.float64)
        denom = np.dot(self.normal, direction)
        if abs(denom) < 1e-9:
            return None
        t = np.dot(self.normal, self.origin - origin) / denom
        if t <= 0:
            return None
        return origin + t * direction


class TrackingSession:
    """
    State of one scan: locked plane plus the latest region estimate.

    Example usage:
        session = TrackingSession()
        session.channel.put(PlanePoseUpdate(plane_transform, "plane-1"))
        estimate = session.tick(camera, viewport, raycast)
    """

    def __init__(
        self,
        solver: Optional[SolverSettings] = None,
        quality: Optional[QualitySettings] = None,
    ):
        self.solver = solver or SolverSettings()
        self.quality = quality or QualitySettings()
        self.channel = PlaneUpdateChannel()

        self.locked_plane_id: Optional[Hashable] = None
        self.plane_transform: Optional[np.ndarray] = None

        self._lock = threading.Lock()
        self._latest: Optional[RegionEstimate] = None

    @property
    def latest(self) -> Optional[RegionEstimate]:
        """Most recent estimate, or None before the first successful tick."""
        with self._lock:
            return self._latest

    def apply_update(self, update: PlanePoseUpdate) -> bool:
        """
        Apply a plane update, locking onto the first identifier seen.

        Returns:
            True if the update was accepted
        """
        if self.locked_plane_id is None:
            self.locked_plane_id = update.identifier
            self.plane_transform = update.transform
            logger.info(f"Plane detected and locked: {update.identifier}")
            return True

        if update.identifier == self.locked_plane_id:
            self.plane_transform = update.transform
            return True

        logger.debug(f"Ignoring update for unlocked plane {update.identifier}")
        return False

    def tick(
        self,
        camera: CameraProjector,
        viewport: Size,
        raycast: Raycast,
    ) -> Optional[RegionEstimate]:
        """
        Drain pending plane updates and recompute the capture region.

        Args:
            camera: Current camera pose and projection
            viewport: Landscape sensor buffer size in pixels
            raycast: Callable (origin, direction) -> hit point or None

        Returns:
            The new RegionEstimate, or None when the update was dropped
        """
        update = self.channel.drain()
        if update is not None:
            self.apply_update(update)

        try:
            estimate = self.estimate_region(camera, viewport, raycast)
        except NoPlaneLocked:
            logger.debug("No plane locked, skipping region update")
            return None
        except RaycastMiss as e:
            logger.warning(f"Region update dropped: {e}")
            return None

        with self._lock:
            self._latest = estimate
        return estimate

    def estimate_region(
        self,
        camera: CameraProjector,
        viewport: Size,
        raycast: Raycast,
    ) -> RegionEstimate:
        """
        Run the geometry pipeline for the current camera pose.

        Raises:
            NoPlaneLocked: No plane has been locked yet
            RaycastMiss: The screen-centre ray does not hit the plane
        """
        if self.plane_transform is None:
            raise NoPlaneLocked("No plane locked")

        viewport = Size(*viewport)
        cam_transform = np.asarray(camera.world_transform, dtype=np.float64)
        cam_pos = camera_position(cam_transform)

        hit = raycast(cam_pos, camera_viewing_direction(cam_transform))
        if hit is None:
            raise RaycastMiss("Raycast did not hit plane")
        hit = np.asarray(hit, dtype=np.float64)

        logger.debug(f"  Plane position: {np.round(transform_position(self.plane_transform), 3)}")
        logger.debug(f"  Plane Euler (deg): {np.round(quat_to_euler(transform_to_quat(self.plane_transform)), 1)}")
        logger.debug(f"  Camera position: {np.round(cam_pos, 3)}")
        logger.debug(f"  Camera Euler (deg): {np.round(quat_to_euler(transform_to_quat(cam_transform)), 1)}")
        logger.debug(f"  Raycast hit at: {np.round(hit, 3)}")

        rotation = rotation_from_viewing_direction(self.plane_transform, cam_pos, hit)

        region = solve_max_square(
            self.plane_transform,
            hit,
            rotation,
            camera,
            viewport,
            min_size=self.solver.min_size,
            max_size=self.solver.max_size,
            margin=self.solver.search_margin,
            max_iterations=self.solver.max_iterations,
            tolerance=self.solver.tolerance,
        )

        corners = project_corners(compute_corners(region), camera, viewport)
        angle = camera_angle(self.plane_transform, cam_transform)
        quality = evaluate_quality(corners, region, angle, viewport, settings=self.quality)

        return RegionEstimate(
            region=region,
            corners=corners,
            viewport=viewport,
            quality=quality,
            camera_transform=cam_transform,
        )
