"""
User-triggered capture.

A capture freezes a consistent snapshot of the latest region estimate and
the raw camera image into a CapturedFrame, then warps it on a background
worker so the per-frame tracking pipeline is never blocked.

Only one warp runs at a time. A newer capture supersedes an older one
without cancelling it; `is_stale` tells the caller whether a finished
result still belongs to the most recent capture.
"""

import threading
import time
import numpy as np
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from PIL import Image

from .config import Config
from .exceptions import CaptureError, NoPlaneLocked, RenderError
from .quality import TransformQuality
from .region import RegionPose, compute_output_size
from .session import TrackingSession
from .warp import ImageSource, PerspectiveTransform, apply_perspective_correction

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class CapturedFrame:
    """
    Raw camera image together with everything needed to rectify it.

    Attributes:
        raw_image: Landscape camera image (raster, encoded bytes or path)
        transform: Perspective transform computed at capture time
        region: Capture region at capture time
        camera_world_transform: Camera-to-world transform at capture time,
            None when the corners were picked by hand

    Frames compare equal when their transform timestamps match; image
    payloads are never compared.
    """
    raw_image: ImageSource
    transform: PerspectiveTransform
    region: RegionPose
    camera_world_transform: Optional[np.ndarray] = None

    def __eq__(self, other):
        if not isinstance(other, CapturedFrame):
            return NotImplemented
        return self.transform.timestamp == other.transform.timestamp

    def __hash__(self):
        return hash(self.transform.timestamp)


@dataclass(frozen=True, eq=False)
class RectifiedImage:
    """Finished top-down raster handed to display and export."""
    image: np.ndarray
    quality: TransformQuality
    timestamp: float


def rectify_frame(frame: CapturedFrame, order: int = 1) -> RectifiedImage:
    """
    Warp a captured frame into a rectified image.

    Args:
        frame: Frozen capture snapshot, corners in landscape buffer pixels
        order: Resampling spline order

    Returns:
        RectifiedImage

    Raises:
        CaptureError: ImageDecodeError, WarpComputeError or RenderError
    """
    transform = frame.transform
    try:
        image = apply_perspective_correction(frame.raw_image, transform, order=order)
    except CaptureError as e:
        logger.error(f"Capture {transform.timestamp:.3f} failed: {e}")
        raise

    return RectifiedImage(image=image, quality=transform.quality, timestamp=transform.timestamp)


class CaptureController:
    """
    Connects the tracking session to the background warp worker.

    Example usage:
        controller = CaptureController(config)
        controller.session.channel.put(update)
        controller.session.tick(camera, viewport, raycast)
        future = controller.capture(raw_image)
        result = future.result()
        if not controller.is_stale(result):
            save_rectified(result, config.output.directory)
    """

    def __init__(self, config: Optional[Config] = None):
        self.config = config or Config()
        self.session = self._new_session()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="warp")
        self._lock = threading.Lock()
        self._latest_timestamp: Optional[float] = None

    def _new_session(self) -> TrackingSession:
        return TrackingSession(solver=self.config.solver, quality=self.config.quality)

    def reset(self) -> None:
        """Discard the locked plane and start a fresh scan."""
        self.session = self._new_session()
        logger.info("Reset: unlocked plane, ready to detect new surface")

    def _next_timestamp(self) -> float:
        now = time.time()
        if self._latest_timestamp is not None and now <= self._latest_timestamp:
            now = self._latest_timestamp + 1e-6
        return now

    def freeze_frame(self, raw_image: ImageSource) -> CapturedFrame:
        """
        Snapshot the latest region estimate together with the raw image.

        Raises:
            NoPlaneLocked: No region estimate exists yet
        """
        estimate = self.session.latest
        if estimate is None:
            raise NoPlaneLocked("No capture region available - no plane detected")

        output_size = compute_output_size(
            estimate.corners, estimate.region, max_width=self.config.output.max_width
        )

        with self._lock:
            timestamp = self._next_timestamp()
            self._latest_timestamp = timestamp

        transform = PerspectiveTransform(
            source_corners=estimate.corners.copy(),
            destination_size=output_size,
            timestamp=timestamp,
            quality=estimate.quality,
        )

        logger.info("Captured frame")
        logger.info(f"  Camera angle: {estimate.quality.camera_angle_deg:.1f} deg")
        logger.info(f"  All corners visible: {estimate.quality.all_corners_visible}")
        logger.info(f"  Pixels per meter: {estimate.quality.pixels_per_meter:.0f}")
        logger.info(f"  Overall quality: {estimate.quality.description}")
        logger.info(f"  Output size: {output_size.width:.0f} x {output_size.height:.0f}")

        # The camera reuses its frame buffer, the warp runs later on the worker
        if isinstance(raw_image, np.ndarray):
            raw_image = raw_image.copy()

        return CapturedFrame(
            raw_image=raw_image,
            transform=transform,
            region=estimate.region,
            camera_world_transform=estimate.camera_transform.copy(),
        )

    def capture(self, raw_image: ImageSource) -> "Future[RectifiedImage]":
        """
        Freeze a frame and warp it in the background.

        Returns:
            Future resolving to a RectifiedImage or raising CaptureError
        """
        frame = self.freeze_frame(raw_image)
        return self._executor.submit(
            rectify_frame, frame, self.config.output.interpolation_order
        )

    def is_stale(self, result: RectifiedImage) -> bool:
        """True if a newer capture has been triggered since `result`'s."""
        with self._lock:
            return result.timestamp != self._latest_timestamp

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def export_filename(item, prefix: str = "capture") -> str:
    """
    File name embedding capture time and resolution.

    Args:
        item: PerspectiveTransform or RectifiedImage (anything with
            `timestamp` and `quality`)
        prefix: File name prefix

    Format: {prefix}_YYYYMMDD_HHMMSS_ppmQQQQ.png, QQQQ = pixels per meter
    clamped to 0..9999.
    """
    stamp = datetime.fromtimestamp(item.timestamp).strftime("%Y%m%d_%H%M%S")
    ppm = item.quality.pixels_per_meter
    score = min(9999, max(0, int(ppm))) if np.isfinite(ppm) else 0
    return f"{prefix}_{stamp}_ppm{score:04d}.png"


def write_png(image: np.ndarray, path) -> Path:
    """Encode a raster as PNG at path, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        Image.fromarray(image).save(path, format="PNG")
    except (TypeError, ValueError, OSError) as e:
        raise RenderError(f"Failed to write {path}: {e}") from e
    return path


def save_rectified(
    result: RectifiedImage,
    directory: str,
    prefix: str = "capture",
) -> Path:
    """
    Write a rectified image as PNG under an export file name.

    Args:
        result: Rectified image
        directory: Output directory (created if missing)
        prefix: File name prefix

    Returns:
        Path of the written file
    """
    path = write_png(result.image, Path(directory) / export_filename(result, prefix))
    logger.info(f"Rectified image saved to {path}")
    return path
