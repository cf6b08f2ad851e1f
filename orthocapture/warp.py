"""
Perspective warp engine.

Turns the oblique quadrilateral seen by the camera into an upright,
top-down raster.

Mathematical pipeline
---------------------
1.  Convert the source corners from top-left origin / Y-down to
    bottom-left origin / Y-up:  y' = H_img - y.
2.  Infer the natural output extent from the quad (longer edge of each
    opposite pair) and solve the homography mapping that rectangle onto
    the source quad (OpenCV four-point solve).
3.  Force the exact destination size with a non-uniform scale and
    translate the result back to a zero origin.
4.  For every destination pixel centre, map through the inverse chain
    and bilinearly (or bicubically) resample the source raster.
5.  Emit the raster top-left-origin, first row = TL->TR edge.
"""

import io
import cv2
import numpy as np
from dataclasses import dataclass
from pathlib import Path
from typing import Tuple, Union
import logging

from PIL import Image, UnidentifiedImageError
from scipy.ndimage import map_coordinates

from .camera import Size
from .exceptions import ImageDecodeError, RenderError, WarpComputeError
from .quality import TransformQuality
from .region import edge_lengths

logger = logging.getLogger(__name__)

ImageSource = Union[np.ndarray, bytes, bytearray, str, Path]


@dataclass(frozen=True, eq=False)
class PerspectiveTransform:
    """
    Everything needed to warp one captured frame.

    Attributes:
        source_corners: 4x2 pixel corners ordered TL, TR, BR, BL
        destination_size: Output size in pixels
        timestamp: Capture time in seconds since the epoch, identifies the transform
        quality: Quality metrics at capture time

    Two transforms are equal when their timestamps are equal.
    """
    source_corners: np.ndarray
    destination_size: Size
    timestamp: float
    quality: TransformQuality

    def __post_init__(self):
        corners = np.asarray(self.source_corners, dtype=np.float64)
        if corners.shape != (4, 2):
            raise ValueError(
                f"Exactly 4 source corners are required, got shape {corners.shape}"
            )
        object.__setattr__(self, 'source_corners', corners)
        object.__setattr__(self, 'destination_size', Size(*self.destination_size))

    def __eq__(self, other):
        if not isinstance(other, PerspectiveTransform):
            return NotImplemented
        return self.timestamp == other.timestamp

    def __hash__(self):
        return hash(self.timestamp)


def load_image(source: ImageSource) -> np.ndarray:
    """
    Decode an image into a numpy raster (H x W or H x W x C).

    Args:
        source: Decoded raster, encoded image bytes or a path to an image file

    Returns:
        numpy array

    Raises:
        ImageDecodeError: If the source cannot be decoded
    """
    if isinstance(source, np.ndarray):
        if source.ndim not in (2, 3) or source.shape[0] == 0 or source.shape[1] == 0:
            raise ImageDecodeError(f"Unsupported raster shape: {source.shape}")
        return source

    try:
        if isinstance(source, (bytes, bytearray)):
            handle = Image.open(io.BytesIO(source))
        else:
            handle = Image.open(source)
        with handle as img:
            img.load()
            if img.mode not in ('L', 'RGB', 'RGBA'):
                img = img.convert('RGB')
            raster = np.asarray(img)
    except (UnidentifiedImageError, OSError, ValueError) as e:
        raise ImageDecodeError(f"Could not decode image: {e}") from e

    logger.debug(f"Decoded image: {raster.shape[1]} x {raster.shape[0]}, dtype={raster.dtype}")
    return raster


def check_quad(points: np.ndarray, rel_tol: float = 1e-9) -> None:
    """
    Raise WarpComputeError if any three of the four points are collinear.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.shape != (4, 2) or not np.all(np.isfinite(pts)):
        raise WarpComputeError(f"Expected 4 finite corner points, got {pts.tolist()}")

    extent = np.ptp(pts, axis=0)
    diag2 = float(np.dot(extent, extent))
    if diag2 == 0:
        raise WarpComputeError("All corner points coincide")

    for skip in range(4):
        a, b, c = np.delete(pts, skip, axis=0)
        twice_area = (b[0] - a[0]) * (c[1] - a[1]) - (b[1] - a[1]) * (c[0] - a[0])
        if abs(twice_area) <= rel_tol * diag2:
            raise WarpComputeError(
                f"Corner points are collinear or coincident: {pts.tolist()}"
            )


def compute_homography(src: np.ndarray, dst: np.ndarray) -> np.ndarray:
    """
    Homography mapping four source points onto four destination points.

    Args:
        src: 4x2 source (x, y) points
        dst: 4x2 destination (x, y) points

    Returns:
        3x3 matrix H (H[2, 2] == 1) with dst ~ H @ [x, y, 1]

    Raises:
        WarpComputeError: For degenerate configurations
    """
    src = np.asarray(src, dtype=np.float64)
    dst = np.asarray(dst, dtype=np.float64)
    # getPerspectiveTransform does not report a singular system
    check_quad(src)
    check_quad(dst)

    try:
        H = cv2.getPerspectiveTransform(src.astype(np.float32), dst.astype(np.float32))
    except cv2.error as e:
        raise WarpComputeError(f"Homography solve failed: {e}") from e

    if H is None or abs(H[2, 2]) < 1e-12 or not np.all(np.isfinite(H)):
        raise WarpComputeError("Homography is not finite")
    H = H / H[2, 2]

    if abs(np.linalg.det(H)) < 1e-12:
        raise WarpComputeError("Homography is singular")
    return H


def apply_homography(H: np.ndarray, points: np.ndarray) -> np.ndarray:
    """
    Apply a homography to Nx2 (x, y) points.
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    homog = np.hstack([pts, np.ones((len(pts), 1))])
    transformed = homog @ H.T
    return transformed[:, :2] / transformed[:, 2:3]


def _natural_extent(corners: np.ndarray) -> Tuple[float, float]:
    top, right, bottom, left = edge_lengths(corners)
    return max(top, bottom), max(left, right)


def _resample(raster: np.ndarray, rows: np.ndarray, cols: np.ndarray, order: int) -> np.ndarray:
    """Sample every band of raster at fractional (row, col) positions."""
    coords = np.vstack([rows.ravel(), cols.ravel()])
    prefilter = order > 1

    if raster.ndim == 2:
        bands = [raster]
    else:
        bands = [raster[:, :, b] for b in range(raster.shape[2])]

    sampled = []
    for band in bands:
        values = map_coordinates(
            band.astype(np.float64), coords, order=order,
            mode='constant', cval=0.0, prefilter=prefilter,
        )
        sampled.append(values.reshape(rows.shape))

    if raster.ndim == 2:
        out = sampled[0]
    else:
        out = np.stack(sampled, axis=-1)

    if np.issubdtype(raster.dtype, np.integer):
        info = np.iinfo(raster.dtype)
        out = np.clip(np.rint(out), info.min, info.max)
    return out.astype(raster.dtype)


def apply_perspective_correction(
    image: ImageSource,
    transform: PerspectiveTransform,
    order: int = 1,
) -> np.ndarray:
    """
    Warp the oblique capture region into an orthogonal top-down raster.

    Args:
        image: Raw camera image (raster, encoded bytes or path) in the same
            pixel layout as transform.source_corners
        transform: Source corners and destination size
        order: Spline order of the resampling (1 = bilinear, 3 = bicubic)

    Returns:
        Raster of exactly destination_size, same dtype and channels as the input

    Raises:
        ImageDecodeError: The image cannot be decoded
        WarpComputeError: The corners do not define a valid homography
        RenderError: The output raster cannot be produced
    """
    logger.info("Starting perspective correction")

    raster = load_image(image)
    img_h, img_w = raster.shape[:2]
    corners = transform.source_corners

    logger.debug(f"Input raster: {img_w} x {img_h}")
    for name, (x, y) in zip(("Top-Left", "Top-Right", "Bottom-Right", "Bottom-Left"), corners):
        logger.debug(f"  {name:<12} ({x:.1f}, {y:.1f})")

    if not np.all((corners >= 0) & (corners <= [img_w, img_h])):
        logger.warning("Corner coordinates are outside image bounds, missing pixels are filled with zero")

    # Step 1: bottom-left origin, Y-up
    src_up = np.column_stack([corners[:, 0], img_h - corners[:, 1]])

    # Step 2: natural extent rectangle -> source quad
    natural_w, natural_h = _natural_extent(corners)
    if natural_w < 1e-9 or natural_h < 1e-9:
        raise WarpComputeError(f"Degenerate quad, natural extent {natural_w} x {natural_h}")

    rect_up = np.array([
        [0.0, natural_h],
        [natural_w, natural_h],
        [natural_w, 0.0],
        [0.0, 0.0],
    ])
    H_rect_to_src = compute_homography(rect_up, src_up)

    # Step 3: corrective scale to the destination size, then back to the origin
    out_w = int(round(transform.destination_size.width))
    out_h = int(round(transform.destination_size.height))
    if out_w < 1 or out_h < 1:
        raise RenderError(f"Invalid destination size: {out_w} x {out_h}")

    S = np.diag([out_w / natural_w, out_h / natural_h, 1.0])
    origin = apply_homography(S, rect_up).min(axis=0)
    T = np.array([
        [1.0, 0.0, -origin[0]],
        [0.0, 1.0, -origin[1]],
        [0.0, 0.0, 1.0],
    ])
    if abs(out_w - out_h) > 1:
        logger.debug(f"Output {out_w} x {out_h} is not square")
    logger.debug(
        f"Natural extent {natural_w:.0f} x {natural_h:.0f}, "
        f"scale X={S[0, 0]:.3f} Y={S[1, 1]:.3f}"
    )

    H_out_to_src = H_rect_to_src @ np.linalg.inv(T @ S)

    # Steps 4-5: resample at destination pixel centres
    try:
        rows, cols = np.mgrid[0:out_h, 0:out_w]
        dest_up = np.column_stack([
            (cols + 0.5).ravel(),
            (out_h - (rows + 0.5)).ravel(),
        ])
        src_pts = apply_homography(H_out_to_src, dest_up)
        src_x = src_pts[:, 0].reshape(out_h, out_w)
        src_y = (img_h - src_pts[:, 1]).reshape(out_h, out_w)

        result = _resample(raster, src_y - 0.5, src_x - 0.5, order)
    except (MemoryError, ValueError) as e:
        raise RenderError(f"Failed to render rectified image: {e}") from e

    logger.info(f"Perspective correction completed: {out_w} x {out_h}")
    logger.info(f"  Quality: {transform.quality.description}")
    logger.info(f"  Camera angle: {transform.quality.camera_angle_deg:.1f} deg")
    logger.info(f"  Resolution: {transform.quality.pixels_per_meter:.0f} pixels/meter")
    return result
