"""Exceptions raised by the geometry pipeline and the capture worker."""


class OrthoCaptureError(Exception):
    """Base error for the package."""
    pass


class NoPlaneLocked(OrthoCaptureError):
    """No plane has been locked yet, so no capture region exists."""
    pass


class RaycastMiss(OrthoCaptureError):
    """The screen-centre ray did not hit tracked plane geometry."""
    pass


class CaptureError(OrthoCaptureError):
    """A user-triggered capture failed. The capture must be re-triggered."""
    pass


class ImageDecodeError(CaptureError):
    """The raw camera image could not be decoded."""
    pass


class WarpComputeError(CaptureError):
    """The homography could not be solved (degenerate or collinear corners)."""
    pass


class RenderError(CaptureError):
    """Resampling the rectified raster failed."""
    pass
