"""Exception types raised by the capture pipeline."""


class CaptureError(Exception):
    """Base class for capture pipeline errors."""


class CameraAcquisitionError(CaptureError):
    """The video source could not be opened or stopped delivering frames."""


class RectificationError(CaptureError):
    """A quadrilateral cannot be warped (degenerate shape or singular transform)."""


class SessionClosedError(CaptureError):
    """An operation was requested on a capture session that has been stopped."""
