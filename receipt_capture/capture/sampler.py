"""Frame sampling from live or still video sources.

A sampled :class:`Frame` is bounded to a processing resolution so that
detection cost does not grow with the camera's native resolution. The
``scale`` recorded on the frame maps corner coordinates back to native
pixels.
"""

from dataclasses import dataclass
from typing import Protocol

import cv2
import numpy as np

from receipt_capture.errors import CameraAcquisitionError
from receipt_capture.utils.logger import get_logger

logger = get_logger(__name__)


class VideoSource(Protocol):
    """Anything that can hand out its currently presented frame."""

    def open(self) -> None: ...

    def read(self) -> np.ndarray | None: ...

    def release(self) -> None: ...


@dataclass(frozen=True)
class Frame:
    """One sampled raster and the scale it was sampled at."""

    image: np.ndarray
    scale: float = 1.0

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def native_size(self) -> tuple[int, int]:
        """Width and height of the source frame before downscaling."""
        return round(self.width / self.scale), round(self.height / self.scale)


class CameraSource:
    """Video source backed by an OpenCV ``VideoCapture`` device.

    Args:
        device: Camera index or stream URL.
        width: Requested capture width, if any.
        height: Requested capture height, if any.
    """

    def __init__(
        self, device: int | str = 0, width: int | None = None, height: int | None = None
    ) -> None:
        self.device = device
        self.width = width
        self.height = height
        self._capture: cv2.VideoCapture | None = None

    def open(self) -> None:
        if self._capture is not None:
            return
        capture = cv2.VideoCapture(self.device)
        if not capture.isOpened():
            capture.release()
            raise CameraAcquisitionError(f"Could not open camera {self.device!r}")
        if self.width:
            capture.set(cv2.CAP_PROP_FRAME_WIDTH, self.width)
        if self.height:
            capture.set(cv2.CAP_PROP_FRAME_HEIGHT, self.height)
        self._capture = capture
        logger.info("Opened camera %r", self.device)

    def read(self) -> np.ndarray | None:
        if self._capture is None:
            raise CameraAcquisitionError("Camera is not open")
        ok, image = self._capture.read()
        return image if ok else None

    def release(self) -> None:
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("Released camera %r", self.device)


class ArraySource:
    """A still image presented as a video source."""

    def __init__(self, image: np.ndarray) -> None:
        self.image = image

    def open(self) -> None:
        if self.image is None or self.image.size == 0:
            raise CameraAcquisitionError("Image source is empty")

    def read(self) -> np.ndarray | None:
        return self.image

    def release(self) -> None:
        pass


def compute_scale(width: int, height: int, max_dimension: int | None) -> float:
    """Uniform downscale factor that fits ``width x height`` in ``max_dimension``."""
    if max_dimension is None or (width <= max_dimension and height <= max_dimension):
        return 1.0
    return min(max_dimension / width, max_dimension / height)


def sample(source: VideoSource, max_dimension: int | None = 1920) -> Frame:
    """Grab the source's current frame, downscaled to a processing resolution.

    Args:
        source: An opened video source.
        max_dimension: Largest allowed width or height; ``None`` keeps the
            native resolution.

    Returns:
        A new :class:`Frame` owning its own pixel buffer.

    Raises:
        CameraAcquisitionError: If the source has no frame to give.
    """
    image = source.read()
    if image is None or image.size == 0:
        raise CameraAcquisitionError("Video source returned no frame")

    height, width = image.shape[:2]
    scale = compute_scale(width, height, max_dimension)
    if scale == 1.0:
        return Frame(image=image.copy(), scale=1.0)

    size = (round(width * scale), round(height * scale))
    resized = cv2.resize(image, size, interpolation=cv2.INTER_AREA)
    logger.debug("Sampled %dx%d frame at scale %.3f", width, height, scale)
    return Frame(image=resized, scale=scale)
