"""Perspective rectification of a detected document.

Maps the four clockwise corners onto an upright rectangle sized from the
document's own side lengths, enlarges it to a minimum resolution for OCR,
and normalizes brightness and sharpness. A missing or degenerate
quadrilateral passes the frame through untouched.
"""

import math
from dataclasses import dataclass

import cv2
import numpy as np

from receipt_capture.capture.sampler import Frame
from receipt_capture.errors import RectificationError
from receipt_capture.geometry.quadrilateral import Quadrilateral
from receipt_capture.preprocessing.contrast import equalize_luminance, sharpen
from receipt_capture.utils.config import RectifierConfig
from receipt_capture.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RectifiedImage:
    """Output of the rectifier."""

    image: np.ndarray
    rectified: bool

    @property
    def width(self) -> int:
        return int(self.image.shape[1])

    @property
    def height(self) -> int:
        return int(self.image.shape[0])


def target_size(quadrilateral: Quadrilateral, min_dimension: int) -> tuple[int, int]:
    """Output width and height for a quadrilateral.

    Width is the longer of the top and bottom sides, height the longer of
    the left and right sides. If the shorter result is below
    ``min_dimension`` both are enlarged by the same factor.

    Args:
        quadrilateral: Clockwise document corners.
        min_dimension: Smallest allowed length of the shorter side.

    Returns:
        ``(width, height)`` as integers.
    """
    top, right, bottom, left = quadrilateral.side_lengths()
    width = max(1, round(max(top, bottom)))
    height = max(1, round(max(left, right)))

    shorter = min(width, height)
    if shorter < min_dimension:
        factor = min_dimension / shorter
        width = max(math.ceil(width * factor - 1e-9), min_dimension)
        height = max(math.ceil(height * factor - 1e-9), min_dimension)
    return width, height


def perspective_matrix(
    quadrilateral: Quadrilateral, width: int, height: int
) -> np.ndarray:
    """Homography from the clockwise corners to ``(0,0),(w,0),(w,h),(0,h)``.

    Raises:
        RectificationError: If the quadrilateral is degenerate or the
            transform is singular.
    """
    if quadrilateral.is_degenerate():
        raise RectificationError(f"Degenerate quadrilateral: {quadrilateral.to_list()}")

    destination = np.array(
        [[0, 0], [width, 0], [width, height], [0, height]], dtype=np.float32
    )
    try:
        matrix = cv2.getPerspectiveTransform(quadrilateral.to_array(), destination)
    except cv2.error as exc:
        raise RectificationError(f"Perspective transform failed: {exc}") from exc

    if not np.all(np.isfinite(matrix)) or abs(np.linalg.det(matrix)) < 1e-12:
        raise RectificationError("Perspective transform is singular")
    return matrix


class Rectifier:
    """Warps a frame's document region into an upright, OCR-ready image.

    Args:
        config: Minimum output size and post-processing settings.
    """

    def __init__(self, config: RectifierConfig | None = None) -> None:
        self.config = config or RectifierConfig()

    def rectify(
        self, frame: Frame | np.ndarray, quadrilateral: Quadrilateral | None
    ) -> RectifiedImage:
        """Rectify the document bounded by ``quadrilateral``.

        Args:
            frame: Source frame; corners must be in its coordinates.
            quadrilateral: Document corners, or ``None`` for a raw capture.

        Returns:
            The rectified image, or the raw frame with ``rectified=False``
            when no usable quadrilateral was given.
        """
        image = frame.image if isinstance(frame, Frame) else frame
        if quadrilateral is None:
            return RectifiedImage(image=image, rectified=False)

        try:
            width, height = target_size(quadrilateral, self.config.min_output_dimension)
            matrix = perspective_matrix(quadrilateral, width, height)
            warped = cv2.warpPerspective(
                image,
                matrix,
                (width, height),
                flags=cv2.INTER_CUBIC,
                borderMode=cv2.BORDER_REPLICATE,
            )
        except (RectificationError, cv2.error) as exc:
            logger.warning("Rectification skipped, using raw frame: %s", exc)
            return RectifiedImage(image=image, rectified=False)

        if self.config.enhance:
            warped = self.enhance(warped)

        logger.info("Rectified document to %dx%d", width, height)
        return RectifiedImage(image=warped, rectified=True)

    def enhance(self, image: np.ndarray) -> np.ndarray:
        """Shadow suppression followed by mild sharpening."""
        cfg = self.config
        result = equalize_luminance(image, cfg.clahe_clip_limit, cfg.clahe_tile_size)
        return sharpen(result, cfg.sharpen_amount)
