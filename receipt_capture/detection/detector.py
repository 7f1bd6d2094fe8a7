"""Classical edge/contour detection of a document's four corners.

Pipeline: grayscale -> CLAHE -> Gaussian blur -> Canny -> dilation ->
external contours -> polygon approximation -> rectangularity checks ->
weighted scoring -> sub-pixel corner refinement.

Detection never raises: an unusable frame, an OpenCV failure or a frame
without a convincing document all produce ``None``, and the caller keeps
its previous state or captures the raw frame.
"""

import math
from dataclasses import dataclass

import cv2
import numpy as np

from receipt_capture.capture.sampler import ArraySource, Frame, sample
from receipt_capture.geometry.quadrilateral import Quadrilateral
from receipt_capture.preprocessing.contrast import apply_clahe, to_gray
from receipt_capture.preprocessing.denoise import close_edge_gaps, denoise_gaussian
from receipt_capture.utils.config import DetectorConfig
from receipt_capture.utils.logger import get_logger

logger = get_logger(__name__)

_REFINE_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_MAX_ITER, 40, 0.001)


@dataclass
class Candidate:
    """A quadrilateral that passed every rejection test, with its score."""

    quadrilateral: Quadrilateral
    score: float
    area_fraction: float


class CornerDetector:
    """Finds the dominant document quadrilateral in a frame.

    Args:
        config: Detection thresholds. Defaults are tuned for receipts
            photographed against a contrasting surface.
    """

    def __init__(self, config: DetectorConfig | None = None) -> None:
        self.config = config or DetectorConfig()

    def detect(self, frame: Frame | np.ndarray) -> Quadrilateral | None:
        """Detect the document boundary in a frame.

        Args:
            frame: A sampled :class:`Frame` or a raw ``uint8`` image.

        Returns:
            Four clockwise corners in the frame's coordinates, or ``None``.
        """
        image = frame.image if isinstance(frame, Frame) else frame
        if not _is_supported(image):
            logger.debug("Unsupported frame passed to corner detection")
            return None

        try:
            gray = to_gray(image)
            edges = self.edge_map(gray)
            candidates = self.find_candidates(edges)
            if not candidates:
                logger.debug("No document candidate in %dx%d frame", *gray.shape[::-1])
                return None

            best = max(candidates, key=lambda c: c.score)
            quad = best.quadrilateral
            if self.config.refine_corners:
                quad = self.refine(gray, quad)
        except cv2.error as exc:
            logger.warning("Corner detection failed: %s", exc)
            return None

        logger.debug(
            "Detected document covering %.0f%% of frame (score %.3f, %d candidates)",
            best.area_fraction * 100,
            best.score,
            len(candidates),
        )
        return quad

    def edge_map(self, gray: np.ndarray) -> np.ndarray:
        """Binary edge map with the document border closed up."""
        cfg = self.config
        enhanced = apply_clahe(gray, cfg.clahe_clip_limit, cfg.clahe_tile_size)
        blurred = denoise_gaussian(enhanced, cfg.blur_kernel_size)
        edges = cv2.Canny(blurred, cfg.canny_low, cfg.canny_high)
        return close_edge_gaps(
            edges,
            kernel_size=cfg.dilate_kernel_size,
            dilate_iterations=cfg.dilate_iterations,
            erode_iterations=cfg.erode_iterations,
        )

    def find_candidates(self, edges: np.ndarray) -> list[Candidate]:
        """Evaluate every outermost contour of an edge map."""
        contours, _ = cv2.findContours(
            edges, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE
        )
        height, width = edges.shape[:2]
        candidates = []
        for contour in contours:
            candidate = self._evaluate(contour, width, height)
            if candidate is not None:
                candidates.append(candidate)
        return candidates

    def _evaluate(
        self, contour: np.ndarray, width: int, height: int
    ) -> Candidate | None:
        cfg = self.config
        image_area = float(width * height)

        area = cv2.contourArea(contour)
        min_area = cfg.min_area_fraction * image_area
        if not min_area <= area <= cfg.max_area_fraction * image_area:
            return None

        perimeter = cv2.arcLength(contour, True)
        epsilon = cfg.approx_epsilon_fraction * perimeter
        approx = cv2.approxPolyDP(contour, epsilon, True)
        if len(approx) != 4 or not cv2.isContourConvex(approx):
            return None

        quad = Quadrilateral.from_points(approx.reshape(4, 2))
        if not all(cfg.min_angle <= a <= cfg.max_angle for a in quad.interior_angles()):
            return None
        if not all(
            cfg.min_side_ratio <= r <= cfg.max_side_ratio
            for r in quad.opposite_side_ratios()
        ):
            return None

        return Candidate(
            quadrilateral=quad,
            score=self._score(quad, area, width, height),
            area_fraction=area / image_area,
        )

    def _score(
        self, quad: Quadrilateral, area: float, width: int, height: int
    ) -> float:
        cfg = self.config
        area_score = area / float(width * height)

        centroid = quad.centroid()
        half_diagonal = math.hypot(width, height) / 2.0
        offset = math.hypot(centroid.x - width / 2.0, centroid.y - height / 2.0)
        center_score = max(0.0, 1.0 - offset / half_diagonal)

        perimeter_score = min(1.0, quad.perimeter() / (2.0 * (width + height)))

        return (
            cfg.area_weight * area_score
            + cfg.center_weight * center_score
            + cfg.perimeter_weight * perimeter_score
        )

    def refine(self, gray: np.ndarray, quad: Quadrilateral) -> Quadrilateral:
        """Move each corner to its sub-pixel position on the grayscale image.

        Corners whose refinement moves further than ``refine_max_shift``
        keep their approximated position.
        """
        cfg = self.config
        smooth = denoise_gaussian(gray, cfg.blur_kernel_size)
        original = quad.to_array()
        points = original.reshape(-1, 1, 2).copy()
        try:
            points = cv2.cornerSubPix(
                smooth,
                points,
                (cfg.refine_window, cfg.refine_window),
                (-1, -1),
                _REFINE_CRITERIA,
            )
        except cv2.error as exc:
            logger.debug("Corner refinement skipped: %s", exc)
            return quad

        refined = points.reshape(4, 2)
        shifts = np.linalg.norm(refined - original, axis=1)
        keep = (shifts <= cfg.refine_max_shift)[:, None]
        accepted = np.where(keep, refined, original)
        return Quadrilateral.from_points(accepted)


def _is_supported(image: object) -> bool:
    return (
        isinstance(image, np.ndarray)
        and image.dtype == np.uint8
        and image.size > 0
        and (image.ndim == 2 or (image.ndim == 3 and image.shape[2] in (1, 3, 4)))
    )


def detect_native(
    detector: CornerDetector, image: np.ndarray, max_dimension: int | None = 1920
) -> tuple[Quadrilateral | None, float]:
    """Detect on a downscaled copy of a still image.

    Returns:
        The corners in ``image``'s own coordinates (or ``None``) and the
        processing scale that was used.
    """
    frame = sample(ArraySource(image), max_dimension)
    quad = detector.detect(frame)
    if quad is not None and frame.scale != 1.0:
        quad = quad.scaled(1.0 / frame.scale)
    return quad, frame.scale
