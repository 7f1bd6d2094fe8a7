"""Tests for the edge/contour corner detector."""

from unittest.mock import patch

import cv2
import numpy as np
import pytest

from receipt_capture.capture.sampler import ArraySource, Frame, sample
from receipt_capture.detection.detector import CornerDetector, detect_native
from receipt_capture.utils.config import DetectorConfig

EXPECTED = [(100, 100), (900, 100), (900, 700), (100, 700)]


def _assert_corners_near(quad, expected, tolerance: float) -> None:
    for corner, (x, y) in zip(quad, expected):
        assert abs(corner.x - x) <= tolerance, (corner, (x, y))
        assert abs(corner.y - y) <= tolerance, (corner, (x, y))


class TestDetection:
    """Detection results on synthetic documents."""

    def test_axis_aligned_document(self, document_image: np.ndarray) -> None:
        quad = CornerDetector().detect(document_image)
        assert quad is not None
        _assert_corners_near(quad, EXPECTED, tolerance=3.0)

    def test_accepts_frame(self, document_image: np.ndarray) -> None:
        quad = CornerDetector().detect(Frame(image=document_image))
        assert quad is not None
        _assert_corners_near(quad, EXPECTED, tolerance=3.0)

    def test_grayscale_input(self, document_image: np.ndarray) -> None:
        gray = cv2.cvtColor(document_image, cv2.COLOR_BGR2GRAY)
        quad = CornerDetector().detect(gray)
        assert quad is not None
        _assert_corners_near(quad, EXPECTED, tolerance=3.0)

    def test_without_refinement(self, document_image: np.ndarray) -> None:
        detector = CornerDetector(DetectorConfig(refine_corners=False))
        quad = detector.detect(document_image)
        assert quad is not None
        _assert_corners_near(quad, EXPECTED, tolerance=4.0)

    def test_rotated_document(self, rotated_document_image: np.ndarray) -> None:
        config = DetectorConfig()
        quad = CornerDetector(config).detect(rotated_document_image)
        assert quad is not None
        assert all(
            config.min_angle <= a <= config.max_angle for a in quad.interior_angles()
        )
        assert all(
            config.min_side_ratio <= r <= config.max_side_ratio
            for r in quad.opposite_side_ratios()
        )
        centroid = quad.centroid()
        assert abs(centroid.x - 500) < 5
        assert abs(centroid.y - 500) < 5
        assert quad.area() == pytest.approx(700 * 500, rel=0.05)

    def test_tall_receipt(self) -> None:
        image = np.full((1000, 800, 3), 30, dtype=np.uint8)
        image[50:950, 250:550] = 255
        quad = CornerDetector().detect(image)
        assert quad is not None
        _assert_corners_near(quad, [(250, 50), (550, 50), (550, 950), (250, 950)], 3.0)

    def test_scale_round_trip(self) -> None:
        native = np.full((2000, 2000, 3), 30, dtype=np.uint8)
        native[200:1400, 200:1800] = 255
        detector = CornerDetector()

        direct = detector.detect(native)
        frame = sample(ArraySource(native), max_dimension=1000)
        assert frame.scale == 0.5
        scaled = detector.detect(frame)

        assert direct is not None
        assert scaled is not None
        for a, b in zip(direct, scaled.scaled(1.0 / frame.scale)):
            assert abs(round(a.x) - round(b.x)) <= 1
            assert abs(round(a.y) - round(b.y)) <= 1

    def test_detect_native_maps_back(self) -> None:
        native = np.full((2000, 2000, 3), 30, dtype=np.uint8)
        native[200:1400, 200:1800] = 255

        quad, scale = detect_native(CornerDetector(), native, max_dimension=1000)

        assert scale == 0.5
        assert quad is not None
        _assert_corners_near(
            quad, [(200, 200), (1800, 200), (1800, 1400), (200, 1400)], 6.0
        )

    def test_detect_native_blank(self, blank_image: np.ndarray) -> None:
        quad, scale = detect_native(CornerDetector(), blank_image)
        assert quad is None
        assert scale == 1.0


class TestRejection:
    """Frames that must not produce a quadrilateral."""

    def test_blank_image(self, blank_image: np.ndarray) -> None:
        assert CornerDetector().detect(blank_image) is None

    def test_small_document(self) -> None:
        image = np.full((1000, 1000, 3), 30, dtype=np.uint8)
        image[450:500, 450:500] = 255
        assert CornerDetector().detect(image) is None

    def test_triangle(self) -> None:
        image = np.full((1000, 1000, 3), 30, dtype=np.uint8)
        triangle = np.array([[100, 900], [500, 100], [900, 900]], dtype=np.int32)
        cv2.fillPoly(image, [triangle], (255, 255, 255))
        assert CornerDetector().detect(image) is None

    def test_strong_trapezoid(self) -> None:
        image = np.full((1000, 1000, 3), 30, dtype=np.uint8)
        trapezoid = np.array(
            [[420, 150], [580, 150], [950, 850], [50, 850]], dtype=np.int32
        )
        cv2.fillPoly(image, [trapezoid], (255, 255, 255))
        assert CornerDetector().detect(image) is None

    @pytest.mark.parametrize(
        "image",
        [
            np.zeros((100, 100), dtype=np.float32),
            np.zeros((0, 0, 3), dtype=np.uint8),
            np.zeros((100, 100, 2), dtype=np.uint8),
            None,
        ],
    )
    def test_unsupported_input(self, image) -> None:
        assert CornerDetector().detect(image) is None

    def test_opencv_error_returns_none(self, document_image: np.ndarray) -> None:
        detector = CornerDetector()
        with patch.object(detector, "edge_map", side_effect=cv2.error("boom")):
            assert detector.detect(document_image) is None


class TestCandidates:
    """Tests for candidate scoring."""

    def test_prefers_larger_document(self) -> None:
        image = np.full((1000, 1000, 3), 30, dtype=np.uint8)
        image[50:450, 50:450] = 255
        image[500:950, 450:950] = 255
        detector = CornerDetector(DetectorConfig(min_area_fraction=0.05))
        candidates = detector.find_candidates(
            detector.edge_map(cv2.cvtColor(image, cv2.COLOR_BGR2GRAY))
        )
        assert len(candidates) == 2

        quad = detector.detect(image)
        assert quad is not None
        assert quad.centroid().x > 500
        assert quad.centroid().y > 500
