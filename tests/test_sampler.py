"""Tests for frame sampling and video sources."""

from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from receipt_capture.capture.sampler import (
    ArraySource,
    CameraSource,
    Frame,
    compute_scale,
    sample,
)
from receipt_capture.errors import CameraAcquisitionError


class TestComputeScale:
    """Tests for the processing scale."""

    def test_small_frame_unscaled(self) -> None:
        assert compute_scale(1280, 720, 1920) == 1.0

    def test_large_frame(self) -> None:
        assert compute_scale(4000, 3000, 1920) == pytest.approx(0.48)

    def test_portrait_frame(self) -> None:
        assert compute_scale(3000, 4000, 1920) == pytest.approx(0.48)

    def test_no_limit(self) -> None:
        assert compute_scale(8000, 6000, None) == 1.0


class TestSample:
    """Tests for sample()."""

    def test_native_frame_is_copied(self, sample_color_image: np.ndarray) -> None:
        frame = sample(ArraySource(sample_color_image))
        assert frame.scale == 1.0
        assert frame.size == (300, 200)
        assert frame.image is not sample_color_image
        frame.image[:] = 0
        assert sample_color_image.max() == 255

    def test_downscales_large_frame(self) -> None:
        image = np.zeros((3000, 4000, 3), dtype=np.uint8)
        frame = sample(ArraySource(image), max_dimension=1920)
        assert frame.size == (1920, 1440)
        assert frame.scale == pytest.approx(0.48)
        assert frame.native_size == (4000, 3000)

    def test_native_resolution(self) -> None:
        image = np.zeros((3000, 4000, 3), dtype=np.uint8)
        frame = sample(ArraySource(image), max_dimension=None)
        assert frame.size == (4000, 3000)

    def test_no_frame(self) -> None:
        source = MagicMock()
        source.read.return_value = None
        with pytest.raises(CameraAcquisitionError):
            sample(source)


class TestFrame:
    """Tests for Frame properties."""

    def test_dimensions(self) -> None:
        frame = Frame(image=np.zeros((480, 640), dtype=np.uint8), scale=0.5)
        assert frame.width == 640
        assert frame.height == 480
        assert frame.native_size == (1280, 960)


class TestArraySource:
    """Tests for still-image sources."""

    def test_empty_image(self) -> None:
        with pytest.raises(CameraAcquisitionError):
            ArraySource(np.zeros((0, 0, 3), dtype=np.uint8)).open()

    def test_reads_image(self, sample_image: np.ndarray) -> None:
        source = ArraySource(sample_image)
        source.open()
        assert source.read() is sample_image
        source.release()


class TestCameraSource:
    """Tests for the OpenCV camera wrapper."""

    @patch("receipt_capture.capture.sampler.cv2.VideoCapture")
    def test_open_failure(self, mock_capture_cls: MagicMock) -> None:
        mock_capture_cls.return_value.isOpened.return_value = False
        with pytest.raises(CameraAcquisitionError, match="Could not open"):
            CameraSource(1).open()
        mock_capture_cls.return_value.release.assert_called_once()

    def test_read_before_open(self) -> None:
        with pytest.raises(CameraAcquisitionError):
            CameraSource().read()

    @patch("receipt_capture.capture.sampler.cv2.VideoCapture")
    def test_read_and_release(self, mock_capture_cls: MagicMock) -> None:
        image = np.zeros((720, 1280, 3), dtype=np.uint8)
        capture = mock_capture_cls.return_value
        capture.isOpened.return_value = True
        capture.read.return_value = (True, image)

        source = CameraSource(0, width=1280, height=720)
        source.open()
        assert source.read() is image
        assert capture.set.call_count == 2

        source.release()
        capture.release.assert_called_once()

    @patch("receipt_capture.capture.sampler.cv2.VideoCapture")
    def test_failed_read_returns_none(self, mock_capture_cls: MagicMock) -> None:
        capture = mock_capture_cls.return_value
        capture.isOpened.return_value = True
        capture.read.return_value = (False, None)

        source = CameraSource()
        source.open()
        assert source.read() is None
