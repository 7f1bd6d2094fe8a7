"""Shared test fixtures for the receipt capture test suite."""

from pathlib import Path

import cv2
import numpy as np
import pytest

from receipt_capture.geometry.quadrilateral import Quadrilateral

BACKGROUND = 30


def make_document_image(
    width: int = 1000,
    height: int = 1000,
    box: tuple[int, int, int, int] = (100, 100, 900, 700),
) -> np.ndarray:
    """Dark BGR canvas with a white axis-aligned sheet from (x1, y1) to (x2, y2)."""
    image = np.full((height, width, 3), BACKGROUND, dtype=np.uint8)
    x1, y1, x2, y2 = box
    image[y1:y2, x1:x2] = (255, 255, 255)
    return image


@pytest.fixture
def sample_image() -> np.ndarray:
    """Create a simple synthetic grayscale test image."""
    image = np.zeros((200, 300), dtype=np.uint8)
    image[50:150, 50:250] = 255
    return image


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic BGR test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (255, 255, 255)
    return image


@pytest.fixture
def document_image() -> np.ndarray:
    """White 800x600 sheet on a dark 1000x1000 background."""
    return make_document_image()


@pytest.fixture
def rotated_document_image() -> np.ndarray:
    """White 700x500 sheet rotated by 15 degrees around the image center."""
    image = np.full((1000, 1000, 3), BACKGROUND, dtype=np.uint8)
    box = cv2.boxPoints(((500.0, 500.0), (700.0, 500.0), 15.0))
    cv2.fillPoly(image, [np.round(box).astype(np.int32)], (255, 255, 255))
    return image


@pytest.fixture
def blank_image() -> np.ndarray:
    """Uniform gray image without any edges."""
    return np.full((600, 800, 3), 128, dtype=np.uint8)


@pytest.fixture
def document_quad() -> Quadrilateral:
    """Corners of the sheet in ``document_image``."""
    return Quadrilateral.from_points([(100, 100), (900, 100), (900, 700), (100, 700)])


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def config_dir(project_root: Path) -> Path:
    """Return the configs directory path."""
    return project_root / "configs"
