"""Tests for the live corner overlay."""

import numpy as np

from receipt_capture.geometry.quadrilateral import Quadrilateral
from receipt_capture.tracking.overlay import (
    OUTLINE_COLOR,
    SELECTED_COLOR,
    draw_overlay,
    overlay_thickness,
    render_display,
)
from receipt_capture.tracking.tracker import DisplayMapping


class TestOverlay:
    """Tests for draw_overlay."""

    def test_thickness_scales_with_frame(self) -> None:
        assert overlay_thickness(320, 240) == 2
        assert overlay_thickness(4000, 3000) == 12

    def test_draws_on_copy(
        self, blank_image: np.ndarray, document_quad: Quadrilateral
    ) -> None:
        original = blank_image.copy()
        canvas = draw_overlay(blank_image, document_quad.scaled(0.5))
        np.testing.assert_array_equal(blank_image, original)
        assert canvas.shape == blank_image.shape
        assert tuple(canvas[50, 250]) == OUTLINE_COLOR

    def test_selected_handle_highlighted(
        self, blank_image: np.ndarray, document_quad: Quadrilateral
    ) -> None:
        canvas = draw_overlay(blank_image, document_quad.scaled(0.5), selected_index=2)
        assert tuple(canvas[350, 450]) == SELECTED_COLOR
        assert tuple(canvas[50, 50]) == OUTLINE_COLOR

    def test_grayscale_frame(self, sample_image: np.ndarray) -> None:
        canvas = draw_overlay(sample_image, None, label="idle")
        assert canvas.shape == (200, 300, 3)

    def test_nothing_to_draw(self, blank_image: np.ndarray) -> None:
        canvas = draw_overlay(blank_image, None)
        np.testing.assert_array_equal(canvas, blank_image)


class TestRenderDisplay:
    """Tests for letterboxed display rendering."""

    def test_letterboxes_and_maps_corners(
        self, blank_image: np.ndarray, document_quad: Quadrilateral
    ) -> None:
        quad = document_quad.scaled(0.5)
        mapping = DisplayMapping.fit(1280, 720, 800, 600)
        canvas = render_display(blank_image, quad, mapping, selected_index=2)

        assert canvas.shape == (720, 1280, 3)
        assert tuple(canvas[360, 50]) == (0, 0, 0)
        assert tuple(canvas[360, 1230]) == (0, 0, 0)
        assert tuple(canvas[600, 400]) == (128, 128, 128)
        x, y = (round(v) for v in mapping.to_display(quad.bottom_right))
        assert tuple(canvas[y, x]) == SELECTED_COLOR

    def test_grayscale_frame(self, sample_image: np.ndarray) -> None:
        mapping = DisplayMapping.fit(640, 480, 300, 200)
        canvas = render_display(sample_image, None, mapping)
        assert canvas.shape == (480, 640, 3)
        assert tuple(canvas[5, 320]) == (0, 0, 0)
