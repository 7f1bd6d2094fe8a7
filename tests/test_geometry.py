"""Tests for corner ordering and quadrilateral geometry."""

import itertools

import numpy as np
import pytest

from receipt_capture.geometry.quadrilateral import (
    BOTTOM_RIGHT,
    Corner,
    Quadrilateral,
    parse_corners,
    sort_corners,
)

RECTANGLE = [(100.0, 100.0), (900.0, 100.0), (900.0, 700.0), (100.0, 700.0)]


class TestCorner:
    """Tests for the Corner value type."""

    def test_distance(self) -> None:
        assert Corner(0, 0).distance_to(Corner(3, 4)) == 5.0

    def test_scaled(self) -> None:
        assert Corner(10, 20).scaled(0.5) == Corner(5, 10)

    def test_is_immutable(self) -> None:
        corner = Corner(1, 2)
        with pytest.raises(AttributeError):
            corner.x = 5  # type: ignore[misc]


class TestSortCorners:
    """Tests for clockwise ordering from the top-left."""

    @pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
    def test_order_independent(self, order: tuple[int, ...]) -> None:
        points = [RECTANGLE[i] for i in order]
        result = sort_corners(points)
        assert [(c.x, c.y) for c in result] == RECTANGLE

    def test_rotated_rectangle(self) -> None:
        points = [(520.0, 90.0), (880.0, 480.0), (470.0, 860.0), (110.0, 470.0)]
        result = sort_corners(list(reversed(points)))
        assert (result[0].x, result[0].y) == (110.0, 470.0)
        assert (result[1].x, result[1].y) == (520.0, 90.0)
        assert (result[2].x, result[2].y) == (880.0, 480.0)
        assert (result[3].x, result[3].y) == (470.0, 860.0)

    def test_diamond_tie_prefers_smaller_x(self) -> None:
        points = [(50, 0), (100, 50), (50, 100), (0, 50)]
        result = sort_corners(points)
        assert [(c.x, c.y) for c in result] == [
            (0.0, 50.0),
            (50.0, 0.0),
            (100.0, 50.0),
            (50.0, 100.0),
        ]

    def test_accepts_contour_array(self) -> None:
        contour = np.array(RECTANGLE[::-1], dtype=np.int32).reshape(4, 1, 2)
        result = sort_corners(contour)
        assert result[0] == Corner(100.0, 100.0)

    def test_accepts_corners(self) -> None:
        corners = [Corner(x, y) for x, y in reversed(RECTANGLE)]
        assert sort_corners(corners)[2] == Corner(900.0, 700.0)

    def test_wrong_point_count(self) -> None:
        with pytest.raises(ValueError, match="Expected 4 points"):
            sort_corners(RECTANGLE[:3])


class TestQuadrilateral:
    """Tests for Quadrilateral measurements and copies."""

    def test_requires_four_corners(self) -> None:
        with pytest.raises(ValueError):
            Quadrilateral((Corner(0, 0), Corner(1, 0), Corner(1, 1)))

    def test_named_corners(self) -> None:
        quad = Quadrilateral.from_points(RECTANGLE)
        assert quad.top_left == Corner(100, 100)
        assert quad.top_right == Corner(900, 100)
        assert quad.bottom_right == Corner(900, 700)
        assert quad.bottom_left == Corner(100, 700)

    def test_measurements(self) -> None:
        quad = Quadrilateral.from_points(RECTANGLE)
        assert quad.side_lengths() == (800.0, 600.0, 800.0, 600.0)
        assert quad.perimeter() == 2800.0
        assert quad.area() == 480000.0
        assert quad.centroid() == Corner(500.0, 400.0)
        assert quad.interior_angles() == pytest.approx([90.0] * 4)
        assert quad.opposite_side_ratios() == (1.0, 1.0)
        assert quad.is_convex()

    def test_to_array(self) -> None:
        array = Quadrilateral.from_points(RECTANGLE).to_array()
        assert array.shape == (4, 2)
        assert array.dtype == np.float32

    def test_to_list(self) -> None:
        data = Quadrilateral.from_points(RECTANGLE).to_list()
        assert data[0] == {"x": 100.0, "y": 100.0}

    def test_with_corner_keeps_others(self) -> None:
        quad = Quadrilateral.from_points(RECTANGLE)
        moved = quad.with_corner(BOTTOM_RIGHT, Corner(850, 650))
        assert moved[BOTTOM_RIGHT] == Corner(850, 650)
        assert moved is not quad
        for index in (0, 1, 3):
            assert moved[index] is quad[index]
        assert quad[BOTTOM_RIGHT] == Corner(900, 700)

    def test_with_corner_bad_index(self) -> None:
        quad = Quadrilateral.from_points(RECTANGLE)
        with pytest.raises(IndexError):
            quad.with_corner(4, Corner(0, 0))

    def test_scaled(self) -> None:
        quad = Quadrilateral.from_points(RECTANGLE).scaled(0.5)
        assert quad.top_left == Corner(50, 50)
        assert quad.bottom_right == Corner(450, 350)


class TestDegenerate:
    """Tests for shapes that cannot be rectified."""

    def test_rectangle_is_not_degenerate(self) -> None:
        assert not Quadrilateral.from_points(RECTANGLE).is_degenerate()

    def test_coincident_corners(self) -> None:
        quad = Quadrilateral(
            (Corner(100, 100), Corner(100, 100), Corner(900, 700), Corner(100, 700))
        )
        assert quad.is_degenerate()

    def test_collinear_corners(self) -> None:
        quad = Quadrilateral(
            (Corner(0, 0), Corner(50, 0), Corner(100, 0), Corner(50, 100))
        )
        assert quad.is_degenerate()

    def test_zero_area(self) -> None:
        quad = Quadrilateral.from_points([(0, 0), (10, 0), (20, 0), (30, 0)])
        assert quad.is_degenerate()

    def test_bow_tie(self) -> None:
        quad = Quadrilateral(
            (Corner(0, 0), Corner(100, 100), Corner(100, 0), Corner(0, 100))
        )
        assert not quad.is_convex()
        assert quad.is_degenerate()


class TestParseCorners:
    """Tests for parsing corners from command-line and query strings."""

    def test_any_order(self) -> None:
        quad = parse_corners("900,700,100,100,900,100,100,700")
        assert (quad.top_left.x, quad.top_left.y) == (100.0, 100.0)
        assert (quad.bottom_right.x, quad.bottom_right.y) == (900.0, 700.0)

    def test_semicolon_separated(self) -> None:
        quad = parse_corners("100,100;900,100;900,700;100,700")
        assert quad.to_list() == Quadrilateral.from_points(RECTANGLE).to_list()

    def test_wrong_count(self) -> None:
        with pytest.raises(ValueError, match="Expected 8"):
            parse_corners("1,2,3")

    def test_not_numbers(self) -> None:
        with pytest.raises(ValueError):
            parse_corners("a,b,c,d,e,f,g,h")
