"""Corner and quadrilateral types shared by every pipeline stage.

A :class:`Quadrilateral` always holds exactly four corners ordered
clockwise from the top-left: top-left, top-right, bottom-right,
bottom-left. Coordinates belong to the resolution of the frame they were
measured on; use :meth:`Quadrilateral.scaled` to move between resolutions.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

import numpy as np

TOP_LEFT, TOP_RIGHT, BOTTOM_RIGHT, BOTTOM_LEFT = range(4)


@dataclass(frozen=True)
class Corner:
    """A 2D point in frame coordinates."""

    x: float
    y: float

    def distance_to(self, other: "Corner") -> float:
        return math.hypot(self.x - other.x, self.y - other.y)

    def scaled(self, factor: float) -> "Corner":
        return Corner(self.x * factor, self.y * factor)


def sort_corners(points: Iterable[Sequence[float]] | np.ndarray) -> list[Corner]:
    """Order four points clockwise starting at the top-left.

    Points are sorted by their angle around the centroid, then rotated so
    the point with the smallest ``x + y`` (ties: smallest ``x``) comes
    first. The result does not depend on the input order.

    Args:
        points: Four ``(x, y)`` pairs, a ``(4, 2)`` / ``(4, 1, 2)`` array,
            or four :class:`Corner` objects.

    Returns:
        Corners as [top-left, top-right, bottom-right, bottom-left].

    Raises:
        ValueError: If there are not exactly four points.
    """
    pts = np.asarray(
        [(p.x, p.y) if isinstance(p, Corner) else p for p in points]
        if not isinstance(points, np.ndarray)
        else points,
        dtype=np.float64,
    ).reshape(-1, 2)
    if pts.shape[0] != 4:
        raise ValueError(f"Expected 4 points, got {pts.shape[0]}")

    center = pts.mean(axis=0)
    angles = np.arctan2(pts[:, 1] - center[1], pts[:, 0] - center[0])
    clockwise = pts[np.lexsort((pts[:, 1], pts[:, 0], angles))]

    start = int(np.lexsort((clockwise[:, 0], clockwise.sum(axis=1)))[0])
    clockwise = np.roll(clockwise, -start, axis=0)
    return [Corner(float(x), float(y)) for x, y in clockwise]


def _cross(o: Corner, a: Corner, b: Corner) -> float:
    return (a.x - o.x) * (b.y - o.y) - (a.y - o.y) * (b.x - o.x)


@dataclass(frozen=True)
class Quadrilateral:
    """Four corners bounding a document, in clockwise order."""

    corners: tuple[Corner, Corner, Corner, Corner]

    def __post_init__(self) -> None:
        corners = tuple(self.corners)
        if len(corners) != 4:
            raise ValueError(
                f"A quadrilateral needs exactly 4 corners, got {len(corners)}"
            )
        object.__setattr__(self, "corners", corners)

    @classmethod
    def from_points(
        cls, points: Iterable[Sequence[float]] | np.ndarray
    ) -> "Quadrilateral":
        """Build a quadrilateral from four points in any order."""
        return cls(tuple(sort_corners(points)))

    def __iter__(self):
        return iter(self.corners)

    def __getitem__(self, index: int) -> Corner:
        return self.corners[index]

    @property
    def top_left(self) -> Corner:
        return self.corners[TOP_LEFT]

    @property
    def top_right(self) -> Corner:
        return self.corners[TOP_RIGHT]

    @property
    def bottom_right(self) -> Corner:
        return self.corners[BOTTOM_RIGHT]

    @property
    def bottom_left(self) -> Corner:
        return self.corners[BOTTOM_LEFT]

    def to_array(self) -> np.ndarray:
        """Return the corners as a ``(4, 2)`` float32 array."""
        return np.array([(c.x, c.y) for c in self.corners], dtype=np.float32)

    def to_list(self) -> list[dict[str, float]]:
        return [{"x": c.x, "y": c.y} for c in self.corners]

    def with_corner(self, index: int, corner: Corner) -> "Quadrilateral":
        """Return a copy with one corner replaced and the others untouched."""
        if not 0 <= index < 4:
            raise IndexError(f"Corner index out of range: {index}")
        corners = list(self.corners)
        corners[index] = corner
        return Quadrilateral(tuple(corners))

    def scaled(self, factor: float) -> "Quadrilateral":
        """Map the corners into a frame resized by ``factor``."""
        return Quadrilateral(tuple(c.scaled(factor) for c in self.corners))

    def side_lengths(self) -> tuple[float, float, float, float]:
        """Lengths of the top, right, bottom and left sides."""
        c = self.corners
        return (
            c[0].distance_to(c[1]),
            c[1].distance_to(c[2]),
            c[2].distance_to(c[3]),
            c[3].distance_to(c[0]),
        )

    def perimeter(self) -> float:
        return sum(self.side_lengths())

    def area(self) -> float:
        """Polygon area by the shoelace formula."""
        c = self.corners
        twice = sum(
            c[i].x * c[(i + 1) % 4].y - c[(i + 1) % 4].x * c[i].y for i in range(4)
        )
        return abs(twice) / 2.0

    def centroid(self) -> Corner:
        return Corner(
            sum(c.x for c in self.corners) / 4.0,
            sum(c.y for c in self.corners) / 4.0,
        )

    def interior_angles(self) -> list[float]:
        """Interior angle at each corner, in degrees."""
        c = self.corners
        angles = []
        for i in range(4):
            prev, cur, nxt = c[i - 1], c[i], c[(i + 1) % 4]
            ax, ay = prev.x - cur.x, prev.y - cur.y
            bx, by = nxt.x - cur.x, nxt.y - cur.y
            norm = math.hypot(ax, ay) * math.hypot(bx, by)
            if norm == 0:
                angles.append(0.0)
                continue
            cosine = max(-1.0, min(1.0, (ax * bx + ay * by) / norm))
            angles.append(math.degrees(math.acos(cosine)))
        return angles

    def opposite_side_ratios(self) -> tuple[float, float]:
        """Ratios top/bottom and left/right (``inf`` when a side is zero)."""
        top, right, bottom, left = self.side_lengths()
        return (
            top / bottom if bottom else math.inf,
            left / right if right else math.inf,
        )

    def is_convex(self) -> bool:
        c = self.corners
        crosses = [_cross(c[i], c[(i + 1) % 4], c[(i + 2) % 4]) for i in range(4)]
        return all(v > 0 for v in crosses) or all(v < 0 for v in crosses)

    def is_degenerate(self, min_side: float = 1.0, min_area: float = 1.0) -> bool:
        """True for shapes that cannot be rectified.

        Covers coincident corners, near-zero area, collinear neighbours and
        non-convex (bow-tie) corner orders.
        """
        if min(self.side_lengths()) < min_side:
            return True
        if self.area() < min_area:
            return True
        corners = self.corners
        for i in range(4):
            a, b, c = corners[i], corners[(i + 1) % 4], corners[(i + 2) % 4]
            scale = a.distance_to(b) * b.distance_to(c)
            if abs(_cross(a, b, c)) <= 1e-6 * scale:
                return True
        return not self.is_convex()


def parse_corners(raw: str) -> Quadrilateral:
    """Parse ``"x1,y1,x2,y2,x3,y3,x4,y4"`` into a quadrilateral.

    Raises:
        ValueError: If the string does not hold exactly eight numbers.
    """
    values = [float(v) for v in raw.replace(";", ",").split(",") if v.strip()]
    if len(values) != 8:
        raise ValueError(f"Expected 8 coordinates, got {len(values)}")
    return Quadrilateral.from_points(list(zip(values[0::2], values[1::2])))
