"""Corner tracking and interactive corner editing.

The tracker owns the accepted quadrilateral and the pause flag. Automatic
detection stops as soon as a document is found so that later detections
cannot overwrite the user's corrections; pointer events then move single
corners until the user resets.

State transitions::

    IDLE -> DETECTING -> LOCKED -> DRAGGING -> LOCKED
      ^                                |
      +------------- reset ------------+

All methods must be called from the same thread as :meth:`CornerTracker.tick`.
"""

from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from receipt_capture.capture.sampler import Frame
from receipt_capture.geometry.quadrilateral import Corner, Quadrilateral
from receipt_capture.utils.config import TrackerConfig
from receipt_capture.utils.logger import get_logger

logger = get_logger(__name__)


class Detector(Protocol):
    def detect(self, frame: Frame) -> Quadrilateral | None: ...


class TrackerState(StrEnum):
    """Interaction states of the corner tracker."""

    IDLE = "idle"
    DETECTING = "detecting"
    LOCKED = "locked"
    DRAGGING = "dragging"


@dataclass(frozen=True)
class DisplayMapping:
    """Maps between display coordinates and frame coordinates.

    ``left``, ``top``, ``width`` and ``height`` describe where the frame is
    drawn on screen; ``frame_width`` and ``frame_height`` are the frame's
    own resolution.
    """

    left: float
    top: float
    width: float
    height: float
    frame_width: int
    frame_height: int

    @classmethod
    def identity(cls, frame_width: int, frame_height: int) -> "DisplayMapping":
        return cls(
            0.0, 0.0, float(frame_width), float(frame_height), frame_width, frame_height
        )

    @classmethod
    def fit(
        cls,
        container_width: float,
        container_height: float,
        frame_width: int,
        frame_height: int,
    ) -> "DisplayMapping":
        """Mapping for a frame letterboxed (``contain``) inside a container."""
        scale = min(container_width / frame_width, container_height / frame_height)
        width = frame_width * scale
        height = frame_height * scale
        return cls(
            (container_width - width) / 2.0,
            (container_height - height) / 2.0,
            width,
            height,
            frame_width,
            frame_height,
        )

    def to_frame(self, x: float, y: float) -> Corner:
        return Corner(
            (x - self.left) * self.frame_width / self.width,
            (y - self.top) * self.frame_height / self.height,
        )

    def to_display(self, corner: Corner) -> tuple[float, float]:
        return (
            self.left + corner.x * self.width / self.frame_width,
            self.top + corner.y * self.height / self.frame_height,
        )


class CornerTracker:
    """Holds the current quadrilateral and applies detections and drags.

    Args:
        detector: Object with a ``detect(frame)`` method.
        config: Touch radius settings in frame pixels.
    """

    def __init__(self, detector: Detector, config: TrackerConfig | None = None) -> None:
        self.detector = detector
        self.config = config or TrackerConfig()
        self._state = TrackerState.IDLE
        self._quadrilateral: Quadrilateral | None = None
        self._paused = False
        self._selected_index: int | None = None
        self._frame_size: tuple[int, int] | None = None

    @property
    def state(self) -> TrackerState:
        return self._state

    @property
    def quadrilateral(self) -> Quadrilateral | None:
        return self._quadrilateral

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def selected_index(self) -> int | None:
        return self._selected_index

    @property
    def frame_size(self) -> tuple[int, int] | None:
        return self._frame_size

    def tick(self, frame: Frame) -> Quadrilateral | None:
        """Run one detection attempt unless detection is paused.

        Args:
            frame: The frame sampled for this cycle.

        Returns:
            The current quadrilateral after this tick.
        """
        self._frame_size = frame.size
        if self._paused or self._state is not TrackerState.IDLE:
            return self._quadrilateral

        self._state = TrackerState.DETECTING
        try:
            result = self.detector.detect(frame)
        finally:
            self._state = TrackerState.IDLE

        if result is not None:
            self.accept(result)
        return self._quadrilateral

    def accept(self, quadrilateral: Quadrilateral) -> None:
        """Lock onto a quadrilateral and pause automatic detection."""
        self._quadrilateral = quadrilateral
        self._paused = True
        self._selected_index = None
        self._state = TrackerState.LOCKED
        logger.info("Locked document corners: %s", quadrilateral.to_list())

    def effective_radius(self, corner: Corner) -> float:
        """Touch radius for a corner, enlarged near the frame border."""
        radius = self.config.touch_radius
        if self._frame_size is None:
            return radius
        width, height = self._frame_size
        margin_x = width * self.config.edge_zone_fraction
        margin_y = height * self.config.edge_zone_fraction
        near_edge = (
            corner.x <= margin_x
            or corner.x >= width - margin_x
            or corner.y <= margin_y
            or corner.y >= height - margin_y
        )
        return radius * self.config.edge_zone_multiplier if near_edge else radius

    def pointer_down(
        self, x: float, y: float, mapping: DisplayMapping | None = None
    ) -> int | None:
        """Start dragging the nearest corner within its touch radius.

        Args:
            x: Pointer x in display coordinates.
            y: Pointer y in display coordinates.
            mapping: Display-to-frame mapping; identity when omitted.

        Returns:
            Index of the selected corner, or ``None`` if nothing was hit.
        """
        if self._state is not TrackerState.LOCKED or self._quadrilateral is None:
            return None

        point = mapping.to_frame(x, y) if mapping else Corner(float(x), float(y))
        best_index = None
        best_distance = float("inf")
        for index, corner in enumerate(self._quadrilateral):
            distance = corner.distance_to(point)
            if distance <= self.effective_radius(corner) and distance < best_distance:
                best_index, best_distance = index, distance

        if best_index is not None:
            self._selected_index = best_index
            self._state = TrackerState.DRAGGING
            logger.debug("Dragging corner %d", best_index)
        return best_index

    def pointer_move(
        self, x: float, y: float, mapping: DisplayMapping | None = None
    ) -> Quadrilateral | None:
        """Move the selected corner to the pointer position."""
        if self._state is not TrackerState.DRAGGING or self._quadrilateral is None:
            return self._quadrilateral

        point = mapping.to_frame(x, y) if mapping else Corner(float(x), float(y))
        if self._frame_size is not None:
            width, height = self._frame_size
            point = Corner(
                min(max(point.x, 0.0), float(width - 1)),
                min(max(point.y, 0.0), float(height - 1)),
            )
        quad = self._quadrilateral.with_corner(self._selected_index, point)
        self._quadrilateral = quad
        return self._quadrilateral

    def pointer_up(self) -> None:
        if self._state is TrackerState.DRAGGING:
            self._state = TrackerState.LOCKED
            logger.debug("Released corner %d", self._selected_index)
        self._selected_index = None

    pointer_cancel = pointer_up

    def reset(self) -> None:
        """Drop the quadrilateral and resume automatic detection."""
        self._quadrilateral = None
        self._selected_index = None
        self._paused = False
        self._state = TrackerState.IDLE
        logger.info("Corner tracker reset")

    def teardown(self) -> None:
        """Release all per-session state."""
        self.reset()
        self._frame_size = None
