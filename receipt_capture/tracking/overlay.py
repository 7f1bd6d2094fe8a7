"""Drawing of the live corner overlay on top of a frame."""

import cv2
import numpy as np

from receipt_capture.geometry.quadrilateral import Corner, Quadrilateral

from .tracker import DisplayMapping

OUTLINE_COLOR = (0, 200, 0)
HANDLE_COLOR = (0, 200, 0)
SELECTED_COLOR = (0, 165, 255)


def overlay_thickness(width: int, height: int) -> int:
    """Outline width that stays visible on large frames."""
    return max(2, round(min(width, height) / 250))


def draw_overlay(
    image: np.ndarray,
    quadrilateral: Quadrilateral | None,
    selected_index: int | None = None,
    label: str | None = None,
) -> np.ndarray:
    """Return a copy of ``image`` with the quadrilateral and its handles drawn.

    Args:
        image: BGR or grayscale frame.
        quadrilateral: Corners to draw, in the image's coordinates.
        selected_index: Corner being dragged, drawn highlighted.
        label: Optional status text drawn in the top-left corner.

    Returns:
        Annotated BGR image.
    """
    if image.ndim == 2:
        canvas = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
    else:
        canvas = image.copy()
    height, width = canvas.shape[:2]
    thickness = overlay_thickness(width, height)

    if quadrilateral is not None:
        points = np.round(quadrilateral.to_array()).astype(np.int32)
        outline = [points.reshape(-1, 1, 2)]
        cv2.polylines(canvas, outline, True, OUTLINE_COLOR, thickness)
        for index, (x, y) in enumerate(points):
            color = SELECTED_COLOR if index == selected_index else HANDLE_COLOR
            cv2.circle(canvas, (int(x), int(y)), thickness * 4, color, -1)

    if label:
        cv2.putText(
            canvas,
            label,
            (thickness * 5, thickness * 15),
            cv2.FONT_HERSHEY_SIMPLEX,
            thickness * 0.4,
            OUTLINE_COLOR,
            max(1, thickness // 2),
        )
    return canvas


def render_display(
    image: np.ndarray,
    quadrilateral: Quadrilateral | None,
    mapping: DisplayMapping,
    selected_index: int | None = None,
    label: str | None = None,
) -> np.ndarray:
    """Letterbox ``image`` into a display canvas and draw the overlay on it.

    The canvas is the container ``mapping`` was fitted to. Corners are
    given in frame coordinates and drawn at their display positions.
    """
    canvas_width = round(2 * mapping.left + mapping.width)
    canvas_height = round(2 * mapping.top + mapping.height)
    left, top = int(mapping.left), int(mapping.top)
    width = max(1, min(round(mapping.width), canvas_width - left))
    height = max(1, min(round(mapping.height), canvas_height - top))

    scaled = cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)
    if scaled.ndim == 2:
        scaled = cv2.cvtColor(scaled, cv2.COLOR_GRAY2BGR)
    canvas = np.zeros((canvas_height, canvas_width, 3), dtype=np.uint8)
    canvas[top : top + height, left : left + width] = scaled

    shown = None
    if quadrilateral is not None:
        shown = Quadrilateral(
            tuple(Corner(*mapping.to_display(corner)) for corner in quadrilateral)
        )
    return draw_overlay(canvas, shown, selected_index, label)
