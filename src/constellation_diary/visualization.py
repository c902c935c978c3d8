"""Rendering of diary constellations and reference shapes.

Star positions are stored normalized to the unit square (y down). These
helpers lay them out on a canvas, one constellation-wide column per group,
and draw stars and connecting lines with OpenCV.
"""

from typing import Optional, Sequence

import cv2
import numpy as np

from constellation_diary.lines import (
    ConstellationLine,
    generate_date_order_lines,
    validate_lines,
)
from constellation_diary.matching import to_point_array
from constellation_diary.shapes import ReferenceShape

# Canvas layout in pixels
CONSTELLATION_WIDTH = 400
CONSTELLATION_HEIGHT = 500
PADDING = 40
STAR_AREA_WIDTH = CONSTELLATION_WIDTH - 2 * PADDING
STAR_AREA_HEIGHT = CONSTELLATION_HEIGHT - 2 * PADDING

BACKGROUND_COLOR = (11, 16, 33)
STAR_COLOR = (255, 255, 255)
LINE_COLOR = (120, 170, 255)


def star_positions_to_canvas(
    points,
    group_index: int = 0,
    padding: int = PADDING,
    star_area: tuple[int, int] = (STAR_AREA_WIDTH, STAR_AREA_HEIGHT),
) -> np.ndarray:
    """Convert normalized star positions to canvas pixel coordinates.

    Args:
        points: Star positions in the unit square (N, 2)
        group_index: Constellation column; each group is shifted right by
            one constellation width
        padding: Margin around the star area in pixels
        star_area: (width, height) of the area stars are spread over

    Returns:
        Pixel positions (N, 2)

    Example:
        >>> star_positions_to_canvas([(0.0, 0.0), (1.0, 1.0)])
        array([[ 40.,  40.],
               [360., 460.]])
    """
    positions = to_point_array(points)
    area_width, area_height = star_area
    column_width = area_width + 2 * padding

    pixels = positions * np.array([area_width, area_height], dtype=float)
    pixels[:, 0] += group_index * column_width + padding
    pixels[:, 1] += padding

    return pixels


def draw_constellation_lines(
    canvas: np.ndarray,
    star_positions: np.ndarray,
    lines: Sequence[Sequence[int]],
    color: tuple[int, int, int] = LINE_COLOR,
    thickness: int = 2,
) -> np.ndarray:
    """Draw lines between stars.

    Args:
        canvas: Image to draw on (H, W, 3)
        star_positions: Star positions in pixel coordinates (N, 2)
        lines: (start_idx, end_idx) pairs; invalid pairs are skipped
        color: RGB color for lines
        thickness: Line thickness in pixels

    Returns:
        Canvas with lines drawn
    """
    for start_idx, end_idx in validate_lines(lines, len(star_positions)):
        start = star_positions[start_idx]
        end = star_positions[end_idx]

        pt1 = (int(start[0]), int(start[1]))
        pt2 = (int(end[0]), int(end[1]))

        cv2.line(canvas, pt1, pt2, color, thickness, cv2.LINE_AA)

    return canvas


def render_stars(
    canvas: np.ndarray,
    star_positions: np.ndarray,
    radius: int = 5,
    color: tuple[int, int, int] = STAR_COLOR,
    glow: bool = True,
) -> np.ndarray:
    """Draw stars as filled circles, skipping any outside the canvas."""
    for x, y in star_positions:
        x_int, y_int = int(x), int(y)

        if 0 <= x_int < canvas.shape[1] and 0 <= y_int < canvas.shape[0]:
            cv2.circle(canvas, (x_int, y_int), radius, color, -1, cv2.LINE_AA)

            if glow:
                glow_color = tuple(int(c * 0.5) for c in color)
                cv2.circle(
                    canvas, (x_int, y_int), radius + 3, glow_color, 1, cv2.LINE_AA
                )

    return canvas


def render_constellation(
    points,
    lines: Optional[Sequence[ConstellationLine]] = None,
    canvas_size: tuple[int, int] = (CONSTELLATION_HEIGHT, CONSTELLATION_WIDTH),
    background_color: tuple[int, int, int] = BACKGROUND_COLOR,
    star_color: tuple[int, int, int] = STAR_COLOR,
    line_color: tuple[int, int, int] = LINE_COLOR,
    star_radius: int = 5,
) -> np.ndarray:
    """Render one constellation on its own canvas.

    Args:
        points: Star positions in the unit square (N, 2)
        lines: Optional lines between stars, as index pairs
        canvas_size: Canvas (height, width) in pixels
        background_color: RGB background color
        star_color: RGB color for stars
        line_color: RGB color for lines
        star_radius: Star radius in pixels

    Returns:
        RGB image (H, W, 3) of dtype uint8
    """
    height, width = canvas_size
    canvas = np.full((height, width, 3), background_color, dtype=np.uint8)

    star_area = (max(width - 2 * PADDING, 1), max(height - 2 * PADDING, 1))
    positions = star_positions_to_canvas(points, star_area=star_area)

    # Lines first so stars are drawn on top
    if lines:
        canvas = draw_constellation_lines(canvas, positions, lines, line_color)

    return render_stars(canvas, positions, radius=star_radius, color=star_color)


def render_reference_shape(
    shape: ReferenceShape,
    canvas_size: tuple[int, int] = (CONSTELLATION_HEIGHT, CONSTELLATION_WIDTH),
    connect: bool = True,
) -> np.ndarray:
    """Render a reference shape, connecting its points in authored order."""
    lines = generate_date_order_lines(len(shape.points)) if connect else None

    return render_constellation(shape.points, lines=lines, canvas_size=canvas_size)
