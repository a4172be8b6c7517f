"""Geometry helpers shared by the drawing tools, stores and renderer.

All coordinates are canvas pixels with the origin at the top-left corner
and y growing downwards.
"""

import math
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict


class Point(BaseModel):
    """2D point in canvas pixel space."""

    model_config = ConfigDict(frozen=True)

    x: float
    y: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.x, self.y)


def distance(a: Point, b: Point) -> float:
    """Euclidean distance between two points."""
    return math.hypot(b.x - a.x, b.y - a.y)


def midpoint(a: Point, b: Point) -> Point:
    return Point(x=(a.x + b.x) / 2, y=(a.y + b.y) / 2)


def lerp(a: Point, b: Point, t: float) -> Point:
    return Point(x=a.x + (b.x - a.x) * t, y=a.y + (b.y - a.y) * t)


def bounding_box(start: Point, end: Point) -> tuple[float, float, float, float]:
    """Return ``(left, top, right, bottom)`` for a drag from ``start`` to ``end``."""
    return (
        min(start.x, end.x),
        min(start.y, end.y),
        max(start.x, end.x),
        max(start.y, end.y),
    )


def rectangle_outline(start: Point, end: Point) -> list[Point]:
    """Closed polyline around the rectangle spanned by two corners."""
    return [
        start,
        Point(x=end.x, y=start.y),
        end,
        Point(x=start.x, y=end.y),
        start,
    ]


def circle_outline(center: Point, radius: float, segments: int | None = None) -> list[Point]:
    """Closed polyline approximating a circle."""
    if segments is None:
        # Roughly one vertex every 4px of circumference, never fewer than 16
        segments = max(16, int(2 * math.pi * radius / 4))
    step = 2 * math.pi / segments
    points = [
        Point(x=center.x + radius * math.cos(i * step), y=center.y + radius * math.sin(i * step))
        for i in range(segments)
    ]
    points.append(points[0])
    return points


def arrow_head(
    start: Point,
    end: Point,
    length: float = 15.0,
    spread: float = math.pi / 6,
) -> tuple[Point, Point]:
    """Return the two barb tips of an arrow pointing from ``start`` to ``end``."""
    angle = math.atan2(end.y - start.y, end.x - start.x)
    left = Point(
        x=end.x - length * math.cos(angle - spread),
        y=end.y - length * math.sin(angle - spread),
    )
    right = Point(
        x=end.x - length * math.cos(angle + spread),
        y=end.y - length * math.sin(angle + spread),
    )
    return left, right


def text_contains(point: Point, position: Point, text_width: float, font_size: float) -> bool:
    """Hit-test a text label whose baseline starts at ``position``.

    The label occupies ``text_width`` horizontally and one ``font_size``
    above the baseline vertically.
    """
    return (
        position.x <= point.x <= position.x + text_width
        and position.y - font_size <= point.y <= position.y
    )


def dash_segments(
    points: Sequence[Point],
    pattern: tuple[float, float] = (5, 5),
) -> list[tuple[Point, Point]]:
    """Split a polyline into the visible segments of a dash pattern.

    The pattern phase carries over from one polyline segment to the next so
    corners do not restart the dash.
    """
    on, off = pattern
    if on <= 0:
        return []
    if off <= 0:
        return list(zip(points, points[1:]))

    period = on + off
    travelled = 0.0
    segments: list[tuple[Point, Point]] = []
    for a, b in zip(points, points[1:]):
        length = distance(a, b)
        position = 0.0
        while position < length:
            phase = travelled % period
            if phase < on:
                run = min(on - phase, length - position)
                segments.append(
                    (lerp(a, b, position / length), lerp(a, b, (position + run) / length))
                )
            else:
                run = min(period - phase, length - position)
            position += run
            travelled += run
    return segments
