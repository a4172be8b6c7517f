"""Tests for canvas geometry helpers."""

import math

import pytest
from pydantic import ValidationError

from ecocol.canvas.geometry import (
    Point,
    arrow_head,
    bounding_box,
    circle_outline,
    dash_segments,
    distance,
    midpoint,
    text_contains,
)


def p(x: float, y: float) -> Point:
    return Point(x=x, y=y)


class TestPoint:
    def test_points_are_immutable(self):
        point = p(1, 2)
        with pytest.raises(ValidationError):
            point.x = 5

    def test_equality_by_value(self):
        assert p(1, 2) == p(1.0, 2.0)


class TestBasicGeometry:
    def test_distance(self):
        assert distance(p(0, 0), p(3, 4)) == 5

    def test_midpoint(self):
        assert midpoint(p(0, 0), p(10, 4)) == p(5, 2)

    def test_bounding_box_normalizes_corners(self):
        assert bounding_box(p(10, 20), p(0, 5)) == (0, 5, 10, 20)

    def test_circle_outline_is_closed_at_radius(self):
        outline = circle_outline(p(10, 10), 5, segments=12)
        assert outline[0] == outline[-1]
        for point in outline:
            assert distance(p(10, 10), point) == pytest.approx(5)


class TestArrowHead:
    def test_barbs_are_thirty_degrees_off_the_shaft(self):
        left, right = arrow_head(p(0, 0), p(100, 0), length=15)
        assert distance(left, p(100, 0)) == pytest.approx(15)
        assert distance(right, p(100, 0)) == pytest.approx(15)
        assert left.x == pytest.approx(100 - 15 * math.cos(math.pi / 6))
        assert {round(left.y, 6), round(right.y, 6)} == {7.5, -7.5}


class TestTextContains:
    def test_inside_box_above_baseline(self):
        assert text_contains(p(15, 95), p(10, 100), text_width=40, font_size=16)

    def test_edges_are_inclusive(self):
        assert text_contains(p(10, 84), p(10, 100), text_width=40, font_size=16)
        assert text_contains(p(50, 100), p(10, 100), text_width=40, font_size=16)

    def test_below_baseline_misses(self):
        assert not text_contains(p(15, 101), p(10, 100), text_width=40, font_size=16)

    def test_past_text_width_misses(self):
        assert not text_contains(p(51, 95), p(10, 100), text_width=40, font_size=16)


class TestDashSegments:
    def test_straight_line(self):
        segments = dash_segments([p(0, 0), p(20, 0)], (5, 5))
        assert [(a.x, b.x) for a, b in segments] == [(0, 5), (10, 15)]

    def test_phase_carries_across_corners(self):
        # 7px then a corner: the second leg resumes 2px into the gap
        segments = dash_segments([p(0, 0), p(7, 0), p(7, 10)], (5, 5))
        assert len(segments) == 2
        (a, b), (c, d) = segments
        assert (a.x, b.x) == pytest.approx((0, 5))
        assert (c.x, c.y) == pytest.approx((7, 3))
        assert (d.x, d.y) == pytest.approx((7, 8))

    def test_zero_gap_is_solid(self):
        points = [p(0, 0), p(5, 0), p(5, 5)]
        assert dash_segments(points, (5, 0)) == [(points[0], points[1]), (points[1], points[2])]
