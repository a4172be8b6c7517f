"""Tests for measurement unit conversion."""

import pytest

from ecocol.canvas.geometry import Point
from ecocol.canvas.units import area_value, effective_spacing, ruler_value


class TestRulerValue:
    def test_three_four_five_with_spacing(self):
        value = ruler_value(Point(x=0, y=0), Point(x=3, y=4), 2.0)
        assert value.pixels == 5
        assert value.mm == 10
        assert value.cm == 1

    def test_default_spacing_is_one(self):
        value = ruler_value(Point(x=0, y=0), Point(x=0, y=7))
        assert value.mm == 7
        assert value.cm == pytest.approx(0.7)

    @pytest.mark.parametrize("spacing", [None, 0, -3])
    def test_invalid_spacing_counts_as_one(self, spacing):
        value = ruler_value(Point(x=0, y=0), Point(x=3, y=4), spacing)
        assert value.mm == 5


class TestAreaValue:
    def test_rectangle_area(self):
        value = area_value(Point(x=0, y=0), Point(x=10, y=20), 1.0)
        assert value.area_px2 == 200
        assert value.area_mm2 == 200
        assert value.area_cm2 == 2

    def test_drag_direction_does_not_matter(self):
        forward = area_value(Point(x=0, y=0), Point(x=10, y=20), 0.5)
        backward = area_value(Point(x=10, y=20), Point(x=0, y=0), 0.5)
        assert forward == backward
        assert forward.width_px == 10
        assert forward.height_px == 20
        assert forward.area_mm2 == 50

    def test_degenerate_rectangle(self):
        value = area_value(Point(x=5, y=5), Point(x=5, y=30))
        assert value.area_px2 == 0


def test_effective_spacing():
    assert effective_spacing(0.25) == 0.25
    assert effective_spacing(None) == 1.0
    assert effective_spacing(0) == 1.0
