"""Tests for the layered render pipeline."""

import pytest
from PIL import Image, ImageChops

from ecocol.canvas.geometry import Point
from ecocol.canvas.records import ArrowAnnotation, RoiMeasurement, build_measurement
from ecocol.canvas.render import RenderPipeline, Surface, measurement_label
from ecocol.canvas.store import AnnotationStore, MeasurementStore
from ecocol.canvas.tools import Gesture, Tool
from ecocol.core.config import CanvasSettings


def p(x: float, y: float) -> Point:
    return Point(x=x, y=y)


def same_pixels(a: Image.Image, b: Image.Image) -> bool:
    return ImageChops.difference(a, b).getbbox() is None


@pytest.fixture
def pipeline() -> RenderPipeline:
    surface = Surface(64, 48)
    surface.set_frames([Image.new("L", (64, 48), 30), Image.new("L", (64, 48), 90)])
    annotations = AnnotationStore()
    measurements = MeasurementStore()
    return RenderPipeline(surface, annotations, measurements, CanvasSettings())


class TestSurface:
    def test_set_frames_resizes_canvas(self):
        surface = Surface(10, 10)
        surface.set_frames([Image.new("RGB", (30, 20))])
        assert surface.size == (30, 20)
        assert surface.frame_index == 0
        assert surface.current_frame().mode == "RGB"

    def test_no_frames(self):
        surface = Surface(10, 10)
        assert surface.current_frame() is None
        assert surface.frame_count == 0


class TestRenderFrame:
    def test_blank_frame_renders_base_only(self, pipeline):
        image = pipeline.render_frame()
        assert image.getpixel((5, 5)) == (30, 30, 30)
        assert pipeline.surface.image is image

    def test_render_is_idempotent(self, pipeline):
        pipeline.annotations.add(ArrowAnnotation(start=p(5, 5), end=p(40, 30)))
        pipeline.measurements.add(build_measurement("ruler", p(2, 40), p(60, 40)))
        first = pipeline.render_frame().copy()
        second = pipeline.render_frame()
        assert same_pixels(first, second)

    def test_annotation_drawn_in_its_color(self, pipeline):
        pipeline.annotations.add(
            ArrowAnnotation(start=p(5, 20), end=p(60, 20), color="#0000ff")
        )
        image = pipeline.render_frame()
        assert image.getpixel((30, 20)) == (0, 0, 255)

    def test_ruler_drawn_green(self, pipeline):
        pipeline.measurements.add(build_measurement("ruler", p(5, 40), p(60, 40)))
        image = pipeline.render_frame()
        assert image.getpixel((30, 40)) == (0, 255, 0)

    def test_explicit_frame_overrides_current(self, pipeline):
        image = pipeline.render_frame(pipeline.surface.frames[1])
        assert image.getpixel((5, 5)) == (90, 90, 90)


class TestPreview:
    def test_preview_is_drawn_but_not_stored(self, pipeline):
        clean = pipeline.render_frame().copy()
        gesture = Gesture(tool=Tool.RECT, anchor=p(5, 5), end=p(50, 40))
        with_preview = pipeline.show_preview(gesture, "#ff0000")
        assert not same_pixels(clean, with_preview)
        assert len(pipeline.annotations) == 0

        cleared = pipeline.show_preview(None)
        assert same_pixels(clean, cleared)

    def test_measurement_preview_is_yellow(self, pipeline):
        gesture = Gesture(tool=Tool.RULER, anchor=p(2, 20), end=p(60, 20))
        image = pipeline.show_preview(gesture, "#ff0000")
        assert image.getpixel((3, 20)) == (255, 255, 0)


class TestMeasurementLabel:
    def test_ruler_label(self):
        ruler = build_measurement("ruler", p(0, 0), p(3, 4), 2.0)
        assert measurement_label(ruler, 0) == "10.0 mm"

    def test_area_label(self):
        area = build_measurement("area", p(0, 0), p(10, 20), 1.0)
        assert measurement_label(area, 0) == "200 mm²"

    def test_roi_label_uses_position(self):
        roi = build_measurement("roi", p(0, 0), p(10, 20))
        assert isinstance(roi, RoiMeasurement)
        assert measurement_label(roi, 2) == "ROI 3"
