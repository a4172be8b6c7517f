"""Layered rendering of the viewer canvas.

Every redraw starts from the base frame bitmap and paints, in order, the
committed annotations, the committed measurements and finally the preview
of the gesture in progress. Layer painters only read store state, so
redrawing an unchanged canvas yields identical pixels.
"""

import asyncio
from collections.abc import Iterable, Sequence

from PIL import Image, ImageDraw

from ecocol.canvas.fonts import get_font
from ecocol.canvas.geometry import (
    Point,
    arrow_head,
    bounding_box,
    circle_outline,
    dash_segments,
    distance,
    midpoint,
    rectangle_outline,
)
from ecocol.canvas.records import (
    AreaMeasurement,
    ArrowAnnotation,
    CircleAnnotation,
    FreehandAnnotation,
    RectAnnotation,
    RulerMeasurement,
    TextAnnotation,
)
from ecocol.canvas.store import AnnotationStore, MeasurementStore
from ecocol.canvas.tools import Gesture, Tool
from ecocol.core.config import CanvasSettings

ENDPOINT_HALF_SIZE = 3
LABEL_OFFSET = 5


class Surface:
    """The raster canvas and the frame sequence it displays."""

    def __init__(self, width: int = 512, height: int = 512, background: str = "black"):
        self.background = background
        self.image = Image.new("RGB", (width, height), background)
        self.frames: list[Image.Image] = []
        self.frame_index = 0
        # Held by exports that replace the displayed frame
        self.export_lock = asyncio.Lock()

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    def set_frames(self, frames: Iterable[Image.Image]) -> None:
        """Replace the frame sequence and size the canvas to its first frame."""
        self.frames = [frame.convert("RGB") for frame in frames]
        self.frame_index = 0
        if self.frames:
            self.image = Image.new("RGB", self.frames[0].size, self.background)

    def current_frame(self) -> Image.Image | None:
        if not self.frames:
            return None
        return self.frames[self.frame_index]

    def snapshot(self) -> Image.Image:
        """Copy of what the canvas currently shows."""
        return self.image.copy()


class RenderPipeline:
    """Redraws the surface from the frame, the stores and the live preview."""

    def __init__(
        self,
        surface: Surface,
        annotations: AnnotationStore,
        measurements: MeasurementStore,
        style: CanvasSettings,
    ):
        self.surface = surface
        self.annotations = annotations
        self.measurements = measurements
        self.style = style
        self.preview: Gesture | None = None
        self.preview_color = style.default_color

    def render_frame(
        self, frame: Image.Image | None = None, include_preview: bool = True
    ) -> Image.Image:
        """Draw the base bitmap and every layer on top of it.

        Args:
            frame: Bitmap to use instead of the surface's current frame
            include_preview: Draw the gesture in progress (off for exports)

        Returns:
            The new canvas image (also stored on the surface)

        """
        base = frame if frame is not None else self.surface.current_frame()
        if base is None:
            canvas = Image.new("RGB", self.surface.size, self.surface.background)
        else:
            canvas = base.convert("RGB") if base.mode != "RGB" else base.copy()

        draw = ImageDraw.Draw(canvas)
        draw_annotations(draw, self.annotations.records, self.style)
        draw_measurements(draw, self.measurements.records, self.style)
        if include_preview and self.preview is not None:
            draw_preview(draw, self.preview, self.preview_color, self.style)

        self.surface.image = canvas
        return canvas

    def show_preview(self, gesture: Gesture | None, color: str | None = None) -> Image.Image:
        """Set (or clear, with None) the in-progress gesture and redraw."""
        self.preview = gesture
        if color is not None:
            self.preview_color = color
        return self.render_frame()


# ============================================================================
# Stroke primitives
# ============================================================================


def _xy(points: Sequence[Point]) -> list[tuple[float, float]]:
    return [p.as_tuple() for p in points]


def stroke(
    draw: ImageDraw.ImageDraw,
    points: Sequence[Point],
    color: str,
    width: int,
    dash: tuple[int, int] | None = None,
) -> None:
    """Stroke a polyline, solid or dashed."""
    if len(points) < 2:
        return
    if dash is None:
        draw.line(_xy(points), fill=color, width=width, joint="curve")
        return
    for a, b in dash_segments(points, dash):
        draw.line([a.as_tuple(), b.as_tuple()], fill=color, width=width)


def draw_arrow(
    draw: ImageDraw.ImageDraw,
    start: Point,
    end: Point,
    color: str,
    style: CanvasSettings,
    dash: tuple[int, int] | None = None,
) -> None:
    left, right = arrow_head(start, end, style.arrow_head_length)
    stroke(draw, [start, end], color, style.line_width, dash)
    stroke(draw, [left, end, right], color, style.line_width, dash)


def draw_circle(
    draw: ImageDraw.ImageDraw,
    center: Point,
    edge: Point,
    color: str,
    style: CanvasSettings,
    dash: tuple[int, int] | None = None,
) -> None:
    radius = distance(center, edge)
    if dash is not None:
        stroke(draw, circle_outline(center, radius), color, style.line_width, dash)
        return
    draw.ellipse(
        [center.x - radius, center.y - radius, center.x + radius, center.y + radius],
        outline=color,
        width=style.line_width,
    )


def draw_rect(
    draw: ImageDraw.ImageDraw,
    start: Point,
    end: Point,
    color: str,
    style: CanvasSettings,
    dash: tuple[int, int] | None = None,
) -> None:
    if dash is not None:
        stroke(draw, rectangle_outline(start, end), color, style.line_width, dash)
        return
    draw.rectangle(bounding_box(start, end), outline=color, width=style.line_width)


def draw_label(
    draw: ImageDraw.ImageDraw, baseline: Point, text: str, color: str, size: int
) -> None:
    """Draw text whose baseline starts at ``baseline``."""
    draw.text((baseline.x, baseline.y - size), text, fill=color, font=get_font(size))


# ============================================================================
# Layers
# ============================================================================


def draw_annotations(draw: ImageDraw.ImageDraw, annotations: Iterable, style: CanvasSettings) -> None:
    """Paint committed annotations, oldest first."""
    for ann in annotations:
        if isinstance(ann, ArrowAnnotation):
            draw_arrow(draw, ann.start, ann.end, ann.color, style)
        elif isinstance(ann, TextAnnotation):
            draw_label(draw, ann.position, ann.text, ann.color, ann.font_size)
        elif isinstance(ann, CircleAnnotation):
            draw_circle(draw, ann.start, ann.end, ann.color, style)
        elif isinstance(ann, RectAnnotation):
            draw_rect(draw, ann.start, ann.end, ann.color, style)
        elif isinstance(ann, FreehandAnnotation):
            stroke(draw, ann.path, ann.color, style.line_width)


def measurement_label(measurement, index: int) -> str:
    """On-canvas label of the measurement at position ``index`` in the store."""
    if isinstance(measurement, RulerMeasurement):
        return f"{measurement.value.mm:.1f} mm"
    if isinstance(measurement, AreaMeasurement):
        return f"{measurement.value.area_mm2:.0f} mm²"
    return f"ROI {index + 1}"


def draw_measurements(
    draw: ImageDraw.ImageDraw, measurements: Iterable, style: CanvasSettings
) -> None:
    """Paint committed measurements with their value labels."""
    color = style.measurement_color
    h = ENDPOINT_HALF_SIZE
    for index, m in enumerate(measurements):
        label = measurement_label(m, index)
        if isinstance(m, RulerMeasurement):
            stroke(draw, [m.start, m.end], color, style.line_width)
            for p in (m.start, m.end):
                draw.rectangle([p.x - h, p.y - h, p.x + h, p.y + h], fill=color)
            mid = midpoint(m.start, m.end)
            anchor = Point(x=mid.x + LABEL_OFFSET, y=mid.y - LABEL_OFFSET)
        else:
            draw_rect(draw, m.start, m.end, color, style)
            anchor = Point(x=m.start.x + LABEL_OFFSET, y=m.start.y - LABEL_OFFSET)
        draw_label(draw, anchor, label, style.label_color, style.label_font_size)


def draw_preview(
    draw: ImageDraw.ImageDraw, gesture: Gesture, color: str, style: CanvasSettings
) -> None:
    """Paint the in-progress gesture with a dashed stroke."""
    dash = tuple(style.dash_pattern)
    tool = gesture.tool
    if tool.is_measurement:
        color = style.measurement_preview_color

    if tool is Tool.ARROW:
        draw_arrow(draw, gesture.anchor, gesture.end, color, style, dash)
    elif tool is Tool.CIRCLE:
        draw_circle(draw, gesture.anchor, gesture.end, color, style, dash)
    elif tool in (Tool.RECT, Tool.ROI, Tool.AREA):
        draw_rect(draw, gesture.anchor, gesture.end, color, style, dash)
    elif tool is Tool.FREEHAND:
        stroke(draw, gesture.path, color, style.line_width, dash)
    elif tool is Tool.RULER:
        stroke(draw, [gesture.anchor, gesture.end], color, style.line_width, dash)
