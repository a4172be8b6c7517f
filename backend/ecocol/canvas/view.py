"""Zoom and pan transform for the viewer canvas."""

from ecocol.canvas.geometry import Point
from ecocol.core.config import CanvasSettings


class ViewTransform:
    """Screen = canvas * scale + translate.

    The scale is always kept inside ``[min_scale, max_scale]``; zoom steps
    that would leave the range are clamped to its edge. Pan is unbounded.
    """

    def __init__(
        self,
        canvas_width: int,
        canvas_height: int,
        min_scale: float = 0.1,
        max_scale: float = 10.0,
        zoom_step: float = 1.2,
        wheel_zoom_in: float = 1.1,
        wheel_zoom_out: float = 0.9,
    ):
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height
        self.min_scale = min_scale
        self.max_scale = max_scale
        self.zoom_step = zoom_step
        self.wheel_zoom_in = wheel_zoom_in
        self.wheel_zoom_out = wheel_zoom_out
        self.scale = 1.0
        self.translate_x = 0.0
        self.translate_y = 0.0
        self._pan_anchor: Point | None = None

    @classmethod
    def from_settings(
        cls, canvas_width: int, canvas_height: int, canvas_settings: CanvasSettings
    ) -> "ViewTransform":
        return cls(
            canvas_width,
            canvas_height,
            min_scale=canvas_settings.min_scale,
            max_scale=canvas_settings.max_scale,
            zoom_step=canvas_settings.zoom_step,
            wheel_zoom_in=canvas_settings.wheel_zoom_in,
            wheel_zoom_out=canvas_settings.wheel_zoom_out,
        )

    @property
    def zoom_level(self) -> int:
        """Zoom as a rounded percentage."""
        return round(self.scale * 100)

    @property
    def is_panning(self) -> bool:
        return self._pan_anchor is not None

    def resize(self, canvas_width: int, canvas_height: int) -> None:
        self.canvas_width = canvas_width
        self.canvas_height = canvas_height

    def reset(self) -> None:
        """Back to identity."""
        self.scale = 1.0
        self.translate_x = 0.0
        self.translate_y = 0.0
        self._pan_anchor = None

    def zoom_in(self, factor: float | None = None) -> bool:
        """Zoom in about the canvas centre. Returns False if already at the limit."""
        factor = factor or self.zoom_step
        return self._zoom_about(self.canvas_width / 2, self.canvas_height / 2, factor)

    def zoom_out(self, factor: float | None = None) -> bool:
        """Zoom out about the canvas centre. Returns False if already at the limit."""
        factor = factor or self.zoom_step
        return self._zoom_about(self.canvas_width / 2, self.canvas_height / 2, 1 / factor)

    def zoom_at(self, point: Point, delta_y: float) -> bool:
        """Wheel zoom keeping ``point`` (screen coordinates) fixed."""
        factor = self.wheel_zoom_out if delta_y > 0 else self.wheel_zoom_in
        return self._zoom_about(point.x, point.y, factor)

    def begin_pan(self, point: Point) -> None:
        self._pan_anchor = point

    def pan_to(self, point: Point) -> bool:
        if self._pan_anchor is None:
            return False
        self.translate_x += point.x - self._pan_anchor.x
        self.translate_y += point.y - self._pan_anchor.y
        self._pan_anchor = point
        return True

    def end_pan(self) -> None:
        self._pan_anchor = None

    def fit_to_window(self, container_width: float, container_height: float) -> None:
        """Fit the canvas inside a container, never enlarging past 100%, centred."""
        scale = min(
            container_width / self.canvas_width,
            container_height / self.canvas_height,
            1.0,
        )
        self.scale = self._clamp(scale)
        self.translate_x = (container_width - self.canvas_width * self.scale) / 2
        self.translate_y = (container_height - self.canvas_height * self.scale) / 2

    def to_canvas(self, point: Point) -> Point:
        """Map a screen point into canvas pixel space."""
        return Point(
            x=(point.x - self.translate_x) / self.scale,
            y=(point.y - self.translate_y) / self.scale,
        )

    def to_screen(self, point: Point) -> Point:
        """Map a canvas point into screen space."""
        return Point(
            x=point.x * self.scale + self.translate_x,
            y=point.y * self.scale + self.translate_y,
        )

    def _clamp(self, scale: float) -> float:
        return max(self.min_scale, min(self.max_scale, scale))

    def _zoom_about(self, cx: float, cy: float, factor: float) -> bool:
        new_scale = self._clamp(self.scale * factor)
        if new_scale == self.scale:
            return False
        applied = new_scale / self.scale
        self.translate_x = cx - (cx - self.translate_x) * applied
        self.translate_y = cy - (cy - self.translate_y) * applied
        self.scale = new_scale
        return True
