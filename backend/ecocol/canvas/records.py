"""Annotation and measurement record types.

Records are tagged variants: the ``type`` field selects which geometry
fields are meaningful. They are frozen once created; the only edit the
toolkit allows (changing a text label) produces a copy.
"""

from datetime import datetime, timezone
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ecocol.canvas.geometry import Point
from ecocol.canvas.units import AreaValue, RulerValue, area_value, effective_spacing, ruler_value


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordBase(BaseModel):
    """Fields shared by every stored record."""

    model_config = ConfigDict(frozen=True)

    # 0 until the owning store assigns an id
    id: int = 0
    created_at: datetime = Field(default_factory=_utcnow)


# ============================================================================
# Annotations
# ============================================================================


class AnnotationBase(RecordBase):
    """Visual properties shared by all annotations."""

    color: str = "#ff0000"
    font_size: int = Field(default=16, ge=1)


class ArrowAnnotation(AnnotationBase):
    """Arrow from ``start`` pointing at ``end``."""

    type: Literal["arrow"] = "arrow"
    start: Point
    end: Point


class CircleAnnotation(AnnotationBase):
    """Circle centred on ``start`` passing through ``end``."""

    type: Literal["circle"] = "circle"
    start: Point
    end: Point


class RectAnnotation(AnnotationBase):
    """Axis-aligned rectangle with opposite corners ``start`` and ``end``."""

    type: Literal["rect"] = "rect"
    start: Point
    end: Point


class FreehandAnnotation(AnnotationBase):
    """Free stroke through every point of the gesture."""

    type: Literal["freehand"] = "freehand"
    start: Point
    end: Point
    path: tuple[Point, ...] = ()


class TextAnnotation(AnnotationBase):
    """Text label whose baseline starts at ``position``."""

    type: Literal["text"] = "text"
    position: Point
    text: str = Field(min_length=1)


Annotation = Annotated[
    Union[ArrowAnnotation, CircleAnnotation, RectAnnotation, FreehandAnnotation, TextAnnotation],
    Field(discriminator="type"),
]

annotation_list_adapter: TypeAdapter[list[Annotation]] = TypeAdapter(list[Annotation])


# ============================================================================
# Measurements
# ============================================================================


class MeasurementBase(RecordBase):
    """Two-point measurement with its value frozen at creation."""

    start: Point
    end: Point
    # Spacing (mm/px) that produced ``value``
    pixel_spacing: float = 1.0


class RulerMeasurement(MeasurementBase):
    """Straight-line distance."""

    type: Literal["ruler"] = "ruler"
    value: RulerValue


class RoiMeasurement(MeasurementBase):
    """Rectangular region of interest."""

    type: Literal["roi"] = "roi"
    value: AreaValue


class AreaMeasurement(MeasurementBase):
    """Rectangular area."""

    type: Literal["area"] = "area"
    value: AreaValue


Measurement = Annotated[
    Union[RulerMeasurement, RoiMeasurement, AreaMeasurement],
    Field(discriminator="type"),
]

measurement_list_adapter: TypeAdapter[list[Measurement]] = TypeAdapter(list[Measurement])


# ============================================================================
# Builders
# ============================================================================


def build_annotation(
    kind: str,
    start: Point,
    end: Point,
    *,
    color: str,
    font_size: int,
    path: tuple[Point, ...] = (),
) -> ArrowAnnotation | CircleAnnotation | RectAnnotation | FreehandAnnotation:
    """Build a shape annotation from a finished drag gesture.

    Text annotations need their content and are built by the caller.
    """
    if kind == "arrow":
        return ArrowAnnotation(start=start, end=end, color=color, font_size=font_size)
    if kind == "circle":
        return CircleAnnotation(start=start, end=end, color=color, font_size=font_size)
    if kind == "rect":
        return RectAnnotation(start=start, end=end, color=color, font_size=font_size)
    if kind == "freehand":
        return FreehandAnnotation(
            start=start, end=end, path=tuple(path), color=color, font_size=font_size
        )
    raise ValueError(f"Not a shape annotation type: {kind}")


def build_measurement(
    kind: str,
    start: Point,
    end: Point,
    pixel_spacing: float | None = 1.0,
) -> RulerMeasurement | RoiMeasurement | AreaMeasurement:
    """Build a measurement, deriving its value from the current pixel spacing."""
    spacing = effective_spacing(pixel_spacing)
    if kind == "ruler":
        return RulerMeasurement(
            start=start, end=end, pixel_spacing=spacing, value=ruler_value(start, end, spacing)
        )
    if kind == "roi":
        return RoiMeasurement(
            start=start, end=end, pixel_spacing=spacing, value=area_value(start, end, spacing)
        )
    if kind == "area":
        return AreaMeasurement(
            start=start, end=end, pixel_spacing=spacing, value=area_value(start, end, spacing)
        )
    raise ValueError(f"Unknown measurement type: {kind}")
