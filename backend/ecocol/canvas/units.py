"""Measurement unit conversion.

Pure functions of the two gesture points and the pixel spacing (mm per
pixel). They hold no state, so a measurement's value is fixed by the
spacing passed in at creation time.
"""

from pydantic import BaseModel

from ecocol.canvas.geometry import Point, distance


class RulerValue(BaseModel):
    """Derived values of a ruler (distance) measurement."""

    pixels: float
    mm: float
    cm: float


class AreaValue(BaseModel):
    """Derived values of a rectangular ROI/area measurement."""

    width_px: float
    height_px: float
    area_px2: float
    area_mm2: float
    area_cm2: float


def effective_spacing(pixel_spacing: float | None) -> float:
    """Pixel spacing to use; unknown or non-positive spacing counts as 1 mm/px."""
    if not pixel_spacing or pixel_spacing <= 0:
        return 1.0
    return float(pixel_spacing)


def ruler_value(start: Point, end: Point, pixel_spacing: float | None = 1.0) -> RulerValue:
    """Distance between ``start`` and ``end`` in px, mm and cm."""
    spacing = effective_spacing(pixel_spacing)
    pixels = distance(start, end)
    mm = pixels * spacing
    return RulerValue(pixels=pixels, mm=mm, cm=mm / 10)


def area_value(start: Point, end: Point, pixel_spacing: float | None = 1.0) -> AreaValue:
    """Size of the axis-aligned rectangle spanned by ``start`` and ``end``."""
    spacing = effective_spacing(pixel_spacing)
    width = abs(end.x - start.x)
    height = abs(end.y - start.y)
    area_px2 = width * height
    area_mm2 = area_px2 * spacing * spacing
    return AreaValue(
        width_px=width,
        height_px=height,
        area_px2=area_px2,
        area_mm2=area_mm2,
        area_cm2=area_mm2 / 100,
    )
