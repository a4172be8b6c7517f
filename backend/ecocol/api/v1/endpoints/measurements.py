"""Measurement computation endpoint."""

from typing import Literal

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ecocol.canvas.geometry import Point
from ecocol.canvas.records import build_measurement
from ecocol.canvas.units import AreaValue, RulerValue

router = APIRouter()


class ComputeRequest(BaseModel):
    """Two canvas points and the pixel spacing to measure with."""

    type: Literal["ruler", "roi", "area"]
    start: Point
    end: Point
    pixel_spacing: float | None = Field(None, description="mm per pixel; 1 when missing")


class ComputeResponse(BaseModel):
    """Computed measurement value."""

    type: str
    pixel_spacing: float
    value: RulerValue | AreaValue


@router.post("/compute", response_model=ComputeResponse)
async def compute_measurement(request: ComputeRequest) -> ComputeResponse:
    """Compute a ruler distance or a rectangle area."""
    measurement = build_measurement(request.type, request.start, request.end, request.pixel_spacing)
    return ComputeResponse(
        type=measurement.type,
        pixel_spacing=measurement.pixel_spacing,
        value=measurement.value,
    )
