"""
Export endpoints for ECO-COL Viewer.

Builds the PDF radiology report from study metadata, measurements and an
optional snapshot of the canvas.
"""

import asyncio
import base64
import binascii
from io import BytesIO

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response
from PIL import Image, UnidentifiedImageError
from pydantic import BaseModel, Field

from ecocol.canvas.records import Measurement
from ecocol.core.config import settings
from ecocol.core.logging import audit_logger, get_logger
from ecocol.services.export import StudyMetadata, compose_report_pdf

logger = get_logger(__name__)
router = APIRouter()


class ReportRequest(BaseModel):
    """Report contents."""

    study: StudyMetadata
    measurements: list[Measurement] = Field(default_factory=list)
    image: str | None = Field(None, description="Base64 PNG or JPEG of the canvas")


def _decode_image(data: str) -> Image.Image:
    try:
        image = Image.open(BytesIO(base64.b64decode(data, validate=True)))
        image.load()
    except (binascii.Error, UnidentifiedImageError, OSError) as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Invalid report image: {e}",
        )
    return image


@router.post("/report")
async def export_report(request: ReportRequest) -> Response:
    """Render the radiology report as a PDF download."""
    image = _decode_image(request.image) if request.image else None

    pdf = await asyncio.to_thread(
        compose_report_pdf, request.study, request.measurements, image, settings.export
    )
    filename = f"{request.study.study_id or 'report'}.pdf"

    audit_logger.log_data_export(
        export_type="report",
        resource_ids=[request.study.study_id or "report"],
        format="PDF",
        size_bytes=len(pdf),
    )
    logger.info("Report exported", measurements=len(request.measurements), size_bytes=len(pdf))

    return Response(
        content=pdf,
        media_type="application/pdf",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
