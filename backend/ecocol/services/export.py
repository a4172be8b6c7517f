"""Export Service for ECO-COL Viewer.

Produces downloadable artifacts from the viewer canvas:
- Single frame as PNG or JPEG
- Every frame of the sequence as a ZIP of PNGs
- Cine loop as a video file (OpenCV)
- Radiology report as a multi-page PDF (Pillow)

Exports that walk the frame sequence replace the displayed frame while they
run. They hold the surface's export lock, iterate over a snapshot of the
frame list, and always restore the frame that was on screen before.
"""

import asyncio
import io
import tempfile
import zipfile
from collections.abc import Callable, Coroutine, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, AsyncIterator

import numpy as np
from PIL import Image, ImageDraw, ImageOps
from pydantic import BaseModel

from ecocol.canvas.fonts import get_font
from ecocol.canvas.records import RulerMeasurement
from ecocol.canvas.render import RenderPipeline, Surface
from ecocol.core.config import ExportSettings
from ecocol.core.errors import (
    InsufficientFramesError,
    MissingEncoderError,
    NoActiveStudyError,
    NoFramesError,
    PreconditionError,
)
from ecocol.core.logging import get_logger

logger = get_logger(__name__)

VIDEO_MEDIA_TYPES = {
    "avi": "video/x-msvideo",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "mkv": "video/x-matroska",
}


# ============================================================================
# Data Models
# ============================================================================


@dataclass
class ExportArtifact:
    """An encoded file ready to be handed to the download sink."""

    filename: str
    media_type: str
    data: bytes

    @property
    def size_bytes(self) -> int:
        return len(self.data)


class StudyMetadata(BaseModel):
    """Patient and study fields printed on the report."""

    study_id: str | None = None
    patient_name: str | None = None
    dni: str | None = None
    age: str | None = None
    gender: str | None = None
    modality: str = "US"
    hospital: str | None = None
    observations: str | None = None


# ============================================================================
# Helpers
# ============================================================================


def encode_image(image: Image.Image, format: str = "png", quality: float = 0.95) -> bytes:
    """Encode a bitmap as PNG or JPEG (``quality`` on a 0-1 scale)."""
    buffer = io.BytesIO()
    if format == "png":
        image.save(buffer, format="PNG")
    else:
        jpeg_quality = max(1, min(100, round(quality * 100)))
        image.convert("RGB").save(buffer, format="JPEG", quality=jpeg_quality)
    return buffer.getvalue()


def measurement_rows(measurements: Iterable[Any]) -> list[tuple[str, str]]:
    """Report table rows: ``(heading, detail)`` per measurement.

    Ruler rows give mm and cm; ROI and area rows give mm² and cm².
    """
    rows = []
    for index, m in enumerate(measurements, start=1):
        heading = f"{index}. {m.type.upper()}:"
        if isinstance(m, RulerMeasurement):
            detail = f"Distance: {m.value.mm:.2f} mm ({m.value.cm:.2f} cm)"
        else:
            detail = f"Area: {m.value.area_mm2:.2f} mm² ({m.value.area_cm2:.2f} cm²)"
        rows.append((heading, detail))
    return rows


def wrap_text(text: str, max_width: float, measure: Callable[[str], float]) -> list[str]:
    """Greedy word wrap so no line is wider than ``max_width``.

    Paragraph breaks are kept; words wider than a full line are split.
    """
    lines: list[str] = []
    for paragraph in text.splitlines() or [""]:
        words = paragraph.split()
        if not words:
            lines.append("")
            continue
        current = ""
        for word in words:
            candidate = f"{current} {word}" if current else word
            if measure(candidate) <= max_width:
                current = candidate
                continue
            if current:
                lines.append(current)
            while len(word) > 1 and measure(word) > max_width:
                cut = len(word) - 1
                while cut > 1 and measure(word[:cut]) > max_width:
                    cut -= 1
                lines.append(word[:cut])
                word = word[cut:]
            current = word
        lines.append(current)
    return lines


@asynccontextmanager
async def displayed_frame(surface: Surface, renderer: RenderPipeline) -> AsyncIterator[int]:
    """Restore the on-screen frame when the block exits, however it exits.

    The viewer refuses frame changes while the export lock is held, so the
    frame restored here is the one the user last selected.
    """
    frames = surface.frames
    index = surface.frame_index
    try:
        yield index
    finally:
        if surface.frames is frames:
            surface.frame_index = index
        renderer.render_frame()
        logger.debug("Displayed frame restored", frame_index=surface.frame_index)


# ============================================================================
# Report
# ============================================================================


class ReportComposer:
    """Lays out the radiology report on A4 pages (coordinates in mm)."""

    PAGE_MM = (210.0, 297.0)
    MARGIN_MM = 20.0
    TEXT_WIDTH_MM = 170.0
    BODY_TOP_MM = 30.0
    BODY_BOTTOM_MM = 275.0
    FOOTER_MM = 285.0
    LINE_MM = 5.0

    def __init__(self, dpi: int, title: str, product_name: str):
        self.dpi = dpi
        self.title = title
        self.product_name = product_name
        self.pages: list[Image.Image] = []

    @classmethod
    def from_settings(cls, export_settings: ExportSettings) -> "ReportComposer":
        return cls(
            dpi=export_settings.report_dpi,
            title=export_settings.report_title,
            product_name=export_settings.product_name,
        )

    def px(self, mm: float) -> int:
        return round(mm * self.dpi / 25.4)

    def font_px(self, pt: float) -> int:
        return max(1, round(pt * self.dpi / 72))

    def new_page(self) -> ImageDraw.ImageDraw:
        page = Image.new("RGB", (self.px(self.PAGE_MM[0]), self.px(self.PAGE_MM[1])), "white")
        self.pages.append(page)
        return ImageDraw.Draw(page)

    def text(self, draw: ImageDraw.ImageDraw, x_mm: float, y_mm: float, text: str, pt: float) -> None:
        """Draw ``text`` with its baseline at ``(x_mm, y_mm)``."""
        size = self.font_px(pt)
        draw.text((self.px(x_mm), self.px(y_mm) - size), text, fill="black", font=get_font(size))

    def compose(
        self,
        study: StudyMetadata,
        measurements: Sequence[Any],
        image: Image.Image | None = None,
        generated_at: datetime | None = None,
    ) -> bytes:
        """Render every page and return the PDF bytes."""
        self.pages = []
        generated_at = generated_at or datetime.now()
        left = self.MARGIN_MM

        # Header, patient and study
        draw = self.new_page()
        self.text(draw, left, 20, self.title, 20)
        self.text(draw, left, 30, f"Date: {generated_at:%Y-%m-%d}", 10)
        draw.line(
            [(self.px(left), self.px(35)), (self.px(left + self.TEXT_WIDTH_MM), self.px(35))],
            fill="black",
            width=1,
        )
        self.text(draw, left, 45, "Patient Information", 14)
        self.text(draw, left, 55, f"Name: {study.patient_name or 'N/A'}", 10)
        self.text(draw, left, 62, f"DNI: {study.dni or 'N/A'}", 10)
        self.text(draw, left, 69, f"Age: {study.age or 'N/A'}", 10)
        self.text(draw, left, 76, f"Gender: {study.gender or 'N/A'}", 10)
        self.text(draw, left, 90, "Study Information", 14)
        self.text(draw, left, 100, f"Study ID: {study.study_id or 'N/A'}", 10)
        self.text(draw, left, 107, f"Modality: {study.modality or 'US'}", 10)
        self.text(draw, left, 114, f"Hospital: {study.hospital or 'N/A'}", 10)

        if image is not None:
            fitted = ImageOps.contain(image.convert("RGB"), (self.px(170), self.px(100)))
            self.pages[-1].paste(fitted, (self.px(left), self.px(125)))

        rows = measurement_rows(measurements)
        if rows:
            draw = self.new_page()
            self.text(draw, left, 20, "Measurements", 14)
            y = self.BODY_TOP_MM
            for heading, detail in rows:
                if y + 7 > self.BODY_BOTTOM_MM:
                    draw = self.new_page()
                    self.text(draw, left, 20, "Measurements (cont.)", 14)
                    y = self.BODY_TOP_MM
                self.text(draw, left, y, heading, 10)
                y += 7
                self.text(draw, left + 5, y, detail, 10)
                y += 10

        if study.observations:
            font = get_font(self.font_px(10))
            lines = wrap_text(
                study.observations,
                self.px(self.TEXT_WIDTH_MM),
                lambda candidate: float(font.getlength(candidate)),
            )
            draw = self.new_page()
            self.text(draw, left, 20, "Radiological Observations", 14)
            y = self.BODY_TOP_MM
            for line in lines:
                if y > self.BODY_BOTTOM_MM:
                    draw = self.new_page()
                    self.text(draw, left, 20, "Radiological Observations (cont.)", 14)
                    y = self.BODY_TOP_MM
                self.text(draw, left, y, line, 10)
                y += self.LINE_MM

        page_count = len(self.pages)
        footer_font = get_font(self.font_px(8))
        for number, page in enumerate(self.pages, start=1):
            draw = ImageDraw.Draw(page)
            self.text(draw, left, self.FOOTER_MM, f"Page {number} of {page_count}", 8)
            product_width_mm = footer_font.getlength(self.product_name) * 25.4 / self.dpi
            self.text(
                draw,
                left + self.TEXT_WIDTH_MM - product_width_mm,
                self.FOOTER_MM,
                self.product_name,
                8,
            )

        buffer = io.BytesIO()
        self.pages[0].save(
            buffer,
            format="PDF",
            save_all=True,
            append_images=self.pages[1:],
            resolution=float(self.dpi),
        )
        return buffer.getvalue()


def compose_report_pdf(
    study: StudyMetadata,
    measurements: Sequence[Any],
    image: Image.Image | None,
    export_settings: ExportSettings,
) -> bytes:
    """Compose the report PDF with the configured layout."""
    return ReportComposer.from_settings(export_settings).compose(study, measurements, image)


# ============================================================================
# Export Service
# ============================================================================


class ExportService:
    """Encodes the canvas, the frame sequence and the report."""

    def __init__(
        self,
        surface: Surface,
        renderer: RenderPipeline,
        export_settings: ExportSettings,
    ):
        """Initialize export service.

        Args:
            surface: Canvas whose bitmap and frames are exported
            renderer: Pipeline used to redraw frames with their overlays
            export_settings: Export configuration

        """
        self.surface = surface
        self.renderer = renderer
        self.settings = export_settings

    async def export_frame_to_raster(
        self,
        filename_stem: str,
        format: str = "png",
        quality: float | None = None,
        number_frame: bool = False,
    ) -> ExportArtifact:
        """Encode the canvas bitmap exactly as it is displayed.

        Waits for any export walking the frames, so the bitmap (and, with
        ``number_frame``, the ``_<n>`` filename suffix) is the user's frame.
        """
        fmt = format.lower()
        if fmt == "jpg":
            fmt = "jpeg"
        if fmt not in ("png", "jpeg"):
            raise PreconditionError(f"Unsupported image format: {format}")

        async with self.surface.export_lock:
            image = self.surface.snapshot()
            if number_frame:
                filename_stem = f"{filename_stem}_{self.surface.frame_index + 1}"

        data = encode_image(
            image,
            fmt,
            quality if quality is not None else self.settings.jpeg_quality,
        )
        extension = "png" if fmt == "png" else "jpg"
        return ExportArtifact(
            filename=f"{filename_stem}.{extension}",
            media_type=f"image/{fmt}",
            data=data,
        )

    async def export_all_frames(
        self,
        archive_name: str,
        include_overlays: bool = True,
    ) -> ExportArtifact:
        """Archive every frame as ``<archive_name>/frame_0001.png`` ... in a ZIP."""
        async with self.surface.export_lock:
            frames_list = self.surface.frames
            snapshot = tuple(frames_list)
            if not snapshot:
                raise NoFramesError()

            buffer = io.BytesIO()
            async with displayed_frame(self.surface, self.renderer):
                with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
                    for index, frame in enumerate(snapshot):
                        image = self._show(frames_list, index, frame, include_overlays)
                        zf.writestr(
                            f"{archive_name}/frame_{index + 1:04d}.png",
                            encode_image(image, "png"),
                        )
                        # Let the event loop run (and deliver cancellation)
                        await asyncio.sleep(0)

        logger.info("Frames archived", archive=archive_name, frames=len(snapshot))
        return ExportArtifact(
            filename=f"{archive_name}_frames.zip",
            media_type="application/zip",
            data=buffer.getvalue(),
        )

    async def export_video(self, name: str, fps: int | None = None) -> ExportArtifact:
        """Play the sequence at ``fps`` into an OpenCV video writer.

        Raises:
            InsufficientFramesError: With fewer than two frames loaded
            MissingEncoderError: If OpenCV is missing or cannot open the codec

        """
        fps = fps or self.settings.video_fps
        if fps <= 0:
            raise PreconditionError("Frame rate must be positive")
        if self.surface.frame_count < 2:
            raise InsufficientFramesError(self.surface.frame_count)

        try:
            import cv2
        except ImportError as e:
            raise MissingEncoderError("Video", "opencv-python-headless") from e

        codec = self.settings.video_codec
        extension = self.settings.video_extension.lstrip(".").lower()
        filename = f"{name}_cine.{extension}"

        async with self.surface.export_lock:
            frames_list = self.surface.frames
            snapshot = tuple(frames_list)
            if len(snapshot) < 2:
                raise InsufficientFramesError(len(snapshot))
            width, height = snapshot[0].size

            with tempfile.TemporaryDirectory() as tmp_dir:
                path = Path(tmp_dir) / filename
                writer = cv2.VideoWriter(
                    str(path), cv2.VideoWriter_fourcc(*codec), float(fps), (width, height)
                )
                if not writer.isOpened():
                    writer.release()
                    raise MissingEncoderError(f"{codec} video", "opencv-python-headless")
                try:
                    async with displayed_frame(self.surface, self.renderer):
                        for index, frame in enumerate(snapshot):
                            image = self._show(frames_list, index, frame, True)
                            if image.size != (width, height):
                                image = image.resize((width, height))
                            bgr = np.asarray(image.convert("RGB"))[:, :, ::-1]
                            writer.write(np.ascontiguousarray(bgr))
                            await asyncio.sleep(1 / fps)
                finally:
                    writer.release()
                data = path.read_bytes()

        logger.info("Cine exported", filename=filename, frames=len(snapshot), fps=fps)
        return ExportArtifact(
            filename=filename,
            media_type=VIDEO_MEDIA_TYPES.get(extension, "application/octet-stream"),
            data=data,
        )

    async def export_report(
        self,
        study: StudyMetadata | None,
        measurements: Sequence[Any],
    ) -> ExportArtifact:
        """Compose the PDF report from the study, the canvas and the measurements."""
        if study is None:
            raise NoActiveStudyError("export report")

        image = self.surface.snapshot() if self.surface.frames else None
        data = await asyncio.to_thread(
            compose_report_pdf, study, list(measurements), image, self.settings
        )
        return ExportArtifact(
            filename=f"{study.study_id or 'report'}.pdf",
            media_type="application/pdf",
            data=data,
        )

    def _show(
        self,
        frames_list: list[Image.Image],
        index: int,
        frame: Image.Image,
        include_overlays: bool,
    ) -> Image.Image:
        """Put ``frame`` on the canvas and return what should be encoded."""
        if self.surface.frames is frames_list:
            self.surface.frame_index = index
        image = self.renderer.render_frame(frame, include_preview=False)
        return image if include_overlays else frame


class ExportHandle:
    """Awaitable, cancellable handle on an export running as a task."""

    def __init__(self, name: str, task: asyncio.Future):
        self.name = name
        self._task = task

    @classmethod
    def start(cls, name: str, coro: Coroutine[Any, Any, ExportArtifact | None]) -> "ExportHandle":
        """Schedule ``coro`` on the running event loop."""
        return cls(name, asyncio.create_task(coro))

    def cancel(self) -> bool:
        return self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    def cancelled(self) -> bool:
        return self._task.cancelled()

    def result(self) -> ExportArtifact | None:
        return self._task.result()

    def __await__(self):
        return self._task.__await__()
