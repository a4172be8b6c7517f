"""Viewer context.

Owns everything one viewer canvas needs: the surface and its frames, the
annotation and measurement stores, the view transform, the tool state
machine, the export service and the host collaborators. Public operations
never raise to the host; failures are reported through the notifier.
"""

from collections.abc import Awaitable, Callable, Iterator
from contextlib import contextmanager
from typing import Any

from PIL import ImageColor

from ecocol.canvas.fonts import text_width
from ecocol.canvas.geometry import Point
from ecocol.canvas.host import BlobPersistence, DownloadSink, LogNotifier, Notifier, Severity, TextPrompt
from ecocol.canvas.records import TextAnnotation, build_annotation, build_measurement
from ecocol.canvas.render import RenderPipeline, Surface
from ecocol.canvas.store import AnnotationStore, MeasurementStore, TextMeasurer
from ecocol.canvas.tools import Gesture, Tool, ToolStateMachine
from ecocol.canvas.units import effective_spacing
from ecocol.canvas.view import ViewTransform
from ecocol.core.config import CanvasSettings, ExportSettings, settings
from ecocol.core.errors import NoActiveStudyError, NoFramesError, PreconditionError, ToolkitError
from ecocol.core.logging import get_logger
from ecocol.services.dicom.frames import FrameSequence, StudyFrameIndex
from ecocol.services.export import ExportArtifact, ExportHandle, ExportService, StudyMetadata

logger = get_logger(__name__)

TOOL_MESSAGES = {
    Tool.ARROW: "Arrow tool activated",
    Tool.TEXT: "Text tool activated. Click and type.",
    Tool.CIRCLE: "Circle tool activated",
    Tool.RECT: "Rectangle tool activated",
    Tool.FREEHAND: "Freehand drawing activated",
    Tool.RULER: "Ruler tool activated. Click and drag.",
    Tool.ROI: "ROI tool activated. Draw a rectangle.",
    Tool.AREA: "Area tool activated. Draw a rectangle.",
}


class ViewerContext:
    """Application context of a single annotation and measurement canvas."""

    def __init__(
        self,
        notifier: Notifier | None = None,
        prompt: TextPrompt | None = None,
        sink: DownloadSink | None = None,
        persistence: BlobPersistence | None = None,
        canvas_settings: CanvasSettings | None = None,
        export_settings: ExportSettings | None = None,
        measure_text: TextMeasurer = text_width,
        width: int = 512,
        height: int = 512,
    ):
        """Initialize an empty viewer.

        Args:
            notifier: Receives user-facing messages (defaults to the log)
            prompt: Asks the user for annotation text
            sink: Receives finished exports
            persistence: Stores annotation and measurement blobs per study
            canvas_settings: Canvas style and zoom configuration
            export_settings: Export configuration
            measure_text: Text width measurer used for hit-testing labels
            width: Initial canvas width
            height: Initial canvas height

        """
        self.canvas_settings = canvas_settings or settings.canvas
        self.export_settings = export_settings or settings.export
        self.notifier = notifier or LogNotifier()
        self.prompt = prompt
        self.sink = sink
        self.persistence = persistence

        self.surface = Surface(width, height)
        self.annotations = AnnotationStore(on_change=self.redraw, measure_text=measure_text)
        self.measurements = MeasurementStore(on_change=self.redraw)
        self.renderer = RenderPipeline(
            self.surface, self.annotations, self.measurements, self.canvas_settings
        )
        self.view = ViewTransform.from_settings(width, height, self.canvas_settings)
        self.tools = ToolStateMachine(on_commit=self._commit_gesture, on_preview=self._preview)
        self.exporter = ExportService(self.surface, self.renderer, self.export_settings)

        self.pixel_spacing = 1.0
        self.color = self.canvas_settings.default_color
        self.font_size = self.canvas_settings.font_size
        self.study: StudyMetadata | None = None
        self.sequence: FrameSequence | None = None
        # Image ids of every frame shown per study
        self.study_frames = StudyFrameIndex()

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.notifier.notify(message, severity)

    @contextmanager
    def _reporting(self, operation: str) -> Iterator[None]:
        """Turn failures of a public operation into notifications."""
        try:
            yield
        except ToolkitError as e:
            logger.warning("Viewer operation rejected", operation=operation, error=str(e))
            self.notify(str(e), Severity(e.severity))
        except Exception as e:
            logger.error("Viewer operation failed", operation=operation, error=str(e), exc_info=True)
            self.notify(f"{operation} failed: {e}", Severity.ERROR)

    # ------------------------------------------------------------------
    # Frames and study
    # ------------------------------------------------------------------

    def open_study(self, study: StudyMetadata | None) -> None:
        """Attach (or detach, with None) the study the canvas belongs to."""
        self.study = study
        if study is not None and study.study_id and self.sequence is not None:
            self.study_frames.register(study.study_id, [self.sequence])
        logger.info("Active study changed", study_id=study.study_id if study else None)

    def load_frames(self, sequence: FrameSequence) -> None:
        """Display a new frame sequence from its first frame."""
        with self._reporting("Load frames"):
            if not sequence.frames:
                raise NoFramesError()
            self.tools.set_tool(self.tools.active_tool)
            self.sequence = sequence
            self.surface.set_frames(sequence.frames)
            self.view.resize(self.surface.width, self.surface.height)
            self.view.reset()
            self.pixel_spacing = effective_spacing(sequence.pixel_spacing)
            if self.study is not None and self.study.study_id:
                self.study_frames.register(self.study.study_id, [sequence])
            self.redraw()
            logger.info(
                "Frames loaded",
                base_id=sequence.base_id,
                frames=sequence.number_of_frames,
                pixel_spacing=self.pixel_spacing,
            )
            self.notify(f"{sequence.number_of_frames} frame(s) loaded", Severity.SUCCESS)

    def show_frame(self, index: int) -> None:
        with self._reporting("Show frame"):
            if not self.surface.frames:
                raise NoFramesError()
            if self.surface.export_lock.locked():
                raise PreconditionError("Wait for the running export to finish")
            if not 0 <= index < self.surface.frame_count:
                raise PreconditionError(
                    f"Frame {index + 1} out of range (1-{self.surface.frame_count})"
                )
            self.surface.frame_index = index
            self.redraw()

    def set_pixel_spacing(self, spacing: float | None) -> None:
        """Spacing (mm/px) for measurements created from now on."""
        self.pixel_spacing = effective_spacing(spacing)
        logger.debug("Pixel spacing set", pixel_spacing=self.pixel_spacing)

    def redraw(self) -> None:
        self.renderer.render_frame()

    # ------------------------------------------------------------------
    # Tools and style
    # ------------------------------------------------------------------

    def activate_tool(self, tool: Tool | str | None) -> None:
        with self._reporting("Activate tool"):
            selected = Tool(tool) if tool is not None else None
            self.tools.set_tool(selected)
            if selected is not None:
                self.notify(TOOL_MESSAGES[selected], Severity.INFO)

    def set_color(self, color: str) -> None:
        with self._reporting("Set color"):
            ImageColor.getrgb(color)
            self.color = color

    def set_font_size(self, size: int) -> None:
        with self._reporting("Set font size"):
            if size < 1:
                raise PreconditionError("Font size must be positive")
            self.font_size = int(size)

    # ------------------------------------------------------------------
    # Pointer input (screen coordinates)
    # ------------------------------------------------------------------

    def pointer_down(self, point: Point, pan: bool = False) -> bool:
        """Start a gesture, or a pan when ``pan`` is set."""
        if pan:
            self.view.begin_pan(point)
            return True
        return self.tools.pointer_down(self.view.to_canvas(point))

    def pointer_move(self, point: Point) -> bool:
        if self.view.is_panning:
            return self.view.pan_to(point)
        return self.tools.pointer_move(self.view.to_canvas(point))

    async def pointer_up(self, point: Point) -> Any:
        """Finish the gesture and return the committed record, if any."""
        if self.view.is_panning:
            self.view.end_pan()
            return None
        with self._reporting("Commit drawing"):
            return await self.tools.pointer_up(self.view.to_canvas(point))
        return None

    async def double_click(self, point: Point) -> TextAnnotation | None:
        """Edit the text annotation under the pointer."""
        with self._reporting("Edit text"):
            record = self.annotations.find_at(self.view.to_canvas(point))
            if record is None:
                return None
            text = await self._require_prompt().request_text("Edit text", record.text)
            if not text or not text.strip():
                return None
            return self.annotations.edit_text(record.id, text)
        return None

    def wheel(self, point: Point, delta_y: float) -> bool:
        return self.view.zoom_at(point, delta_y)

    async def _commit_gesture(self, gesture: Gesture) -> Any:
        tool = gesture.tool
        if tool is Tool.TEXT:
            text = await self._require_prompt().request_text("Annotation text")
            if not text or not text.strip():
                return None
            record = self.annotations.add(
                TextAnnotation(
                    position=gesture.anchor,
                    text=text,
                    color=self.color,
                    font_size=self.font_size,
                )
            )
        elif tool.is_measurement:
            record = self.measurements.add(
                build_measurement(tool.value, gesture.anchor, gesture.end, self.pixel_spacing)
            )
            logger.info("Measurement added", record_id=record.id, type=record.type)
            return record
        else:
            record = self.annotations.add(
                build_annotation(
                    tool.value,
                    gesture.anchor,
                    gesture.end,
                    color=self.color,
                    font_size=self.font_size,
                    path=gesture.path,
                )
            )
        logger.info("Annotation added", record_id=record.id, type=record.type)
        return record

    def _preview(self, gesture: Gesture | None) -> None:
        self.renderer.show_preview(gesture, self.color)

    def _require_prompt(self) -> TextPrompt:
        if self.prompt is None:
            raise PreconditionError("Text input is not available")
        return self.prompt

    # ------------------------------------------------------------------
    # Store management
    # ------------------------------------------------------------------

    def clear_annotations(self) -> None:
        self.annotations.clear()
        self.redraw()
        self.notify("Annotations cleared", Severity.SUCCESS)

    def clear_measurements(self) -> None:
        self.measurements.clear()
        self.redraw()
        self.notify("Measurements cleared", Severity.SUCCESS)

    def delete_annotation(self, record_id: int) -> bool:
        return self.annotations.delete_by_id(record_id)

    def delete_measurement(self, record_id: int) -> bool:
        return self.measurements.delete_by_id(record_id)

    async def save_annotations(self) -> str | None:
        """Serialize the annotations and persist them for the active study."""
        with self._reporting("Save annotations"):
            return await self._save(self.annotations, "annotations", "Annotations saved")
        return None

    async def load_annotations(self, blob: str | None = None) -> bool:
        """Replace the annotations with ``blob`` or with the study's stored blob."""
        with self._reporting("Load annotations"):
            return await self._load(self.annotations, "annotations", blob)
        return False

    async def save_measurements(self) -> str | None:
        with self._reporting("Save measurements"):
            return await self._save(self.measurements, "measurements", "Measurements saved")
        return None

    async def load_measurements(self, blob: str | None = None) -> bool:
        with self._reporting("Load measurements"):
            return await self._load(self.measurements, "measurements", blob)
        return False

    async def _save(self, store: AnnotationStore | MeasurementStore, kind: str, message: str) -> str:
        if self.study is None or not self.study.study_id:
            raise NoActiveStudyError(f"save {kind}")
        blob = store.serialize()
        if self.persistence is not None:
            await self.persistence.save(self.study.study_id, kind, blob)
        self.notify(message, Severity.SUCCESS)
        return blob

    async def _load(
        self, store: AnnotationStore | MeasurementStore, kind: str, blob: str | None
    ) -> bool:
        if blob is None:
            if self.study is None or not self.study.study_id:
                raise NoActiveStudyError(f"load {kind}")
            if self.persistence is None:
                raise PreconditionError(f"No storage configured for {kind}")
            blob = await self.persistence.load(self.study.study_id, kind)
            if blob is None:
                self.notify(f"No saved {kind} for this study", Severity.INFO)
                return False
        store.deserialize(blob)
        return True

    # ------------------------------------------------------------------
    # View
    # ------------------------------------------------------------------

    @property
    def zoom_level(self) -> int:
        return self.view.zoom_level

    def zoom_in(self) -> bool:
        return self.view.zoom_in()

    def zoom_out(self) -> bool:
        return self.view.zoom_out()

    def fit_to_window(self, container_width: float, container_height: float) -> None:
        self.view.fit_to_window(container_width, container_height)

    def reset_view(self) -> None:
        self.view.reset()
        self.notify("View reset", Severity.SUCCESS)

    # ------------------------------------------------------------------
    # Exports
    # ------------------------------------------------------------------

    def _export_stem(self) -> str:
        if self.study is not None and self.study.study_id:
            return self.study.study_id
        return "study"

    def export_current_frame(self, format: str = "png", quality: float | None = None) -> ExportHandle:
        """Export the canvas as displayed, overlays included."""
        stem = self._export_stem()
        return self._start_export(
            "Export frame",
            lambda: self.exporter.export_frame_to_raster(stem, format, quality, number_frame=True),
            success=f"Frame exported as {format.upper()}",
        )

    def export_all_frames(self, include_overlays: bool = True) -> ExportHandle:
        stem = self._export_stem()
        self.notify("Exporting all frames...", Severity.INFO)
        return self._start_export(
            "Export frames",
            lambda: self.exporter.export_all_frames(stem, include_overlays),
            success="Frames exported",
        )

    def export_video(self, fps: int | None = None) -> ExportHandle:
        stem = self._export_stem()
        self.notify("Exporting video...", Severity.INFO)
        return self._start_export(
            "Export video",
            lambda: self.exporter.export_video(stem, fps),
            success="Video exported",
        )

    def export_report(self) -> ExportHandle:
        self.notify("Exporting PDF report...", Severity.INFO)
        study = self.study
        return self._start_export(
            "Export report",
            lambda: self.exporter.export_report(study, self.measurements.records),
            success="Report exported",
        )

    def _start_export(
        self,
        operation: str,
        job: Callable[[], Awaitable[ExportArtifact]],
        success: str,
    ) -> ExportHandle:
        return ExportHandle.start(operation, self._run_export(operation, job, success))

    async def _run_export(
        self,
        operation: str,
        job: Callable[[], Awaitable[ExportArtifact]],
        success: str,
    ) -> ExportArtifact | None:
        with self._reporting(operation):
            artifact = await job()
            if self.sink is not None:
                await self.sink.deliver(artifact)
            self.notify(success, Severity.SUCCESS)
            return artifact
        return None
