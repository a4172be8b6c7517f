"""
Tests for the export service.

These tests verify:
1. Raster, ZIP, video and PDF artifacts are well formed
2. Video export rejects sequences with fewer than two frames
3. The displayed frame is restored after success, failure and cancellation
4. Report layout paginates measurements and observations
"""

import asyncio
import io
import zipfile
from unittest.mock import patch

import pytest
from PIL import Image

from ecocol.canvas.geometry import Point
from ecocol.canvas.host import Severity
from ecocol.canvas.records import build_measurement
from ecocol.canvas.tools import Tool
from ecocol.core.config import ExportSettings
from ecocol.core.errors import InsufficientFramesError, NoActiveStudyError, NoFramesError
from ecocol.services.export import (
    ReportComposer,
    StudyMetadata,
    measurement_rows,
    wrap_text,
)


def p(x: float, y: float) -> Point:
    return Point(x=x, y=y)


@pytest.fixture
def loaded_viewer(viewer, make_frames):
    viewer.load_frames(make_frames(count=3))
    viewer.open_study(StudyMetadata(study_id="US-0042", patient_name="DOE^JANE"))
    return viewer


class TestRasterExport:
    async def test_png_matches_displayed_canvas(self, loaded_viewer, sink):
        artifact = await loaded_viewer.export_current_frame("png")
        assert artifact.filename == "US-0042_1.png"
        assert artifact.media_type == "image/png"
        decoded = Image.open(io.BytesIO(artifact.data))
        assert decoded.size == (64, 48)
        assert decoded.convert("RGB").getpixel((1, 1)) == (40, 40, 40)
        assert sink.artifacts == [artifact]

    async def test_jpeg(self, loaded_viewer):
        loaded_viewer.show_frame(1)
        artifact = await loaded_viewer.export_current_frame("jpeg", 0.8)
        assert artifact.filename == "US-0042_2.jpg"
        assert artifact.data[:2] == b"\xff\xd8"

    async def test_unsupported_format_warns(self, loaded_viewer, notifier, sink):
        assert await loaded_viewer.export_current_frame("bmp") is None
        assert notifier.last()[1] is Severity.WARNING
        assert sink.artifacts == []

    async def test_waits_for_running_archive(self, viewer, make_frames):
        viewer.load_frames(make_frames(count=4))
        viewer.open_study(StudyMetadata(study_id="US-0042"))

        archive = viewer.export_all_frames()
        for _ in range(3):
            await asyncio.sleep(0)
        assert viewer.surface.export_lock.locked()

        artifact = await viewer.export_current_frame("png")
        assert artifact.filename == "US-0042_1.png"
        decoded = Image.open(io.BytesIO(artifact.data))
        assert decoded.convert("RGB").getpixel((1, 1)) == (40, 40, 40)
        assert (await archive) is not None


class TestFramesArchive:
    async def test_zip_contains_every_frame(self, loaded_viewer):
        artifact = await loaded_viewer.export_all_frames()
        assert artifact.filename == "US-0042_frames.zip"
        with zipfile.ZipFile(io.BytesIO(artifact.data)) as zf:
            assert zf.namelist() == [
                "US-0042/frame_0001.png",
                "US-0042/frame_0002.png",
                "US-0042/frame_0003.png",
            ]
            third = Image.open(io.BytesIO(zf.read("US-0042/frame_0003.png")))
            assert third.convert("RGB").getpixel((1, 1)) == (120, 120, 120)

    async def test_frames_include_overlays(self, loaded_viewer):
        loaded_viewer.set_color("#0000ff")
        loaded_viewer.activate_tool(Tool.ARROW)
        loaded_viewer.pointer_down(p(5, 20))
        await loaded_viewer.pointer_up(p(60, 20))

        artifact = await loaded_viewer.export_all_frames()
        with zipfile.ZipFile(io.BytesIO(artifact.data)) as zf:
            second = Image.open(io.BytesIO(zf.read("US-0042/frame_0002.png")))
            assert second.convert("RGB").getpixel((30, 20)) == (0, 0, 255)

    async def test_gesture_preview_is_not_archived(self, loaded_viewer):
        loaded_viewer.activate_tool(Tool.RULER)
        loaded_viewer.pointer_down(p(2, 20))
        loaded_viewer.pointer_move(p(60, 20))
        assert loaded_viewer.surface.image.getpixel((3, 20)) == (255, 255, 0)

        artifact = await loaded_viewer.export_all_frames()
        with zipfile.ZipFile(io.BytesIO(artifact.data)) as zf:
            second = Image.open(io.BytesIO(zf.read("US-0042/frame_0002.png")))
            assert second.convert("RGB").getpixel((3, 20)) == (80, 80, 80)

        # Still shown on screen once the export is done
        assert loaded_viewer.surface.image.getpixel((3, 20)) == (255, 255, 0)

    async def test_displayed_frame_restored(self, loaded_viewer):
        loaded_viewer.show_frame(1)
        await loaded_viewer.export_all_frames()
        assert loaded_viewer.surface.frame_index == 1
        assert loaded_viewer.surface.image.getpixel((1, 1)) == (80, 80, 80)

    async def test_displayed_frame_restored_after_failure(self, loaded_viewer, notifier, sink):
        loaded_viewer.show_frame(1)
        with patch(
            "ecocol.services.export.encode_image",
            side_effect=[b"png", OSError("disk full")],
        ):
            assert await loaded_viewer.export_all_frames() is None

        assert loaded_viewer.surface.frame_index == 1
        assert loaded_viewer.surface.image.getpixel((1, 1)) == (80, 80, 80)
        assert notifier.last()[1] is Severity.ERROR
        assert sink.artifacts == []
        assert not loaded_viewer.surface.export_lock.locked()

    async def test_no_frames(self, viewer):
        with pytest.raises(NoFramesError):
            await viewer.exporter.export_all_frames("empty")


class TestVideoExport:
    async def test_single_frame_is_rejected(self, viewer, make_frames, notifier, sink):
        viewer.load_frames(make_frames(count=1))
        assert await viewer.export_video() is None
        assert notifier.last()[1] is Severity.WARNING
        assert sink.artifacts == []

    async def test_insufficient_frames_error(self, viewer, make_frames):
        viewer.load_frames(make_frames(count=1))
        with pytest.raises(InsufficientFramesError) as exc_info:
            await viewer.exporter.export_video("cine", fps=10)
        assert exc_info.value.frame_count == 1

    async def test_video_written(self, loaded_viewer, sink):
        artifact = await loaded_viewer.export_video(fps=50)
        assert artifact.filename == "US-0042_cine.avi"
        assert artifact.media_type == "video/x-msvideo"
        assert artifact.data[:4] == b"RIFF"
        assert loaded_viewer.surface.frame_index == 0
        assert sink.artifacts == [artifact]

    async def test_cancellation_restores_displayed_frame(self, loaded_viewer, sink):
        loaded_viewer.show_frame(2)
        handle = loaded_viewer.export_video(fps=1)
        await asyncio.sleep(0.05)
        assert loaded_viewer.surface.export_lock.locked()

        handle.cancel()
        with pytest.raises(asyncio.CancelledError):
            await handle

        assert handle.cancelled()
        assert loaded_viewer.surface.frame_index == 2
        assert loaded_viewer.surface.image.getpixel((1, 1)) == (120, 120, 120)
        assert not loaded_viewer.surface.export_lock.locked()
        assert sink.artifacts == []

    async def test_frame_change_refused_while_exporting(self, loaded_viewer, notifier):
        loaded_viewer.show_frame(2)
        handle = loaded_viewer.export_video(fps=1)
        await asyncio.sleep(0.05)

        loaded_viewer.show_frame(0)
        assert notifier.last() == ("Wait for the running export to finish", Severity.WARNING)

        handle.cancel()
        with pytest.raises(asyncio.CancelledError):
            await handle
        assert loaded_viewer.surface.frame_index == 2

        loaded_viewer.show_frame(0)
        assert loaded_viewer.surface.frame_index == 0


class TestReportExport:
    async def test_requires_active_study(self, viewer):
        with pytest.raises(NoActiveStudyError):
            await viewer.exporter.export_report(None, [])

    async def test_report_without_study_warns(self, viewer, notifier):
        assert await viewer.export_report() is None
        assert notifier.last()[1] is Severity.WARNING

    async def test_report_pdf(self, loaded_viewer):
        loaded_viewer.activate_tool(Tool.RULER)
        loaded_viewer.pointer_down(p(0, 0))
        await loaded_viewer.pointer_up(p(30, 40))
        artifact = await loaded_viewer.export_report()
        assert artifact.filename == "US-0042.pdf"
        assert artifact.media_type == "application/pdf"
        assert artifact.data.startswith(b"%PDF")

    async def test_report_named_after_missing_study_id(self, viewer):
        artifact = await viewer.exporter.export_report(StudyMetadata(), [])
        assert artifact.filename == "report.pdf"


class TestReportLayout:
    def test_measurement_rows(self):
        rows = measurement_rows(
            [
                build_measurement("ruler", p(0, 0), p(3, 4), 2.0),
                build_measurement("roi", p(0, 0), p(10, 20), 1.0),
            ]
        )
        assert rows == [
            ("1. RULER:", "Distance: 10.00 mm (1.00 cm)"),
            ("2. ROI:", "Area: 200.00 mm² (2.00 cm²)"),
        ]

    def test_wrap_text(self):
        lines = wrap_text("one two three four", 9, len)
        assert lines == ["one two", "three", "four"]
        assert all(len(line) <= 9 for line in lines)

    def test_wrap_text_splits_long_words_and_keeps_paragraphs(self):
        assert wrap_text("abcdefghij\n\nxy", 4, len) == ["abcd", "efgh", "ij", "", "xy"]

    def test_page_count(self):
        composer = ReportComposer.from_settings(ExportSettings(report_dpi=50))
        composer.compose(StudyMetadata(study_id="S1"), [])
        assert len(composer.pages) == 1

        measurements = [build_measurement("ruler", p(0, 0), p(i, i)) for i in range(1, 4)]
        composer.compose(StudyMetadata(study_id="S1", observations="Normal."), measurements)
        assert len(composer.pages) == 3

    def test_long_observations_paginate(self):
        composer = ReportComposer.from_settings(ExportSettings(report_dpi=50))
        observations = "\n".join(f"Finding {i}: unremarkable." for i in range(120))
        pdf = composer.compose(StudyMetadata(observations=observations), [])
        assert len(composer.pages) >= 3
        assert pdf.startswith(b"%PDF")
