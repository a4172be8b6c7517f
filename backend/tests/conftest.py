"""Pytest configuration and shared fixtures for ECO-COL Viewer backend tests.

This module provides common fixtures for testing the canvas toolkit
including recording host collaborators, frame factories and a ready-made
viewer context.
"""

from collections.abc import Callable
from pathlib import Path
from typing import Any

import numpy as np
import pytest
from PIL import Image

from ecocol.canvas.context import ViewerContext
from ecocol.canvas.host import Severity
from ecocol.core.config import CanvasSettings, ExportSettings
from ecocol.services.dicom.frames import FrameSequence, frames_from_arrays


class RecordingNotifier:
    """Notifier that keeps every message for assertions."""

    def __init__(self):
        self.messages: list[tuple[str, Severity]] = []

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        self.messages.append((message, Severity(severity)))

    def severities(self) -> list[Severity]:
        return [severity for _, severity in self.messages]

    def last(self) -> tuple[str, Severity] | None:
        return self.messages[-1] if self.messages else None


class ScriptedPrompt:
    """Text prompt that answers from a queue of canned replies."""

    def __init__(self, *answers: str | None):
        self.answers = list(answers)
        self.requests: list[tuple[str, str | None]] = []

    async def request_text(self, title: str, default: str | None = None) -> str | None:
        self.requests.append((title, default))
        return self.answers.pop(0) if self.answers else None


class MemorySink:
    """Download sink that keeps delivered artifacts in memory."""

    def __init__(self):
        self.artifacts: list[Any] = []

    async def deliver(self, artifact: Any) -> None:
        self.artifacts.append(artifact)


def fixed_text_width(text: str, font_size: int) -> float:
    """Deterministic text measurer: half the font size per character."""
    return len(text) * font_size / 2


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def canvas_settings() -> CanvasSettings:
    return CanvasSettings()


@pytest.fixture
def export_settings(tmp_path: Path) -> ExportSettings:
    return ExportSettings(output_dir=tmp_path / "exports", video_fps=50)


@pytest.fixture
def make_frames() -> Callable[..., FrameSequence]:
    """Factory for synthetic frame sequences with distinct frame contents."""

    def _make(
        count: int = 3,
        width: int = 64,
        height: int = 48,
        pixel_spacing: float | None = None,
        base_id: str = "wado:1.2.3",
    ) -> FrameSequence:
        arrays = [np.full((height, width), 40 * (i + 1), dtype=np.uint8) for i in range(count)]
        return frames_from_arrays(arrays, base_id=base_id, pixel_spacing=pixel_spacing)

    return _make


@pytest.fixture
def make_viewer(
    notifier: RecordingNotifier,
    sink: MemorySink,
    canvas_settings: CanvasSettings,
    export_settings: ExportSettings,
) -> Callable[..., ViewerContext]:
    """Factory for viewer contexts wired to recording collaborators."""

    def _make(prompt: ScriptedPrompt | None = None, persistence: Any = None) -> ViewerContext:
        return ViewerContext(
            notifier=notifier,
            prompt=prompt,
            sink=sink,
            persistence=persistence,
            canvas_settings=canvas_settings,
            export_settings=export_settings,
            measure_text=fixed_text_width,
            width=64,
            height=48,
        )

    return _make


@pytest.fixture
def viewer(make_viewer: Callable[..., ViewerContext]) -> ViewerContext:
    return make_viewer()


@pytest.fixture
def tmp_blob_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for annotation blobs."""
    blob_dir = tmp_path / "blobs"
    blob_dir.mkdir()
    return blob_dir


@pytest.fixture
def blank_image() -> Image.Image:
    return Image.new("RGB", (64, 48), "black")


@pytest.fixture
def scripted_prompt() -> type[ScriptedPrompt]:
    """The scripted prompt class, to build prompts with canned answers."""
    return ScriptedPrompt
