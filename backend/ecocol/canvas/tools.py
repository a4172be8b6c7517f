"""Drawing tool state machine.

One machine per canvas interprets pointer gestures for whichever tool is
active, annotation or measurement alike. What a finished gesture turns
into is decided by the commit callback; what an unfinished one looks like
is decided by the preview callback.

States::

    idle --set_tool(t)--> armed(t) --down--> drawing(t) --up--> armed(t)
      ^                                                            |
      +---------------------- set_tool(None) ----------------------+
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ecocol.canvas.geometry import Point
from ecocol.core.logging import get_logger

logger = get_logger(__name__)


class Tool(str, Enum):
    """Drawing tools."""

    ARROW = "arrow"
    TEXT = "text"
    CIRCLE = "circle"
    RECT = "rect"
    FREEHAND = "freehand"
    RULER = "ruler"
    ROI = "roi"
    AREA = "area"

    @property
    def is_measurement(self) -> bool:
        return self in (Tool.RULER, Tool.ROI, Tool.AREA)


class Phase(str, Enum):
    """Tool state machine phases."""

    IDLE = "idle"
    ARMED = "armed"
    DRAWING = "drawing"


@dataclass(frozen=True)
class Gesture:
    """A pointer-down to pointer-move/up interaction under one tool."""

    tool: Tool
    anchor: Point
    end: Point
    path: tuple[Point, ...] = ()


@dataclass(frozen=True)
class ToolState:
    """Snapshot of the machine."""

    phase: Phase = Phase.IDLE
    tool: Tool | None = None
    anchor: Point | None = None
    path: tuple[Point, ...] = ()

    @property
    def gesture_in_progress(self) -> bool:
        return self.phase is Phase.DRAWING


CommitCallback = Callable[[Gesture], Awaitable[Any]]
PreviewCallback = Callable[[Gesture | None], None]


class ToolStateMachine:
    """Tracks the active tool and the gesture being drawn with it."""

    def __init__(
        self,
        on_commit: CommitCallback,
        on_preview: PreviewCallback | None = None,
    ):
        """Initialize in the idle state.

        Args:
            on_commit: Awaited with the finished gesture on pointer-up; its
                return value is returned by ``pointer_up``
            on_preview: Called with the in-progress gesture on every move,
                and with None when the preview should disappear

        """
        self._on_commit = on_commit
        self._on_preview = on_preview
        self._state = ToolState()
        self._commit_task: asyncio.Future | None = None

    @property
    def state(self) -> ToolState:
        return self._state

    @property
    def active_tool(self) -> Tool | None:
        return self._state.tool

    @property
    def commit_pending(self) -> bool:
        return self._commit_task is not None

    def set_tool(self, tool: Tool | None) -> None:
        """Switch tools, discarding any gesture or commit still in progress."""
        was_drawing = self._state.phase is Phase.DRAWING
        if self._commit_task is not None:
            self._commit_task.cancel()
            self._commit_task = None
        self._state = ToolState(phase=Phase.ARMED, tool=tool) if tool else ToolState()
        if was_drawing:
            logger.debug("Gesture discarded by tool change", tool=tool.value if tool else None)
            self._preview(None)

    def pointer_down(self, point: Point) -> bool:
        """Start a gesture. Returns False when the event was ignored."""
        state = self._state
        if state.phase is not Phase.ARMED or state.tool is None:
            # Idle, or a second pointer while a gesture is already running
            return False
        path = (point,) if state.tool is Tool.FREEHAND else ()
        self._state = ToolState(phase=Phase.DRAWING, tool=state.tool, anchor=point, path=path)
        return True

    def pointer_move(self, point: Point) -> bool:
        """Extend the gesture and refresh the preview."""
        state = self._state
        if state.phase is not Phase.DRAWING or self._commit_task is not None:
            return False
        if state.tool is Tool.FREEHAND:
            state = ToolState(
                phase=state.phase,
                tool=state.tool,
                anchor=state.anchor,
                path=state.path + (point,),
            )
            self._state = state
        self._preview(Gesture(tool=state.tool, anchor=state.anchor, end=point, path=state.path))
        return True

    async def pointer_up(self, point: Point) -> Any:
        """Finish the gesture and await its commit.

        Returns:
            Whatever the commit callback returned, or None if there was no
            gesture or the commit was cancelled by a tool change

        """
        state = self._state
        if state.phase is not Phase.DRAWING or self._commit_task is not None:
            return None

        gesture = Gesture(tool=state.tool, anchor=state.anchor, end=point, path=state.path)
        self._preview(None)

        task = asyncio.ensure_future(self._on_commit(gesture))
        self._commit_task = task
        try:
            await asyncio.wait({task})
        finally:
            if not task.done():
                task.cancel()
            if self._commit_task is task:
                # Not superseded by set_tool: back to the armed tool
                self._commit_task = None
                self._state = ToolState(phase=Phase.ARMED, tool=gesture.tool)

        if task.cancelled():
            logger.debug("Gesture commit cancelled", tool=gesture.tool.value)
            return None
        return task.result()

    def _preview(self, gesture: Gesture | None) -> None:
        if self._on_preview is not None:
            self._on_preview(gesture)
