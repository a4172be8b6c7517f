"""Annotation and measurement canvas toolkit."""

from ecocol.canvas.context import ViewerContext
from ecocol.canvas.geometry import Point
from ecocol.canvas.host import DirectoryDownloadSink, LogNotifier, Severity
from ecocol.canvas.store import AnnotationStore, MeasurementStore
from ecocol.canvas.tools import Tool, ToolStateMachine
from ecocol.canvas.view import ViewTransform

__all__ = [
    "ViewerContext",
    "Point",
    "Tool",
    "ToolStateMachine",
    "AnnotationStore",
    "MeasurementStore",
    "ViewTransform",
    "Severity",
    "LogNotifier",
    "DirectoryDownloadSink",
]
