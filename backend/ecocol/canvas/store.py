"""Annotation and measurement stores.

Each store owns an ordered list of records for the study currently open in
the viewer. Ids come from a per-store counter; loading a serialized blob
keeps the ids it contains.
"""

from collections.abc import Callable, Iterator
from typing import Any, Generic, TypeVar

from pydantic import TypeAdapter, ValidationError

from ecocol.canvas.fonts import text_width
from ecocol.canvas.geometry import Point, text_contains
from ecocol.canvas.records import (
    RecordBase,
    TextAnnotation,
    annotation_list_adapter,
    measurement_list_adapter,
)
from ecocol.core.errors import PreconditionError, RecordParseError
from ecocol.core.logging import get_logger

logger = get_logger(__name__)

R = TypeVar("R", bound=RecordBase)

TextMeasurer = Callable[[str, int], float]


class RecordStore(Generic[R]):
    """Ordered record collection with id assignment and JSON persistence."""

    kind = "records"

    def __init__(
        self,
        adapter: TypeAdapter[list[Any]],
        on_change: Callable[[], Any] | None = None,
    ):
        """Initialize an empty store.

        Args:
            adapter: Pydantic adapter for the tagged record list
            on_change: Called after every mutation that needs a redraw

        """
        self._adapter = adapter
        self._records: list[R] = []
        self._next_id = 1
        self.on_change = on_change

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[R]:
        return iter(tuple(self._records))

    @property
    def records(self) -> tuple[R, ...]:
        """Snapshot of the records in insertion order."""
        return tuple(self._records)

    def add(self, record: R) -> R:
        """Assign the next id to ``record``, append it and trigger a redraw."""
        stored = record.model_copy(update={"id": self._next_id})
        self._next_id += 1
        self._records.append(stored)
        logger.debug(f"{self.kind} record added", record_id=stored.id, type=stored.type)
        self._changed()
        return stored

    def get(self, record_id: int) -> R | None:
        for record in self._records:
            if record.id == record_id:
                return record
        return None

    def delete_by_id(self, record_id: int) -> bool:
        """Remove the first record with ``record_id``.

        Returns:
            True if a record was removed, False if the id is unknown

        """
        for index, record in enumerate(self._records):
            if record.id == record_id:
                del self._records[index]
                logger.debug(f"{self.kind} record deleted", record_id=record_id)
                self._changed()
                return True
        return False

    def clear(self) -> None:
        """Remove every record. Does not trigger a redraw."""
        self._records.clear()

    def serialize(self) -> str:
        """Serialize all records to a JSON array."""
        return self._adapter.dump_json(self._records).decode("utf-8")

    def deserialize(self, text: str | bytes) -> None:
        """Replace the current records with those in ``text``.

        Raises:
            RecordParseError: If ``text`` is not a valid record list. The
                store is left exactly as it was.

        """
        try:
            loaded = self._adapter.validate_json(text)
        except ValidationError as e:
            first = e.errors()[0]
            location = ".".join(str(part) for part in first["loc"])
            reason = f"{first['msg']} at {location}" if location else first["msg"]
            raise RecordParseError(self.kind, reason) from e

        ids = [record.id for record in loaded]
        if len(set(ids)) != len(ids):
            raise RecordParseError(self.kind, "duplicate record ids")
        if any(record_id < 1 for record_id in ids):
            raise RecordParseError(self.kind, "record ids must be positive")

        self._records = list(loaded)
        self._next_id = max(ids, default=0) + 1
        logger.info(f"{self.kind} loaded", count=len(self._records))
        self._changed()

    def find_at(self, point: Point) -> R | None:
        """Return the most recently added record under ``point``."""
        for record in reversed(self._records):
            if self._contains(record, point):
                return record
        return None

    def _contains(self, record: R, point: Point) -> bool:
        return False

    def _replace(self, record: R) -> None:
        for index, existing in enumerate(self._records):
            if existing.id == record.id:
                self._records[index] = record
                return

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()


class AnnotationStore(RecordStore):
    """Store for arrow, text, circle, rectangle and freehand annotations.

    Only text annotations are hit-testable; double-click editing relies on it.
    """

    kind = "annotations"

    def __init__(
        self,
        on_change: Callable[[], Any] | None = None,
        measure_text: TextMeasurer = text_width,
    ):
        super().__init__(annotation_list_adapter, on_change)
        self.measure_text = measure_text

    def _contains(self, record, point: Point) -> bool:
        if not isinstance(record, TextAnnotation):
            return False
        width = self.measure_text(record.text, record.font_size)
        return text_contains(point, record.position, width, record.font_size)

    def edit_text(self, record_id: int, text: str) -> TextAnnotation | None:
        """Change the content of a text annotation.

        Returns:
            The updated record, or None if ``record_id`` is not a text annotation

        Raises:
            PreconditionError: If ``text`` is not a valid label (e.g. empty).
                The record is left unchanged.

        """
        record = self.get(record_id)
        if not isinstance(record, TextAnnotation):
            return None
        try:
            updated = TextAnnotation.model_validate({**record.model_dump(), "text": text})
        except ValidationError as e:
            raise PreconditionError(f"Invalid annotation text: {e.errors()[0]['msg']}") from e
        self._replace(updated)
        logger.debug("Text annotation edited", record_id=record_id)
        self._changed()
        return updated


class MeasurementStore(RecordStore):
    """Store for ruler, ROI and area measurements."""

    kind = "measurements"

    def __init__(self, on_change: Callable[[], Any] | None = None):
        super().__init__(measurement_list_adapter, on_change)
