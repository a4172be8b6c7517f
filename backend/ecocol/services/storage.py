"""Annotation blob storage for ECO-COL Viewer.

Persists the serialized annotation and measurement blobs of each study as
plain files. The blobs are opaque here; validation happens in the stores.
"""

import re
from datetime import datetime
from pathlib import Path
from typing import Any

import aiofiles
import aiofiles.os

from ecocol.core.logging import get_logger

logger = get_logger(__name__)

BLOB_KINDS = ("annotations", "measurements")

_SAFE_ID = re.compile(r"^[A-Za-z0-9._-]{1,128}$")


class AnnotationBlobStorage:
    """File-backed store of one text blob per (study, kind).

    Organizes files as::

        blob_dir/
            ├── {study_id}/
            │   ├── annotations.json
            │   └── measurements.json
            └── ...
    """

    def __init__(self, blob_dir: Path):
        """Initialize storage service.

        Args:
            blob_dir: Base directory for annotation blobs

        """
        self.blob_dir = Path(blob_dir)
        self._ready = False

    async def initialize(self) -> None:
        """Create the storage directory."""
        try:
            await aiofiles.os.makedirs(self.blob_dir, exist_ok=True)
            self._ready = True
            logger.info("Annotation storage initialized", path=str(self.blob_dir))
        except Exception as e:
            logger.error("Failed to initialize annotation storage", error=str(e))
            raise

    def is_ready(self) -> bool:
        """Check if storage service is ready."""
        return self._ready

    def _blob_path(self, study_id: str, kind: str) -> Path:
        if kind not in BLOB_KINDS:
            raise ValueError(f"Unknown blob kind: {kind}")
        if not _SAFE_ID.match(study_id) or study_id in (".", ".."):
            raise ValueError(f"Invalid study id: {study_id!r}")
        return self.blob_dir / study_id / f"{kind}.json"

    async def save(self, study_id: str, kind: str, blob: str) -> dict[str, Any]:
        """Write (or overwrite) the blob of ``kind`` for a study.

        Returns:
            Dictionary with storage information

        """
        path = self._blob_path(study_id, kind)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        async with aiofiles.open(path, "w", encoding="utf-8") as f:
            await f.write(blob)

        logger.info("Stored annotation blob", study_id=study_id, kind=kind, path=str(path))
        return {
            "study_id": study_id,
            "kind": kind,
            "file_path": str(path),
            "size_bytes": len(blob.encode("utf-8")),
            "stored_at": datetime.now().isoformat(),
        }

    async def load(self, study_id: str, kind: str) -> str | None:
        """Read a study's blob, or None if nothing was stored."""
        path = self._blob_path(study_id, kind)
        if not path.exists():
            return None
        async with aiofiles.open(path, "r", encoding="utf-8") as f:
            return await f.read()

    async def delete(self, study_id: str, kind: str) -> bool:
        """Delete a study's blob.

        Returns:
            True if deleted, False if not found

        """
        path = self._blob_path(study_id, kind)
        if not path.exists():
            return False
        await aiofiles.os.remove(path)
        logger.info("Deleted annotation blob", study_id=study_id, kind=kind)
        return True

    async def list_studies(self) -> list[str]:
        """Study ids that have at least one stored blob."""
        if not self.blob_dir.exists():
            return []
        return sorted(
            study_dir.name
            for study_dir in self.blob_dir.iterdir()
            if study_dir.is_dir() and any(study_dir.glob("*.json"))
        )
