"""Host collaborators of the viewer context.

The viewer never talks to a UI directly. It reports through a notifier, asks
for text through a prompt, hands finished exports to a download sink and
persists blobs through a persistence backend. Defaults here log through
structlog and write downloads to a directory.
"""

from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import aiofiles
import aiofiles.os

from ecocol.core.logging import audit_logger, get_logger

if TYPE_CHECKING:
    from ecocol.services.export import ExportArtifact

logger = get_logger(__name__)


class Severity(str, Enum):
    """Notification severity."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class Notifier(Protocol):
    def notify(self, message: str, severity: Severity = Severity.INFO) -> None: ...


class TextPrompt(Protocol):
    async def request_text(self, title: str, default: str | None = None) -> str | None:
        """Ask the user for text. None means the request was dismissed."""
        ...


class DownloadSink(Protocol):
    async def deliver(self, artifact: "ExportArtifact") -> Any: ...


class BlobPersistence(Protocol):
    async def save(self, study_id: str, kind: str, blob: str) -> dict[str, Any]: ...

    async def load(self, study_id: str, kind: str) -> str | None: ...


class LogNotifier:
    """Notifier that writes every notification to the log."""

    _levels = {
        Severity.INFO: "info",
        Severity.SUCCESS: "info",
        Severity.WARNING: "warning",
        Severity.ERROR: "error",
    }

    def __init__(self, name: str = "ecocol.viewer"):
        self._logger = get_logger(name)

    def notify(self, message: str, severity: Severity = Severity.INFO) -> None:
        log = getattr(self._logger, self._levels[Severity(severity)])
        log(message, severity=Severity(severity).value)


class DirectoryDownloadSink:
    """Writes delivered artifacts into a directory."""

    def __init__(self, output_dir: Path):
        self.output_dir = Path(output_dir)

    async def deliver(self, artifact: "ExportArtifact") -> Path:
        """Write the artifact and return its path."""
        await aiofiles.os.makedirs(self.output_dir, exist_ok=True)
        path = self.output_dir / Path(artifact.filename).name
        async with aiofiles.open(path, "wb") as f:
            await f.write(artifact.data)

        logger.info("Artifact delivered", path=str(path), size_bytes=artifact.size_bytes)
        audit_logger.log_data_export(
            export_type=artifact.media_type,
            resource_ids=[artifact.filename],
            format=path.suffix.lstrip("."),
            size_bytes=artifact.size_bytes,
            destination=str(path),
        )
        return path
