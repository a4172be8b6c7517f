"""Exception hierarchy for the ECO-COL canvas toolkit.

Every failure a public viewer operation can report derives from
``ToolkitError``; the viewer context turns these into user notifications.
"""


class ToolkitError(Exception):
    """Base class for recoverable toolkit failures."""

    severity = "error"


class RecordParseError(ToolkitError):
    """Raised when a serialized annotation or measurement blob is malformed."""

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Could not load {kind}: {reason}")


class PreconditionError(ToolkitError):
    """Raised when an operation is invoked in a state that cannot satisfy it."""

    severity = "warning"


class InsufficientFramesError(PreconditionError):
    """Raised when a cine export is requested with fewer than two frames."""

    def __init__(self, frame_count: int, required: int = 2):
        self.frame_count = frame_count
        self.required = required
        super().__init__(
            f"Video export needs at least {required} frames, only {frame_count} loaded"
        )


class NoFramesError(PreconditionError):
    """Raised when an export needs a loaded image and none is displayed."""

    def __init__(self):
        super().__init__("No image loaded")


class NoActiveStudyError(PreconditionError):
    """Raised when an operation requires an active study and none is open."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Open a study before running '{operation}'")


class MissingEncoderError(ToolkitError):
    """Raised when the external library an export relies on is not installed."""

    def __init__(self, encoder: str, package: str):
        self.encoder = encoder
        self.package = package
        super().__init__(
            f"{encoder} encoder unavailable. Install the '{package}' package to enable it."
        )
