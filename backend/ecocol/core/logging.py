"""
Structured logging configuration for ECO-COL Viewer.

Provides consistent, structured logging with support for different
output formats and log levels based on environment.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def add_app_context(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add application context to log entries."""
    event_dict["app"] = "ecocol-viewer"
    return event_dict


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    log_file: str | None = None,
) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: If True, output logs as JSON (for production)
        log_file: Optional file path for log output
    """
    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO),
    )

    # Shared processors for all outputs
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        add_app_context,
    ]

    if json_logs:
        # JSON output for production
        processors: list[Processor] = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        # Human-readable output for development
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # Configure file handler if specified
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper(), logging.INFO))
        if json_logs:
            file_handler.setFormatter(logging.Formatter("%(message)s"))
        else:
            file_handler.setFormatter(
                logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
            )
        logging.getLogger().addHandler(file_handler)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured structlog BoundLogger
    """
    return structlog.get_logger(name)


class AuditLogger:
    """
    Specialized logger for the audit trail.

    Records who touched which study's annotation data and which exports
    left the viewer, so report generation can be traced afterwards.
    """

    def __init__(self):
        """Initialize audit logger."""
        self.logger = get_logger("audit")

    def log_access(
        self,
        resource_type: str,
        resource_id: str,
        action: str,
        success: bool = True,
        details: dict[str, Any] | None = None,
    ) -> None:
        """
        Log a resource access event.

        Args:
            resource_type: Type of resource (e.g., "annotations", "measurements")
            resource_id: ID of the accessed resource (study id)
            action: Action performed (e.g., "READ", "WRITE", "DELETE")
            success: Whether the action succeeded
            details: Additional details
        """
        log_method = self.logger.info if success else self.logger.warning
        log_method(
            "resource_access",
            resource_type=resource_type,
            resource_id=resource_id,
            action=action,
            success=success,
            details=details or {},
            audit_type="access",
        )

    def log_data_export(
        self,
        export_type: str,
        resource_ids: list[str],
        format: str,
        size_bytes: int | None = None,
        destination: str | None = None,
    ) -> None:
        """
        Log a data export event.

        Args:
            export_type: Type of export (e.g., "frame", "frames", "video", "report")
            resource_ids: IDs of exported resources
            format: Export format (e.g., "PNG", "PDF")
            size_bytes: Size of the produced artifact
            destination: Export destination (if applicable)
        """
        self.logger.info(
            "data_export",
            export_type=export_type,
            resource_count=len(resource_ids),
            resource_ids=resource_ids[:10],  # Limit logged IDs
            format=format,
            size_bytes=size_bytes,
            destination=destination,
            audit_type="export",
        )


# Global audit logger instance
audit_logger = AuditLogger()
