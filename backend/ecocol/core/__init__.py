"""Core configuration and utilities for the ECO-COL viewer."""

from ecocol.core.config import settings
from ecocol.core.errors import ToolkitError
from ecocol.core.logging import get_logger, setup_logging

__all__ = ["settings", "ToolkitError", "setup_logging", "get_logger"]
