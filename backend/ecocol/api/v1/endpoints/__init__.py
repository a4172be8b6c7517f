"""API v1 endpoints."""

from ecocol.api.v1.endpoints import annotations, export, measurements

__all__ = [
    "annotations",
    "measurements",
    "export",
]
