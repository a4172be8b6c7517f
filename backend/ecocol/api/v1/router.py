"""API v1 Router - Aggregates all API endpoints."""

from fastapi import APIRouter

from ecocol.api.v1.endpoints import annotations, export, measurements

api_router = APIRouter()

# Per-study annotation and measurement blobs
api_router.include_router(
    annotations.router,
    prefix="/studies",
    tags=["Annotations"],
)

# Measurement computation
api_router.include_router(
    measurements.router,
    prefix="/measurements",
    tags=["Measurements"],
)

# Export endpoints
api_router.include_router(
    export.router,
    prefix="/export",
    tags=["Export"],
)
