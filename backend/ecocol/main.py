"""ECO-COL Viewer - Tele-radiology annotation and measurement toolkit

Main FastAPI application entry point.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram, make_asgi_app

from ecocol.api.v1.router import api_router
from ecocol.core.config import settings
from ecocol.core.logging import get_logger, setup_logging

# Initialize logging
setup_logging(
    log_level="DEBUG" if settings.debug else "INFO",
    json_logs=settings.environment == "production",
)

logger = get_logger(__name__)

# Prometheus metrics
REQUEST_COUNT = Counter(
    "ecocol_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)
REQUEST_LATENCY = Histogram(
    "ecocol_request_latency_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)


def _safe_request_path(request: Request) -> str:
    """Return a route template path so study ids stay out of the logs."""
    route = request.scope.get("route")
    if route and hasattr(route, "path"):
        return route.path
    return request.url.path


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    # Startup
    logger.info(
        "Starting ECO-COL Viewer",
        version=settings.app_version,
        environment=settings.environment,
    )

    from ecocol.services.storage import AnnotationBlobStorage

    # Initialize annotation blob storage
    blob_storage = AnnotationBlobStorage(settings.storage.blob_dir)
    await blob_storage.initialize()
    app.state.blob_storage = blob_storage

    logger.info("ECO-COL Viewer started successfully")

    yield

    # Shutdown
    logger.info("ECO-COL Viewer shutdown complete")


def create_application() -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title=settings.app_name,
        description="""
        ECO-COL Viewer persists and reports the annotations and measurements
        drawn on the tele-radiology DICOM viewer canvas.

        ## Features

        - **Annotation persistence**: One annotation and one measurement blob per study
        - **Measurements**: Ruler, ROI and area values in pixels, mm and cm
        - **Reports**: Multi-page PDF radiology report

        ## API Documentation

        - **Interactive docs**: `/docs` (Swagger UI)
        - **ReDoc**: `/redoc`
        - **OpenAPI spec**: `/openapi.json`
        """,
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Process-Time"],
    )

    # Add GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Add request logging middleware
    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        """Log all incoming requests with timing."""
        import time
        import uuid

        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        response = await call_next(request)
        process_time = time.time() - start_time
        safe_path = _safe_request_path(request)

        # Update metrics
        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=safe_path,
            status=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=safe_path,
        ).observe(process_time)

        # Add custom headers
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{process_time:.4f}"

        logger.info(
            "request_completed",
            request_id=request_id,
            method=request.method,
            path=safe_path,
            status_code=response.status_code,
            process_time=f"{process_time:.4f}s",
        )

        return response

    # Mount Prometheus metrics endpoint
    metrics_app = make_asgi_app()
    app.mount("/metrics", metrics_app)

    # Include API router
    app.include_router(api_router, prefix="/api/v1")

    # Health check endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """Health check endpoint for load balancers and monitoring."""
        return {
            "status": "healthy",
            "version": settings.app_version,
            "environment": settings.environment,
        }

    # Readiness check endpoint
    @app.get("/ready", tags=["Health"])
    async def readiness_check(request: Request):
        """Readiness check for container orchestration."""
        checks = {"blob_storage": False}

        if hasattr(request.app.state, "blob_storage"):
            checks["blob_storage"] = request.app.state.blob_storage.is_ready()

        all_ready = all(checks.values())
        return JSONResponse(
            status_code=200 if all_ready else 503,
            content={
                "ready": all_ready,
                "checks": checks,
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle uncaught exceptions."""
        logger.error(
            "unhandled_exception",
            path=_safe_request_path(request),
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error",
                "message": str(exc) if settings.debug else "An unexpected error occurred",
            },
        )

    return app


# Create application instance
app = create_application()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ecocol.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        workers=1 if settings.debug else settings.workers,
        log_level="debug" if settings.debug else "info",
    )
