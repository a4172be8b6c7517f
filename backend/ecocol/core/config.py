"""Application configuration management using Pydantic Settings.

This module provides centralized configuration for the ECO-COL viewer toolkit,
supporting environment variables and .env files for different deployment environments.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Get the backend directory (parent of ecocol/ directory)
BACKEND_DIR = Path(__file__).parent.parent.parent
ENV_FILE = BACKEND_DIR / ".env"

# Load environment variables from .env file
load_dotenv(ENV_FILE)


class CanvasSettings(BaseSettings):
    """Configuration for the annotation and measurement canvas."""

    model_config = SettingsConfigDict(env_prefix="CANVAS_")

    # View transform
    min_scale: float = Field(default=0.1, gt=0.0, description="Minimum zoom scale")
    max_scale: float = Field(default=10.0, gt=0.0, description="Maximum zoom scale")
    zoom_step: float = Field(default=1.2, gt=1.0, description="Toolbar zoom in/out factor")
    wheel_zoom_in: float = Field(default=1.1, gt=1.0, description="Wheel zoom-in factor")
    wheel_zoom_out: float = Field(default=0.9, gt=0.0, lt=1.0, description="Wheel zoom-out factor")

    # Annotation style
    default_color: str = Field(default="#ff0000", description="Initial annotation color")
    palette: list[str] = Field(
        default=["#ff0000", "#00ff00", "#0000ff", "#ffff00", "#ff00ff", "#00ffff", "#ffffff"],
        description="Colors offered by the annotation toolbar",
    )
    font_size: int = Field(default=16, ge=6, le=128, description="Initial text font size")
    line_width: int = Field(default=2, ge=1, le=16, description="Stroke width for shapes")
    dash_pattern: tuple[int, int] = Field(
        default=(5, 5), description="Dash on/off lengths for in-progress previews"
    )
    arrow_head_length: float = Field(default=15.0, gt=0.0, description="Arrow head length (px)")

    # Measurement style
    measurement_color: str = Field(default="#00ff00", description="Committed measurement color")
    measurement_preview_color: str = Field(
        default="#ffff00", description="In-progress measurement color"
    )
    label_color: str = Field(default="#ffff00", description="Measurement label color")
    label_font_size: int = Field(default=14, ge=6, le=128, description="Measurement label size")

    @model_validator(mode="after")
    def validate_scale_range(self) -> "CanvasSettings":
        """Ensure the zoom bounds are ordered."""
        if self.min_scale > self.max_scale:
            raise ValueError("min_scale must not exceed max_scale")
        return self


class ExportSettings(BaseSettings):
    """Configuration for frame, video and report export."""

    model_config = SettingsConfigDict(env_prefix="EXPORT_")

    output_dir: Path = Field(default=Path("./exports"), description="Download directory")
    jpeg_quality: float = Field(
        default=0.95, gt=0.0, le=1.0, description="Default JPEG quality (0-1 scale)"
    )
    video_fps: int = Field(default=10, ge=1, le=120, description="Default cine frame rate")
    video_codec: str = Field(
        default="MJPG", min_length=4, max_length=4, description="FourCC passed to OpenCV"
    )
    video_extension: str = Field(default="avi", description="Container extension for video")
    report_dpi: int = Field(default=100, ge=50, le=300, description="Rasterization DPI for PDF")
    report_title: str = Field(
        default="ECO-COL - Radiology Report", description="Report header title"
    )
    product_name: str = Field(
        default="ECO-COL Tele-Radiology System v2.0", description="Report footer product name"
    )


class StorageSettings(BaseSettings):
    """Configuration for annotation blob persistence."""

    model_config = SettingsConfigDict(env_prefix="STORAGE_")

    blob_dir: Path = Field(
        default=Path("./storage/annotations"), description="Annotation blob directory"
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application settings
    app_name: str = Field(default="ECO-COL Viewer", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: Literal["development", "staging", "production"] = Field(
        default="development", description="Deployment environment"
    )
    debug: bool = Field(default=False, description="Enable debug mode")

    # Server settings
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, ge=1, le=65535, description="Server port")
    workers: int = Field(default=1, ge=1, le=32, description="Number of workers")

    # CORS settings
    cors_origins: list[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins",
    )
    cors_allow_credentials: bool = Field(default=True, description="Allow CORS credentials")

    # Nested settings
    canvas: CanvasSettings = Field(default_factory=CanvasSettings)
    export: ExportSettings = Field(default_factory=ExportSettings)
    storage: StorageSettings = Field(default_factory=StorageSettings)

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Validate settings after initialization."""
        if self.environment == "production" and self.debug:
            raise ValueError("Debug mode must be disabled in production (DEBUG=false)")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
