"""
Application Configuration

Settings class using pydantic-settings for environment variable loading.
Covers the API, the render worker and the pipeline's resource limits.
"""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For example, TRANSCODE_TIMEOUT_SECONDS can be set via the
    TRANSCODE_TIMEOUT_SECONDS env var.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="SceneStitch API", description="Application name")
    debug: bool = Field(default=False, description="Debug mode")
    version: str = Field(default="0.1.0", description="API version")
    log_level: str = Field(default="INFO", description="Root log level")

    # Redis / queue
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )
    render_queue_name: str = Field(
        default="scenestitch:render",
        description="RQ queue that render jobs are enqueued on",
    )
    render_job_timeout: int = Field(
        default=2400,  # 40 minutes
        description="RQ job timeout in seconds for a whole render",
    )

    # Job record store
    job_store_backend: Literal["redis", "database", "memory"] = Field(
        default="redis",
        description="Where progress records are written for pollers",
    )
    database_url: str = Field(
        default="sqlite:////data/db/scenestitch.db",
        description="Database URL used by the 'database' job store",
    )
    progress_expiry_seconds: int = Field(
        default=24 * 3600,
        description="Expiry of Redis progress records in seconds",
    )

    # Staging
    staging_path: str = Field(
        default="/tmp/scenestitch",
        description="Root directory for per-job downloaded inputs and outputs",
    )

    # Artifact storage
    storage_backend: Literal["local", "gcs"] = Field(
        default="local",
        description="Object store used to publish rendered videos",
    )
    storage_path: str = Field(
        default="/data",
        alias="STORAGE_PATH",
        description="Root path for the local object store",
    )
    public_base_url: str = Field(
        default="http://localhost:8000/api/artifacts",
        description="Base URL that published keys are appended to (local store)",
    )
    gcs_bucket: Optional[str] = Field(default=None, description="GCS bucket name")
    gcp_credentials: Optional[str] = Field(
        default=None,
        description="Service account JSON for GCS (falls back to ADC)",
    )

    # Transcoder
    ffmpeg_binary: str = Field(default="ffmpeg", description="ffmpeg executable")
    ffmpeg_preset: str = Field(default="medium", description="x264 preset")
    output_fps: int = Field(default=30, description="Output frame rate")
    audio_bitrate: str = Field(default="128k", description="Output audio bitrate")
    overlay_font_file: Optional[str] = Field(
        default=None,
        description="Font file for burned-in text overlays (fontconfig default if unset)",
    )
    transcode_timeout_seconds: int = Field(
        default=1800,  # 30 minutes
        description="Hard limit for a single ffmpeg invocation",
    )

    # Acquisition
    fetch_timeout_seconds: float = Field(
        default=60.0,
        description="Timeout for each scene asset download",
    )
    max_asset_bytes: int = Field(
        default=200 * 1024 * 1024,  # 200MB
        description="Largest accepted scene asset in bytes",
    )

    @property
    def staging_root(self) -> Path:
        """Resolved staging directory."""
        return Path(self.staging_path).resolve()

    @property
    def storage_root(self) -> Path:
        """Resolved local object store root."""
        return Path(self.storage_path).resolve()


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Uses lru_cache to ensure settings are only loaded once per process.
    Tests call ``get_settings.cache_clear()`` after changing the environment.

    Returns:
        Settings: Application settings instance
    """
    return Settings()
