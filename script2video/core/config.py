"""
Application Configuration

Settings class using pydantic-settings for environment variable loading.
Defines storage locations, cache capacity, composition and export settings.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For example, CACHE_MAX_BYTES can be set via the CACHE_MAX_BYTES env var.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = Field(default="Script2Video", description="Application name")
    version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./script2video.db",
        description="Database connection URL (async driver)",
    )

    # Storage
    storage_path: str = Field(
        default="./data",
        alias="STORAGE_PATH",
        description="Root path for cached media, work files and exports",
    )

    # Media cache
    cache_max_bytes: int = Field(
        default=2 * 1024 * 1024 * 1024,  # 2GB
        ge=0,
        description="Media cache capacity in bytes (0 disables the limit)",
    )

    # Composition
    fps: int = Field(default=30, gt=0, description="Timeline frame rate")
    output_width: int = Field(default=1920, gt=0, description="Composition width")
    output_height: int = Field(default=1080, gt=0, description="Composition height")

    # Export encoding
    video_codec: str = Field(default="libx264", description="Export video codec")
    video_bitrate: str = Field(default="8M", description="Export video bitrate")
    audio_codec: str = Field(default="aac", description="Export audio codec")
    audio_bitrate: str = Field(default="192k", description="Export audio bitrate")
    audio_sample_rate: int = Field(default=48000, description="Export audio sample rate")
    audio_channels: int = Field(default=2, description="Export audio channel count")
    render_timeout_seconds: int = Field(
        default=1800,  # 30 minutes
        description="Maximum ffmpeg runtime for one export",
    )

    # Fetching
    proxy_base_url: Optional[str] = Field(
        default=None,
        description="Base URL of a CORS-safe proxy; external URLs are routed through it when set",
    )
    fetch_timeout_seconds: float = Field(default=60.0, description="HTTP fetch timeout")
    max_concurrent_fetches: int = Field(
        default=6,
        gt=0,
        description="Maximum media resolutions in flight during one composition",
    )

    # Redis (background jobs)
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL",
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins",
    )

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins from comma-separated string to list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def storage_root(self) -> Path:
        return Path(self.storage_path).resolve()

    @property
    def cache_root(self) -> Path:
        """Directory holding cached media blobs."""
        return self.storage_root / "cache" / "media"

    @property
    def work_dir(self) -> Path:
        """Scratch directory for materialized clips and anonymous renders."""
        return self.storage_root / "work"

    @property
    def downloads_dir(self) -> Path:
        """Destination for exports saved without a user-chosen location."""
        return self.storage_root / "downloads"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached application settings instance.

    Uses lru_cache to ensure settings are only loaded once per process.

    Returns:
        Settings: Application settings instance

    Example:
        >>> settings = get_settings()
        >>> print(settings.fps)
        30
    """
    return Settings()
