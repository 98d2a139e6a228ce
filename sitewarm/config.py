"""Configuration management for warming services."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes", "on")


def _warming_requested() -> bool:
    """Keep-alive pinging runs in production, or anywhere it is explicitly enabled."""
    if flag := os.environ.get("ENABLE_WARMING"):
        return _env_flag(flag)
    return os.environ.get("APP_ENV", "development") == "production"


class LoggingConfig(BaseModel):
    """Logging configuration."""

    model_config = ConfigDict(frozen=True)

    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(default="text", description="Log format (json or text)")
    log_file: Path | None = Field(default=None, description="Rotating log file, stderr if unset")
    max_bytes: int = Field(default=10_485_760, description="Max size of log file in bytes")
    backup_count: int = Field(default=5, description="Number of backup log files to keep")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        data["level"] = os.environ.get("LOG_LEVEL", data.get("level", "INFO")).upper()
        data["format"] = os.environ.get("LOG_FORMAT", data.get("format", "text"))
        if log_file := os.environ.get("LOG_FILE"):
            data["log_file"] = Path(log_file)
        if max_bytes := os.environ.get("LOG_MAX_BYTES"):
            data["max_bytes"] = int(max_bytes)
        if backup_count := os.environ.get("LOG_BACKUP_COUNT"):
            data["backup_count"] = int(backup_count)
        super().__init__(**data)


class KeepAliveConfig(BaseModel):
    """Keep-alive pinger configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=False, description="Whether the ping loop runs at all")
    # Render suspends idle services after 15 minutes
    interval: float = Field(default=14 * 60, gt=0, description="Seconds between cycle starts")
    health_path: str = Field(default="/health", description="Health endpoint path")
    max_retries: int = Field(default=3, ge=0, description="Retries per cycle")
    retry_delay: float = Field(default=30.0, ge=0, description="Seconds between retries")
    request_timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    warm_on_load: bool = Field(default=True, description="Fire a cycle immediately on start")
    source_tag: str = Field(default="frontend-service", description="X-Warming-Source value")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        data.setdefault("enabled", _warming_requested())
        if interval := os.environ.get("KEEP_ALIVE_INTERVAL"):
            data["interval"] = float(interval)
        if max_retries := os.environ.get("KEEP_ALIVE_MAX_RETRIES"):
            data["max_retries"] = int(max_retries)
        if retry_delay := os.environ.get("KEEP_ALIVE_RETRY_DELAY"):
            data["retry_delay"] = float(retry_delay)
        if health_path := os.environ.get("KEEP_ALIVE_HEALTH_PATH"):
            data["health_path"] = health_path
        super().__init__(**data)


class ContentWarmingConfig(BaseModel):
    """Top-content cache warmer configuration."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether content warming runs at all")
    interval: float = Field(default=20 * 60, gt=0, description="Seconds between cycle starts")
    content_path: str = Field(default="/api/blogs", description="Content listing path")
    health_path: str = Field(default="/api/health", description="Health probe path")
    limit: int = Field(default=6, gt=0, description="Page size of the top-content fetch")
    sort: str = Field(default="popular", description="Sort order requested from the listing")
    cache_timeout: float = Field(default=10 * 60, gt=0, description="Snapshot freshness in seconds")
    warm_on_load: bool = Field(default=True, description="Fire a cycle immediately on start")
    request_timeout: float = Field(default=10.0, gt=0, description="Per-request timeout in seconds")
    preload_count: int = Field(default=3, ge=0, description="Media URLs to preload")
    source_tag: str = Field(default="blog-prefetch", description="X-Warming-Source value")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        if enabled := os.environ.get("CONTENT_WARMING_ENABLED"):
            data["enabled"] = _env_flag(enabled)
        if interval := os.environ.get("CONTENT_WARMING_INTERVAL"):
            data["interval"] = float(interval)
        if cache_timeout := os.environ.get("CONTENT_CACHE_TIMEOUT"):
            data["cache_timeout"] = float(cache_timeout)
        if limit := os.environ.get("CONTENT_WARMING_LIMIT"):
            data["limit"] = int(limit)
        super().__init__(**data)


class CoordinatorConfig(BaseModel):
    """Lifecycle coordinator configuration."""

    model_config = ConfigDict(frozen=True)

    enable_keep_alive: bool = Field(default=False, description="Start the pinger")
    enable_content_warming: bool = Field(default=True, description="Start the content warmer")
    enable_image_preloading: bool = Field(default=True, description="Preload media after warming")
    start_delay: float = Field(default=2.0, ge=0, description="Seconds to wait before starting")
    preload_delay: float = Field(default=5.0, ge=0, description="Seconds from start to preload")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        data.setdefault("enable_keep_alive", _warming_requested())
        if enabled := os.environ.get("CONTENT_WARMING_ENABLED"):
            data["enable_content_warming"] = _env_flag(enabled)
        if preload := os.environ.get("IMAGE_PRELOADING_ENABLED"):
            data["enable_image_preloading"] = _env_flag(preload)
        if start_delay := os.environ.get("WARMING_START_DELAY"):
            data["start_delay"] = float(start_delay)
        super().__init__(**data)


class StorageConfig(BaseModel):
    """Persisted state configuration."""

    model_config = ConfigDict(frozen=True)

    state_dir: Path = Field(default=Path(".cache/warming"), description="State directory")
    stats_key: str = Field(default="server-warming-stats", description="Ping statistics key")
    cache_key: str = Field(default="blog-warming-cache", description="Content snapshot key")

    def __init__(self, **data: Any) -> None:
        """Initialize with environment variable overrides."""
        if state_dir := os.environ.get("WARMING_STATE_DIR"):
            data["state_dir"] = Path(state_dir)
        super().__init__(**data)


class Settings(BaseModel):
    """Main application settings."""

    model_config = ConfigDict(frozen=True)

    environment: str = Field(default="development", description="Deployment environment")
    api_base: str = Field(default="http://localhost:8000", description="Backend base URL")
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    keep_alive: KeepAliveConfig = Field(default_factory=KeepAliveConfig)
    content: ContentWarmingConfig = Field(default_factory=ContentWarmingConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    def __init__(self, **data: Any) -> None:
        """Initialize settings, optionally loading from .env file."""
        if env_file := os.environ.get("ENV_FILE"):
            load_dotenv(Path(env_file))
        data["environment"] = os.environ.get("APP_ENV", data.get("environment", "development"))
        data["api_base"] = os.environ.get("WARMING_API_URL", data.get("api_base", "http://localhost:8000"))
        super().__init__(**data)

    @property
    def clean_api_base(self) -> str:
        """API base without a trailing slash or ``/api`` suffix."""
        base = self.api_base.rstrip("/")
        if base.endswith("/api"):
            base = base[: -len("/api")]
        return base

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get the singleton settings instance."""
    return Settings()
