"""Configuration management for NotifyDeck."""

from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    environment: str = Field(default="production", description="Environment name")
    log_level: str = Field(default="INFO", description="Logging level")

    # File logging
    log_to_file: bool = Field(default=False, description="Also write logs to rotating files")
    log_directory: str = Field(default="logs", description="Directory for log files")
    log_file_max_bytes: int = Field(default=10 * 1024 * 1024, description="Rotate after N bytes")
    log_file_backup_count: int = Field(default=5, description="Rotated files to keep")
    log_error_file_enabled: bool = Field(
        default=True, description="Write WARNING and above to a separate file"
    )

    # Notification history store (read-only, owned by the OS)
    notification_db_path: Path | None = Field(
        default=None, description="Explicit path to the OS notification database"
    )
    store_row_limit: int = Field(default=500, gt=0, description="Rows scanned per query")
    store_fetch_buffer: int = Field(
        default=5, ge=0, description="Extra rows fetched beyond the new-id count"
    )
    known_ids_ceiling: int = Field(default=5000, gt=1, description="Max remembered row ids")

    # Database poller scheduling (seconds)
    poller_idle_interval: float = Field(default=2.0, gt=0)
    poller_active_interval: float = Field(default=0.1, gt=0)
    poller_cooldown_intervals: Annotated[
        list[float], Field(default_factory=lambda: [0.3, 0.5, 1.0, 2.0])
    ]
    poller_max_active_cycles: int = Field(default=50, gt=0)

    # Banner scanner scheduling (seconds)
    scanner_enabled: bool = Field(default=True, description="Watch on-screen banners")
    scanner_idle_interval: float = Field(default=3.0, gt=0)
    scanner_active_interval: float = Field(default=0.05, gt=0)
    scanner_cooldown_intervals: Annotated[
        list[float], Field(default_factory=lambda: [0.2, 0.5, 1.0, 3.0])
    ]
    scanner_max_active_cycles: int = Field(default=100, gt=0)
    banner_seen_ttl_seconds: float = Field(default=10.0, gt=0)
    banner_text_depth: int = Field(default=10, gt=0)

    # Cross-source promotion
    promote_scanner_on_row: bool = Field(
        default=False, description="Also speed up the banner scanner when a new row appears"
    )

    # Local archive
    archive_path: str = Field(default="data/notifications.db", description="Local archive file")
    excluded_apps: Annotated[
        list[str],
        Field(default_factory=list, description="Bundle identifiers never archived"),
    ]
    retention_days: int | None = Field(
        default=None, gt=0, description="Delete archived notifications older than this"
    )
    popup_enabled: bool = Field(default=True, description="Show captured notifications")

    @field_validator("poller_cooldown_intervals", "scanner_cooldown_intervals")
    @classmethod
    def _validate_cooldown(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("cooldown intervals must not be empty")
        if any(step <= 0 for step in value):
            raise ValueError("cooldown intervals must be positive")
        if any(later < earlier for earlier, later in zip(value, value[1:])):
            raise ValueError("cooldown intervals must be ascending")
        return value

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.environment.lower() == "development"

    @property
    def log_file_path(self) -> str:
        return str(Path(self.log_directory) / "notifydeck.log")

    @property
    def error_log_file_path(self) -> str:
        return str(Path(self.log_directory) / "notifydeck_error.log")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
