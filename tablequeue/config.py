"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from tablequeue.constants import (
    DEFAULT_QUEUE_NAME,
    DEFAULT_TABLE_NAME,
    LIFETIME_DISABLED,
    LIFETIME_UNLIMITED,
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Database
    database_url: str = "sqlite+aiosqlite:///./tablequeue.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20
    sqlite_busy_timeout_ms: int = 30_000

    # Queue
    queue_table_name: str = DEFAULT_TABLE_NAME
    queue_name: str = DEFAULT_QUEUE_NAME
    queue_deleted_lifetime: int = Field(default=LIFETIME_DISABLED, ge=LIFETIME_UNLIMITED)
    queue_buried_lifetime: int = Field(default=LIFETIME_DISABLED, ge=LIFETIME_UNLIMITED)
    queue_claim_order: Literal["desc", "asc"] = "desc"

    # Worker Configuration
    worker_poll_interval_seconds: float = 1.0
    worker_max_runs: int = 0  # 0 = run until stopped
    worker_bury_malformed_jobs: bool = True

    # Reaper Configuration
    reaper_interval_seconds: int = 60
    reaper_execution_time_minutes: int = 30

    # Observability
    otel_enabled: bool = False
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "tablequeue"
    prometheus_port: int = 0  # 0 = do not serve
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
