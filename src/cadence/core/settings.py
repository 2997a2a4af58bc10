"""
Centralized settings for cadence.

One validated, cached settings object. Every field can be set through a
``CADENCE_*`` environment variable or a ``.env`` file::

    CADENCE_DATABASE_URL=postgresql://cadence@db/cadence
    CADENCE_SCAN_INTERVAL_SECONDS=10
    CADENCE_BACKOFF_TABLE_MINUTES=[1,5,15,30]

Tunables:
    scan_interval_seconds      Due-workflow scan period
    recovery_interval_seconds  Recovery sweep period
    stuck_threshold_seconds    Age after which a processing record is stuck
    max_attempts               Failures before a record is dead-lettered
    backoff_table_minutes      Retry delay per attempt count
    batch_size                 Records claimed per workflow run
"""

from __future__ import annotations

from enum import Enum
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from cadence.core.logging import get_logger

logger = get_logger(__name__)


class SchedulerBackendName(str, Enum):
    """Available tick backends."""

    THREAD = "thread"
    APSCHEDULER = "apscheduler"


class CadenceSettings(BaseSettings):
    """Cadence engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="CADENCE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///cadence.db")
    database_echo: bool = Field(default=False)

    # ── Scheduling ───────────────────────────────────────────────
    scheduler_backend: SchedulerBackendName = Field(default=SchedulerBackendName.THREAD)
    scan_interval_seconds: float = Field(default=10.0, gt=0)
    recovery_interval_seconds: float = Field(default=60.0, gt=0)
    stuck_threshold_seconds: float = Field(default=300.0, gt=0)
    drift_warning_ms: float = Field(default=1000.0, ge=0)

    # ── Execution ────────────────────────────────────────────────
    max_attempts: int = Field(default=4, ge=1)
    backoff_table_minutes: list[float] = Field(default_factory=lambda: [1, 5, 15, 30])
    batch_size: int = Field(default=100, ge=1)

    # ── Events ───────────────────────────────────────────────────
    event_buffer_size: int = Field(default=1000, ge=1)
    persist_lifecycle_log: bool = Field(default=True)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="console")

    @field_validator("backoff_table_minutes")
    @classmethod
    def _validate_backoff_table(cls, value: list[float]) -> list[float]:
        if not value:
            raise ValueError("backoff_table_minutes must not be empty")
        if any(step < 0 for step in value):
            raise ValueError("backoff_table_minutes entries must be >= 0")
        return value

    @field_validator("log_format")
    @classmethod
    def _validate_log_format(cls, value: str) -> str:
        value = value.lower()
        if value not in ("json", "console"):
            raise ValueError("log_format must be 'json' or 'console'")
        return value

    @model_validator(mode="after")
    def _warn_on_tight_threshold(self) -> CadenceSettings:
        if self.stuck_threshold_seconds <= self.scan_interval_seconds:
            logger.warning(
                "stuck_threshold_not_above_scan_interval",
                stuck_threshold_seconds=self.stuck_threshold_seconds,
                scan_interval_seconds=self.scan_interval_seconds,
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> CadenceSettings:
    """Return the process-wide cached settings."""
    return CadenceSettings()


def clear_settings_cache() -> None:
    """Drop the cached settings (tests, config reload)."""
    get_settings.cache_clear()


__all__ = [
    "CadenceSettings",
    "SchedulerBackendName",
    "get_settings",
    "clear_settings_cache",
]
