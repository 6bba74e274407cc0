"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class PlatformEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class StateStoreType(str, Enum):
    MEMORY = "memory"
    SQL = "sql"


class Settings(BaseSettings):
    """Engine settings loaded from environment variables with PILOT_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="PILOT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: PlatformEnv = PlatformEnv.DEV
    debug: bool = False

    # State store
    state_store_type: StateStoreType = StateStoreType.SQL
    database_url: str = "sqlite+aiosqlite:///.claimpilot/state.db"
    database_pool_size: int = 10
    database_max_overflow: int = 20

    # Trial lifecycle
    trial_days: int = 30
    retention_days: int = 30

    # Case processing
    processing_delay_seconds: int = 20

    # Tenant file storage root (one directory per tenant)
    file_storage_path: Path = Path(".claimpilot/files")

    # Metering (JSON lines); None keeps events in memory only
    metering_file: Path | None = None

    # Optional periodic sweep
    sweep_interval_seconds: float = 300.0

    structured_logging: bool = False

    @field_validator("trial_days", "retention_days")
    @classmethod
    def _positive_days(cls, v: int) -> int:
        if v < 1:
            raise ValueError("day counts must be >= 1")
        return v

    @field_validator("processing_delay_seconds")
    @classmethod
    def _non_negative_delay(cls, v: int) -> int:
        if v < 0:
            raise ValueError("processing_delay_seconds must be >= 0")
        return v

    def uses_sql_store(self) -> bool:
        return self.state_store_type == StateStoreType.SQL


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
