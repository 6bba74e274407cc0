"""Unit tests for pilot_engine.config."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from pilot_engine.config import PlatformEnv, Settings, StateStoreType, load_settings

# ---------------------------------------------------------------------------
# Settings - default values
# ---------------------------------------------------------------------------


class TestSettingsDefaults:
    def test_default_env(self):
        assert Settings().env == PlatformEnv.DEV

    def test_default_lifecycle_lengths(self):
        settings = Settings()
        assert settings.trial_days == 30
        assert settings.retention_days == 30
        assert settings.processing_delay_seconds == 20

    def test_default_store_is_local_sqlite(self):
        settings = Settings()
        assert settings.state_store_type == StateStoreType.SQL
        assert settings.database_url.startswith("sqlite+aiosqlite://")
        assert settings.uses_sql_store()

    def test_metering_file_unset(self):
        assert Settings().metering_file is None


# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------


class TestSettingsEnv:
    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PILOT_TRIAL_DAYS", "14")
        monkeypatch.setenv("PILOT_STATE_STORE_TYPE", "memory")
        monkeypatch.setenv("PILOT_FILE_STORAGE_PATH", "/var/lib/claimpilot")
        settings = Settings()
        assert settings.trial_days == 14
        assert settings.state_store_type == StateStoreType.MEMORY
        assert not settings.uses_sql_store()
        assert settings.file_storage_path == Path("/var/lib/claimpilot")

    def test_load_settings_overrides(self):
        settings = load_settings(retention_days=7, debug=True)
        assert settings.retention_days == 7
        assert settings.debug is True


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestSettingsValidation:
    @pytest.mark.parametrize("field", ["trial_days", "retention_days"])
    def test_day_counts_must_be_positive(self, field: str):
        with pytest.raises(ValidationError):
            Settings(**{field: 0})

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            Settings(processing_delay_seconds=-1)

    def test_zero_delay_allowed(self):
        assert Settings(processing_delay_seconds=0).processing_delay_seconds == 0
