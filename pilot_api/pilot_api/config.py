"""API-layer configuration loaded from environment variables."""

from __future__ import annotations

from typing import Self

from pydantic import SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class APISettings(BaseSettings):
    """FastAPI application settings.

    All values can be overridden via environment variables prefixed with
    ``API_`` (e.g. ``API_SWEEPER_ENABLED=false``) or through a ``.env`` file in the
    working directory.  Engine settings (store, trial lengths) use the
    ``PILOT_`` prefix; see :class:`pilot_engine.config.Settings`.
    """

    model_config = SettingsConfigDict(
        env_prefix="API_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Origins permitted by the CORS middleware.
    cors_origins: list[str] = ["http://localhost:3000"]

    # Whether CORS responses include credentials (cookies, auth headers).
    cors_allow_credentials: bool = True

    # Shared secret for /admin routes.  Empty disables every admin route.
    admin_token: SecretStr = SecretStr("")

    # Run the lifecycle sweeper as a background task.
    sweeper_enabled: bool = True

    # Structured JSON logging for log aggregation.
    structured_logging: bool = False

    @model_validator(mode="after")
    def _validate_cors_credentials_not_wildcard(self) -> Self:
        """Reject wildcard origins when credentials are enabled.

        Browsers reject ``Access-Control-Allow-Origin: *`` together with
        ``Access-Control-Allow-Credentials: true``; fail at startup instead.
        """
        if self.cors_allow_credentials and "*" in self.cors_origins:
            raise ValueError(
                "Cannot use wildcard origins with credentials. "
                "Specify explicit origins instead of '*' when "
                "cors_allow_credentials=True."
            )
        return self


def load_api_settings() -> APISettings:
    """Construct settings from the environment / ``.env`` file."""
    return APISettings()
