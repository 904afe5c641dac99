"""
Process settings for meditime.

All fields can be set via ``MEDITIME_*`` environment variables or a
``.env`` file. The store path and Pushover token also accept the
unprefixed ``BADGER_PATH`` / ``PUSHOVER_API_TOKEN`` names used by earlier
deployments.

Tags:
    meditime, configuration, settings, pydantic
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ConfigError, MissingConfigError

PUSHOVER_MESSAGES_URL = "https://api.pushover.net/1/messages.json"


class MeditimeSettings(BaseSettings):
    """meditime configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MEDITIME_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # ── Storage ──────────────────────────────────────────────────
    store_path: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("MEDITIME_STORE_PATH", "BADGER_PATH", "store_path"),
        description="Path of the record store file",
    )
    compaction_interval_seconds: float = Field(default=3600.0, gt=0)

    # ── Pushover ─────────────────────────────────────────────────
    pushover_api_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices(
            "MEDITIME_PUSHOVER_API_TOKEN", "PUSHOVER_API_TOKEN", "pushover_api_token"
        ),
    )
    pushover_api_url: str = Field(default=PUSHOVER_MESSAGES_URL)
    pushover_timeout_seconds: float = Field(default=10.0, gt=0)

    # ── Scheduler ────────────────────────────────────────────────
    drain_timeout_seconds: float | None = Field(
        default=None,
        description="Upper bound on waiting for in-flight firings at shutdown (None waits forever)",
    )
    max_sleep_seconds: float = Field(default=60.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: Literal["console", "json"] = Field(default="console")

    def require_store_path(self) -> Path:
        """Return the store path or raise MissingConfigError."""
        if self.store_path is None:
            raise MissingConfigError(
                "MEDITIME_STORE_PATH",
                "unable to get store path from env variable MEDITIME_STORE_PATH (or BADGER_PATH): "
                "environment variable is not set",
            )
        return self.store_path

    def require_pushover_token(self) -> str:
        """Return the Pushover API token or raise MissingConfigError."""
        if not self.pushover_api_token:
            raise MissingConfigError(
                "MEDITIME_PUSHOVER_API_TOKEN",
                "unable to get pushover API token from env variable MEDITIME_PUSHOVER_API_TOKEN "
                "(or PUSHOVER_API_TOKEN): environment variable is not set",
            )
        return self.pushover_api_token


def load_settings(**overrides: object) -> MeditimeSettings:
    """Load settings from the environment, raising ConfigError on bad values."""
    try:
        return MeditimeSettings(**overrides)
    except ValidationError as exc:
        raise ConfigError(f"invalid configuration: {exc}", cause=exc) from exc


__all__ = ["MeditimeSettings", "load_settings", "PUSHOVER_MESSAGES_URL"]
