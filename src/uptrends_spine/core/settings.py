"""Process-level settings for uptrends-spine.

The poller document (schedule, operations, auth) lives in a YAML file and is
validated by :mod:`uptrends_spine.polling.config`. Everything that tunes the
*process* rather than the polling job — log level, HTTP timeouts, where the
YAML file is — comes from ``UPTRENDS_*`` environment variables or a ``.env``
file through pydantic-settings.

Examples:
    >>> import os
    >>> os.environ["UPTRENDS_LOG_LEVEL"] = "DEBUG"
    >>> get_settings(_force_reload=True).log_level
    'DEBUG'

Tags:
    settings, configuration, pydantic, environment, uptrends-spine
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class UptrendsSettings(BaseSettings):
    """Settings shared by the CLI and the poller.

    Fields
    ──────
    log_level               : structlog log level
    log_format              : json | console | auto (json when not a tty)
    request_timeout_seconds : per-request timeout handed to the HTTP client
    automatic_retries       : connection-level retries inside the HTTP client
    pool_max                : max concurrent connections per cycle
    user_agent              : User-Agent header sent with every request
    config_file             : default poller YAML document
    """

    model_config = SettingsConfigDict(
        env_prefix="UPTRENDS_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Observability ────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="auto")

    # ── HTTP client ──────────────────────────────────────────────
    request_timeout_seconds: float = Field(default=60.0, gt=0)
    automatic_retries: int = Field(default=1, ge=0)
    pool_max: int = Field(default=50, ge=1)
    user_agent: str = Field(default="uptrends-spine")

    # ── Paths ────────────────────────────────────────────────────
    config_file: Path = Field(
        default=Path("uptrends.yaml"),
        description="Poller document read by `uptrends-spine run`",
    )

    @field_validator("log_level")
    @classmethod
    def _normalize_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("log_format")
    @classmethod
    def _check_format(cls, v: str) -> str:
        fmt = v.lower()
        if fmt not in {"json", "console", "auto"}:
            raise ValueError(f"log_format must be json, console or auto, got {v}")
        return fmt

    @property
    def json_logs(self) -> bool | None:
        """Value for ``configure_logging(json_format=...)``."""
        return {"json": True, "console": False}.get(self.log_format)


_settings_cache: dict[str, UptrendsSettings] = {}


def get_settings(*, _force_reload: bool = False) -> UptrendsSettings:
    """Load, validate, and cache a :class:`UptrendsSettings` instance."""
    if _force_reload or "default" not in _settings_cache:
        _settings_cache["default"] = UptrendsSettings()
    return _settings_cache["default"]


def clear_settings_cache() -> None:
    """Drop the cached settings (used by tests)."""
    _settings_cache.clear()
