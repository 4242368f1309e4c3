"""
Centralized settings for strata.

Manifesto:
    One validated, cached settings object feeds the driver factory, the
    backup directory, the query and version registries, logging and the
    CLI. Values come from ``STRATA_*`` environment variables or a ``.env``
    file; nothing else reads the environment.

Examples:
    >>> import os
    >>> os.environ["STRATA_DATABASE_URL"] = "sqlite:///app.sqlite3"
    >>> get_settings(_force_reload=True).database_config().path
    'app.sqlite3'

Tags:
    strata-core, configuration, settings, pydantic, caching

Doc-Types:
    api-reference
"""

from __future__ import annotations

from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from strata.core.adapters.types import DatabaseConfig


class StrataSettings(BaseSettings):
    """strata configuration.

    All fields can be set via ``STRATA_*`` environment variables (e.g.
    ``STRATA_DATABASE_URL=postgresql://app@localhost/app``) or a ``.env`` file.
    """

    model_config = SettingsConfigDict(
        env_prefix="STRATA_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Database ─────────────────────────────────────────────────
    database_url: str = Field(default="sqlite:///strata.sqlite3")
    pool_size: int = Field(default=5, ge=1, description="PostgreSQL pool size")
    stream_prefetch: int = Field(default=500, ge=1, description="Rows fetched per server-side cursor round-trip")

    # ── Paths ────────────────────────────────────────────────────
    backups_dir: Path = Field(default=Path("backups"))
    queries_dir: Path | None = Field(default=None, description="Root of named *.sql templates")
    versions_dir: Path | None = Field(default=None, description="Directory of version modules")

    # ── Backups ──────────────────────────────────────────────────
    zip_backups: bool = Field(default=False)
    git_fallback: str = Field(default="unknown", description="Branch/commit recorded when git is unavailable")

    # ── Logging ──────────────────────────────────────────────────
    log_level: str = Field(default="INFO")
    json_logs: bool | None = Field(default=None, description="Force JSON (true) or console (false) output")

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()

    def database_config(self) -> DatabaseConfig:
        """Parse ``database_url`` into a :class:`DatabaseConfig`.

        Raises:
            ConfigError: unsupported or incomplete URL
        """
        return DatabaseConfig.from_url(
            self.database_url,
            pool_size=self.pool_size,
            prefetch=self.stream_prefetch,
        )


# ── Settings factory with caching ────────────────────────────────────────

_settings_cache: dict[str, StrataSettings] = {}


def get_settings(*, env_file: Path | str | None = None, _force_reload: bool = False) -> StrataSettings:
    """Load, validate, and cache a :class:`StrataSettings` instance.

    Parameters
    ----------
    env_file:
        Read this file instead of ``./.env``.
    _force_reload:
        Bypass cache and reload from the environment.
    """
    cache_key = str(env_file or "")
    if not _force_reload and cache_key in _settings_cache:
        return _settings_cache[cache_key]

    if env_file is not None:
        settings = StrataSettings(_env_file=env_file)  # type: ignore[call-arg]
    else:
        settings = StrataSettings()
    _settings_cache[cache_key] = settings
    return settings


def clear_settings_cache() -> None:
    """Clear the settings cache (useful in tests)."""
    _settings_cache.clear()


__all__ = [
    "StrataSettings",
    "clear_settings_cache",
    "get_settings",
]
