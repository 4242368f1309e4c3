"""
Build a ready-to-init :class:`~strata.core.database.Database` from settings.

Features:
    - ``create_database()``: driver from ``database_url``, query registry
      from ``queries_dir``, version registry from ``versions_dir``, git
      reader with the configured fallback

Tags:
    strata-core, configuration, factory-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

from strata.core.adapters.registry import get_driver
from strata.core.database import Database
from strata.core.git import GitReader
from strata.core.query import QueryRegistry
from strata.core.settings import StrataSettings, get_settings
from strata.core.versions import VersionRegistry


def create_database(
    settings: StrataSettings | None = None,
    *,
    versions: VersionRegistry | None = None,
) -> Database:
    """Wire a :class:`Database` from *settings* (``get_settings()`` when omitted).

    An explicit *versions* registry takes precedence over ``versions_dir``.

    Raises:
        ConfigError: ``database_url`` cannot be parsed
    """
    settings = settings or get_settings()
    driver = get_driver(settings.database_config())

    if versions is None:
        versions = VersionRegistry()
        if settings.versions_dir is not None:
            versions.discover(settings.versions_dir)

    return Database(
        driver,
        queries=QueryRegistry(settings.queries_dir),
        versions=versions,
        backups_dir=settings.backups_dir,
        git=GitReader(fallback=settings.git_fallback),
    )


__all__ = [
    "create_database",
]
