"""
Shared pytest fixtures for strata tests.

This module provides:
- A fixed git identity so bundle metadata is deterministic
- An initialized SQLite-backed ``Database`` in a temporary directory
- A ``team`` table with a few rows for backup / restore tests
- Settings-cache isolation

Usage:
    Fixtures are auto-discovered by pytest::

        @pytest.mark.asyncio
        async def test_something(team_db):
            ...
"""

from __future__ import annotations

import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest
import pytest_asyncio

from strata.core.adapters.sqlite import SQLiteDriver
from strata.core.database import Database
from strata.core.git import GitIdentity, GitReader
from strata.core.query import QueryRegistry
from strata.core.settings import clear_settings_cache
from strata.core.versions import VersionRegistry


# =============================================================================
# Test Markers Configuration
# =============================================================================


_DATABASE_FIXTURES = {"database", "team_db", "make_database", "cli_env"}


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Tests touching a real database file are integration tests; the rest are unit tests."""
    for item in items:
        markers = {mark.name for mark in item.iter_markers()}
        if markers.intersection({"unit", "integration"}):
            continue
        fixtures = set(getattr(item, "fixturenames", ()))
        if fixtures.intersection(_DATABASE_FIXTURES):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch):
    """Each test starts with an empty settings cache and no STRATA_* overrides."""
    for key in list(os.environ):
        if key.startswith("STRATA_"):
            monkeypatch.delenv(key, raising=False)
    clear_settings_cache()
    yield
    clear_settings_cache()


class FixedGit(GitReader):
    """Git reader that never shells out."""

    def __init__(self, branch: str = "main", commit: str = "abc1234"):
        super().__init__()
        self._identity = GitIdentity(branch=branch, commit=commit)

    async def identity(self) -> GitIdentity:
        return self._identity


# =============================================================================
# Database Fixtures
# =============================================================================

TEAM_DDL = "CREATE TABLE team (id INTEGER PRIMARY KEY, team_name TEXT, score REAL, active BOOLEAN)"
TEAM_ROWS = [
    (1, "alpha", 1.5, True),
    (2, "beta, the second", None, False),
    (3, "gamma\nline two", 3.0, True),
]


@pytest.fixture
def team_rows() -> list[tuple]:
    return list(TEAM_ROWS)


@pytest.fixture
def queries_dir(tmp_path: Path) -> Path:
    root = tmp_path / "queries"
    (root / "team").mkdir(parents=True)
    (root / "team" / "by-name.sql").write_text(
        "-- one team by its name\nSELECT id, teamName, score FROM team WHERE teamName = :teamName\n"
    )
    (root / "team" / "all.sql").write_text("SELECT id, teamName FROM team ORDER BY id\n")
    (root / "team" / "insert.sql").write_text("INSERT INTO team (id, teamName) VALUES (?, ?)\n")
    return root


@pytest.fixture
def make_database(tmp_path: Path, queries_dir: Path):
    """Factory for uninitialized SQLite databases sharing one file under ``tmp_path``."""

    def factory(*, versions: VersionRegistry | None = None) -> Database:
        return Database(
            SQLiteDriver(str(tmp_path / "strata.sqlite3")),
            queries=QueryRegistry(queries_dir),
            versions=versions,
            backups_dir=tmp_path / "backups",
            git=FixedGit(),
        )

    return factory


@pytest_asyncio.fixture
async def database(make_database) -> AsyncIterator[Database]:
    """Initialized SQLite database with bootstrap tables only."""
    db = make_database()
    (await db.init()).unwrap()
    yield db
    await db.close()


@pytest_asyncio.fixture
async def team_db(database: Database) -> Database:
    """``database`` plus a populated ``team`` table."""
    (await database.unsafe.run(TEAM_DDL)).unwrap()
    for row in TEAM_ROWS:
        (await database.unsafe.run("INSERT INTO team (id, teamName, score, active) VALUES (?, ?, ?, ?)", *row)).unwrap()
    return database
