"""Tests for ``strata.core.migrations.runner``."""

from __future__ import annotations

import pytest

from strata.core.errors import MigrationFailed
from strata.core.migrations import MigrationRunner
from strata.core.versions import Version, VersionRegistry


async def create_team(db):
    (await db.unsafe.run("CREATE TABLE team (id INTEGER PRIMARY KEY, team_name TEXT)")).unwrap()


async def add_team(db):
    (await db.unsafe.run("INSERT INTO team (teamName) VALUES (?)", "alpha")).unwrap()


def add_score_column(db):
    # synchronous steps are allowed too
    add_score_column.calls += 1


add_score_column.calls = 0


@pytest.fixture
def registry():
    async def add_index(db):
        (await db.unsafe.run("CREATE INDEX team_name_idx ON team (team_name)")).unwrap()

    add_score_column.calls = 0
    # registered out of order on purpose
    return VersionRegistry(
        [
            Version("index team names", 2, 0, 0, add_index),
            Version("create team", 1, 0, 0, create_team),
            Version("score column", 1, 0, 1, add_score_column),
        ]
    )


class TestApplyPending:
    @pytest.mark.asyncio
    async def test_applies_in_order(self, make_database, registry):
        db = make_database(versions=registry)
        try:
            result = (await db.init()).unwrap()
            assert result.applied == ["1.0.0", "1.0.1", "2.0.0"]
            assert result.skipped == []
            assert result.current == "2.0.0"
            assert add_score_column.calls == 1
            assert (await db.get_version()).unwrap() == (2, 0, 0)
            # one whole-database backup before each step
            assert len(db.get_backups()) == 3
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_runs_only_newer_versions(self, database, registry):
        await create_team(database)
        (await database.set_version((1, 0, 1))).unwrap()

        result = (await MigrationRunner(database, registry).apply_pending()).unwrap()

        assert result.applied == ["2.0.0"]
        assert result.skipped == ["1.0.0", "1.0.1"]
        assert add_score_column.calls == 0

    @pytest.mark.asyncio
    async def test_restart_does_not_reapply(self, make_database, registry):
        first = make_database(versions=registry)
        (await first.init()).unwrap()
        await first.close()

        second = make_database(versions=registry)
        try:
            result = (await second.init()).unwrap()
            assert result.applied == []
            assert result.skipped == ["1.0.0", "1.0.1", "2.0.0"]
            assert add_score_column.calls == 1
        finally:
            await second.close()

    @pytest.mark.asyncio
    async def test_pending(self, database, registry):
        (await database.set_version((1, 0, 0))).unwrap()
        pending = (await MigrationRunner(database, registry).pending()).unwrap()
        assert [v.label for v in pending] == ["1.0.1", "2.0.0"]

    @pytest.mark.asyncio
    async def test_init_without_migrations(self, make_database, registry):
        db = make_database(versions=registry)
        try:
            result = (await db.init(run_migrations=False)).unwrap()
            assert result.applied == []
            assert (await db.get_version()).unwrap() == (0, 0, 0)
        finally:
            await db.close()


class TestFailure:
    @pytest.mark.asyncio
    async def test_failed_step_is_rolled_back(self, make_database):
        reached = []

        async def first(db):
            await create_team(db)
            await add_team(db)

        async def broken(db):
            await add_team(db)
            raise RuntimeError("column does not exist")

        async def never(db):
            reached.append("1.0.2")

        registry = VersionRegistry(
            [
                Version("create team", 1, 0, 0, first),
                Version("broken", 1, 0, 1, broken),
                Version("never", 1, 0, 2, never),
            ]
        )
        db = make_database(versions=registry)
        try:
            result = await db.init()

            assert isinstance(result.error, MigrationFailed)
            assert result.error.version == "1.0.1"
            assert isinstance(result.error.cause, RuntimeError)
            assert result.error.context.metadata["applied"] == ["1.0.0"]
            assert reached == []

            assert db.initialized
            assert (await db.get_version()).unwrap() == (1, 0, 0)
            assert (await db.table("team").count()).unwrap() == 1
        finally:
            await db.close()
