"""Tests for ``strata.core.backups``: bundle files and the table restore protocol."""

from __future__ import annotations

import json

import pytest

from strata.core.backups import RestoreOutcome, TableBackup, coerce_value
from strata.core.errors import BackupError, BackupNotFoundError, MalformedMetadata, VersionMismatch

EXPECTED_ROWS = [
    {"id": 1, "teamName": "alpha", "score": 1.5, "active": 1},
    {"id": 2, "teamName": "beta, the second", "score": None, "active": 0},
    {"id": 3, "teamName": "gamma\nline two", "score": 3.0, "active": 1},
]


async def team_rows(db):
    return (await db.unsafe.all("SELECT id, teamName, score, active FROM team ORDER BY id")).unwrap()


class TestCoerceValue:
    def test_integers(self):
        assert coerce_value("42", "INTEGER") == 42
        assert coerce_value("-7", "bigint") == -7

    def test_integer_column_keeps_reals_and_text(self):
        assert coerce_value("1.5", "INTEGER") == 1.5
        assert coerce_value("abc", "INTEGER") == "abc"
        assert coerce_value("1_000", "INTEGER") == "1_000"

    def test_booleans(self):
        assert coerce_value("true", "boolean") is True
        assert coerce_value("t", "BOOLEAN") is True
        assert coerce_value("1", "bool") is True
        assert coerce_value("false", "boolean") is False
        assert coerce_value("0", "BOOLEAN") is False

    def test_everything_else_stays_text(self):
        assert coerce_value("1.5", "REAL") == "1.5"
        assert coerce_value("2024-01-01", "timestamp with time zone") == "2024-01-01"
        assert coerce_value("x", "") == "x"

    def test_null_and_bytes_pass_through(self):
        assert coerce_value(None, "INTEGER") is None
        assert coerce_value(b"\x00", "BLOB") == b"\x00"


class TestTableBackupFiles:
    @pytest.mark.asyncio
    async def test_paths_and_stamp(self, team_db):
        backup = (await team_db.table("team").backup()).unwrap()
        assert backup.data_path.name == f"{backup.filename}.backup"
        assert backup.metadata_path.name == f"{backup.filename}.metadata"
        assert backup.created_ms == int(backup.filename.rpartition("-")[2])
        assert TableBackup.from_path(backup.data_path, team_db) == backup

    @pytest.mark.asyncio
    async def test_read_rows(self, team_db):
        backup = (await team_db.table("team").backup()).unwrap()
        rows = (await backup.read_rows().collect()).unwrap()
        assert rows[1] == {"id": "2", "team_name": "beta, the second", "score": None, "active": "0"}
        assert len(rows) == 3

    @pytest.mark.asyncio
    async def test_read_rows_field_count_mismatch(self, team_db):
        backup = (await team_db.table("team").backup()).unwrap()
        with backup.data_path.open("a", encoding="utf-8", newline="") as handle:
            handle.write("4,only-two\n")
        result = await backup.read_rows().collect()
        assert isinstance(result.error, BackupError)
        assert ":5:" in str(result.error)

    @pytest.mark.asyncio
    async def test_read_rows_missing_file(self, team_db):
        backup = (await team_db.table("team").backup()).unwrap()
        backup.data_path.unlink()
        assert isinstance((await backup.read_rows().collect()).error, BackupNotFoundError)

    @pytest.mark.asyncio
    async def test_missing_metadata(self, team_db, tmp_path):
        result = TableBackup("team-1", tmp_path, team_db).load_metadata()
        assert isinstance(result.error, BackupNotFoundError)

    @pytest.mark.asyncio
    async def test_malformed_metadata(self, team_db):
        backup = (await team_db.table("team").backup()).unwrap()
        raw = json.loads(backup.metadata_path.read_text(encoding="utf-8"))
        del raw["hash"]
        backup.metadata_path.write_text(json.dumps(raw), encoding="utf-8")

        fresh = TableBackup.from_path(backup.metadata_path, team_db)
        result = fresh.load_metadata()
        assert isinstance(result.error, MalformedMetadata)
        assert "hash" in result.error.reason
        assert isinstance((await fresh.restore()).error, MalformedMetadata)

    @pytest.mark.asyncio
    async def test_copy(self, team_db, tmp_path):
        backup = (await team_db.table("team").backup()).unwrap()
        copied = backup.copy(tmp_path / "elsewhere").unwrap()
        assert copied.exists()
        assert copied.filename == backup.filename
        assert copied.data_path.read_bytes() == backup.data_path.read_bytes()

    @pytest.mark.asyncio
    async def test_delete_files(self, team_db):
        backup = (await team_db.table("team").backup()).unwrap()
        backup.delete_files()
        assert not backup.exists()
        assert team_db.table("team").get_backups() == []


class TestRestore:
    @pytest.mark.asyncio
    async def test_unchanged_table_is_skipped(self, team_db):
        table = team_db.table("team")
        backup = (await table.backup()).unwrap()
        assert (await backup.restore()).unwrap() is RestoreOutcome.SKIPPED
        assert table.get_backups() == [backup]

    @pytest.mark.asyncio
    async def test_round_trip(self, team_db):
        table = team_db.table("team")
        backup = (await table.backup()).unwrap()
        recorded = backup.load_metadata().unwrap().hash

        await team_db.unsafe.run("INSERT INTO team (id, teamName) VALUES (?, ?)", 4, "delta")
        await team_db.unsafe.run("UPDATE team SET teamName = ? WHERE id = ?", "renamed", 1)

        assert (await backup.restore()).unwrap() is RestoreOutcome.RESTORED
        assert (await table.get_hash()).unwrap() == recorded
        assert await team_rows(team_db) == EXPECTED_ROWS

    @pytest.mark.asyncio
    async def test_safety_backup_holds_replaced_rows(self, team_db):
        table = team_db.table("team")
        backup = (await table.backup()).unwrap()
        await team_db.unsafe.run("DELETE FROM team WHERE id = ?", 3)

        (await backup.restore()).unwrap()

        safety = table.latest_backup()
        assert safety != backup
        rows = (await safety.read_rows().collect()).unwrap()
        assert [r["id"] for r in rows] == ["1", "2"]

    @pytest.mark.asyncio
    async def test_restore_recreates_dropped_table(self, team_db):
        table = team_db.table("team")
        backup = (await table.backup()).unwrap()
        (await table.clear()).unwrap()
        (await table.drop()).unwrap()

        assert (await backup.restore()).unwrap() is RestoreOutcome.RESTORED
        assert await team_rows(team_db) == EXPECTED_ROWS

    @pytest.mark.asyncio
    async def test_version_mismatch_touches_nothing(self, team_db):
        table = team_db.table("team")
        backup = (await table.backup()).unwrap()
        (await team_db.set_version((1, 0, 0))).unwrap()
        await team_db.unsafe.run("DELETE FROM team WHERE id = ?", 1)
        before = (await table.get_hash()).unwrap()

        result = await backup.restore()

        assert isinstance(result.error, VersionMismatch)
        assert result.error.backup_version == (0, 0, 0)
        assert result.error.live_version == (1, 0, 0)
        assert (await table.get_hash()).unwrap() == before
        assert table.get_backups() == [backup]

    @pytest.mark.asyncio
    async def test_failed_replay_reports_safety_backup(self, team_db):
        table = team_db.table("team")
        backup = (await table.backup()).unwrap()
        await team_db.unsafe.run("DELETE FROM team WHERE id = ?", 1)
        with backup.data_path.open("a", encoding="utf-8", newline="") as handle:
            handle.write("broken\n")

        result = await backup.restore()

        assert isinstance(result.error, BackupError)
        safety = result.error.context.metadata["safety_backup"]
        assert safety in [b.filename for b in table.get_backups()]
        assert (await table.count()).unwrap() == 2

    @pytest.mark.asyncio
    async def test_failed_replay_puts_live_rows_back(self, team_db):
        table = team_db.table("team")
        backup = (await table.backup()).unwrap()
        lines = backup.data_path.read_text(encoding="utf-8").splitlines(keepends=True)
        lines[2] = "broken\n"
        backup.data_path.write_text("".join(lines), encoding="utf-8")
        await team_db.unsafe.run("INSERT INTO team (id, teamName) VALUES (?, ?)", 4, "delta")
        before = (await table.get_hash()).unwrap()

        result = await backup.restore()

        assert isinstance(result.error, BackupError)
        assert (await table.count()).unwrap() == 4
        assert (await table.get_hash()).unwrap() == before

    @pytest.mark.asyncio
    async def test_fractional_value_in_integer_column(self, database):
        (await database.unsafe.run("CREATE TABLE reading (id INTEGER, level INTEGER)")).unwrap()
        (await database.unsafe.run("INSERT INTO reading (id, level) VALUES (?, ?)", 1, 1.5)).unwrap()
        table = database.table("reading")
        backup = (await table.backup()).unwrap()
        (await database.unsafe.run("INSERT INTO reading (id, level) VALUES (?, ?)", 2, 7)).unwrap()

        assert (await backup.restore()).unwrap() is RestoreOutcome.RESTORED
        rows = (await database.unsafe.all("SELECT id, level FROM reading ORDER BY id")).unwrap()
        assert rows == [{"id": 1, "level": 1.5}]

    @pytest.mark.asyncio
    async def test_table_restore_uses_latest(self, team_db):
        table = team_db.table("team")
        (await table.backup()).unwrap()
        await team_db.unsafe.run("DELETE FROM team")
        assert (await table.restore()).unwrap() is RestoreOutcome.RESTORED
        assert (await table.count()).unwrap() == 3

    @pytest.mark.asyncio
    async def test_table_restore_without_backups(self, team_db):
        result = await team_db.table("team").restore()
        assert isinstance(result.error, BackupError)
