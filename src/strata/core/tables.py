"""
Per-table operations: schema introspection, content hashing and bundles.

Manifesto:
    A table is the unit of change detection. Its hash is computed while
    rows stream past, a bundle is only written when that hash moved since
    the last one, and nothing here ever buffers a whole table.

Architecture:
    ::

        Table.backup(force=False)
          │
          ├── latest bundle hash == live hash ? ──> Ok(latest)   (no-op)
          │
          ├── open <name>-<epochMillis>.backup exclusively
          ├── header line (storage column names)
          ├── all() ──pipe──> encode_line() + TableHasher.update()
          │     └─ done callback closes the file on END / CLOSE / ERROR
          ├── concurrently: database version, git identity
          └── <name>-<epochMillis>.metadata written last (commit marker)

    Rows stream in the dialect's natural order (``rowid`` / ``ctid``), or in
    primary key order for SQLite ``WITHOUT ROWID`` tables, so an unmodified
    table hashes the same across runs.

Guardrails:
    ❌ ``await table.drop()`` on a table that still has rows
    ✅ ``await table.clear()`` then ``await table.drop()``, after a backup

Tags:
    strata-core, tables, backup, hashing, streaming

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
import re
import time
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from strata.core.backups import DATA_SUFFIX, METADATA_SUFFIX, RestoreOutcome, TableBackup
from strata.core.encoding import encode_line
from strata.core.errors import BackupError, NotInitializedError, QueryCompileError, UnsafeDrop
from strata.core.hashing import TableHasher
from strata.core.logging import get_logger
from strata.core.metadata import ColumnSchema, TableMetadata
from strata.core.naming import to_caller, to_storage
from strata.core.query import Query
from strata.core.result import Err, Ok, Result
from strata.core.streaming import RowStreamer, failed

if TYPE_CHECKING:
    from strata.core.database import Database

logger = get_logger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def is_table_name(name: str) -> bool:
    return bool(_IDENTIFIER.match(name))


class Table:
    """One named table of a :class:`~strata.core.database.Database`.

    ``name`` may be written in caller style (``teamMember``) or storage
    style (``team_member``); SQL always uses :attr:`storage_name`.

    Raises:
        QueryCompileError: ``name`` is not a plain identifier
    """

    def __init__(self, name: str, database: Database):
        if not is_table_name(name):
            raise QueryCompileError(f"Invalid table name: {name!r}")
        self.name = name
        self._db = database

    def __repr__(self) -> str:
        return f"Table({self.name!r})"

    @property
    def storage_name(self) -> str:
        return to_storage(self.name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    async def get_schema(self) -> Result[list[ColumnSchema]]:
        """Live ``(columnName, dataType)`` pairs in declaration order."""
        if (gate := self._db.ensure_initialized("table.get_schema")) is not None:
            return gate
        query = Query.build(self._db.dialect.columns_query(), self.storage_name)
        match await self._db.driver.query(query):
            case Ok(result):
                return Ok(
                    [
                        ColumnSchema(column_name=row["columnName"], data_type=row["dataType"] or "")
                        for row in result.rows
                    ]
                )
            case Err(error):
                return Err(error)

    async def exists(self) -> Result[bool]:
        return (await self.get_schema()).map(bool)

    async def has_schema(self, columns: list[ColumnSchema]) -> Result[bool]:
        """True when the live schema matches ``columns`` exactly, order included."""
        return (await self.get_schema()).map(lambda live: live == list(columns))

    def all(self) -> RowStreamer[dict[str, Any]]:
        """Stream every row in natural order, or primary key order where the table has no row id."""
        if not self._db.initialized:
            return failed(NotInitializedError("table.all"), label=self.storage_name)
        return RowStreamer(self._ordered_rows(), label=self.storage_name)

    async def _ordered_rows(self) -> AsyncIterator[dict[str, Any]]:
        order = (await self._order_by()).unwrap()
        rows = self._db.driver.stream(Query(f"SELECT * FROM {self.storage_name} ORDER BY {order}"))
        try:
            async for row in rows:
                yield row
        finally:
            await rows.aclose()

    async def _order_by(self) -> Result[str]:
        dialect = self._db.dialect
        key_query = dialect.key_order_query()
        if key_query is None:
            return Ok(dialect.natural_order())
        match await self._db.driver.query(Query.build(key_query, self.storage_name)):
            case Ok(result):
                keys = [row["columnName"] for row in result.rows]
            case Err(error):
                return Err(error)
        return Ok(", ".join(keys) or dialect.natural_order())

    async def count(self) -> Result[int]:
        if (gate := self._db.ensure_initialized("table.count")) is not None:
            return gate
        result = await self._db.driver.query(Query(f"SELECT COUNT(*) AS total FROM {self.storage_name}"))
        return result.map(lambda r: int(r.first()["total"]))

    async def get_hash(self) -> Result[str]:
        """Hash of every row in natural order; see :mod:`strata.core.hashing`."""
        hasher = TableHasher()
        return (await self.all().pipe(hasher.update)).map(lambda _rows: hasher.hexdigest())

    # ------------------------------------------------------------------
    # Bundles
    # ------------------------------------------------------------------

    def get_backups(self) -> list[TableBackup]:
        """Committed bundles of this table in ``backups_dir``, oldest first."""
        directory = self._db.backups_dir
        if not directory.is_dir():
            return []
        backups = []
        for path in directory.glob(f"{self.storage_name}-*{METADATA_SUFFIX}"):
            table_name, _, millis = path.stem.rpartition("-")
            if table_name == self.storage_name and millis.isdigit():
                backups.append(TableBackup(path.stem, directory, self._db))
        return sorted(backups, key=lambda b: b.created_ms)

    def latest_backup(self) -> TableBackup | None:
        backups = self.get_backups()
        return backups[-1] if backups else None

    async def backup(self, force: bool = False) -> Result[TableBackup]:
        """Write a bundle of the current rows, or reuse the latest one if unchanged."""
        if (gate := self._db.ensure_initialized("table.backup")) is not None:
            return gate

        if not force:
            reused = await self._reusable_backup()
            if reused.is_err() or reused.value is not None:
                return reused

        match await self.get_schema():
            case Ok(columns) if columns:
                pass
            case Ok(_):
                return Err(BackupError(f"Table '{self.storage_name}' does not exist").with_context(table=self.name))
            case Err(error):
                return Err(error)

        try:
            backup, handle = self._allocate(self._db.backups_dir)
        except OSError as e:
            return Err(BackupError(f"Cannot create bundle for '{self.storage_name}': {e}", cause=e))

        header = [c.column_name for c in columns]
        keys = [to_caller(name) for name in header]
        hasher = TableHasher()

        def write(row: dict[str, Any]) -> None:
            hasher.update(row)
            handle.write(encode_line(row.get(key) for key in keys) + "\n")

        stream = self.all()
        stream.add_done_callback(lambda _event, _error: handle.close())
        try:
            handle.write(encode_line(header) + "\n")
        except OSError as e:
            await stream.aclose()
            backup.delete_files()
            return Err(BackupError(f"Cannot write bundle header: {e}", cause=e).with_context(filename=backup.filename))

        piped, version, identity = await asyncio.gather(
            stream.pipe(write),
            self._db.get_version(),
            self._db.git.identity(),
        )
        for outcome in (piped, version):
            if outcome.is_err():
                backup.delete_files()
                logger.warning("backup.failed", table=self.storage_name, error=str(outcome.error))
                return Err(outcome.error)

        metadata = TableMetadata(
            name=self.storage_name,
            branch=identity.branch,
            commit=identity.commit,
            date=datetime.fromtimestamp(backup.created_ms / 1000, tz=UTC),
            hash=hasher.hexdigest(),
            version=version.value,
            columns=columns,
        )
        written = backup.write_metadata(metadata)
        if written.is_err():
            backup.delete_files()
            return Err(written.error)

        logger.info("backup.created", table=self.storage_name, filename=backup.filename, rows=piped.value)
        return Ok(backup)

    async def _reusable_backup(self) -> Result[TableBackup | None]:
        latest = self.latest_backup()
        if latest is None:
            return Ok(None)
        match latest.load_metadata():
            case Ok(metadata):
                recorded = metadata.hash
            case Err(error):
                logger.warning("backup.unreadable", filename=latest.filename, error=str(error))
                return Ok(None)
        match await self.get_hash():
            case Ok(current) if current == recorded:
                logger.info("backup.reused", table=self.storage_name, filename=latest.filename)
                return Ok(latest)
            case Ok(_):
                return Ok(None)
            case Err(error):
                return Err(error)

    def _allocate(self, directory: Path) -> tuple[TableBackup, Any]:
        """Claim a fresh ``<name>-<epochMillis>`` stem, bumping the stamp on collision."""
        directory.mkdir(parents=True, exist_ok=True)
        millis = time.time_ns() // 1_000_000
        while True:
            backup = TableBackup(f"{self.storage_name}-{millis}", directory, self._db)
            try:
                handle = open(backup.data_path, "x", encoding="utf-8", newline="")
            except FileExistsError:
                millis += 1
                continue
            if backup.metadata_path.exists():
                handle.close()
                backup.data_path.unlink()
                millis += 1
                continue
            return backup, handle

    async def restore(self, backup: TableBackup | None = None) -> Result[RestoreOutcome]:
        """Restore ``backup``, or this table's latest bundle."""
        backup = backup or self.latest_backup()
        if backup is None:
            return Err(BackupError(f"No backup found for table '{self.storage_name}'").with_context(table=self.name))
        return await backup.restore()

    # ------------------------------------------------------------------
    # Destructive operations
    # ------------------------------------------------------------------

    async def clear(self) -> Result[None]:
        """Delete every row; the schema stays."""
        if (gate := self._db.ensure_initialized("table.clear")) is not None:
            return gate
        result = await self._db.driver.query(Query(f"DELETE FROM {self.storage_name}"))
        return result.map(lambda _r: None)

    async def drop(self) -> Result[None]:
        """Drop the table. Refused with :class:`UnsafeDrop` while it holds rows."""
        if (gate := self._db.ensure_initialized("table.drop")) is not None:
            return gate
        match await self._db.driver.query(Query(f"SELECT 1 AS present FROM {self.storage_name} LIMIT 1")):
            case Ok(result) if len(result):
                logger.warning("table.drop_refused", table=self.storage_name)
                return Err(UnsafeDrop(self.storage_name))
            case Err(error):
                return Err(error)
        result = await self._db.driver.query(Query(f"DROP TABLE {self.storage_name}"))
        return result.map(lambda _r: None)


def bundle_stems(directory: Path) -> list[str]:
    """Stems of every committed bundle directly inside ``directory``."""
    return sorted(
        path.stem
        for path in directory.glob(f"*{METADATA_SUFFIX}")
        if path.with_suffix(DATA_SUFFIX).is_file()
    )


__all__ = [
    "Table",
    "bundle_stems",
    "is_table_name",
]
