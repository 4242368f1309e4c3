"""
Database façade.

Manifesto:
    Application code talks to one object. It runs named queries from the
    query registry, takes and restores whole-database backups, and moves the
    schema forward through registered versions. Every public operation
    returns a ``Result``; nothing a driver raises escapes this surface.

    Data access is gated on :meth:`Database.init`. Until it has created the
    bootstrap tables, every operation except ``connect``/``init`` fails fast
    with :class:`~strata.core.errors.NotInitializedError`.

Architecture:
    ::

        ┌──────────────────────────────── Database ───────────────────────────────┐
        │ get / all / run / stream   (named queries, QueryRegistry)                │
        │ unsafe.get / all / run     (raw SQL or Query)                           │
        │ init ─> bootstrap ─> MigrationRunner(VersionRegistry)                   │
        │ backup ─> Table.backup() x N ─> <backups_dir>/<UTC stamp>/ [.zip]        │
        │ restore ─> version pre-check ─> safety backup ─> TableBackup.restore xN  │
        └───────────────┬─────────────────────────────────────────────────────────┘
                        │ Query ($1..$n)
                        ▼
                 Driver (SQLite / PostgreSQL)

    Bootstrap tables:

    - ``version (major, minor, patch)``: at most one row; absent means 0.0.0
    - ``git_identity (branch, commit_id)``: refreshed on every ``init()``

Examples:
    >>> db = Database(SQLiteDriver("app.sqlite3"), queries=QueryRegistry("queries"))
    >>> (await db.init()).unwrap()
    >>> (await db.get("account/from-username", {"username": "ada"})).unwrap()
    {'accountId': 1, 'username': 'ada'}

Guardrails:
    ❌ Concurrent migrations and writes on one Database (no transaction wrapper)
    ✅ Run ``init()`` once at startup, before serving traffic

Tags:
    strata-core, database, facade, backup, restore, migrations

Doc-Types:
    api-reference
"""

from __future__ import annotations

import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from strata.core.adapters.base import Driver
from strata.core.backups import RestoreOutcome, TableBackup
from strata.core.dialect import Dialect
from strata.core.errors import (
    BackupError,
    BackupNotFoundError,
    NotInitializedError,
    ParameterCountMismatch,
    RowNotFoundError,
    VersionMismatch,
)
from strata.core.git import GitReader
from strata.core.logging import get_logger
from strata.core.migrations.runner import MigrationResult, MigrationRunner
from strata.core.query import Query, QueryRegistry
from strata.core.result import Err, Ok, Result, collect_results, gather_results, try_result
from strata.core.streaming import RowStreamer, failed
from strata.core.tables import Table, bundle_stems, is_table_name
from strata.core.versions import VersionRegistry, VersionTuple

logger = get_logger(__name__)

VERSION_TABLE = "version"
GIT_IDENTITY_TABLE = "git_identity"
BOOTSTRAP_TABLES = (VERSION_TABLE, GIT_IDENTITY_TABLE)

_BOOTSTRAP_DDL = (
    "CREATE TABLE IF NOT EXISTS version (major INTEGER NOT NULL, minor INTEGER NOT NULL, patch INTEGER NOT NULL)",
    "CREATE TABLE IF NOT EXISTS git_identity (branch TEXT NOT NULL, commit_id TEXT NOT NULL)",
)

# One directory per whole-database backup, named by its UTC creation time
BACKUP_STAMP = "%Y-%m-%dT%H-%M-%S-%fZ"


class UnsafeDatabase:
    """Raw SQL surface: templates or prebuilt :class:`Query` objects, no registry.

    Still gated on ``init()`` and still Result-returning; "unsafe" means
    the SQL is not reviewed through the query registry.
    """

    def __init__(self, database: Database):
        self._db = database

    def _compile(self, sql: Query | str, args: tuple[Any, ...]) -> Result[Query]:
        if isinstance(sql, Query):
            if args:
                return Err(ParameterCountMismatch(sql.sql, args, "A built Query takes no extra arguments"))
            return Ok(sql)
        return try_result(lambda: Query.build(sql, *args))

    async def all(self, sql: Query | str, *args: Any) -> Result[list[dict[str, Any]]]:
        if (gate := self._db.ensure_initialized("unsafe.all")) is not None:
            return gate
        return await self._db._fetch(self._compile(sql, args))

    async def get(self, sql: Query | str, *args: Any) -> Result[dict[str, Any]]:
        if (gate := self._db.ensure_initialized("unsafe.get")) is not None:
            return gate
        return await self._db._fetch_one(self._compile(sql, args), str(sql))

    async def run(self, sql: Query | str, *args: Any) -> Result[dict[str, Any] | None]:
        if (gate := self._db.ensure_initialized("unsafe.run")) is not None:
            return gate
        return (await self._db._fetch(self._compile(sql, args))).map(_first)

    def stream(self, sql: Query | str, *args: Any) -> RowStreamer[dict[str, Any]]:
        return self._db._stream(self._compile(sql, args), "unsafe.stream")


def _first(rows: list[dict[str, Any]]) -> dict[str, Any] | None:
    return rows[0] if rows else None


class Database:
    """The public façade over one driver connection.

    Args:
        driver: Connected or not yet connected driver
        queries: Named SQL templates for ``get``/``all``/``run``
        versions: Migration steps applied by ``init()``
        backups_dir: Root for table bundles and whole-database backups
        git: Source of the branch/commit recorded in bundles
    """

    def __init__(
        self,
        driver: Driver,
        *,
        queries: QueryRegistry | None = None,
        versions: VersionRegistry | None = None,
        backups_dir: Path | str = "backups",
        git: GitReader | None = None,
    ):
        self._driver = driver
        self._queries = queries if queries is not None else QueryRegistry()
        self._versions = versions if versions is not None else VersionRegistry()
        self._backups_dir = Path(backups_dir)
        self._git = git or GitReader()
        self._initialized = False
        self.unsafe = UnsafeDatabase(self)

    def __repr__(self) -> str:
        return f"Database(driver={self._driver.db_type.value}, initialized={self._initialized})"

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def driver(self) -> Driver:
        return self._driver

    @property
    def dialect(self) -> Dialect:
        return self._driver.dialect

    @property
    def queries(self) -> QueryRegistry:
        return self._queries

    @property
    def versions(self) -> VersionRegistry:
        return self._versions

    @property
    def backups_dir(self) -> Path:
        return self._backups_dir

    @property
    def git(self) -> GitReader:
        return self._git

    @property
    def initialized(self) -> bool:
        return self._initialized

    def ensure_initialized(self, operation: str) -> Err[Any] | None:
        """``Err(NotInitializedError)`` before ``init()``, else ``None``."""
        if self._initialized:
            return None
        logger.debug("database.not_initialized", operation=operation)
        return Err(NotInitializedError(operation))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> Result[bool]:
        return await self._driver.connect()

    async def close(self) -> None:
        await self._driver.close()

    async def __aenter__(self) -> Database:
        (await self.connect()).unwrap()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def init(self, run_migrations: bool = True) -> Result[MigrationResult]:
        """Create bootstrap tables, open the gate, then apply pending versions.

        Calling it again on an initialized database is a no-op.
        """
        if self._initialized:
            return Ok(MigrationResult())
        connected = await self.connect()
        if connected.is_err():
            return Err(connected.error)
        bootstrapped = await self._bootstrap()
        if bootstrapped.is_err():
            logger.error("database.init_failed", error=str(bootstrapped.error))
            return Err(bootstrapped.error)

        self._initialized = True
        logger.info("database.initialized", driver=self._driver.db_type.value, versions=len(self._versions))

        if not run_migrations or not len(self._versions):
            return Ok(MigrationResult())
        return await MigrationRunner(self, self._versions).apply_pending()

    async def _bootstrap(self) -> Result[None]:
        for ddl in _BOOTSTRAP_DDL:
            created = await self._driver.query(Query(ddl))
            if created.is_err():
                return Err(created.error)
        identity = await self._git.identity()
        for query in (
            Query.build("DELETE FROM gitIdentity"),
            Query.build("INSERT INTO gitIdentity (branch, commitId) VALUES (?, ?)", identity.branch, identity.commit),
        ):
            written = await self._driver.query(query)
            if written.is_err():
                return Err(written.error)
        return Ok(None)

    # ------------------------------------------------------------------
    # Named queries
    # ------------------------------------------------------------------

    def _named(self, name: str, args: tuple[Any, ...]) -> Result[Query]:
        return try_result(lambda: self._queries.build(name, *args))

    async def get(self, name: str, *args: Any) -> Result[dict[str, Any]]:
        """First row of the named query; ``RowNotFoundError`` when there is none."""
        if (gate := self.ensure_initialized("get")) is not None:
            return gate
        return await self._fetch_one(self._named(name, args), name)

    async def all(self, name: str, *args: Any) -> Result[list[dict[str, Any]]]:
        """Every row of the named query."""
        if (gate := self.ensure_initialized("all")) is not None:
            return gate
        return await self._fetch(self._named(name, args))

    async def run(self, name: str, *args: Any) -> Result[dict[str, Any] | None]:
        """Execute the named query; its first row if it returned any."""
        if (gate := self.ensure_initialized("run")) is not None:
            return gate
        return (await self._fetch(self._named(name, args))).map(_first)

    def stream(self, name: str, *args: Any) -> RowStreamer[dict[str, Any]]:
        return self._stream(self._named(name, args), "stream")

    async def _fetch(self, compiled: Result[Query]) -> Result[list[dict[str, Any]]]:
        match compiled:
            case Ok(query):
                return (await self._driver.query(query)).map(lambda r: r.rows)
            case Err(error):
                return Err(error)

    async def _fetch_one(self, compiled: Result[Query], label: str) -> Result[dict[str, Any]]:
        match compiled:
            case Ok(query):
                pass
            case Err(error):
                return Err(error)
        match await self._driver.query(query):
            case Ok(result) if result.rows:
                return Ok(result.rows[0])
            case Ok(_):
                return Err(RowNotFoundError(f"No row returned by '{label}'", query=query))
            case Err(error):
                return Err(error)

    def _stream(self, compiled: Result[Query], operation: str) -> RowStreamer[dict[str, Any]]:
        if not self._initialized:
            return failed(NotInitializedError(operation))
        match compiled:
            case Ok(query):
                return self._driver.stream(query)
            case Err(error):
                return failed(error)

    # ------------------------------------------------------------------
    # Tables and versions
    # ------------------------------------------------------------------

    def table(self, name: str) -> Table:
        return Table(name, self)

    async def get_tables(self) -> Result[list[Table]]:
        """User tables, bootstrap tables included, by name."""
        if (gate := self.ensure_initialized("get_tables")) is not None:
            return gate
        match await self._driver.query(Query.build(self.dialect.tables_query())):
            case Ok(result):
                names = [row["tableName"] for row in result.rows]
            case Err(error):
                return Err(error)
        skipped = [n for n in names if not is_table_name(n)]
        if skipped:
            logger.debug("database.tables_skipped", tables=skipped)
        return Ok([Table(n, self) for n in names if is_table_name(n)])

    async def get_version(self) -> Result[VersionTuple]:
        """Recorded ``(major, minor, patch)``; ``(0, 0, 0)`` when none is recorded."""
        if (gate := self.ensure_initialized("get_version")) is not None:
            return gate
        return await self._read_version()

    async def set_version(self, version: VersionTuple) -> Result[None]:
        if (gate := self.ensure_initialized("set_version")) is not None:
            return gate
        major, minor, patch = (int(part) for part in version)
        for query in (
            Query.build("DELETE FROM version"),
            Query.build("INSERT INTO version (major, minor, patch) VALUES (?, ?, ?)", major, minor, patch),
        ):
            written = await self._driver.query(query)
            if written.is_err():
                return Err(written.error)
        logger.debug("database.version_set", version=f"{major}.{minor}.{patch}")
        return Ok(None)

    async def _read_version(self) -> Result[VersionTuple]:
        match await self._driver.query(Query.build("SELECT major, minor, patch FROM version LIMIT 1")):
            case Ok(result) if result.rows:
                row = result.rows[0]
                return Ok((int(row["major"]), int(row["minor"]), int(row["patch"])))
            case Ok(_):
                return Ok((0, 0, 0))
            case Err(error):
                return Err(error)

    # ------------------------------------------------------------------
    # Whole-database backups
    # ------------------------------------------------------------------

    async def backup(self, zip: bool = False) -> Result[Path]:
        """Back up every table into ``<backups_dir>/<UTC stamp>/``, optionally zipped.

        Tables are backed up concurrently; any failure fails the whole backup.
        Loose table bundles are removed once copied.
        """
        if (gate := self.ensure_initialized("backup")) is not None:
            return gate
        match await self.get_tables():
            case Ok(tables):
                pass
            case Err(error):
                return Err(error)
        match await gather_results(*(t.backup() for t in tables)):
            case Ok(bundles):
                pass
            case Err(error):
                logger.error("database.backup_failed", error=str(error))
                return Err(error)

        target = self._backups_dir / datetime.now(UTC).strftime(BACKUP_STAMP)
        try:
            target.mkdir(parents=True)
        except OSError as e:
            return Err(BackupError(f"Cannot create backup directory {target}: {e}", cause=e))

        copied = collect_results(b.copy(target) for b in bundles)
        if copied.is_err():
            shutil.rmtree(target, ignore_errors=True)
            return Err(copied.error)
        for bundle in bundles:
            bundle.delete_files()

        path = target
        if zip:
            try:
                path = Path(shutil.make_archive(str(target), "zip", root_dir=target))
            except OSError as e:
                return Err(BackupError(f"Cannot archive {target}: {e}", cause=e))
            shutil.rmtree(target)

        logger.info("database.backup_created", path=str(path), tables=len(bundles), zipped=zip)
        return Ok(path)

    def get_backups(self) -> list[Path]:
        """Whole-database backups (directories and ``.zip`` archives), oldest first."""
        if not self._backups_dir.is_dir():
            return []
        return sorted(
            (p for p in self._backups_dir.iterdir() if p.is_dir() or p.suffix == ".zip"),
            key=lambda p: p.name,
        )

    async def restore(self, path: Path | str) -> Result[dict[str, RestoreOutcome]]:
        """Restore a whole-database backup directory or ``.zip`` archive.

        Every bundle's version is checked before anything changes. A safety
        backup is then taken; if any table fails to restore, the safety
        backup is restored and the failure returned. A failure during that
        rollback is not caught.
        """
        if (gate := self.ensure_initialized("restore")) is not None:
            return gate
        path = Path(path)
        if not path.exists():
            return Err(BackupNotFoundError(f"Backup not found: {path}").with_context(filename=str(path)))
        if path.is_file():
            with tempfile.TemporaryDirectory(prefix="strata-restore-") as tmp:
                try:
                    shutil.unpack_archive(path, tmp, "zip")
                except (OSError, ValueError, shutil.ReadError) as e:
                    return Err(BackupError(f"Cannot unpack {path}: {e}", cause=e))
                return await self._restore_directory(Path(tmp), label=str(path))
        return await self._restore_directory(path, label=str(path))

    async def _restore_directory(self, directory: Path, label: str) -> Result[dict[str, RestoreOutcome]]:
        bundles = [TableBackup(stem, directory, self) for stem in bundle_stems(directory)]
        if not bundles:
            return Err(BackupError(f"No table bundles in {label}").with_context(filename=label))

        match await self._read_version():
            case Ok(live):
                pass
            case Err(error):
                return Err(error)
        for bundle in bundles:
            match bundle.load_metadata():
                case Ok(metadata) if tuple(metadata.version) != live:
                    return Err(VersionMismatch(tuple(metadata.version), live, filename=bundle.filename))
                case Err(error):
                    return Err(error)

        match await self.backup():
            case Ok(safety):
                pass
            case Err(error):
                return Err(error)

        restored = await self._restore_bundles(bundles)
        if restored.is_err():
            logger.error("database.restore_failed", backup=label, safety_backup=str(safety), error=str(restored.error))
            rollback = [TableBackup(stem, safety, self) for stem in bundle_stems(safety)]
            (await self._restore_bundles(rollback)).unwrap()
            logger.warning("database.restore_rolled_back", safety_backup=str(safety))
            return Err(restored.error)

        logger.info("database.restored", backup=label, tables=len(bundles))
        return restored

    async def _restore_bundles(self, bundles: list[TableBackup]) -> Result[dict[str, RestoreOutcome]]:
        # bootstrap tables go last: every other restore reads the version table
        data = [b for b in bundles if b.table_name not in BOOTSTRAP_TABLES]
        sequential = [b for b in bundles if b.table_name in BOOTSTRAP_TABLES]
        results: dict[str, RestoreOutcome] = {}
        if self.dialect.parallel_writes:
            match await gather_results(*(b.restore() for b in data)):
                case Ok(outcomes):
                    results.update((b.table_name, outcome) for b, outcome in zip(data, outcomes))
                case Err(error):
                    return Err(error)
        else:
            sequential = data + sequential
        for bundle in sequential:
            match await bundle.restore():
                case Ok(outcome):
                    results[bundle.table_name] = outcome
                case Err(error):
                    return Err(error)
        return Ok(results)

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    async def reset(self, hard: bool = False) -> Result[Path]:
        """Back up, then empty every table (soft) or drop every table (hard).

        A hard reset recreates the bootstrap tables, so the database stays
        initialized at version 0.0.0. Returns the backup taken first.
        """
        if (gate := self.ensure_initialized("reset")) is not None:
            return gate
        match await self.backup():
            case Ok(backup_path):
                pass
            case Err(error):
                return Err(error)
        match await self.get_tables():
            case Ok(tables):
                pass
            case Err(error):
                return Err(error)

        for table in tables:
            if hard:
                outcome = await self._driver.query(Query(f"DROP TABLE {table.storage_name}"))
            else:
                outcome = await table.clear()
            if outcome.is_err():
                return Err(outcome.error.with_context(backup=str(backup_path)))
        if hard:
            bootstrapped = await self._bootstrap()
            if bootstrapped.is_err():
                return Err(bootstrapped.error)

        logger.warning("database.reset", hard=hard, tables=len(tables), backup=str(backup_path))
        return Ok(backup_path)

    async def vacuum(self) -> Result[None]:
        if (gate := self.ensure_initialized("vacuum")) is not None:
            return gate
        match await self.get_tables():
            case Ok(tables):
                pass
            case Err(error):
                return Err(error)
        for statement in self.dialect.vacuum_statements([t.storage_name for t in tables]):
            outcome = await self._driver.query(Query(statement))
            if outcome.is_err():
                return Err(outcome.error)
        logger.info("database.vacuumed", tables=len(tables))
        return Ok(None)

    async def dump(self, target: Path | str) -> Result[Path]:
        """Native dump of the whole database into directory ``target``."""
        if (gate := self.ensure_initialized("dump")) is not None:
            return gate
        return await self._driver.dump(target)


__all__ = [
    "BOOTSTRAP_TABLES",
    "Database",
    "UnsafeDatabase",
]
