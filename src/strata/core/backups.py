"""
Table bundles and the restore protocol.

A bundle is two files sharing the stem ``<table>-<epochMillis>``:

- ``.backup``   header line of storage column names, then one encoded line per row
- ``.metadata`` JSON sidecar (:class:`~strata.core.metadata.TableMetadata`)

The sidecar is written last, so a stem without one is an unfinished bundle
and is never listed.

Restore protocol::

    Unverified ──load sidecar──> (MalformedMetadata)
        │
        ▼
    VersionChecked ──live version != recorded──> (VersionMismatch, nothing touched)
        │
        ▼  CREATE TABLE IF NOT EXISTS from the recorded schema
    HashCompared ──hash and schema equal──> SKIPPED
        │
        ▼
    Rebuilding: safety backup, clear, drop, create, replay rows with coercion
        │
        ▼
    RESTORED        (a failing step restores the safety backup, then returns Err)

Tags:
    strata-core, backup, restore, bundle

Doc-Types:
    api-reference
"""

from __future__ import annotations

import shutil
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from strata.core.dialect import is_boolean_type, is_integer_type
from strata.core.encoding import decode_line
from strata.core.errors import BackupError, BackupNotFoundError, MalformedMetadata, StrataError, VersionMismatch
from strata.core.logging import get_logger
from strata.core.metadata import TableMetadata
from strata.core.query import Query
from strata.core.result import Err, Ok, Result
from strata.core.streaming import RowStreamer

if TYPE_CHECKING:
    from strata.core.database import Database

logger = get_logger(__name__)

DATA_SUFFIX = ".backup"
METADATA_SUFFIX = ".metadata"

_TRUE = ("true", "t", "1")


class RestoreOutcome(str, Enum):
    SKIPPED = "skipped"
    RESTORED = "restored"


def _number(text: str) -> int | float | str:
    # SQLite INTEGER columns also hold REAL and TEXT values
    if "_" in text:
        return text
    for convert in (int, float):
        try:
            return convert(text)
        except ValueError:
            continue
    return text


def coerce_value(value: str | bytes | None, data_type: str) -> Any:
    """Turn a decoded bundle field back into a value for a column of ``data_type``."""
    if value is None or isinstance(value, bytes):
        return value
    if is_integer_type(data_type):
        return _number(value)
    if is_boolean_type(data_type):
        return value.strip().lower() in _TRUE
    return value


class TableBackup:
    """One bundle on disk, bound to the database it restores into."""

    def __init__(self, filename: str, directory: Path | str, database: Database):
        self.filename = filename
        self.directory = Path(directory)
        self._db = database
        self._metadata: TableMetadata | None = None

    @classmethod
    def from_path(cls, path: Path | str, database: Database) -> TableBackup:
        """Bundle for either of its two files."""
        path = Path(path)
        return cls(path.stem, path.parent, database)

    def __repr__(self) -> str:
        return f"TableBackup({self.filename!r}, directory={str(self.directory)!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TableBackup):
            return NotImplemented
        return (self.filename, self.directory) == (other.filename, other.directory)

    def __hash__(self) -> int:
        return hash((self.filename, self.directory))

    @property
    def table_name(self) -> str:
        return self.filename.rpartition("-")[0]

    @property
    def created_ms(self) -> int:
        millis = self.filename.rpartition("-")[2]
        return int(millis) if millis.isdigit() else 0

    @property
    def date(self) -> datetime:
        return datetime.fromtimestamp(self.created_ms / 1000, tz=UTC)

    @property
    def data_path(self) -> Path:
        return self.directory / f"{self.filename}{DATA_SUFFIX}"

    @property
    def metadata_path(self) -> Path:
        return self.directory / f"{self.filename}{METADATA_SUFFIX}"

    def exists(self) -> bool:
        return self.data_path.is_file() and self.metadata_path.is_file()

    # ------------------------------------------------------------------
    # Sidecar
    # ------------------------------------------------------------------

    def load_metadata(self) -> Result[TableMetadata]:
        """Read and validate the sidecar once; later calls return the cached model."""
        if self._metadata is not None:
            return Ok(self._metadata)
        try:
            text = self.metadata_path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            return Err(
                BackupNotFoundError(f"Backup metadata not found: {self.metadata_path}", cause=e).with_context(
                    filename=self.filename
                )
            )
        except OSError as e:
            return Err(BackupError(f"Cannot read {self.metadata_path}: {e}", cause=e))
        try:
            self._metadata = TableMetadata.model_validate_json(text)
        except ValidationError as e:
            reason = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'document'}: {err['msg']}" for err in e.errors()
            )
            return Err(MalformedMetadata(self.filename, reason))
        return Ok(self._metadata)

    def write_metadata(self, metadata: TableMetadata) -> Result[Path]:
        try:
            self.metadata_path.write_text(metadata.to_json(), encoding="utf-8")
        except OSError as e:
            return Err(BackupError(f"Cannot write {self.metadata_path}: {e}", cause=e))
        self._metadata = metadata
        return Ok(self.metadata_path)

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def read_rows(self) -> RowStreamer[dict[str, Any]]:
        """Stream the bundle's rows as ``{storage column: decoded field}``."""
        return RowStreamer(self._read_rows(), label=str(self.data_path))

    async def _read_rows(self) -> AsyncIterator[dict[str, Any]]:
        try:
            handle = self.data_path.open(encoding="utf-8", newline="")
        except FileNotFoundError as e:
            raise BackupNotFoundError(f"Backup data not found: {self.data_path}", cause=e) from e
        with handle:
            first = handle.readline()
            if not first:
                return
            header = decode_line(first)
            for number, line in enumerate(handle, start=2):
                values = decode_line(line)
                if len(values) != len(header):
                    raise BackupError(
                        f"{self.data_path.name}:{number}: expected {len(header)} fields, got {len(values)}"
                    ).with_context(filename=self.filename)
                yield dict(zip(header, values))

    def copy(self, directory: Path | str) -> Result[TableBackup]:
        """Copy both files into ``directory``."""
        target = TableBackup(self.filename, directory, self._db)
        try:
            target.directory.mkdir(parents=True, exist_ok=True)
            shutil.copy2(self.data_path, target.data_path)
            shutil.copy2(self.metadata_path, target.metadata_path)
        except OSError as e:
            return Err(BackupError(f"Cannot copy bundle {self.filename}: {e}", cause=e))
        target._metadata = self._metadata
        return Ok(target)

    def delete_files(self) -> None:
        self.data_path.unlink(missing_ok=True)
        self.metadata_path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def build_table(self) -> Result[None]:
        """``CREATE TABLE IF NOT EXISTS`` from the recorded schema."""
        match self.load_metadata():
            case Ok(metadata):
                pass
            case Err(error):
                return Err(error)
        columns = ", ".join(f"{c.column_name} {c.data_type}".rstrip() for c in metadata.columns)
        result = await self._db.driver.query(Query(f"CREATE TABLE IF NOT EXISTS {metadata.name} ({columns})"))
        return result.map(lambda _r: None)

    async def restore(self) -> Result[RestoreOutcome]:
        """Bring the live table to this bundle's contents.

        A failure after the live table was touched puts the safety backup back
        before the error is returned. A failure of that rollback is raised.
        """
        return await self._restore(roll_back=True)

    async def _restore(self, *, roll_back: bool) -> Result[RestoreOutcome]:
        if (gate := self._db.ensure_initialized("backup.restore")) is not None:
            return gate

        match self.load_metadata():
            case Ok(metadata):
                pass
            case Err(error):
                return Err(error)

        match await self._db.get_version():
            case Ok(live) if live != tuple(metadata.version):
                logger.warning(
                    "restore.version_mismatch", filename=self.filename, backup=metadata.version, live=live
                )
                return Err(VersionMismatch(tuple(metadata.version), live, filename=self.filename))
            case Err(error):
                return Err(error)

        built = await self.build_table()
        if built.is_err():
            return Err(built.error)

        table = self._db.table(metadata.name)
        match await table.get_hash():
            case Ok(current):
                pass
            case Err(error):
                return Err(error)
        same_schema = await table.has_schema(metadata.columns)
        if same_schema.is_err():
            return Err(same_schema.error)
        if current == metadata.hash and same_schema.value:
            logger.info("restore.skipped", table=metadata.name, filename=self.filename)
            return Ok(RestoreOutcome.SKIPPED)

        match await table.backup():
            case Ok(safety):
                pass
            case Err(error):
                return Err(error)

        for step in (table.clear, table.drop, self.build_table):
            outcome = await step()
            if outcome.is_err():
                return await self._failed(outcome.error, safety, roll_back)

        replayed = await self._replay(metadata)
        if replayed.is_err():
            return await self._failed(replayed.error, safety, roll_back)

        logger.info("restore.completed", table=metadata.name, filename=self.filename, rows=replayed.value)
        return Ok(RestoreOutcome.RESTORED)

    async def _failed(self, error: Exception, safety: TableBackup, roll_back: bool) -> Err[RestoreOutcome]:
        logger.error("restore.failed", filename=self.filename, safety_backup=safety.filename, error=str(error))
        if isinstance(error, StrataError):
            error.with_context(safety_backup=safety.filename)
        if roll_back:
            logger.warning("restore.rolling_back", filename=self.filename, safety_backup=safety.filename)
            (await safety._restore(roll_back=False)).unwrap()
            logger.info("restore.rolled_back", filename=self.filename, safety_backup=safety.filename)
        return Err(error)

    async def _replay(self, metadata: TableMetadata) -> Result[int]:
        types = {c.column_name: c.data_type for c in metadata.columns}
        statements: dict[tuple[str, ...], str] = {}
        dialect = self._db.dialect
        driver = self._db.driver

        async def insert(row: dict[str, Any]) -> None:
            keys = tuple(row)
            sql = statements.get(keys)
            if sql is None:
                unknown = [k for k in keys if k not in types]
                if unknown:
                    raise BackupError(
                        f"Bundle columns {unknown} are not in the recorded schema"
                    ).with_context(filename=self.filename)
                placeholders = ", ".join(dialect.value_placeholder(i, types[k]) for i, k in enumerate(keys, start=1))
                sql = f"INSERT INTO {metadata.name} ({', '.join(keys)}) VALUES ({placeholders})"
                statements[keys] = sql
            params = tuple(coerce_value(row[k], types[k]) for k in keys)
            (await driver.query(Query(sql, params))).unwrap()

        return await self.read_rows().pipe(insert)


__all__ = [
    "DATA_SUFFIX",
    "METADATA_SUFFIX",
    "RestoreOutcome",
    "TableBackup",
    "coerce_value",
]
