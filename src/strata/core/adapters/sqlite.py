"""SQLite driver on aiosqlite."""

from __future__ import annotations

from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import aiosqlite

from strata.core.errors import DatabaseConnectionError, DatabaseError
from strata.core.logging import get_logger
from strata.core.result import Err, Ok, Result

from .base import Driver
from .types import DatabaseConfig, DatabaseType

logger = get_logger(__name__)


class SQLiteDriver(Driver):
    """
    SQLite driver.

    Runs in autocommit mode with ``aiosqlite.Row`` rows. Suitable for:
    - Development and testing
    - Single-process applications
    """

    def __init__(self, path: str = ":memory:", **kwargs: Any):
        config = DatabaseConfig(db_type=DatabaseType.SQLITE, path=path, options=kwargs)
        super().__init__(config)
        self._conn: aiosqlite.Connection | None = None

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> SQLiteDriver:
        return cls(config.path or ":memory:", **config.options)

    async def connect(self) -> Result[bool]:
        if self._conn is not None:
            return Ok(True)
        path = self._config.path or ":memory:"
        try:
            self._conn = await aiosqlite.connect(path, isolation_level=None, **self._config.options)
            self._conn.row_factory = aiosqlite.Row
        except (aiosqlite.Error, OSError) as e:
            return Err(DatabaseConnectionError(f"Failed to connect to SQLite: {e}", cause=e))
        self._connected = True
        logger.debug("driver.connected", driver="sqlite", path=path)
        return Ok(True)

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None
            self._connected = False

    async def _execute(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        async with self._conn.execute(sql, params) as cursor:
            rows = await cursor.fetchall()
        return [dict(r) for r in rows]

    async def _iterate(self, sql: str, params: tuple[Any, ...]) -> AsyncIterator[dict[str, Any]]:
        async with self._conn.execute(sql, params) as cursor:
            async for row in cursor:
                yield dict(row)

    async def dump(self, target: Path | str) -> Result[Path]:
        """Copy the live database into ``<target>/dump.sqlite3`` with the online backup API."""
        if not self._connected:
            connected = await self.connect()
            if connected.is_err():
                return Err(connected.error)
        out = Path(target) / "dump.sqlite3"
        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            async with aiosqlite.connect(out) as dest:
                await self._conn.backup(dest)
        except (aiosqlite.Error, OSError) as e:
            return Err(DatabaseError(f"SQLite dump failed: {e}", cause=e).with_context(filename=str(out)))
        logger.info("database.dumped", driver="sqlite", target=str(out))
        return Ok(out)


__all__ = [
    "SQLiteDriver",
]
