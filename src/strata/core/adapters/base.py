"""Database driver base class.

Manifesto:
    The ``Database`` façade never talks to a vendor library directly. It
    hands compiled :class:`~strata.core.query.Query` objects to a ``Driver``
    and gets ``Result`` values back. Concrete drivers own connection
    management, placeholder binding (through their dialect), row decoding
    and error wrapping, so no raw driver exception crosses this boundary.

Features:
    - Abstract ``connect()``, ``close()``, ``_execute()``, ``_iterate()``, ``dump()``
    - ``query()`` / ``stream()`` implemented once: bind, execute, decode, wrap
    - Property-based dialect and connection-state introspection
    - Async context-manager protocol for connection lifecycle

Tags:
    strata-core, database, abstract-base, adapter-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

from strata.core.dialect import Dialect, get_dialect
from strata.core.errors import DatabaseError
from strata.core.logging import get_logger
from strata.core.naming import decode_row
from strata.core.query import Query, QueryResult
from strata.core.result import Err, Ok, Result
from strata.core.streaming import RowStreamer

from .types import DatabaseConfig, DatabaseType

logger = get_logger(__name__)


class Driver(ABC):
    """
    Abstract base class for database drivers.

    Subclasses implement the raw primitives; the public ``query`` and
    ``stream`` wrap them with binding, row decoding and error handling.
    """

    def __init__(self, config: DatabaseConfig):
        self._config = config
        self._connected = False
        self._dialect: Dialect = get_dialect(config.db_type.value)

    @property
    def config(self) -> DatabaseConfig:
        return self._config

    @property
    def dialect(self) -> Dialect:
        """SQL dialect for this driver's database type."""
        return self._dialect

    @property
    def db_type(self) -> DatabaseType:
        return self._config.db_type

    @property
    def is_connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Primitives
    # ------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> Result[bool]:
        """Establish the connection (or pool). Idempotent."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the connection (or pool)."""
        ...

    @abstractmethod
    async def _execute(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        """Run bound SQL and return storage-named rows. May raise."""
        ...

    @abstractmethod
    def _iterate(self, sql: str, params: tuple[Any, ...]) -> AsyncIterator[dict[str, Any]]:
        """Async generator of storage-named rows. May raise while iterating."""
        ...

    @abstractmethod
    async def dump(self, target: Path | str) -> Result[Path]:
        """Write a native dump of the whole database into directory ``target``."""
        ...

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def query(self, query: Query) -> Result[QueryResult]:
        """Execute ``query`` and decode rows into caller naming."""
        if not self._connected:
            connected = await self.connect()
            if connected.is_err():
                return Err(connected.error)
        try:
            rows = await self._execute(self._dialect.bind(query.sql), query.params)
        except Exception as e:
            logger.warning("query.failed", sql=query.sql, error=str(e))
            return Err(self._wrap(e, query))
        return Ok(QueryResult(rows=[decode_row(r) for r in rows], query=query))

    def stream(self, query: Query) -> RowStreamer[dict[str, Any]]:
        """Stream decoded rows of ``query`` one at a time."""
        return RowStreamer(self._stream_rows(query), label=query.sql)

    async def _stream_rows(self, query: Query) -> AsyncIterator[dict[str, Any]]:
        if not self._connected:
            (await self.connect()).unwrap()
        rows = self._iterate(self._dialect.bind(query.sql), query.params)
        try:
            async for row in rows:
                yield decode_row(row)
        except DatabaseError:
            raise
        except Exception as e:
            logger.warning("stream.query_failed", sql=query.sql, error=str(e))
            raise self._wrap(e, query) from e
        finally:
            # release the cursor now, not when the generator is collected
            await rows.aclose()

    def _wrap(self, error: Exception, query: Query) -> DatabaseError:
        if isinstance(error, DatabaseError):
            return error
        return DatabaseError(f"{type(error).__name__}: {error}", query=query, cause=error)

    async def __aenter__(self) -> Driver:
        (await self.connect()).unwrap()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


__all__ = [
    "Driver",
]
