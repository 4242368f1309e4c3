"""PostgreSQL driver on asyncpg."""

from __future__ import annotations

import asyncio
import os
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import asyncpg

from strata.core.errors import DatabaseConnectionError, DatabaseError
from strata.core.logging import get_logger
from strata.core.result import Err, Ok, Result

from .base import Driver
from .types import DatabaseConfig, DatabaseType

logger = get_logger(__name__)


class PostgreSQLDriver(Driver):
    """
    PostgreSQL driver.

    Uses an asyncpg pool: one asyncpg connection cannot run overlapping
    operations, and table backups fan out concurrently. Streams read through
    a server-side cursor inside a transaction, ``prefetch`` rows at a time.
    Each query must be a single statement.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 5432,
        database: str = "",
        username: str | None = None,
        password: str | None = None,
        *,
        pool_size: int = 5,
        prefetch: int = 500,
        **kwargs: Any,
    ):
        config = DatabaseConfig(
            db_type=DatabaseType.POSTGRESQL,
            host=host,
            port=port,
            database=database,
            username=username,
            password=password,
            pool_size=pool_size,
            prefetch=prefetch,
            options=kwargs,
        )
        super().__init__(config)
        self._pool: asyncpg.Pool | None = None

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> PostgreSQLDriver:
        return cls(
            config.host,
            config.port,
            config.database,
            config.username,
            config.password,
            pool_size=config.pool_size,
            prefetch=config.prefetch,
            **config.options,
        )

    async def connect(self) -> Result[bool]:
        if self._pool is not None:
            return Ok(True)
        try:
            self._pool = await asyncpg.create_pool(
                host=self._config.host,
                port=self._config.port,
                user=self._config.username,
                password=self._config.password,
                database=self._config.database,
                min_size=1,
                max_size=self._config.pool_size,
                **self._config.options,
            )
        except (asyncpg.PostgresError, OSError) as e:
            return Err(
                DatabaseConnectionError(f"Failed to connect to PostgreSQL: {e}", cause=e).with_context(
                    host=self._config.host, database=self._config.database
                )
            )
        self._connected = True
        logger.debug("driver.connected", driver="postgresql", host=self._config.host, database=self._config.database)
        return Ok(True)

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
            self._connected = False

    async def _execute(self, sql: str, params: tuple[Any, ...]) -> list[dict[str, Any]]:
        async with self._pool.acquire() as conn:
            records = await conn.fetch(sql, *params)
        return [dict(r) for r in records]

    async def _iterate(self, sql: str, params: tuple[Any, ...]) -> AsyncIterator[dict[str, Any]]:
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                async for record in conn.cursor(sql, *params, prefetch=self._config.prefetch):
                    yield dict(record)

    async def dump(self, target: Path | str) -> Result[Path]:
        """Run ``pg_dump`` into ``<target>/<database>.sql``."""
        out = Path(target) / f"{self._config.database}.sql"
        args = ["pg_dump", "-h", self._config.host, "-p", str(self._config.port), "-f", str(out)]
        if self._config.username:
            args += ["-U", self._config.username]
        args.append(self._config.database)

        env = dict(os.environ)
        if self._config.password:
            env["PGPASSWORD"] = self._config.password

        try:
            out.parent.mkdir(parents=True, exist_ok=True)
            proc = await asyncio.create_subprocess_exec(
                *args,
                env=env,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await proc.communicate()
        except OSError as e:
            return Err(DatabaseError(f"pg_dump could not be started: {e}", cause=e))

        if proc.returncode != 0:
            return Err(
                DatabaseError(
                    f"pg_dump exited with {proc.returncode}: {stderr.decode(errors='replace').strip()}"
                ).with_context(filename=str(out))
            )
        logger.info("database.dumped", driver="postgresql", target=str(out))
        return Ok(out)


__all__ = [
    "PostgreSQLDriver",
]
