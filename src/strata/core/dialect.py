"""SQL dialect abstraction for the two supported backends.

The query compiler always emits ``$1 .. $n`` placeholders. A ``Dialect``
turns those into what its driver accepts and supplies the handful of
backend-specific statements the table and backup machinery needs:
catalog lookups, a stable natural row order, and typed insert placeholders
for restore.

Architecture::

    Query.build(...)  ──>  "... WHERE account_id = $1"
                              │
                 ┌────────────┴─────────────┐
                 ▼                          ▼
        ┌─────────────────┐       ┌──────────────────────┐
        │ SQLiteDialect   │       │ PostgreSQLDialect    │
        │ $1 -> ?1        │       │ $1 (native)          │
        │ pragma_table_   │       │ information_schema   │
        │ info / rowid    │       │ .columns / ctid      │
        └─────────────────┘       └──────────────────────┘

Examples:
    >>> from strata.core.dialect import get_dialect
    >>> get_dialect("sqlite").bind("SELECT * FROM t WHERE a = $1 AND b = $2")
    'SELECT * FROM t WHERE a = ?1 AND b = ?2'

Tags:
    strata-core, sql, dialect, sqlite, postgresql

Doc-Types:
    api-reference
"""

from __future__ import annotations

import re
from typing import Protocol, runtime_checkable

_DOLLAR = re.compile(r"\$(\d+)")
_STRING_LITERAL = re.compile(r"('(?:[^']|'')*')")


@runtime_checkable
class Dialect(Protocol):
    """Backend-specific SQL fragments."""

    @property
    def name(self) -> str:
        """Dialect identifier (``sqlite``, ``postgresql``)."""
        ...

    def bind(self, sql: str) -> str:
        """Rewrite compiled ``$n`` placeholders into driver-native ones."""
        ...

    def tables_query(self) -> str:
        """Template listing user tables as ``tableName`` rows."""
        ...

    def columns_query(self) -> str:
        """Template with one ``?`` (storage table name) returning ``columnName``/``dataType`` rows."""
        ...

    def natural_order(self) -> str:
        """Expression giving a stable row order for unmodified tables."""
        ...

    def key_order_query(self) -> str | None:
        """Template with one ``?`` (storage table name) returning key ``columnName`` rows.

        When it yields rows they replace :meth:`natural_order`. ``None`` means
        the natural order always applies.
        """
        ...

    def value_placeholder(self, index: int, data_type: str) -> str:
        """Placeholder for inserting a restored value into a column of ``data_type``."""
        ...

    def vacuum_statements(self, tables: list[str]) -> list[str]:
        """Statements reclaiming space for ``tables``."""
        ...

    @property
    def parallel_writes(self) -> bool:
        """Whether DDL may overlap open read cursors on the same connection."""
        ...


class SQLiteDialect:
    """SQLite via aiosqlite: numbered ``?n`` placeholders."""

    @property
    def name(self) -> str:
        return "sqlite"

    def bind(self, sql: str) -> str:
        parts = _STRING_LITERAL.split(sql)
        return "".join(
            part if i % 2 else _DOLLAR.sub(r"?\1", part)
            for i, part in enumerate(parts)
        )

    def tables_query(self) -> str:
        return (
            "SELECT name AS tableName FROM sqlite_master "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )

    def columns_query(self) -> str:
        return "SELECT name AS columnName, type AS dataType FROM pragma_table_info(?) ORDER BY cid"

    def natural_order(self) -> str:
        return "rowid"

    def key_order_query(self) -> str | None:
        # WITHOUT ROWID tables have no rowid; they are stored in primary key order
        return (
            "SELECT p.name AS columnName FROM sqlite_master m, pragma_table_info(m.name) p "
            "WHERE m.type = 'table' AND m.name = ? AND p.pk > 0 "
            "AND upper(m.sql) LIKE '%WITHOUT ROWID%' ORDER BY p.pk"
        )

    def value_placeholder(self, index: int, data_type: str) -> str:  # noqa: ARG002
        return f"${index}"

    def vacuum_statements(self, tables: list[str]) -> list[str]:  # noqa: ARG002
        # VACUUM is database-wide in SQLite
        return ["VACUUM"]

    @property
    def parallel_writes(self) -> bool:
        # DROP TABLE fails with SQLITE_LOCKED while another statement is reading
        return False


class PostgreSQLDialect:
    """PostgreSQL via asyncpg: native ``$n`` placeholders.

    asyncpg binds parameters with the column's declared type, so restored
    values that travel as text are cast server-side.
    """

    _UNCASTABLE = {"USER-DEFINED", "ARRAY", "bytea"}

    @property
    def name(self) -> str:
        return "postgresql"

    def bind(self, sql: str) -> str:
        return sql

    def tables_query(self) -> str:
        return (
            "SELECT table_name AS tableName FROM information_schema.tables "
            "WHERE table_schema = 'public' AND table_type = 'BASE TABLE' ORDER BY table_name"
        )

    def columns_query(self) -> str:
        return (
            "SELECT column_name AS columnName, data_type AS dataType "
            "FROM information_schema.columns "
            "WHERE table_schema = 'public' AND table_name = ? ORDER BY ordinal_position"
        )

    def natural_order(self) -> str:
        return "ctid"

    def key_order_query(self) -> str | None:
        return None

    def value_placeholder(self, index: int, data_type: str) -> str:
        if is_integer_type(data_type) or is_boolean_type(data_type) or data_type in self._UNCASTABLE:
            return f"${index}"
        return f"CAST(${index}::text AS {data_type})"

    def vacuum_statements(self, tables: list[str]) -> list[str]:
        return [f"VACUUM {table}" for table in tables]

    @property
    def parallel_writes(self) -> bool:
        return True


_INTEGER = re.compile(r"(^|[^a-z])(big|small|tiny|medium)?(int(eger|\d)?|serial\d?)\b")


def is_integer_type(data_type: str) -> bool:
    """``integer``, ``bigint``, ``INT4``, ``serial``; not ``interval`` or ``point``."""
    return bool(_INTEGER.search(data_type.lower()))


def is_boolean_type(data_type: str) -> bool:
    return "bool" in data_type.lower()


# Pre-instantiated singletons (dialects are stateless)
_DIALECTS: dict[str, Dialect] = {
    "sqlite": SQLiteDialect(),
    "postgresql": PostgreSQLDialect(),
    "postgres": PostgreSQLDialect(),  # alias
}


def get_dialect(db_type: str) -> Dialect:
    """Get a dialect by database type name.

    Raises:
        ValueError: If ``db_type`` is not recognised.
    """
    key = db_type.lower() if isinstance(db_type, str) else db_type.value
    if key not in _DIALECTS:
        raise ValueError(
            f"Unknown dialect '{db_type}'. "
            f"Supported: {sorted(set(_DIALECTS) - {'postgres'})}"
        )
    return _DIALECTS[key]


def register_dialect(name: str, dialect: Dialect) -> None:
    """Register a custom dialect implementation (third-party drivers, test doubles)."""
    _DIALECTS[name.lower()] = dialect


__all__ = [
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "is_integer_type",
    "is_boolean_type",
    "get_dialect",
    "register_dialect",
]
