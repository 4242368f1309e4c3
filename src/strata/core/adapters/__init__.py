"""Database drivers: one interface, two backends.

Manifesto:
    The façade, tables and backups only ever hold a ``Driver``. Swapping
    SQLite for PostgreSQL is a URL change, and a test double is one more
    ``Driver`` subclass registered under its own name.

Architecture::

    Driver (base.py)                 Abstract base: connect/query/stream/dump
        |-- SQLiteDriver             aiosqlite, autocommit, online backup dump
        |-- PostgreSQLDriver         asyncpg pool, server-side cursors, pg_dump

    DriverRegistry (registry.py)     DatabaseType name -> driver class
    DatabaseConfig (types.py)        Connection parameters, from_url()
    DatabaseType (types.py)          Enum of supported backends

Modules
-------
base            Abstract Driver base class
types           DatabaseType enum + DatabaseConfig dataclass
registry        DriverRegistry + get_driver() factory
sqlite          SQLite driver (aiosqlite)
postgresql      PostgreSQL driver (asyncpg)

Guardrails:
    ❌ ``driver.query(Query("SELECT * FROM t WHERE id=" + user_input))``
    ✅ ``driver.query(Query.build("SELECT * FROM t WHERE id = ?", user_input))``
    ❌ ``driver = PostgreSQLDriver(...)`` scattered through application code
    ✅ ``driver = get_driver(settings.database_url)``

Tags:
    strata-core, database, drivers, registry-pattern, postgresql, sqlite

Doc-Types:
    package-overview, module-index
"""

from strata.core.dialect import Dialect, get_dialect

from .base import Driver
from .postgresql import PostgreSQLDriver
from .registry import DriverRegistry, driver_registry, get_driver
from .sqlite import SQLiteDriver
from .types import DatabaseConfig, DatabaseType

__all__ = [
    # Types
    "DatabaseType",
    "DatabaseConfig",
    # Abstractions
    "Dialect",
    "get_dialect",
    # Base class
    "Driver",
    # Implementations
    "SQLiteDriver",
    "PostgreSQLDriver",
    # Registry
    "DriverRegistry",
    "driver_registry",
    "get_driver",
]
