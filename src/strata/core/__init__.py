"""strata Core -- query compiler, drivers, table bundles and migrations.

Manifesto:
    Application code names fields the way it spells them (``accountId``);
    storage names them the way SQL likes them (``account_id``). A table is
    backed up only when its content hash moved, restored only onto the
    version it was taken at, and a migration that raises puts the database
    back where it was before that migration.

    - **Results, not exceptions:** every façade operation returns Ok / Err
    - **Streams, not buffers:** rows flow through ``RowStreamer`` one at a time
    - **Explicit registries:** queries, versions and drivers are objects
      built at startup, never import-time globals

Architecture::

    Layer 1 -- Type System & Errors
        errors.py          Structured error hierarchy (StrataError, categories)
        result.py          Result[T] envelope (Ok / Err / try_result / gather_results)
        logging.py         structlog configuration

    Layer 2 -- Text & Encoding
        naming.py          accountId <-> account_id identifier translation
        query.py           Query compiler + QueryRegistry of *.sql templates
        encoding.py        Bundle field escaping
        hashing.py         Streaming PBKDF2-SHA512 table hash

    Layer 3 -- Drivers
        dialect.py         SQLite / PostgreSQL SQL fragments
        streaming.py       RowStreamer (single terminal event)
        adapters/          Driver ABC, SQLite (aiosqlite), PostgreSQL (asyncpg)

    Layer 4 -- Tables, Bundles & Versions
        metadata.py        Bundle sidecar models (pydantic)
        git.py             Branch / commit identity
        tables.py          Table: schema, hash, backup, clear, drop
        backups.py         TableBackup: bundle files + restore protocol
        versions.py        Version + VersionRegistry
        migrations/        MigrationRunner

    Layer 5 -- Façade & Wiring
        database.py        Database: get/all/run, init, backup, restore, reset
        settings.py        StrataSettings (pydantic-settings, STRATA_*)
        factory.py         create_database(settings)

Tags:
    strata-core, foundation, database, backup, restore, migrations

Doc-Types:
    package-overview, architecture-map, module-index
"""

from strata.core.adapters import (
    DatabaseConfig,
    DatabaseType,
    Driver,
    PostgreSQLDriver,
    SQLiteDriver,
    get_driver,
)
from strata.core.backups import RestoreOutcome, TableBackup
from strata.core.database import Database, UnsafeDatabase
from strata.core.dialect import Dialect, PostgreSQLDialect, SQLiteDialect, get_dialect, register_dialect
from strata.core.errors import (
    BackupError,
    BackupNotFoundError,
    ConfigError,
    DatabaseConnectionError,
    DatabaseError,
    ErrorCategory,
    ErrorContext,
    MalformedMetadata,
    MigrationFailed,
    NotInitializedError,
    ParameterCountMismatch,
    PlaceholderStyleError,
    QueryCompileError,
    QueryFileNotFound,
    RowNotFoundError,
    StrataError,
    StreamConsumerError,
    UnsafeDrop,
    VersionMismatch,
)
from strata.core.factory import create_database
from strata.core.git import GitIdentity, GitReader
from strata.core.hashing import TableHasher, compute_table_hash
from strata.core.logging import configure_logging, get_logger
from strata.core.metadata import ColumnSchema, TableMetadata
from strata.core.migrations import MigrationResult, MigrationRunner
from strata.core.naming import decode_row, to_caller, to_storage, translate_sql
from strata.core.query import Query, QueryRegistry, QueryResult
from strata.core.result import Err, Ok, Result, collect_results, gather_results, try_result, try_result_async
from strata.core.settings import StrataSettings, get_settings
from strata.core.streaming import RowStreamer, StreamEvent
from strata.core.tables import Table
from strata.core.versions import Version, VersionRegistry

__all__ = [
    # Results & errors
    "Ok",
    "Err",
    "Result",
    "try_result",
    "try_result_async",
    "collect_results",
    "gather_results",
    "ErrorCategory",
    "ErrorContext",
    "StrataError",
    "QueryCompileError",
    "ParameterCountMismatch",
    "PlaceholderStyleError",
    "QueryFileNotFound",
    "DatabaseError",
    "DatabaseConnectionError",
    "NotInitializedError",
    "RowNotFoundError",
    "UnsafeDrop",
    "BackupError",
    "BackupNotFoundError",
    "MalformedMetadata",
    "VersionMismatch",
    "MigrationFailed",
    "ConfigError",
    "StreamConsumerError",
    # Logging
    "configure_logging",
    "get_logger",
    # Naming & queries
    "to_storage",
    "to_caller",
    "translate_sql",
    "decode_row",
    "Query",
    "QueryResult",
    "QueryRegistry",
    # Hashing & streaming
    "TableHasher",
    "compute_table_hash",
    "RowStreamer",
    "StreamEvent",
    # Drivers
    "Dialect",
    "SQLiteDialect",
    "PostgreSQLDialect",
    "get_dialect",
    "register_dialect",
    "DatabaseType",
    "DatabaseConfig",
    "Driver",
    "SQLiteDriver",
    "PostgreSQLDriver",
    "get_driver",
    # Tables, bundles, versions
    "ColumnSchema",
    "TableMetadata",
    "GitIdentity",
    "GitReader",
    "Table",
    "TableBackup",
    "RestoreOutcome",
    "Version",
    "VersionRegistry",
    "MigrationResult",
    "MigrationRunner",
    # Façade & wiring
    "Database",
    "UnsafeDatabase",
    "StrataSettings",
    "get_settings",
    "create_database",
]
