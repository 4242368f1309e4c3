"""
strata exception types.

One base class, :class:`StrataError`, and one branch per subsystem. Each
error knows its :class:`ErrorCategory`, whether a retry could help, the
structured :class:`ErrorContext` it happened in (query, table, bundle,
version) and the lower-level exception that caused it.

Only the query compiler raises these at the caller. Everywhere else they
travel inside ``Err`` and reach the caller as values.

Hierarchy::

    StrataError
    ├── QueryCompileError          QUERY
    │   ├── ParameterCountMismatch
    │   ├── PlaceholderStyleError
    │   └── QueryFileNotFound
    ├── DatabaseError              DATABASE
    │   ├── DatabaseConnectionError   (retryable)
    │   ├── NotInitializedError
    │   ├── RowNotFoundError
    │   └── UnsafeDrop
    ├── BackupError                STORAGE
    │   ├── BackupNotFoundError
    │   ├── MalformedMetadata
    │   └── VersionMismatch
    ├── MigrationFailed            MIGRATION
    ├── ConfigError                CONFIG
    └── StreamConsumerError        INTERNAL

Example:
    >>> err = UnsafeDrop("team")
    >>> err.category.value, err.to_dict()["context"]["table"]
    ('DATABASE', 'team')

Tags:
    errors, error-handling, strata-core

Doc-Types:
    api-reference
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from strata.core.query import Query


class ErrorCategory(str, Enum):
    """Coarse classification used in logs and CLI output."""

    DATABASE = "DATABASE"
    STORAGE = "STORAGE"
    QUERY = "QUERY"
    VALIDATION = "VALIDATION"
    CONFIG = "CONFIG"
    MIGRATION = "MIGRATION"
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """Where an error happened.

    ``sql``, ``table``, ``filename`` and ``version`` are the usual suspects;
    anything else lands in ``metadata``.
    """

    sql: str | None = None
    table: str | None = None
    filename: str | None = None
    version: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Set fields only, with ``metadata`` flattened in."""
        known = {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if f.name != "metadata" and getattr(self, f.name) is not None
        }
        return {**known, **self.metadata}


class StrataError(Exception):
    """Base of every strata error.

    ``category`` and ``retryable`` default to the subclass's
    ``default_category`` / ``default_retryable``. ``cause`` is also set as
    ``__cause__`` so tracebacks show the driver exception underneath.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = self.default_category if category is None else category
        self.retryable = self.default_retryable if retryable is None else retryable
        self.context = ErrorContext() if context is None else context
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StrataError:
        """Record more context and return ``self``, for ``return Err(error.with_context(...))``."""
        known = {f.name for f in fields(self.context)} - {"metadata"}
        for key, value in kwargs.items():
            if key in known:
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly form used by ``Err.to_dict()`` and ``strata ... --json``."""
        data: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if context := self.context.to_dict():
            data["context"] = context
        if self.cause is not None:
            data["cause"] = str(self.cause)
        return data

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# =============================================================================
# QUERY COMPILER ERRORS (raised synchronously)
# =============================================================================


class QueryCompileError(StrataError):
    """A query template could not be compiled into a driver-ready Query."""

    default_category = ErrorCategory.QUERY


class ParameterCountMismatch(QueryCompileError):
    """Placeholders in a template do not line up with the supplied arguments."""

    def __init__(self, sql: str, args: tuple[Any, ...] | list[Any], message: str | None = None):
        self.sql = sql
        self.args_supplied = tuple(args)
        super().__init__(
            message or f"Parameter count mismatch: {len(self.args_supplied)} argument(s) for query",
            context=ErrorContext(sql=sql, metadata={"args": [repr(a) for a in self.args_supplied]}),
        )


class PlaceholderStyleError(QueryCompileError):
    """Template mixes positional ``?`` and named ``:name`` placeholders."""

    def __init__(self, sql: str):
        self.sql = sql
        super().__init__(
            "Positional and named placeholders cannot be mixed in one query",
            context=ErrorContext(sql=sql),
        )


class QueryFileNotFound(QueryCompileError):
    """No query template is registered under the requested name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Query file not found: {name}", context=ErrorContext(metadata={"query": name}))


# =============================================================================
# DATABASE ERRORS
# =============================================================================


class DatabaseError(StrataError):
    """Driver-level failure. Carries the failing Query when there is one."""

    default_category = ErrorCategory.DATABASE

    def __init__(self, message: str, *, query: Query | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.query = query
        if query is not None and self.context.sql is None:
            self.context.sql = query.sql

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.query is not None:
            result["params"] = [repr(p) for p in self.query.params]
        return result


class DatabaseConnectionError(DatabaseError):
    """Database connection or pool error."""

    default_retryable = True


class NotInitializedError(DatabaseError):
    """A data-access operation ran before ``Database.init()`` completed."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(
            f"Database is not initialized; cannot run '{operation}'",
            context=ErrorContext(metadata={"operation": operation}),
        )


class RowNotFoundError(DatabaseError):
    """A single-row lookup returned no rows."""


class UnsafeDrop(DatabaseError):
    """Refused to drop a table that still holds rows."""

    def __init__(self, table: str):
        self.table = table
        super().__init__(
            f"Refusing to drop non-empty table '{table}'",
            context=ErrorContext(table=table),
        )


# =============================================================================
# BACKUP / RESTORE ERRORS
# =============================================================================


class BackupError(StrataError):
    """Failure while writing, reading or restoring a table bundle."""

    default_category = ErrorCategory.STORAGE


class BackupNotFoundError(BackupError):
    """Bundle or archive does not exist on disk."""


class MalformedMetadata(BackupError):
    """Sidecar metadata is unreadable or missing required fields."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, filename: str, reason: str):
        self.filename = filename
        self.reason = reason
        super().__init__(
            f"Malformed backup metadata for '{filename}': {reason}",
            context=ErrorContext(filename=filename),
        )


class VersionMismatch(BackupError):
    """Backup was taken at a different database version than the live one."""

    default_category = ErrorCategory.VALIDATION

    def __init__(self, backup: tuple[int, int, int], live: tuple[int, int, int], filename: str | None = None):
        self.backup_version = backup
        self.live_version = live
        super().__init__(
            f"Backup version {'.'.join(map(str, backup))} does not match "
            f"database version {'.'.join(map(str, live))}",
            context=ErrorContext(filename=filename, version=".".join(map(str, live))),
        )


# =============================================================================
# MIGRATION / CONFIG / STREAM ERRORS
# =============================================================================


class MigrationFailed(StrataError):
    """A version update raised; the pre-migration backup has been restored."""

    default_category = ErrorCategory.MIGRATION

    def __init__(self, version: str, cause: Exception | None = None):
        self.version = version
        super().__init__(
            f"Migration to {version} failed: {cause}",
            context=ErrorContext(version=version),
            cause=cause,
        )


class ConfigError(StrataError):
    """Configuration error (invalid URL, duplicate version, etc.)."""

    default_category = ErrorCategory.CONFIG


class StreamConsumerError(StrataError):
    """A ``RowStreamer`` consumer callback raised while handling a row."""


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, StrataError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "StrataError",
    # Query compiler
    "QueryCompileError",
    "ParameterCountMismatch",
    "PlaceholderStyleError",
    "QueryFileNotFound",
    # Database
    "DatabaseError",
    "DatabaseConnectionError",
    "NotInitializedError",
    "RowNotFoundError",
    "UnsafeDrop",
    # Backup
    "BackupError",
    "BackupNotFoundError",
    "MalformedMetadata",
    "VersionMismatch",
    # Other
    "MigrationFailed",
    "ConfigError",
    "StreamConsumerError",
    "categorize_error",
]
