"""Version migration runner.

Walks the registry in ascending order, skips every version not strictly
greater than the one recorded in the database, and for each remaining one:
full backup, ``update(database)``, record the new version. A raising update
restores the backup taken just before it and halts the run.
"""

from __future__ import annotations

import inspect
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from strata.core.errors import MigrationFailed
from strata.core.logging import get_logger
from strata.core.result import Err, Ok, Result
from strata.core.versions import Version, VersionRegistry

if TYPE_CHECKING:
    from pathlib import Path

    from strata.core.database import Database

logger = get_logger(__name__)


@dataclass
class MigrationResult:
    """Labels of the versions a run applied and skipped."""

    applied: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def current(self) -> str | None:
        return self.applied[-1] if self.applied else None


class MigrationRunner:
    """Applies pending versions to a database.

    Example::

        registry = VersionRegistry()
        registry.discover("versions/")
        runner = MigrationRunner(db, registry)
        match await runner.apply_pending():
            case Ok(result):
                print(f"Applied {len(result.applied)} version(s)")
            case Err(error):
                print(error)
    """

    def __init__(self, database: Database, registry: VersionRegistry) -> None:
        self._db = database
        self._registry = registry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def pending(self) -> Result[list[Version]]:
        """Versions that ``apply_pending`` would run, ascending."""
        return (await self._db.get_version()).map(self._registry.pending)

    async def apply_pending(self) -> Result[MigrationResult]:
        """Apply every pending version in order; stop at the first failure.

        A failure while restoring the pre-migration backup is not caught.
        """
        match await self._db.get_version():
            case Ok(current):
                pass
            case Err(error):
                return Err(error)

        result = MigrationResult()
        for version in self._registry:
            if not version.greater_than(current):
                result.skipped.append(version.label)
                continue

            match await self._db.backup():
                case Ok(backup_path):
                    pass
                case Err(error):
                    logger.error("migration.backup_failed", version=version.label, error=str(error))
                    return Err(MigrationFailed(version.label, error).with_context(applied=result.applied))

            failure = await self._apply(version)
            if failure is not None:
                await self._roll_back(version, backup_path)
                return Err(MigrationFailed(version.label, failure).with_context(applied=result.applied))

            current = version.as_tuple()
            result.applied.append(version.label)
            logger.info("migration.applied", version=version.label, description=version.description)

        return Ok(result)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _apply(self, version: Version) -> Exception | None:
        try:
            outcome = version.update(self._db)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as exc:
            logger.error("migration.failed", version=version.label, error=str(exc))
            return exc
        recorded = await self._db.set_version(version.as_tuple())
        if recorded.is_err():
            logger.error("migration.failed", version=version.label, error=str(recorded.error))
            return recorded.error
        return None

    async def _roll_back(self, version: Version, backup_path: Path) -> None:
        logger.warning("migration.rolling_back", version=version.label, backup=str(backup_path))
        (await self._db.restore(backup_path)).unwrap()
        logger.info("migration.rolled_back", version=version.label, backup=str(backup_path))
