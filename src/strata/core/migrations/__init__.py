"""Version migration runner for strata.

Manifesto:
    A database moves forward one registered :class:`~strata.core.versions.Version`
    at a time. Every step is bracketed by a full backup, so a step that
    raises leaves the database exactly as it was before that step and stops
    the run there.

Applies pending versions from a :class:`~strata.core.versions.VersionRegistry`
in ascending ``(major, minor, patch)`` order, recording progress in the
``version`` table.

Modules
-------
runner    MigrationRunner class with pending() / apply_pending()

Tags:
    strata-core, migrations, versions, backup, restore

Doc-Types:
    package-overview
"""

from strata.core.migrations.runner import MigrationResult, MigrationRunner

__all__ = ["MigrationResult", "MigrationRunner"]
