"""
Semantic database versions and their registry.

Each :class:`Version` pairs a ``major.minor.patch`` triple with an ``update``
callable that moves a database from the previous version to this one. The
registry is an explicit object built at startup and handed to the
:class:`~strata.core.database.Database`; nothing is registered at import time.

Examples:
    >>> registry = VersionRegistry()
    >>> @registry.version("add teams", 1, 0, 0)
    ... async def add_teams(db):
    ...     await db.unsafe.run("CREATE TABLE team (id INTEGER PRIMARY KEY, name TEXT)")
    >>> [v.label for v in registry]
    ['1.0.0']

Version files discovered from a directory define a module-level ``VERSION``
(or a ``VERSIONS`` list)::

    # versions/v1_0_1.py
    from strata.core.versions import Version

    async def update(db):
        await db.unsafe.run("ALTER TABLE team ADD COLUMN color TEXT")

    VERSION = Version("team colors", 1, 0, 1, update)

Tags:
    strata-core, migrations, versions, registry-pattern

Doc-Types:
    api-reference
"""

from __future__ import annotations

import importlib.util
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from strata.core.errors import ConfigError
from strata.core.logging import get_logger

if TYPE_CHECKING:
    from strata.core.database import Database

logger = get_logger(__name__)

UpdateFn = Callable[["Database"], Awaitable[Any] | Any]
VersionTuple = tuple[int, int, int]


def _noop(_db: Database) -> None:
    return None


@dataclass(frozen=True, slots=True)
class Version:
    """One migration step. Ordered and compared by ``(major, minor, patch)`` only."""

    description: str = field(compare=False)
    major: int
    minor: int
    patch: int
    update: UpdateFn = field(default=_noop, compare=False, repr=False)

    def as_tuple(self) -> VersionTuple:
        return (self.major, self.minor, self.patch)

    @property
    def label(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def greater_than(self, other: VersionTuple | Version, or_equal: bool = False) -> bool:
        other = other.as_tuple() if isinstance(other, Version) else tuple(other)
        if or_equal:
            return self.as_tuple() >= other
        return self.as_tuple() > other

    def __lt__(self, other: Version) -> bool:
        return self.as_tuple() < other.as_tuple()


class VersionRegistry:
    """Ordered collection of :class:`Version` steps."""

    def __init__(self, versions: list[Version] | None = None):
        self._versions: dict[VersionTuple, Version] = {}
        self._sorted: list[Version] | None = None
        for v in versions or []:
            self.register(v)

    def register(self, version: Version) -> Version:
        """Add ``version``.

        Raises:
            ConfigError: another step already uses the same triple
        """
        key = version.as_tuple()
        if key in self._versions:
            raise ConfigError(f"Version {version.label} is already registered")
        self._versions[key] = version
        self._sorted = None
        return version

    def version(self, description: str, major: int, minor: int, patch: int) -> Callable[[UpdateFn], UpdateFn]:
        """Decorator registering the decorated function as a step's ``update``."""

        def decorator(fn: UpdateFn) -> UpdateFn:
            self.register(Version(description, major, minor, patch, fn))
            return fn

        return decorator

    def discover(self, directory: Path | str) -> int:
        """Import every ``*.py`` in ``directory`` and register its ``VERSION`` / ``VERSIONS``.

        Returns the number of steps registered.
        """
        directory = Path(directory)
        if not directory.is_dir():
            return 0
        found = 0
        for path in sorted(directory.glob("*.py")):
            if path.name.startswith("_"):
                continue
            spec = importlib.util.spec_from_file_location(f"strata_versions.{path.stem}", path)
            if spec is None or spec.loader is None:
                continue
            module = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(module)
            steps = getattr(module, "VERSIONS", None) or [getattr(module, "VERSION", None)]
            for step in steps:
                if isinstance(step, Version):
                    self.register(step)
                    found += 1
        logger.debug("versions.discovered", directory=str(directory), count=found)
        return found

    @property
    def versions(self) -> list[Version]:
        """All steps, ascending. Sorted once per registration."""
        if self._sorted is None:
            self._sorted = sorted(self._versions.values(), key=Version.as_tuple)
        return self._sorted

    @property
    def latest(self) -> Version | None:
        return self.versions[-1] if self._versions else None

    def pending(self, current: VersionTuple) -> list[Version]:
        """Steps strictly greater than ``current``, ascending."""
        return [v for v in self.versions if v.greater_than(current)]

    def __len__(self) -> int:
        return len(self._versions)

    def __iter__(self) -> Iterator[Version]:
        return iter(self.versions)


__all__ = [
    "Version",
    "VersionRegistry",
    "VersionTuple",
]
