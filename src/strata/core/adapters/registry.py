"""Driver registry and factory.

Manifesto:
    Consumers should never hard-code driver class names. The registry maps
    ``DatabaseType`` names to driver classes and ``get_driver()`` builds a
    configured, not yet connected, instance from a ``DatabaseConfig`` or URL.

Features:
    - ``DriverRegistry`` with pre-registered defaults
    - ``register()`` for custom drivers and in-memory test doubles
    - ``get_driver()`` factory: config or URL → driver

Tags:
    strata-core, database, registry, factory

Doc-Types:
    api-reference
"""

from __future__ import annotations

from strata.core.errors import ConfigError

from .base import Driver
from .postgresql import PostgreSQLDriver
from .sqlite import SQLiteDriver
from .types import DatabaseConfig


class DriverRegistry:
    """
    Registry for driver classes.

    Pre-registered drivers:
    - ``sqlite``: :class:`SQLiteDriver`
    - ``postgresql`` / ``postgres``: :class:`PostgreSQLDriver`
    """

    def __init__(self):
        self._factories: dict[str, type[Driver]] = {}
        self._register_defaults()

    def _register_defaults(self) -> None:
        self._factories["sqlite"] = SQLiteDriver
        self._factories["postgresql"] = PostgreSQLDriver
        self._factories["postgres"] = PostgreSQLDriver  # Alias

    def register(self, name: str, driver_class: type[Driver]) -> None:
        """Register a driver class exposing ``from_config``."""
        self._factories[name.lower()] = driver_class

    def create(self, config: DatabaseConfig) -> Driver:
        name = config.db_type.value.lower()
        if name not in self._factories:
            raise ConfigError(f"Unknown database driver: {name}")
        return self._factories[name].from_config(config)


# Global registry
driver_registry = DriverRegistry()


def get_driver(config: DatabaseConfig | str) -> Driver:
    """
    Build a driver from a config or URL.

    Usage:
        driver = get_driver("sqlite:///app.sqlite3")
        driver = get_driver(DatabaseConfig(db_type=DatabaseType.POSTGRESQL, database="app"))
    """
    if isinstance(config, str):
        config = DatabaseConfig.from_url(config)
    return driver_registry.create(config)


__all__ = [
    "DriverRegistry",
    "driver_registry",
    "get_driver",
]
