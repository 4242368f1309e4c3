"""Tests for ``strata.core.versions``: Version ordering and the registry."""

from __future__ import annotations

import pytest

from strata.core.errors import ConfigError
from strata.core.versions import Version, VersionRegistry


class TestVersion:
    def test_label_and_tuple(self):
        v = Version("add teams", 1, 2, 3)
        assert v.label == "1.2.3"
        assert v.as_tuple() == (1, 2, 3)

    def test_greater_than(self):
        v = Version("x", 1, 0, 1)
        assert v.greater_than((1, 0, 0))
        assert not v.greater_than((1, 0, 1))
        assert v.greater_than((1, 0, 1), or_equal=True)
        assert not v.greater_than(Version("y", 2, 0, 0))

    def test_numeric_not_lexical(self):
        assert Version("a", 1, 10, 0).greater_than((1, 9, 0))

    def test_equality_ignores_update(self):
        assert Version("a", 1, 0, 0, lambda db: None) == Version("a", 1, 0, 0)

    def test_sorting(self):
        versions = [Version("c", 2, 0, 0), Version("a", 1, 0, 0), Version("b", 1, 0, 1)]
        assert [v.label for v in sorted(versions)] == ["1.0.0", "1.0.1", "2.0.0"]


class TestVersionRegistry:
    def test_iterates_ascending(self):
        registry = VersionRegistry([Version("c", 2, 0, 0), Version("a", 1, 0, 0), Version("b", 1, 0, 1)])
        assert [v.label for v in registry] == ["1.0.0", "1.0.1", "2.0.0"]
        assert registry.latest.label == "2.0.0"
        assert len(registry) == 3

    def test_duplicate_rejected(self):
        registry = VersionRegistry([Version("a", 1, 0, 0)])
        with pytest.raises(ConfigError, match="1.0.0"):
            registry.register(Version("again", 1, 0, 0))

    def test_decorator(self):
        registry = VersionRegistry()

        @registry.version("add teams", 1, 0, 0)
        async def add_teams(db):
            return None

        assert registry.latest.update is add_teams
        assert registry.latest.description == "add teams"

    def test_pending(self):
        registry = VersionRegistry([Version("a", 1, 0, 0), Version("b", 1, 0, 1), Version("c", 2, 0, 0)])
        assert [v.label for v in registry.pending((1, 0, 0))] == ["1.0.1", "2.0.0"]
        assert registry.pending((2, 0, 0)) == []

    def test_empty(self):
        registry = VersionRegistry()
        assert registry.latest is None
        assert list(registry) == []


class TestDiscover:
    def test_discover_directory(self, tmp_path):
        (tmp_path / "v1_0_0.py").write_text(
            "from strata.core.versions import Version\n\n"
            "def update(db):\n    return None\n\n"
            "VERSION = Version('first', 1, 0, 0, update)\n"
        )
        (tmp_path / "v2.py").write_text(
            "from strata.core.versions import Version\n\n"
            "VERSIONS = [Version('second', 2, 0, 0), Version('third', 2, 1, 0)]\n"
        )
        (tmp_path / "_helpers.py").write_text("raise RuntimeError('never imported')\n")
        (tmp_path / "notes.py").write_text("X = 1\n")

        registry = VersionRegistry()
        assert registry.discover(tmp_path) == 3
        assert [v.label for v in registry] == ["1.0.0", "2.0.0", "2.1.0"]

    def test_missing_directory(self, tmp_path):
        assert VersionRegistry().discover(tmp_path / "nope") == 0
