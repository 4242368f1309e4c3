"""Tests for ``strata.core.git`` and ``strata.core.logging``."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
import structlog

from strata.core.git import GitError, GitIdentity, GitReader, current_commit
from strata.core.logging import LogContext, configure_logging, get_logger


def fake_process(stdout: bytes, returncode: int = 0, stderr: bytes = b"") -> MagicMock:
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    return process


class TestGitReader:
    @pytest.mark.asyncio
    @patch("asyncio.create_subprocess_exec", new_callable=AsyncMock)
    async def test_identity(self, mock_exec):
        mock_exec.side_effect = [
            fake_process(b"main\n"),
            fake_process(b"3f2a9c1d0e5b4a6978\n"),
        ]
        assert await GitReader().identity() == GitIdentity(branch="main", commit="3f2a9c1")

    @pytest.mark.asyncio
    @patch("asyncio.create_subprocess_exec", new_callable=AsyncMock)
    async def test_detached_head_uses_fallback_branch(self, mock_exec):
        mock_exec.side_effect = [fake_process(b"\n"), fake_process(b"3f2a9c1d0e\n")]
        assert await GitReader(fallback="detached").identity() == GitIdentity("detached", "3f2a9c1")

    @pytest.mark.asyncio
    @patch("asyncio.create_subprocess_exec", new_callable=AsyncMock)
    async def test_git_missing(self, mock_exec):
        mock_exec.side_effect = OSError("No such file or directory: 'git'")
        reader = GitReader(fallback="n/a")
        assert isinstance((await reader.read()).error, GitError)
        assert await reader.identity() == GitIdentity("n/a", "n/a")

    @pytest.mark.asyncio
    @patch("asyncio.create_subprocess_exec", new_callable=AsyncMock)
    async def test_not_a_repository(self, mock_exec):
        mock_exec.return_value = fake_process(b"", returncode=128, stderr=b"fatal: not a git repository")
        result = await current_commit()
        assert isinstance(result.error, GitError)
        assert "not a git repository" in str(result.error)


class TestLogging:
    @pytest.fixture(autouse=True)
    def _reset_structlog(self):
        yield
        structlog.reset_defaults()

    def test_json_output(self, capsys):
        configure_logging(level="INFO", json_format=True)
        get_logger("tests.logging").info("backup.created", table="team")
        line = capsys.readouterr().err.strip().splitlines()[-1]
        event = json.loads(line)
        assert event["event"] == "backup.created"
        assert event["table"] == "team"
        assert event["service.name"] == "strata"
        assert event["log.level"] == "info"
        assert "@timestamp" in event

    def test_level_filtering(self, capsys):
        configure_logging(level="WARNING", json_format=True)
        get_logger("tests.logging").info("restore.skipped")
        assert capsys.readouterr().err == ""

    def test_log_context(self, capsys):
        configure_logging(level="INFO", json_format=True)
        with LogContext(migration="1.2.0"):
            get_logger("tests.logging").info("migration.applied")
        get_logger("tests.logging").info("migration.done")
        lines = [json.loads(line) for line in capsys.readouterr().err.strip().splitlines()]
        assert lines[0]["migration"] == "1.2.0"
        assert "migration" not in lines[1]
