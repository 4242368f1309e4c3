"""Version-control identity recorded in backup metadata and the ``git_identity`` table."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from pathlib import Path

from strata.core.errors import StrataError
from strata.core.logging import get_logger
from strata.core.result import Err, Ok, Result, gather_results

logger = get_logger(__name__)

COMMIT_LENGTH = 7


class GitError(StrataError):
    """``git`` could not be run or exited non-zero."""


@dataclass(frozen=True, slots=True)
class GitIdentity:
    branch: str
    commit: str


async def _git(*args: str, cwd: Path | None = None) -> Result[str]:
    try:
        process = await asyncio.create_subprocess_exec(
            "git",
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
        stdout, stderr = await process.communicate()
    except OSError as exc:
        return Err(GitError(f"git could not be started: {exc}", cause=exc))
    if process.returncode != 0:
        return Err(GitError(f"git {' '.join(args)} failed: {stderr.decode(errors='replace').strip()}"))
    return Ok(stdout.decode().strip())


async def current_branch(cwd: Path | None = None) -> Result[str]:
    return await _git("branch", "--show-current", cwd=cwd)


async def current_commit(cwd: Path | None = None) -> Result[str]:
    return (await _git("rev-parse", "HEAD", cwd=cwd)).map(lambda sha: sha[:COMMIT_LENGTH])


class GitReader:
    """Reads branch and short commit, substituting ``fallback`` when git is unavailable."""

    def __init__(self, cwd: Path | str | None = None, fallback: str = "unknown"):
        self._cwd = Path(cwd) if cwd else None
        self._fallback = fallback

    async def read(self) -> Result[GitIdentity]:
        return (await gather_results(current_branch(self._cwd), current_commit(self._cwd))).map(
            lambda parts: GitIdentity(branch=parts[0], commit=parts[1])
        )

    async def identity(self) -> GitIdentity:
        match await self.read():
            case Ok(identity):
                # detached HEAD has no branch name
                return GitIdentity(
                    branch=identity.branch or self._fallback,
                    commit=identity.commit or self._fallback,
                )
            case Err(error):
                logger.debug("git.unavailable", error=str(error), fallback=self._fallback)
                return GitIdentity(branch=self._fallback, commit=self._fallback)


__all__ = [
    "GitError",
    "GitIdentity",
    "GitReader",
    "current_branch",
    "current_commit",
]
