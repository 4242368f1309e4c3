"""
CLI utility helpers: settings overrides, database lifecycle, output formatting.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from dataclasses import asdict, is_dataclass
from enum import Enum
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.table import Table

from strata.core.database import Database
from strata.core.errors import StrataError
from strata.core.factory import create_database
from strata.core.logging import configure_logging
from strata.core.result import Err, Ok, Result
from strata.core.settings import StrataSettings, get_settings

console = Console()
err_console = Console(stderr=True)

Action = Callable[[Database], Awaitable[Result[Any]]]


# ── Database helpers ─────────────────────────────────────────────────────


def load_settings(database: str | None = None, backups_dir: Path | None = None) -> StrataSettings:
    """Cached settings with ``--database`` / ``--backups-dir`` applied on top."""
    settings = get_settings()
    updates: dict[str, Any] = {}
    if database:
        updates["database_url"] = database
    if backups_dir:
        updates["backups_dir"] = backups_dir
    return settings.model_copy(update=updates) if updates else settings


async def _with_database(settings: StrataSettings, action: Action | None, migrate: bool) -> Result[Any]:
    try:
        db = create_database(settings)
    except StrataError as e:
        return Err(e)
    try:
        initialized = await db.init(run_migrations=migrate)
        if action is None or initialized.is_err():
            return initialized
        return await action(db)
    finally:
        await db.close()


def run_with_database(settings: StrataSettings, action: Action | None = None, *, migrate: bool = False) -> Result[Any]:
    """Init a database from *settings*, run *action* on it, always close it.

    With no *action* the ``init()`` result itself is returned.
    """
    configure_logging(level=settings.log_level, json_format=settings.json_logs)
    return asyncio.run(_with_database(settings, action, migrate))


# ── Output helpers ───────────────────────────────────────────────────────


def _plain(obj: Any) -> Any:
    """Convert dataclasses, pydantic models, paths and enums to JSON-friendly values."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json", by_alias=True)
    if is_dataclass(obj) and not isinstance(obj, type):
        return {k: _plain(v) for k, v in asdict(obj).items()}
    if isinstance(obj, dict):
        return {str(k): _plain(v) for k, v in obj.items()}
    if isinstance(obj, list | tuple):
        return [_plain(v) for v in obj]
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, Path):
        return str(obj)
    return obj


def output_result(result: Result[Any], *, as_json: bool = False, title: str = "") -> None:
    """Render a ``Result`` to the terminal; exit with code 1 on ``Err``."""
    match result:
        case Err(error):
            if as_json and isinstance(error, StrataError):
                err_console.print_json(json.dumps(error.to_dict(), default=str))
            else:
                err_console.print(f"[bold red]Error[/bold red] ({type(error).__name__}): {error}")
            raise typer.Exit(code=1)
        case Ok(value):
            data = _plain(value)

    if as_json:
        console.print_json(json.dumps(data, default=str))
        return

    if isinstance(data, list):
        if not data:
            console.print("[dim]No items.[/dim]")
            return
        _print_table(data, title=title)
    elif isinstance(data, dict):
        _print_dict(data, title=title)
    else:
        if title:
            console.print(f"[bold]{title}[/bold]")
        console.print(f"  {data}")


# ── Private helpers ──────────────────────────────────────────────────────


def _print_table(items: list, *, title: str = "") -> None:
    """Render a list of dicts (or scalars) as a Rich table."""
    rows = [item if isinstance(item, dict) else {"value": item} for item in items]
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)


def _print_dict(data: dict[str, Any], *, title: str = "") -> None:
    """Render a single dict as key-value pairs."""
    if title:
        console.print(f"[bold]{title}[/bold]")
    for k, v in data.items():
        console.print(f"  [cyan]{k}[/cyan]: {v}")
