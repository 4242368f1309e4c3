"""
``strata table`` commands: single-table operations.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer

from strata.cli.utils import load_settings, output_result, run_with_database
from strata.core.database import Database
from strata.core.errors import BackupNotFoundError
from strata.core.result import Err, Ok, Result, try_result
from strata.core.settings import StrataSettings
from strata.core.tables import Table

app = typer.Typer(no_args_is_help=True)

DatabaseOpt = typer.Option(None, "--database", "-d", help="Database URL (overrides STRATA_DATABASE_URL)")
BackupsOpt = typer.Option(None, "--backups-dir", "-b", help="Backups directory (overrides STRATA_BACKUPS_DIR)")
JsonOpt = typer.Option(False, "--json", help="JSON output")


def _run_on_table(
    settings: StrataSettings,
    name: str,
    fn: Callable[[Table], Awaitable[Result[Any]]],
) -> Result[Any]:
    async def action(db: Database) -> Result[Any]:
        match try_result(lambda: db.table(name)):
            case Ok(table):
                return await fn(table)
            case Err(error):
                return Err(error)

    return run_with_database(settings, action)


@app.command()
def schema(
    name: str = typer.Argument(..., help="Table name"),
    database: str | None = DatabaseOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Show a table's columns and declared types."""

    async def fn(table: Table) -> Result[list]:
        return await table.get_schema()

    output_result(_run_on_table(load_settings(database), name, fn), as_json=json_out, title=f"Schema: {name}")


@app.command("hash")
def hash_(
    name: str = typer.Argument(..., help="Table name"),
    database: str | None = DatabaseOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Compute a table's content hash."""

    async def fn(table: Table) -> Result[dict[str, str]]:
        return (await table.get_hash()).map(lambda digest: {"table": table.storage_name, "hash": digest})

    output_result(_run_on_table(load_settings(database), name, fn), as_json=json_out, title="Table Hash")


@app.command()
def backup(
    name: str = typer.Argument(..., help="Table name"),
    force: bool = typer.Option(False, "--force", "-f", help="Write a bundle even if the data is unchanged"),
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Write a table bundle (reuses the latest one when nothing changed)."""

    async def fn(table: Table) -> Result[dict[str, str]]:
        return (await table.backup(force=force)).map(
            lambda b: {"filename": b.filename, "data": str(b.data_path), "metadata": str(b.metadata_path)}
        )

    settings = load_settings(database, backups_dir)
    output_result(_run_on_table(settings, name, fn), as_json=json_out, title="Table Backup")


@app.command()
def backups(
    name: str = typer.Argument(..., help="Table name"),
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """List a table's loose bundles, oldest first."""

    async def fn(table: Table) -> Result[list[dict[str, str]]]:
        return Ok([{"filename": b.filename, "date": b.date.isoformat()} for b in table.get_backups()])

    settings = load_settings(database, backups_dir)
    output_result(_run_on_table(settings, name, fn), as_json=json_out, title=f"Backups: {name}")


@app.command()
def restore(
    name: str = typer.Argument(..., help="Table name"),
    filename: str | None = typer.Option(None, "--filename", help="Bundle stem; defaults to the latest"),
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Restore a table from one of its bundles."""

    async def fn(table: Table) -> Result[dict[str, str]]:
        chosen = None
        if filename is not None:
            chosen = next((b for b in table.get_backups() if b.filename == filename), None)
            if chosen is None:
                return Err(BackupNotFoundError(f"No bundle named {filename}").with_context(filename=filename))
        return (await table.restore(chosen)).map(lambda outcome: {"table": table.storage_name, "outcome": outcome.value})

    settings = load_settings(database, backups_dir)
    output_result(_run_on_table(settings, name, fn), as_json=json_out, title="Table Restore")
