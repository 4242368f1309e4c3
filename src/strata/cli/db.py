"""
``strata db`` commands: whole-database operations.
"""

from __future__ import annotations

from pathlib import Path

import typer

from strata.cli.utils import load_settings, output_result, run_with_database
from strata.core.database import Database
from strata.core.result import Ok, Result, gather_results

app = typer.Typer(no_args_is_help=True)

DatabaseOpt = typer.Option(None, "--database", "-d", help="Database URL (overrides STRATA_DATABASE_URL)")
BackupsOpt = typer.Option(None, "--backups-dir", "-b", help="Backups directory (overrides STRATA_BACKUPS_DIR)")
JsonOpt = typer.Option(False, "--json", help="JSON output")


@app.command()
def init(
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Create bootstrap tables and apply pending versions."""
    result = run_with_database(load_settings(database, backups_dir), migrate=True)
    output_result(result, as_json=json_out, title="Database Init")


@app.command()
def version(
    database: str | None = DatabaseOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Show the recorded database version."""

    async def action(db: Database) -> Result[dict[str, str]]:
        return (await db.get_version()).map(lambda v: {"version": ".".join(map(str, v))})

    output_result(run_with_database(load_settings(database), action), as_json=json_out, title="Database Version")


@app.command()
def tables(
    database: str | None = DatabaseOpt,
    json_out: bool = JsonOpt,
) -> None:
    """List tables with their row counts."""

    async def action(db: Database) -> Result[list[dict[str, object]]]:
        listed = await db.get_tables()
        if listed.is_err():
            return listed
        found = listed.unwrap()
        counts = await gather_results(*(t.count() for t in found))
        return counts.map(lambda ns: [{"table": t.storage_name, "rows": n} for t, n in zip(found, ns)])

    output_result(run_with_database(load_settings(database), action), as_json=json_out, title="Tables")


@app.command()
def backup(
    zip_archive: bool | None = typer.Option(None, "--zip/--no-zip", help="Zip the backup directory"),
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Back up every table into a timestamped directory."""
    settings = load_settings(database, backups_dir)
    zipped = settings.zip_backups if zip_archive is None else zip_archive

    async def action(db: Database) -> Result[dict[str, str]]:
        return (await db.backup(zip=zipped)).map(lambda path: {"path": str(path)})

    output_result(run_with_database(settings, action), as_json=json_out, title="Backup Created")


@app.command()
def backups(
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """List whole-database backups, oldest first."""

    async def action(db: Database) -> Result[list[dict[str, str]]]:
        return Ok([{"name": p.name, "path": str(p)} for p in db.get_backups()])

    output_result(run_with_database(load_settings(database, backups_dir), action), as_json=json_out, title="Backups")


@app.command()
def restore(
    path: Path = typer.Argument(..., help="Backup directory or .zip archive"),
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Restore every table from a whole-database backup."""

    async def action(db: Database) -> Result[dict[str, str]]:
        return (await db.restore(path)).map(lambda outcomes: {t: o.value for t, o in outcomes.items()})

    output_result(run_with_database(load_settings(database, backups_dir), action), as_json=json_out, title="Restored")


@app.command()
def dump(
    target: Path = typer.Argument(..., help="Directory receiving the native dump"),
    database: str | None = DatabaseOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Write a native database dump (SQLite file copy or pg_dump)."""

    async def action(db: Database) -> Result[dict[str, str]]:
        return (await db.dump(target)).map(lambda out: {"path": str(out)})

    output_result(run_with_database(load_settings(database), action), as_json=json_out, title="Dump")


@app.command()
def vacuum(
    database: str | None = DatabaseOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Reclaim unused space."""

    async def action(db: Database) -> Result[dict[str, bool]]:
        return (await db.vacuum()).map(lambda _none: {"vacuumed": True})

    output_result(run_with_database(load_settings(database), action), as_json=json_out, title="Vacuum")


@app.command()
def reset(
    hard: bool = typer.Option(False, "--hard", help="Drop every table instead of emptying it"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    database: str | None = DatabaseOpt,
    backups_dir: Path | None = BackupsOpt,
    json_out: bool = JsonOpt,
) -> None:
    """Back up, then empty (or with --hard drop) every table."""
    if not yes:
        typer.confirm(f"{'Drop' if hard else 'Empty'} every table?", abort=True)

    async def action(db: Database) -> Result[dict[str, str]]:
        return (await db.reset(hard=hard)).map(lambda path: {"backup": str(path), "mode": "hard" if hard else "soft"})

    output_result(run_with_database(load_settings(database, backups_dir), action), as_json=json_out, title="Reset")
