"""
Root Typer application for the strata CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="strata",
    help="strata: query, back up, restore and migrate a relational database.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError
        from importlib.metadata import version as pkg_version

        try:
            v = pkg_version("strata-db")
        except PackageNotFoundError:
            from strata import __version__ as v
        typer.echo(f"strata {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """strata CLI: database versions, backups and table bundles."""


# ── Sub-command registration ─────────────────────────────────────────────

from strata.cli.db import app as db_app  # noqa: E402
from strata.cli.table import app as table_app  # noqa: E402

app.add_typer(db_app, name="db", help="Whole-database operations.")
app.add_typer(table_app, name="table", help="Single-table operations.")
