"""
CLI layer for strata.

Provides a Typer application whose sub-commands open a
:class:`~strata.core.database.Database` from settings, run one façade
operation and render its ``Result``. All behaviour lives in
``strata.core``; this package handles only argument parsing, coloured
output and table formatting.

Entry point::

    strata --help
"""

from strata.cli.app import app

__all__ = ["app"]
