"""
strata - relational access layer with hashed table backups and versioned migrations.

Everything public lives in :mod:`strata.core`; the CLI is :mod:`strata.cli`.
"""

__version__ = "0.3.0"

from strata.core import *  # noqa
