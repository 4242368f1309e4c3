"""Identifier translation between caller naming and storage naming.

Callers write field names the way application code spells them
(``accountId``, ``teamNumberTotal``); tables and columns are stored
underscore-delimited (``account_id``, ``team_number_total``). The query
compiler runs :func:`translate_sql` over templates and the drivers run
:func:`decode_row` over every result row.

Round-trip: ``to_storage(to_caller(x)) == x`` holds for lower-case
underscore identifiers whose segments start with a letter and, except for
the last one, are at least two characters long. Outside that set the
mapping is lossy:

- a word starting with an upper-case letter loses its leading separator,
  so ``Team`` and ``team`` both store as ``team``
- a segment starting with a digit (``col_2``) comes back as ``col2``
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Any

# A run of letters/digits that reads as one camel-cased word.
_WORD = re.compile(r"[A-Z]*[a-z]+((\d)|([A-Z0-9][a-z0-9]+))*([A-Z])?")
_UPPER = re.compile(r"[A-Z]")
_SPACES = re.compile(r"\s+")
_CAMEL_BOUNDARY = re.compile(r"(?:^\w|[A-Z]|\b\w)")
_STRING_LITERAL = re.compile(r"('(?:[^']|'')*')")


def _split_upper(text: str) -> str:
    return _UPPER.sub(lambda m: " " + m.group(0).lower(), text)


def _storage_word(match: re.Match[str]) -> str:
    word = _SPACES.sub("_", _split_upper(match.group(0)))
    if word.startswith("_"):
        word = word[1:]
    return word


def to_storage(name: str) -> str:
    """Translate a caller-style identifier (``accountId``) to storage style (``account_id``)."""
    return _WORD.sub(_storage_word, name)


def to_caller(name: str) -> str:
    """Translate a storage-style identifier (``account_id``) to caller style (``accountId``)."""
    spaced = _split_upper(name).replace("_", " ")
    camel = _CAMEL_BOUNDARY.sub(
        lambda m: m.group(0).lower() if m.start() == 0 else m.group(0).upper(),
        spaced,
    )
    return _SPACES.sub("", camel)


def translate_sql(sql: str) -> str:
    """Apply :func:`to_storage` to every word-like token outside single-quoted literals.

    All-caps keywords (``SELECT``, ``FROM``) contain no lower-case letter and
    are left alone.
    """
    parts = _STRING_LITERAL.split(sql)
    return "".join(
        part if index % 2 else to_storage(part)
        for index, part in enumerate(parts)
    )


def decode_row(row: Mapping[str, Any]) -> dict[str, Any]:
    """Rename every key of a storage row to caller style, keeping column order."""
    return {to_caller(key): value for key, value in row.items()}


__all__ = [
    "to_storage",
    "to_caller",
    "translate_sql",
    "decode_row",
]
