"""Field-level encoding for backup bundle files.

One bundle line is one row: fields joined by ``,``. Characters that would
break the line structure are percent-escaped, so ``decode_field`` is the exact
inverse of ``encode_field`` for every string.

====================  ==============
value                 encoded
====================  ==============
``None``              ``\\N``
``True`` / ``False``  ``true`` / ``false``
``bytes``             ``\\x`` + hex
``%`` ``,`` ``\\n``   ``%25`` ``%2C`` ``%0A``
``\\r`` ``\\``        ``%0D`` ``%5C``
====================  ==============

A literal backslash is always escaped, so an unescaped ``\\`` only ever
starts the NULL or bytes markers.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

NULL = "\\N"
DELIMITER = ","

_ESCAPES = {
    "%": "%25",
    ",": "%2C",
    "\n": "%0A",
    "\r": "%0D",
    "\\": "%5C",
}
_UNESCAPES = {v: k for k, v in _ESCAPES.items()}
_ESCAPE_RE = re.compile(r"[%,\n\r\\]")
_UNESCAPE_RE = re.compile(r"%(?:25|2C|0A|0D|5C)")


def encode_field(value: Any) -> str:
    if value is None:
        return NULL
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(0)], str(value))


def decode_field(text: str) -> str | bytes | None:
    if text == NULL:
        return None
    if text.startswith("\\x"):
        return bytes.fromhex(text[2:])
    return _UNESCAPE_RE.sub(lambda m: _UNESCAPES[m.group(0)], text)


def encode_line(values: Iterable[Any]) -> str:
    """Encode one row (or the header) without the trailing newline."""
    return DELIMITER.join(encode_field(v) for v in values)


def decode_line(line: str) -> list[str | bytes | None]:
    return [decode_field(f) for f in line.rstrip("\r\n").split(DELIMITER)]


__all__ = [
    "NULL",
    "encode_field",
    "decode_field",
    "encode_line",
    "decode_line",
]
