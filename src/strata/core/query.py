"""Query compiler.

Turns a SQL template written with caller-style names and either positional
(``?``) or named (``:accountId``) placeholders into a :class:`Query` whose SQL
uses storage names and ``$1 .. $n`` placeholders only. Drivers never see any
other placeholder style; each dialect rewrites ``$n`` into whatever its
driver expects.

Compile errors (:class:`ParameterCountMismatch`, :class:`PlaceholderStyleError`,
:class:`QueryFileNotFound`) are raised at call time. Callers one layer up wrap
compilation with :func:`strata.core.result.try_result`.

Example::

    >>> q = Query.build("SELECT * FROM t WHERE accountId = ?", "abc")
    >>> q.sql
    'SELECT * FROM t WHERE account_id = $1'
    >>> q.params
    ('abc',)
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from strata.core.errors import ParameterCountMismatch, PlaceholderStyleError, QueryFileNotFound
from strata.core.naming import to_caller, to_storage, translate_sql

# whichever of a literal or a line comment starts first wins
_LEXEME = re.compile(r"'(?:[^']|'')*'|--[^\n]*")
_POSITIONAL = re.compile(r"\?")
# ``::`` casts are not placeholders
_NAMED = re.compile(r"(?<!:):([A-Za-z_]\w*)")


def _code_segments(sql: str) -> list[str]:
    """Split SQL into alternating code / single-quoted literal segments, dropping ``--`` comments.

    Even indexes are code, odd indexes are literals kept verbatim.
    """
    segments: list[str] = []
    code: list[str] = []
    pos = 0
    for m in _LEXEME.finditer(sql):
        code.append(sql[pos : m.start()])
        pos = m.end()
        if m.group(0).startswith("'"):
            segments += ["".join(code), m.group(0)]
            code = []
    code.append(sql[pos:])
    segments.append("".join(code))
    return segments


def _count(pattern: re.Pattern[str], segments: list[str]) -> int:
    return sum(len(pattern.findall(s)) for i, s in enumerate(segments) if i % 2 == 0)


@dataclass(frozen=True, slots=True)
class Query:
    """Compiled SQL plus its ordered positional parameters."""

    sql: str
    params: tuple[Any, ...] = ()

    @classmethod
    def build(cls, template: str, *args: Any) -> Query:
        """Compile ``template`` with ``args``.

        Raises:
            PlaceholderStyleError: template mixes ``?`` and ``:name``
            ParameterCountMismatch: placeholders and arguments do not line up
        """
        segments = _code_segments(template)

        positional = _count(_POSITIONAL, segments)
        named = _count(_NAMED, segments)

        if positional and named:
            raise PlaceholderStyleError(template)

        if positional:
            if positional != len(args):
                raise ParameterCountMismatch(
                    template,
                    args,
                    f"Query expects {positional} positional parameter(s), got {len(args)}",
                )
            params = tuple(args)
            counter = iter(range(1, positional + 1))
            segments = [
                _POSITIONAL.sub(lambda _m: f"${next(counter)}", s) if i % 2 == 0 else s
                for i, s in enumerate(segments)
            ]
        elif named:
            segments, params = _bind_named(template, segments, args)
        else:
            if args:
                raise ParameterCountMismatch(
                    template, args, f"Query takes no parameters, got {len(args)}"
                )
            params = ()

        return cls(translate_sql("".join(segments)), params)

    @classmethod
    def from_file(cls, name: str, *args: Any, registry: QueryRegistry) -> Query:
        """Load the template registered as ``name`` and compile it."""
        return cls.build(registry.load(name), *args)


def _bind_named(
    template: str, segments: list[str], args: tuple[Any, ...]
) -> tuple[list[str], tuple[Any, ...]]:
    order: list[str] = []
    for i, s in enumerate(segments):
        if i % 2 == 0:
            for name in _NAMED.findall(s):
                if name not in order:
                    order.append(name)

    if len(args) == 1 and isinstance(args[0], Mapping):
        source = args[0]
        params = []
        for name in order:
            for key in (name, to_caller(name), to_storage(name)):
                if key in source:
                    params.append(source[key])
                    break
            else:
                raise ParameterCountMismatch(template, args, f"No value supplied for :{name}")
    else:
        if len(order) != len(args):
            raise ParameterCountMismatch(
                template,
                args,
                f"Query expects {len(order)} named parameter(s), got {len(args)}",
            )
        params = list(args)

    index = {name: n for n, name in enumerate(order, start=1)}
    segments = [
        _NAMED.sub(lambda m: f"${index[m.group(1)]}", s) if i % 2 == 0 else s
        for i, s in enumerate(segments)
    ]
    return segments, tuple(params)


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Rows of one driver round-trip, keys already in caller naming."""

    rows: list[dict[str, Any]]
    query: Query

    def first(self) -> dict[str, Any] | None:
        return self.rows[0] if self.rows else None

    def __len__(self) -> int:
        return len(self.rows)


@dataclass
class QueryRegistry:
    """Named SQL templates, keyed by path relative to ``root`` without extension.

    ``queries/account/from-username.sql`` is registered as
    ``"account/from-username"``.
    """

    root: Path | None = None
    _paths: dict[str, Path] = field(default_factory=dict, init=False, repr=False)
    _cache: dict[str, str] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.root is not None:
            self.discover(self.root)

    def discover(self, root: Path | str) -> int:
        """Register every ``*.sql`` file below ``root``. Returns the number found."""
        root = Path(root)
        if not root.is_dir():
            return 0
        found = 0
        for path in sorted(root.rglob("*.sql")):
            self.register(path.relative_to(root).with_suffix("").as_posix(), path)
            found += 1
        return found

    def register(self, name: str, path: Path | str) -> None:
        self._paths[name] = Path(path)
        self._cache.pop(name, None)

    def names(self) -> list[str]:
        return sorted(self._paths)

    def __contains__(self, name: str) -> bool:
        return name in self._paths

    def load(self, name: str) -> str:
        """Return the template text for ``name``.

        Raises:
            QueryFileNotFound: ``name`` is unregistered or its file is gone
        """
        if name in self._cache:
            return self._cache[name]
        path = self._paths.get(name)
        if path is None or not path.is_file():
            raise QueryFileNotFound(name)
        text = path.read_text(encoding="utf-8")
        self._cache[name] = text
        return text

    def build(self, name: str, *args: Any) -> Query:
        return Query.from_file(name, *args, registry=self)


__all__ = [
    "Query",
    "QueryResult",
    "QueryRegistry",
]
