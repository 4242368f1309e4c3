"""
Ok / Err return values.

Anything in strata that can fail at runtime (a driver call, a file, a git
subprocess) hands back ``Ok(value)`` or ``Err(exception)`` instead of raising.
Call sites branch with ``match`` and return the ``Err`` they received
untouched::

    match await table.get_hash():
        case Ok(digest):
            pass
        case Err(error):
            return Err(error)

Only the query compiler raises directly; :func:`try_result` turns those
raises into values where the façade needs them.

Helpers:
    try_result / try_result_async   exception -> Err bridge
    collect_results                 first Err wins, else Ok(list)
    gather_results                  asyncio.gather + collect_results

Tags:
    result-pattern, error-handling, strata-core

Doc-Types:
    api-reference
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Iterable
from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar

from strata.core.errors import StrataError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """The success side. ``unwrap()`` never raises."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        return self.value

    def unwrap_or(self, default: T) -> T:  # noqa: ARG002
        return self.value

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:  # noqa: ARG002
        return self.value

    def map(self, f: Callable[[T], U]) -> Result[U]:
        return Ok(f(self.value))

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:
        return f(self.value)

    and_then = flat_map

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:  # noqa: ARG002
        return self

    def or_else(self, f: Callable[[Exception], Result[T]]) -> Result[T]:  # noqa: ARG002
        return self

    def inspect(self, f: Callable[[T], Any]) -> Result[T]:
        f(self.value)
        return self

    def inspect_err(self, f: Callable[[Exception], Any]) -> Result[T]:  # noqa: ARG002
        return self

    def to_dict(self) -> dict[str, Any]:
        return {"ok": True, "value": self.value}


@dataclass(frozen=True, slots=True)
class Err(Generic[T]):
    """The failure side. ``unwrap()`` re-raises ``error``; ``map`` and friends pass it along."""

    error: Exception

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        raise self.error

    def unwrap_or(self, default: T) -> T:
        return default

    def unwrap_or_else(self, f: Callable[[Exception], T]) -> T:
        return f(self.error)

    def map(self, f: Callable[[T], U]) -> Result[U]:  # noqa: ARG002
        return Err(self.error)

    def flat_map(self, f: Callable[[T], Result[U]]) -> Result[U]:  # noqa: ARG002
        return Err(self.error)

    and_then = flat_map

    def map_err(self, f: Callable[[Exception], Exception]) -> Result[T]:
        return Err(f(self.error))

    def or_else(self, f: Callable[[Exception], Result[T]]) -> Result[T]:
        return f(self.error)

    def inspect(self, f: Callable[[T], Any]) -> Result[T]:  # noqa: ARG002
        return self

    def inspect_err(self, f: Callable[[Exception], Any]) -> Result[T]:
        f(self.error)
        return self

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.error, StrataError):
            detail = self.error.to_dict()
        else:
            detail = {"error_type": type(self.error).__name__, "message": str(self.error)}
        return {"ok": False, "error": detail}


Result = Ok[T] | Err[T]


def try_result(
    f: Callable[[], T],
    error_mapper: Callable[[Exception], Exception] | None = None,
) -> Result[T]:
    """Call ``f()``; a raised exception (optionally passed through ``error_mapper``) becomes ``Err``.

    >>> try_result(lambda: int("7"))
    Ok(value=7)
    >>> try_result(lambda: int("x")).is_err()
    True
    """
    try:
        return Ok(f())
    except Exception as e:
        return Err(error_mapper(e) if error_mapper else e)


async def try_result_async(
    f: Callable[[], Awaitable[T]],
    error_mapper: Callable[[Exception], Exception] | None = None,
) -> Result[T]:
    try:
        return Ok(await f())
    except Exception as e:
        return Err(error_mapper(e) if error_mapper else e)


def collect_results(results: Iterable[Result[T]]) -> Result[list[T]]:
    """``Ok`` of every value in order, or the first ``Err`` met."""
    values: list[T] = []
    for result in results:
        if isinstance(result, Err):
            return Err(result.error)
        values.append(result.value)
    return Ok(values)


async def gather_results(*aws: Awaitable[Result[T]]) -> Result[list[T]]:
    """Await everything concurrently, then join with :func:`collect_results`.

    Siblings of a failing awaitable still run to completion. An awaitable
    that raises counts as ``Err``; ``BaseException`` (cancellation,
    KeyboardInterrupt) is re-raised.
    """
    outcomes = await asyncio.gather(*aws, return_exceptions=True)
    joined: list[Result[T]] = []
    for outcome in outcomes:
        if isinstance(outcome, Exception):
            joined.append(Err(outcome))
        elif isinstance(outcome, BaseException):
            raise outcome
        else:
            joined.append(outcome)
    return collect_results(joined)


__all__ = [
    "Ok",
    "Err",
    "Result",
    "try_result",
    "try_result_async",
    "collect_results",
    "gather_results",
]
