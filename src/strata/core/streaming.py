"""Row streaming.

:class:`RowStreamer` is a pull-based async iterator over rows produced by a
driver. Consumers either iterate it directly, hand it a per-row callback with
:meth:`RowStreamer.pipe`, or materialize it with :meth:`RowStreamer.collect`.

Lifecycle::

    OPEN ──row──> OPEN ──source exhausted──> END
      │                ──aclose()──────────> CLOSE
      │                ──source/consumer───> ERROR
      └─ exactly one terminal event; done callbacks fire once, then are dropped

The source is an async generator owned by the driver. Reaching any terminal
state releases it (``aclose()``), which lets the driver return its cursor or
pooled connection. Bundle writers register a done callback to close their
file handle on every exit path.
"""

from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable
from enum import Enum
from typing import Any, Generic, TypeVar

from strata.core.errors import StrataError, StreamConsumerError
from strata.core.logging import get_logger
from strata.core.result import Err, Ok, Result

logger = get_logger(__name__)

T = TypeVar("T")

DoneCallback = Callable[["StreamEvent", Exception | None], None]


class StreamEvent(str, Enum):
    DATA = "data"
    END = "end"
    CLOSE = "close"
    ERROR = "error"


class RowStreamer(Generic[T]):
    """Single-use async iterator with exactly one terminal event."""

    def __init__(self, source: AsyncIterator[T], *, label: str | None = None) -> None:
        self._source = source
        self._label = label
        self._consumed = False
        self._released = False
        self._terminal: StreamEvent | None = None
        self._error: Exception | None = None
        self._callbacks: list[DoneCallback] = []

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def terminal_event(self) -> StreamEvent | None:
        return self._terminal

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def finished(self) -> bool:
        return self._terminal is not None

    def add_done_callback(self, fn: DoneCallback) -> None:
        """Call ``fn(event, error)`` once when the stream reaches its terminal state.

        Registering on an already finished stream calls ``fn`` immediately.
        """
        if self._terminal is not None:
            fn(self._terminal, self._error)
            return
        self._callbacks.append(fn)

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def __aiter__(self) -> RowStreamer[T]:
        if self._consumed:
            raise RuntimeError("RowStreamer can only be consumed once")
        self._consumed = True
        return self

    async def __anext__(self) -> T:
        if self._terminal is not None:
            raise StopAsyncIteration
        try:
            return await self._source.__anext__()
        except StopAsyncIteration:
            await self._finish(StreamEvent.END)
            raise
        except Exception as e:
            await self._finish(StreamEvent.ERROR, e)
            raise

    async def aclose(self) -> None:
        """Stop early. Emits CLOSE unless the stream already finished."""
        await self._finish(StreamEvent.CLOSE)

    # ------------------------------------------------------------------
    # Consumption helpers
    # ------------------------------------------------------------------

    async def pipe(self, fn: Callable[[T], Awaitable[Any] | Any]) -> Result[int]:
        """Call ``fn`` for each row (sync or async). Returns the number of rows handled.

        The source is released on every exit path, including cancellation.
        A consumer failure ends the stream with ERROR.
        """
        if self._consumed:
            return Err(StreamConsumerError("RowStreamer can only be consumed once"))
        count = 0
        try:
            async for row in self:
                outcome = fn(row)
                if inspect.isawaitable(outcome):
                    await outcome
                count += 1
        except Exception as e:
            if self._terminal is None:
                await self._finish(StreamEvent.ERROR, e)
            if isinstance(e, StrataError):
                return Err(e)
            logger.warning("stream.failed", stream=self._label, rows=count, error=str(e))
            return Err(StreamConsumerError(f"Row stream failed after {count} row(s): {e}", cause=e))
        finally:
            if self._terminal is None:
                await self._finish(StreamEvent.CLOSE)
        return Ok(count)

    async def collect(self) -> Result[list[T]]:
        """Buffer every row into a list."""
        rows: list[T] = []
        result = await self.pipe(rows.append)
        return result.map(lambda _count: rows)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _finish(self, event: StreamEvent, error: Exception | None = None) -> None:
        if self._terminal is not None:
            return
        self._terminal = event
        self._error = error
        await self._release()

        callbacks, self._callbacks = self._callbacks, []
        for fn in callbacks:
            fn(event, error)

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()


async def iterate(rows: list[T]) -> AsyncIterator[T]:
    """Async generator over an in-memory list; handy as a streamer source."""
    for row in rows:
        yield row


async def _raise(error: Exception) -> AsyncIterator[Any]:
    raise error
    yield  # pragma: no cover


def failed(error: Exception, *, label: str | None = None) -> RowStreamer[Any]:
    """A streamer whose first pull fails with ``error``."""
    return RowStreamer(_raise(error), label=label)


__all__ = [
    "StreamEvent",
    "RowStreamer",
    "iterate",
    "failed",
]
