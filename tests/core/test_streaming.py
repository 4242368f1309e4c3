"""Tests for ``strata.core.streaming.RowStreamer``."""

from __future__ import annotations

import pytest

from strata.core.errors import BackupError, StreamConsumerError
from strata.core.result import Err, Ok
from strata.core.streaming import RowStreamer, StreamEvent, failed, iterate


class Source:
    """Async generator source that records whether it was released."""

    def __init__(self, rows, fail_at: int | None = None):
        self.rows = rows
        self.fail_at = fail_at
        self.released = False

    async def gen(self):
        try:
            for index, row in enumerate(self.rows):
                if index == self.fail_at:
                    raise BackupError("source broke")
                yield row
        finally:
            self.released = True


def recorder(stream: RowStreamer) -> list:
    events = []
    stream.add_done_callback(lambda event, error: events.append((event, error)))
    return events


class TestConsumption:
    @pytest.mark.asyncio
    async def test_collect(self):
        stream = RowStreamer(iterate([{"id": 1}, {"id": 2}]))
        assert await stream.collect() == Ok([{"id": 1}, {"id": 2}])
        assert stream.terminal_event is StreamEvent.END

    @pytest.mark.asyncio
    async def test_pipe_counts_rows(self):
        seen = []
        result = await RowStreamer(iterate([1, 2, 3])).pipe(seen.append)
        assert result == Ok(3)
        assert seen == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_pipe_awaits_async_consumer(self):
        seen = []

        async def consume(row):
            seen.append(row * 10)

        assert await RowStreamer(iterate([1, 2])).pipe(consume) == Ok(2)
        assert seen == [10, 20]

    @pytest.mark.asyncio
    async def test_async_for(self):
        stream = RowStreamer(iterate(["a", "b"]))
        assert [row async for row in stream] == ["a", "b"]
        assert stream.terminal_event is StreamEvent.END

    @pytest.mark.asyncio
    async def test_single_use(self):
        stream = RowStreamer(iterate([1]))
        await stream.collect()
        result = await stream.pipe(lambda _row: None)
        assert isinstance(result, Err)
        assert isinstance(result.error, StreamConsumerError)


class TestTerminalEvents:
    @pytest.mark.asyncio
    async def test_end_fires_once(self):
        stream = RowStreamer(iterate([1, 2]))
        events = recorder(stream)
        await stream.collect()
        await stream.aclose()
        assert events == [(StreamEvent.END, None)]

    @pytest.mark.asyncio
    async def test_close_releases_source(self):
        source = Source([1, 2, 3])
        stream = RowStreamer(source.gen())
        events = recorder(stream)
        assert await stream.__aiter__().__anext__() == 1
        await stream.aclose()
        assert events == [(StreamEvent.CLOSE, None)]
        assert source.released

    @pytest.mark.asyncio
    async def test_consumer_error(self):
        source = Source([1, 2, 3])
        stream = RowStreamer(source.gen())
        events = recorder(stream)

        def explode(row):
            if row == 2:
                raise ValueError("bad row")

        result = await stream.pipe(explode)
        assert isinstance(result.error, StreamConsumerError)
        assert isinstance(result.error.cause, ValueError)
        assert [event for event, _ in events] == [StreamEvent.ERROR]
        assert source.released

    @pytest.mark.asyncio
    async def test_source_error_passes_through(self):
        source = Source([1, 2, 3], fail_at=1)
        stream = RowStreamer(source.gen())
        events = recorder(stream)
        result = await stream.pipe(lambda _row: None)
        assert isinstance(result.error, BackupError)
        assert events[0][0] is StreamEvent.ERROR
        assert events[0][1] is result.error
        assert len(events) == 1

    @pytest.mark.asyncio
    async def test_callback_after_finish_fires_immediately(self):
        stream = RowStreamer(iterate([]))
        await stream.collect()
        events = recorder(stream)
        assert events == [(StreamEvent.END, None)]


class TestFailed:
    @pytest.mark.asyncio
    async def test_failed_stream_returns_error(self):
        error = BackupError("not ready")
        stream = failed(error)
        events = recorder(stream)
        assert await stream.collect() == Err(error)
        assert events == [(StreamEvent.ERROR, error)]
