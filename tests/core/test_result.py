"""Tests for strata.core.result module."""

import asyncio

import pytest

from strata.core.errors import BackupError, RowNotFoundError
from strata.core.result import (
    Err,
    Ok,
    Result,
    collect_results,
    gather_results,
    try_result,
    try_result_async,
)


class TestOk:
    """Test Ok class."""

    def test_create_ok(self):
        result = Ok(42)
        assert result.value == 42
        assert result.is_ok() is True
        assert result.is_err() is False

    def test_unwrap_variants(self):
        """Every unwrap variant returns the value for Ok."""
        result = Ok("hello")
        assert result.unwrap() == "hello"
        assert result.unwrap_or("x") == "hello"
        assert result.unwrap_or_else(lambda e: "x") == "hello"

    def test_map_chaining(self):
        result = Ok(3).map(lambda x: x * 2).map(lambda x: x + 1)
        assert result.unwrap() == 7

    def test_flat_map(self):
        """flat_map chains Result-returning functions."""

        def double_if_even(x: int) -> Result[int]:
            if x % 2 == 0:
                return Ok(x * 2)
            return Err(ValueError("Odd number"))

        assert Ok(4).flat_map(double_if_even).unwrap() == 8
        assert Ok(3).flat_map(double_if_even).is_err()
        assert Ok(10).and_then(lambda x: Ok(x + 5)).unwrap() == 15

    def test_error_side_is_no_op(self):
        seen = []
        result = Ok(42).map_err(lambda e: ValueError("new")).or_else(lambda e: Ok(99)).inspect_err(seen.append)
        assert result.unwrap() == 42
        assert seen == []

    def test_inspect(self):
        seen = []
        Ok(42).inspect(seen.append)
        assert seen == [42]

    def test_to_dict(self):
        assert Ok({"key": "value"}).to_dict() == {"ok": True, "value": {"key": "value"}}

    def test_ok_is_immutable(self):
        result = Ok(42)
        with pytest.raises(Exception):  # FrozenInstanceError or AttributeError
            result.value = 99

    def test_match(self):
        match Ok(5):
            case Ok(value):
                assert value == 5
            case Err(_):
                pytest.fail("matched Err")


class TestErr:
    """Test Err class."""

    def test_unwrap_raises(self):
        with pytest.raises(ValueError, match="Bad value"):
            Err(ValueError("Bad value")).unwrap()

    def test_unwrap_fallbacks(self):
        result = Err(ValueError("error"))
        assert result.unwrap_or(99) == 99
        assert result.unwrap_or_else(lambda e: str(e)) == "error"

    def test_map_passes_through(self):
        error = ValueError("error")
        result = Err(error).map(lambda x: x * 2).flat_map(lambda x: Ok(x))
        assert result.is_err()
        assert result.error is error

    def test_map_err(self):
        result = Err(ValueError("low level")).map_err(lambda e: BackupError(f"wrapped: {e}"))
        assert isinstance(result.error, BackupError)

    def test_or_else_recovers(self):
        assert Err(ValueError("x")).or_else(lambda e: Ok(0)).unwrap() == 0

    def test_to_dict_strata_error(self):
        data = Err(RowNotFoundError("no row")).to_dict()
        assert data["ok"] is False
        assert data["error"]["error_type"] == "RowNotFoundError"
        assert data["error"]["category"] == "DATABASE"

    def test_to_dict_plain_exception(self):
        assert Err(KeyError("k")).to_dict()["error"]["error_type"] == "KeyError"


class TestHelpers:
    def test_try_result(self):
        assert try_result(lambda: int("5")) == Ok(5)
        result = try_result(lambda: int("x"))
        assert isinstance(result.error, ValueError)

    def test_try_result_mapper(self):
        result = try_result(lambda: int("x"), error_mapper=lambda e: BackupError(str(e)))
        assert isinstance(result.error, BackupError)

    def test_try_result_async(self):
        async def boom():
            raise OSError("disk")

        async def fine():
            return 3

        assert asyncio.run(try_result_async(fine)) == Ok(3)
        assert isinstance(asyncio.run(try_result_async(boom)).error, OSError)

    def test_collect_results_fail_fast(self):
        assert collect_results([Ok(1), Ok(2)]) == Ok([1, 2])
        first = ValueError("a")
        assert collect_results([Ok(1), Err(first), Err(ValueError("b"))]).error is first


class TestGatherResults:
    @pytest.mark.asyncio
    async def test_keeps_order(self):
        async def delayed(value, delay):
            await asyncio.sleep(delay)
            return Ok(value)

        assert await gather_results(delayed(1, 0.02), delayed(2, 0)) == Ok([1, 2])

    @pytest.mark.asyncio
    async def test_failure_does_not_cancel_siblings(self):
        finished = []

        async def slow():
            await asyncio.sleep(0.01)
            finished.append("slow")
            return Ok("slow")

        async def failing():
            return Err(BackupError("nope"))

        result = await gather_results(slow(), failing())
        assert isinstance(result.error, BackupError)
        assert finished == ["slow"]

    @pytest.mark.asyncio
    async def test_raised_exception_becomes_err(self):
        async def raises():
            raise OSError("boom")

        result = await gather_results(raises())
        assert isinstance(result.error, OSError)
