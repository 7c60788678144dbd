"""Tests for the error taxonomy and RetryExecutor."""

import asyncio
import logging
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy.exc import OperationalError

from dionysus.common.errors import (
    GenerationError,
    HistoryProviderError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    TransientError,
    is_transient,
)
from dionysus.common.result import Err, Ok
from dionysus.common.retry import RetryExecutor


class TestIsTransient:
    @pytest.mark.parametrize("error", [
        TransientError("flaky"),
        ConnectionError("refused"),
        TimeoutError(),
        asyncio.TimeoutError(),
        httpx.ConnectError("boom"),
        OperationalError("SELECT 1", {}, Exception("db gone")),
        RuntimeError("Can't reach database server at db:5432"),
        RuntimeError("upstream unreachable"),
        RuntimeError("Connection reset by peer"),
        RuntimeError("request timed out"),
    ])
    def test_transient(self, error):
        assert is_transient(error)

    @pytest.mark.parametrize("error", [
        InvalidInputError("missing field"),
        InvalidInputError("bad connection string"),
        NotFoundError("no such project"),
        InvalidTransitionError("already COMPLETED"),
        HistoryProviderError("not found", status_code=404),
        GenerationError("model failed"),
        ValueError("nope"),
    ])
    def test_not_transient(self, error):
        assert not is_transient(error)


class TestResult:
    def test_ok_unwrap(self):
        assert Ok(3).is_ok
        assert Ok(3).unwrap() == 3

    def test_err_unwrap_raises(self):
        err = Err(NotFoundError("gone"))
        assert not err.is_ok
        with pytest.raises(NotFoundError):
            err.unwrap()


class TestRetryExecutor:
    async def test_success_first_try(self, executor, sleep):
        operation = AsyncMock(return_value="done")
        result = await executor.execute(operation)

        assert result == Ok("done")
        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    async def test_transient_then_success(self, executor, sleep):
        operation = AsyncMock(side_effect=[ConnectionError("Can't reach database server"), "done"])
        result = await executor.execute(operation)

        assert result.is_ok
        assert result.value == "done"
        assert operation.await_count == 2
        assert [c.args[0] for c in sleep.await_args_list] == [2.0]

    async def test_exhausted_returns_last_error(self, executor, sleep):
        errors = [TransientError(f"attempt {i}") for i in range(4)]
        operation = AsyncMock(side_effect=errors)
        result = await executor.execute(operation)

        assert not result.is_ok
        assert result.error is errors[-1]
        assert operation.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 2.0, 2.0]

    async def test_permanent_error_not_retried(self, executor, sleep):
        error = InvalidInputError("missing name")
        operation = AsyncMock(side_effect=error)
        result = await executor.execute(operation)

        assert result == Err(error)
        operation.assert_awaited_once()
        sleep.assert_not_awaited()

    async def test_per_call_override(self, executor):
        operation = AsyncMock(side_effect=TransientError("down"))
        result = await executor.execute(operation, max_retries=0)

        assert not result.is_ok
        operation.assert_awaited_once()

    async def test_logs_remaining_attempts(self, executor, caplog):
        operation = AsyncMock(side_effect=[TransientError("down"), TransientError("down"), "ok"])
        with caplog.at_level(logging.WARNING, logger="dionysus.common.retry"):
            await executor.execute(operation, description="upsert commit")

        assert "3 attempts left" in caplog.text
        assert "2 attempts left" in caplog.text
        assert "upsert commit" in caplog.text

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryExecutor(max_retries=-1)
