"""Tests for the generic retry helpers."""

import pytest
import uuid
from unittest.mock import AsyncMock, MagicMock, patch

from deskhooks.core.circuit_breaker import CircuitBreakerError
from deskhooks.core.errors import RetryableError
from deskhooks.core.retry import (
    RetryOptions,
    with_retry,
    with_network_retry,
    with_database_retry,
    with_state_retry,
    with_circuit_breaker,
    is_network_error,
    is_transient_database_error,
    is_state_conflict,
)


def flaky(failures, result="done"):
    """Operation failing with the given errors before succeeding."""
    errors = list(failures)
    calls = []

    async def operation():
        calls.append(1)
        if errors:
            raise errors.pop(0)
        return result

    operation.calls = calls
    return operation


class TestWithRetry:
    """Tests for with_retry."""

    @pytest.mark.asyncio
    async def test_succeeds_after_failures(self):
        sleep = AsyncMock()
        operation = flaky([ValueError("1"), ValueError("2")])

        result = await with_retry(operation, RetryOptions(max_retries=3), sleep=sleep)

        assert result == "done"
        assert len(operation.calls) == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_raises_last_error_when_exhausted(self):
        operation = flaky([ValueError("1"), ValueError("2"), ValueError("3")])

        with pytest.raises(ValueError, match="2"):
            await with_retry(operation, RetryOptions(max_retries=1), sleep=AsyncMock())

        assert len(operation.calls) == 2

    @pytest.mark.asyncio
    async def test_delay_capped(self):
        sleep = AsyncMock()
        operation = flaky([ValueError()] * 4)
        options = RetryOptions(max_retries=4, base_delay_seconds=1.0, max_delay_seconds=3.0)

        await with_retry(operation, options, sleep=sleep)

        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 3.0, 3.0]

    @pytest.mark.asyncio
    async def test_fixed_delay(self):
        sleep = AsyncMock()
        operation = flaky([ValueError()] * 2)
        options = RetryOptions(max_retries=2, base_delay_seconds=0.2, exponential_backoff=False)

        await with_retry(operation, options, sleep=sleep)

        assert [c.args[0] for c in sleep.await_args_list] == [0.2, 0.2]

    @pytest.mark.asyncio
    async def test_retry_on_false_stops(self):
        operation = flaky([KeyError("x"), KeyError("y")])
        options = RetryOptions(retry_on=lambda e: not isinstance(e, KeyError))

        with pytest.raises(KeyError):
            await with_retry(operation, options, sleep=AsyncMock())

        assert len(operation.calls) == 1

    @pytest.mark.asyncio
    async def test_non_retryable_error_stops(self):
        operation = flaky([RetryableError("fatal", should_retry=False)])

        with pytest.raises(RetryableError):
            await with_retry(operation, RetryOptions(max_retries=5), sleep=AsyncMock())

        assert len(operation.calls) == 1

    @pytest.mark.asyncio
    async def test_on_retry_called(self):
        on_retry = MagicMock()
        error = ValueError("boom")
        operation = flaky([error])

        await with_retry(operation, RetryOptions(on_retry=on_retry), sleep=AsyncMock())

        on_retry.assert_called_once_with(error, 1)


class TestPredicates:
    """Tests for the preset retry predicates."""

    def test_network_errors(self):
        assert is_network_error(ConnectionError("refused"))
        assert is_network_error(TimeoutError())
        assert is_network_error(Exception("Failed to fetch"))
        assert not is_network_error(ValueError("bad input"))

    def test_database_errors(self):
        error = Exception("server error")
        error.status = 503

        assert is_transient_database_error(error)
        assert is_transient_database_error(Exception("Rate limit exceeded"))
        assert not is_transient_database_error(Exception("duplicate key"))

    def test_state_conflicts(self):
        assert is_state_conflict(Exception("Write conflict on row"))
        assert is_state_conflict(Exception("could not obtain lock"))
        assert not is_state_conflict(Exception("not found"))


class TestPresets:
    """Tests for the preset helpers."""

    @pytest.mark.asyncio
    async def test_network_retry(self):
        operation = flaky([ConnectionError("refused")])

        with patch("deskhooks.core.retry.asyncio.sleep", new_callable=AsyncMock):
            assert await with_network_retry(operation) == "done"

        assert len(operation.calls) == 2

    @pytest.mark.asyncio
    async def test_network_retry_ignores_other_errors(self):
        operation = flaky([ValueError("bad input")])

        with patch("deskhooks.core.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(ValueError):
                await with_network_retry(operation)

        assert len(operation.calls) == 1

    @pytest.mark.asyncio
    async def test_database_retry_limit(self):
        operation = flaky([Exception("connection reset")] * 5)

        with patch("deskhooks.core.retry.asyncio.sleep", new_callable=AsyncMock):
            with pytest.raises(Exception):
                await with_database_retry(operation)

        assert len(operation.calls) == 3

    @pytest.mark.asyncio
    async def test_state_retry(self):
        operation = flaky([Exception("concurrent update")] * 2)

        with patch("deskhooks.core.retry.asyncio.sleep", new_callable=AsyncMock) as sleep:
            assert await with_state_retry(operation) == "done"

        assert [c.args[0] for c in sleep.await_args_list] == [0.2, 0.2]


class TestWithCircuitBreaker:
    """Tests for the global breaker helper."""

    @pytest.mark.asyncio
    async def test_opens_after_five_failures(self):
        context = f"test-{uuid.uuid4()}"

        async def failing():
            raise ValueError("down")

        for _ in range(5):
            with pytest.raises(ValueError):
                await with_circuit_breaker(failing, context)

        with pytest.raises(CircuitBreakerError):
            await with_circuit_breaker(failing, context)

    @pytest.mark.asyncio
    async def test_passes_result(self):
        async def operation():
            return "ok"

        assert await with_circuit_breaker(operation, f"test-{uuid.uuid4()}") == "ok"
