"""Tests for store retry with exponential backoff."""

from unittest.mock import AsyncMock

import asyncpg
import pytest

from src.config.settings import get_settings
from src.storage.retry import (
    StoreUnavailable,
    backoff_delay,
    is_transient,
    retry_store_call,
)


async def _no_sleep(delay):
    return None


class TestBackoffDelay:
    """Tests for the retry delay calculation."""

    def test_first_delay_is_base(self):
        assert backoff_delay(0, 1.0, 60.0, jitter=0.0) == 1.0

    def test_delay_doubles_without_jitter(self):
        assert [backoff_delay(n, 1.0, 60.0, jitter=0.0) for n in range(3)] == [1.0, 2.0, 4.0]

    def test_caps_at_max_delay(self):
        assert backoff_delay(2, 10.0, 30.0, jitter=0.0) == 30.0

    def test_jitter_stays_within_range(self):
        assert 3.0 <= backoff_delay(0, 4.0, 60.0, jitter=0.25) <= 5.0


class TestIsTransient:
    """Tests for transient error classification."""

    def test_connection_errors_are_transient(self):
        assert is_transient(ConnectionRefusedError())
        assert is_transient(TimeoutError())
        assert is_transient(asyncpg.exceptions.TooManyConnectionsError("full"))

    def test_logic_errors_are_not(self):
        assert not is_transient(ValueError("bad"))
        assert not is_transient(asyncpg.exceptions.UniqueViolationError("dup"))


class TestRetryStoreCall:
    """Tests for retry_store_call."""

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        fn = AsyncMock(return_value=42)
        assert await retry_store_call(fn, 1, key="v", sleep=_no_sleep) == 42
        fn.assert_awaited_once_with(1, key="v")

    @pytest.mark.asyncio
    async def test_recovers_after_transient_errors(self):
        fn = AsyncMock(side_effect=[OSError("reset"), OSError("reset"), "ok"])
        retried = []

        result = await retry_store_call(
            fn, operation="read:x", max_retries=3, sleep=_no_sleep, on_retry=retried.append,
        )

        assert result == "ok"
        assert retried == ["read:x", "read:x"]

    @pytest.mark.asyncio
    async def test_gives_up_with_store_unavailable(self):
        fn = AsyncMock(side_effect=ConnectionResetError("down"))

        with pytest.raises(StoreUnavailable) as exc_info:
            await retry_store_call(fn, operation="write:a", max_retries=2, sleep=_no_sleep)

        assert exc_info.value.attempts == 3
        assert exc_info.value.operation == "write:a"
        assert isinstance(exc_info.value.cause, ConnectionResetError)
        assert fn.await_count == 3

    @pytest.mark.asyncio
    async def test_non_transient_propagates_immediately(self):
        fn = AsyncMock(side_effect=ValueError("bad query"))

        with pytest.raises(ValueError):
            await retry_store_call(fn, max_retries=5, sleep=_no_sleep)

        assert fn.await_count == 1

    @pytest.mark.asyncio
    async def test_sleeps_with_backoff_delays(self, monkeypatch):
        monkeypatch.setenv("STORE_BASE_DELAY", "0.5")
        get_settings.cache_clear()
        fn = AsyncMock(side_effect=[OSError(), OSError(), "ok"])
        delays = []

        async def record(delay):
            delays.append(delay)

        await retry_store_call(
            fn,
            max_retries=2,
            jitter=0.0,
            sleep=record,
        )

        assert delays == [0.5, 1.0]

    @pytest.mark.asyncio
    async def test_defaults_from_settings(self):
        # STORE_MAX_RETRIES=2 in the test environment
        fn = AsyncMock(side_effect=OSError("down"))
        with pytest.raises(StoreUnavailable):
            await retry_store_call(fn, sleep=_no_sleep)
        assert fn.await_count == 3
