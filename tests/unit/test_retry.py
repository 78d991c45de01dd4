"""Tests for the bounded exponential-backoff retry runner."""
import asyncio

import pytest
from unittest.mock import AsyncMock

from retailsync.core.retry import RetryState, backoff_delay, run_with_retry


class RecordingSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class TestBackoff:
    def test_delays_double(self):
        assert [backoff_delay(n, 1.0) for n in (1, 2, 3)] == [2.0, 4.0, 8.0]

    def test_retry_state_exhausted(self):
        assert not RetryState(attempt=2, max_attempts=3).exhausted
        assert RetryState(attempt=3, max_attempts=3).exhausted


class TestRunWithRetry:
    @pytest.mark.asyncio
    async def test_success_first_try_does_not_sleep(self):
        step = AsyncMock(return_value="ok")
        sleep = RecordingSleep()
        result = await run_with_retry(step, sleep=sleep)
        assert result.ok
        assert result.value == "ok"
        assert result.attempts == 1
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        step = AsyncMock(side_effect=[ConnectionError("reset"), TimeoutError("slow"), 42])
        sleep = RecordingSleep()
        result = await run_with_retry(step, max_attempts=3, base_delay=1.0, sleep=sleep)
        assert result.ok
        assert result.value == 42
        assert result.attempts == 3
        assert sleep.calls == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_exhaustion_returns_last_error(self):
        errors = [RuntimeError("one"), RuntimeError("two"), RuntimeError("three")]
        step = AsyncMock(side_effect=errors)
        sleep = RecordingSleep()
        result = await run_with_retry(step, max_attempts=3, sleep=sleep)
        assert not result.ok
        assert result.error is errors[-1]
        assert result.error_message == "three"
        assert result.attempts == 3
        assert step.await_count == 3
        # no wait after the final attempt
        assert len(sleep.calls) == 2

    @pytest.mark.asyncio
    async def test_single_attempt_never_sleeps(self):
        step = AsyncMock(side_effect=ValueError("bad"))
        sleep = RecordingSleep()
        result = await run_with_retry(step, max_attempts=1, sleep=sleep)
        assert not result.ok
        assert sleep.calls == []

    @pytest.mark.asyncio
    async def test_invalid_max_attempts(self):
        with pytest.raises(ValueError):
            await run_with_retry(AsyncMock(), max_attempts=0)

    @pytest.mark.asyncio
    async def test_cancellation_is_not_retried(self):
        step = AsyncMock(side_effect=asyncio.CancelledError())
        with pytest.raises(asyncio.CancelledError):
            await run_with_retry(step, sleep=RecordingSleep())
        assert step.await_count == 1
