"""Tests for the index retry policy."""

import asyncio

import pytest

from faq_curator.config import Settings
from faq_curator.core.exceptions import OperationCancelledError, VectorIndexError
from faq_curator.core.retry import RetryPolicy, with_retry


class RecordingSleep:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


class Flaky:
    """Fails a fixed number of times, then returns ``value``."""

    def __init__(self, failures: int, value="ok", error: Exception | None = None):
        self.failures = failures
        self.value = value
        self.error = error or ConnectionError("qdrant unreachable")
        self.calls = 0

    async def __call__(self):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error
        return self.value


class TestRetryPolicy:
    def test_defaults(self):
        policy = RetryPolicy()
        assert policy.max_attempts == 3
        assert policy.delay_for(1) == 1.0
        assert policy.delay_for(2) == 2.0

    def test_from_settings(self):
        settings = Settings(
            _env_file=None,
            retry_max_attempts=5,
            retry_base_delay_seconds=0.5,
            retry_exponential_base=3.0,
        )
        policy = RetryPolicy.from_settings(settings)
        assert policy.max_attempts == 5
        assert policy.delay_for(1) == 0.5
        assert policy.delay_for(3) == 4.5


class TestWithRetry:
    @pytest.mark.asyncio
    async def test_first_attempt_success_does_not_sleep(self):
        sleep = RecordingSleep()
        fn = Flaky(failures=0, value=42)

        result = await with_retry("query", fn, RetryPolicy(), sleep=sleep)

        assert result == 42
        assert fn.calls == 1
        assert sleep.delays == []

    @pytest.mark.asyncio
    async def test_recovers_after_transient_failures(self):
        sleep = RecordingSleep()
        fn = Flaky(failures=2)

        result = await with_retry("store_embedding", fn, RetryPolicy(), sleep=sleep)

        assert result == "ok"
        assert fn.calls == 3
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhaustion_raises_index_error_with_cause(self):
        sleep = RecordingSleep()
        fn = Flaky(failures=10)

        with pytest.raises(VectorIndexError) as exc_info:
            await with_retry("delete_embedding", fn, RetryPolicy(), sleep=sleep)

        assert exc_info.value.operation == "delete_embedding"
        assert exc_info.value.attempts == 3
        assert isinstance(exc_info.value.__cause__, ConnectionError)
        assert fn.calls == 3
        # No backoff after the final attempt
        assert sleep.delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_cancel_set_before_first_attempt(self):
        cancel = asyncio.Event()
        cancel.set()
        fn = Flaky(failures=0)

        with pytest.raises(OperationCancelledError):
            await with_retry("query", fn, RetryPolicy(), sleep=RecordingSleep(), cancel=cancel)

        assert fn.calls == 0

    @pytest.mark.asyncio
    async def test_cancel_during_backoff_stops_retrying(self):
        cancel = asyncio.Event()
        fn = Flaky(failures=10)

        async def cancelling_sleep(delay: float) -> None:
            cancel.set()
            await asyncio.sleep(3600)

        with pytest.raises(OperationCancelledError):
            await with_retry("query", fn, RetryPolicy(), sleep=cancelling_sleep, cancel=cancel)

        assert fn.calls == 1

    @pytest.mark.asyncio
    async def test_cancellation_error_is_not_retried(self):
        fn = Flaky(failures=10, error=OperationCancelledError("stop"))

        with pytest.raises(OperationCancelledError):
            await with_retry("query", fn, RetryPolicy(), sleep=RecordingSleep())

        assert fn.calls == 1
