"""Tests for deadlines, retry with backoff and timeout scaling."""

import asyncio

import httpx
import pytest

from studioshot.app.constants import MIB
from studioshot.app.dispatch.resilience import (
    calculate_timeout,
    call_with_deadline,
    is_transient,
    resilient_call,
    retry_with_backoff,
)
from studioshot.app.enums import TimeoutOperation
from studioshot.app.exceptions import HardServiceError, TransientError, ValidationError


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, delay):
        self.delays.append(delay)


def flaky(failures, exc=ConnectionError):
    calls = {"count": 0}

    async def operation():
        calls["count"] += 1
        if calls["count"] <= failures:
            raise exc(f"failure {calls['count']}")
        return "ok"

    return operation, calls


class TestRetryWithBackoff:
    def test_fails_twice_then_succeeds(self):
        operation, calls = flaky(2)
        sleep = RecordingSleep()
        assert asyncio.run(retry_with_backoff(operation, max_retries=3, sleep=sleep)) == "ok"
        assert calls["count"] == 3
        assert sleep.delays == [2.0, 4.0]

    def test_last_error_propagates(self):
        operation, calls = flaky(10)
        with pytest.raises(ConnectionError, match="failure 3"):
            asyncio.run(retry_with_backoff(operation, max_retries=3, sleep=RecordingSleep()))
        assert calls["count"] == 3

    def test_validation_error_is_not_retried(self):
        operation, calls = flaky(5, ValidationError)
        with pytest.raises(ValidationError):
            asyncio.run(retry_with_backoff(operation, sleep=RecordingSleep()))
        assert calls["count"] == 1

    def test_hard_rejection_is_not_retried(self):
        operation, calls = flaky(5, HardServiceError)
        with pytest.raises(HardServiceError):
            asyncio.run(retry_with_backoff(operation, sleep=RecordingSleep()))
        assert calls["count"] == 1

    def test_custom_base_delay(self):
        operation, _ = flaky(3)
        sleep = RecordingSleep()
        asyncio.run(retry_with_backoff(operation, max_retries=4, base_delay=0.5, sleep=sleep))
        assert sleep.delays == [0.5, 1.0, 2.0]

    def test_invalid_attempt_count(self):
        operation, _ = flaky(0)
        with pytest.raises(ValueError):
            asyncio.run(retry_with_backoff(operation, max_retries=0))

    def test_lambda_returning_coroutine_is_awaited(self):
        result = asyncio.run(
            retry_with_backoff(lambda: asyncio.sleep(0, result="done"), sleep=RecordingSleep())
        )
        assert result == "done"

    def test_cancellation_mid_attempt_is_not_retried(self):
        calls = {"count": 0}

        async def slow():
            calls["count"] += 1
            await asyncio.sleep(0.2)
            return "late"

        async def main():
            task = asyncio.create_task(retry_with_backoff(slow, sleep=RecordingSleep()))
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            return task

        task = asyncio.run(main())
        assert task.cancelled()
        assert calls["count"] == 1

    def test_keyboard_interrupt_is_not_retried(self):
        operation, calls = flaky(5, KeyboardInterrupt)

        async def main():
            try:
                await retry_with_backoff(operation, sleep=RecordingSleep())
            except KeyboardInterrupt:
                return "interrupted"
            return "finished"

        assert asyncio.run(main()) == "interrupted"
        assert calls["count"] == 1


class TestCallWithDeadline:
    def test_timeout_becomes_transient_error(self):
        async def slow():
            await asyncio.sleep(1)

        with pytest.raises(TransientError, match="upload timed out"):
            asyncio.run(call_with_deadline(slow, 0.01, "upload"))

    def test_fast_call_returns_value(self):
        async def fast():
            return 7

        assert asyncio.run(call_with_deadline(fast, 1.0)) == 7

    def test_resilient_call_retries_timeouts(self):
        attempts = {"count": 0}

        async def sometimes_slow():
            attempts["count"] += 1
            if attempts["count"] == 1:
                await asyncio.sleep(1)
            return "done"

        result = asyncio.run(
            resilient_call(sometimes_slow, timeout=0.01, label="shadow", sleep=RecordingSleep())
        )
        assert result == "done"
        assert attempts["count"] == 2


class TestCalculateTimeout:
    @pytest.mark.parametrize(
        "operation, expected",
        [
            (TimeoutOperation.UPLOAD, 15.0),
            (TimeoutOperation.SHADOW, 30.0),
            (TimeoutOperation.BG_REMOVAL, 90.0),
            (TimeoutOperation.DOWNLOAD, 20.0),
        ],
    )
    def test_base_timeouts(self, operation, expected):
        assert calculate_timeout(operation) == expected

    def test_small_image_gets_base(self):
        assert calculate_timeout("shadow", 10 * MIB) == 30.0

    def test_large_image_gets_extra_time(self):
        assert calculate_timeout("shadow", 20 * MIB) == pytest.approx(50.0)

    def test_extension_is_capped(self):
        assert calculate_timeout("upload", 250 * MIB) == pytest.approx(135.0)


class TestIsTransient:
    def test_transport_errors(self):
        assert is_transient(TransientError("x"))
        assert is_transient(TimeoutError())
        assert is_transient(ConnectionResetError())
        assert is_transient(httpx.ConnectError("refused"))

    def test_other_errors(self):
        assert not is_transient(HardServiceError("400"))
        assert not is_transient(ValueError("bad"))
