"""
Tests for the retry policy and the async retry driver
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from dali_chat.infrastructure.resilience.retry_service import (
    RetryPolicy,
    RetryService,
    RetryStatus,
    UpstreamHTTPError
)


class TestRetryPolicy:
    """Test failure classification"""

    def setup_method(self):
        self.policy = RetryPolicy()

    def test_defaults(self):
        assert self.policy.max_attempts == 3
        assert self.policy.delay == 1.0

    @pytest.mark.parametrize("status", [500, 502, 503, 504])
    def test_server_errors_retryable(self, status):
        assert self.policy.is_retryable(UpstreamHTTPError(status)) is True

    @pytest.mark.parametrize("status", [400, 401, 403, 404, 422])
    def test_client_errors_not_retryable(self, status):
        assert self.policy.is_retryable(UpstreamHTTPError(status)) is False

    @pytest.mark.parametrize("error", [
        httpx.ConnectError("refused"),
        httpx.ReadTimeout("slow"),
        httpx.RemoteProtocolError("closed"),
        asyncio.TimeoutError(),
    ])
    def test_transport_errors_retryable(self, error):
        assert self.policy.is_retryable(error) is True

    def test_other_errors_not_retryable(self):
        assert self.policy.is_retryable(ValueError("bad")) is False


class TestRetryService:
    """Test the retry driver"""

    async def test_success_first_attempt(self):
        sleep = AsyncMock()
        service = RetryService(RetryPolicy(max_attempts=3, delay=1.0), sleep=sleep)
        operation = AsyncMock(return_value="ok")

        assert await service.execute(operation) == "ok"
        assert operation.await_count == 1
        sleep.assert_not_awaited()

    async def test_retries_then_succeeds_with_fixed_delay(self):
        sleep = AsyncMock()
        service = RetryService(RetryPolicy(max_attempts=3, delay=1.0), sleep=sleep)
        operation = AsyncMock(side_effect=[UpstreamHTTPError(500), UpstreamHTTPError(503), "ok"])
        on_retry = Mock()

        assert await service.execute(operation, on_retry=on_retry) == "ok"
        assert operation.await_count == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 1.0]
        assert [c.args[0] for c in on_retry.call_args_list] == [2, 3]

    async def test_exhaustion_raises_last_error(self):
        service = RetryService(RetryPolicy(max_attempts=3, delay=0.0), sleep=AsyncMock())
        errors = [UpstreamHTTPError(500, "a"), UpstreamHTTPError(502, "b"), UpstreamHTTPError(503, "c")]
        operation = AsyncMock(side_effect=errors)

        with pytest.raises(UpstreamHTTPError) as exc_info:
            await service.execute(operation)

        assert exc_info.value is errors[-1]
        assert operation.await_count == 3

    async def test_non_retryable_raises_immediately(self):
        sleep = AsyncMock()
        service = RetryService(RetryPolicy(max_attempts=3, delay=1.0), sleep=sleep)
        operation = AsyncMock(side_effect=UpstreamHTTPError(400, "bad request"))

        with pytest.raises(UpstreamHTTPError):
            await service.execute(operation)

        assert operation.await_count == 1
        sleep.assert_not_awaited()

    async def test_unknown_exception_not_retried(self):
        service = RetryService(RetryPolicy(max_attempts=3, delay=0.0), sleep=AsyncMock())
        operation = AsyncMock(side_effect=KeyError("x"))

        with pytest.raises(KeyError):
            await service.execute(operation)
        assert operation.await_count == 1

    async def test_attempt_timeout_cancels_and_retries(self):
        """A hung attempt is cancelled and the next attempt runs"""
        calls = []

        async def operation():
            calls.append(len(calls) + 1)
            if len(calls) == 1:
                await asyncio.sleep(10)
            return "ok"

        service = RetryService(RetryPolicy(max_attempts=2, delay=0.0), attempt_timeout=0.05, sleep=AsyncMock())

        assert await service.execute(operation) == "ok"
        assert calls == [1, 2]

    async def test_attempt_timeout_exhausted(self):
        async def operation():
            await asyncio.sleep(10)

        service = RetryService(RetryPolicy(max_attempts=2, delay=0.0), attempt_timeout=0.01, sleep=AsyncMock())

        with pytest.raises(asyncio.TimeoutError):
            await service.execute(operation)

    async def test_status_tracks_attempts(self):
        service = RetryService(RetryPolicy(max_attempts=3, delay=0.0), sleep=AsyncMock())
        messages = []
        statuses = []

        def on_retry(attempt, error, status):
            statuses.append(status)
            messages.append(status.get_status_message())

        operation = AsyncMock(side_effect=[httpx.ConnectError("refused"), "ok"])
        await service.execute(operation, on_retry=on_retry)

        assert "intento 2/3" in messages[0]
        assert "ConnectError" in messages[0]
        assert statuses[0].is_retrying is False
        assert statuses[0].get_status_message() == ""

    async def test_status_per_execution(self):
        """Two executions on one service never see each other's status"""
        service = RetryService(RetryPolicy(max_attempts=3, delay=0.0), sleep=AsyncMock())
        seen = []

        def on_retry(attempt, error, status):
            seen.append(status)

        await service.execute(AsyncMock(side_effect=[UpstreamHTTPError(500), "ok"]), on_retry=on_retry)
        await service.execute(AsyncMock(side_effect=[UpstreamHTTPError(502), "ok"]), on_retry=on_retry)

        assert len(seen) == 2
        assert seen[0] is not seen[1]

    async def test_caller_supplied_status(self):
        service = RetryService(RetryPolicy(max_attempts=3, delay=0.0), sleep=AsyncMock())
        status = RetryStatus()
        messages = []

        operation = AsyncMock(side_effect=[UpstreamHTTPError(503), UpstreamHTTPError(503), "ok"])
        await service.execute(
            operation,
            on_retry=lambda attempt, error, s: messages.append(status.get_status_message()),
            status=status
        )

        assert "intento 3/3" in messages[-1]
        assert status.is_retrying is False


class TestRetryStatus:
    """Test retry status messages"""

    def test_idle_message_empty(self):
        assert RetryStatus().get_status_message() == ""

    def test_message_with_delay(self):
        status = RetryStatus()
        status.start_retry(3)
        status.on_retry_attempt(2, UpstreamHTTPError(503), next_delay=1.0)

        message = status.get_status_message()

        assert "Reintentando" in message
        assert "intento 2/3" in message
        assert "1.0s" in message
