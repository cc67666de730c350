"""
Resilience service for retry logic around remote HTTP calls.

A RetryPolicy decides how many attempts are made, how long to wait between
them and which failures are worth another attempt. RetryService drives an
async operation under that policy with a per-attempt timeout.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import httpx

from dali_chat.infrastructure.monitoring.logging_service import get_logger

logger = get_logger(__name__)

# Transport-level failures that should trigger retries (transient errors)
RETRIABLE_ERRORS = (
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.RemoteProtocolError,
    asyncio.TimeoutError,
)


class UpstreamHTTPError(Exception):
    """A remote endpoint answered with a non-2xx status"""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        self.detail = detail
        message = f"HTTP {status_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


@dataclass(frozen=True)
class RetryPolicy:
    """Fixed-delay retry policy: server errors and transport failures are retried"""
    max_attempts: int = 3
    delay: float = 1.0

    def is_retryable_status(self, status_code: int) -> bool:
        return 500 <= status_code < 600

    def is_retryable(self, error: BaseException) -> bool:
        """
        Classify a failure

        Args:
            error: Exception raised by one attempt

        Returns:
            True when another attempt may succeed
        """
        if isinstance(error, UpstreamHTTPError):
            return self.is_retryable_status(error.status_code)
        return isinstance(error, RETRIABLE_ERRORS)


class RetryStatus:
    """Helper class to track retry status for UI feedback"""

    def __init__(self):
        self.is_retrying = False
        self.current_attempt = 0
        self.max_attempts = 0
        self.last_error = None
        self.next_delay = 0.0

    def start_retry(self, max_attempts: int):
        """Start a new retry sequence"""
        self.is_retrying = True
        self.current_attempt = 1
        self.max_attempts = max_attempts
        self.last_error = None
        self.next_delay = 0.0

    def on_retry_attempt(self, attempt: int, error: BaseException, next_delay: float = 0.0):
        """Update status before the given attempt starts"""
        self.current_attempt = attempt
        self.last_error = error
        self.next_delay = next_delay

    def finish_retry(self, success: bool = True):
        """Finish the retry sequence"""
        self.is_retrying = False
        if success:
            self.current_attempt = 0
            self.last_error = None

    def get_status_message(self) -> str:
        """Get a user-friendly status message"""
        if not self.is_retrying or self.last_error is None:
            return ""

        error_name = self.last_error.__class__.__name__

        if self.next_delay > 0:
            return f"🔄 **Reintentando** ({error_name}) - intento {self.current_attempt}/{self.max_attempts} en {self.next_delay:.1f}s"
        return f"🔄 **Reintentando** ({error_name}) - intento {self.current_attempt}/{self.max_attempts}"


class RetryService:
    """
    Runs async operations under a RetryPolicy.

    Each attempt gets its own timeout; an attempt that times out is cancelled
    and counts as a retryable failure. When attempts are exhausted, or a
    failure is not retryable, the last error is raised unchanged.
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        attempt_timeout: Optional[float] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.policy = policy or RetryPolicy()
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep
        self.logger = get_logger(__name__)

    async def execute(
        self,
        operation: Callable[[], Awaitable[Any]],
        on_retry: Optional[Callable[[int, BaseException, RetryStatus], None]] = None,
        status: Optional[RetryStatus] = None
    ) -> Any:
        """
        Execute an async operation with retry logic

        Args:
            operation: Zero-argument coroutine factory, called once per attempt
            on_retry: Optional callback for retry events (next attempt number,
                exception, status of this execution)
            status: Optional RetryStatus to update; a fresh one is used per
                call otherwise, so concurrent executions never share it

        Returns:
            The operation's result on the first successful attempt

        Raises:
            The last exception if all attempts are exhausted or it is not retryable
        """
        if status is None:
            status = RetryStatus()
        max_attempts = max(1, self.policy.max_attempts)
        status.start_retry(max_attempts)

        for attempt in range(1, max_attempts + 1):
            try:
                if self.attempt_timeout is not None:
                    result = await asyncio.wait_for(operation(), timeout=self.attempt_timeout)
                else:
                    result = await operation()
            except Exception as e:
                if not self.policy.is_retryable(e):
                    self.logger.warning(f"Non-retriable error encountered: {e.__class__.__name__}: {str(e)}")
                    status.finish_retry(success=False)
                    raise

                if attempt == max_attempts:
                    self.logger.error(f"Operation failed after {max_attempts} attempts: {e.__class__.__name__}: {str(e)}")
                    status.finish_retry(success=False)
                    raise

                self.logger.warning(
                    f"Attempt {attempt} failed ({e.__class__.__name__}), retrying in {self.policy.delay:.2f}s"
                )
                status.on_retry_attempt(attempt + 1, e, self.policy.delay)
                if on_retry:
                    on_retry(attempt + 1, e, status)

                await self._sleep(self.policy.delay)
                continue

            if attempt > 1:
                self.logger.info(f"Operation succeeded after {attempt - 1} retries")
            status.finish_retry(success=True)
            return result


# Global retry service instance
_retry_service: Optional[RetryService] = None


def get_retry_service() -> RetryService:
    """Get the global retry service instance configured for the agent endpoint"""
    global _retry_service
    if _retry_service is None:
        from dali_chat.config.app_config import get_config
        config = get_config()
        _retry_service = RetryService(
            policy=RetryPolicy(
                max_attempts=config.agent.max_attempts,
                delay=config.agent.retry_delay
            ),
            attempt_timeout=config.agent.attempt_timeout
        )
    return _retry_service
