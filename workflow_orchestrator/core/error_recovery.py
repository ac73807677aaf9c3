"""Retry handling for failed actions, driven by each action's RetryPolicy."""

import asyncio
from typing import Any, Awaitable, Callable, Optional

from ..models.core import RetryPolicy
from .exceptions import WorkflowEngineError
from .logging import get_logger, ErrorRecoveryLogger

logger = get_logger(__name__)


# (retry_attempt, max_retries, delay_seconds, error)
RetryCallback = Callable[[int, int, float, Exception], Awaitable[None]]


class RetryOutcome:
    """Result of running an operation under a retry policy."""

    def __init__(self, success: bool, attempts: int, value: Any = None, error: Optional[Exception] = None):
        self.success = success
        self.attempts = attempts
        self.value = value
        self.error = error

    @property
    def recovered(self) -> bool:
        """Whether the operation succeeded only after at least one retry."""
        return self.success and self.attempts > 1


def should_retry(error: Exception, attempt: int, policy: RetryPolicy) -> bool:
    """Determine if a failed attempt should be retried."""
    if attempt >= policy.total_attempts:
        return False

    if isinstance(error, WorkflowEngineError):
        return error.recoverable

    return True


async def execute_with_policy(
    operation: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    operation_name: str,
    on_retry: Optional[RetryCallback] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> RetryOutcome:
    """
    Run an async operation, retrying failures according to a retry policy.

    Failures never propagate; the last error is carried by the outcome.
    Cancellation is not treated as a failure and is re-raised.

    Args:
        operation: Zero-argument coroutine factory, called once per attempt
        policy: Retry policy deciding the attempt count and delays
        operation_name: Name used in recovery log messages
        on_retry: Awaited before each retry with (attempt, max retries, delay, error)
        sleep: Delay function, replaceable in tests

    Returns:
        RetryOutcome: Success flag, attempts made, value or last error
    """
    recovery_logger = ErrorRecoveryLogger("actions")
    max_attempts = policy.total_attempts
    attempt = 0

    while True:
        attempt += 1
        try:
            value = await operation()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if not should_retry(e, attempt, policy):
                if max_attempts > 1:
                    recovery_logger.log_recovery_failure(operation_name, str(e), attempt)
                return RetryOutcome(False, attempt, error=e)

            delay = policy.get_delay(attempt)
            recovery_logger.log_recovery_attempt(operation_name, str(e), attempt, max_attempts, delay)
            if on_retry is not None:
                await on_retry(attempt, max_attempts - 1, delay, e)
            if delay > 0:
                await sleep(delay)
            continue

        if attempt > 1:
            recovery_logger.log_recovery_success(operation_name, attempt)
        return RetryOutcome(True, attempt, value=value)
