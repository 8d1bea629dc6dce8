"""Retry policy with exponential backoff for upstream calls."""

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

from .errors import is_retryable

log = structlog.stdlib.get_logger()

T = TypeVar("T")

SleepFunc = Callable[[float], Awaitable[None]]


class RetryPolicy:
    """Runs an async operation, retrying transient failures with exponential backoff."""

    def __init__(
        self,
        max_retries: int = 3,
        initial_delay: float = 1.0,
        sleep: SleepFunc | None = None,
        classifier: Callable[[BaseException], bool] = is_retryable,
    ) -> None:
        """Initialize the retry policy.

        Args:
            max_retries: Additional attempts after the first one
            initial_delay: Delay before the first retry in seconds; doubled for each further retry
            sleep: Awaitable used for backoff delays (defaults to ``asyncio.sleep``)
            classifier: Returns True for errors worth retrying
        """
        if max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if initial_delay < 0:
            raise ValueError("initial_delay must be non-negative")
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self._sleep = sleep or asyncio.sleep
        self._classifier = classifier

    def delay_for(self, attempt: int) -> float:
        """Backoff delay after the given zero-based failed attempt."""
        return self.initial_delay * (2 ** attempt)

    async def run(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Execute ``operation`` with retries.

        Args:
            operation: Zero-argument coroutine function to execute

        Returns:
            The operation's result

        Raises:
            Exception: The first non-retryable error, or the last error once retries are exhausted
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await operation()
            except Exception as e:
                if not self._classifier(e):
                    log.debug("Non-retryable error", error=str(e), error_type=type(e).__name__)
                    raise

                if attempt == self.max_retries:
                    log.error(
                        "Operation failed after all retries",
                        total_attempts=self.max_retries + 1,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    raise

                delay = self.delay_for(attempt)
                log.warning(
                    "Retrying after delay",
                    attempt=attempt + 1,
                    max_retries=self.max_retries,
                    delay=delay,
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await self._sleep(delay)

        # This should never be reached, but satisfy type checker
        raise RuntimeError("Unexpected end of retry loop")


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    initial_delay: float = 1.0,
) -> T:
    """Convenience wrapper running ``operation`` under a one-off ``RetryPolicy``."""
    return await RetryPolicy(max_retries=max_retries, initial_delay=initial_delay).run(operation)
