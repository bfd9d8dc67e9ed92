"""Concurrency limiting and retry utilities for extraction API calls."""
import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

import anyio

T = TypeVar("T")

# Substrings of upstream error messages worth another attempt
TRANSIENT_ERROR_PHRASES = (
    "502 bad gateway",
    "503",
    "service unavailable",
    "server error",
    "internal error",
    "transient error",
    "rate limit",
    "resource exhausted",
    "timeout",
    "timed out",
)


class RetryError(Exception):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, operation_name: str, last_exception: Exception, attempts: int):
        self.operation_name = operation_name
        self.last_exception = last_exception
        self.attempts = attempts
        super().__init__(
            f"{operation_name} failed after {attempts} attempts: {last_exception}"
        )


def is_transient_error(exc: BaseException) -> bool:
    """Whether an exception looks like a temporary upstream failure."""
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(phrase in message for phrase in TRANSIENT_ERROR_PHRASES)


async def retry_with_backoff(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 2.0,
    max_delay: float = 10.0,
    jitter_range: float = 3.0,
    retry_exceptions: tuple = (Exception,),
    should_retry: Callable[[BaseException], bool] | None = None,
    operation_name: str | None = None,
    logger: logging.Logger | None = None
) -> T:
    """Execute an async operation with exponential backoff retry logic.

    Args:
        operation: Async function to execute
        max_retries: Maximum number of attempts (default: 3)
        base_delay: Base delay for exponential backoff (default: 2.0 seconds)
        max_delay: Maximum delay between retries (default: 10.0 seconds)
        jitter_range: Random jitter range added to delay (default: 3.0 seconds)
        retry_exceptions: Exceptions that may trigger a retry
        should_retry: Extra predicate a retryable exception must satisfy
        operation_name: Name for logging purposes
        logger: Logger instance to use (defaults to module logger)

    Returns:
        Result of the successful attempt

    Raises:
        RetryError: When attempts are exhausted or a non-retryable exception occurs
    """
    if logger is None:
        logger = logging.getLogger(__name__)
    operation_desc = operation_name or "operation"

    for attempt in range(max_retries):
        try:
            return await operation()
        except retry_exceptions as exc:
            if should_retry is not None and not should_retry(exc):
                logger.error(f"[RETRY] {operation_desc} - Non-retryable error: {str(exc)[:150]}")
                raise RetryError(operation_desc, exc, attempt + 1) from exc

            if attempt < max_retries - 1:
                delay = min(max_delay, base_delay * (2 ** attempt))
                total_delay = delay + random.uniform(0, jitter_range)
                logger.warning(
                    f"[RETRY] {operation_desc} - Attempt {attempt + 1}/{max_retries} failed: "
                    f"{str(exc)[:100]}. Retrying in {total_delay:.1f}s..."
                )
                await asyncio.sleep(total_delay)
                continue

            logger.error(f"[RETRY] {operation_desc} - Exhausted retries ({max_retries}): {str(exc)[:150]}")
            raise RetryError(operation_desc, exc, max_retries) from exc
        except Exception as exc:
            logger.error(f"[RETRY] {operation_desc} - Non-retryable exception: {str(exc)[:150]}")
            raise RetryError(operation_desc, exc, attempt + 1) from exc

    raise ValueError("max_retries must be at least 1")


class RateLimitedExecutor:
    """Executor that combines capacity limiting and retry logic."""

    def __init__(
        self,
        capacity: int,
        max_retries: int = 3,
        base_delay: float = 2.0,
        max_delay: float = 10.0,
        jitter_range: float = 3.0
    ):
        self.limiter = anyio.CapacityLimiter(capacity)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_range = jitter_range
        self._logger = logging.getLogger(__name__)

    @classmethod
    def from_settings(cls, settings) -> "RateLimitedExecutor":
        return cls(
            capacity=settings.quota_limit,
            max_retries=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay,
            max_delay=settings.retry_max_delay,
            jitter_range=settings.retry_jitter_range,
        )

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str | None = None,
        should_retry: Callable[[BaseException], bool] | None = is_transient_error
    ) -> T:
        """Run `operation` under the capacity limit, retrying transient failures."""
        async def limited_operation():
            async with self.limiter:
                return await operation()

        return await retry_with_backoff(
            operation=limited_operation,
            max_retries=self.max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            jitter_range=self.jitter_range,
            should_retry=should_retry,
            operation_name=operation_name,
            logger=self._logger
        )

    @property
    def stats(self) -> dict:
        """Get current executor statistics."""
        return {
            "available_capacity": self.limiter.available_tokens,
            "borrowed_capacity": self.limiter.borrowed_tokens,
            "total_capacity": self.limiter.total_tokens
        }
