"""Retry utilities with exponential backoff.

retry_with_backoff retries a single awaitable in-process (used for short
persistence hiccups). RetryPolicy governs job-level retries, which happen
across batch passes through the queued -> processing -> queued cycle.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Job-level retry limits.

    Attributes:
        max_attempts: Processing attempts allowed before a job is failed.
        base_delay: Seconds before the first retry becomes claimable.
            0 makes a requeued job eligible for the very next batch.
        max_delay: Upper bound on the computed delay.
    """

    max_attempts: int = 3
    base_delay: float = 0.0
    max_delay: float = 300.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")

    def should_retry(self, attempts: int) -> bool:
        """Return True if a job that has made ``attempts`` attempts may retry."""
        return attempts < self.max_attempts

    def delay_for(self, attempts: int) -> float:
        """Backoff before the next attempt: base_delay * 2^(attempts - 1)."""
        if self.base_delay == 0:
            return 0.0
        exponent = max(attempts - 1, 0)
        return min(self.max_delay, self.base_delay * (2**exponent))


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    retryable_exceptions: tuple[type[Exception], ...] | None = None,
) -> Callable:
    """Decorator for retrying async functions with exponential backoff.

    Delay follows the formula: base_delay * 2^attempt

    Args:
        max_retries: Maximum number of retry attempts (default 3).
        base_delay: Base delay in seconds before first retry (default 1.0).
        retryable_exceptions: Tuple of exception types eligible for retry.
            If None, all exceptions are retried. Non-retryable exceptions
            are re-raised immediately.

    Returns:
        Decorator that wraps an async function with retry logic.
    """

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            last_error: Exception | None = None
            for attempt in range(max_retries + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as exc:
                    last_error = exc
                    if retryable_exceptions is not None and not isinstance(
                        exc, retryable_exceptions
                    ):
                        raise
                    if attempt < max_retries:
                        delay = base_delay * (2**attempt)
                        logger.warning(
                            "Retry %d/%d for %s after %.1fs: %s",
                            attempt + 1,
                            max_retries,
                            func.__name__,
                            delay,
                            exc,
                        )
                        await asyncio.sleep(delay)
            raise last_error  # type: ignore[misc]

        return wrapper

    return decorator
