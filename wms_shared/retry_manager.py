"""Retry logic with flat delays and error classification."""

import logging
from typing import Awaitable, Callable, Optional, Any
import asyncio
import inspect

from pydantic import ValidationError

from wms_shared.exceptions import (
    NonRetryableOperationError,
    PreviousFailureError,
    UnknownKeyStateError,
)

logger = logging.getLogger(__name__)

# Errors where attempting the same operation again cannot succeed
NON_RETRYABLE_EXCEPTIONS = (
    NonRetryableOperationError,
    PreviousFailureError,
    UnknownKeyStateError,
    ValidationError,
    ValueError,
)

NON_RETRYABLE_MESSAGES = (
    "duplicate",
    "already exists",
    "validation failed",
    "unauthorized",
    "forbidden",
)


def is_retryable(exception: BaseException) -> bool:
    """Classify an error raised by an attempt."""
    if isinstance(exception, NON_RETRYABLE_EXCEPTIONS):
        return False

    message = str(exception).lower()
    return not any(pattern in message for pattern in NON_RETRYABLE_MESSAGES)


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 3,
        retry_delay_ms: int = 1000,
    ):
        """
        Initialize retry configuration.

        Args:
            max_attempts: Total number of attempts, including the first
            retry_delay_ms: Flat delay before each retry, in milliseconds
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if retry_delay_ms < 0:
            raise ValueError("retry_delay_ms must not be negative")

        self.max_attempts = max_attempts
        self.retry_delay_ms = retry_delay_ms

    def calculate_delay(self, attempt_number: int) -> float:
        """Delay in seconds before the attempt following attempt_number."""
        return self.retry_delay_ms / 1000

    def get_retry_schedule(self) -> list[tuple[int, float]]:
        """
        Get a schedule of retry attempts with delays.

        Returns:
            List of (attempt_number, delay_seconds) tuples for every retry
        """
        return [
            (attempt + 1, self.calculate_delay(attempt))
            for attempt in range(1, self.max_attempts)
        ]


RetryHook = Callable[[Exception, int], Awaitable[None]]


class RetryScheduler:
    """Runs a callable until it succeeds, fails permanently, or the budget is spent."""

    def __init__(
        self,
        config: Optional[RetryConfig] = None,
        classifier: Callable[[BaseException], bool] = is_retryable,
    ):
        """
        Initialize retry scheduler.

        Args:
            config: Retry configuration (uses defaults if None)
            classifier: Returns True when an error may succeed on retry
        """
        self.config = config or RetryConfig()
        self.classifier = classifier

    async def retry(
        self,
        func: Callable,
        *args,
        name: Optional[str] = None,
        on_retry: Optional[RetryHook] = None,
        log_extra: Optional[dict] = None,
        **kwargs
    ) -> Any:
        """
        Execute a function with retries and a flat delay between attempts.

        Args:
            func: Sync or async function to execute
            *args: Positional arguments for the function
            name: Name used in log messages (defaults to the function name)
            on_retry: Awaited with (error, attempt) before sleeping for a retry
            log_extra: Context added to every log record
            **kwargs: Keyword arguments for the function

        Returns:
            Result of the function

        Raises:
            Exception: The first non-retryable error, or the last error once
                all attempts are exhausted
        """
        name = name or getattr(func, "__name__", repr(func))
        max_attempts = self.config.max_attempts
        last_exception = None
        attempt = 0

        for attempt in range(1, max_attempts + 1):
            extra = {**(log_extra or {}), "attempt": attempt, "max_retries": max_attempts}

            try:
                logger.debug(f"Executing {name} (attempt {attempt}/{max_attempts})", extra=extra)

                result = func(*args, **kwargs)
                if inspect.isawaitable(result):
                    result = await result

                return result

            except Exception as e:
                last_exception = e

                logger.warning(
                    f"{name} failed on attempt {attempt}/{max_attempts}: {e}",
                    extra=extra,
                )

                if not self.classifier(e):
                    logger.info(f"{name} raised a non-retryable error, not retrying", extra=extra)
                    break

                if attempt < max_attempts:
                    if on_retry is not None:
                        await on_retry(e, attempt)
                    await asyncio.sleep(self.config.calculate_delay(attempt))

        logger.error(
            f"{name} failed after {attempt} attempts. Final error: {last_exception}",
            extra={**(log_extra or {}), "attempts": attempt},
        )

        raise last_exception
