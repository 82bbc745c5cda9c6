"""Retry handler with pluggable backoff policies."""

import asyncio
import random
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx

from catalog_export.errors import CommerceAPIError


BackoffPolicy = Callable[[int], float]


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    jitter_max: float = 0.5
) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Formula: min(max_delay, (base_delay * (2 ** attempt)) + random_jitter)

    Args:
        attempt: Retry attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Maximum delay cap in seconds
        jitter_max: Maximum jitter to add in seconds

    Returns:
        Delay in seconds
    """
    exponential_delay = base_delay * (2 ** attempt)
    jitter = random.uniform(0, jitter_max)
    return min(max_delay, exponential_delay + jitter)


def fixed_backoff(delay: float) -> BackoffPolicy:
    """Backoff policy that waits the same ``delay`` before every retry."""
    return lambda attempt: delay


def exponential_backoff(
    base_delay: float = 0.5,
    max_delay: float = 4.0,
    jitter_max: float = 0.5
) -> BackoffPolicy:
    """Backoff policy wrapping :func:`calculate_backoff_delay`."""
    return lambda attempt: calculate_backoff_delay(attempt, base_delay, max_delay, jitter_max)


def is_transient_error(
    error: BaseException,
    retryable_status_codes: Iterable[int] = (429, 500, 502, 503, 504)
) -> bool:
    """
    Check if an error is a transient upstream failure.

    Timeouts and transport errors are always transient; HTTP errors are
    transient when their status code is in ``retryable_status_codes``.
    """
    if isinstance(error, CommerceAPIError):
        if error.retryable:
            return True
        return error.status_code is not None and error.status_code in set(retryable_status_codes)
    return isinstance(error, (httpx.TimeoutException, httpx.TransportError))


class RetryHandler:
    """
    Executes an async call, retrying failures after a backoff delay.

    Makes at most ``max_retries + 1`` attempts. ``retry_if`` decides which
    exceptions are retried; by default every exception is.
    """

    def __init__(
        self,
        max_retries: int = 3,
        backoff: Optional[BackoffPolicy] = None,
        retry_if: Optional[Callable[[BaseException], bool]] = None,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        logger=None
    ):
        """
        Initialize retry handler.

        Args:
            max_retries: Maximum number of retry attempts
            backoff: Maps the 0-indexed attempt to a delay in seconds (default 1s fixed)
            retry_if: Predicate selecting retryable exceptions
            sleeper: Async sleep function
            logger: Optional structured logger
        """
        self.max_retries = max_retries
        self.backoff = backoff or fixed_backoff(1.0)
        self.retry_if = retry_if or (lambda error: True)
        self._sleep = sleeper
        self.logger = logger

    def is_retryable(self, error: BaseException) -> bool:
        return self.retry_if(error)

    async def execute(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """
        Execute coroutine function with retry logic.

        Raises:
            Exception: The last error once retries are exhausted, or the
                first non-retryable error
        """
        for attempt in range(self.max_retries + 1):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if self.logger:
                    self.logger.fetch_error(
                        url=getattr(e, "url", None),
                        status=getattr(e, "status_code", None),
                        error=str(e),
                        attempt=attempt + 1
                    )
                if attempt >= self.max_retries or not self.is_retryable(e):
                    raise

                delay = self.backoff(attempt)
                if self.logger:
                    self.logger.retry(attempt=attempt + 1, delay=delay, error=str(e))
                await self._sleep(delay)
