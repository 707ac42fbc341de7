"""Retry handler with exponential backoff."""

import asyncio
import random
from typing import Awaitable, Callable, FrozenSet, Iterable, Optional

import httpx

from cms_sync.errors import CMSRequestError


DEFAULT_RETRYABLE_STATUS_CODES: FrozenSet[int] = frozenset({429, 500, 502, 503, 504})


def calculate_backoff_delay(
    attempt: int,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    jitter_max: float = 0.0
) -> float:
    """
    Calculate exponential backoff delay.

    Formula: min(max_delay, (base_delay * (2 ** attempt)) + random_jitter)

    With the defaults this yields 1s, 2s, 4s, ... for attempts 0, 1, 2.

    Args:
        attempt: Retry attempt number (0-indexed)
        base_delay: Base delay in seconds
        max_delay: Optional maximum delay cap in seconds
        jitter_max: Maximum jitter to add in seconds

    Returns:
        Delay in seconds
    """
    delay = base_delay * (2 ** attempt)
    if jitter_max > 0:
        delay += random.uniform(0, jitter_max)
    if max_delay is not None:
        delay = min(max_delay, delay)
    return delay


class RetryHandler:
    """
    Handles retry logic with exponential backoff for CMS requests.

    Retries on: CMSRequestError (timeouts, network errors) and responses
    carrying a retryable status code (429, 500, 502, 503, 504 by default).
    Performs ``1 + max_retries`` attempts in total.
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        max_delay: Optional[float] = None,
        jitter_max: float = 0.0,
        retryable_status_codes: Optional[Iterable[int]] = None,
        on_retry: Optional[Callable[[int, float, str], None]] = None
    ):
        """
        Initialize retry handler.

        Args:
            max_retries: Maximum number of retry attempts
            base_delay: Base delay for exponential backoff
            max_delay: Maximum delay cap
            jitter_max: Maximum jitter to add
            retryable_status_codes: Status codes that trigger a retry
            on_retry: Callback invoked with (attempt, delay, reason) before sleeping
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.jitter_max = jitter_max
        self.retryable_status_codes = frozenset(
            DEFAULT_RETRYABLE_STATUS_CODES if retryable_status_codes is None else retryable_status_codes
        )
        self.on_retry = on_retry

    def is_retryable(self, status_code: Optional[int] = None, is_timeout: bool = False) -> bool:
        """
        Check if an outcome is retryable.

        Args:
            status_code: HTTP status code
            is_timeout: Whether the error was a timeout

        Returns:
            True if the request should be retried
        """
        if is_timeout:
            return True
        return status_code in self.retryable_status_codes

    async def execute(self, func: Callable[[], Awaitable[httpx.Response]]) -> httpx.Response:
        """
        Execute request function with retry logic.

        Args:
            func: Coroutine function performing one request attempt

        Returns:
            The first non-retryable response, or the last response when
            every attempt returned a retryable status

        Raises:
            CMSRequestError: The last failure, if all attempts raised
        """
        last_exception: Optional[CMSRequestError] = None

        for attempt in range(self.max_retries + 1):
            has_retries_left = attempt < self.max_retries
            try:
                response = await func()
            except CMSRequestError as e:
                last_exception = e
                if not has_retries_left:
                    raise
                await self._backoff(attempt, str(e))
                continue

            if has_retries_left and self.is_retryable(status_code=response.status_code):
                await self._backoff(attempt, f"HTTP {response.status_code}")
                continue
            return response

        # Unreachable with max_retries >= 0
        raise last_exception or CMSRequestError("Retry loop exhausted")

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay = calculate_backoff_delay(attempt, self.base_delay, self.max_delay, self.jitter_max)
        if self.on_retry:
            self.on_retry(attempt, delay, reason)
        await asyncio.sleep(delay)
