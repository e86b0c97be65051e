"""
Retry policy with exponential backoff for provider HTTP calls.

Rate-limit responses (429) and transient failures (500/502/503/504, transport errors, timeouts)
are retried with separate backoff bases.  Auth, permission, not-found and bad-request responses
are never retried.
"""

import asyncio
import logging
from typing import (
    Awaitable,
    Callable,
)

import httpx

from workmate.config import settings
from workmate.core.errors import ErrorCategory

logger = logging.getLogger(__name__)

RATE_LIMIT_STATUS = 429
TRANSIENT_STATUS_CODES = {500, 502, 503, 504}
TERMINAL_STATUS_CODES = {
    400: ErrorCategory.INVALID_REQUEST,
    401: ErrorCategory.AUTH_EXPIRED,
    403: ErrorCategory.PERMISSION_DENIED,
    404: ErrorCategory.NOT_FOUND,
}
RETRYABLE_EXCEPTIONS = (
    httpx.TransportError,  # connect errors, read errors and timeouts
)


def categorize_status(status_code: int) -> ErrorCategory:
    """Map an HTTP error status to an :class:`ErrorCategory`."""
    if status_code == RATE_LIMIT_STATUS:
        return ErrorCategory.RATE_LIMITED
    if status_code in TRANSIENT_STATUS_CODES:
        return ErrorCategory.TRANSIENT
    return TERMINAL_STATUS_CODES.get(status_code, ErrorCategory.UNKNOWN)


class RetryPolicy:
    """
    Bounded exponential backoff.

    Parameters
    ----------
    max_attempts:
        Total number of attempts, the first one included.
    rate_limit_base, transient_base:
        Delay before the first retry for each category; doubles on every further retry.
    sleep:
        Awaitable used to wait between attempts (tests inject a recorder).
    """

    def __init__(
        self,
        max_attempts: int | None = None,
        rate_limit_base: float | None = None,
        transient_base: float | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.max_attempts = max(1, max_attempts or settings.PROVIDER_MAX_ATTEMPTS)
        self.rate_limit_base = (
            settings.RATE_LIMIT_BACKOFF_BASE if rate_limit_base is None else rate_limit_base
        )
        self.transient_base = (
            settings.TRANSIENT_BACKOFF_BASE if transient_base is None else transient_base
        )
        self._sleep = sleep

    def should_retry(self, category: ErrorCategory, attempt: int) -> bool:
        """True when *category* is retryable and *attempt* (1-based) isn't the last one."""
        if category not in (ErrorCategory.RATE_LIMITED, ErrorCategory.TRANSIENT):
            return False
        return attempt < self.max_attempts

    def delay_for(self, category: ErrorCategory, attempt: int) -> float:
        """Backoff before the retry that follows *attempt* (1-based)."""
        if category == ErrorCategory.RATE_LIMITED:
            base = self.rate_limit_base
        else:
            base = self.transient_base
        return base * (2 ** (attempt - 1))

    async def backoff(self, category: ErrorCategory, attempt: int, label: str) -> None:
        """Wait before the next attempt and log it."""
        delay = self.delay_for(category, attempt)
        logger.warning(
            "Retry %d/%d for %s after %s (delay %.1fs)",
            attempt,
            self.max_attempts - 1,
            label,
            category.value,
            delay,
        )
        await self._sleep(delay)
