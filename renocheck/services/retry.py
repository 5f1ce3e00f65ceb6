"""Bounded retry with exponential backoff for async operations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Every attempt failed; ``last_error`` holds the final exception."""

    def __init__(self, attempts: int, last_error: BaseException):
        super().__init__(f"Gave up after {attempts} attempt(s): {last_error}")
        self.attempts = attempts
        self.last_error = last_error


def _always(exc: BaseException) -> bool:
    return True


async def retry_async(
    operation: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    delay: float = 1.0,
    backoff: float = 2.0,
    retry_on: Callable[[BaseException], bool] = _always,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``operation()`` up to ``max_attempts`` times.

    Waits ``delay``, then ``delay * backoff`` and so on between attempts.
    Exceptions for which ``retry_on`` returns False are re-raised at once;
    otherwise the final failure is raised as ``RetryExhaustedError``.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")

    current_delay = delay
    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if not retry_on(exc):
                raise
            logger.warning("Attempt %d/%d failed: %s", attempt, max_attempts, exc)
            if attempt == max_attempts:
                logger.error("All %d attempts failed", max_attempts)
                raise RetryExhaustedError(attempt, exc) from exc
            await sleep(current_delay)
            current_delay *= backoff
    raise AssertionError("unreachable")
