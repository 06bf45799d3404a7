"""
Retry helper for transient store failures.

Only QuotaExceeded is retried; every other error propagates on the first
attempt.
"""

import logging
import time
from typing import Callable, TypeVar

from src.errors import QuotaExceeded

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delays(attempts: int, base_delay: float, max_delay: float) -> list:
    """Delays slept between attempts: base, 2*base, 4*base ... capped at max_delay."""
    return [min(base_delay * (2**i), max_delay) for i in range(max(attempts - 1, 0))]


def call_with_backoff(
    fn: Callable[[], T],
    attempts: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 8.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "store operation",
) -> T:
    """Calls fn, retrying QuotaExceeded with exponential backoff."""
    delays = backoff_delays(attempts, base_delay, max_delay)
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except QuotaExceeded as e:
            if attempt >= attempts:
                logger.error("%s: quota exceeded after %d attempts", label, attempts)
                raise
            delay = delays[attempt - 1]
            logger.warning(
                "%s: quota exceeded (%s), retrying in %.1fs (attempt %d/%d)",
                label,
                e,
                delay,
                attempt,
                attempts,
            )
            sleep(delay)
    # attempts < 1
    return fn()
