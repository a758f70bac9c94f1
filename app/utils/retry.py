"""
Bounded retry for outbound provider calls.
"""

import logging
import time
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    func: Callable[[], T],
    max_retries: int,
    delay_seconds: float,
    retry_on: Tuple[Type[BaseException], ...],
    description: str = "provider call",
) -> T:
    """
    Call func, retrying up to max_retries extra times on the given exceptions.

    The delay doubles after each failed attempt. The last exception is
    re-raised once attempts are exhausted; anything not in retry_on is
    raised immediately.
    """
    attempts = max(0, max_retries) + 1
    retry_delay = delay_seconds
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except retry_on as e:
            if attempt == attempts:
                logger.warning(f"{description} failed after {attempts} attempt(s): {e}")
                raise
            logger.info(f"{description} attempt {attempt}/{attempts} failed: {e}; retrying in {retry_delay:.2f}s")
            if retry_delay > 0:
                time.sleep(retry_delay)
            retry_delay *= 2
