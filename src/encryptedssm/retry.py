"""
Bounded retry with a caller-supplied predicate.

Used for the one place the reconciler waits on AWS: reading a parameter that
SSM is still validating asynchronously after creation.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, TypeVar

from encryptedssm.errors import RetryTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def retry_until_deadline(
    operation: Callable[[], T],
    is_retryable: Callable[[Exception], bool],
    timeout: float,
    *,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    backoff_factor: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> T:
    """Call *operation* until it succeeds, fails unretryably, or *timeout* elapses.

    Args:
        operation: Zero-argument callable to attempt.
        is_retryable: Decides whether an exception raised by *operation* should
            be retried. Exceptions it rejects propagate unchanged.
        timeout: Wall-clock window in seconds, measured from the first attempt.
        base_delay: Delay before the first retry.
        max_delay: Cap on the delay between retries.
        backoff_factor: Multiplier applied to the delay after each retry.
        sleep: Injected for tests.
        clock: Monotonic clock, injected for tests.

    Returns:
        Whatever *operation* returns.

    Raises:
        RetryTimeoutError: The window elapsed while the last error was still
            retryable; the error is available as ``last_error``.
    """
    deadline = clock() + timeout
    delay = base_delay
    attempt = 0
    while True:
        attempt += 1
        try:
            return operation()
        except Exception as exc:
            if not is_retryable(exc):
                raise
            remaining = deadline - clock()
            if remaining <= 0:
                logger.debug("Giving up after %d attempt(s): %s", attempt, exc)
                raise RetryTimeoutError(timeout, exc) from exc
            wait = min(delay, remaining)
            logger.debug(
                "Attempt %d failed (%s), retrying in %.1fs", attempt, exc, wait
            )
            sleep(wait)
            delay = min(delay * backoff_factor, max_delay)
