"""Generic retry with exponential backoff.

The retrier knows nothing about databases: callers pass the action and a
predicate that decides whether a failure is worth another attempt.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.1  # seconds


class RetryExhausted(Exception):
    """Every attempt failed with a transient error."""

    def __init__(self, attempts: int, last_error: BaseException):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(f"gave up after {attempts} attempts: {last_error}")


def backoff_delay(base_delay: float, attempt: int) -> float:
    """Delay slept after the 0-based *attempt* failed."""
    return base_delay * (2 ** attempt)


def retry_call(
    action: Callable[[], T],
    is_transient: Callable[[BaseException], bool],
    *,
    max_attempts: int = DEFAULT_MAX_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
) -> T:
    """Run *action* until it succeeds, fails permanently or runs out of attempts.

    Non-transient exceptions propagate untouched on the first occurrence.
    Transient ones are retried after ``base_delay``, ``2 * base_delay``, ...
    No delay follows the final attempt; :class:`RetryExhausted` is raised
    instead.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Optional[BaseException] = None
    for attempt in range(max_attempts):
        try:
            return action()
        except Exception as exc:  # noqa: BLE001 - classified below
            if not is_transient(exc):
                raise
            last_error = exc
            if attempt < max_attempts - 1:
                delay = backoff_delay(base_delay, attempt)
                logger.warning(
                    "transient failure, retrying",
                    extra={"extra": {"attempt": attempt + 1, "delay_s": delay, "error": str(exc)}},
                )
                if on_retry is not None:
                    on_retry(attempt + 1, exc, delay)
                sleep(delay)

    assert last_error is not None
    raise RetryExhausted(max_attempts, last_error) from last_error
