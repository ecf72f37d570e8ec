"""
Retry policy shared by every unreliable external call:
uploads, generations, analysis calls and audio probing.
"""

import logging
import time
from typing import Callable, Optional

import requests

from factchecker.core.error_codes import JobError

logger = logging.getLogger(__name__)


class Backoff:
    EXPONENTIAL = "exponential"
    FIXED = "fixed"


class RetryPolicy:
    """
    Run a callable up to ``max_attempts`` times.

    Retries on retryable ``JobError``s and on ``requests`` exceptions; a
    non-retryable ``JobError`` propagates immediately. When every attempt
    fails the last error is re-raised.
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 2.0,
                 backoff: str = Backoff.EXPONENTIAL,
                 sleep: Callable[[float], None] = time.sleep):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.backoff = backoff
        self._sleep = sleep

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        if self.backoff == Backoff.EXPONENTIAL:
            return self.base_delay * (2 ** (attempt - 1))
        return self.base_delay

    def call(self, fn: Callable, *args, description: str = "call",
             should_abort: Optional[Callable[[], None]] = None,
             on_attempt: Optional[Callable[[int, int], None]] = None,
             **kwargs):
        """
        Invoke ``fn(*args, **kwargs)`` under this policy.

        ``should_abort`` is called before each attempt and may raise to stop
        retrying (used for job cancellation). ``on_attempt(attempt, max)``
        reports progress.
        """
        last_error: Exception | None = None

        for attempt in range(1, self.max_attempts + 1):
            if should_abort:
                should_abort()
            if on_attempt:
                on_attempt(attempt, self.max_attempts)

            try:
                return fn(*args, **kwargs)
            except JobError as e:
                if not e.retryable:
                    raise
                last_error = e
            except requests.RequestException as e:
                last_error = e

            logger.warning("%s attempt %d/%d failed: %s",
                           description, attempt, self.max_attempts, last_error)

            if attempt < self.max_attempts:
                delay = self.delay_for(attempt)
                logger.info("Retrying %s in %.1fs...", description, delay)
                self._sleep(delay)

        raise last_error
