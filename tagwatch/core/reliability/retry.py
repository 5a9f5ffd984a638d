"""
Retry policy — bounded exponential backoff for remote calls.

This budget is local to one call (one fetch, one push, one HTTP
request) and is spent inside a single poll cycle. It is unrelated to
the poll interval: when the budget is exhausted the step fails and the
next cycle starts again from scratch.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from tagwatch.core.models.action import Receipt

logger = logging.getLogger(__name__)


@dataclass
class RetryPolicy:
    """Exponential backoff with jitter.

    Args:
        attempts: Total tries, including the first one.
        base_delay: Delay before the second try, in seconds.
        max_delay: Upper bound for a single delay.
        jitter: Fraction of the delay added at random (0 disables).
    """

    attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 30.0
    jitter: float = 0.3
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    @classmethod
    def none(cls) -> RetryPolicy:
        """A policy that tries exactly once."""
        return cls(attempts=1)

    def delay_for(self, attempt: int) -> float:
        """Delay to wait after failed try number ``attempt`` (1-based)."""
        delay = self.base_delay * (2 ** (attempt - 1))
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return min(delay, self.max_delay)

    def run(self, call: Callable[[], Receipt], label: str = "") -> Receipt:
        """Invoke ``call`` until it returns a non-failed receipt.

        A failed receipt whose metadata says ``retryable=False`` stops the
        loop immediately. The returned receipt records how many tries
        were made in ``attempts``.
        """
        attempts = max(1, self.attempts)
        receipt = call()
        attempt = 1
        while receipt.failed and attempt < attempts:
            if not receipt.retryable:
                break
            delay = self.delay_for(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s, retrying in %.1fs",
                label or receipt.action_id,
                attempt,
                attempts,
                receipt.error,
                delay,
            )
            self.sleep(delay)
            attempt += 1
            receipt = call()
        receipt.attempts = attempt
        return receipt
