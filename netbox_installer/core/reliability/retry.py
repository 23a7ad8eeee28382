"""
Bounded retry with exponential backoff and jitter.

Used for steps that talk to the network (apt mirrors, the GitHub
release download, PyPI). Deterministic failures are not retried:
only steps declared with ``retries > 0`` go through here.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RetryPolicy:
    """How many extra attempts to make and how long to wait between them."""

    retries: int = 0
    base_delay: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.3

    def delay(self, attempt: int) -> float:
        """Backoff before retry number ``attempt`` (1-based)."""
        delay = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        return delay + random.uniform(0, delay * self.jitter)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    label: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> tuple[T, int]:
    """Call ``fn`` until it succeeds or retries are exhausted.

    Returns:
        (result, attempts) on success.

    Raises:
        The last exception once every attempt has failed.
    """
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn(), attempt
        except Exception as e:
            if attempt > policy.retries:
                raise
            delay = policy.delay(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                label or "operation",
                attempt,
                policy.retries + 1,
                e,
                delay,
            )
            sleep(delay)
