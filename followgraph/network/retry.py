"""Retry classification and exponential backoff for upstream calls."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import Optional

from followgraph.exceptions import APIError, ErrorKind

# Defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0
DEFAULT_MAX_DELAY = 10.0
DEFAULT_JITTER = 0.3

_RETRYABLE_KINDS = {ErrorKind.TRANSPORT, ErrorKind.TIMEOUT, ErrorKind.RATE_LIMITED}


def is_retryable_status(status: Optional[int]) -> bool:
    """429 and every 5xx are worth another attempt."""
    if status is None:
        return False
    return status == 429 or 500 <= status < 600


@dataclass
class RetryPolicy:
    """Decides whether a failed call is retried and how long to wait first.

    ``max_retries`` counts retries, so a call makes at most
    ``max_retries + 1`` attempts.
    """

    max_retries: int = DEFAULT_MAX_RETRIES
    base_delay: float = DEFAULT_BASE_DELAY
    max_delay: float = DEFAULT_MAX_DELAY
    jitter: float = DEFAULT_JITTER
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def is_retryable(self, error: APIError) -> bool:
        if error.kind in _RETRYABLE_KINDS:
            return True
        if error.kind == ErrorKind.HTTP_STATUS:
            return is_retryable_status(error.status)
        return False

    def should_retry(self, error: APIError, attempt: int) -> bool:
        """``attempt`` is the 0-indexed attempt that just failed."""
        return attempt < self.max_retries and self.is_retryable(error)

    def backoff_delay(self, attempt: int) -> float:
        """Seconds to sleep after the 0-indexed ``attempt`` failed.

        min(max_delay, base_delay * 2**attempt * (1 + j)), j in [0, jitter).
        """
        jitter_fraction = self.rng.random() * self.jitter
        return min(self.max_delay, self.base_delay * (2**attempt) * (1 + jitter_fraction))
