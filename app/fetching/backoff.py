"""
Exponential backoff with additive jitter.
"""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass, field

from app.config import RetrySettings


def compute_backoff_delay(
    attempt: int,
    base_delay_seconds: float,
    *,
    jitter_seconds: float = 1.0,
    rng: Callable[[], float] = random.random,
) -> float:
    """
    Return ``base * 2**attempt + jitter`` seconds for a 0-based attempt index.

    ``rng`` must return a float in [0, 1); jitter is therefore drawn from
    [0, jitter_seconds).
    """

    exponent = max(0, attempt)
    return base_delay_seconds * (2**exponent) + rng() * jitter_seconds


@dataclass(frozen=True)
class BackoffPolicy:
    base_delay_seconds: float = 2.0
    jitter_seconds: float = 1.0
    rng: Callable[[], float] = field(default=random.random, compare=False, repr=False)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> "BackoffPolicy":
        return cls(
            base_delay_seconds=settings.base_delay_seconds,
            jitter_seconds=settings.jitter_seconds,
        )

    def delay_for(self, attempt: int) -> float:
        return compute_backoff_delay(
            attempt,
            self.base_delay_seconds,
            jitter_seconds=self.jitter_seconds,
            rng=self.rng,
        )
