"""Exponential reconnect backoff."""

from __future__ import annotations

import random
from dataclasses import dataclass


@dataclass(frozen=True)
class BackoffPolicy:
    """``base * 2**retry_count`` milliseconds, capped at ``max_delay_ms``.

    ``jitter`` removes up to that fraction of each delay at random.
    """

    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    jitter: float = 0.0

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            msg = "backoff delays must be >= 0"
            raise ValueError(msg)
        if not 0.0 <= self.jitter <= 1.0:
            msg = f"jitter must be within [0, 1], got {self.jitter}"
            raise ValueError(msg)

    def delay(self, retry_count: int) -> float:
        """Seconds to wait before retry number ``retry_count + 1``."""
        delay_ms = min(self.base_delay_ms * 2**retry_count, self.max_delay_ms)
        if self.jitter:
            delay_ms *= 1.0 - random.uniform(0.0, self.jitter)  # noqa: S311
        return delay_ms / 1000.0

    def with_base(self, base_delay_ms: int | None) -> BackoffPolicy:
        """Copy of this policy with a per-subscription base delay."""
        if base_delay_ms is None or base_delay_ms == self.base_delay_ms:
            return self
        return BackoffPolicy(base_delay_ms, self.max_delay_ms, self.jitter)
