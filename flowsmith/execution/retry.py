"""Retry policy for transient action failures."""

from __future__ import annotations

from dataclasses import dataclass

from flowsmith.config.models import RetryConfig
from flowsmith.models import ErrorKind


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    max_retries: int = 3
    backoff_base_ms: int = 500
    backoff_factor: float = 2.0
    backoff_max_ms: int = 8000

    @classmethod
    def from_config(cls, config: RetryConfig) -> RetryPolicy:
        return cls(
            max_retries=config.max_retries,
            backoff_base_ms=config.backoff_base_ms,
            backoff_factor=config.backoff_factor,
            backoff_max_ms=config.backoff_max_ms,
        )

    def should_retry(self, error_kind: ErrorKind | None, attempt: int) -> bool:
        """*attempt* is the 1-based number of the attempt that just failed."""
        if error_kind is None or not error_kind.retryable:
            return False
        return attempt <= self.max_retries

    def delay_seconds(self, attempt: int) -> float:
        """Bounded exponential backoff before retrying after *attempt*."""
        raw = self.backoff_base_ms * (self.backoff_factor ** (max(1, attempt) - 1))
        bounded = min(raw, self.backoff_max_ms)
        return max(0.0, float(bounded) / 1000.0)

    def total_backoff_seconds(self) -> float:
        return sum(self.delay_seconds(attempt) for attempt in range(1, self.max_retries + 1))
