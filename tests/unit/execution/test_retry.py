"""Unit tests for RetryPolicy."""

from __future__ import annotations

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from flowsmith.config.models import RetryConfig
from flowsmith.execution.retry import RetryPolicy
from flowsmith.models import ErrorKind


def test_default_delays_double_and_cap() -> None:
    policy = RetryPolicy()
    assert [policy.delay_seconds(n) for n in range(1, 7)] == [0.5, 1.0, 2.0, 4.0, 8.0, 8.0]


def test_total_backoff_sums_configured_retries() -> None:
    assert RetryPolicy().total_backoff_seconds() == 3.5
    assert RetryPolicy(max_retries=0).total_backoff_seconds() == 0


def test_should_retry_only_retryable_kinds_within_limit() -> None:
    policy = RetryPolicy(max_retries=2)
    assert policy.should_retry(ErrorKind.TRANSIENT, 1)
    assert policy.should_retry(ErrorKind.TIMEOUT, 2)
    assert not policy.should_retry(ErrorKind.TRANSIENT, 3)
    for kind in (ErrorKind.PERMANENT, ErrorKind.VALIDATION, ErrorKind.INTERNAL, ErrorKind.CANCELLED, None):
        assert not policy.should_retry(kind, 1)


def test_from_config_copies_fields() -> None:
    policy = RetryPolicy.from_config(RetryConfig(max_retries=5, backoff_base_ms=100, backoff_factor=3, backoff_max_ms=900))
    assert policy == RetryPolicy(max_retries=5, backoff_base_ms=100, backoff_factor=3.0, backoff_max_ms=900)
    assert policy.delay_seconds(3) == 0.9


@settings(suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(
    attempt=st.integers(min_value=1, max_value=30),
    base=st.integers(min_value=0, max_value=5000),
    cap=st.integers(min_value=0, max_value=60000),
)
def test_delay_is_bounded_and_monotonic(attempt: int, base: int, cap: int) -> None:
    policy = RetryPolicy(backoff_base_ms=base, backoff_max_ms=cap)
    delay = policy.delay_seconds(attempt)
    assert 0.0 <= delay <= cap / 1000.0
    assert policy.delay_seconds(attempt + 1) >= delay
