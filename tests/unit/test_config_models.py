"""Unit tests for Flowsmith configuration models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from flowsmith.config.models import ExecutionConfig, FlowsmithConfig, MetricsConfig, RetryConfig


def test_defaults_match_documented_values() -> None:
    cfg = FlowsmithConfig()
    assert cfg.execution.default_timeout_seconds == 30.0
    assert cfg.execution.retry.max_retries == 3
    assert cfg.execution.retry.backoff_base_ms == 500
    assert cfg.execution.retry.backoff_max_ms == 8000
    assert cfg.dispatcher.dedupe_window_seconds == 86400
    assert cfg.dispatcher.allow_unsigned is False
    assert cfg.scheduler.tick_interval_seconds == 60.0
    assert cfg.metrics.recent_executions_limit == 10
    assert cfg.metrics.minutes_saved_per_success == 5.0
    assert cfg.database.url == ""


def test_timeout_for_uses_override_then_default() -> None:
    cfg = ExecutionConfig(default_timeout_seconds=30, action_timeouts={"send_email": 5})
    assert cfg.timeout_for("send_email") == 5.0
    assert cfg.timeout_for("update_crm") == 30.0


def test_timeout_for_ignores_non_positive_override() -> None:
    cfg = ExecutionConfig(action_timeouts={"send_email": 0})
    assert cfg.timeout_for("send_email") == 30.0


def test_retry_config_rejects_negative_retries() -> None:
    with pytest.raises(ValidationError):
        RetryConfig(max_retries=-1)


def test_metrics_config_rejects_zero_recent_limit() -> None:
    with pytest.raises(ValidationError):
        MetricsConfig(recent_executions_limit=0)


def test_env_nested_delimiter(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FLOWSMITH_EXECUTION__DEFAULT_TIMEOUT_SECONDS", "12")
    cfg = FlowsmithConfig()
    assert cfg.execution.default_timeout_seconds == 12.0
