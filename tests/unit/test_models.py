"""Unit tests for core data models."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from conftest import T0, build_automation
from flowsmith.errors import InvalidTransitionError
from flowsmith.models import (
    AggregateDelta,
    Automation,
    AutomationStatus,
    ErrorKind,
    ExecutionRecord,
    ExecutionStatus,
    ensure_utc,
)


def test_automation_coerces_enum_strings() -> None:
    automation = Automation(
        id="a-1",
        owner_id="o",
        name="n",
        trigger_type="new_lead",
        trigger_config={},
        action_type="send_email",
        action_config={},
        category="support",
        status="active",
        is_active=True,
    )
    assert automation.trigger_type.value == "new_lead"
    assert automation.status is AutomationStatus.ACTIVE
    assert not automation.is_schedule


def test_active_flag_requires_active_status() -> None:
    with pytest.raises(ValueError):
        Automation(
            id="a-1",
            owner_id="o",
            name="n",
            trigger_type="new_lead",
            trigger_config={},
            action_type="send_email",
            action_config={},
            status="draft",
            is_active=True,
        )


def test_finalize_is_one_way() -> None:
    record = ExecutionRecord.open(build_automation(), {"k": 1}, started_at=T0, metadata={"source": "event"})
    assert record.status is ExecutionStatus.PENDING
    final = record.finalize(
        ExecutionStatus.FAILURE,
        completed_at=T0 + timedelta(seconds=1),
        duration_ms=1000,
        error_kind=ErrorKind.TIMEOUT,
        error_message="Action timed out after 1s",
        metadata={"attempts": 1},
    )
    assert final.metadata == {"source": "event", "attempts": 1}
    assert record.status is ExecutionStatus.PENDING
    with pytest.raises(InvalidTransitionError):
        final.finalize(ExecutionStatus.SUCCESS, completed_at=T0, duration_ms=0)
    with pytest.raises(InvalidTransitionError):
        record.finalize(ExecutionStatus.PENDING, completed_at=T0, duration_ms=0)


def test_negative_duration_is_clamped() -> None:
    record = ExecutionRecord.open(build_automation(), {}, started_at=T0)
    assert record.finalize(ExecutionStatus.SUCCESS, completed_at=T0, duration_ms=-5).duration_ms == 0


def test_aggregate_delta_for_status() -> None:
    delta = AggregateDelta.for_status(ExecutionStatus.CANCELLED, T0)
    assert (delta.executions, delta.successes, delta.failures, delta.cancelled) == (1, 0, 0, 1)


def test_error_kind_retryable() -> None:
    assert {kind for kind in ErrorKind if kind.retryable} == {ErrorKind.TRANSIENT, ErrorKind.TIMEOUT}


def test_ensure_utc_normalizes_offsets() -> None:
    naive = datetime(2026, 3, 2, 12, 0)
    assert ensure_utc(naive) == T0
    plus_two = datetime(2026, 3, 2, 14, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(plus_two) == T0
    assert ensure_utc(plus_two).tzinfo is timezone.utc
