"""SQL registry and ledger tests against a temporary SQLite database."""

from __future__ import annotations

import asyncio
from datetime import timedelta
from pathlib import Path

import pytest

from conftest import T0, build_automation
from flowsmith.db import create_all, create_engine, create_session_factory, drop_all
from flowsmith.errors import InvalidTransitionError
from flowsmith.ledger.base import ORDER_STARTED_ASC, LedgerQueryFilters
from flowsmith.ledger.sql import SqlLedger
from flowsmith.models import AggregateDelta, AutomationStatus, ExecutionRecord, ExecutionStatus, TriggerType
from flowsmith.registry.sql import SqlAutomationRegistry


@pytest.fixture
async def session_factory(tmp_path: Path):
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'flowsmith.db'}")
    await create_all(engine)
    yield create_session_factory(engine)
    await drop_all(engine)
    await engine.dispose()


def _schedule(**kwargs):
    return build_automation(
        trigger_type=TriggerType.CUSTOM_SCHEDULE,
        trigger_config={"cronExpression": "*/5 * * * *"},
        **kwargs,
    )


@pytest.mark.asyncio
async def test_registry_round_trip(session_factory) -> None:
    registry = SqlAutomationRegistry(session_factory)
    automation = build_automation(trigger_config={"source": ["web"], "minValue": 100})
    await registry.save(automation)

    loaded = await registry.load(automation.id)
    assert loaded.trigger_config == {"source": ["web"], "minValue": 100}
    assert loaded.action_config == automation.action_config
    assert loaded.trigger_type is TriggerType.NEW_LEAD
    assert loaded.created_at == T0
    assert loaded.created_at.tzinfo is not None
    assert await registry.load("missing") is None


@pytest.mark.asyncio
async def test_registry_lists(session_factory) -> None:
    registry = SqlAutomationRegistry(session_factory)
    lead = build_automation(owner_id="o1")
    inactive = build_automation(owner_id="o1", active=False)
    other = build_automation(owner_id="o2", trigger_type=TriggerType.PAYMENT_RECEIVED)
    due = _schedule(owner_id="o1", next_run=T0 - timedelta(minutes=1))
    not_yet = _schedule(owner_id="o1", next_run=T0 + timedelta(minutes=1))
    for automation in (lead, inactive, other, due, not_yet):
        await registry.save(automation)

    assert {a.id for a in await registry.list_active(owner_id="o1", trigger_type=TriggerType.NEW_LEAD)} == {lead.id}
    assert {a.id for a in await registry.list_active(trigger_type=TriggerType.PAYMENT_RECEIVED)} == {other.id}
    assert len(await registry.list_for_owner("o1")) == 4
    assert [a.id for a in await registry.list_due_for_schedule(T0)] == [due.id]


@pytest.mark.asyncio
async def test_registry_cas_has_single_winner(session_factory) -> None:
    registry = SqlAutomationRegistry(session_factory)
    automation = _schedule(next_run=T0)
    await registry.save(automation)
    new_next = T0 + timedelta(minutes=5)

    assert await registry.compare_and_swap_next_run(automation.id, T0, new_next)
    assert not await registry.compare_and_swap_next_run(automation.id, T0, new_next)
    assert (await registry.load(automation.id)).next_run == new_next

    fresh = _schedule()
    await registry.save(fresh)
    assert await registry.compare_and_swap_next_run(fresh.id, None, T0)
    assert not await registry.compare_and_swap_next_run(fresh.id, None, T0)


@pytest.mark.asyncio
async def test_registry_aggregates_and_mark_invalid(session_factory) -> None:
    registry = SqlAutomationRegistry(session_factory)
    automation = _schedule(next_run=T0)
    await registry.save(automation)

    for status in (ExecutionStatus.SUCCESS, ExecutionStatus.FAILURE, ExecutionStatus.CANCELLED):
        await registry.update_aggregates(automation.id, AggregateDelta.for_status(status, T0))
    stored = await registry.load(automation.id)
    assert (stored.execution_count, stored.success_count, stored.failure_count, stored.cancelled_count) == (3, 1, 1, 1)
    assert stored.last_run == T0

    await registry.mark_invalid(automation.id, "malformed cron expression")
    stored = await registry.load(automation.id)
    assert stored.status is AutomationStatus.INVALID
    assert not stored.is_active
    assert stored.next_run is None
    assert not await registry.compare_and_swap_next_run(automation.id, None, T0)


@pytest.mark.asyncio
async def test_ledger_append_complete_and_reject_second_completion(session_factory) -> None:
    ledger = SqlLedger(session_factory)
    record = ExecutionRecord.open(build_automation(), {"source": "web"}, started_at=T0, metadata={"source": "event"})
    await ledger.append(record)
    assert (await ledger.get(record.id)).status is ExecutionStatus.PENDING

    final = record.finalize(
        ExecutionStatus.SUCCESS,
        completed_at=T0 + timedelta(milliseconds=250),
        duration_ms=250,
        action_result={"ok": True},
        metadata={"attempts": 1},
    )
    await ledger.complete(final)
    stored = await ledger.get(record.id)
    assert stored.status is ExecutionStatus.SUCCESS
    assert stored.metadata == {"source": "event", "attempts": 1}
    assert stored.trigger_payload == {"source": "web"}
    assert stored.duration_ms == 250

    with pytest.raises(InvalidTransitionError) as exc_info:
        await ledger.complete(final)
    assert exc_info.value.current_status == "success"


@pytest.mark.asyncio
async def test_ledger_concurrent_completions_one_wins(session_factory) -> None:
    ledger = SqlLedger(session_factory)
    record = ExecutionRecord.open(build_automation(), {}, started_at=T0)
    await ledger.append(record)
    success = record.finalize(ExecutionStatus.SUCCESS, completed_at=T0, duration_ms=1)
    cancelled = record.finalize(ExecutionStatus.CANCELLED, completed_at=T0, duration_ms=1)

    results = await asyncio.gather(ledger.complete(success), ledger.complete(cancelled), return_exceptions=True)
    assert sum(isinstance(r, InvalidTransitionError) for r in results) == 1


@pytest.mark.asyncio
async def test_ledger_query_and_stats(session_factory) -> None:
    ledger = SqlLedger(session_factory)
    automation = build_automation()
    ids = []
    for minutes, status, duration in (
        (0, ExecutionStatus.SUCCESS, 100),
        (1, ExecutionStatus.SUCCESS, 300),
        (2, ExecutionStatus.FAILURE, 50),
        (3, ExecutionStatus.PENDING, None),
    ):
        record = ExecutionRecord.open(automation, {}, started_at=T0 + timedelta(minutes=minutes))
        await ledger.append(record)
        ids.append(record.id)
        if status is not ExecutionStatus.PENDING:
            await ledger.complete(record.finalize(status, completed_at=record.started_at, duration_ms=duration))
    await ledger.append(ExecutionRecord.open(build_automation(owner_id="owner-2"), {}, started_at=T0))

    newest = await ledger.query("owner-1", LedgerQueryFilters(limit=2))
    assert [r.id for r in newest] == [ids[3], ids[2]]
    oldest = await ledger.query("owner-1", LedgerQueryFilters(order_by=ORDER_STARTED_ASC, offset=1, limit=1))
    assert [r.id for r in oldest] == [ids[1]]
    successes = await ledger.query("owner-1", LedgerQueryFilters(status=ExecutionStatus.SUCCESS))
    assert len(successes) == 2

    stats = await ledger.stats("owner-1", T0.replace(hour=0), T0.replace(hour=0) + timedelta(days=1))
    assert (stats.successes, stats.failures, stats.pending, stats.cancelled) == (2, 1, 1, 0)
    assert stats.completed_today == 2
    assert stats.average_success_ms == pytest.approx(200.0)
