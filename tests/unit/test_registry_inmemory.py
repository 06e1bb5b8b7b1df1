"""Unit tests for InMemoryRegistry."""

from __future__ import annotations

import asyncio
from datetime import timedelta

import pytest

from conftest import T0, build_automation
from flowsmith.models import AggregateDelta, AutomationStatus, ExecutionStatus, TriggerType
from flowsmith.registry.inmemory import InMemoryRegistry


def _schedule(**kwargs):
    return build_automation(
        trigger_type=TriggerType.CUSTOM_SCHEDULE,
        trigger_config={"cronExpression": "* * * * *"},
        **kwargs,
    )


@pytest.mark.asyncio
async def test_load_returns_copies() -> None:
    automation = build_automation()
    registry = InMemoryRegistry([automation])
    loaded = await registry.load(automation.id)
    loaded.name = "changed"
    assert (await registry.load(automation.id)).name == automation.name
    assert await registry.load("missing") is None


@pytest.mark.asyncio
async def test_list_active_filters_owner_and_trigger() -> None:
    lead = build_automation(owner_id="o1")
    payment = build_automation(owner_id="o1", trigger_type=TriggerType.PAYMENT_RECEIVED)
    other = build_automation(owner_id="o2")
    inactive = build_automation(owner_id="o1", active=False)
    registry = InMemoryRegistry([lead, payment, other, inactive])

    assert {a.id for a in await registry.list_active(owner_id="o1")} == {lead.id, payment.id}
    assert {a.id for a in await registry.list_active(trigger_type=TriggerType.NEW_LEAD)} == {lead.id, other.id}
    assert len(await registry.list_for_owner("o1")) == 3


@pytest.mark.asyncio
async def test_list_due_orders_by_next_run() -> None:
    later = _schedule(next_run=T0 - timedelta(minutes=1))
    earlier = _schedule(next_run=T0 - timedelta(minutes=5))
    future = _schedule(next_run=T0 + timedelta(minutes=1))
    unset = _schedule()
    registry = InMemoryRegistry([later, earlier, future, unset])

    due = await registry.list_due_for_schedule(T0)
    assert [a.id for a in due] == [earlier.id, later.id]


@pytest.mark.asyncio
async def test_compare_and_swap_next_run_single_winner() -> None:
    automation = _schedule(next_run=T0)
    registry = InMemoryRegistry([automation])
    new_next = T0 + timedelta(minutes=1)

    results = await asyncio.gather(
        *(registry.compare_and_swap_next_run(automation.id, T0, new_next) for _ in range(5))
    )
    assert results.count(True) == 1
    assert (await registry.load(automation.id)).next_run == new_next


@pytest.mark.asyncio
async def test_compare_and_swap_rejects_inactive_and_missing() -> None:
    inactive = _schedule(active=False)
    registry = InMemoryRegistry([inactive])
    assert not await registry.compare_and_swap_next_run(inactive.id, None, T0)
    assert not await registry.compare_and_swap_next_run("missing", None, T0)


@pytest.mark.asyncio
async def test_update_aggregates_accumulates() -> None:
    automation = build_automation()
    registry = InMemoryRegistry([automation])
    await asyncio.gather(
        registry.update_aggregates(automation.id, AggregateDelta.for_status(ExecutionStatus.SUCCESS, T0)),
        registry.update_aggregates(automation.id, AggregateDelta.for_status(ExecutionStatus.FAILURE, T0)),
        registry.update_aggregates(automation.id, AggregateDelta.for_status(ExecutionStatus.SUCCESS, T0)),
    )
    stored = await registry.load(automation.id)
    assert (stored.execution_count, stored.success_count, stored.failure_count) == (3, 2, 1)
    assert stored.last_run == T0
    await registry.update_aggregates("missing", AggregateDelta.for_status(ExecutionStatus.SUCCESS, T0))


@pytest.mark.asyncio
async def test_mark_invalid_deactivates() -> None:
    automation = _schedule(next_run=T0)
    registry = InMemoryRegistry([automation])
    await registry.mark_invalid(automation.id, "malformed cron expression")
    stored = await registry.load(automation.id)
    assert stored.status is AutomationStatus.INVALID
    assert not stored.is_active
    assert stored.next_run is None
    assert stored.invalid_reason == "malformed cron expression"
    assert await registry.list_due_for_schedule(T0 + timedelta(days=1)) == []


@pytest.mark.asyncio
async def test_save_inserts_and_replaces() -> None:
    registry = InMemoryRegistry()
    automation = build_automation()
    await registry.save(automation)
    automation.name = "renamed"
    assert (await registry.load(automation.id)).name != "renamed"
    await registry.save(automation)
    assert (await registry.load(automation.id)).name == "renamed"
