"""In-memory registry for local runs and tests.

State is lost on process exit.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from datetime import datetime

from flowsmith.models import (
    AggregateDelta,
    Automation,
    AutomationStatus,
    TriggerType,
    ensure_utc,
    utcnow,
)
from flowsmith.registry.base import AutomationRegistry

logger = logging.getLogger(__name__)


class InMemoryRegistry(AutomationRegistry):
    """Dict-backed registry; one asyncio lock makes CAS and aggregate updates atomic."""

    def __init__(self, automations: list[Automation] | None = None) -> None:
        self._items: dict[str, Automation] = {}
        self._lock = asyncio.Lock()
        for automation in automations or []:
            self._items[automation.id] = replace(automation)

    async def load(self, automation_id: str) -> Automation | None:
        async with self._lock:
            item = self._items.get(automation_id)
            return None if item is None else replace(item)

    async def list_active(
        self,
        owner_id: str | None = None,
        trigger_type: TriggerType | None = None,
    ) -> list[Automation]:
        async with self._lock:
            return [
                replace(item)
                for item in self._items.values()
                if item.is_active
                and (owner_id is None or item.owner_id == owner_id)
                and (trigger_type is None or item.trigger_type is trigger_type)
            ]

    async def list_for_owner(self, owner_id: str) -> list[Automation]:
        async with self._lock:
            return [replace(item) for item in self._items.values() if item.owner_id == owner_id]

    async def list_due_for_schedule(self, now: datetime) -> list[Automation]:
        cutoff = ensure_utc(now)
        async with self._lock:
            due = [
                replace(item)
                for item in self._items.values()
                if item.is_active
                and item.is_schedule
                and item.next_run is not None
                and ensure_utc(item.next_run) <= cutoff
            ]
        due.sort(key=lambda item: ensure_utc(item.next_run))  # type: ignore[arg-type]
        return due

    async def update_aggregates(self, automation_id: str, delta: AggregateDelta) -> None:
        async with self._lock:
            item = self._items.get(automation_id)
            if item is None:
                logger.warning("registry_aggregate_missing automation_id=%s", automation_id)
                return
            item.execution_count += delta.executions
            item.success_count += delta.successes
            item.failure_count += delta.failures
            item.cancelled_count += delta.cancelled
            item.last_run = delta.last_run

    async def compare_and_swap_next_run(
        self,
        automation_id: str,
        expected_prev: datetime | None,
        new_next: datetime | None,
    ) -> bool:
        async with self._lock:
            item = self._items.get(automation_id)
            if item is None or not item.is_active:
                return False
            current = None if item.next_run is None else ensure_utc(item.next_run)
            expected = None if expected_prev is None else ensure_utc(expected_prev)
            if current != expected:
                return False
            item.next_run = None if new_next is None else ensure_utc(new_next)
            return True

    async def mark_invalid(self, automation_id: str, reason: str) -> None:
        async with self._lock:
            item = self._items.get(automation_id)
            if item is None:
                return
            item.status = AutomationStatus.INVALID
            item.is_active = False
            item.next_run = None
            item.invalid_reason = reason
            item.updated_at = utcnow()

    async def save(self, automation: Automation) -> Automation:
        async with self._lock:
            self._items[automation.id] = replace(automation)
            return replace(automation)
