"""Registry contract: durable store of Automation definitions and aggregates."""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from flowsmith.models import AggregateDelta, Automation, TriggerType


class AutomationRegistry(ABC):
    """Abstract registry used by the dispatcher, planner, coordinator and metrics.

    Definition fields belong to the external CRUD layer; the engine only
    writes aggregates, ``next_run`` and the invalid marker.
    """

    @abstractmethod
    async def load(self, automation_id: str) -> Automation | None:
        """Return one automation, or None when unknown."""

    @abstractmethod
    async def list_active(
        self,
        owner_id: str | None = None,
        trigger_type: TriggerType | None = None,
    ) -> list[Automation]:
        """List active automations, optionally narrowed by owner and trigger type."""

    @abstractmethod
    async def list_for_owner(self, owner_id: str) -> list[Automation]:
        """List every automation of one owner regardless of status."""

    @abstractmethod
    async def list_due_for_schedule(self, now: datetime) -> list[Automation]:
        """List active schedule automations whose ``next_run <= now``."""

    @abstractmethod
    async def update_aggregates(self, automation_id: str, delta: AggregateDelta) -> None:
        """Atomically apply counter increments and ``last_run``."""

    @abstractmethod
    async def compare_and_swap_next_run(
        self,
        automation_id: str,
        expected_prev: datetime | None,
        new_next: datetime | None,
    ) -> bool:
        """Set ``next_run`` to *new_next* only if it still equals *expected_prev*."""

    @abstractmethod
    async def mark_invalid(self, automation_id: str, reason: str) -> None:
        """Deactivate an automation whose trigger cannot be evaluated."""

    @abstractmethod
    async def save(self, automation: Automation) -> Automation:
        """Insert or replace a definition (used by the CRUD layer and tests)."""
