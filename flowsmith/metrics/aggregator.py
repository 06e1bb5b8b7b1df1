"""Per-owner health metrics computed from the registry and the ledger."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, time, timedelta
from typing import Any

from flowsmith.ledger.base import ORDER_STARTED_DESC, ExecutionLedger, LedgerQueryFilters
from flowsmith.models import ExecutionRecord, ensure_utc, utcnow
from flowsmith.registry.base import AutomationRegistry


@dataclass
class AutomationMetrics:
    """Dashboard figures for one owner.

    ``estimated_time_saved_minutes`` is an estimate (successes times a
    configured per-success figure), not a measurement.
    """

    owner_id: str
    as_of: datetime
    total_automations: int = 0
    active_automations: int = 0
    tasks_completed_today: int = 0
    success_rate: float = 0.0
    average_execution_time_ms: float = 0.0
    estimated_time_saved_minutes: float = 0.0
    category_breakdown: dict[str, int] = field(default_factory=dict)
    recent_executions: list[ExecutionRecord] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "owner_id": self.owner_id,
            "as_of": self.as_of.isoformat(),
            "total_automations": self.total_automations,
            "active_automations": self.active_automations,
            "tasks_completed_today": self.tasks_completed_today,
            "success_rate": self.success_rate,
            "average_execution_time_ms": self.average_execution_time_ms,
            "estimated_time_saved_minutes": self.estimated_time_saved_minutes,
            "category_breakdown": dict(self.category_breakdown),
            "recent_executions": [record.to_dict() for record in self.recent_executions],
        }


def day_bounds(as_of: datetime) -> tuple[datetime, datetime]:
    """Start and end of *as_of*'s calendar day in its own timezone."""
    aware = as_of if as_of.tzinfo is not None else ensure_utc(as_of)
    start = datetime.combine(aware.date(), time.min, tzinfo=aware.tzinfo)
    end = datetime.combine(aware.date() + timedelta(days=1), time.min, tzinfo=aware.tzinfo)
    return start, end


class MetricsAggregator:
    """Read-only view over registry and ledger."""

    def __init__(
        self,
        registry: AutomationRegistry,
        ledger: ExecutionLedger,
        *,
        recent_executions_limit: int = 10,
        minutes_saved_per_success: float = 5.0,
    ) -> None:
        if recent_executions_limit < 1:
            raise ValueError("recent_executions_limit must be positive")
        if minutes_saved_per_success < 0:
            raise ValueError("minutes_saved_per_success must be non-negative")
        self._registry = registry
        self._ledger = ledger
        self._recent_limit = recent_executions_limit
        self._minutes_per_success = float(minutes_saved_per_success)

    def update_settings(
        self,
        *,
        recent_executions_limit: int | None = None,
        minutes_saved_per_success: float | None = None,
    ) -> None:
        if recent_executions_limit is not None and recent_executions_limit >= 1:
            self._recent_limit = recent_executions_limit
        if minutes_saved_per_success is not None and minutes_saved_per_success >= 0:
            self._minutes_per_success = float(minutes_saved_per_success)

    async def get_metrics(self, owner_id: str, as_of: datetime | None = None) -> AutomationMetrics:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise ValueError("owner_id must be a non-empty string")
        moment = as_of if as_of is not None else utcnow()
        if moment.tzinfo is None:
            moment = ensure_utc(moment)
        day_start, day_end = day_bounds(moment)

        automations = await self._registry.list_for_owner(owner_id)
        stats = await self._ledger.stats(owner_id, day_start, day_end)
        recent = await self._ledger.query(
            owner_id,
            LedgerQueryFilters(limit=self._recent_limit, order_by=ORDER_STARTED_DESC),
        )

        completed = stats.successes + stats.failures
        categories = Counter(automation.category.value for automation in automations)
        return AutomationMetrics(
            owner_id=owner_id,
            as_of=moment,
            total_automations=len(automations),
            active_automations=sum(1 for automation in automations if automation.is_active),
            tasks_completed_today=stats.completed_today,
            success_rate=(stats.successes / completed) if completed else 0.0,
            average_execution_time_ms=stats.average_success_ms,
            estimated_time_saved_minutes=stats.successes * self._minutes_per_success,
            category_breakdown=dict(categories),
            recent_executions=recent,
        )
