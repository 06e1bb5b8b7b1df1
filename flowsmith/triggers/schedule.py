"""Schedule planner: cron evaluation and CAS-claimed firing of due automations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, cast
from zoneinfo import ZoneInfo

from croniter import croniter  # type: ignore[import-untyped]

from flowsmith.errors import InvalidScheduleError, ValidationError
from flowsmith.execution.coordinator import SubmitStatus
from flowsmith.models import Automation, TriggerType, ensure_utc, utcnow
from flowsmith.registry.base import AutomationRegistry
from flowsmith.triggers.predicates import CustomScheduleTrigger, parse_trigger_config

if TYPE_CHECKING:
    from flowsmith.metrics.prometheus import EngineMetrics
    from flowsmith.triggers.dispatcher import Submitter

logger = logging.getLogger(__name__)

# DST transitions can make croniter return a wall time that maps back to <= from_.
_MAX_ADVANCE_STEPS = 8


def _resolve_timezone(expression: str, tz_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(tz_name or "UTC")
    except (KeyError, ValueError) as exc:
        raise InvalidScheduleError(expression, f"unknown timezone '{tz_name}'") from exc


def compute_next_run(cron_expression: str, tz: str = "UTC", from_: datetime | None = None) -> datetime:
    """Return the first fire time of *cron_expression* strictly after *from_*, in UTC."""
    expression = (cron_expression or "").strip()
    if not expression or not croniter.is_valid(expression):
        raise InvalidScheduleError(cron_expression)
    zone = _resolve_timezone(expression, tz)
    start = ensure_utc(from_ if from_ is not None else utcnow())
    try:
        iterator = croniter(expression, start.astimezone(zone))
        for _ in range(_MAX_ADVANCE_STEPS):
            candidate = ensure_utc(iterator.get_next(datetime))
            if candidate > start:
                return candidate
    except ValueError as exc:
        raise InvalidScheduleError(cron_expression, str(exc) or "no future fire time") from exc
    raise InvalidScheduleError(cron_expression, "no future fire time")


def schedule_of(automation: Automation) -> CustomScheduleTrigger:
    if automation.trigger_type is not TriggerType.CUSTOM_SCHEDULE:
        raise ValidationError(f"automation {automation.id} is not a custom schedule")
    config = parse_trigger_config(TriggerType.CUSTOM_SCHEDULE, automation.trigger_config)
    return cast(CustomScheduleTrigger, config)


@dataclass
class TickReport:
    """Outcome of one planner tick, by automation id."""

    now: datetime
    initialized: list[str] = field(default_factory=list)
    fired: list[str] = field(default_factory=list)
    busy: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    invalid: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class SchedulePlanner:
    """Fires schedule automations whose ``next_run`` has passed.

    Several planner instances may tick against the same registry; the
    ``next_run`` compare-and-swap decides which one submits.
    """

    def __init__(
        self,
        registry: AutomationRegistry,
        coordinator: Submitter,
        *,
        tick_interval_seconds: float = 60,
        clock: Callable[[], datetime] = utcnow,
        metrics: EngineMetrics | None = None,
    ) -> None:
        if tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        self._registry = registry
        self._coordinator = coordinator
        self._tick_interval = float(tick_interval_seconds)
        self._clock = clock
        self._metrics = metrics

    @property
    def tick_interval_seconds(self) -> float:
        return self._tick_interval

    def update_settings(self, *, tick_interval_seconds: float | None = None) -> None:
        if tick_interval_seconds is not None and tick_interval_seconds > 0:
            self._tick_interval = float(tick_interval_seconds)

    async def _mark_invalid(self, automation: Automation, exc: Exception, report: TickReport) -> None:
        reason = getattr(exc, "reason", None) or str(exc)
        await self._registry.mark_invalid(automation.id, reason)
        report.invalid.append(automation.id)
        logger.warning("schedule_invalid automation_id=%s reason=%s", automation.id, reason)

    async def _initialize_new(self, now: datetime, report: TickReport) -> None:
        active = await self._registry.list_active(trigger_type=TriggerType.CUSTOM_SCHEDULE)
        for automation in active:
            if automation.next_run is not None:
                continue
            try:
                config = schedule_of(automation)
                next_run = compute_next_run(config.cron_expression, config.timezone, now)
            except (InvalidScheduleError, ValidationError) as exc:
                await self._mark_invalid(automation, exc, report)
                continue
            if await self._registry.compare_and_swap_next_run(automation.id, None, next_run):
                report.initialized.append(automation.id)
                logger.info("schedule_initialized automation_id=%s next_run=%s", automation.id, next_run.isoformat())

    async def _fire(self, automation: Automation, now: datetime, report: TickReport) -> None:
        try:
            config = schedule_of(automation)
            next_run = compute_next_run(config.cron_expression, config.timezone, now)
        except (InvalidScheduleError, ValidationError) as exc:
            await self._mark_invalid(automation, exc, report)
            return
        scheduled_for = automation.next_run
        if not await self._registry.compare_and_swap_next_run(automation.id, scheduled_for, next_run):
            report.skipped.append(automation.id)
            logger.debug("schedule_claim_lost automation_id=%s", automation.id)
            return
        payload: dict[str, Any] = {
            "scheduled_for": None if scheduled_for is None else ensure_utc(scheduled_for).isoformat(),
            "fired_at": now.isoformat(),
            "cron_expression": config.cron_expression,
            "timezone": config.timezone,
        }
        outcome = await self._coordinator.submit(
            automation.id,
            payload,
            source="schedule",
            metadata={"source": "schedule", "next_run": next_run.isoformat()},
        )
        if outcome.status is SubmitStatus.ACCEPTED:
            report.fired.append(automation.id)
        elif outcome.status is SubmitStatus.BUSY:
            report.busy.append(automation.id)
        else:
            report.skipped.append(automation.id)
        logger.info(
            "schedule_fired automation_id=%s outcome=%s next_run=%s",
            automation.id,
            outcome.status.value,
            next_run.isoformat(),
        )

    async def tick(self, now: datetime | None = None) -> TickReport:
        """Evaluate every due schedule once; never waits for execution completion."""
        current = ensure_utc(now if now is not None else self._clock())
        report = TickReport(now=current)
        try:
            await self._initialize_new(current, report)
        except Exception as exc:
            logger.exception("schedule_initialize_failed error=%s", exc)
        for automation in await self._registry.list_due_for_schedule(current):
            try:
                await self._fire(automation, current, report)
            except Exception as exc:
                report.errors.append(automation.id)
                logger.exception("schedule_fire_failed automation_id=%s error=%s", automation.id, exc)
        if self._metrics is not None:
            self._metrics.record_tick(
                fired=len(report.fired),
                skipped=len(report.skipped) + len(report.busy),
                invalid=len(report.invalid),
            )
        return report

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick every ``tick_interval_seconds`` until *stop_event* is set."""
        logger.info("schedule_planner_started interval_seconds=%s", self._tick_interval)
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception as exc:
                logger.exception("schedule_tick_failed error=%s", exc)
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=self._tick_interval)
            except asyncio.TimeoutError:
                continue
        logger.info("schedule_planner_stopped")
