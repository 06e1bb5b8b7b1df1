"""Engine bootstrap and dependency container."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from sqlalchemy.ext.asyncio import AsyncEngine

from flowsmith.actions.executor import ActionExecutor
from flowsmith.actions.integrations import Integration, MockIntegration
from flowsmith.config.models import FlowsmithConfig
from flowsmith.db import create_all, create_engine, create_session_factory
from flowsmith.execution.coordinator import ExecutionCoordinator
from flowsmith.execution.lease import InMemoryLeaseStore, LeaseStore
from flowsmith.ledger.base import ExecutionLedger
from flowsmith.ledger.inmemory import InMemoryLedger
from flowsmith.metrics.aggregator import MetricsAggregator
from flowsmith.metrics.prometheus import EngineMetrics
from flowsmith.models import ActionType
from flowsmith.registry.base import AutomationRegistry
from flowsmith.registry.inmemory import InMemoryRegistry
from flowsmith.triggers.dedupe import DedupeStore, InMemoryDedupeStore
from flowsmith.triggers.dispatcher import TriggerDispatcher
from flowsmith.triggers.schedule import SchedulePlanner
from flowsmith.triggers.verifier import (
    HmacSignatureVerifier,
    SignatureVerifier,
    StripeSignatureVerifier,
)

if TYPE_CHECKING:
    from fastapi import FastAPI

logger = logging.getLogger(__name__)

STRIPE_PROVIDER = "stripe"


@dataclass(slots=True)
class AutomationEngine:
    """Assembled engine services with start/stop lifecycle."""

    config: FlowsmithConfig
    registry: AutomationRegistry
    ledger: ExecutionLedger
    executor: ActionExecutor
    coordinator: ExecutionCoordinator
    dispatcher: TriggerDispatcher
    planner: SchedulePlanner
    aggregator: MetricsAggregator
    metrics: EngineMetrics
    db_engine: AsyncEngine | None = None
    started: bool = False
    _stop_event: asyncio.Event | None = field(default=None, repr=False)
    _planner_task: asyncio.Task[None] | None = field(default=None, repr=False)

    async def start(self, *, run_planner: bool | None = None) -> None:
        if self.started:
            return
        if self.db_engine is not None and self.db_engine.url.get_backend_name() == "sqlite":
            await create_all(self.db_engine)
        should_plan = self.config.scheduler.enabled if run_planner is None else run_planner
        if should_plan:
            self._stop_event = asyncio.Event()
            self._planner_task = asyncio.create_task(self.planner.run(self._stop_event), name="flowsmith-planner")
        self.started = True
        logger.info("engine_started planner=%s", should_plan)

    async def stop(self, *, drain_timeout: float | None = 10.0) -> None:
        """Stop the planner, wait for in-flight executions, cancel the rest."""
        if not self.started:
            return
        if self._stop_event is not None:
            self._stop_event.set()
        if self._planner_task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._planner_task
            self._planner_task = None
        if not await self.coordinator.drain(timeout=drain_timeout):
            logger.warning("engine_drain_timeout in_flight=%d", self.coordinator.in_flight)
        await self.coordinator.shutdown()
        if self.db_engine is not None:
            await self.db_engine.dispose()
        self.started = False
        logger.info("engine_stopped")

    def apply_config(self, old: FlowsmithConfig, new: FlowsmithConfig) -> None:
        """ConfigManager listener applying hot-reloadable sections."""
        self.config = new
        self.coordinator.update_config(new.execution)
        self.dispatcher.update_settings(
            dedupe_window_seconds=new.dispatcher.dedupe_window_seconds,
            allow_unsigned=new.dispatcher.allow_unsigned,
            owner_required_providers=new.dispatcher.owner_required_providers,
        )
        self.planner.update_settings(tick_interval_seconds=new.scheduler.tick_interval_seconds)
        self.aggregator.update_settings(
            recent_executions_limit=new.metrics.recent_executions_limit,
            minutes_saved_per_success=new.metrics.minutes_saved_per_success,
        )
        logger.info("engine_config_applied")

    async def health_status(self) -> dict[str, Any]:
        planner_running = self._planner_task is not None and not self._planner_task.done()
        return {
            "status": "healthy" if self.started else "stopped",
            "started": self.started,
            "planner_running": planner_running,
            "in_flight": self.coordinator.in_flight,
        }

    def build_http_app(self) -> FastAPI:
        from flowsmith.http.app import create_http_app

        return create_http_app(self)


def build_verifiers(config: FlowsmithConfig) -> dict[str, SignatureVerifier]:
    """One verifier per configured provider secret; ``stripe`` uses the Stripe scheme."""
    verifiers: dict[str, SignatureVerifier] = {}
    for provider, secret in config.dispatcher.webhook_secrets.items():
        if not secret:
            continue
        if provider == STRIPE_PROVIDER:
            verifiers[provider] = StripeSignatureVerifier(
                secret,
                tolerance_seconds=config.dispatcher.stripe_tolerance_seconds,
            )
        else:
            verifiers[provider] = HmacSignatureVerifier(secret)
    return verifiers


def build_engine(
    config: FlowsmithConfig | None = None,
    *,
    integrations: dict[ActionType, Integration] | None = None,
    registry: AutomationRegistry | None = None,
    ledger: ExecutionLedger | None = None,
    lease_store: LeaseStore | None = None,
    dedupe_store: DedupeStore | None = None,
    metrics: EngineMetrics | None = None,
) -> AutomationEngine:
    """Factory wiring every component; in-memory stores unless a database URL is set."""
    cfg = config or FlowsmithConfig()
    db_engine: AsyncEngine | None = None
    if (registry is None or ledger is None) and cfg.database.url:
        from flowsmith.ledger.sql import SqlLedger
        from flowsmith.registry.sql import SqlAutomationRegistry

        db_engine = create_engine(cfg.database.url, echo=cfg.database.echo)
        session_factory = create_session_factory(db_engine)
        registry = registry or SqlAutomationRegistry(session_factory)
        ledger = ledger or SqlLedger(session_factory)
    registry = registry or InMemoryRegistry()
    ledger = ledger or InMemoryLedger()

    if integrations is None:
        logger.warning("engine_mock_integrations no integrations supplied; every action type uses MockIntegration")
        integrations = {action_type: MockIntegration() for action_type in ActionType}

    engine_metrics = metrics or EngineMetrics()
    executor = ActionExecutor(integrations)
    coordinator = ExecutionCoordinator(
        registry,
        ledger,
        executor,
        lease_store or InMemoryLeaseStore(),
        config=cfg.execution,
        metrics=engine_metrics,
    )
    dispatcher = TriggerDispatcher(
        registry,
        coordinator,
        dedupe_store or InMemoryDedupeStore(),
        verifiers=build_verifiers(cfg),
        dedupe_window_seconds=cfg.dispatcher.dedupe_window_seconds,
        allow_unsigned=cfg.dispatcher.allow_unsigned,
        owner_required_providers=cfg.dispatcher.owner_required_providers,
        metrics=engine_metrics,
    )
    planner = SchedulePlanner(
        registry,
        coordinator,
        tick_interval_seconds=cfg.scheduler.tick_interval_seconds,
        metrics=engine_metrics,
    )
    aggregator = MetricsAggregator(
        registry,
        ledger,
        recent_executions_limit=cfg.metrics.recent_executions_limit,
        minutes_saved_per_success=cfg.metrics.minutes_saved_per_success,
    )
    return AutomationEngine(
        config=cfg,
        registry=registry,
        ledger=ledger,
        executor=executor,
        coordinator=coordinator,
        dispatcher=dispatcher,
        planner=planner,
        aggregator=aggregator,
        metrics=engine_metrics,
        db_engine=db_engine,
    )
