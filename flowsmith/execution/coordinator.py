"""Execution coordinator: leased, retried, ledgered execution of automations.

``submit`` returns as soon as the pending ExecutionRecord is written; the
action itself runs in a background task that owns the lease until the
record is finalized and the registry aggregates are updated.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from flowsmith.actions.executor import ActionExecutor, ActionResult
from flowsmith.config.models import ExecutionConfig
from flowsmith.errors import BusyError, LeaseError
from flowsmith.execution.lease import Lease, LeaseStore
from flowsmith.execution.retry import RetryPolicy
from flowsmith.ledger.base import ExecutionLedger
from flowsmith.models import (
    AggregateDelta,
    Automation,
    ErrorKind,
    ExecutionRecord,
    ExecutionStatus,
    utcnow,
)
from flowsmith.registry.base import AutomationRegistry

if TYPE_CHECKING:
    from flowsmith.metrics.prometheus import EngineMetrics

logger = logging.getLogger(__name__)


class SubmitStatus(str, Enum):
    ACCEPTED = "accepted"
    BUSY = "busy"
    NOT_FOUND = "not_found"
    INACTIVE = "inactive"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True, slots=True)
class SubmitOutcome:
    status: SubmitStatus
    automation_id: str
    execution_id: str | None = None
    reason: str | None = None

    @property
    def accepted(self) -> bool:
        return self.status is SubmitStatus.ACCEPTED


class ExecutionLogger:
    """Structured-style logging helper based on stdlib logging."""

    def log_accepted(self, automation_id: str, execution_id: str, source: str) -> None:
        logger.info(
            "execution_accepted automation_id=%s execution_id=%s source=%s",
            automation_id,
            execution_id,
            source,
        )

    def log_rejected(self, automation_id: str, status: SubmitStatus, source: str) -> None:
        logger.info("execution_rejected automation_id=%s status=%s source=%s", automation_id, status.value, source)

    def log_busy(self, error: BusyError, source: str) -> None:
        logger.warning("execution_busy automation_id=%s source=%s", error.automation_id, source)

    def log_retry(self, execution_id: str, attempt: int, error_kind: ErrorKind | None, delay: float) -> None:
        logger.warning(
            "execution_retry execution_id=%s attempt=%d error_kind=%s delay_seconds=%.3f",
            execution_id,
            attempt,
            None if error_kind is None else error_kind.value,
            delay,
        )

    def log_complete(self, record: ExecutionRecord) -> None:
        log = logger.info if record.status is ExecutionStatus.SUCCESS else logger.warning
        log(
            "execution_complete automation_id=%s execution_id=%s status=%s duration_ms=%s error_kind=%s",
            record.automation_id,
            record.id,
            record.status.value,
            record.duration_ms,
            None if record.error_kind is None else record.error_kind.value,
        )

    def log_persist_failed(self, execution_id: str, step: str, error: Exception) -> None:
        logger.error("execution_persist_failed execution_id=%s step=%s error=%s", execution_id, step, error)


class ExecutionCoordinator:
    """Owns the lifecycle of one firing per automation at a time."""

    def __init__(
        self,
        registry: AutomationRegistry,
        ledger: ExecutionLedger,
        executor: ActionExecutor,
        lease_store: LeaseStore,
        *,
        config: ExecutionConfig | None = None,
        clock: Callable[[], datetime] = utcnow,
        sleeper: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        metrics: EngineMetrics | None = None,
    ) -> None:
        self._registry = registry
        self._ledger = ledger
        self._executor = executor
        self._leases = lease_store
        self._clock = clock
        self._sleeper = sleeper
        self._metrics = metrics
        self._log = ExecutionLogger()
        self._tasks: set[asyncio.Task[ExecutionRecord]] = set()
        self._pending: dict[str, tuple[Automation, ExecutionRecord, Lease]] = {}
        self.update_config(config or ExecutionConfig())

    def update_config(self, config: ExecutionConfig) -> None:
        """Swap timeout and retry settings for later submissions.

        In-flight executions keep the policy their lease was sized for.
        """
        self._config = config
        self._retry = RetryPolicy.from_config(config.retry)

    def lease_ttl_seconds(self, timeout: float, policy: RetryPolicy | None = None) -> float:
        """TTL covering every attempt, every backoff and the grace margin."""
        policy = policy or self._retry
        attempts = policy.max_retries + 1
        return timeout * attempts + policy.total_backoff_seconds() + self._config.lease_grace_seconds

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    def pending_records(self) -> list[ExecutionRecord]:
        return [record for _, record, _ in self._pending.values()]

    async def submit(
        self,
        automation_id: str,
        payload: dict[str, Any],
        *,
        source: str = "event",
        metadata: dict[str, Any] | None = None,
    ) -> SubmitOutcome:
        """Start one execution; never raises for execution-time failures."""
        automation = await self._registry.load(automation_id)
        if automation is None:
            self._log.log_rejected(automation_id, SubmitStatus.NOT_FOUND, source)
            return SubmitOutcome(SubmitStatus.NOT_FOUND, automation_id, reason="automation not found")
        if not automation.is_active:
            self._log.log_rejected(automation_id, SubmitStatus.INACTIVE, source)
            return SubmitOutcome(SubmitStatus.INACTIVE, automation_id, reason=f"status is {automation.status.value}")

        config = self._config
        policy = self._retry
        timeout = config.timeout_for(automation.action_type.value)
        try:
            lease = await self._leases.acquire(automation.id, self.lease_ttl_seconds(timeout, policy))
        except LeaseError as exc:
            logger.error("execution_lease_unavailable automation_id=%s error=%s", automation.id, exc)
            return SubmitOutcome(SubmitStatus.UNAVAILABLE, automation.id, reason=str(exc))
        if lease is None:
            busy = BusyError(automation.id)
            self._log.log_busy(busy, source)
            if self._metrics is not None:
                self._metrics.record_busy(source)
            return SubmitOutcome(SubmitStatus.BUSY, automation.id, reason=str(busy))

        record = ExecutionRecord.open(
            automation,
            payload,
            started_at=self._clock(),
            metadata={
                "source": source,
                "action_type": automation.action_type.value,
                **(metadata or {}),
            },
        )
        try:
            await self._ledger.append(record)
        except Exception as exc:
            logger.exception("execution_append_failed automation_id=%s error=%s", automation.id, exc)
            await self._release(lease)
            return SubmitOutcome(SubmitStatus.UNAVAILABLE, automation.id, reason="ledger unavailable")

        self._pending[record.id] = (automation, record, lease)
        if self._metrics is not None:
            self._metrics.execution_started()
        task = asyncio.create_task(
            self._run(automation, record, lease, timeout, policy),
            name=f"flowsmith-execution-{record.id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._log.log_accepted(automation.id, record.id, source)
        return SubmitOutcome(SubmitStatus.ACCEPTED, automation.id, execution_id=record.id)

    async def _attempts(
        self,
        automation: Automation,
        record: ExecutionRecord,
        timeout: float,
        policy: RetryPolicy,
    ) -> tuple[ActionResult, int]:
        attempt = 0
        while True:
            attempt += 1
            context = {
                "owner_id": automation.owner_id,
                "automation_id": automation.id,
                "automation_name": automation.name,
                "execution_id": record.id,
                "attempt": attempt,
            }
            try:
                result = await self._executor.execute(
                    automation.action_type,
                    automation.action_config,
                    record.trigger_payload,
                    context,
                    timeout=timeout,
                )
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.exception("execution_internal_error execution_id=%s error=%s", record.id, exc)
                result = ActionResult.failure(ErrorKind.INTERNAL, str(exc) or type(exc).__name__)
            if result.ok or not policy.should_retry(result.error_kind, attempt):
                return result, attempt
            delay = policy.delay_seconds(attempt)
            self._log.log_retry(record.id, attempt, result.error_kind, delay)
            await self._sleeper(delay)

    async def _run(
        self,
        automation: Automation,
        record: ExecutionRecord,
        lease: Lease,
        timeout: float,
        policy: RetryPolicy,
    ) -> ExecutionRecord:
        started = time.monotonic()
        cancelled = False
        attempts = 0
        try:
            result, attempts = await self._attempts(automation, record, timeout, policy)
        except asyncio.CancelledError:
            cancelled = True
            result = ActionResult.failure(ErrorKind.CANCELLED, "execution cancelled")

        if cancelled:
            status = ExecutionStatus.CANCELLED
        elif result.ok:
            status = ExecutionStatus.SUCCESS
        else:
            status = ExecutionStatus.FAILURE
        final = record.finalize(
            status,
            completed_at=self._clock(),
            duration_ms=int((time.monotonic() - started) * 1000),
            error_kind=None if result.ok else result.error_kind,
            error_message=None if result.ok else result.error_message,
            action_result=result.to_dict() if result.ok or result.data else None,
            metadata={"attempts": attempts},
        )
        try:
            await self._settle(automation, final, lease)
        finally:
            self._pending.pop(record.id, None)
        if cancelled:
            raise asyncio.CancelledError()
        return final

    async def _settle(self, automation: Automation, final: ExecutionRecord, lease: Lease) -> None:
        try:
            try:
                await self._ledger.complete(final)
            except Exception as exc:
                self._log.log_persist_failed(final.id, "ledger", exc)
            try:
                await self._registry.update_aggregates(
                    automation.id,
                    AggregateDelta.for_status(final.status, final.started_at),
                )
            except Exception as exc:
                self._log.log_persist_failed(final.id, "aggregates", exc)
        finally:
            await self._release(lease)
            if self._metrics is not None:
                self._metrics.execution_finished()
                self._metrics.record_execution(
                    automation.action_type.value,
                    final.status.value,
                    None if final.duration_ms is None else final.duration_ms / 1000.0,
                )
        self._log.log_complete(final)

    async def _release(self, lease: Lease) -> None:
        try:
            if not await self._leases.release(lease):
                logger.warning("execution_lease_lost automation_id=%s", lease.automation_id)
        except LeaseError as exc:
            logger.error("execution_lease_release_failed automation_id=%s error=%s", lease.automation_id, exc)

    async def drain(self, timeout: float | None = None) -> bool:
        """Wait for in-flight executions; return False if *timeout* elapsed first."""
        tasks = set(self._tasks)
        if not tasks:
            return True
        _, still_running = await asyncio.wait(tasks, timeout=timeout)
        return not still_running

    async def shutdown(self) -> None:
        """Cancel in-flight executions; each is finalized as ``cancelled``."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        # Tasks cancelled before their first step never reached _run.
        for automation, record, lease in list(self._pending.values()):
            final = record.finalize(
                ExecutionStatus.CANCELLED,
                completed_at=self._clock(),
                duration_ms=0,
                error_kind=ErrorKind.CANCELLED,
                error_message="execution cancelled",
                metadata={"attempts": 0},
            )
            try:
                await self._settle(automation, final, lease)
            finally:
                self._pending.pop(record.id, None)
