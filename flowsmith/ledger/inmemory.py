"""In-memory execution ledger for local runs and tests."""

from __future__ import annotations

import asyncio
from datetime import datetime

from flowsmith.errors import InvalidTransitionError
from flowsmith.ledger.base import (
    ORDER_STARTED_ASC,
    ExecutionLedger,
    LedgerQueryFilters,
    LedgerStats,
)
from flowsmith.models import ExecutionRecord, ExecutionStatus, ensure_utc


class InMemoryLedger(ExecutionLedger):
    """Stores records in process memory; records are never removed."""

    def __init__(self) -> None:
        self._records: dict[str, ExecutionRecord] = {}
        self._lock = asyncio.Lock()

    async def append(self, record: ExecutionRecord) -> None:
        async with self._lock:
            if record.id in self._records:
                raise ValueError(f"execution record '{record.id}' already exists")
            self._records[record.id] = record

    async def complete(self, record: ExecutionRecord) -> None:
        async with self._lock:
            current = self._records.get(record.id)
            if current is None:
                raise InvalidTransitionError(record.id, "missing")
            if current.status.is_terminal or not record.status.is_terminal:
                raise InvalidTransitionError(record.id, current.status.value)
            self._records[record.id] = record

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        async with self._lock:
            return self._records.get(execution_id)

    async def query(self, owner_id: str, filters: LedgerQueryFilters) -> list[ExecutionRecord]:
        async with self._lock:
            rows = [r for r in self._records.values() if r.owner_id == owner_id]
        if filters.automation_id is not None:
            rows = [r for r in rows if r.automation_id == filters.automation_id]
        if filters.status is not None:
            status = ExecutionStatus(filters.status)
            rows = [r for r in rows if r.status is status]
        if filters.start is not None:
            start = ensure_utc(filters.start)
            rows = [r for r in rows if ensure_utc(r.started_at) >= start]
        if filters.end is not None:
            end = ensure_utc(filters.end)
            rows = [r for r in rows if ensure_utc(r.started_at) < end]
        if filters.order_by is not None:
            rows.sort(
                key=lambda r: ensure_utc(r.started_at),
                reverse=filters.order_by != ORDER_STARTED_ASC,
            )
        if filters.offset:
            rows = rows[filters.offset :]
        if filters.limit is not None:
            rows = rows[: filters.limit]
        return rows

    async def stats(self, owner_id: str, day_start: datetime, day_end: datetime) -> LedgerStats:
        start = ensure_utc(day_start)
        end = ensure_utc(day_end)
        async with self._lock:
            rows = [r for r in self._records.values() if r.owner_id == owner_id]
        stats = LedgerStats()
        success_durations: list[int] = []
        for record in rows:
            if record.status is ExecutionStatus.SUCCESS:
                stats.successes += 1
                if record.duration_ms is not None:
                    success_durations.append(record.duration_ms)
                if start <= ensure_utc(record.started_at) < end:
                    stats.completed_today += 1
            elif record.status is ExecutionStatus.FAILURE:
                stats.failures += 1
            elif record.status is ExecutionStatus.CANCELLED:
                stats.cancelled += 1
            else:
                stats.pending += 1
        if success_durations:
            stats.average_success_ms = sum(success_durations) / len(success_durations)
        return stats
