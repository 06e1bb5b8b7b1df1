"""Ledger contract: append-only store of ExecutionRecords."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from flowsmith.models import ExecutionRecord, ExecutionStatus

ORDER_STARTED_DESC = "started_at DESC"
ORDER_STARTED_ASC = "started_at ASC"


@dataclass
class LedgerQueryFilters:
    """Filters for querying execution records."""

    automation_id: str | None = None
    status: ExecutionStatus | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None
    offset: int | None = None
    order_by: str | None = ORDER_STARTED_DESC


@dataclass
class LedgerStats:
    """Per-owner counters computed over the ledger."""

    successes: int = 0
    failures: int = 0
    cancelled: int = 0
    pending: int = 0
    completed_today: int = 0
    average_success_ms: float = 0.0


class ExecutionLedger(ABC):
    """Append-only record store; a record leaves ``pending`` exactly once."""

    @abstractmethod
    async def append(self, record: ExecutionRecord) -> None:
        """Store a new record (normally ``pending``)."""

    @abstractmethod
    async def complete(self, record: ExecutionRecord) -> None:
        """Replace a pending record by its terminal version.

        Raises InvalidTransitionError when the stored record is missing or
        already terminal, or when *record* is not terminal.
        """

    @abstractmethod
    async def get(self, execution_id: str) -> ExecutionRecord | None:
        ...

    @abstractmethod
    async def query(self, owner_id: str, filters: LedgerQueryFilters) -> list[ExecutionRecord]:
        ...

    @abstractmethod
    async def stats(self, owner_id: str, day_start: datetime, day_end: datetime) -> LedgerStats:
        """Counters for *owner_id*; ``completed_today`` counts successes with
        ``day_start <= started_at < day_end``."""
