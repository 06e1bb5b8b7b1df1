"""SQLAlchemy-backed execution ledger (``execution_records`` table)."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import DateTime, Index, Integer, String, Text, func, select, update
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from flowsmith.db import Base, JSONType, OwnerScoped
from flowsmith.errors import InvalidTransitionError
from flowsmith.ledger.base import (
    ORDER_STARTED_ASC,
    ExecutionLedger,
    LedgerQueryFilters,
    LedgerStats,
)
from flowsmith.models import ErrorKind, ExecutionRecord, ExecutionStatus, ensure_utc

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExecutionRecordModel(OwnerScoped, Base):
    """Single automation firing attempt (audit and analytics)."""

    __tablename__ = "execution_records"
    __table_args__ = (
        Index("idx_exec_owner_started", "owner_id", "started_at"),
        Index("idx_exec_owner_status", "owner_id", "status"),
        Index("idx_exec_automation", "automation_id", "started_at"),
        {"comment": "Append-only execution records of automations"},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    automation_id: Mapped[str] = mapped_column(String(36), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_kind: Mapped[str | None] = mapped_column(String(16), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    trigger_payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    action_result: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    # "metadata" is reserved on declarative classes.
    record_metadata: Mapped[dict[str, Any]] = mapped_column("metadata", JSONType, nullable=False)


def _to_domain(row: ExecutionRecordModel) -> ExecutionRecord:
    return ExecutionRecord(
        id=row.id,
        automation_id=row.automation_id,
        owner_id=row.owner_id,
        status=ExecutionStatus(row.status),
        started_at=ensure_utc(row.started_at),
        completed_at=None if row.completed_at is None else ensure_utc(row.completed_at),
        duration_ms=row.duration_ms,
        error_kind=None if row.error_kind is None else ErrorKind(row.error_kind),
        error_message=row.error_message,
        trigger_payload=dict(row.trigger_payload or {}),
        action_result=row.action_result,
        metadata=dict(row.record_metadata or {}),
    )


class SqlLedger(ExecutionLedger):
    """Ledger writing each record through its own short transaction.

    Writes that hit an OperationalError are retried with exponential backoff.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        write_max_retries: int = 3,
        write_backoff_base_seconds: float = 0.1,
    ) -> None:
        if isinstance(write_max_retries, bool) or not isinstance(write_max_retries, int) or write_max_retries < 1:
            raise ValueError("write_max_retries must be a positive integer")
        self._session_factory = session_factory
        self._write_max_retries = write_max_retries
        self._write_backoff_base_seconds = float(write_backoff_base_seconds)

    async def _with_retries(self, op: Callable[[], Awaitable[T]], description: str) -> T:
        for attempt in range(1, self._write_max_retries + 1):
            try:
                return await op()
            except OperationalError as e:
                if attempt >= self._write_max_retries:
                    logger.exception("Ledger %s failed after %d attempts: %s", description, attempt, e)
                    raise
                delay = self._write_backoff_base_seconds * (2 ** (attempt - 1))
                logger.warning(
                    "Ledger %s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description,
                    attempt,
                    self._write_max_retries,
                    delay,
                    e,
                )
                await asyncio.sleep(delay)
        raise RuntimeError("unreachable")

    async def append(self, record: ExecutionRecord) -> None:
        async def _insert() -> None:
            async with self._session_factory() as session:
                session.add(
                    ExecutionRecordModel(
                        id=record.id,
                        automation_id=record.automation_id,
                        owner_id=record.owner_id,
                        status=record.status.value,
                        started_at=ensure_utc(record.started_at),
                        completed_at=None if record.completed_at is None else ensure_utc(record.completed_at),
                        duration_ms=record.duration_ms,
                        error_kind=None if record.error_kind is None else record.error_kind.value,
                        error_message=record.error_message,
                        trigger_payload=dict(record.trigger_payload),
                        action_result=record.action_result,
                        record_metadata=dict(record.metadata),
                    )
                )
                await session.commit()

        await self._with_retries(_insert, "append")

    async def complete(self, record: ExecutionRecord) -> None:
        if not record.status.is_terminal:
            raise InvalidTransitionError(record.id, record.status.value)
        stmt = (
            update(ExecutionRecordModel)
            .where(ExecutionRecordModel.id == record.id)
            .where(ExecutionRecordModel.status == ExecutionStatus.PENDING.value)
            .values(
                status=record.status.value,
                completed_at=None if record.completed_at is None else ensure_utc(record.completed_at),
                duration_ms=record.duration_ms,
                error_kind=None if record.error_kind is None else record.error_kind.value,
                error_message=record.error_message,
                action_result=record.action_result,
            )
            .values({ExecutionRecordModel.record_metadata: dict(record.metadata)})
            .execution_options(synchronize_session=False)
        )

        async def _update() -> int:
            async with self._session_factory() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result.rowcount

        if await self._with_retries(_update, "complete") == 1:
            return
        current = await self.get(record.id)
        raise InvalidTransitionError(record.id, "missing" if current is None else current.status.value)

    async def get(self, execution_id: str) -> ExecutionRecord | None:
        async with self._session_factory() as session:
            row = await session.get(ExecutionRecordModel, execution_id)
            return None if row is None else _to_domain(row)

    async def query(self, owner_id: str, filters: LedgerQueryFilters) -> list[ExecutionRecord]:
        """Query execution records with optional filters."""
        stmt = select(ExecutionRecordModel).where(ExecutionRecordModel.owner_id == owner_id)
        if filters.automation_id is not None:
            stmt = stmt.where(ExecutionRecordModel.automation_id == filters.automation_id)
        if filters.status is not None:
            stmt = stmt.where(ExecutionRecordModel.status == ExecutionStatus(filters.status).value)
        if filters.start is not None:
            stmt = stmt.where(ExecutionRecordModel.started_at >= ensure_utc(filters.start))
        if filters.end is not None:
            stmt = stmt.where(ExecutionRecordModel.started_at < ensure_utc(filters.end))
        if filters.order_by == ORDER_STARTED_ASC:
            stmt = stmt.order_by(ExecutionRecordModel.started_at.asc())
        elif filters.order_by is not None:
            stmt = stmt.order_by(ExecutionRecordModel.started_at.desc())
        if filters.offset is not None:
            stmt = stmt.offset(filters.offset)
        if filters.limit is not None:
            stmt = stmt.limit(filters.limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def stats(self, owner_id: str, day_start: datetime, day_end: datetime) -> LedgerStats:
        by_status_stmt = (
            select(ExecutionRecordModel.status, func.count(ExecutionRecordModel.id))
            .where(ExecutionRecordModel.owner_id == owner_id)
            .group_by(ExecutionRecordModel.status)
        )
        today_stmt = (
            select(func.count(ExecutionRecordModel.id))
            .where(ExecutionRecordModel.owner_id == owner_id)
            .where(ExecutionRecordModel.status == ExecutionStatus.SUCCESS.value)
            .where(ExecutionRecordModel.started_at >= ensure_utc(day_start))
            .where(ExecutionRecordModel.started_at < ensure_utc(day_end))
        )
        avg_stmt = (
            select(func.avg(ExecutionRecordModel.duration_ms))
            .where(ExecutionRecordModel.owner_id == owner_id)
            .where(ExecutionRecordModel.status == ExecutionStatus.SUCCESS.value)
        )
        async with self._session_factory() as session:
            by_status = {str(status): int(count) for status, count in (await session.execute(by_status_stmt)).all()}
            completed_today = (await session.execute(today_stmt)).scalar_one()
            average = (await session.execute(avg_stmt)).scalar_one()
        return LedgerStats(
            successes=by_status.get(ExecutionStatus.SUCCESS.value, 0),
            failures=by_status.get(ExecutionStatus.FAILURE.value, 0),
            cancelled=by_status.get(ExecutionStatus.CANCELLED.value, 0),
            pending=by_status.get(ExecutionStatus.PENDING.value, 0),
            completed_today=int(completed_today or 0),
            average_success_ms=float(average) if average is not None else 0.0,
        )
