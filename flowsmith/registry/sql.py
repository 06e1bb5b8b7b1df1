"""SQLAlchemy-backed automation registry.

Aggregate updates and ``next_run`` advancement are single conditional
UPDATE statements so concurrent engine processes never lose increments.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy import Boolean, CheckConstraint, DateTime, Index, Integer, String, Text, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import Mapped, mapped_column

from flowsmith.db import Base, JSONType, OwnerScoped
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


class AutomationModel(OwnerScoped, Base):
    """Automation definition plus engine-maintained aggregates."""

    __tablename__ = "automations"
    __table_args__ = (
        Index("idx_automations_owner_active", "owner_id", "is_active"),
        Index("idx_automations_schedule_due", "trigger_type", "is_active", "next_run"),
        CheckConstraint("NOT is_active OR status = 'active'", name="ck_automations_active_status"),
        {"comment": "Owner-defined trigger-to-action rules"},
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default="general")

    trigger_type: Mapped[str] = mapped_column(String(32), nullable=False)
    trigger_config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    action_type: Mapped[str] = mapped_column(String(32), nullable=False)
    action_config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)

    status: Mapped[str] = mapped_column(String(16), nullable=False, default="draft")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    invalid_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    last_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_run: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    execution_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    cancelled_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


def _optional_utc(value: datetime | None) -> datetime | None:
    return None if value is None else ensure_utc(value)


def _to_domain(row: AutomationModel) -> Automation:
    return Automation(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name,
        description=row.description,
        category=row.category,
        trigger_type=row.trigger_type,
        trigger_config=dict(row.trigger_config or {}),
        action_type=row.action_type,
        action_config=dict(row.action_config or {}),
        status=row.status,
        is_active=row.is_active,
        invalid_reason=row.invalid_reason,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        last_run=_optional_utc(row.last_run),
        next_run=_optional_utc(row.next_run),
        execution_count=row.execution_count,
        success_count=row.success_count,
        failure_count=row.failure_count,
        cancelled_count=row.cancelled_count,
    )


def _to_row_values(automation: Automation) -> dict[str, Any]:
    return {
        "id": automation.id,
        "owner_id": automation.owner_id,
        "name": automation.name,
        "description": automation.description,
        "category": automation.category.value,
        "trigger_type": automation.trigger_type.value,
        "trigger_config": dict(automation.trigger_config),
        "action_type": automation.action_type.value,
        "action_config": dict(automation.action_config),
        "status": automation.status.value,
        "is_active": automation.is_active,
        "invalid_reason": automation.invalid_reason,
        "created_at": ensure_utc(automation.created_at),
        "updated_at": ensure_utc(automation.updated_at),
        "last_run": _optional_utc(automation.last_run),
        "next_run": _optional_utc(automation.next_run),
        "execution_count": automation.execution_count,
        "success_count": automation.success_count,
        "failure_count": automation.failure_count,
        "cancelled_count": automation.cancelled_count,
    }


class SqlAutomationRegistry(AutomationRegistry):
    """Registry stored in the ``automations`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self, automation_id: str) -> Automation | None:
        async with self._session_factory() as session:
            row = await session.get(AutomationModel, automation_id)
            return None if row is None else _to_domain(row)

    async def list_active(
        self,
        owner_id: str | None = None,
        trigger_type: TriggerType | None = None,
    ) -> list[Automation]:
        stmt = select(AutomationModel).where(AutomationModel.is_active.is_(True))
        if owner_id is not None:
            stmt = stmt.where(AutomationModel.owner_id == owner_id)
        if trigger_type is not None:
            stmt = stmt.where(AutomationModel.trigger_type == TriggerType(trigger_type).value)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def list_for_owner(self, owner_id: str) -> list[Automation]:
        stmt = (
            select(AutomationModel)
            .where(AutomationModel.owner_id == owner_id)
            .order_by(AutomationModel.created_at.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def list_due_for_schedule(self, now: datetime) -> list[Automation]:
        stmt = (
            select(AutomationModel)
            .where(AutomationModel.is_active.is_(True))
            .where(AutomationModel.trigger_type == TriggerType.CUSTOM_SCHEDULE.value)
            .where(AutomationModel.next_run.is_not(None))
            .where(AutomationModel.next_run <= ensure_utc(now))
            .order_by(AutomationModel.next_run.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def update_aggregates(self, automation_id: str, delta: AggregateDelta) -> None:
        stmt = (
            update(AutomationModel)
            .where(AutomationModel.id == automation_id)
            .values(
                execution_count=AutomationModel.execution_count + delta.executions,
                success_count=AutomationModel.success_count + delta.successes,
                failure_count=AutomationModel.failure_count + delta.failures,
                cancelled_count=AutomationModel.cancelled_count + delta.cancelled,
                last_run=ensure_utc(delta.last_run),
            )
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()
        if result.rowcount == 0:
            logger.warning("registry_aggregate_missing automation_id=%s", automation_id)

    async def compare_and_swap_next_run(
        self,
        automation_id: str,
        expected_prev: datetime | None,
        new_next: datetime | None,
    ) -> bool:
        stmt = (
            update(AutomationModel)
            .where(AutomationModel.id == automation_id)
            .where(AutomationModel.is_active.is_(True))
        )
        if expected_prev is None:
            stmt = stmt.where(AutomationModel.next_run.is_(None))
        else:
            stmt = stmt.where(AutomationModel.next_run == ensure_utc(expected_prev))
        stmt = stmt.values(next_run=_optional_utc(new_next))
        async with self._session_factory() as session:
            result = await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()
        return result.rowcount == 1

    async def mark_invalid(self, automation_id: str, reason: str) -> None:
        stmt = (
            update(AutomationModel)
            .where(AutomationModel.id == automation_id)
            .values(
                status=AutomationStatus.INVALID.value,
                is_active=False,
                next_run=None,
                invalid_reason=reason,
                updated_at=utcnow(),
            )
        )
        async with self._session_factory() as session:
            await session.execute(stmt.execution_options(synchronize_session=False))
            await session.commit()

    async def save(self, automation: Automation) -> Automation:
        values = _to_row_values(automation)
        async with self._session_factory() as session:
            row = await session.get(AutomationModel, automation.id)
            if row is None:
                session.add(AutomationModel(**values))
            else:
                for key, value in values.items():
                    setattr(row, key, value)
            await session.commit()
        return automation
