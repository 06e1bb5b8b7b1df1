"""Ledger and metrics CLI command helpers."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import typer
from sqlalchemy.ext.asyncio import AsyncEngine

from flowsmith.db import create_engine, create_session_factory, get_engine
from flowsmith.ledger.base import ORDER_STARTED_ASC, ORDER_STARTED_DESC, LedgerQueryFilters
from flowsmith.ledger.sql import SqlLedger
from flowsmith.metrics.aggregator import MetricsAggregator
from flowsmith.models import ExecutionStatus
from flowsmith.registry.sql import SqlAutomationRegistry


def _normalize_text(value: str) -> str:
    return value.strip()


def _engine_for(database_url: str) -> AsyncEngine:
    return create_engine(database_url) if database_url else get_engine()


async def _query_impl(
    *,
    owner: str,
    automation_id: str,
    status: str,
    limit: int,
    order_desc: bool,
    database_url: str,
) -> list[dict[str, Any]]:
    engine = _engine_for(database_url)
    try:
        ledger = SqlLedger(create_session_factory(engine))
        filters = LedgerQueryFilters(
            automation_id=automation_id or None,
            status=ExecutionStatus(status) if status else None,
            limit=limit,
            order_by=ORDER_STARTED_DESC if order_desc else ORDER_STARTED_ASC,
        )
        records = await ledger.query(owner, filters)
        return [record.to_dict() for record in records]
    finally:
        await engine.dispose()


def query_command(
    *,
    owner: str,
    automation_id: str = "",
    status: str = "",
    limit: int = 20,
    order_desc: bool = True,
    database_url: str = "",
) -> list[dict[str, Any]]:
    normalized_owner = _normalize_text(owner)
    if not normalized_owner:
        raise typer.BadParameter("owner must not be empty.")
    if limit < 1:
        raise typer.BadParameter("limit must be >= 1.")
    normalized_status = _normalize_text(status).lower()
    if normalized_status and normalized_status not in {s.value for s in ExecutionStatus}:
        raise typer.BadParameter(f"status must be one of: {', '.join(s.value for s in ExecutionStatus)}")

    rows = asyncio.run(
        _query_impl(
            owner=normalized_owner,
            automation_id=_normalize_text(automation_id),
            status=normalized_status,
            limit=limit,
            order_desc=order_desc,
            database_url=_normalize_text(database_url),
        )
    )
    typer.echo(json.dumps(rows, ensure_ascii=False, indent=2))
    return rows


async def _metrics_impl(
    *,
    owner: str,
    database_url: str,
    recent_limit: int,
    minutes_saved_per_success: float,
) -> dict[str, Any]:
    engine = _engine_for(database_url)
    try:
        session_factory = create_session_factory(engine)
        aggregator = MetricsAggregator(
            SqlAutomationRegistry(session_factory),
            SqlLedger(session_factory),
            recent_executions_limit=recent_limit,
            minutes_saved_per_success=minutes_saved_per_success,
        )
        metrics = await aggregator.get_metrics(owner)
        return metrics.to_dict()
    finally:
        await engine.dispose()


def metrics_command(
    *,
    owner: str,
    database_url: str = "",
    recent_limit: int = 10,
    minutes_saved_per_success: float = 5.0,
) -> dict[str, Any]:
    normalized_owner = _normalize_text(owner)
    if not normalized_owner:
        raise typer.BadParameter("owner must not be empty.")
    if recent_limit < 1:
        raise typer.BadParameter("recent limit must be >= 1.")
    result = asyncio.run(
        _metrics_impl(
            owner=normalized_owner,
            database_url=_normalize_text(database_url),
            recent_limit=recent_limit,
            minutes_saved_per_success=minutes_saved_per_success,
        )
    )
    typer.echo(json.dumps(result, ensure_ascii=False, indent=2))
    return result
