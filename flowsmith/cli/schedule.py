"""Cron preview command."""

from __future__ import annotations

from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from flowsmith.errors import InvalidScheduleError
from flowsmith.models import ensure_utc, utcnow
from flowsmith.triggers.schedule import compute_next_run

console = Console()


def next_runs(expression: str, tz: str, count: int, start: datetime) -> list[datetime]:
    runs: list[datetime] = []
    cursor = start
    for _ in range(count):
        cursor = compute_next_run(expression, tz, cursor)
        runs.append(cursor)
    return runs


def next_run_command(expression: str, *, tz: str = "UTC", count: int = 5, from_: str = "") -> list[datetime]:
    """Print the next *count* fire times of a cron expression (UTC)."""
    if count < 1:
        raise typer.BadParameter("count must be >= 1.")
    try:
        start = ensure_utc(datetime.fromisoformat(from_)) if from_ else utcnow()
    except ValueError as exc:
        raise typer.BadParameter(f"--from must be an ISO-8601 datetime: {from_}") from exc
    try:
        runs = next_runs(expression, tz, count, start)
    except InvalidScheduleError as exc:
        raise typer.BadParameter(str(exc)) from exc

    table = Table(title=f"{expression} ({tz})")
    table.add_column("#", justify="right")
    table.add_column("UTC")
    for index, run in enumerate(runs, start=1):
        table.add_row(str(index), run.isoformat())
    console.print(table)
    return runs
