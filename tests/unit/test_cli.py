"""CLI tests using Typer's CliRunner."""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from pathlib import Path

import yaml
from typer.testing import CliRunner

from conftest import T0, build_automation
from flowsmith.cli import app
from flowsmith.db import create_all, create_engine, create_session_factory
from flowsmith.ledger.sql import SqlLedger
from flowsmith.models import AutomationCategory, ExecutionRecord, ExecutionStatus
from flowsmith.registry.sql import SqlAutomationRegistry

runner = CliRunner()


def _seed(url: str) -> list[str]:
    async def _run() -> list[str]:
        engine = create_engine(url)
        await create_all(engine)
        factory = create_session_factory(engine)
        registry = SqlAutomationRegistry(factory)
        ledger = SqlLedger(factory)
        automation = build_automation(category=AutomationCategory.SUPPORT)
        await registry.save(automation)
        ids = []
        for minutes, status in ((0, ExecutionStatus.SUCCESS), (1, ExecutionStatus.FAILURE), (2, ExecutionStatus.SUCCESS)):
            record = ExecutionRecord.open(automation, {}, started_at=T0 + timedelta(minutes=minutes))
            await ledger.append(record)
            await ledger.complete(record.finalize(status, completed_at=record.started_at, duration_ms=10))
            ids.append(record.id)
        await engine.dispose()
        return ids

    return asyncio.run(_run())


def test_version_flag() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.stdout.startswith("flowsmith ")


def test_init_writes_config_and_refuses_overwrite(tmp_path: Path) -> None:
    result = runner.invoke(app, ["init", "--path", str(tmp_path)])
    assert result.exit_code == 0
    data = yaml.safe_load((tmp_path / "flowsmith.yaml").read_text(encoding="utf-8"))
    assert data["execution"]["retry"]["max_retries"] == 3

    again = runner.invoke(app, ["init", "--path", str(tmp_path)])
    assert again.exit_code == 1
    assert runner.invoke(app, ["init", "--path", str(tmp_path), "--force"]).exit_code == 0


def test_reload_reports_changes(tmp_path: Path) -> None:
    cfg = tmp_path / "flowsmith.yaml"
    cfg.write_text("scheduler:\n  tick_interval_seconds: 5\n", encoding="utf-8")
    result = runner.invoke(app, ["reload", "--config", str(cfg)])
    assert result.exit_code == 0
    assert "scheduler.tick_interval_seconds" in result.stdout


def test_next_run_prints_fire_times() -> None:
    result = runner.invoke(app, ["next-run", "*/15 * * * *", "--count", "2", "--from", T0.isoformat()])
    assert result.exit_code == 0
    assert (T0 + timedelta(minutes=15)).isoformat() in result.stdout
    assert (T0 + timedelta(minutes=30)).isoformat() in result.stdout


def test_next_run_rejects_bad_input() -> None:
    assert runner.invoke(app, ["next-run", "not cron"]).exit_code == 2
    assert runner.invoke(app, ["next-run", "* * * * *", "--tz", "Nowhere/City"]).exit_code == 2
    assert runner.invoke(app, ["next-run", "* * * * *", "--from", "yesterday"]).exit_code == 2


def test_ledger_and_metrics_read_sqlite(tmp_path: Path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    ids = _seed(url)

    result = runner.invoke(app, ["ledger", "owner-1", "--database-url", url, "--limit", "2"])
    assert result.exit_code == 0
    rows = json.loads(result.stdout)
    assert [row["id"] for row in rows] == [ids[2], ids[1]]

    failures = runner.invoke(app, ["ledger", "owner-1", "--database-url", url, "--status", "failure", "--asc"])
    assert [row["id"] for row in json.loads(failures.stdout)] == [ids[1]]

    metrics = runner.invoke(app, ["metrics", "owner-1", "--database-url", url, "--recent", "1"])
    assert metrics.exit_code == 0
    payload = json.loads(metrics.stdout)
    assert payload["total_automations"] == 1
    assert payload["success_rate"] == 2 / 3
    assert payload["category_breakdown"] == {"support": 1}
    assert payload["estimated_time_saved_minutes"] == 10.0
    assert len(payload["recent_executions"]) == 1


def test_ledger_rejects_unknown_status(tmp_path: Path) -> None:
    url = f"sqlite+aiosqlite:///{tmp_path / 'cli.db'}"
    result = runner.invoke(app, ["ledger", "owner-1", "--database-url", url, "--status", "exploded"])
    assert result.exit_code == 2
