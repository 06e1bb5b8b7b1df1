"""Unit tests for EngineMetrics."""

from __future__ import annotations

from prometheus_client import CollectorRegistry

from flowsmith.metrics.prometheus import EngineMetrics


def test_instances_use_private_registries() -> None:
    first = EngineMetrics()
    second = EngineMetrics()
    first.record_busy("event")
    assert first.busy_drops == 1
    assert second.busy_drops == 0
    assert first.registry is not second.registry


def test_counters_are_exported() -> None:
    metrics = EngineMetrics(CollectorRegistry())
    metrics.execution_started()
    metrics.record_execution("send_email", "success", 0.25)
    metrics.execution_finished()
    metrics.record_dedupe_hit("stripe")
    metrics.record_dispatch("new_lead", 2)
    metrics.record_tick(fired=1, skipped=0, invalid=1)

    assert metrics.execution_counts == {("send_email", "success"): 1}
    assert metrics.in_flight == 0
    registry = metrics.registry
    assert registry.get_sample_value(
        "flowsmith_executions_total", {"action_type": "send_email", "status": "success"}
    ) == 1.0
    assert registry.get_sample_value("flowsmith_dedupe_hits_total", {"provider": "stripe"}) == 1.0
    assert registry.get_sample_value("flowsmith_dispatch_matches_total", {"trigger_type": "new_lead"}) == 2.0
    assert registry.get_sample_value("flowsmith_schedule_fires_total", {"outcome": "invalid"}) == 1.0
    assert registry.get_sample_value("flowsmith_schedule_fires_total", {"outcome": "skipped"}) is None
    assert b"flowsmith_execution_duration_seconds" in metrics.render()


def test_in_flight_never_negative() -> None:
    metrics = EngineMetrics()
    metrics.execution_finished()
    assert metrics.in_flight == 0
