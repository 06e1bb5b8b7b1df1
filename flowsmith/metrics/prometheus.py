"""Runtime engine metrics: in-process counters mirrored to Prometheus collectors."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest


class EngineMetrics:
    """Counters for executions, drops and dedupe hits.

    Collectors are bound to *registry*; each instance gets a private
    registry unless one is passed in.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self.execution_counts: dict[tuple[str, str], int] = {}
        self.busy_drops = 0
        self.dedupe_hits = 0
        self.in_flight = 0

        self.executions_total = Counter(
            "flowsmith_executions_total",
            "Settled automation executions",
            ["action_type", "status"],
            registry=self.registry,
        )
        self.execution_duration_seconds = Histogram(
            "flowsmith_execution_duration_seconds",
            "Automation execution duration in seconds",
            ["action_type"],
            registry=self.registry,
        )
        self.busy_drops_total = Counter(
            "flowsmith_busy_drops_total",
            "Submissions dropped because the automation was already executing",
            ["source"],
            registry=self.registry,
        )
        self.dedupe_hits_total = Counter(
            "flowsmith_dedupe_hits_total",
            "Inbound events suppressed as duplicates",
            ["provider"],
            registry=self.registry,
        )
        self.dispatch_matches_total = Counter(
            "flowsmith_dispatch_matches_total",
            "Automations matched by inbound events",
            ["trigger_type"],
            registry=self.registry,
        )
        self.schedule_fires_total = Counter(
            "flowsmith_schedule_fires_total",
            "Planner tick outcomes",
            ["outcome"],
            registry=self.registry,
        )
        self.in_flight_gauge = Gauge(
            "flowsmith_executions_in_flight",
            "Executions currently holding a lease",
            registry=self.registry,
        )

    def record_execution(self, action_type: str, status: str, duration_seconds: float | None) -> None:
        key = (action_type, status)
        self.execution_counts[key] = self.execution_counts.get(key, 0) + 1
        self.executions_total.labels(action_type, status).inc()
        if duration_seconds is not None:
            self.execution_duration_seconds.labels(action_type).observe(max(0.0, duration_seconds))

    def record_busy(self, source: str) -> None:
        self.busy_drops += 1
        self.busy_drops_total.labels(source).inc()

    def record_dedupe_hit(self, provider: str) -> None:
        self.dedupe_hits += 1
        self.dedupe_hits_total.labels(provider).inc()

    def record_dispatch(self, trigger_type: str, matched: int) -> None:
        if matched > 0:
            self.dispatch_matches_total.labels(trigger_type).inc(matched)

    def record_tick(self, *, fired: int, skipped: int, invalid: int) -> None:
        for outcome, count in (("fired", fired), ("skipped", skipped), ("invalid", invalid)):
            if count > 0:
                self.schedule_fires_total.labels(outcome).inc(count)

    def execution_started(self) -> None:
        self.in_flight += 1
        self.in_flight_gauge.set(self.in_flight)

    def execution_finished(self) -> None:
        self.in_flight = max(0, self.in_flight - 1)
        self.in_flight_gauge.set(self.in_flight)

    def render(self) -> bytes:
        """Prometheus text exposition of this registry."""
        return generate_latest(self.registry)
