"""Metrics: per-owner aggregates and Prometheus runtime counters."""

from flowsmith.metrics.aggregator import AutomationMetrics, MetricsAggregator
from flowsmith.metrics.prometheus import EngineMetrics

__all__ = ["AutomationMetrics", "EngineMetrics", "MetricsAggregator"]
