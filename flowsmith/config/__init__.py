"""Unified configuration system for Flowsmith."""

from flowsmith.config.loader import ConfigLoadError, YAMLConfigLoader
from flowsmith.config.manager import ConfigManager, ReloadResult
from flowsmith.config.models import (
    DatabaseConfig,
    DispatcherConfig,
    ExecutionConfig,
    FlowsmithConfig,
    HttpConfig,
    MetricsConfig,
    RetryConfig,
    SchedulerConfig,
)

__all__ = [
    "ConfigLoadError",
    "ConfigManager",
    "DatabaseConfig",
    "DispatcherConfig",
    "ExecutionConfig",
    "FlowsmithConfig",
    "HttpConfig",
    "MetricsConfig",
    "ReloadResult",
    "RetryConfig",
    "SchedulerConfig",
    "YAMLConfigLoader",
]
