"""Flowsmith: trigger-to-action automation engine."""

from flowsmith.errors import (
    AuthError,
    BusyError,
    FlowsmithError,
    InvalidScheduleError,
    InvalidTransitionError,
    ValidationError,
)
from flowsmith.models import (
    ActionType,
    Automation,
    AutomationCategory,
    AutomationStatus,
    ErrorKind,
    ExecutionRecord,
    ExecutionStatus,
    TriggerType,
)

__version__ = "0.1.0"

__all__ = [
    "ActionType",
    "AuthError",
    "Automation",
    "AutomationCategory",
    "AutomationStatus",
    "BusyError",
    "ErrorKind",
    "ExecutionRecord",
    "ExecutionStatus",
    "FlowsmithError",
    "InvalidScheduleError",
    "InvalidTransitionError",
    "TriggerType",
    "ValidationError",
]
