"""Error taxonomy for the automation engine.

Dispatcher, planner and coordinator absorb integration-layer errors into
classified ExecutionRecord outcomes; only ingestion-time errors
(:class:`AuthError`, :class:`ValidationError`) reach callers.
"""

from __future__ import annotations


class FlowsmithError(Exception):
    """Base exception for engine operations."""

    pass


class ValidationError(FlowsmithError):
    """Raised when input cannot be parsed against its expected shape. Never retried."""

    def __init__(self, message: str, *, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class AuthError(FlowsmithError):
    """Raised when an inbound event fails signature or provenance verification."""

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"Event from provider '{provider}' rejected: {reason}")


class BusyError(FlowsmithError):
    """Raised when an automation already has an execution in flight."""

    def __init__(self, automation_id: str) -> None:
        self.automation_id = automation_id
        super().__init__(f"Automation '{automation_id}' already has an execution in flight")


class TransientExecutionError(FlowsmithError):
    """Integration failure that may succeed on retry (network, 5xx class)."""

    def __init__(self, message: str, *, provider_ref: str | None = None) -> None:
        self.provider_ref = provider_ref
        super().__init__(message)


class PermanentExecutionError(FlowsmithError):
    """Integration failure that will not succeed on retry (validation class)."""

    def __init__(self, message: str, *, provider_ref: str | None = None) -> None:
        self.provider_ref = provider_ref
        super().__init__(message)


class ExecutionTimeoutError(FlowsmithError):
    """Raised when an integration call exceeds its timeout."""

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Action timed out after {timeout_seconds:g}s")


class InvalidScheduleError(FlowsmithError):
    """Raised when a cron expression or timezone cannot be parsed."""

    def __init__(self, expression: str, reason: str = "malformed cron expression") -> None:
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid schedule '{expression}': {reason}")


class InvalidTransitionError(FlowsmithError):
    """Raised when an ExecutionRecord is finalized twice."""

    def __init__(self, execution_id: str, current_status: str) -> None:
        self.execution_id = execution_id
        self.current_status = current_status
        super().__init__(
            f"Execution '{execution_id}' is already '{current_status}' and cannot transition"
        )


class LeaseError(FlowsmithError):
    """Raised when a lease store cannot serve a request."""

    pass


class ConfigurationError(FlowsmithError):
    """Raised when a database URL or other deployment setting is missing or unusable.

    Messages never echo credentials.
    """

    pass
