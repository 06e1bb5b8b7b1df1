"""Core data models shared by registry, ledger, triggers and execution layers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from flowsmith.errors import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return *value* as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class TriggerType(str, Enum):
    """Closed set of trigger kinds."""

    NEW_LEAD = "new_lead"
    PAYMENT_RECEIVED = "payment_received"
    EMAIL_OPENED = "email_opened"
    CUSTOM_SCHEDULE = "custom_schedule"

    @property
    def is_schedule(self) -> bool:
        return self is TriggerType.CUSTOM_SCHEDULE


class ActionType(str, Enum):
    """Closed set of action capabilities."""

    SEND_EMAIL = "send_email"
    CREATE_TASK = "create_task"
    UPDATE_CRM = "update_crm"
    GENERATE_REPORT = "generate_report"


class AutomationStatus(str, Enum):
    DRAFT = "draft"
    ACTIVE = "active"
    INACTIVE = "inactive"
    INVALID = "invalid"


class AutomationCategory(str, Enum):
    SALES = "sales"
    MARKETING = "marketing"
    SUPPORT = "support"
    GENERAL = "general"


class ExecutionStatus(str, Enum):
    """Lifecycle of one firing attempt."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILURE = "failure"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not ExecutionStatus.PENDING


class ErrorKind(str, Enum):
    """Normalized failure classes recorded on ExecutionRecords."""

    TRANSIENT = "transient"
    PERMANENT = "permanent"
    VALIDATION = "validation"
    TIMEOUT = "timeout"
    INTERNAL = "internal"
    CANCELLED = "cancelled"

    @property
    def retryable(self) -> bool:
        return self in {ErrorKind.TRANSIENT, ErrorKind.TIMEOUT}


@dataclass(slots=True)
class Automation:
    """Owner-defined rule mapping a trigger condition to an action."""

    id: str
    owner_id: str
    name: str
    trigger_type: TriggerType
    trigger_config: dict[str, Any]
    action_type: ActionType
    action_config: dict[str, Any]
    category: AutomationCategory = AutomationCategory.GENERAL
    description: str | None = None
    status: AutomationStatus = AutomationStatus.DRAFT
    is_active: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    last_run: datetime | None = None
    next_run: datetime | None = None
    execution_count: int = 0
    success_count: int = 0
    failure_count: int = 0
    cancelled_count: int = 0
    invalid_reason: str | None = None

    def __post_init__(self) -> None:
        self.trigger_type = TriggerType(self.trigger_type)
        self.action_type = ActionType(self.action_type)
        self.category = AutomationCategory(self.category)
        self.status = AutomationStatus(self.status)
        if self.is_active and self.status is not AutomationStatus.ACTIVE:
            raise ValueError("is_active requires status 'active'")

    @property
    def is_schedule(self) -> bool:
        return self.trigger_type.is_schedule


@dataclass(slots=True)
class AggregateDelta:
    """Increment applied to an Automation's counters after one execution settles."""

    last_run: datetime
    executions: int = 1
    successes: int = 0
    failures: int = 0
    cancelled: int = 0

    @classmethod
    def for_status(cls, status: ExecutionStatus, last_run: datetime) -> AggregateDelta:
        return cls(
            last_run=last_run,
            successes=int(status is ExecutionStatus.SUCCESS),
            failures=int(status is ExecutionStatus.FAILURE),
            cancelled=int(status is ExecutionStatus.CANCELLED),
        )


@dataclass(slots=True)
class ExecutionRecord:
    """One firing attempt; immutable once ``completed_at`` is set."""

    id: str
    automation_id: str
    owner_id: str
    started_at: datetime
    status: ExecutionStatus = ExecutionStatus.PENDING
    trigger_payload: dict[str, Any] = field(default_factory=dict)
    completed_at: datetime | None = None
    duration_ms: int | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    action_result: dict[str, Any] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def open(
        cls,
        automation: Automation,
        trigger_payload: dict[str, Any],
        *,
        started_at: datetime,
        metadata: dict[str, Any] | None = None,
    ) -> ExecutionRecord:
        return cls(
            id=str(uuid4()),
            automation_id=automation.id,
            owner_id=automation.owner_id,
            started_at=started_at,
            trigger_payload=dict(trigger_payload),
            metadata=dict(metadata or {}),
        )

    def finalize(
        self,
        status: ExecutionStatus,
        *,
        completed_at: datetime,
        duration_ms: int,
        error_kind: ErrorKind | None = None,
        error_message: str | None = None,
        action_result: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ExecutionRecord:
        """Return the terminal copy of this pending record."""
        if self.status.is_terminal:
            raise InvalidTransitionError(self.id, self.status.value)
        if not status.is_terminal:
            raise InvalidTransitionError(self.id, self.status.value)
        return replace(
            self,
            status=status,
            completed_at=completed_at,
            duration_ms=max(0, int(duration_ms)),
            error_kind=error_kind,
            error_message=error_message,
            action_result=action_result,
            metadata={**self.metadata, **(metadata or {})},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "automation_id": self.automation_id,
            "owner_id": self.owner_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "completed_at": None if self.completed_at is None else self.completed_at.isoformat(),
            "duration_ms": self.duration_ms,
            "error_kind": None if self.error_kind is None else self.error_kind.value,
            "error_message": self.error_message,
            "trigger_payload": self.trigger_payload,
            "action_result": self.action_result,
            "metadata": self.metadata,
        }
