"""Trigger configuration models, inbound event payloads and match predicates.

Each :class:`TriggerType` member has exactly one config model. Event-based
trigger types also have one payload model; ``custom_schedule`` is fired by
the planner and can never be hinted by an inbound event.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from flowsmith.errors import ValidationError
from flowsmith.models import TriggerType


class _CamelModel(BaseModel):
    """Accepts both snake_case and camelCase keys (stored configs use camelCase)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Inbound event payloads
# ---------------------------------------------------------------------------


class LeadEvent(_CamelModel):
    model_config = ConfigDict(extra="allow")

    source: str
    value: float = 0.0
    lead_id: str | None = None
    email: str | None = None


class PaymentEvent(_CamelModel):
    model_config = ConfigDict(extra="allow")

    amount: float = Field(ge=0)
    currency: str
    product_id: str | None = None
    customer_id: str | None = None
    payment_id: str | None = None


class EmailOpenEvent(_CamelModel):
    model_config = ConfigDict(extra="allow")

    campaign_id: str
    subject: str = ""
    recipient: str | None = None


# ---------------------------------------------------------------------------
# Trigger configs
# ---------------------------------------------------------------------------


class NewLeadTrigger(_CamelModel):
    """Fires on a lead from one of ``sources`` worth at least ``min_value``."""

    sources: list[str] | None = Field(default=None, alias="source")
    min_value: float | None = None

    @field_validator("sources", mode="before")
    @classmethod
    def _single_source(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value

    def matches(self, event: LeadEvent) -> bool:
        if self.min_value is not None and event.value < self.min_value:
            return False
        if self.sources and event.source not in self.sources:
            return False
        return True


class PaymentReceivedTrigger(_CamelModel):
    """Fires on a payment of at least ``min_amount`` in ``currency``."""

    min_amount: float | None = None
    currency: str | None = None
    product_ids: list[str] | None = None

    def matches(self, event: PaymentEvent) -> bool:
        if self.min_amount is not None and event.amount < self.min_amount:
            return False
        if self.currency and event.currency.lower() != self.currency.lower():
            return False
        if self.product_ids and event.product_id not in self.product_ids:
            return False
        return True


class EmailOpenedTrigger(_CamelModel):
    """Fires when a campaign email whose subject carries a keyword is opened."""

    campaign_id: str | None = None
    subject_keywords: list[str] | None = None

    def matches(self, event: EmailOpenEvent) -> bool:
        if self.campaign_id and event.campaign_id != self.campaign_id:
            return False
        if self.subject_keywords:
            subject = event.subject.lower()
            return any(keyword.lower() in subject for keyword in self.subject_keywords)
        return True


class CustomScheduleTrigger(_CamelModel):
    cron_expression: str = Field(min_length=1)
    timezone: str = "UTC"


TRIGGER_CONFIG_MODELS: dict[TriggerType, type[_CamelModel]] = {
    TriggerType.NEW_LEAD: NewLeadTrigger,
    TriggerType.PAYMENT_RECEIVED: PaymentReceivedTrigger,
    TriggerType.EMAIL_OPENED: EmailOpenedTrigger,
    TriggerType.CUSTOM_SCHEDULE: CustomScheduleTrigger,
}

EVENT_PAYLOAD_MODELS: dict[TriggerType, type[_CamelModel]] = {
    TriggerType.NEW_LEAD: LeadEvent,
    TriggerType.PAYMENT_RECEIVED: PaymentEvent,
    TriggerType.EMAIL_OPENED: EmailOpenEvent,
}

_missing_configs = set(TriggerType) - set(TRIGGER_CONFIG_MODELS)
if _missing_configs:
    raise RuntimeError(f"trigger types without a config model: {sorted(t.value for t in _missing_configs)}")
_missing_payloads = {t for t in TriggerType if not t.is_schedule} - set(EVENT_PAYLOAD_MODELS)
if _missing_payloads:
    raise RuntimeError(f"event trigger types without a payload model: {sorted(t.value for t in _missing_payloads)}")


def _details(exc: PydanticValidationError) -> dict[str, Any]:
    return {"errors": exc.errors(include_url=False, include_context=False)}


def parse_trigger_config(trigger_type: TriggerType | str, config: dict[str, Any]) -> Any:
    """Validate *config* for *trigger_type*; raises :class:`ValidationError`."""
    try:
        kind = TriggerType(trigger_type)
    except ValueError as exc:
        raise ValidationError(f"unknown trigger type '{trigger_type}'") from exc
    try:
        return TRIGGER_CONFIG_MODELS[kind].model_validate(config or {})
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid {kind.value} trigger config", details=_details(exc)) from exc


def parse_event_payload(trigger_type: TriggerType | str, payload: Any) -> Any:
    """Validate an inbound event payload against the hinted trigger type."""
    try:
        kind = TriggerType(trigger_type)
    except ValueError as exc:
        raise ValidationError(f"unknown trigger type '{trigger_type}'") from exc
    model = EVENT_PAYLOAD_MODELS.get(kind)
    if model is None:
        raise ValidationError(f"trigger type '{kind.value}' cannot be raised by an event")
    if not isinstance(payload, dict):
        raise ValidationError("event payload must be a JSON object")
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid {kind.value} event payload", details=_details(exc)) from exc


def trigger_matches(trigger_type: TriggerType, config: dict[str, Any], event: Any) -> bool:
    """Evaluate the predicate of one automation against a parsed event."""
    parsed = parse_trigger_config(trigger_type, config)
    matcher = getattr(parsed, "matches", None)
    if matcher is None:
        return False
    return bool(matcher(event))
