"""Unit tests for trigger config models and match predicates."""

from __future__ import annotations

import pytest

from flowsmith.errors import ValidationError
from flowsmith.models import TriggerType
from flowsmith.triggers.predicates import (
    EVENT_PAYLOAD_MODELS,
    TRIGGER_CONFIG_MODELS,
    CustomScheduleTrigger,
    NewLeadTrigger,
    parse_event_payload,
    parse_trigger_config,
    trigger_matches,
)


def test_every_trigger_type_has_a_config_model() -> None:
    assert set(TRIGGER_CONFIG_MODELS) == set(TriggerType)
    assert set(EVENT_PAYLOAD_MODELS) == {t for t in TriggerType if not t.is_schedule}


@pytest.mark.parametrize(
    ("config", "event", "expected"),
    [
        ({"source": "web", "minValue": 100}, {"source": "web", "value": 150}, True),
        ({"source": "web", "minValue": 100}, {"source": "web", "value": 50}, False),
        ({"source": "web"}, {"source": "referral", "value": 500}, False),
        ({"source": ["web", "referral"]}, {"source": "referral"}, True),
        ({}, {"source": "anything"}, True),
    ],
)
def test_new_lead_predicate(config: dict, event: dict, expected: bool) -> None:
    parsed = parse_event_payload(TriggerType.NEW_LEAD, event)
    assert trigger_matches(TriggerType.NEW_LEAD, config, parsed) is expected


def test_new_lead_accepts_snake_case_sources() -> None:
    parsed = NewLeadTrigger.model_validate({"sources": ["web"], "min_value": 10})
    assert parsed.sources == ["web"]
    assert parsed.min_value == 10


@pytest.mark.parametrize(
    ("config", "event", "expected"),
    [
        ({"minAmount": 100, "currency": "usd"}, {"amount": 120, "currency": "USD"}, True),
        ({"minAmount": 100}, {"amount": 99.99, "currency": "USD"}, False),
        ({"currency": "EUR"}, {"amount": 10, "currency": "USD"}, False),
        ({"productIds": ["p1"]}, {"amount": 10, "currency": "USD", "productId": "p2"}, False),
        ({"productIds": ["p1"]}, {"amount": 10, "currency": "USD", "productId": "p1"}, True),
    ],
)
def test_payment_predicate(config: dict, event: dict, expected: bool) -> None:
    parsed = parse_event_payload(TriggerType.PAYMENT_RECEIVED, event)
    assert trigger_matches(TriggerType.PAYMENT_RECEIVED, config, parsed) is expected


def test_email_opened_predicate_keywords_are_case_insensitive() -> None:
    event = parse_event_payload(
        TriggerType.EMAIL_OPENED,
        {"campaignId": "c-1", "subject": "Your Spring PRICING guide"},
    )
    config = {"campaignId": "c-1", "subjectKeywords": ["pricing", "demo"]}
    assert trigger_matches(TriggerType.EMAIL_OPENED, config, event)
    assert not trigger_matches(TriggerType.EMAIL_OPENED, {"subjectKeywords": ["webinar"]}, event)
    assert not trigger_matches(TriggerType.EMAIL_OPENED, {"campaignId": "c-2"}, event)


def test_schedule_config_never_matches_events() -> None:
    event = parse_event_payload(TriggerType.NEW_LEAD, {"source": "web"})
    assert not trigger_matches(TriggerType.CUSTOM_SCHEDULE, {"cronExpression": "* * * * *"}, event)


def test_parse_event_payload_rejects_schedule_hint() -> None:
    with pytest.raises(ValidationError, match="cannot be raised"):
        parse_event_payload(TriggerType.CUSTOM_SCHEDULE, {})


def test_parse_event_payload_reports_field_errors() -> None:
    with pytest.raises(ValidationError) as exc_info:
        parse_event_payload(TriggerType.PAYMENT_RECEIVED, {"amount": -1})
    locations = {tuple(err["loc"]) for err in exc_info.value.details["errors"]}
    assert ("amount",) in locations
    assert ("currency",) in locations


def test_parse_event_payload_rejects_non_object_and_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_event_payload(TriggerType.NEW_LEAD, ["web"])
    with pytest.raises(ValidationError, match="unknown trigger type"):
        parse_event_payload("form_submitted", {})


def test_parse_trigger_config_schedule_defaults_timezone() -> None:
    parsed = parse_trigger_config("custom_schedule", {"cronExpression": "0 9 * * 1-5"})
    assert isinstance(parsed, CustomScheduleTrigger)
    assert parsed.timezone == "UTC"
    with pytest.raises(ValidationError):
        parse_trigger_config(TriggerType.CUSTOM_SCHEDULE, {})


def test_extra_event_fields_are_kept() -> None:
    parsed = parse_event_payload(TriggerType.NEW_LEAD, {"source": "web", "utmCampaign": "spring"})
    assert parsed.model_extra == {"utmCampaign": "spring"}
