"""Trigger dispatcher: verify, parse, dedupe and fan out inbound events."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Protocol

from flowsmith.errors import AuthError, ValidationError
from flowsmith.models import TriggerType
from flowsmith.registry.base import AutomationRegistry
from flowsmith.triggers.dedupe import DedupeStore
from flowsmith.triggers.predicates import parse_event_payload, trigger_matches
from flowsmith.triggers.verifier import SignatureVerifier

if TYPE_CHECKING:
    from flowsmith.execution.coordinator import SubmitOutcome
    from flowsmith.metrics.prometheus import EngineMetrics

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "default"


class Submitter(Protocol):
    async def submit(
        self,
        automation_id: str,
        payload: dict[str, Any],
        *,
        source: str = ...,
        metadata: dict[str, Any] | None = ...,
    ) -> SubmitOutcome: ...


@dataclass(slots=True)
class InboundEvent:
    """Normalized external event handed to :meth:`TriggerDispatcher.ingest_event`."""

    provider_event_id: str
    trigger_type_hint: TriggerType | str
    payload: dict[str, Any]
    signature: str | None = None
    provider: str = DEFAULT_PROVIDER
    owner_id: str | None = None
    raw_body: bytes | None = None
    headers: dict[str, str] = field(default_factory=dict)

    def body_bytes(self) -> bytes:
        if self.raw_body is not None:
            return self.raw_body
        return json.dumps(self.payload, sort_keys=True, separators=(",", ":")).encode("utf-8")

    @property
    def dedupe_key(self) -> str:
        return f"{self.provider}:{self.provider_event_id}"


class TriggerDispatcher:
    """Turns inbound events into coordinator submissions.

    Only :class:`AuthError` and :class:`ValidationError` escape
    :meth:`ingest_event`; failures submitting one automation are logged and
    do not affect the others.
    """

    def __init__(
        self,
        registry: AutomationRegistry,
        coordinator: Submitter,
        dedupe_store: DedupeStore,
        *,
        verifiers: dict[str, SignatureVerifier] | None = None,
        dedupe_window_seconds: int = 86400,
        allow_unsigned: bool = False,
        owner_required_providers: Iterable[str] = (),
        metrics: EngineMetrics | None = None,
    ) -> None:
        if dedupe_window_seconds < 1:
            raise ValueError("dedupe_window_seconds must be positive")
        self._registry = registry
        self._coordinator = coordinator
        self._dedupe = dedupe_store
        self._verifiers: dict[str, SignatureVerifier] = dict(verifiers or {})
        self._dedupe_window = dedupe_window_seconds
        self._allow_unsigned = allow_unsigned
        self._owner_required = frozenset(owner_required_providers)
        self._metrics = metrics

    def register_verifier(self, provider: str, verifier: SignatureVerifier) -> None:
        self._verifiers[provider] = verifier

    def update_settings(
        self,
        *,
        dedupe_window_seconds: int | None = None,
        allow_unsigned: bool | None = None,
        owner_required_providers: Iterable[str] | None = None,
    ) -> None:
        """Apply hot-reloaded dispatcher settings."""
        if owner_required_providers is not None:
            self._owner_required = frozenset(owner_required_providers)
        if dedupe_window_seconds is not None and dedupe_window_seconds >= 1:
            self._dedupe_window = dedupe_window_seconds
        if allow_unsigned is not None:
            self._allow_unsigned = allow_unsigned

    def _verify(self, event: InboundEvent) -> None:
        verifier = self._verifiers.get(event.provider)
        if verifier is None:
            if self._allow_unsigned:
                return
            raise AuthError(event.provider, "no verifier registered for provider")
        reason = verifier.verify(event.body_bytes(), event.signature)
        if reason is not None:
            raise AuthError(event.provider, reason)

    async def ingest_event(self, event: InboundEvent) -> int:
        """Process one inbound event and return the number of matched automations."""
        self._verify(event)
        if not event.provider_event_id or not str(event.provider_event_id).strip():
            raise ValidationError("provider_event_id is required")
        if event.owner_id is None and event.provider in self._owner_required:
            raise ValidationError(f"events from provider '{event.provider}' must name an owner")
        try:
            trigger_type = TriggerType(event.trigger_type_hint)
        except ValueError as exc:
            raise ValidationError(f"unknown trigger type '{event.trigger_type_hint}'") from exc
        parsed = parse_event_payload(trigger_type, event.payload)

        # A failed registry read must not consume the dedupe key.
        candidates = await self._registry.list_active(owner_id=event.owner_id, trigger_type=trigger_type)
        matched = []
        for automation in candidates:
            try:
                if trigger_matches(trigger_type, automation.trigger_config, parsed):
                    matched.append(automation)
            except ValidationError as exc:
                logger.warning(
                    "dispatch_bad_trigger_config automation_id=%s error=%s",
                    automation.id,
                    exc,
                )

        if not await self._dedupe.check_and_set(event.dedupe_key, self._dedupe_window):
            logger.info(
                "dispatch_duplicate provider=%s provider_event_id=%s",
                event.provider,
                event.provider_event_id,
            )
            if self._metrics is not None:
                self._metrics.record_dedupe_hit(event.provider)
            return 0

        metadata = {
            "source": "event",
            "provider": event.provider,
            "provider_event_id": event.provider_event_id,
            "trigger_type": trigger_type.value,
        }
        for automation in matched:
            try:
                outcome = await self._coordinator.submit(
                    automation.id,
                    dict(event.payload),
                    source="event",
                    metadata=metadata,
                )
                logger.info(
                    "dispatch_submitted automation_id=%s provider_event_id=%s outcome=%s",
                    automation.id,
                    event.provider_event_id,
                    outcome.status.value,
                )
            except Exception as exc:
                logger.exception(
                    "dispatch_submit_failed automation_id=%s provider_event_id=%s error=%s",
                    automation.id,
                    event.provider_event_id,
                    exc,
                )
        if self._metrics is not None:
            self._metrics.record_dispatch(trigger_type.value, len(matched))
        logger.info(
            "dispatch_complete provider=%s provider_event_id=%s trigger_type=%s matched=%d",
            event.provider,
            event.provider_event_id,
            trigger_type.value,
            len(matched),
        )
        return len(matched)
