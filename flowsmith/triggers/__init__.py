"""Trigger layer: event dispatch, predicates and schedule planning."""

from flowsmith.triggers.dedupe import DedupeStore, InMemoryDedupeStore, RedisDedupeStore
from flowsmith.triggers.dispatcher import InboundEvent, TriggerDispatcher
from flowsmith.triggers.schedule import SchedulePlanner, TickReport, compute_next_run
from flowsmith.triggers.verifier import (
    HmacSignatureVerifier,
    SignatureVerifier,
    StripeSignatureVerifier,
)

__all__ = [
    "DedupeStore",
    "HmacSignatureVerifier",
    "InMemoryDedupeStore",
    "InboundEvent",
    "RedisDedupeStore",
    "SchedulePlanner",
    "SignatureVerifier",
    "StripeSignatureVerifier",
    "TickReport",
    "TriggerDispatcher",
    "compute_next_run",
]
