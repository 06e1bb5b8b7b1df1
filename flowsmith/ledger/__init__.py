"""Execution ledger: append-only ExecutionRecord storage and queries."""

from flowsmith.ledger.base import ExecutionLedger, LedgerQueryFilters, LedgerStats
from flowsmith.ledger.inmemory import InMemoryLedger

__all__ = ["ExecutionLedger", "InMemoryLedger", "LedgerQueryFilters", "LedgerStats"]
