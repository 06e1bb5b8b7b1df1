"""Execution layer: coordinator, leases and retry policy."""

from flowsmith.execution.coordinator import (
    ExecutionCoordinator,
    SubmitOutcome,
    SubmitStatus,
)
from flowsmith.execution.lease import InMemoryLeaseStore, Lease, LeaseStore, RedisLeaseStore
from flowsmith.execution.retry import RetryPolicy

__all__ = [
    "ExecutionCoordinator",
    "InMemoryLeaseStore",
    "Lease",
    "LeaseStore",
    "RedisLeaseStore",
    "RetryPolicy",
    "SubmitOutcome",
    "SubmitStatus",
]
