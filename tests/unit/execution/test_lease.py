"""Unit tests for lease stores."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from flowsmith.errors import LeaseError
from flowsmith.execution.lease import InMemoryLeaseStore, Lease, RedisLeaseStore
from flowsmith.models import utcnow


class _MonotonicStub:
    def __init__(self) -> None:
        self.value = 100.0

    def __call__(self) -> float:
        return self.value


@pytest.mark.asyncio
async def test_in_memory_lease_is_exclusive_until_released() -> None:
    store = InMemoryLeaseStore()
    lease = await store.acquire("a-1", 10)
    assert lease is not None
    assert await store.acquire("a-1", 10) is None
    assert await store.is_held("a-1")
    assert await store.acquire("a-2", 10) is not None
    assert await store.release(lease) is True
    assert not await store.is_held("a-1")
    assert await store.acquire("a-1", 10) is not None


@pytest.mark.asyncio
async def test_in_memory_lease_expires_after_ttl() -> None:
    clock = _MonotonicStub()
    store = InMemoryLeaseStore(clock=clock)
    stale = await store.acquire("a-1", 5)
    assert stale is not None
    clock.value += 5.0
    fresh = await store.acquire("a-1", 5)
    assert fresh is not None
    # The reclaimed lease must not be released by its previous holder.
    assert await store.release(stale) is False
    assert await store.is_held("a-1")
    assert await store.release(fresh) is True


@pytest.mark.asyncio
async def test_in_memory_lease_rejects_non_positive_ttl() -> None:
    with pytest.raises(ValueError):
        await InMemoryLeaseStore().acquire("a-1", 0)


def test_lease_expires_at() -> None:
    now = utcnow()
    lease = Lease("a-1", "tok", now, 2.5)
    assert (lease.expires_at - now).total_seconds() == 2.5


@pytest.mark.asyncio
async def test_redis_lease_store_uses_set_nx_px_and_token_checked_release() -> None:
    client = AsyncMock()
    client.set.return_value = True
    client.eval.return_value = 1
    store = RedisLeaseStore(client)
    lease = await store.acquire("a-1", 1.5)
    assert lease is not None
    args, kwargs = client.set.call_args
    assert args[0] == "flowsmith:lease:a-1"
    assert kwargs == {"nx": True, "px": 1500}
    assert await store.release(lease) is True
    eval_args = client.eval.call_args.args
    assert eval_args[1:] == (1, "flowsmith:lease:a-1", lease.token)


@pytest.mark.asyncio
async def test_redis_lease_store_busy_and_errors() -> None:
    client = AsyncMock()
    client.set.return_value = None
    store = RedisLeaseStore(client)
    assert await store.acquire("a-1", 1) is None
    client.set.side_effect = ConnectionError("down")
    with pytest.raises(LeaseError):
        await store.acquire("a-1", 1)
