"""Per-automation execution leases with TTL-based reclamation."""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import uuid4

from flowsmith.errors import LeaseError
from flowsmith.models import utcnow

# Deletes the key only if it still carries the caller's token.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


@dataclass(frozen=True, slots=True)
class Lease:
    automation_id: str
    token: str
    acquired_at: datetime
    ttl_seconds: float

    @property
    def expires_at(self) -> datetime:
        return self.acquired_at + timedelta(seconds=self.ttl_seconds)


class LeaseStore(ABC):
    """Exclusive, expiring lock keyed by automation id."""

    @abstractmethod
    async def acquire(self, automation_id: str, ttl_seconds: float) -> Lease | None:
        """Return a lease, or None when another holder's lease has not expired."""

    @abstractmethod
    async def release(self, lease: Lease) -> bool:
        """Release *lease* if it is still the current holder."""

    @abstractmethod
    async def is_held(self, automation_id: str) -> bool:
        ...


class InMemoryLeaseStore(LeaseStore):
    """Single-process lease store guarded by one asyncio lock."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._holders: dict[str, tuple[str, float]] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    async def acquire(self, automation_id: str, ttl_seconds: float) -> Lease | None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        async with self._lock:
            now = self._clock()
            current = self._holders.get(automation_id)
            if current is not None and now < current[1]:
                return None
            token = uuid4().hex
            self._holders[automation_id] = (token, now + ttl_seconds)
            return Lease(automation_id, token, utcnow(), ttl_seconds)

    async def release(self, lease: Lease) -> bool:
        async with self._lock:
            current = self._holders.get(lease.automation_id)
            if current is None or current[0] != lease.token:
                return False
            del self._holders[lease.automation_id]
            return True

    async def is_held(self, automation_id: str) -> bool:
        async with self._lock:
            current = self._holders.get(automation_id)
            return current is not None and self._clock() < current[1]


class RedisLeaseStore(LeaseStore):
    """Redis lease store (``SET NX PX`` acquire, token-checked Lua release).

    *client* is an async Redis client; connection errors surface as
    :class:`LeaseError`.
    """

    def __init__(self, client: Any, *, key_prefix: str = "flowsmith:lease:") -> None:
        self._client = client
        self._key_prefix = key_prefix

    def _key(self, automation_id: str) -> str:
        return f"{self._key_prefix}{automation_id}"

    async def acquire(self, automation_id: str, ttl_seconds: float) -> Lease | None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        token = uuid4().hex
        try:
            acquired = await self._client.set(
                self._key(automation_id),
                token,
                nx=True,
                px=max(1, int(ttl_seconds * 1000)),
            )
        except (ConnectionError, OSError) as exc:
            raise LeaseError(f"lease acquire failed for '{automation_id}': {exc}") from exc
        if not acquired:
            return None
        return Lease(automation_id, token, utcnow(), ttl_seconds)

    async def release(self, lease: Lease) -> bool:
        try:
            deleted = await self._client.eval(_RELEASE_SCRIPT, 1, self._key(lease.automation_id), lease.token)
        except (ConnectionError, OSError) as exc:
            raise LeaseError(f"lease release failed for '{lease.automation_id}': {exc}") from exc
        return bool(deleted)

    async def is_held(self, automation_id: str) -> bool:
        return bool(await self._client.exists(self._key(automation_id)))
