"""Dedupe stores for inbound event suppression within a bounded window."""

from __future__ import annotations

import asyncio
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any


class DedupeStore(ABC):
    """Abstract dedupe store used by the trigger dispatcher."""

    @abstractmethod
    async def check_and_set(self, key: str, ttl: int) -> bool:
        """Atomically record *key*; return True only for the first sighting within *ttl* seconds."""


class InMemoryDedupeStore(DedupeStore):
    """Process-scoped store; starts empty and forgets keys after their TTL."""

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._items: dict[str, float] = {}
        self._lock = asyncio.Lock()
        self._clock = clock

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, expires_at in self._items.items() if now >= expires_at]
        for key in expired:
            self._items.pop(key, None)

    async def check_and_set(self, key: str, ttl: int) -> bool:
        async with self._lock:
            now = self._clock()
            self._purge_expired(now)
            if key in self._items:
                return False
            self._items[key] = now + max(1, int(ttl))
            return True

    def __len__(self) -> int:
        return len(self._items)


class RedisDedupeStore(DedupeStore):
    """Redis-backed store (``SET NX EX``); survives restarts and spans processes."""

    def __init__(self, client: Any, *, key_prefix: str = "flowsmith:dedupe:") -> None:
        self._client = client
        self._key_prefix = key_prefix

    def _key(self, key: str) -> str:
        return f"{self._key_prefix}{key}"

    async def check_and_set(self, key: str, ttl: int) -> bool:
        return bool(await self._client.set(self._key(key), "1", nx=True, ex=max(1, int(ttl))))
