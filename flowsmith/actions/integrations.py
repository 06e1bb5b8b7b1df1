"""Integration call contract and a recording mock for local runs and tests."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel


@dataclass(slots=True)
class IntegrationResponse:
    """What an integration reports back; ``error_kind`` is ``transient`` or ``permanent``."""

    ok: bool
    provider_ref: str | None = None
    error_kind: str | None = None
    error_message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)


class Integration(Protocol):
    """Adapter performing one action type against an external system.

    ``execute`` may be a coroutine function or a blocking function; blocking
    implementations are run in a worker thread.
    """

    def execute(self, config: BaseModel, payload: dict[str, Any], context: dict[str, Any]) -> Any: ...


class MockIntegration:
    """Async integration that records every call.

    *script* is consumed one item per call: an exception instance is raised,
    anything else is returned. Once exhausted, *result* is returned.
    """

    def __init__(
        self,
        *,
        result: Any = None,
        script: Iterable[Any] | None = None,
        delay_seconds: float = 0.0,
    ) -> None:
        self.result = result if result is not None else IntegrationResponse(ok=True, provider_ref="mock")
        self.delay_seconds = delay_seconds
        self._script: deque[Any] = deque(script or [])
        self.calls: list[dict[str, Any]] = []

    async def execute(self, config: BaseModel, payload: dict[str, Any], context: dict[str, Any]) -> Any:
        self.calls.append({"config": config, "payload": dict(payload), "context": dict(context)})
        if self.delay_seconds > 0:
            await asyncio.sleep(self.delay_seconds)
        outcome = self._script.popleft() if self._script else self.result
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome
