"""Action executor: validate config, route to the integration, normalize the outcome."""

from __future__ import annotations

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from typing import Any

from flowsmith.actions.integrations import Integration, IntegrationResponse
from flowsmith.actions.schemas import parse_action_config
from flowsmith.errors import (
    ExecutionTimeoutError,
    PermanentExecutionError,
    TransientExecutionError,
    ValidationError,
)
from flowsmith.models import ActionType, ErrorKind

logger = logging.getLogger(__name__)

_REPORTED_KINDS = {
    "transient": ErrorKind.TRANSIENT,
    "permanent": ErrorKind.PERMANENT,
    "validation": ErrorKind.VALIDATION,
    "timeout": ErrorKind.TIMEOUT,
}


@dataclass(slots=True)
class ActionResult:
    ok: bool
    provider_ref: str | None = None
    error_kind: ErrorKind | None = None
    error_message: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str) -> ActionResult:
        return cls(ok=False, error_kind=kind, error_message=message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "provider_ref": self.provider_ref,
            "error_kind": None if self.error_kind is None else self.error_kind.value,
            "error_message": self.error_message,
            "data": self.data,
        }


def classify_exception(exc: BaseException) -> ErrorKind:
    """Map an exception raised by an integration to an error kind."""
    if isinstance(exc, (asyncio.TimeoutError, ExecutionTimeoutError)):
        return ErrorKind.TIMEOUT
    if isinstance(exc, ValidationError):
        return ErrorKind.VALIDATION
    if isinstance(exc, (TransientExecutionError, ConnectionError, OSError)):
        return ErrorKind.TRANSIENT
    if isinstance(exc, (PermanentExecutionError, ValueError, TypeError)):
        return ErrorKind.PERMANENT
    return ErrorKind.INTERNAL


def normalize_response(response: Any) -> ActionResult:
    """Turn whatever an integration returned into an :class:`ActionResult`."""
    if isinstance(response, ActionResult):
        return response
    if isinstance(response, IntegrationResponse):
        return _from_mapping(
            {
                "ok": response.ok,
                "provider_ref": response.provider_ref,
                "error_kind": response.error_kind,
                "error_message": response.error_message,
                "data": response.data,
            }
        )
    if response is None:
        return ActionResult(ok=True)
    if isinstance(response, bool):
        if response:
            return ActionResult(ok=True)
        return ActionResult.failure(ErrorKind.PERMANENT, "integration reported failure")
    if isinstance(response, dict):
        if "ok" not in response:
            return ActionResult(ok=True, data=dict(response))
        return _from_mapping(response)
    return ActionResult(ok=True, data={"value": str(response)})


def _from_mapping(response: dict[str, Any]) -> ActionResult:
    ok = bool(response.get("ok"))
    provider_ref = response.get("provider_ref") or response.get("providerRef")
    data = response.get("data")
    data = dict(data) if isinstance(data, dict) else {}
    if ok:
        return ActionResult(ok=True, provider_ref=provider_ref, data=data)
    raw_kind = response.get("error_kind") or response.get("errorKind")
    kind = _REPORTED_KINDS.get(str(raw_kind).lower(), ErrorKind.PERMANENT) if raw_kind else ErrorKind.PERMANENT
    message = response.get("error_message") or response.get("error") or "integration reported failure"
    return ActionResult(
        ok=False,
        provider_ref=provider_ref,
        error_kind=kind,
        error_message=str(message),
        data=data,
    )


class ActionExecutor:
    """Routes a validated action to its integration under a hard timeout.

    Owns no integration business logic.
    """

    def __init__(self, integrations: dict[ActionType, Integration] | None = None) -> None:
        self._integrations: dict[ActionType, Integration] = {}
        for action_type, integration in (integrations or {}).items():
            self.register(action_type, integration)

    def register(self, action_type: ActionType | str, integration: Integration) -> None:
        self._integrations[ActionType(action_type)] = integration

    def integration_for(self, action_type: ActionType | str) -> Integration | None:
        return self._integrations.get(ActionType(action_type))

    async def execute(
        self,
        action_type: ActionType | str,
        action_config: dict[str, Any],
        trigger_payload: dict[str, Any],
        owner_context: dict[str, Any],
        *,
        timeout: float,
    ) -> ActionResult:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        try:
            kind = ActionType(action_type)
            config = parse_action_config(kind, action_config)
        except (ValidationError, ValueError) as exc:
            return ActionResult.failure(ErrorKind.VALIDATION, str(exc))
        integration = self._integrations.get(kind)
        if integration is None:
            return ActionResult.failure(ErrorKind.PERMANENT, f"no integration registered for '{kind.value}'")

        try:
            if inspect.iscoroutinefunction(integration.execute):
                response = await asyncio.wait_for(
                    integration.execute(config, dict(trigger_payload), dict(owner_context)),
                    timeout=timeout,
                )
            else:
                # The worker thread is detached, not stopped, when the timeout fires.
                response = await asyncio.wait_for(
                    asyncio.to_thread(integration.execute, config, dict(trigger_payload), dict(owner_context)),
                    timeout=timeout,
                )
                if inspect.isawaitable(response):
                    response = await asyncio.wait_for(response, timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("action_timeout action_type=%s timeout_seconds=%s", kind.value, timeout)
            return ActionResult.failure(ErrorKind.TIMEOUT, str(ExecutionTimeoutError(timeout)))
        except Exception as exc:
            error_kind = classify_exception(exc)
            logger.warning(
                "action_failed action_type=%s error_kind=%s error=%s",
                kind.value,
                error_kind.value,
                exc,
            )
            return ActionResult.failure(error_kind, str(exc) or type(exc).__name__)
        return normalize_response(response)
