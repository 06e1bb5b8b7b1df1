"""FastAPI gateway: webhook ingestion, health and per-owner metrics."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from prometheus_client import CONTENT_TYPE_LATEST

from flowsmith.errors import AuthError, ValidationError
from flowsmith.models import TriggerType
from flowsmith.triggers.dispatcher import InboundEvent

if TYPE_CHECKING:
    from flowsmith.engine import AutomationEngine

logger = logging.getLogger(__name__)

STRIPE_PAYMENT_EVENTS = frozenset(
    {
        "payment_intent.succeeded",
        "charge.succeeded",
        "checkout.session.completed",
        "invoice.paid",
    }
)


def stripe_payment_payload(body: dict[str, Any]) -> dict[str, Any] | None:
    """Map a Stripe event to a ``payment_received`` payload; None for other event types.

    Stripe amounts are in minor units and are converted to major units.
    """
    if body.get("type") not in STRIPE_PAYMENT_EVENTS:
        return None
    obj = (body.get("data") or {}).get("object") or {}
    metadata = obj.get("metadata") or {}
    raw_amount = obj.get("amount_received", obj.get("amount", obj.get("amount_total", obj.get("amount_paid", 0))))
    return {
        "amount": (raw_amount or 0) / 100,
        "currency": str(obj.get("currency") or "").upper(),
        "product_id": metadata.get("product_id") or metadata.get("productId"),
        "customer_id": obj.get("customer"),
        "payment_id": obj.get("id"),
    }


def stripe_owner_id(body: dict[str, Any]) -> str | None:
    """Owner named in the Stripe object's ``metadata.owner_id``, if any."""
    obj = (body.get("data") or {}).get("object") or {}
    owner = (obj.get("metadata") or {}).get("owner_id")
    return str(owner) if owner else None


def _error_response(code: str, message: str, *, status_code: int, request_id: str, details: Any = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": {
                "code": code,
                "message": message,
                "details": details,
                "request_id": request_id,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
        },
    )


def create_http_app(engine: AutomationEngine, *, manage_lifecycle: bool = False) -> FastAPI:
    """Create FastAPI app bound to engine services.

    With *manage_lifecycle* the app starts and stops the engine (planner
    loop included) together with the server.
    """

    @asynccontextmanager
    async def _lifespan(_: FastAPI) -> AsyncIterator[None]:
        if manage_lifecycle:
            await engine.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await engine.stop()

    app = FastAPI(title="Flowsmith Automation Engine", lifespan=_lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=engine.config.http.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def _request_id_middleware(request: Request, call_next: Any) -> Response:
        request_id = request.headers.get("x-request-id", str(uuid4()))
        request.state.request_id = request_id
        response = await call_next(request)
        response.headers["x-request-id"] = request_id
        return response

    @app.post("/webhooks/{provider}")
    async def receive_webhook(provider: str, request: Request) -> JSONResponse:
        request_id = str(getattr(request.state, "request_id", uuid4()))
        raw_body = await request.body()
        try:
            body = json.loads(raw_body.decode("utf-8")) if raw_body else {}
        except (UnicodeDecodeError, json.JSONDecodeError):
            return _error_response("INVALID_PAYLOAD", "body must be valid JSON", status_code=400, request_id=request_id)
        if not isinstance(body, dict):
            return _error_response("INVALID_PAYLOAD", "body must be a JSON object", status_code=400, request_id=request_id)

        headers = request.headers
        event_id = headers.get("x-event-id")
        trigger_type = headers.get("x-trigger-type")
        signature = headers.get("stripe-signature") or headers.get("x-signature")
        owner_id = headers.get("x-owner-id")
        payload: dict[str, Any] = body
        if provider == "stripe" and trigger_type is None:
            event_id = event_id or body.get("id")
            mapped = stripe_payment_payload(body)
            if mapped is None:
                logger.info("webhook_ignored provider=%s event_type=%s", provider, body.get("type"))
                return JSONResponse(status_code=200, content={"matched": 0, "ignored": True})
            trigger_type = TriggerType.PAYMENT_RECEIVED.value
            payload = mapped
            owner_id = owner_id or stripe_owner_id(body)
        if not event_id or not trigger_type:
            return _error_response(
                "MISSING_HEADERS",
                "x-event-id and x-trigger-type headers are required",
                status_code=400,
                request_id=request_id,
            )

        event = InboundEvent(
            provider_event_id=str(event_id),
            trigger_type_hint=trigger_type,
            payload=payload,
            signature=signature,
            provider=provider,
            owner_id=owner_id,
            raw_body=raw_body,
            headers=dict(headers),
        )
        try:
            matched = await engine.dispatcher.ingest_event(event)
        except AuthError as exc:
            logger.warning("webhook_rejected provider=%s reason=%s", provider, exc.reason)
            return _error_response("UNAUTHORIZED", str(exc), status_code=401, request_id=request_id)
        except ValidationError as exc:
            return _error_response("INVALID_EVENT", str(exc), status_code=400, request_id=request_id, details=exc.details)
        return JSONResponse(status_code=200, content={"matched": matched, "request_id": request_id})

    @app.get("/health")
    async def health() -> JSONResponse:
        status = await engine.health_status()
        return JSONResponse(
            status_code=200,
            content={**status, "timestamp": datetime.now(timezone.utc).isoformat()},
        )

    @app.get("/owners/{owner_id}/metrics")
    async def owner_metrics(owner_id: str) -> JSONResponse:
        metrics = await engine.aggregator.get_metrics(owner_id)
        return JSONResponse(status_code=200, content=metrics.to_dict())

    @app.get("/metrics")
    async def prometheus_metrics() -> Response:
        return Response(content=engine.metrics.render(), media_type=CONTENT_TYPE_LATEST)

    return app
