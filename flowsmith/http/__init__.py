"""HTTP ingestion gateway."""

from flowsmith.http.app import create_http_app, stripe_payment_payload

__all__ = ["create_http_app", "stripe_payment_payload"]
