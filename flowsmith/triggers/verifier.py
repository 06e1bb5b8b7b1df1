"""Provider-specific signature verification for inbound events."""

from __future__ import annotations

import hashlib
import hmac
from typing import Protocol

import stripe


class SignatureVerifier(Protocol):
    """Return None when the signature is valid, otherwise a rejection reason."""

    def verify(self, raw_body: bytes, signature: str | None) -> str | None: ...


class HmacSignatureVerifier:
    """Hex HMAC over the raw body, optionally prefixed with ``<algorithm>=``."""

    def __init__(self, secret: str, *, algorithm: str = "sha256") -> None:
        if not secret:
            raise ValueError("secret must be a non-empty string")
        if algorithm not in {"sha256", "sha512"}:
            raise ValueError("algorithm must be 'sha256' or 'sha512'")
        self._secret = secret.encode("utf-8")
        self._algorithm = algorithm

    def verify(self, raw_body: bytes, signature: str | None) -> str | None:
        if not signature:
            return "missing signature"
        expected = hmac.new(
            self._secret,
            raw_body,
            hashlib.sha256 if self._algorithm == "sha256" else hashlib.sha512,
        ).hexdigest()
        normalized = _normalize_signature(signature, self._algorithm)
        if normalized is None or not hmac.compare_digest(expected, normalized):
            return "signature verification failed"
        return None

    def sign(self, raw_body: bytes) -> str:
        digest = hmac.new(
            self._secret,
            raw_body,
            hashlib.sha256 if self._algorithm == "sha256" else hashlib.sha512,
        ).hexdigest()
        return f"{self._algorithm}={digest}"


class StripeSignatureVerifier:
    """Stripe ``t=<unix>,v1=<hex>`` header, checked by the Stripe SDK."""

    def __init__(self, secret: str, *, tolerance_seconds: int = 300) -> None:
        if not secret:
            raise ValueError("secret must be a non-empty string")
        self._secret = secret
        self._tolerance = tolerance_seconds

    def verify(self, raw_body: bytes, signature: str | None) -> str | None:
        if not signature:
            return "missing signature"
        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError:
            return "body is not valid UTF-8"
        try:
            stripe.WebhookSignature.verify_header(payload, signature, self._secret, tolerance=self._tolerance)
        except stripe.SignatureVerificationError as exc:
            return f"signature verification failed: {exc.user_message}"
        return None


def _normalize_signature(signature_header: str, algorithm: str) -> str | None:
    lower = signature_header.strip().lower()
    prefix = f"{algorithm}="
    if lower.startswith(prefix):
        return lower[len(prefix) :]
    if lower.startswith("sha256=") or lower.startswith("sha512="):
        return None
    return lower
