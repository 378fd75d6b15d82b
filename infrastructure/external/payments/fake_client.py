"""
Configurable in-memory payment gateway for development and tests.

Intents live in a dict; webhooks are signed with HMAC-SHA256 using the same
``t=<unix ts>,v1=<hex digest>`` header layout Stripe uses, over
``"<ts>.<raw body>"``. ``build_webhook`` produces a body/header pair that
``parse_webhook`` accepts, so the full webhook path can be exercised locally.
"""
from __future__ import annotations

import hashlib
import hmac
import json
import time
import uuid
from typing import Any, Optional

from application.dtos.payments import CreateIntent, PaymentIntent, WebhookEvent
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentSignatureError,
)
from core.settings import payment_settings


SIGNATURE_HEADER = "Fake-Signature"


class FakePaymentClient(BasePaymentClient):
    provider = "fake"

    def __init__(self, *, webhook_secret: Optional[str] = None, tolerance_seconds: Optional[int] = None):
        super().__init__()
        self._webhook_secret = webhook_secret or payment_settings.fake.webhook_secret
        self._tolerance = (
            tolerance_seconds if tolerance_seconds is not None else payment_settings.webhook.tolerance_seconds
        )
        self.intents: dict[str, dict[str, Any]] = {}
        self.calls: list[dict[str, Any]] = []
        self.should_succeed = True
        self.failure_reason = "Gateway unavailable"

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        """Configure gateway behavior at runtime."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def set_status(self, intent_id: str, status: str) -> None:
        """Simulate the customer completing (or abandoning) payment."""
        if intent_id not in self.intents:
            raise KeyError(intent_id)
        self.intents[intent_id]["status"] = status

    def _to_intent(self, data: dict[str, Any]) -> PaymentIntent:
        return PaymentIntent(
            intent_id=data["id"],
            status=self._map_status(data["status"]),
            provider=self.provider,
            client_secret=data["client_secret"],
            amount=data["amount"],
            currency=data["currency"],
            metadata=dict(data["metadata"]),
        )

    async def create_intent(self, req: CreateIntent) -> PaymentIntent:  # type: ignore[override]
        self.calls.append({"method": "create_intent", "amount": req.amount, "currency": req.currency,
                           "idempotency_key": req.idempotency_key})
        if not self.should_succeed:
            raise PaymentProviderError(self.failure_reason, provider=self.provider, operation="create_intent")
        # Same idempotency key returns the same intent
        for data in self.intents.values():
            if req.idempotency_key and data["idempotency_key"] == req.idempotency_key:
                return self._to_intent(data)
        intent_id = f"pi_fake_{uuid.uuid4().hex[:16]}"
        self.intents[intent_id] = {
            "id": intent_id,
            "status": "requires_payment_method",
            "client_secret": f"{intent_id}_secret_{uuid.uuid4().hex[:8]}",
            "amount": req.amount,
            "currency": req.currency,
            "metadata": dict(req.metadata),
            "idempotency_key": req.idempotency_key,
        }
        self._log("fake_intent_created", intent_id=intent_id, amount=req.amount)
        return self._to_intent(self.intents[intent_id])

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:  # type: ignore[override]
        self.calls.append({"method": "retrieve_intent", "intent_id": intent_id})
        if not self.should_succeed:
            raise PaymentProviderError(self.failure_reason, provider=self.provider, operation="retrieve_intent")
        data = self.intents.get(intent_id)
        if data is None:
            raise PaymentProviderError(f"No such payment_intent: {intent_id}", provider=self.provider,
                                       operation="retrieve_intent", provider_code="resource_missing")
        return self._to_intent(data)

    # Webhook signing

    def sign(self, body: bytes, timestamp: Optional[int] = None) -> str:
        ts = int(timestamp if timestamp is not None else time.time())
        signed = f"{ts}.".encode("utf-8") + body
        digest = hmac.new(self._webhook_secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={ts},v1={digest}"

    def build_webhook(
        self,
        intent_id: str,
        status: Optional[str] = None,
        *,
        event_type: Optional[str] = None,
        created: Optional[int] = None,
    ) -> tuple[dict[str, str], bytes]:
        """Return (headers, body) for a signed payment_intent.* delivery."""
        data = dict(self.intents.get(intent_id) or {"id": intent_id, "metadata": {}})
        if status is not None:
            data["status"] = status
        created = int(created if created is not None else time.time())
        event = {
            "id": f"evt_fake_{uuid.uuid4().hex[:16]}",
            "type": event_type or f"payment_intent.{data.get('status', 'updated')}",
            "created": created,
            "data": {"object": {"id": intent_id, "object": "payment_intent",
                                "status": data.get("status"), "metadata": data.get("metadata", {})}},
        }
        body = json.dumps(event).encode("utf-8")
        return {SIGNATURE_HEADER: self.sign(body, created), "Content-Type": "application/json"}, body

    def _verify(self, header: str, body: bytes) -> None:
        parts = dict(item.split("=", 1) for item in header.split(",") if "=" in item)
        ts, provided = parts.get("t"), parts.get("v1")
        if not ts or not provided or not ts.isdigit():
            raise PaymentSignatureError("Malformed signature header", provider=self.provider)
        if self._tolerance and abs(time.time() - int(ts)) > self._tolerance:
            raise PaymentSignatureError("Timestamp outside the tolerance zone", provider=self.provider)
        expected = self.sign(body, int(ts)).split("v1=", 1)[1]
        if not hmac.compare_digest(expected, provided):
            raise PaymentSignatureError("Signature mismatch", provider=self.provider)

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        sig = self._header(headers, SIGNATURE_HEADER)
        if not sig:
            raise PaymentSignatureError(f"Missing {SIGNATURE_HEADER} header", provider=self.provider)
        self._verify(sig, body)
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise PaymentSignatureError("Invalid payload", provider=self.provider) from exc
        return WebhookEvent(
            id=str(event.get("id")),
            type=str(event.get("type")),
            provider=self.provider,
            data=event.get("data", {}) or {},
            created=event.get("created"),
            raw_headers=headers,
            raw_body=body,
        )
