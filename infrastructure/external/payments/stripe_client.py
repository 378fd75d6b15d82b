"""
Stripe PaymentIntents adapter using the official stripe-python SDK.

Notes on SDK usage:
- The SDK is synchronous; calls run in a worker thread with a timeout and a
  tenacity retry on rate limits and connection errors.
- The API key is passed per request so the module-level ``stripe.api_key``
  is never mutated.
- Webhook verification uses ``stripe.Webhook.construct_event`` with the
  ``Stripe-Signature`` header.
"""
from __future__ import annotations

import json
from typing import Any, Optional

import stripe

from application.dtos.payments import CreateIntent, PaymentIntent, WebhookEvent
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
)
from core.settings import payment_settings
from core.logging_config import get_logger


logger = get_logger(__name__)

_RECOVERABLE_ERRORS = (stripe.RateLimitError, stripe.APIConnectionError)


class StripeClient(BasePaymentClient):
    provider = "stripe"

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        tolerance_seconds: Optional[int] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
        )
        self._secret_key = secret_key or payment_settings.stripe.secret_key
        self._webhook_secret = webhook_secret or payment_settings.stripe.webhook_secret
        self._tolerance = (
            tolerance_seconds if tolerance_seconds is not None else payment_settings.webhook.tolerance_seconds
        )
        if not self._secret_key:
            raise RuntimeError("STRIPE__SECRET_KEY not configured")

    @staticmethod
    def _field(obj: Any, name: str) -> Any:
        try:
            return obj[name]
        except (KeyError, TypeError):
            return None

    def _to_intent(self, pi: Any) -> PaymentIntent:
        metadata = self._field(pi, "metadata") or {}
        return PaymentIntent(
            intent_id=str(pi["id"]),
            status=self._map_status(pi["status"]),
            provider=self.provider,
            client_secret=self._field(pi, "client_secret"),
            amount=self._field(pi, "amount"),
            currency=(self._field(pi, "currency") or "").upper() or None,
            metadata={str(k): metadata[k] for k in metadata.keys()},
        )

    def _translate(self, exc: Exception, operation: str) -> Exception:
        code = getattr(exc, "code", None)
        if isinstance(exc, _RECOVERABLE_ERRORS):
            return PaymentRecoverableError(str(exc), provider=self.provider, operation=operation,
                                           provider_code=code)
        return PaymentProviderError(str(exc), provider=self.provider, operation=operation, provider_code=code)

    async def create_intent(self, req: CreateIntent) -> PaymentIntent:  # type: ignore[override]
        async def _create() -> Any:
            try:
                return await self._call_blocking(
                    stripe.PaymentIntent.create,
                    amount=req.amount,
                    currency=req.currency.lower(),
                    metadata=req.metadata,
                    automatic_payment_methods={"enabled": True},
                    idempotency_key=req.idempotency_key,
                    api_key=self._secret_key,
                )
            except stripe.StripeError as exc:
                raise self._translate(exc, "create_intent") from exc

        pi = await self._retry(_create)
        intent = self._to_intent(pi)
        self._log("stripe_intent_created", intent_id=intent.intent_id, status=intent.status, amount=req.amount)
        return intent

    async def retrieve_intent(self, intent_id: str) -> PaymentIntent:  # type: ignore[override]
        async def _retrieve() -> Any:
            try:
                return await self._call_blocking(
                    stripe.PaymentIntent.retrieve,
                    intent_id,
                    api_key=self._secret_key,
                )
            except stripe.StripeError as exc:
                raise self._translate(exc, "retrieve_intent") from exc

        pi = await self._retry(_retrieve)
        intent = self._to_intent(pi)
        self._log("stripe_intent_retrieved", intent_id=intent.intent_id, status=intent.status)
        return intent

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        if not self._webhook_secret:
            raise PaymentSignatureError("Missing STRIPE__WEBHOOK_SECRET", provider=self.provider)
        sig = self._header(headers, "Stripe-Signature")
        if not sig:
            raise PaymentSignatureError("Missing Stripe-Signature header", provider=self.provider)
        try:
            stripe.Webhook.construct_event(
                payload=body,
                sig_header=sig,
                secret=self._webhook_secret,
                tolerance=self._tolerance,
            )
            # Signature is verified; read plain JSON instead of SDK objects
            event = json.loads(body)
        except (stripe.SignatureVerificationError, ValueError) as exc:
            logger.warning("stripe_webhook_rejected", error=str(exc))
            raise PaymentSignatureError(str(exc), provider=self.provider) from exc
        return WebhookEvent(
            id=str(event.get("id")),
            type=str(event.get("type")),
            provider=self.provider,
            data=event.get("data", {}) or {},
            created=event.get("created"),
            raw_headers=headers,
            raw_body=body,
        )
