"""
Payment DTOs (Pydantic v2) used at application boundaries.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field, ConfigDict, field_validator

from shared.codes.payment_codes import PAYMENT_INTENT_EVENT_PREFIX

# Common ISO-4217 currencies (extend as needed)
ISO_4217 = {
    "USD", "EUR", "GBP", "CNY", "JPY", "KRW", "HKD", "AUD", "CAD", "SGD",
}


def validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


def observation_clock() -> datetime:
    """Local observation time at the gateway's whole-second granularity.

    Gateway event timestamps carry no sub-second part; truncating local
    observations the same way lets an event from the same second win the tie.
    """
    return datetime.now(timezone.utc).replace(microsecond=0)


class CreateIntent(BaseModel):
    """Gateway-facing request: amounts are already in minor units."""

    amount: int = Field(..., gt=0)
    currency: str
    metadata: dict[str, str] = Field(default_factory=dict)
    idempotency_key: Optional[str] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return validate_currency(v)


class PaymentIntent(BaseModel):
    intent_id: str
    status: str
    provider: str
    client_secret: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    created: Optional[int] = None
    # raw fields for traceability (optional)
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def is_payment_intent_event(self) -> bool:
        return self.type.startswith(PAYMENT_INTENT_EVENT_PREFIX)

    @property
    def payload_object(self) -> dict[str, Any]:
        obj = self.data.get("object") if isinstance(self.data, dict) else None
        return obj if isinstance(obj, dict) else {}

    @property
    def intent_id(self) -> Optional[str]:
        if not self.is_payment_intent_event:
            return None
        value = self.payload_object.get("id")
        return str(value) if value else None

    @property
    def reported_status(self) -> Optional[str]:
        value = self.payload_object.get("status")
        return str(value) if value else None

    @property
    def observed_at(self) -> datetime:
        if self.created:
            return datetime.fromtimestamp(int(self.created), tz=timezone.utc)
        return observation_clock()
