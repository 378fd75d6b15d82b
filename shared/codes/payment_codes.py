"""
Payment specific codes and gateway status mapping.
"""
from __future__ import annotations

from datetime import datetime
from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002


# Gateway-reported payment intent status -> target order status.
# Anything not listed is a no-op for the order (it stays where it is).
GATEWAY_STATUS_TO_ORDER_STATUS = {
    "succeeded": "processing",
    "canceled": "cancelled",
}

# Stripe event types that carry a payment intent in data.object
PAYMENT_INTENT_EVENT_PREFIX = "payment_intent."


def order_status_for_gateway_status(gateway_status: str | None) -> str | None:
    """Return the order status a gateway status drives to, or None for no-op."""
    if not gateway_status:
        return None
    return GATEWAY_STATUS_TO_ORDER_STATUS.get(gateway_status.lower())


# PaymentIntent lifecycle stage. Observations are ordered by stage first and
# by timestamp only within a stage, so local and gateway clocks never decide
# between "processing" and "succeeded". Unlisted statuses sit at stage 0.
GATEWAY_STATUS_STAGE = {
    "requires_payment_method": 0,
    "requires_confirmation": 0,
    "requires_action": 0,
    "processing": 1,
    "requires_capture": 1,
    "succeeded": 2,
    "canceled": 2,
}


def gateway_status_stage(gateway_status: str | None) -> int:
    return GATEWAY_STATUS_STAGE.get((gateway_status or "").lower(), 0)


def statuses_with_stage(predicate) -> list[str]:
    """Known gateway statuses whose stage satisfies ``predicate``."""
    return [status for status, stage in GATEWAY_STATUS_STAGE.items() if predicate(stage)]


def observation_supersedes(
    stored_status: str | None,
    stored_at: datetime | None,
    new_status: str,
    new_at: datetime,
) -> bool:
    """Whether a new gateway observation replaces the stored one."""
    if stored_status is None or stored_at is None:
        return True
    stored_stage, new_stage = gateway_status_stage(stored_status), gateway_status_stage(new_status)
    if new_stage != stored_stage:
        return new_stage > stored_stage
    return stored_at <= new_at
