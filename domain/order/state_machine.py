"""
Order status state machine.

    pending -> processing -> shipped -> delivered
    pending | processing -> cancelled

delivered and cancelled are terminal.
"""
from __future__ import annotations

from enum import Enum

from .entity import OrderStatus


PROGRESSION: tuple[OrderStatus, ...] = (
    OrderStatus.PENDING,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
)

ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.PROCESSING, OrderStatus.CANCELLED}),
    OrderStatus.PROCESSING: frozenset({OrderStatus.SHIPPED, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED})


class TransitionDecision(str, Enum):
    APPLY = "apply"
    ALREADY_APPLIED = "already_applied"
    ILLEGAL = "illegal"


def rank(status: OrderStatus) -> int | None:
    """Position in the forward progression; None for cancelled."""
    try:
        return PROGRESSION.index(status)
    except ValueError:
        return None


def is_allowed(current: OrderStatus, target: OrderStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def decide(
    current: OrderStatus,
    target: OrderStatus,
    *,
    allow_superseded: bool = True,
) -> TransitionDecision:
    """Classify moving from ``current`` to ``target``.

    Reaching the status the order already holds is ALREADY_APPLIED. With
    ``allow_superseded`` a status the order has already moved past along the
    forward progression is ALREADY_APPLIED too (late gateway reports);
    without it that is ILLEGAL (an operator asking to move backwards).
    Anything else outside the transition table is ILLEGAL.
    """
    current = OrderStatus(current)
    target = OrderStatus(target)
    if current == target:
        return TransitionDecision.ALREADY_APPLIED
    if is_allowed(current, target):
        return TransitionDecision.APPLY
    current_rank, target_rank = rank(current), rank(target)
    if (
        allow_superseded
        and current_rank is not None
        and target_rank is not None
        and current_rank >= target_rank
    ):
        return TransitionDecision.ALREADY_APPLIED
    return TransitionDecision.ILLEGAL


def is_valid_history(statuses: list[OrderStatus]) -> bool:
    """True when a recorded status sequence could come out of this machine."""
    for previous, nxt in zip(statuses, statuses[1:]):
        if not is_allowed(OrderStatus(previous), OrderStatus(nxt)):
            return False
    return True
