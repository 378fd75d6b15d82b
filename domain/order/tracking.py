"""
Tracking ledger entries - append-only audit trail of an order.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException
from .entity import Order, OrderStatus


class TrackingEventKind(str, Enum):
    STATUS_CHANGE = "status_change"
    INFORMATIONAL = "informational"


class TrackingEventType(str, Enum):
    ORDER_CREATED = "order_created"
    PAYMENT_CONFIRMED = "payment_confirmed"
    PROCESSING_STARTED = "processing_started"
    SHIPPED = "shipped"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    NOTE_ADDED = "note_added"


class EventActor(str, Enum):
    SYSTEM = "system"
    GATEWAY = "gateway"
    CUSTOMER = "customer"
    ADMIN = "admin"


NOTIFIABLE_EVENT_TYPES = frozenset({
    TrackingEventType.PROCESSING_STARTED,
    TrackingEventType.SHIPPED,
    TrackingEventType.OUT_FOR_DELIVERY,
    TrackingEventType.DELIVERED,
    TrackingEventType.CANCELLED,
})

INFORMATIONAL_EVENT_TYPES = frozenset({
    TrackingEventType.PAYMENT_CONFIRMED,
    TrackingEventType.OUT_FOR_DELIVERY,
    TrackingEventType.NOTE_ADDED,
})

# status -> (event type, default title, default description)
STATUS_EVENT_TEMPLATES: dict[OrderStatus, tuple[TrackingEventType, str, str]] = {
    OrderStatus.PENDING: (
        TrackingEventType.ORDER_CREATED,
        "Order placed",
        "Your order was created and is awaiting payment.",
    ),
    OrderStatus.PROCESSING: (
        TrackingEventType.PROCESSING_STARTED,
        "Payment processing",
        "Payment confirmed. Your order is being prepared.",
    ),
    OrderStatus.SHIPPED: (
        TrackingEventType.SHIPPED,
        "Order shipped",
        "Your order has been shipped and is on its way.",
    ),
    OrderStatus.DELIVERED: (
        TrackingEventType.DELIVERED,
        "Order delivered",
        "Your order was delivered. We hope you enjoy it!",
    ),
    OrderStatus.CANCELLED: (
        TrackingEventType.CANCELLED,
        "Order cancelled",
        "Your order was cancelled. Contact us if you have any questions.",
    ),
}

INFORMATIONAL_TITLES: dict[TrackingEventType, str] = {
    TrackingEventType.PAYMENT_CONFIRMED: "Payment confirmed",
    TrackingEventType.OUT_FOR_DELIVERY: "Out for delivery",
    TrackingEventType.NOTE_ADDED: "Order update",
}


@dataclass(frozen=True)
class TrackingEvent:
    """One ledger row. Never updated or deleted once stored."""

    order_id: str
    kind: TrackingEventKind
    event_type: TrackingEventType
    title: str
    description: str
    status: Optional[OrderStatus] = None
    location: Optional[str] = None
    tracking_number: Optional[str] = None
    created_by: EventActor = EventActor.SYSTEM
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[int] = None

    def __post_init__(self):
        if self.kind == TrackingEventKind.STATUS_CHANGE and self.status is None:
            raise DomainValidationException("Status-change events must carry a status", field="status")
        if self.kind == TrackingEventKind.INFORMATIONAL and self.status is not None:
            raise DomainValidationException("Informational events must not carry a status", field="status")
        if not self.title:
            raise DomainValidationException("Tracking event title is required", field="title")

    @property
    def notifiable(self) -> bool:
        return self.event_type in NOTIFIABLE_EVENT_TYPES

    @classmethod
    def order_placed(cls, order: Order) -> "TrackingEvent":
        return cls.status_change(
            order.id,
            OrderStatus.PENDING,
            actor=EventActor.SYSTEM,
            created_at=order.created_at,
        )

    @classmethod
    def status_change(
        cls,
        order_id: str,
        status: OrderStatus,
        *,
        actor: EventActor,
        description: Optional[str] = None,
        location: Optional[str] = None,
        tracking_number: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "TrackingEvent":
        event_type, title, default_description = STATUS_EVENT_TEMPLATES[OrderStatus(status)]
        return cls(
            order_id=order_id,
            kind=TrackingEventKind.STATUS_CHANGE,
            event_type=event_type,
            title=title,
            description=description or default_description,
            status=OrderStatus(status),
            location=location,
            tracking_number=tracking_number,
            created_by=actor,
            created_at=created_at or datetime.now(timezone.utc),
        )

    @classmethod
    def informational(
        cls,
        order_id: str,
        event_type: TrackingEventType,
        *,
        actor: EventActor,
        description: str,
        title: Optional[str] = None,
        location: Optional[str] = None,
        tracking_number: Optional[str] = None,
    ) -> "TrackingEvent":
        event_type = TrackingEventType(event_type)
        if event_type not in INFORMATIONAL_EVENT_TYPES:
            raise DomainValidationException(
                f"{event_type.value} is not an informational event type", field="event_type"
            )
        return cls(
            order_id=order_id,
            kind=TrackingEventKind.INFORMATIONAL,
            event_type=event_type,
            title=title or INFORMATIONAL_TITLES[event_type],
            description=description,
            status=None,
            location=location,
            tracking_number=tracking_number,
            created_by=actor,
        )
