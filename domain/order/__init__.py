"""订单领域"""
from .entity import CustomerSnapshot, Order, OrderItem, OrderStatus
from .tracking import EventActor, TrackingEvent, TrackingEventKind, TrackingEventType

__all__ = [
    "CustomerSnapshot",
    "EventActor",
    "Order",
    "OrderItem",
    "OrderStatus",
    "TrackingEvent",
    "TrackingEventKind",
    "TrackingEventType",
]
