"""Infrastructure models package exports."""
from .base import Base, metadata
from .order import OrderModel, OrderTrackingModel

__all__ = [
    "Base",
    "metadata",
    "OrderModel",
    "OrderTrackingModel",
]
