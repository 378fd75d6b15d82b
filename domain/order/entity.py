"""
订单领域实体 - 订单聚合根
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from domain.common.exceptions import DomainValidationException


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


def _ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """确保时间为 UTC 时区"""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


@dataclass(frozen=True)
class OrderItem:
    """Line item snapshot taken at order time; never follows later catalog edits."""

    product_id: str
    product_name: str
    unit_price: int  # minor units
    quantity: int
    product_image: Optional[str] = None

    def __post_init__(self):
        if not self.product_id:
            raise DomainValidationException("Item product_id is required", field="items.product_id")
        if self.quantity <= 0:
            raise DomainValidationException(
                f"Item quantity must be positive: {self.quantity}", field="items.quantity"
            )
        if self.unit_price < 0:
            raise DomainValidationException(
                f"Item price must not be negative: {self.unit_price}", field="items.product_price"
            )

    @property
    def subtotal(self) -> int:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "product_image": self.product_image,
            "subtotal": self.subtotal,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OrderItem":
        return cls(
            product_id=str(data["product_id"]),
            product_name=data.get("product_name") or "",
            unit_price=int(data["unit_price"]),
            quantity=int(data["quantity"]),
            product_image=data.get("product_image"),
        )


@dataclass(frozen=True)
class CustomerSnapshot:
    """Customer contact details as given at checkout."""

    name: str
    email: str
    phone: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None

    def __post_init__(self):
        if not self.name:
            raise DomainValidationException("Customer name is required", field="customer_info.name")
        if not self.email or "@" not in self.email:
            raise DomainValidationException(f"Invalid customer email: {self.email}", field="customer_info.email")

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "address": self.address,
            "city": self.city,
            "postal_code": self.postal_code,
            "country": self.country,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CustomerSnapshot":
        return cls(**{k: data.get(k) for k in
                      ("name", "email", "phone", "address", "city", "postal_code", "country")})


@dataclass
class Order:
    """
    订单聚合根

    业务规则：
    1. total = subtotal + shipping_cost，subtotal 等于明细小计之和
    2. 金额以最小货币单位（整数）保存
    3. 支付意图一旦绑定，不可改绑到其他意图
    4. 状态只能由对账引擎按状态机推进（见 state_machine）
    """

    id: str
    order_number: str
    status: OrderStatus
    currency: str
    subtotal: int
    shipping_cost: int
    total: int
    customer: CustomerSnapshot
    items: tuple[OrderItem, ...]

    # Payment intent reference (mirrors gateway truth, never authored here)
    payment_intent_id: Optional[str] = None
    payment_status: Optional[str] = None
    payment_status_observed_at: Optional[datetime] = None
    # 定时补查网关的最近时间
    last_polled_at: Optional[datetime] = None

    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    metadata: dict = field(default_factory=dict)

    def __post_init__(self):
        self.items = tuple(self.items)
        self.status = OrderStatus(self.status)
        self._validate_currency()
        self._validate_totals()
        self.created_at = _ensure_utc(self.created_at)
        self.updated_at = _ensure_utc(self.updated_at)
        self.payment_status_observed_at = _ensure_utc(self.payment_status_observed_at)
        self.last_polled_at = _ensure_utc(self.last_polled_at)
        if self.metadata is None:
            self.metadata = {}

    def _validate_currency(self) -> None:
        if not self.currency or len(self.currency) != 3 or not self.currency.isalpha():
            raise DomainValidationException(f"Invalid currency code: {self.currency}", field="currency")
        self.currency = self.currency.upper()

    def _validate_totals(self) -> None:
        if not self.items:
            raise DomainValidationException("Order must contain at least one item", field="items")
        if self.shipping_cost < 0:
            raise DomainValidationException(
                f"Shipping cost must not be negative: {self.shipping_cost}", field="shipping_cost"
            )
        items_total = sum(item.subtotal for item in self.items)
        if self.subtotal != items_total:
            raise DomainValidationException(
                f"Subtotal {self.subtotal} does not match line items {items_total}",
                field="subtotal",
                details={"subtotal": self.subtotal, "items_total": items_total},
            )
        if self.total != self.subtotal + self.shipping_cost:
            raise DomainValidationException(
                f"Total {self.total} must equal subtotal {self.subtotal} + shipping {self.shipping_cost}",
                field="amount",
                details={
                    "total": self.total,
                    "subtotal": self.subtotal,
                    "shipping_cost": self.shipping_cost,
                },
            )

    def attach_payment_intent(self, payment_intent_id: str) -> None:
        """Bind the gateway intent; rebinding to a different intent is refused."""
        if not payment_intent_id:
            raise DomainValidationException("payment_intent_id is required", field="payment_intent_id")
        if self.payment_intent_id and self.payment_intent_id != payment_intent_id:
            raise DomainValidationException(
                "Order already bound to another payment intent",
                field="payment_intent_id",
                details={"current": self.payment_intent_id, "requested": payment_intent_id},
            )
        self.payment_intent_id = payment_intent_id
        self.updated_at = datetime.now(timezone.utc)

    def is_terminal(self) -> bool:
        return self.status in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

    def snapshot(self) -> dict[str, Any]:
        """Plain dict view handed to notification channels."""
        return {
            "order_id": self.id,
            "order_number": self.order_number,
            "status": self.status.value,
            "currency": self.currency,
            "subtotal": self.subtotal,
            "shipping_cost": self.shipping_cost,
            "total": self.total,
            "customer": self.customer.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "payment_intent_id": self.payment_intent_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
