"""
订单相关 DTO（结账、确认支付、管理端状态变更、公开物流查询）
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import EmailStr, Field, field_validator
from pydantic.types import condecimal

from application.dtos.base import DTOBase
from application.dtos.payments import validate_currency
from domain.order.entity import Order, OrderStatus
from domain.order.money import from_minor_units
from domain.order.order_number import format_order_number
from domain.order.tracking import TrackingEvent


class CheckoutItemDTO(DTOBase):
    """下单明细"""
    product_id: str = Field(..., min_length=1)
    product_name: str = Field(..., min_length=1, max_length=255)
    product_price: condecimal(ge=0)  # type: ignore[valid-type]
    quantity: int = Field(..., gt=0)
    product_image: Optional[str] = None


class CustomerInfoDTO(DTOBase):
    """客户联系信息"""
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=32)
    address: Optional[str] = None
    city: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None


class CreateOrderPaymentDTO(DTOBase):
    """创建订单并发起支付

    amount 为客户端提交的应付总额，服务端会与明细重新核对。
    """
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="USD")
    shipping_cost: condecimal(ge=0) = Decimal("0")  # type: ignore[valid-type]
    customer_info: CustomerInfoDTO
    items: list[CheckoutItemDTO] = Field(..., min_length=1)
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return validate_currency(v)


class CheckoutResultDTO(DTOBase):
    order_id: str
    order_number: str
    payment_intent_id: str
    client_secret: Optional[str]
    amount: Decimal
    currency: str
    status: OrderStatus


class ConfirmPaymentDTO(DTOBase):
    payment_intent_id: str = Field(..., min_length=1)
    order_id: str = Field(..., min_length=1)


class AdminStatusUpdateDTO(DTOBase):
    """管理端状态变更（发货、签收、取消）"""
    status: OrderStatus
    note: Optional[str] = Field(None, max_length=1000)
    location: Optional[str] = Field(None, max_length=255)
    tracking_number: Optional[str] = Field(None, max_length=100)


class TrackingEntryCreateDTO(DTOBase):
    """管理端追加信息类跟踪记录（不改变订单状态）"""
    event_type: Literal["payment_confirmed", "out_for_delivery", "note_added"]
    description: str = Field(..., min_length=1, max_length=1000)
    title: Optional[str] = Field(None, max_length=255)
    location: Optional[str] = Field(None, max_length=255)
    tracking_number: Optional[str] = Field(None, max_length=100)


class OrderTrackLookupDTO(DTOBase):
    """公开查询：订单号 + 下单邮箱"""
    order_number: str = Field(..., min_length=1, max_length=16)
    email: EmailStr


class TrackingEventDTO(DTOBase):
    id: Optional[int]
    kind: str
    event_type: str
    title: str
    description: str
    status: Optional[str]
    location: Optional[str]
    tracking_number: Optional[str]
    created_by: str
    created_at: datetime

    @classmethod
    def from_entity(cls, event: TrackingEvent) -> "TrackingEventDTO":
        return cls(
            id=event.id,
            kind=event.kind.value,
            event_type=event.event_type.value,
            title=event.title,
            description=event.description,
            status=event.status.value if event.status else None,
            location=event.location,
            tracking_number=event.tracking_number,
            created_by=event.created_by.value,
            created_at=event.created_at,
        )


class OrderItemDTO(DTOBase):
    product_id: str
    product_name: str
    product_price: Decimal
    quantity: int
    subtotal: Decimal
    product_image: Optional[str]


class OrderDetailDTO(DTOBase):
    """订单详情（含时间线）"""
    id: str
    order_number: str
    display_number: str
    status: OrderStatus
    currency: str
    subtotal: Decimal
    shipping_cost: Decimal
    total: Decimal
    customer_info: dict[str, Any]
    items: list[OrderItemDTO]
    payment_intent_id: Optional[str]
    payment_status: Optional[str]
    notes: Optional[str]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    timeline: list[TrackingEventDTO] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, order: Order, timeline: list[TrackingEvent]) -> "OrderDetailDTO":
        currency = order.currency
        return cls(
            id=order.id,
            order_number=order.order_number,
            display_number=format_order_number(order.order_number),
            status=order.status,
            currency=currency,
            subtotal=from_minor_units(order.subtotal, currency),
            shipping_cost=from_minor_units(order.shipping_cost, currency),
            total=from_minor_units(order.total, currency),
            customer_info=order.customer.to_dict(),
            items=[
                OrderItemDTO(
                    product_id=item.product_id,
                    product_name=item.product_name,
                    product_price=from_minor_units(item.unit_price, currency),
                    quantity=item.quantity,
                    subtotal=from_minor_units(item.subtotal, currency),
                    product_image=item.product_image,
                )
                for item in order.items
            ],
            payment_intent_id=order.payment_intent_id,
            payment_status=order.payment_status,
            notes=order.notes,
            created_at=order.created_at,
            updated_at=order.updated_at,
            timeline=[TrackingEventDTO.from_entity(e) for e in timeline],
        )


class OrderTrackingDTO(DTOBase):
    """公开查询结果：不暴露客户联系方式与支付信息"""
    order_number: str
    display_number: str
    status: OrderStatus
    created_at: Optional[datetime]
    timeline: list[TrackingEventDTO]

    @classmethod
    def from_entity(cls, order: Order, timeline: list[TrackingEvent]) -> "OrderTrackingDTO":
        return cls(
            order_number=order.order_number,
            display_number=format_order_number(order.order_number),
            status=order.status,
            created_at=order.created_at,
            timeline=[TrackingEventDTO.from_entity(e) for e in timeline],
        )
