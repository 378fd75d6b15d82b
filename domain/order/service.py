"""
订单领域服务 - 订单创建的业务规则
"""
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional, Sequence

from .entity import CustomerSnapshot, Order, OrderItem, OrderStatus
from .order_number import OrderNumberGenerator
from .repository import OrderRepository, TrackingRepository
from .tracking import TrackingEvent


class OrderDomainService:
    """订单领域服务 - 编排订单创建流程"""

    def __init__(
        self,
        order_repository: OrderRepository,
        tracking_repository: Optional[TrackingRepository] = None,
        *,
        number_max_attempts: int = 10,
    ):
        self.order_repository = order_repository
        self.tracking_repository = tracking_repository
        self.number_generator = OrderNumberGenerator(
            order_repository.exists_by_order_number,
            max_attempts=number_max_attempts,
        )

    async def draft_order(
        self,
        *,
        currency: str,
        items: Sequence[OrderItem],
        customer: CustomerSnapshot,
        shipping_cost: int,
        total: int,
        notes: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Order:
        """构建待支付订单（未持久化）

        业务规则：
        1. 小计由明细重新计算，不信任调用方
        2. 调用方提交的 total 必须等于 subtotal + shipping_cost
        3. 订单号在此生成，碰撞时重试，耗尽后降级
        """
        items = tuple(items)
        subtotal = sum(item.subtotal for item in items)
        now = datetime.now(timezone.utc)
        # 先校验金额，再占用订单号
        order = Order(
            id=str(uuid.uuid4()),
            order_number="",
            status=OrderStatus.PENDING,
            currency=currency,
            subtotal=subtotal,
            shipping_cost=shipping_cost,
            total=total,
            customer=customer,
            items=items,
            notes=notes,
            created_at=now,
            updated_at=now,
            metadata=dict(metadata or {}),
        )
        order.order_number = await self.number_generator.generate()
        return order

    async def place_order(self, order: Order) -> tuple[Order, TrackingEvent]:
        """持久化订单并同步写入首条跟踪事件（order placed）"""
        if self.tracking_repository is None:
            raise RuntimeError("tracking_repository is required to place orders")
        created = await self.order_repository.create(order)
        event = await self.tracking_repository.append(TrackingEvent.order_placed(created))
        return created, event
