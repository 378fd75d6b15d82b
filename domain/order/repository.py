"""
订单仓储接口 - 定义订单与跟踪账本的数据访问抽象
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, List

from .entity import Order, OrderStatus
from .tracking import TrackingEvent


class OrderRepository(ABC):
    """订单仓储抽象接口 - 只定义能做什么，不管怎么做"""

    @abstractmethod
    async def create(self, order: Order) -> Order:
        """创建订单"""
        pass

    @abstractmethod
    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        pass

    @abstractmethod
    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        """根据支付意图ID获取订单"""
        pass

    @abstractmethod
    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        """根据订单号获取订单"""
        pass

    @abstractmethod
    async def exists_by_order_number(self, order_number: str) -> bool:
        """检查订单号是否已被占用"""
        pass

    @abstractmethod
    async def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_status: Optional[OrderStatus] = None,
    ) -> bool:
        """条件写：仅当当前状态仍为 expected_status 时写入，返回是否实际写入"""
        pass

    @abstractmethod
    async def attach_payment_intent(self, order_id: str, payment_intent_id: str) -> bool:
        """绑定支付意图；已绑定其他意图时返回 False"""
        pass

    @abstractmethod
    async def record_payment_observation(
        self,
        order_id: str,
        payment_status: str,
        observed_at: datetime,
    ) -> bool:
        """镜像网关状态

        先按支付意图生命周期阶段比较，同一阶段内再按观测时间比较；
        被已记录观测取代时返回 False 且不写入。
        """
        pass

    @abstractmethod
    async def list_stale_pending(
        self,
        older_than: datetime,
        limit: int = 50,
        newer_than: Optional[datetime] = None,
    ) -> List[Order]:
        """列出创建时间在 (newer_than, older_than) 内、仍为 pending 且已绑定支付意图的订单

        从未补查过的订单优先，其余按最近补查时间由远到近轮转。
        """
        pass

    @abstractmethod
    async def mark_polled(self, order_ids: List[str], polled_at: datetime) -> int:
        """记录补查时间，返回更新行数"""
        pass


class TrackingRepository(ABC):
    """跟踪账本抽象接口 - 只追加，不更新不删除"""

    @abstractmethod
    async def append(self, event: TrackingEvent) -> TrackingEvent:
        """追加一条跟踪事件"""
        pass

    @abstractmethod
    async def list_by_order(self, order_id: str) -> List[TrackingEvent]:
        """按创建时间顺序返回订单的全部跟踪事件"""
        pass
