"""
订单应用服务 - 订单详情、公开物流查询、信息类跟踪记录
"""
from __future__ import annotations

from typing import Callable

from application.dtos.orders import (
    OrderDetailDTO,
    OrderTrackingDTO,
    TrackingEntryCreateDTO,
    TrackingEventDTO,
)
from application.services.notification_dispatcher import NotificationDispatcher
from core.logging_config import get_logger
from domain.common.exceptions import (
    DomainValidationException,
    InvalidStatusTransitionException,
    OrderNotFoundException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import OrderStatus
from domain.order.order_number import is_valid_order_number, parse_order_number
from domain.order.tracking import EventActor, TrackingEvent, TrackingEventType


logger = get_logger(__name__)


class OrderApplicationService:
    """订单应用服务 - 只读查询与不改变状态的跟踪记录"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        dispatcher: NotificationDispatcher,
    ) -> None:
        self._uow_factory = uow_factory
        self._dispatcher = dispatcher

    async def get_order(self, order_id: str) -> OrderDetailDTO:
        """获取订单详情（含完整时间线）"""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id=order_id)
            timeline = await uow.tracking_repository.list_by_order(order.id)
        return OrderDetailDTO.from_entity(order, timeline)

    async def track_order(self, order_number: str, email: str) -> OrderTrackingDTO:
        """公开查询：订单号与下单邮箱都匹配才返回，任何不匹配都视为不存在"""
        number = parse_order_number(order_number)
        if not is_valid_order_number(number):
            raise DomainValidationException("Invalid order number format", field="order_number")
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_number(number)
            if order is None or order.customer.email.strip().lower() != email.strip().lower():
                raise OrderNotFoundException(order_number=number)
            timeline = await uow.tracking_repository.list_by_order(order.id)
        return OrderTrackingDTO.from_entity(order, timeline)

    async def add_tracking_entry(self, order_id: str, payload: TrackingEntryCreateDTO) -> TrackingEventDTO:
        """追加信息类跟踪记录；派送中（out_for_delivery）要求订单已发货"""
        event_type = TrackingEventType(payload.event_type)
        async with self._uow_factory() as uow:
            order = await uow.order_repository.get_by_id(order_id)
            if order is None:
                raise OrderNotFoundException(order_id=order_id)
            if event_type == TrackingEventType.OUT_FOR_DELIVERY and order.status != OrderStatus.SHIPPED:
                raise InvalidStatusTransitionException(order.id, order.status.value, event_type.value)
            event = await uow.tracking_repository.append(
                TrackingEvent.informational(
                    order.id,
                    event_type,
                    actor=EventActor.ADMIN,
                    description=payload.description,
                    title=payload.title,
                    location=payload.location,
                    tracking_number=payload.tracking_number,
                )
            )
        logger.info(
            "tracking_entry_added",
            order_id=order.id,
            event_type=event_type.value,
            tracking_event_id=event.id,
        )
        self._dispatcher.dispatch(order, event)
        return TrackingEventDTO.from_entity(event)
