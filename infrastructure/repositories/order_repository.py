"""
订单与跟踪账本仓储实现 - 使用SQLAlchemy实现数据访问
"""
from datetime import datetime, timezone
from typing import Optional, List

from sqlalchemy import and_, exists, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from domain.order.entity import CustomerSnapshot, Order, OrderItem, OrderStatus
from domain.order.repository import OrderRepository, TrackingRepository
from domain.order.tracking import EventActor, TrackingEvent, TrackingEventKind, TrackingEventType
from infrastructure.models.order import OrderModel, OrderTrackingModel
from core.logging_config import get_logger
from shared.codes.payment_codes import (
    GATEWAY_STATUS_STAGE,
    gateway_status_stage,
    statuses_with_stage,
)


logger = get_logger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLAlchemyOrderRepository(OrderRepository):
    """订单仓储的SQLAlchemy实现"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        """将数据库模型转换为领域实体"""
        return Order(
            id=model.id,
            order_number=model.order_number,
            status=OrderStatus(model.status),
            currency=model.currency,
            subtotal=int(model.subtotal),
            shipping_cost=int(model.shipping_cost),
            total=int(model.total),
            customer=CustomerSnapshot.from_dict(model.customer_info or {}),
            items=tuple(OrderItem.from_dict(i) for i in (model.items or [])),
            payment_intent_id=model.payment_intent_id,
            payment_status=model.payment_status,
            payment_status_observed_at=model.payment_status_observed_at,
            last_polled_at=model.last_polled_at,
            notes=model.notes,
            created_at=model.created_at,
            updated_at=model.updated_at,
            metadata=model.extra_metadata or {},
        )

    def _to_model(self, entity: Order) -> OrderModel:
        """将领域实体转换为数据库模型"""
        return OrderModel(
            id=entity.id,
            order_number=entity.order_number,
            status=entity.status.value,
            currency=entity.currency,
            subtotal=entity.subtotal,
            shipping_cost=entity.shipping_cost,
            total=entity.total,
            customer_info=entity.customer.to_dict(),
            items=[item.to_dict() for item in entity.items],
            customer_email=entity.customer.email.strip().lower(),
            payment_intent_id=entity.payment_intent_id,
            payment_status=entity.payment_status,
            payment_status_observed_at=_as_utc(entity.payment_status_observed_at),
            last_polled_at=_as_utc(entity.last_polled_at),
            notes=entity.notes,
            extra_metadata=entity.metadata,
            created_at=entity.created_at or datetime.now(timezone.utc),
            updated_at=entity.updated_at or datetime.now(timezone.utc),
        )

    async def create(self, order: Order) -> Order:
        """创建订单"""
        db_order = self._to_model(order)
        self.session.add(db_order)
        await self.session.flush()
        await self.session.refresh(db_order)
        logger.info(
            "order_created",
            order_id=db_order.id,
            order_number=db_order.order_number,
            total=db_order.total,
            currency=db_order.currency,
        )
        return self._to_entity(db_order)

    async def _get_one(self, *criteria) -> Optional[Order]:
        # 条件写绕过了会话缓存，读取时强制刷新
        result = await self.session.execute(
            select(OrderModel).where(*criteria).execution_options(populate_existing=True)
        )
        db_order = result.scalar_one_or_none()
        return self._to_entity(db_order) if db_order else None

    async def get_by_id(self, order_id: str) -> Optional[Order]:
        """根据ID获取订单"""
        return await self._get_one(OrderModel.id == order_id)

    async def get_by_payment_intent(self, payment_intent_id: str) -> Optional[Order]:
        """根据支付意图ID获取订单"""
        return await self._get_one(OrderModel.payment_intent_id == payment_intent_id)

    async def get_by_order_number(self, order_number: str) -> Optional[Order]:
        """根据订单号获取订单"""
        return await self._get_one(OrderModel.order_number == order_number)

    async def exists_by_order_number(self, order_number: str) -> bool:
        """检查订单号是否已被占用"""
        result = await self.session.execute(
            select(exists().where(OrderModel.order_number == order_number))
        )
        return bool(result.scalar())

    async def update_status(
        self,
        order_id: str,
        new_status: OrderStatus,
        expected_status: Optional[OrderStatus] = None,
    ) -> bool:
        """条件更新：WHERE status = expected，受影响行数为 0 表示竞争失败"""
        stmt = (
            update(OrderModel)
            .where(OrderModel.id == order_id)
            .values(status=OrderStatus(new_status).value, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        if expected_status is not None:
            stmt = stmt.where(OrderModel.status == OrderStatus(expected_status).value)
        result = await self.session.execute(stmt)
        applied = (result.rowcount or 0) > 0
        if applied:
            logger.info(
                "order_status_updated",
                order_id=order_id,
                status=OrderStatus(new_status).value,
                expected_status=expected_status.value if expected_status else None,
            )
        return applied

    async def attach_payment_intent(self, order_id: str, payment_intent_id: str) -> bool:
        """仅当未绑定或已绑定同一意图时写入"""
        result = await self.session.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                or_(
                    OrderModel.payment_intent_id.is_(None),
                    OrderModel.payment_intent_id == payment_intent_id,
                ),
            )
            .values(payment_intent_id=payment_intent_id, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) > 0

    async def record_payment_observation(
        self,
        order_id: str,
        payment_status: str,
        observed_at: datetime,
    ) -> bool:
        """镜像网关状态：生命周期阶段更靠后的观测优先，同阶段内按时间"""
        observed_at = _as_utc(observed_at)
        stage = gateway_status_stage(payment_status)
        stored = OrderModel.payment_status
        stored_is_earlier_stage = [stored.in_(statuses_with_stage(lambda s: s < stage))]
        if stage > 0:
            # 未知状态视为阶段 0
            stored_is_earlier_stage.append(stored.not_in(list(GATEWAY_STATUS_STAGE)))
        result = await self.session.execute(
            update(OrderModel)
            .where(
                OrderModel.id == order_id,
                or_(
                    OrderModel.payment_status_observed_at.is_(None),
                    stored.is_(None),
                    and_(
                        stored.not_in(statuses_with_stage(lambda s: s > stage)),
                        or_(
                            *stored_is_earlier_stage,
                            OrderModel.payment_status_observed_at <= observed_at,
                        ),
                    ),
                ),
            )
            .values(
                payment_status=payment_status,
                payment_status_observed_at=observed_at,
                updated_at=datetime.now(timezone.utc),
            )
            .execution_options(synchronize_session=False)
        )
        return (result.rowcount or 0) > 0

    async def list_stale_pending(
        self,
        older_than: datetime,
        limit: int = 50,
        newer_than: Optional[datetime] = None,
    ) -> List[Order]:
        """列出待补查的 pending 订单，未补查过的优先，其余按补查时间轮转"""
        criteria = [
            OrderModel.status == OrderStatus.PENDING.value,
            OrderModel.payment_intent_id.is_not(None),
            OrderModel.created_at < _as_utc(older_than),
        ]
        if newer_than is not None:
            criteria.append(OrderModel.created_at > _as_utc(newer_than))
        result = await self.session.execute(
            select(OrderModel)
            .where(*criteria)
            .order_by(
                OrderModel.last_polled_at.asc().nulls_first(),
                OrderModel.created_at.asc(),
            )
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def mark_polled(self, order_ids: List[str], polled_at: datetime) -> int:
        """记录补查时间"""
        if not order_ids:
            return 0
        result = await self.session.execute(
            update(OrderModel)
            .where(OrderModel.id.in_(order_ids))
            .values(last_polled_at=_as_utc(polled_at))
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0


class SQLAlchemyTrackingRepository(TrackingRepository):
    """跟踪账本仓储的SQLAlchemy实现（只追加）"""

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderTrackingModel) -> TrackingEvent:
        return TrackingEvent(
            id=model.id,
            order_id=model.order_id,
            kind=TrackingEventKind(model.kind),
            event_type=TrackingEventType(model.event_type),
            title=model.title,
            description=model.description,
            status=OrderStatus(model.status) if model.status else None,
            location=model.location,
            tracking_number=model.tracking_number,
            created_by=EventActor(model.created_by),
            created_at=_as_utc(model.created_at),
        )

    def _to_model(self, entity: TrackingEvent) -> OrderTrackingModel:
        return OrderTrackingModel(
            order_id=entity.order_id,
            kind=entity.kind.value,
            event_type=entity.event_type.value,
            status=entity.status.value if entity.status else None,
            title=entity.title,
            description=entity.description,
            location=entity.location,
            tracking_number=entity.tracking_number,
            created_by=entity.created_by.value,
            created_at=_as_utc(entity.created_at),
        )

    async def append(self, event: TrackingEvent) -> TrackingEvent:
        """追加一条跟踪事件"""
        db_event = self._to_model(event)
        self.session.add(db_event)
        await self.session.flush()
        await self.session.refresh(db_event)
        logger.info(
            "tracking_event_appended",
            order_id=db_event.order_id,
            tracking_event_id=db_event.id,
            event_type=db_event.event_type,
            status=db_event.status,
        )
        return self._to_entity(db_event)

    async def list_by_order(self, order_id: str) -> List[TrackingEvent]:
        """按创建时间顺序返回跟踪事件"""
        result = await self.session.execute(
            select(OrderTrackingModel)
            .where(OrderTrackingModel.order_id == order_id)
            .order_by(OrderTrackingModel.created_at.asc(), OrderTrackingModel.id.asc())
        )
        return [self._to_entity(m) for m in result.scalars().all()]
