"""
订单数据库模型 - SQLAlchemy ORM模型
注意：这是基础设施层的实现细节，不是领域模型
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, DateTime, Text, JSON,
    Index, ForeignKey, CheckConstraint
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    """
    订单数据库模型

    金额统一以最小货币单位（整数）存储；
    所有业务规则都在 domain.order.entity.Order 中
    """
    __tablename__ = "orders"

    # 主键（UUID 字符串，创建支付意图前即已生成）
    id = Column(String(36), primary_key=True, comment="订单ID")
    order_number = Column(String(16), unique=True, index=True, nullable=False, comment="订单号（8位字母数字）")

    # 状态
    status = Column(
        String(20),
        nullable=False,
        default="pending",
        index=True,
        comment="订单状态: pending/processing/shipped/delivered/cancelled"
    )

    # 金额信息（最小货币单位）
    currency = Column(String(3), nullable=False, comment="货币代码 ISO-4217")
    subtotal = Column(BigInteger, nullable=False, comment="商品小计")
    shipping_cost = Column(BigInteger, nullable=False, default=0, comment="运费")
    total = Column(BigInteger, nullable=False, comment="应付总额")

    # 快照
    customer_info = Column(JSON, nullable=False, comment="客户联系信息快照")
    items = Column(JSON, nullable=False, comment="下单明细快照")
    customer_email = Column(String(255), nullable=False, index=True, comment="客户邮箱（小写，便于查询）")

    # 支付意图镜像
    payment_intent_id = Column(String(255), unique=True, nullable=True, comment="网关支付意图ID")
    payment_status = Column(String(50), nullable=True, comment="最近一次观测到的网关状态")
    payment_status_observed_at = Column(DateTime(timezone=True), nullable=True, comment="最近一次观测时间")
    last_polled_at = Column(DateTime(timezone=True), nullable=True, comment="最近一次定时补查时间")

    notes = Column(Text, nullable=True, comment="订单备注")
    extra_metadata = Column("metadata", JSON, nullable=True, comment="扩展元数据")

    # 时间戳
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
        comment="创建时间"
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="更新时间"
    )

    __table_args__ = (
        Index("ix_orders_status_created_at", "status", "created_at"),
        CheckConstraint("total = subtotal + shipping_cost", name="ck_orders_total"),
    )

    def __repr__(self):
        return f"<OrderModel(id={self.id}, order_number={self.order_number}, status={self.status})>"


class OrderTrackingModel(Base):
    """订单跟踪账本（只追加）"""
    __tablename__ = "order_tracking"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(
        String(36),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
        comment="订单ID"
    )
    kind = Column(String(20), nullable=False, comment="status_change/informational")
    event_type = Column(String(30), nullable=False, comment="事件类型")
    status = Column(String(20), nullable=True, comment="状态变更后的订单状态")
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=False)
    location = Column(String(255), nullable=True)
    tracking_number = Column(String(100), nullable=True)
    created_by = Column(String(20), nullable=False, default="system", comment="system/gateway/customer/admin")
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        comment="创建时间"
    )

    __table_args__ = (
        Index("ix_order_tracking_order_created", "order_id", "created_at"),
    )

    def __repr__(self):
        return f"<OrderTrackingModel(id={self.id}, order_id={self.order_id}, event_type={self.event_type})>"
