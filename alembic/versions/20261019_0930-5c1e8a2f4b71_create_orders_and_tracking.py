"""create_orders_and_order_tracking

Revision ID: 5c1e8a2f4b71
Revises:
Create Date: 2026-10-19 09:30:12.418233

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '5c1e8a2f4b71'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'orders',
        sa.Column('id', sa.String(length=36), nullable=False, comment='订单ID'),
        sa.Column('order_number', sa.String(length=16), nullable=False, comment='订单号（8位字母数字）'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='pending', comment='订单状态: pending/processing/shipped/delivered/cancelled'),
        sa.Column('currency', sa.String(length=3), nullable=False, comment='货币代码 ISO-4217'),
        sa.Column('subtotal', sa.BigInteger(), nullable=False, comment='商品小计'),
        sa.Column('shipping_cost', sa.BigInteger(), nullable=False, server_default='0', comment='运费'),
        sa.Column('total', sa.BigInteger(), nullable=False, comment='应付总额'),
        sa.Column('customer_info', sa.JSON(), nullable=False, comment='客户联系信息快照'),
        sa.Column('items', sa.JSON(), nullable=False, comment='下单明细快照'),
        sa.Column('customer_email', sa.String(length=255), nullable=False, comment='客户邮箱（小写，便于查询）'),
        sa.Column('payment_intent_id', sa.String(length=255), nullable=True, comment='网关支付意图ID'),
        sa.Column('payment_status', sa.String(length=50), nullable=True, comment='最近一次观测到的网关状态'),
        sa.Column('payment_status_observed_at', sa.DateTime(timezone=True), nullable=True, comment='最近一次观测时间'),
        sa.Column('notes', sa.Text(), nullable=True, comment='订单备注'),
        sa.Column('metadata', sa.JSON(), nullable=True, comment='扩展元数据'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='更新时间'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('payment_intent_id', name='uq_orders_payment_intent_id'),
        sa.CheckConstraint('total = subtotal + shipping_cost', name='ck_orders_total'),
        comment='订单表',
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_customer_email', 'orders', ['customer_email'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)
    op.create_index('ix_orders_status_created_at', 'orders', ['status', 'created_at'], unique=False)

    op.create_table(
        'order_tracking',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.String(length=36), nullable=False, comment='订单ID'),
        sa.Column('kind', sa.String(length=20), nullable=False, comment='status_change/informational'),
        sa.Column('event_type', sa.String(length=30), nullable=False, comment='事件类型'),
        sa.Column('status', sa.String(length=20), nullable=True, comment='状态变更后的订单状态'),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('location', sa.String(length=255), nullable=True),
        sa.Column('tracking_number', sa.String(length=100), nullable=True),
        sa.Column('created_by', sa.String(length=20), nullable=False, server_default='system', comment='system/gateway/customer/admin'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False, comment='创建时间'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='RESTRICT'),
        sa.PrimaryKeyConstraint('id'),
        comment='订单跟踪账本（只追加）',
    )
    op.create_index('ix_order_tracking_order_id', 'order_tracking', ['order_id'], unique=False)
    op.create_index('ix_order_tracking_order_created', 'order_tracking', ['order_id', 'created_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_order_tracking_order_created', table_name='order_tracking')
    op.drop_index('ix_order_tracking_order_id', table_name='order_tracking')
    op.drop_table('order_tracking')

    op.drop_index('ix_orders_status_created_at', table_name='orders')
    op.drop_index('ix_orders_created_at', table_name='orders')
    op.drop_index('ix_orders_customer_email', table_name='orders')
    op.drop_index('ix_orders_status', table_name='orders')
    op.drop_index('ix_orders_order_number', table_name='orders')
    op.drop_table('orders')
