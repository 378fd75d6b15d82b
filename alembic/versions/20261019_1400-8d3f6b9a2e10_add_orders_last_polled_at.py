"""add_orders_last_polled_at

Revision ID: 8d3f6b9a2e10
Revises: 5c1e8a2f4b71
Create Date: 2026-10-19 14:00:41.207715

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '8d3f6b9a2e10'
down_revision: Union[str, None] = '5c1e8a2f4b71'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.add_column(
        'orders',
        sa.Column('last_polled_at', sa.DateTime(timezone=True), nullable=True, comment='最近一次定时补查时间'),
    )
    op.create_index('ix_orders_status_last_polled_at', 'orders', ['status', 'last_polled_at'], unique=False)


def downgrade() -> None:
    op.drop_index('ix_orders_status_last_polled_at', table_name='orders')
    op.drop_column('orders', 'last_polled_at')
