"""Add returned quantity and carrier tracking fields

Revision ID: 8b2d4f6a1c90
Revises: 3f1c9a2d7e41
Create Date: 2026-10-20 09:41:27.302115

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers used by Alembic
revision: str = '8b2d4f6a1c90'
down_revision: Union[str, Sequence[str], None] = '3f1c9a2d7e41'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Units refunded per order line, so partial returns leave the rest claimable
    with op.batch_alter_table('order_items') as batch_op:
        batch_op.add_column(sa.Column('returned_quantity', sa.Integer(), nullable=False, server_default='0'))

    # Polled tracking details and the printed label
    op.add_column('orders', sa.Column('tracking_url', sa.String(), nullable=True))
    op.add_column('orders', sa.Column('current_location', sa.String(), nullable=True))
    op.add_column('orders', sa.Column('estimated_delivery_date', sa.DateTime(timezone=True), nullable=True))
    op.add_column('orders', sa.Column('last_tracking_sync', sa.DateTime(timezone=True), nullable=True))
    op.add_column('orders', sa.Column('shipping_label_url', sa.String(), nullable=True))


def downgrade() -> None:
    """Downgrade schema."""
    with op.batch_alter_table('orders') as batch_op:
        batch_op.drop_column('shipping_label_url')
        batch_op.drop_column('last_tracking_sync')
        batch_op.drop_column('estimated_delivery_date')
        batch_op.drop_column('current_location')
        batch_op.drop_column('tracking_url')
    with op.batch_alter_table('order_items') as batch_op:
        batch_op.drop_column('returned_quantity')
