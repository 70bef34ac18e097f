"""Initial checkout schema

Revision ID: 3f1c9a2d7e41
Revises:
Create Date: 2026-10-19 10:02:11.518204

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers used by Alembic
revision: str = '3f1c9a2d7e41'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    # Accounts
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('role', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=True),
        sa.Column('last_name', sa.String(), nullable=True),
        sa.Column('phone', sa.String(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    # Catalog: product -> variant -> sku option
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('slug', sa.String(), nullable=False),
        sa.Column('brand', sa.String(), nullable=True),
        sa.Column('gender', sa.String(), nullable=True),
        sa.Column('short_description', sa.String(), nullable=True),
        sa.Column('gst_percentage', sa.Float(), sa.CheckConstraint('gst_percentage >= 0'), nullable=False),
        sa.Column('package_weight', sa.Float(), nullable=True),
        sa.Column('package_length', sa.Float(), nullable=True),
        sa.Column('package_width', sa.Float(), nullable=True),
        sa.Column('package_height', sa.Float(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_products_slug', 'products', ['slug'], unique=True)
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'product_variants',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('color', sa.String(), nullable=False),
        sa.Column('color_family', sa.String(), nullable=True),
        sa.Column('color_code', sa.String(), nullable=True),
        sa.Column('images', sa.JSON(), nullable=True),
        sa.Column('is_default', sa.Boolean(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
    )
    op.create_index('ix_product_variants_product_id', 'product_variants', ['product_id'])

    op.create_table(
        'sku_options',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('variant_id', sa.Integer(), sa.ForeignKey('product_variants.id'), nullable=False),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('size', sa.String(), nullable=False),
        sa.Column('price', sa.Float(), sa.CheckConstraint('price >= 0'), nullable=False),
        sa.Column('mrp', sa.Float(), sa.CheckConstraint('mrp >= 0'), nullable=False),
        sa.Column('stock', sa.Integer(), sa.CheckConstraint('stock >= 0'), nullable=False),
        sa.Column('weight', sa.String(), nullable=True),
        sa.Column('position', sa.Integer(), nullable=True),
    )
    op.create_index('ix_sku_options_sku', 'sku_options', ['sku'], unique=True)
    op.create_index('ix_sku_options_variant_id', 'sku_options', ['variant_id'])

    # Carts
    op.create_table(
        'carts',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.func.now()),
    )
    op.create_index('ix_carts_user_id', 'carts', ['user_id'], unique=True)

    op.create_table(
        'cart_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('cart_id', sa.Integer(), sa.ForeignKey('carts.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('size', sa.String(), nullable=False),
        sa.Column('color', sa.String(), nullable=False),
        sa.Column('quantity', sa.Integer(), sa.CheckConstraint('quantity >= 1'), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.UniqueConstraint('cart_id', 'sku', name='uq_cartitem_cart_sku'),
    )
    op.create_index('ix_cart_items_cart_id', 'cart_items', ['cart_id'])

    # Offers
    op.create_table(
        'offers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('code', sa.String(), nullable=False),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('value', sa.Float(), sa.CheckConstraint('value >= 0'), nullable=False),
        sa.Column('max_discount', sa.Float(), nullable=True),
        sa.Column('min_order_value', sa.Float(), nullable=False),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('usage_limit', sa.Integer(), nullable=True),
        sa.Column('usage_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_offers_code', 'offers', ['code'], unique=True)
    op.create_index('ix_offers_end_date', 'offers', ['end_date'])

    # Orders and their immutable line snapshots
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.String(), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('sub_total', sa.Float(), nullable=False),
        sa.Column('tax_total', sa.Float(), nullable=False),
        sa.Column('cgst_total', sa.Float(), nullable=False),
        sa.Column('sgst_total', sa.Float(), nullable=False),
        sa.Column('shipping_fee', sa.Float(), sa.CheckConstraint('shipping_fee >= 0'), nullable=False),
        sa.Column('discount_total', sa.Float(), nullable=False),
        sa.Column('grand_total', sa.Float(), nullable=False),
        sa.Column('applied_coupon_code', sa.String(), nullable=True),
        sa.Column('applied_coupon_discount', sa.Float(), nullable=True),
        sa.Column('payment_method', sa.String(), nullable=False),
        sa.Column('payment_status', sa.String(), nullable=False),
        sa.Column('payment_session_id', sa.String(), nullable=True),
        sa.Column('transaction_id', sa.String(), nullable=True),
        sa.Column('payment_gateway_details', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('shipping_address', sa.JSON(), nullable=True),
        sa.Column('cancellation_reason', sa.String(), nullable=True),
        sa.Column('shiprocket_order_id', sa.String(), nullable=True),
        sa.Column('shipment_id', sa.String(), nullable=True),
        sa.Column('awb_number', sa.String(), nullable=True),
        sa.Column('courier_name', sa.String(), nullable=True),
        sa.Column('shiprocket_status', sa.String(), nullable=True),
        sa.Column('tracking_history', sa.JSON(), nullable=True),
        sa.Column('refund_status', sa.String(), nullable=False, server_default='None'),
        sa.Column('refund_id', sa.String(), nullable=True),
        sa.Column('refund_amount', sa.Float(), nullable=True),
        sa.Column('refund_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('placed_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('confirmed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('shipped_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('return_window_expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_status_update', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_orders_order_id', 'orders', ['order_id'], unique=True)
    op.create_index('ix_orders_user_id', 'orders', ['user_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_shiprocket_order_id', 'orders', ['shiprocket_order_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('sku', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('size', sa.String(), nullable=False),
        sa.Column('color', sa.String(), nullable=True),
        sa.Column('image', sa.String(), nullable=True),
        sa.Column('quantity', sa.Integer(), sa.CheckConstraint('quantity >= 1'), nullable=False),
        sa.Column('price', sa.Float(), nullable=False),
        sa.Column('gst_percentage', sa.Float(), nullable=False),
        sa.Column('gst_amount', sa.Float(), nullable=False),
        sa.Column('taxable_value', sa.Float(), nullable=False),
        sa.Column('cgst', sa.Float(), nullable=False),
        sa.Column('sgst', sa.Float(), nullable=False),
        sa.Column('total_price', sa.Float(), nullable=False),
        sa.Column('return_status', sa.String(), nullable=False, server_default='None'),
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])

    op.create_table(
        'offer_usages',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('offer_id', sa.Integer(), sa.ForeignKey('offers.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('used_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_offer_usages_offer_id', 'offer_usages', ['offer_id'])

    # Returns
    op.create_table(
        'return_requests',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.String(), nullable=False),
        sa.Column('order_id', sa.Integer(), sa.ForeignKey('orders.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('type', sa.String(), nullable=False),
        sa.Column('exchange_size', sa.String(), nullable=True),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=False),
        sa.Column('refund_amount', sa.Float(), nullable=False),
        sa.Column('gst_reversal_amount', sa.Float(), nullable=False),
        sa.Column('refund_transaction_id', sa.String(), nullable=True),
        sa.Column('admin_comments', sa.String(), nullable=True),
        sa.Column('pickup_shiprocket_order_id', sa.String(), nullable=True),
        sa.Column('pickup_shipment_id', sa.String(), nullable=True),
        sa.Column('pickup_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index('ix_return_requests_request_id', 'return_requests', ['request_id'], unique=True)
    op.create_index('ix_return_requests_order_id', 'return_requests', ['order_id'])
    op.create_index('ix_return_requests_pickup_shiprocket_order_id', 'return_requests', ['pickup_shiprocket_order_id'])

    op.create_table(
        'return_request_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('request_id', sa.Integer(), sa.ForeignKey('return_requests.id'), nullable=False),
        sa.Column('order_item_id', sa.Integer(), sa.ForeignKey('order_items.id'), nullable=False),
        sa.Column('sku', sa.String(), nullable=True),
        sa.Column('quantity', sa.Integer(), sa.CheckConstraint('quantity >= 1'), nullable=False),
        sa.Column('reason', sa.String(), nullable=False),
        sa.Column('condition', sa.String(), nullable=False),
    )
    op.create_index('ix_return_request_items_request_id', 'return_request_items', ['request_id'])

    # Webhook replay protection and audit trail
    op.create_table(
        'webhook_events',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('source', sa.String(32), nullable=False),
        sa.Column('digest', sa.String(64), nullable=False),
        sa.Column('reference', sa.String(), nullable=True),
        sa.Column('received_at', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint('source', 'digest', name='uq_webhook_source_digest'),
    )

    op.create_table(
        'logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('ts', sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('action', sa.String(50), nullable=True),
        sa.Column('resource', sa.String(50), nullable=True),
        sa.Column('status', sa.String(20), nullable=True),
        sa.Column('reference', sa.String(64), nullable=True),
        sa.Column('ip', sa.String(64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
    )
    op.create_index('ix_logs_ts', 'logs', ['ts'])
    op.create_index('ix_logs_action', 'logs', ['action'])
    op.create_index('ix_logs_reference', 'logs', ['reference'])


def downgrade() -> None:
    """Downgrade schema."""
    # Drop in reverse dependency order
    for table in (
        'logs', 'webhook_events', 'return_request_items', 'return_requests',
        'offer_usages', 'order_items', 'orders', 'offers', 'cart_items', 'carts',
        'sku_options', 'product_variants', 'products', 'users',
    ):
        op.drop_table(table)
