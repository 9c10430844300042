"""Create fulfillment tables

Revision ID: create_fulfillment_tables
Revises:
Create Date: 2026-10-19

Products, inventories (warehouses, stores, vans), stock rows, customer
orders with their items, and planned/completed movements.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = 'create_fulfillment_tables'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create the fulfillment tables."""

    op.create_table(
        'products',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('sku', sa.String(50), nullable=False),
        sa.Column('name', sa.String(200), nullable=False),
        sa.Column('volume_cc', sa.Numeric(12, 3), nullable=True, comment='Unit volume in cubic centimetres'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_products_sku', 'products', ['sku'], unique=True)

    op.create_table(
        'inventories',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('inventory_type', sa.String(30), nullable=False, comment='WAREHOUSE, VAN, LOCAL_STORE'),
        sa.Column('location', sa.String(255), nullable=False),
        sa.Column('latitude', sa.Numeric(10, 6), nullable=False),
        sa.Column('longitude', sa.Numeric(10, 6), nullable=False),
        sa.Column('capacity_cc', sa.Numeric(15, 2), nullable=False, comment='Volumetric capacity in cubic centimetres'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('capacity_cc > 0', name='ck_inventory_capacity_positive'),
    )
    op.create_index('ix_inventories_code', 'inventories', ['code'], unique=True)
    op.create_index('ix_inventory_type_active', 'inventories', ['inventory_type', 'is_active'])

    op.create_table(
        'fulfillment_orders',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_number', sa.String(30), nullable=False),
        sa.Column('status', sa.String(30), nullable=False, server_default='NEW'),
        sa.Column('delivery_location', sa.String(255), nullable=False),
        sa.Column('latitude', sa.Numeric(10, 6), nullable=False),
        sa.Column('longitude', sa.Numeric(10, 6), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_fulfillment_orders_order_number', 'fulfillment_orders', ['order_number'], unique=True)
    op.create_index('ix_fulfillment_orders_status', 'fulfillment_orders', ['status'])

    op.create_table(
        'fulfillment_order_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('order_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('fulfillment_orders.id', ondelete='CASCADE'), nullable=False),
        sa.Column('line_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('product_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_order_item_quantity_non_negative'),
    )
    op.create_index('ix_fulfillment_order_items_order_id', 'fulfillment_order_items', ['order_id'])
    op.create_index('ix_fulfillment_order_items_product_id', 'fulfillment_order_items', ['product_id'])

    op.create_table(
        'stock_rows',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('inventory_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('inventories.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('product_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('products.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('order_item_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('fulfillment_order_items.id', ondelete='RESTRICT'), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint('inventory_id', 'product_id', 'order_item_id',
                            name='uq_stock_row_inventory_product_item'),
        sa.CheckConstraint('amount >= 0', name='ck_stock_row_amount_non_negative'),
    )
    op.create_index('ix_stock_rows_inventory_id', 'stock_rows', ['inventory_id'])
    op.create_index('ix_stock_rows_product_id', 'stock_rows', ['product_id'])
    op.create_index('ix_stock_rows_order_item_id', 'stock_rows', ['order_item_id'])
    op.create_index('ix_stock_row_product_available', 'stock_rows', ['product_id', 'order_item_id'])

    op.create_table(
        'movements',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('stock_row_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('stock_rows.id', ondelete='RESTRICT'), nullable=False),
        sa.Column('from_inventory_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('inventories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('to_inventory_id', postgresql.UUID(as_uuid=True),
                  sa.ForeignKey('inventories.id', ondelete='SET NULL'), nullable=True),
        sa.Column('movement_type', sa.String(20), nullable=False, comment='LOAD, UNLOAD, TRANSFER'),
        sa.Column('movement_status', sa.String(20), nullable=False, server_default='PLANNED'),
        sa.Column('move_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('estimated_volume_cc', sa.Numeric(18, 2), nullable=True),
        sa.Column('assigned_user_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_movements_stock_row_id', 'movements', ['stock_row_id'])
    op.create_index('ix_movement_from_status_at', 'movements',
                    ['from_inventory_id', 'movement_status', 'move_at'])
    op.create_index('ix_movement_to_status_at', 'movements',
                    ['to_inventory_id', 'movement_status', 'move_at'])


def downgrade() -> None:
    """Drop the fulfillment tables."""
    op.drop_table('movements')
    op.drop_table('stock_rows')
    op.drop_table('fulfillment_order_items')
    op.drop_table('fulfillment_orders')
    op.drop_table('inventories')
    op.drop_table('products')
