"""create stock ledger tables

Revision ID: a1f0stock001
Revises:
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'a1f0stock001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'branches',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=120), nullable=False, unique=True),
        sa.Column('is_warehouse', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=160), nullable=False),
        sa.Column('sku', sa.String(length=60), nullable=True, unique=True),
        sa.Column('unit', sa.String(length=10), nullable=False, server_default='PCS'),
        sa.Column('density_kg_per_liter', sa.Numeric(10, 4), nullable=True),
        sa.Column('cost_price', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'conversion_transfers',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('batch_id', sa.String(length=32), nullable=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('source_product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('target_product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('transfer_date', sa.Date(), nullable=False),
        sa.Column('input_quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('input_unit', sa.String(length=10), nullable=False),
        sa.Column('output_quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('output_unit', sa.String(length=10), nullable=False),
        sa.Column('density_factor', sa.Numeric(10, 4), nullable=True),
        sa.Column('conversion_kind', sa.String(length=20), nullable=False, server_default='SAME_UNIT'),
        sa.Column('target_unit_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('cost_of_goods', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_conversion_transfers_batch_id', 'conversion_transfers', ['batch_id'])
    op.create_index('ix_conversion_transfers_branch_id', 'conversion_transfers', ['branch_id'])
    op.create_index('ix_conversion_transfers_branch_date', 'conversion_transfers', ['branch_id', 'transfer_date'])

    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('kind', sa.String(length=3), nullable=False),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('quantity_remaining', sa.Numeric(14, 3), nullable=True),
        sa.Column('quantity_uncovered', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('total_cost', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('source_type', sa.String(length=30), nullable=True),
        sa.Column('source_id', sa.Integer(), nullable=True),
        sa.Column('source_group_id', sa.Integer(), nullable=True),
        sa.Column('transfer_id', sa.Integer(), sa.ForeignKey('conversion_transfers.id'), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.UniqueConstraint('source_type', 'source_id', name='uq_stock_movement_source'),
    )
    op.create_index('ix_stock_movements_product_branch_date', 'stock_movements', ['product_id', 'branch_id', 'date'])
    op.create_index('ix_stock_movements_source', 'stock_movements', ['source_type', 'source_id'])
    op.create_index('ix_stock_movements_source_group', 'stock_movements', ['source_type', 'source_group_id'])
    op.create_index('ix_stock_movements_transfer_id', 'stock_movements', ['transfer_id'])

    op.create_table(
        'stock_movement_consumptions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('outbound_id', sa.Integer(), sa.ForeignKey('stock_movements.id', ondelete='CASCADE'), nullable=False),
        sa.Column('layer_id', sa.Integer(), sa.ForeignKey('stock_movements.id'), nullable=True),
        sa.Column('quantity', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
    )
    op.create_index('ix_stock_movement_consumptions_outbound_id', 'stock_movement_consumptions', ['outbound_id'])
    op.create_index('ix_stock_movement_consumptions_layer_id', 'stock_movement_consumptions', ['layer_id'])

    op.create_table(
        'stock_snapshots',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), primary_key=True),
        sa.Column('current_stock', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('stock_in_total', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('stock_out_total', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('margin_pct', sa.Numeric(9, 2), nullable=False, server_default='0'),
        sa.Column('stock_value', sa.Numeric(18, 2), nullable=False, server_default='0'),
        sa.Column('has_negative', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_stock_snapshots_branch', 'stock_snapshots', ['branch_id'])

    op.create_table(
        'stock_reservations',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), primary_key=True),
        sa.Column('reserved_qty', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    # Orígenes (escritos por compras / producción / consignación / ventas / opname)
    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('supplier_name', sa.String(length=160), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ORDERED'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_purchases_branch_id', 'purchases', ['branch_id'])
    op.create_index('ix_purchases_status', 'purchases', ['status'])

    op.create_table(
        'purchase_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('purchase_id', sa.Integer(), sa.ForeignKey('purchases.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('qty', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=True),
    )
    op.create_index('ix_purchase_items_purchase_id', 'purchase_items', ['purchase_id'])
    op.create_index('ix_purchase_items_product_id', 'purchase_items', ['product_id'])

    op.create_table(
        'productions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('production_date', sa.Date(), nullable=False),
        sa.Column('qty', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='DRAFT'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_productions_branch_id', 'productions', ['branch_id'])
    op.create_index('ix_productions_status', 'productions', ['status'])

    op.create_table(
        'production_materials',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('production_id', sa.Integer(), sa.ForeignKey('productions.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('qty', sa.Numeric(14, 3), nullable=False),
    )
    op.create_index('ix_production_materials_production_id', 'production_materials', ['production_id'])

    op.create_table(
        'consignments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('store_name', sa.String(length=160), nullable=True),
        sa.Column('consignment_date', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_consignments_branch_id', 'consignments', ['branch_id'])

    op.create_table(
        'consignment_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('consignment_id', sa.Integer(), sa.ForeignKey('consignments.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('qty_sent', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
    )
    op.create_index('ix_consignment_items_consignment_id', 'consignment_items', ['consignment_id'])

    op.create_table(
        'consignment_sales',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('consignment_item_id', sa.Integer(), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('qty_sold', sa.Numeric(14, 3), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_consignment_sales_consignment_item_id', 'consignment_sales', ['consignment_item_id'])

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('sale_date', sa.Date(), nullable=False),
        sa.Column('customer_name', sa.String(length=160), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='DRAFT'),
        sa.Column('total', sa.Numeric(14, 2), nullable=False, server_default='0.00'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_sales_branch_id', 'sales', ['branch_id'])
    op.create_index('ix_sales_status', 'sales', ['status'])
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])
    op.create_index('ix_sales_branch_date', 'sales', ['branch_id', 'sale_date'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('sale_id', sa.Integer(), sa.ForeignKey('sales.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('qty', sa.Numeric(14, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(14, 2), nullable=False),
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_product_id', 'sale_items', ['product_id'])
    op.create_index('ix_sale_items_sale_product', 'sale_items', ['sale_id', 'product_id'])

    op.create_table(
        'stock_opnames',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('opname_date', sa.Date(), nullable=False),
        sa.Column('system_qty', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('counted_qty', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('difference', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_stock_opnames_branch_id', 'stock_opnames', ['branch_id'])
    op.create_index('ix_stock_opnames_product_id', 'stock_opnames', ['product_id'])
    op.create_index('ix_stock_opnames_status', 'stock_opnames', ['status'])


def downgrade():
    for table in (
        'stock_opnames',
        'sale_items',
        'sales',
        'consignment_sales',
        'consignment_items',
        'consignments',
        'production_materials',
        'productions',
        'purchase_items',
        'purchases',
        'stock_reservations',
        'stock_snapshots',
        'stock_movement_consumptions',
        'stock_movements',
        'conversion_transfers',
        'products',
        'branches',
    ):
        op.drop_table(table)
