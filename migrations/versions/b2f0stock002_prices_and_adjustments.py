"""branch prices and manual stock adjustments

Revision ID: b2f0stock002
Revises: a1f0stock001
Create Date: 2026-10-19

"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b2f0stock002'
down_revision = 'a1f0stock001'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'product_branch_prices',
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), primary_key=True),
        sa.Column('cost_price', sa.Numeric(14, 4), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )

    op.create_table(
        'stock_adjustments',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('branch_id', sa.Integer(), sa.ForeignKey('branches.id'), nullable=False),
        sa.Column('product_id', sa.Integer(), sa.ForeignKey('products.id'), nullable=False),
        sa.Column('adjustment_date', sa.Date(), nullable=False),
        sa.Column('previous_qty', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('new_qty', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('difference', sa.Numeric(14, 3), nullable=False, server_default='0'),
        sa.Column('unit_cost', sa.Numeric(14, 4), nullable=True),
        sa.Column('note', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_stock_adjustments_branch_id', 'stock_adjustments', ['branch_id'])
    op.create_index('ix_stock_adjustments_product_id', 'stock_adjustments', ['product_id'])


def downgrade():
    op.drop_index('ix_stock_adjustments_product_id', table_name='stock_adjustments')
    op.drop_index('ix_stock_adjustments_branch_id', table_name='stock_adjustments')
    op.drop_table('stock_adjustments')
    op.drop_table('product_branch_prices')
