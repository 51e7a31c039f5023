"""Initial schema: parties, catalog, stock ledger, quotations, orders, payments

Revision ID: 20261017_initial
Revises:
Create Date: 2026-10-17

This migration adds:
1. Employees, clients, suppliers, packers
2. Categories, products, additions (coded per category prefix)
3. Inventory items, entries, outputs and the materialized stock table
4. Quotations, pre-invoices, orders, order items and status history
5. Order payments
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261017_initial'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
    ]


def upgrade():
    # ==========================================================================
    # 1. PARTIES
    # ==========================================================================
    op.create_table('employees',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_table('clients',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_table('suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_table('packers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('packer_code', sa.String(length=20), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('identification', sa.String(length=20), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('packer_code', name='uq_packers_code'),
        sa.UniqueConstraint('identification', name='uq_packers_identification'),
        sqlite_autoincrement=True
    )

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=150), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name', name='uq_categories_name'),
        sqlite_autoincrement=True
    )
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_code', sa.String(length=10), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_code', name='uq_products_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_products_category_id'), ['category_id'], unique=False)
        batch_op.create_index('ix_products_category_active', ['category_id', 'is_active'], unique=False)

    op.create_table('additions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('addition_code', sa.String(length=10), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('addition_code', name='uq_additions_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('additions', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_additions_category_id'), ['category_id'], unique=False)

    # ==========================================================================
    # 3. QUOTATIONS AND ORDERS
    # ==========================================================================
    op.create_table('quotations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quote_code', sa.String(length=20), nullable=False),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('currency', sa.String(length=5), nullable=False, server_default='COP'),
        sa.Column('shipping_enabled', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('shipping_fee', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('subtotal', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('prefactura_approved', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('quote_code', name='uq_quotations_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('quotations', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_quotations_client_id'), ['client_id'], unique=False)

    op.create_table('quotation_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('quotation_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('discount_percent', sa.Numeric(precision=5, scale=2), nullable=False, server_default='0'),
        sa.ForeignKeyConstraint(['quotation_id'], ['quotations.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('quotation_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_quotation_items_quotation_id'), ['quotation_id'], unique=False)

    op.create_table('orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_code', sa.String(length=20), nullable=False),
        sa.Column('order_name', sa.String(length=255), nullable=True),
        sa.Column('client_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=4), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='NEW'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('total', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('discount', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=5), nullable=False, server_default='COP'),
        sa.Column('shipping_fee', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('created_by', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['client_id'], ['clients.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_code', name='uq_orders_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_orders_client_id'), ['client_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_orders_status'), ['status'], unique=False)
        batch_op.create_index('ix_orders_status_created', ['status', 'created_at'], unique=False)

    op.create_table('order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('total_price', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING'),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_items_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_items_status'), ['status'], unique=False)

    op.create_table('order_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['changed_by'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_status_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_status_history_order_id'), ['order_id'], unique=False)

    op.create_table('order_item_status_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=32), nullable=False),
        sa.Column('changed_by', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'], ),
        sa.ForeignKeyConstraint(['changed_by'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_item_status_history', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_item_status_history_order_item_id'), ['order_item_id'], unique=False)

    op.create_table('prefacturas',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('prefactura_code', sa.String(length=20), nullable=False),
        sa.Column('quotation_id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=32), nullable=False, server_default='PENDING_ACCOUNTING'),
        sa.Column('subtotal', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        sa.Column('total', sa.Numeric(precision=14, scale=2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['quotation_id'], ['quotations.id'], ),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('prefactura_code', name='uq_prefacturas_code'),
        sa.UniqueConstraint('quotation_id', name='uq_prefacturas_quotation'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('prefacturas', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_prefacturas_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_prefacturas_status'), ['status'], unique=False)

    op.create_table('order_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=2), nullable=False),
        sa.Column('method', sa.String(length=16), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('proof_image_url', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('voided_by', sa.Integer(), nullable=True),
        sa.Column('voided_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('void_reason', sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('amount > 0', name='ck_order_payments_amount_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ),
        sa.ForeignKeyConstraint(['created_by'], ['employees.id'], ),
        sa.ForeignKeyConstraint(['voided_by'], ['employees.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_payments', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_order_payments_order_id'), ['order_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_payments_status'), ['status'], unique=False)
        batch_op.create_index(batch_op.f('ix_order_payments_created_at'), ['created_at'], unique=False)

    # ==========================================================================
    # 4. STOCK LEDGER
    # ==========================================================================
    op.create_table('inventory_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(length=50), nullable=True),
        sa.Column('min_stock', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_items', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_items_supplier_id'), ['supplier_id'], unique=False)

    op.create_table('inventory_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_inventory_entries_quantity_positive'),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_entries', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_entries_inventory_item_id'), ['inventory_item_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_entries_supplier_id'), ['supplier_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_entries_created_at'), ['created_at'], unique=False)

    op.create_table('inventory_outputs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('order_item_id', sa.Integer(), nullable=True),
        sa.Column('location', sa.String(length=32), nullable=False, server_default='MAIN_WAREHOUSE'),
        sa.Column('quantity', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('reason', sa.String(length=100), nullable=False),
        *_timestamps(),
        sa.CheckConstraint('quantity > 0', name='ck_inventory_outputs_quantity_positive'),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.ForeignKeyConstraint(['order_item_id'], ['order_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_outputs', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_outputs_inventory_item_id'), ['inventory_item_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_outputs_order_item_id'), ['order_item_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_inventory_outputs_created_at'), ['created_at'], unique=False)
        batch_op.create_index('ix_inventory_outputs_item_location', ['inventory_item_id', 'location'], unique=False)

    op.create_table('inventory_stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('inventory_item_id', sa.Integer(), nullable=False),
        sa.Column('location', sa.String(length=32), nullable=False),
        sa.Column('available_qty', sa.Numeric(precision=12, scale=2), nullable=False, server_default='0'),
        sa.Column('version', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['inventory_item_id'], ['inventory_items.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('inventory_item_id', 'location', name='uq_inventory_stock_item_location'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('inventory_stock', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_inventory_stock_inventory_item_id'), ['inventory_item_id'], unique=False)


def downgrade():
    op.drop_table('inventory_stock')
    op.drop_table('inventory_outputs')
    op.drop_table('inventory_entries')
    op.drop_table('inventory_items')
    op.drop_table('order_payments')
    op.drop_table('prefacturas')
    op.drop_table('order_item_status_history')
    op.drop_table('order_status_history')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('quotation_items')
    op.drop_table('quotations')
    op.drop_table('additions')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('packers')
    op.drop_table('suppliers')
    op.drop_table('clients')
    op.drop_table('employees')
