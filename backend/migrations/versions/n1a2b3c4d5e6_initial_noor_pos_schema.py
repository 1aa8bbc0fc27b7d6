"""initial noor pos schema

Revision ID: n1a2b3c4d5e6
Revises:
Create Date: 2026-03-01 00:00:00.000000

Creates the complete Noor POS schema:
- categories / products / stock_history: catalog and the inventory ledger
- customers / salesmen: parties with denormalized sales rollups
- orders / order_items / invoices / document_sequences: sales documents
- suppliers / purchases / purchase_items: supplier bills
- product_imports / notifications: import history and admin alerts
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'n1a2b3c4d5e6'
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
    ]


def _created_at(index=False):
    return sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                     server_default=sa.text('CURRENT_TIMESTAMP'), index=index)


def upgrade():
    """
    Create all tables from scratch.

    WHY: stock and rollup invariants are backed by CHECK constraints so a
    bypassed service layer still cannot store negative stock or a history
    row whose arithmetic does not add up.
    """

    # ============================================================================
    # catalog
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=120), nullable=False),
        sa.Column('slug', sa.String(length=160), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sa.UniqueConstraint('slug'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=300), nullable=False),
        sa.Column('slug', sa.String(length=400), nullable=False),
        sa.Column('sku', sa.String(length=50), nullable=True),
        sa.Column('design_number', sa.String(length=300), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('unit', sa.String(length=20), nullable=False, server_default='Pcs'),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('stock_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('min_stock_alert', sa.Integer(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('sizes', sa.JSON(), nullable=True),
        sa.Column('colors', sa.JSON(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('is_featured', sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint('stock_quantity >= 0', name='ck_products_stock_non_negative'),
        sa.CheckConstraint('discount_price IS NULL OR discount_price <= price',
                           name='ck_products_discount_le_price'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug'),
        sa.UniqueConstraint('sku'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_category_id', 'products', ['category_id'])
    op.create_index('ix_products_active_stock', 'products', ['is_active', 'stock_quantity'])

    op.create_table(
        'stock_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('change_type', sa.String(length=32), nullable=False),
        sa.Column('change_amount', sa.Integer(), nullable=False),
        sa.Column('previous_quantity', sa.Integer(), nullable=False),
        sa.Column('new_quantity', sa.Integer(), nullable=False),
        sa.Column('reference_id', sa.Integer(), nullable=True),
        sa.Column('notes', sa.String(length=500), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        _created_at(),
        sa.CheckConstraint('new_quantity = previous_quantity + change_amount',
                           name='ck_stock_history_arithmetic'),
        sa.CheckConstraint('new_quantity >= 0', name='ck_stock_history_non_negative'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_history_change_type', 'stock_history', ['change_type'])
    op.create_index('ix_stock_history_reference_id', 'stock_history', ['reference_id'])
    op.create_index('ix_stock_history_product_created', 'stock_history', ['product_id', 'created_at'])

    # ============================================================================
    # parties
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('pincode', sa.String(length=16), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('last_purchase_date', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('total_orders >= 0', name='ck_customers_total_orders_non_negative'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_phone', 'customers', ['phone'])

    op.create_table(
        'salesmen',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('commission_rate', sa.Numeric(5, 2), nullable=False, server_default='0'),
        sa.Column('total_sales', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_orders', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    op.create_table(
        'suppliers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('contact_person', sa.String(length=200), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=32), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('city', sa.String(length=100), nullable=True),
        sa.Column('state', sa.String(length=100), nullable=True),
        sa.Column('pincode', sa.String(length=16), nullable=True),
        sa.Column('gst_number', sa.String(length=32), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('total_purchases', sa.Numeric(12, 2), nullable=False, server_default='0'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # sales documents
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('salesman_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('payment_method', sa.String(length=16), nullable=True),
        sa.Column('cash_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('card_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('credit_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('shipping_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('order_source', sa.String(length=16), nullable=False, server_default='pos'),
        sa.Column('needs_alteration', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('alteration_due_date', sa.Date(), nullable=True),
        sa.Column('alteration_status', sa.String(length=16), nullable=True),
        sa.Column('alteration_notes', sa.Text(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['salesman_id'], ['salesmen.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('order_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_payment_status', 'orders', ['payment_status'])
    op.create_index('ix_orders_created', 'orders', ['created_at'])
    op.create_index('ix_orders_customer', 'orders', ['customer_id'])
    op.create_index('ix_orders_salesman', 'orders', ['salesman_id'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('product_name', sa.String(length=300), nullable=False),
        sa.Column('product_sku', sa.String(length=50), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('discount_percent', sa.Integer(), nullable=True),
        sa.Column('size', sa.String(length=32), nullable=True),
        sa.Column('color', sa.String(length=32), nullable=True),
        _created_at(),
        sa.CheckConstraint('quantity > 0', name='ck_order_items_quantity_positive'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_order_items_order_id', 'order_items', ['order_id'])
    op.create_index('ix_order_items_product_id', 'order_items', ['product_id'])

    op.create_table(
        'invoices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('invoice_number', sa.String(length=32), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=True),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('salesman_id', sa.Integer(), nullable=True),
        sa.Column('subtotal', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('discount_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('tax_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('payment_status', sa.String(length=16), nullable=False, server_default='pending'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id']),
        sa.ForeignKeyConstraint(['salesman_id'], ['salesmen.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('invoice_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_invoices_order_id', 'invoices', ['order_id'])

    op.create_table(
        'document_sequences',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('document_type', sa.String(length=32), nullable=False),
        sa.Column('next_number', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('document_type'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # purchases
    # ============================================================================
    op.create_table(
        'purchases',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_number', sa.String(length=32), nullable=False),
        sa.Column('supplier_id', sa.Integer(), nullable=False),
        sa.Column('purchase_date', sa.Date(), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('bill_image_url', sa.String(length=500), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['supplier_id'], ['suppliers.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_number'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchases_supplier_id', 'purchases', ['supplier_id'])

    op.create_table(
        'purchase_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('purchase_id', sa.Integer(), nullable=False),
        sa.Column('sno', sa.Integer(), nullable=False),
        sa.Column('item_name', sa.String(length=300), nullable=False),
        sa.Column('hsn_code', sa.String(length=16), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('total_price', sa.Numeric(12, 2), nullable=False),
        _created_at(),
        sa.CheckConstraint('quantity > 0', name='ck_purchase_items_quantity_positive'),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_purchase_items_purchase_id', 'purchase_items', ['purchase_id'])

    # ============================================================================
    # import history and notifications
    # ============================================================================
    op.create_table(
        'product_imports',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('file_name', sa.String(length=255), nullable=False),
        sa.Column('total_rows', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('products_created', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('products_updated', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('errors', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_details', sa.JSON(), nullable=True),
        sa.Column('imported_by', sa.String(length=64), nullable=True),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_imports_created_at', 'product_imports', ['created_at'])

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('message', sa.String(length=500), nullable=False),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=False, server_default=sa.false()),
        _created_at(),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_notifications_is_read', 'notifications', ['is_read'])


def downgrade():
    """Drop all tables (destructive operation)."""
    op.drop_table('notifications')
    op.drop_table('product_imports')
    op.drop_table('purchase_items')
    op.drop_table('purchases')
    op.drop_table('document_sequences')
    op.drop_table('invoices')
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_table('suppliers')
    op.drop_table('salesmen')
    op.drop_table('customers')
    op.drop_table('stock_history')
    op.drop_table('products')
    op.drop_table('categories')
