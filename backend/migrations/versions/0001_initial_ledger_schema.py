"""initial ledger schema

Revision ID: 0001_initial_ledger_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

This migration creates the complete SariPOS ledger schema from scratch:
- inventory_unit / inventory_category: read-only reference data
- products: product master, barcode is the upsert identity
- inventory_batches: per-lot quantity, soft delete only
- inventory_history: append-only signed deltas, SUM(change) == quantity
- product_history: append-only product metadata changes
- sales / sale_items: completed cash sales drawing from batches
- settings: typed key/value store, seeded with defaults
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial_ledger_schema'
down_revision = None
branch_labels = None
depends_on = None


REASONS = (
    'initial_stock', 'restock', 'sale', 'adjustment', 'damaged', 'expired',
    'transfer', 'delete', 'edit', 'merge', 'split', 'other',
)


def upgrade():
    # ============================================================================
    # Reference data
    # ============================================================================
    unit_table = op.create_table(
        'inventory_unit',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    category_table = op.create_table(
        'inventory_category',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('name'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # products: Product master
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('barcode', sa.String(length=64), nullable=True),
        sa.Column('selling_price', sa.Float(), nullable=False),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['unit_id'], ['inventory_unit.id']),
        sa.ForeignKeyConstraint(['category_id'], ['inventory_category.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('barcode'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    # ============================================================================
    # inventory_batches: quantity per lot
    # ============================================================================
    op.create_table(
        'inventory_batches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('batch_number', sa.String(length=64), nullable=True),
        sa.Column('cost_price', sa.Float(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('expiration_date', sa.Date(), nullable=True),
        sa.Column('date_added', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.CheckConstraint('quantity >= 0', name='ck_inventory_batches_quantity_nonneg'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_batches_product_id', 'inventory_batches', ['product_id'])
    op.create_index('idx_inventory_batches_expiration', 'inventory_batches', ['expiration_date'])
    op.create_index('ix_inventory_batches_product_deleted', 'inventory_batches', ['product_id', 'is_deleted'])

    # ============================================================================
    # inventory_history: append-only movement log
    # ============================================================================
    reason_list = ", ".join(f"'{r}'" for r in REASONS)
    op.create_table(
        'inventory_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('change', sa.Integer(), nullable=False),
        sa.Column('reason', sa.String(length=32), nullable=False),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(f'reason IN ({reason_list})', name='ck_inventory_history_reason'),
        sa.ForeignKeyConstraint(['batch_id'], ['inventory_batches.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_inventory_history_batch_created', 'inventory_history', ['batch_id', 'created_at'])
    op.create_index('ix_inventory_history_reason', 'inventory_history', ['reason'])

    # ============================================================================
    # product_history: append-only metadata changes
    # ============================================================================
    op.create_table(
        'product_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('field', sa.String(length=64), nullable=False),
        sa.Column('old_value', sa.Text(), nullable=True),
        sa.Column('new_value', sa.Text(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_product_history_product_created', 'product_history', ['product_id', 'created_at'])

    # ============================================================================
    # sales / sale_items
    # ============================================================================
    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('total', sa.Float(), nullable=False),
        sa.Column('cash_received', sa.Float(), nullable=False),
        sa.Column('change', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])

    op.create_table(
        'sale_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('batch_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('price_at_sale', sa.Float(), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['batch_id'], ['inventory_batches.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_items_sale_id', 'sale_items', ['sale_id'])
    op.create_index('ix_sale_items_batch_id', 'sale_items', ['batch_id'])

    # ============================================================================
    # settings: typed key/value store
    # ============================================================================
    settings_table = op.create_table(
        'settings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.Column('value_type', sa.String(length=16), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.CheckConstraint(
            "value_type IN ('string', 'number', 'boolean', 'json')",
            name='ck_settings_value_type',
        ),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('key'),
        sqlite_autoincrement=True
    )

    # ============================================================================
    # Seed rows (values are already in their stored text encoding)
    # ============================================================================
    op.bulk_insert(unit_table, [
        {'name': n} for n in ('Piece', 'Pack', 'Bottle', 'Can', 'Box', 'Sachet')
    ])
    op.bulk_insert(category_table, [
        {'name': n} for n in (
            'Snacks', 'Drinks', 'Canned Goods', 'Instant Noodles', 'Toiletries', 'Household Items',
        )
    ])
    op.bulk_insert(settings_table, [
        {'key': 'shop_name', 'value': 'My Retail Store', 'value_type': 'string',
         'description': 'Name of the shop/business'},
        {'key': 'shop_address', 'value': '123 Main Street', 'value_type': 'string',
         'description': 'Shop physical address'},
        {'key': 'shop_contact', 'value': '09123456789', 'value_type': 'string',
         'description': 'Shop contact number'},
        {'key': 'receipt_footer', 'value': 'Thank you for shopping with us!', 'value_type': 'string',
         'description': 'Text to show at receipt bottom'},
        {'key': 'currency_symbol', 'value': '₱', 'value_type': 'string',
         'description': 'Currency symbol to use'},
        {'key': 'tax_rate', 'value': '0.12', 'value_type': 'number',
         'description': 'VAT/sales tax rate (as decimal)'},
        {'key': 'enable_barcode_scanner', 'value': 'true', 'value_type': 'boolean',
         'description': 'Whether to enable barcode scanner'},
        {'key': 'inventory_warning_threshold', 'value': '5', 'value_type': 'number',
         'description': 'Low stock warning level'},
        {'key': 'default_print_receipt', 'value': 'true', 'value_type': 'boolean',
         'description': 'Whether to print receipts by default'},
        {'key': 'theme', 'value': 'light', 'value_type': 'string',
         'description': 'UI theme (light/dark/system)'},
        {'key': 'backup_auto', 'value': 'true', 'value_type': 'boolean',
         'description': 'Enable automatic backups'},
        {'key': 'backup_frequency', 'value': '7', 'value_type': 'number',
         'description': 'Days between automatic backups'},
        {'key': 'pagination_enabled', 'value': 'true', 'value_type': 'boolean',
         'description': 'Whether pagination is enabled'},
        {'key': 'default_page_size', 'value': '5', 'value_type': 'number',
         'description': 'Default number of items per page'},
        {'key': 'page_size_options', 'value': '[5, 10, 20, 50, 100]', 'value_type': 'json',
         'description': 'Available page size options'},
        {'key': 'remember_page_size', 'value': 'true', 'value_type': 'boolean',
         'description': 'Remember last used page size per view'},
    ])


def downgrade():
    op.drop_table('settings')
    op.drop_index('ix_sale_items_batch_id', table_name='sale_items')
    op.drop_index('ix_sale_items_sale_id', table_name='sale_items')
    op.drop_table('sale_items')
    op.drop_index('ix_sales_created_at', table_name='sales')
    op.drop_table('sales')
    op.drop_index('ix_product_history_product_created', table_name='product_history')
    op.drop_table('product_history')
    op.drop_index('ix_inventory_history_reason', table_name='inventory_history')
    op.drop_index('ix_inventory_history_batch_created', table_name='inventory_history')
    op.drop_table('inventory_history')
    op.drop_index('ix_inventory_batches_product_deleted', table_name='inventory_batches')
    op.drop_index('idx_inventory_batches_expiration', table_name='inventory_batches')
    op.drop_index('ix_inventory_batches_product_id', table_name='inventory_batches')
    op.drop_table('inventory_batches')
    op.drop_index('ix_products_name', table_name='products')
    op.drop_table('products')
    op.drop_table('inventory_category')
    op.drop_table('inventory_unit')
