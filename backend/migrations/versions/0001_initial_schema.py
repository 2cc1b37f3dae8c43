"""Initial schema: branches, users, catalog, stock ledger, customers, transactions, shifts

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

All money columns are integer cents (*_cents).
Stock invariants are also enforced as CHECK constraints:
  quantity >= 0, 0 <= reserved_quantity <= quantity
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
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
    # 1. BRANCHES / USERS
    # ==========================================================================
    op.create_table('branches',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id', name='pk_branches'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('branches', schema=None) as batch_op:
        batch_op.create_index('ix_branches_is_active', ['is_active'], unique=False)

    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('last_login', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_users_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('users', schema=None) as batch_op:
        batch_op.create_index('ix_users_branch_id', ['branch_id'], unique=False)

    # ==========================================================================
    # 2. CATALOG
    # ==========================================================================
    op.create_table('product_categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['parent_id'], ['product_categories.id'], name='fk_product_categories_parent_id_product_categories'),
        sa.PrimaryKeyConstraint('id', name='pk_product_categories'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_categories', schema=None) as batch_op:
        batch_op.create_index('ix_product_categories_parent_id', ['parent_id'], unique=False)

    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('base_price_cents', sa.Integer(), nullable=False),
        sa.Column('selling_price_cents', sa.Integer(), nullable=False),
        sa.Column('unit', sa.String(length=50), nullable=False),
        sa.Column('min_stock', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('has_variants', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('is_raw_material', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('image_url', sa.Text(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint('min_stock >= 0', name='ck_products_min_stock_non_negative'),
        sa.ForeignKeyConstraint(['category_id'], ['product_categories.id'], name='fk_products_category_id_product_categories'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('sku', name='uq_products_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products', schema=None) as batch_op:
        batch_op.create_index('ix_products_barcode', ['barcode'], unique=False)
        batch_op.create_index('ix_products_active_name', ['is_active', 'name'], unique=False)
        batch_op.create_index('ix_products_category_id', ['category_id'], unique=False)

    op.create_table('product_variants',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('variant_name', sa.String(length=255), nullable=False),
        sa.Column('sku', sa.String(length=100), nullable=False),
        sa.Column('barcode', sa.String(length=100), nullable=True),
        sa.Column('price_adjustment_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_product_variants_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_product_variants'),
        sa.UniqueConstraint('sku', name='uq_product_variants_sku'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('product_variants', schema=None) as batch_op:
        batch_op.create_index('ix_product_variants_product_id', ['product_id'], unique=False)

    op.create_table('addons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('price_cents', sa.Integer(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('price_cents >= 0', name='ck_addons_price_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_addons'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('addons', schema=None) as batch_op:
        batch_op.create_index('ix_addons_is_active', ['is_active'], unique=False)

    # ==========================================================================
    # 3. STOCK LEDGER
    # ==========================================================================
    op.create_table('stock',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('reserved_quantity', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_updated', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('quantity >= 0', name='ck_stock_quantity_non_negative'),
        sa.CheckConstraint('reserved_quantity >= 0', name='ck_stock_reserved_non_negative'),
        sa.CheckConstraint('reserved_quantity <= quantity', name='ck_stock_reserved_within_quantity'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_product_id_products'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_stock_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_stock'),
        sa.UniqueConstraint('product_id', 'branch_id', name='uq_stock_product_branch'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock', schema=None) as batch_op:
        batch_op.create_index('ix_stock_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_stock_branch_id', ['branch_id'], unique=False)

    op.create_table('stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=16), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('reference_number', sa.String(length=100), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_stock_movements_product_id_products'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_stock_movements_branch_id_branches'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_stock_movements_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_stock_movements'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stock_movements', schema=None) as batch_op:
        batch_op.create_index('ix_movements_branch_created', ['branch_id', 'created_at'], unique=False)
        batch_op.create_index('ix_stock_movements_product_id', ['product_id'], unique=False)
        batch_op.create_index('ix_stock_movements_branch_id', ['branch_id'], unique=False)
        batch_op.create_index('ix_stock_movements_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_stock_movements_created_at', ['created_at'], unique=False)

    # ==========================================================================
    # 4. CUSTOMERS
    # ==========================================================================
    op.create_table('customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_code', sa.String(length=50), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('phone', sa.String(length=20), nullable=True),
        sa.Column('address', sa.Text(), nullable=True),
        sa.Column('membership_type', sa.String(length=16), nullable=False, server_default='BASIC'),
        sa.Column('loyalty_points', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_spent_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_visit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        *_timestamps(),
        sa.CheckConstraint('loyalty_points >= 0', name='ck_customers_loyalty_points_non_negative'),
        sa.CheckConstraint('total_spent_cents >= 0', name='ck_customers_total_spent_non_negative'),
        sa.PrimaryKeyConstraint('id', name='pk_customers'),
        sa.UniqueConstraint('customer_code', name='uq_customers_code'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customers', schema=None) as batch_op:
        batch_op.create_index('ix_customers_email', ['email'], unique=False)
        batch_op.create_index('ix_customers_phone', ['phone'], unique=False)
        batch_op.create_index('ix_customers_is_active', ['is_active'], unique=False)

    # ==========================================================================
    # 5. TRANSACTIONS
    # ==========================================================================
    op.create_table('transactions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_number', sa.String(length=100), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=True),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('subtotal_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('tax_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('total_cents >= 0', name='ck_transactions_total_non_negative'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_transactions_branch_id_branches'),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'], name='fk_transactions_customer_id_customers'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_transactions_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_transactions'),
        sa.UniqueConstraint('transaction_number', name='uq_transactions_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transactions', schema=None) as batch_op:
        batch_op.create_index('ix_transactions_branch_created', ['branch_id', 'created_at'], unique=False)
        batch_op.create_index('ix_transactions_status', ['status'], unique=False)
        batch_op.create_index('ix_transactions_branch_id', ['branch_id'], unique=False)
        batch_op.create_index('ix_transactions_customer_id', ['customer_id'], unique=False)
        batch_op.create_index('ix_transactions_user_id', ['user_id'], unique=False)

    op.create_table('transaction_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_variant_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('discount_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('total_cents', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.CheckConstraint('quantity > 0', name='ck_transaction_items_quantity_positive'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_transaction_items_transaction_id_transactions'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name='fk_transaction_items_product_id_products'),
        sa.ForeignKeyConstraint(['product_variant_id'], ['product_variants.id'], name='fk_transaction_items_product_variant_id_product_variants'),
        sa.PrimaryKeyConstraint('id', name='pk_transaction_items'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transaction_items', schema=None) as batch_op:
        batch_op.create_index('ix_transaction_items_transaction_id', ['transaction_id'], unique=False)
        batch_op.create_index('ix_transaction_items_product_id', ['product_id'], unique=False)

    op.create_table('transaction_item_addons',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_item_id', sa.Integer(), nullable=False),
        sa.Column('addon_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('unit_price_cents', sa.Integer(), nullable=False),
        sa.Column('total_price_cents', sa.Integer(), nullable=False),
        sa.CheckConstraint('quantity > 0', name='ck_transaction_item_addons_quantity_positive'),
        sa.ForeignKeyConstraint(['transaction_item_id'], ['transaction_items.id'], name='fk_transaction_item_addons_transaction_item_id_transaction_items'),
        sa.ForeignKeyConstraint(['addon_id'], ['addons.id'], name='fk_transaction_item_addons_addon_id_addons'),
        sa.PrimaryKeyConstraint('id', name='pk_transaction_item_addons'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transaction_item_addons', schema=None) as batch_op:
        batch_op.create_index('ix_transaction_item_addons_transaction_item_id', ['transaction_item_id'], unique=False)

    op.create_table('transaction_payments',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Integer(), nullable=False),
        sa.Column('payment_method', sa.String(length=32), nullable=False),
        sa.Column('amount_cents', sa.Integer(), nullable=False),
        sa.Column('reference_number', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('amount_cents > 0', name='ck_transaction_payments_amount_positive'),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], name='fk_transaction_payments_transaction_id_transactions'),
        sa.PrimaryKeyConstraint('id', name='pk_transaction_payments'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('transaction_payments', schema=None) as batch_op:
        batch_op.create_index('ix_transaction_payments_transaction_id', ['transaction_id'], unique=False)

    # ==========================================================================
    # 6. SHIFTS
    # ==========================================================================
    op.create_table('shifts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('start_time', sa.DateTime(timezone=True), nullable=False),
        sa.Column('end_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('opening_cash_cents', sa.Integer(), nullable=False),
        sa.Column('closing_cash_cents', sa.Integer(), nullable=True),
        sa.Column('total_sales_cents', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_shifts_user_id_users'),
        sa.ForeignKeyConstraint(['branch_id'], ['branches.id'], name='fk_shifts_branch_id_branches'),
        sa.PrimaryKeyConstraint('id', name='pk_shifts'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('shifts', schema=None) as batch_op:
        batch_op.create_index('ix_shifts_user_end', ['user_id', 'end_time'], unique=False)
        batch_op.create_index('ix_shifts_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_shifts_branch_id', ['branch_id'], unique=False)
        batch_op.create_index('ix_shifts_start_time', ['start_time'], unique=False)


def downgrade():
    for table in (
        'shifts',
        'transaction_payments',
        'transaction_item_addons',
        'transaction_items',
        'transactions',
        'customers',
        'stock_movements',
        'stock',
        'addons',
        'product_variants',
        'products',
        'product_categories',
        'users',
        'branches',
    ):
        op.drop_table(table)
