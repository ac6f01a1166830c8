"""initial schema

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the shopadmin schema from scratch:
- admin_users / session_tokens: attribution and bearer sessions
- categories: self-referential taxonomy (unique slug)
- products: catalog entries with soft-delete tombstone
- customers / customer_phones: owned phones, at most one main per customer
- orders / order_items: historical records with write-once product snapshots
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # admin_users / session_tokens
    # ============================================================================
    op.create_table(
        'admin_users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name='pk_admin_users'),
        sa.UniqueConstraint('username', name='uq_admin_users_username'),
        sa.UniqueConstraint('email', name='uq_admin_users_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_admin_users_username', 'admin_users', ['username'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('admin_user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['admin_user_id'], ['admin_users.id'],
                                name='fk_session_tokens_admin_user_id_admin_users'),
        sa.PrimaryKeyConstraint('id', name='pk_session_tokens'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('session_tokens') as batch_op:
        batch_op.create_index('ix_session_tokens_admin_user_id', ['admin_user_id'])
        batch_op.create_index('ix_session_tokens_token_hash', ['token_hash'], unique=True)
        batch_op.create_index('ix_session_tokens_expires_at', ['expires_at'])
        batch_op.create_index('ix_session_tokens_is_revoked', ['is_revoked'])
        batch_op.create_index('ix_session_tokens_admin_active', ['admin_user_id', 'is_revoked'])

    # ============================================================================
    # categories: taxonomy tree (depth and cycle rules live in the service)
    # ============================================================================
    op.create_table(
        'categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=220), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_by_admin_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'],
                                name='fk_categories_parent_id_categories'),
        sa.ForeignKeyConstraint(['created_by_admin_id'], ['admin_users.id'],
                                name='fk_categories_created_by_admin_id_admin_users'),
        sa.PrimaryKeyConstraint('id', name='pk_categories'),
        sa.UniqueConstraint('slug', name='uq_categories_slug'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('categories') as batch_op:
        batch_op.create_index('ix_categories_parent_id', ['parent_id'])
        batch_op.create_index('ix_categories_parent_active', ['parent_id', 'is_active'])

    # ============================================================================
    # products: catalog entries, tombstoned instead of removed while referenced
    # ============================================================================
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('slug', sa.String(length=280), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('attributes', sa.JSON(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('deleted_by_admin_id', sa.Integer(), nullable=True),
        sa.Column('created_by_admin_id', sa.Integer(), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'],
                                name='fk_products_category_id_categories'),
        sa.ForeignKeyConstraint(['deleted_by_admin_id'], ['admin_users.id'],
                                name='fk_products_deleted_by_admin_id_admin_users'),
        sa.ForeignKeyConstraint(['created_by_admin_id'], ['admin_users.id'],
                                name='fk_products_created_by_admin_id_admin_users'),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
        sa.UniqueConstraint('slug', name='uq_products_slug'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('products') as batch_op:
        batch_op.create_index('ix_products_category_id', ['category_id'])
        batch_op.create_index('ix_products_is_deleted', ['is_deleted'])
        batch_op.create_index('ix_products_catalog_visible', ['is_deleted', 'is_active'])

    # ============================================================================
    # customers / customer_phones
    # ============================================================================
    op.create_table(
        'customers',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('full_name', sa.String(length=200), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default='1'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.PrimaryKeyConstraint('id', name='pk_customers'),
        sa.UniqueConstraint('email', name='uq_customers_email'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_customers_is_active', 'customers', ['is_active'])

    op.create_table(
        'customer_phones',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('phone_number', sa.String(length=20), nullable=False),
        sa.Column('is_main', sa.Boolean(), nullable=False, server_default='0'),
        sa.Column('label', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'],
                                name='fk_customer_phones_customer_id_customers'),
        sa.PrimaryKeyConstraint('id', name='pk_customer_phones'),
        sa.UniqueConstraint('customer_id', 'phone_number', name='uq_customer_phones_customer_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customer_phones') as batch_op:
        batch_op.create_index('ix_customer_phones_customer_id', ['customer_id'])
        batch_op.create_index('ix_customer_phones_phone_number', ['phone_number'])
        batch_op.create_index('ix_customer_phones_customer_main', ['customer_id', 'is_main'])

    # Never two main phones for one customer, whatever the writer
    op.create_index(
        'uq_customer_phones_one_main',
        'customer_phones',
        ['customer_id'],
        unique=True,
        sqlite_where=sa.text('is_main = 1'),
        postgresql_where=sa.text('is_main'),
    )

    # ============================================================================
    # orders / order_items: historical records
    # ============================================================================
    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='PENDING'),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('created_by_admin_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['customer_id'], ['customers.id'],
                                name='fk_orders_customer_id_customers'),
        sa.ForeignKeyConstraint(['created_by_admin_id'], ['admin_users.id'],
                                name='fk_orders_created_by_admin_id_admin_users'),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.UniqueConstraint('order_number', name='uq_orders_order_number'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('orders') as batch_op:
        batch_op.create_index('ix_orders_customer_id', ['customer_id'])
        batch_op.create_index('ix_orders_status', ['status'])
        batch_op.create_index('ix_orders_customer_created', ['customer_id', 'created_at'])

    op.create_table(
        'order_items',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('product_snapshot', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'],
                                name='fk_order_items_order_id_orders'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'],
                                name='fk_order_items_product_id_products'),
        sa.PrimaryKeyConstraint('id', name='pk_order_items'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('order_items') as batch_op:
        batch_op.create_index('ix_order_items_order_id', ['order_id'])
        batch_op.create_index('ix_order_items_product', ['product_id'])


def downgrade():
    op.drop_table('order_items')
    op.drop_table('orders')
    op.drop_index('uq_customer_phones_one_main', table_name='customer_phones')
    op.drop_table('customer_phones')
    op.drop_table('customers')
    op.drop_table('products')
    op.drop_table('categories')
    op.drop_table('session_tokens')
    op.drop_index('ix_admin_users_username', table_name='admin_users')
    op.drop_table('admin_users')
