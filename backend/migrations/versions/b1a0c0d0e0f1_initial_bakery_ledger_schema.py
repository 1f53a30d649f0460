"""initial bakery ledger schema

Revision ID: b1a0c0d0e0f1
Revises:
Create Date: 2026-10-19 00:00:00.000000

Creates the full schema:
- users, session_tokens: staff identity and bearer sessions
- units, products: catalog and raw stock pool (products.remaining_quantity)
- stock_entries: workshop / shop / kitchen balances, one row per (product, pool)
- recipes: bill of materials per finished good
- productions: production runs
- sales, sale_lines, sale_cancellations: point of sale
- stock_movements: append-only movement audit
- sale_prices: product and recipe selling prices
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'b1a0c0d0e0f1'
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


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('full_name', sa.String(length=128), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.CheckConstraint(
            "role IN ('admin', 'chef_patissier', 'employe_production', 'employe_boutique')",
            name='ck_users_role',
        ),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_username', 'users', ['username'])

    op.create_table(
        'session_tokens',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('token_hash', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_used_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('is_revoked', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('revoked_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('revoked_reason', sa.String(length=255), nullable=True),
        sa.Column('user_agent', sa.String(length=255), nullable=True),
        sa.Column('ip_address', sa.String(length=64), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('token_hash'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_session_tokens_user_active', 'session_tokens', ['user_id', 'is_revoked'])
    op.create_index('ix_session_tokens_expires_at', 'session_tokens', ['expires_at'])

    op.create_table(
        'units',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('value', sa.String(length=32), nullable=False),
        sa.Column('label', sa.String(length=64), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('value', name='uq_units_value'),
        sqlite_autoincrement=True
    )

    # products.remaining_quantity is the raw stock pool
    op.create_table(
        'products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False, server_default='ingredient'),
        sa.Column('unit_id', sa.Integer(), nullable=True),
        sa.Column('purchase_price', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('purchased_quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('remaining_quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('purchase_date', sa.Date(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['unit_id'], ['units.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('remaining_quantity >= 0', name='ck_products_remaining_nonneg'),
        sa.CheckConstraint("kind IN ('ingredient', 'finished')", name='ck_products_kind'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_products_name', 'products', ['name'])

    op.create_table(
        'stock_entries',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('pool', sa.String(length=16), nullable=False),
        sa.Column('available_quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('reserved_quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('sold_quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('used_quantity', sa.Numeric(12, 3), nullable=False, server_default='0'),
        sa.Column('sale_price', sa.Numeric(12, 2), nullable=True),
        sa.Column('transferred_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['transferred_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', 'pool', name='uq_stock_entries_product_pool'),
        sa.CheckConstraint('available_quantity >= 0', name='ck_stock_entries_available_nonneg'),
        sa.CheckConstraint('sold_quantity >= 0', name='ck_stock_entries_sold_nonneg'),
        sa.CheckConstraint("pool IN ('workshop', 'shop', 'kitchen')", name='ck_stock_entries_pool'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_entries_pool', 'stock_entries', ['pool'])
    op.create_index('ix_stock_entries_product_id', 'stock_entries', ['product_id'])

    op.create_table(
        'recipes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=128), nullable=False),
        sa.Column('ingredient_product_id', sa.Integer(), nullable=False),
        sa.Column('quantity_per_unit', sa.Numeric(12, 3), nullable=False),
        sa.Column('created_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['ingredient_product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['created_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_name', 'ingredient_product_id', name='uq_recipes_product_ingredient'),
        sa.CheckConstraint('quantity_per_unit > 0', name='ck_recipes_qpu_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_recipes_product_name', 'recipes', ['product_name'])

    op.create_table(
        'productions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=128), nullable=False),
        sa.Column('finished_product_id', sa.Integer(), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('destination', sa.String(length=16), nullable=False, server_default='shop'),
        sa.Column('production_date', sa.Date(), nullable=False),
        sa.Column('ingredient_cost', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='termine'),
        sa.Column('producer_user_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['finished_product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['producer_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_productions_quantity_positive'),
        sa.CheckConstraint("status IN ('termine', 'annule')", name='ck_productions_status'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_productions_date', 'productions', ['production_date'])

    op.create_table(
        'sales',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ticket_number', sa.String(length=64), nullable=False),
        sa.Column('total', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('amount_tendered', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('change_due', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('seller_user_id', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='validee'),
        sa.Column('pool', sa.String(length=16), nullable=False, server_default='shop'),
        *_timestamps(),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False, server_default='1'),
        sa.ForeignKeyConstraint(['seller_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('ticket_number', name='uq_sales_ticket_number'),
        sa.CheckConstraint("status IN ('validee', 'annulee')", name='ck_sales_status'),
        sa.CheckConstraint("pool IN ('shop', 'kitchen')", name='ck_sales_pool'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sales_created_at', 'sales', ['created_at'])

    op.create_table(
        'sale_lines',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('product_name', sa.String(length=128), nullable=False),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('unit_price', sa.Numeric(12, 2), nullable=False),
        sa.Column('line_total', sa.Numeric(12, 2), nullable=False),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('quantity > 0', name='ck_sale_lines_quantity_positive'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_lines_sale_id', 'sale_lines', ['sale_id'])
    op.create_index('ix_sale_lines_product_id', 'sale_lines', ['product_id'])

    op.create_table(
        'sale_cancellations',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('sale_id', sa.Integer(), nullable=False),
        sa.Column('ticket_number', sa.String(length=64), nullable=False),
        sa.Column('amount_cancelled', sa.Numeric(12, 2), nullable=False),
        sa.Column('reason', sa.Text(), nullable=False),
        sa.Column('cancelled_by_user_id', sa.Integer(), nullable=False),
        sa.Column('cancelled_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['cancelled_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('sale_id', name='uq_sale_cancellations_sale'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_sale_cancellations_cancelled_at', 'sale_cancellations', ['cancelled_at'])

    # Append-only: never updated or deleted by the application
    op.create_table(
        'stock_movements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('movement_type', sa.String(length=32), nullable=False),
        sa.Column('pool', sa.String(length=16), nullable=True),
        sa.Column('counterpart_pool', sa.String(length=16), nullable=True),
        sa.Column('quantity', sa.Numeric(12, 3), nullable=False),
        sa.Column('quantity_before', sa.Numeric(12, 3), nullable=True),
        sa.Column('quantity_after', sa.Numeric(12, 3), nullable=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=True),
        sa.Column('reference', sa.String(length=255), nullable=True),
        sa.Column('sale_id', sa.Integer(), nullable=True),
        sa.Column('production_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['actor_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['sale_id'], ['sales.id']),
        sa.ForeignKeyConstraint(['production_id'], ['productions.id']),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_stock_movements_product_created', 'stock_movements', ['product_id', 'created_at'])
    op.create_index('ix_stock_movements_type', 'stock_movements', ['movement_type'])
    op.create_index('ix_stock_movements_sale', 'stock_movements', ['sale_id'])

    op.create_table(
        'sale_prices',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('recipe_name', sa.String(length=128), nullable=True),
        sa.Column('price', sa.Numeric(12, 2), nullable=False),
        sa.Column('margin_percent', sa.Numeric(8, 2), nullable=False, server_default='0'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('set_by_user_id', sa.Integer(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['product_id'], ['products.id']),
        sa.ForeignKeyConstraint(['set_by_user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('product_id', name='uq_sale_prices_product'),
        sa.UniqueConstraint('recipe_name', name='uq_sale_prices_recipe'),
        sa.CheckConstraint('(product_id IS NULL) <> (recipe_name IS NULL)', name='ck_sale_prices_single_key'),
        sa.CheckConstraint('price >= 0', name='ck_sale_prices_price_nonneg'),
        sqlite_autoincrement=True
    )


def downgrade():
    op.drop_table('sale_prices')
    op.drop_table('stock_movements')
    op.drop_table('sale_cancellations')
    op.drop_table('sale_lines')
    op.drop_table('sales')
    op.drop_table('productions')
    op.drop_table('recipes')
    op.drop_table('stock_entries')
    op.drop_table('products')
    op.drop_table('units')
    op.drop_table('session_tokens')
    op.drop_table('users')
