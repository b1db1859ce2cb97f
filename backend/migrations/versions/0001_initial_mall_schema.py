"""Initial mall schema: users, policy rules, catalog and stock

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19

Tables:
1. users, policy_rules (authentication and authorization)
2. categories, brands (catalog references)
3. products, product_images, product_attributes (product aggregate)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. AUTH
    # ==========================================================================
    op.create_table('users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('last_login_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('username', name='uq_users_username'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sqlite_autoincrement=True,
    )
    op.create_index(op.f('ix_users_username'), 'users', ['username'], unique=False)

    op.create_table('policy_rules',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('ptype', sa.String(length=8), nullable=False),
        sa.Column('v0', sa.String(length=128), nullable=False),
        sa.Column('v1', sa.String(length=128), nullable=False),
        sa.Column('v2', sa.String(length=128), nullable=False),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_policy_rules')),
        sa.UniqueConstraint('ptype', 'v0', 'v1', 'v2', name='uq_policy_rules_rule'),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_policy_rules_ptype', 'policy_rules', ['ptype'], unique=False)

    # ==========================================================================
    # 2. CATALOG REFERENCES
    # ==========================================================================
    op.create_table('categories',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('sort', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'], name=op.f('fk_categories_parent_id_categories')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_categories')),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_categories_parent_sort', 'categories', ['parent_id', 'sort'], unique=False)
    op.create_index(op.f('ix_categories_deleted_at'), 'categories', ['deleted_at'], unique=False)

    op.create_table('brands',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('logo', sa.String(length=500), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('sort', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_brands')),
        sa.UniqueConstraint('name', name=op.f('uq_brands_name')),
        sqlite_autoincrement=True,
    )
    op.create_index(op.f('ix_brands_deleted_at'), 'brands', ['deleted_at'], unique=False)

    # ==========================================================================
    # 3. PRODUCT AGGREGATE
    # ==========================================================================
    op.create_table('products',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('sub_title', sa.String(length=255), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('detail', sa.Text(), nullable=True),
        sa.Column('category_id', sa.Integer(), nullable=False),
        sa.Column('brand_id', sa.Integer(), nullable=True),
        sa.Column('merchant_id', sa.Integer(), nullable=False),
        sa.Column('price', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('origin_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('cost_price', sa.Numeric(precision=12, scale=2), nullable=True),
        sa.Column('stock', sa.Integer(), nullable=False),
        sa.Column('min_stock', sa.Integer(), nullable=False),
        sa.Column('max_stock', sa.Integer(), nullable=False),
        sa.Column('sold_count', sa.Integer(), nullable=False),
        sa.Column('view_count', sa.Integer(), nullable=False),
        sa.Column('weight', sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column('volume', sa.Numeric(precision=10, scale=3), nullable=True),
        sa.Column('unit', sa.String(length=20), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False),
        sa.Column('is_hot', sa.Boolean(), nullable=False),
        sa.Column('is_new', sa.Boolean(), nullable=False),
        sa.Column('is_recommend', sa.Boolean(), nullable=False),
        sa.Column('seo_title', sa.String(length=255), nullable=True),
        sa.Column('seo_keywords', sa.String(length=255), nullable=True),
        sa.Column('seo_description', sa.String(length=500), nullable=True),
        sa.Column('sort', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.Column('deleted_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint('stock >= 0', name=op.f('ck_products_stock_non_negative')),
        sa.CheckConstraint('sold_count >= 0', name=op.f('ck_products_sold_count_non_negative')),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], name=op.f('fk_products_category_id_categories')),
        sa.ForeignKeyConstraint(['brand_id'], ['brands.id'], name=op.f('fk_products_brand_id_brands')),
        sa.ForeignKeyConstraint(['merchant_id'], ['users.id'], name=op.f('fk_products_merchant_id_users')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_products')),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_products_category_status', 'products', ['category_id', 'status'], unique=False)
    op.create_index('ix_products_merchant_status', 'products', ['merchant_id', 'status'], unique=False)
    op.create_index('ix_products_sort_id', 'products', ['sort', 'id'], unique=False)
    op.create_index(op.f('ix_products_category_id'), 'products', ['category_id'], unique=False)
    op.create_index(op.f('ix_products_brand_id'), 'products', ['brand_id'], unique=False)
    op.create_index(op.f('ix_products_merchant_id'), 'products', ['merchant_id'], unique=False)
    op.create_index(op.f('ix_products_status'), 'products', ['status'], unique=False)
    op.create_index(op.f('ix_products_deleted_at'), 'products', ['deleted_at'], unique=False)

    op.create_table('product_images',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('url', sa.String(length=500), nullable=False),
        sa.Column('sort', sa.Integer(), nullable=False),
        sa.Column('is_main', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_product_images_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_product_images')),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_product_images_product_sort', 'product_images', ['product_id', 'sort'], unique=False)

    op.create_table('product_attributes',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=False),
        sa.Column('attr_name', sa.String(length=100), nullable=False),
        sa.Column('attr_value', sa.String(length=255), nullable=False),
        sa.Column('sort', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], name=op.f('fk_product_attributes_product_id_products')),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_product_attributes')),
        sqlite_autoincrement=True,
    )
    op.create_index('ix_product_attributes_product_sort', 'product_attributes', ['product_id', 'sort'], unique=False)


def downgrade():
    op.drop_index('ix_product_attributes_product_sort', table_name='product_attributes')
    op.drop_table('product_attributes')
    op.drop_index('ix_product_images_product_sort', table_name='product_images')
    op.drop_table('product_images')
    for name in (
        'ix_products_deleted_at', 'ix_products_status', 'ix_products_merchant_id',
        'ix_products_brand_id', 'ix_products_category_id', 'ix_products_sort_id',
        'ix_products_merchant_status', 'ix_products_category_status',
    ):
        op.drop_index(name, table_name='products')
    op.drop_table('products')
    op.drop_index(op.f('ix_brands_deleted_at'), table_name='brands')
    op.drop_table('brands')
    op.drop_index(op.f('ix_categories_deleted_at'), table_name='categories')
    op.drop_index('ix_categories_parent_sort', table_name='categories')
    op.drop_table('categories')
    op.drop_index('ix_policy_rules_ptype', table_name='policy_rules')
    op.drop_table('policy_rules')
    op.drop_index(op.f('ix_users_username'), table_name='users')
    op.drop_table('users')
