"""Add customer notification inbox

Revision ID: 20260315_customer_notifications
Revises: 20260301_initial
Create Date: 2026-03-15

Wishlist stock alerts are now also written to a per-customer inbox that
the storefront lists and marks read.
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20260315_customer_notifications'
down_revision = '20260301_initial'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('customer_notifications',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('tenant_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('product_id', sa.Integer(), nullable=True),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('read_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.ForeignKeyConstraint(['tenant_id'], ['tenants.id'], ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('customer_notifications', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_customer_notifications_tenant_id'), ['tenant_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customer_notifications_user_id'), ['user_id'], unique=False)
        batch_op.create_index(batch_op.f('ix_customer_notifications_product_id'), ['product_id'], unique=False)
        batch_op.create_index('ix_customer_notifications_inbox', ['tenant_id', 'user_id', 'created_at'], unique=False)


def downgrade():
    with op.batch_alter_table('customer_notifications', schema=None) as batch_op:
        batch_op.drop_index('ix_customer_notifications_inbox')
        batch_op.drop_index(batch_op.f('ix_customer_notifications_product_id'))
        batch_op.drop_index(batch_op.f('ix_customer_notifications_user_id'))
        batch_op.drop_index(batch_op.f('ix_customer_notifications_tenant_id'))

    op.drop_table('customer_notifications')
