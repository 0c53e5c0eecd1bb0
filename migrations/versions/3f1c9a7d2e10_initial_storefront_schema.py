"""initial storefront schema: users, kits, kit assets, entitlements, billing event log

Revision ID: 3f1c9a7d2e10
Revises:
Create Date: 2026-10-12 10:00:00.000000
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '3f1c9a7d2e10'
down_revision = None
branch_labels = None
depends_on = None

_JSON = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), 'postgresql')


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=36), primary_key=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ux_users_lower_email', 'users', [sa.text('lower(email)')], unique=True)

    op.create_table(
        'kits',
        sa.Column('id', sa.String(length=64), primary_key=True),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('category', sa.String(length=120), nullable=True),
        sa.Column('image_url', sa.String(length=1024), nullable=True),
        sa.Column('price', sa.Numeric(10, 2), nullable=False),
        sa.Column('stripe_price_id', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint('price >= 0', name='ck_kits_price_non_negative'),
    )
    op.create_index('ix_kits_category', 'kits', ['category'])
    op.create_index('ix_kits_created_at', 'kits', [sa.text('created_at DESC')])

    op.create_table(
        'kit_assets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('kit_id', sa.String(length=64), nullable=False),
        sa.Column('asset_key', sa.String(length=120), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('content', _JSON, nullable=True),
        sa.Column('position', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.ForeignKeyConstraint(['kit_id'], ['kits.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('kit_id', 'asset_key', name='uq_kit_assets_kit_key'),
        sa.CheckConstraint("type IN ('text','graphic','template')", name='ck_kit_assets_type_valid'),
    )
    op.create_index('ix_kit_assets_kit_id', 'kit_assets', ['kit_id'])
    op.create_index('ix_kit_assets_kit_position', 'kit_assets', ['kit_id', 'position'])

    op.create_table(
        'entitlements',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.String(length=64), nullable=False),
        sa.Column('kit_id', sa.String(length=64), nullable=False),
        sa.Column('stripe_session_id', sa.String(length=255), nullable=True),
        sa.Column('purchased_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.ForeignKeyConstraint(['kit_id'], ['kits.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('user_id', 'kit_id', name='uq_entitlements_user_kit'),
    )
    op.create_index('ix_entitlements_user_id', 'entitlements', ['user_id'])
    op.create_index('ix_entitlements_kit_id', 'entitlements', ['kit_id'])

    op.create_table(
        'billing_event_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('stripe_event_id', sa.String(length=255), nullable=False),
        sa.Column('type', sa.String(length=80), nullable=False),
        sa.Column('signature_valid', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('payload', _JSON, nullable=False),
        sa.Column('retries', sa.Integer(), nullable=False, server_default=sa.text('0')),
        sa.Column('notes', sa.String(length=255), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_billing_event_logs_stripe_event_id', 'billing_event_logs', ['stripe_event_id'], unique=True)
    op.create_index('ix_billing_event_logs_type', 'billing_event_logs', ['type'])


def downgrade():
    op.drop_index('ix_billing_event_logs_type', table_name='billing_event_logs')
    op.drop_index('ix_billing_event_logs_stripe_event_id', table_name='billing_event_logs')
    op.drop_table('billing_event_logs')

    op.drop_index('ix_entitlements_kit_id', table_name='entitlements')
    op.drop_index('ix_entitlements_user_id', table_name='entitlements')
    op.drop_table('entitlements')

    op.drop_index('ix_kit_assets_kit_position', table_name='kit_assets')
    op.drop_index('ix_kit_assets_kit_id', table_name='kit_assets')
    op.drop_table('kit_assets')

    op.drop_index('ix_kits_created_at', table_name='kits')
    op.drop_index('ix_kits_category', table_name='kits')
    op.drop_table('kits')

    op.drop_index('ux_users_lower_email', table_name='users')
    op.drop_table('users')
