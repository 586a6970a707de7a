"""Initial schema with creators, blocks, purchases, licenses, payouts, webhook events

Revision ID: 001_initial_schema
Revises: 
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enum(name: str, *values: str) -> postgresql.ENUM:
    return postgresql.ENUM(*values, name=name, create_type=False)


def upgrade() -> None:
    """Create initial database schema."""
    # Create enum types
    op.execute("CREATE TYPE stripeaccountstatus AS ENUM ('PENDING', 'ENABLED', 'RESTRICTED', 'DISABLED')")
    op.execute("CREATE TYPE blockstatus AS ENUM ('DRAFT', 'PUBLISHED', 'ARCHIVED')")
    op.execute("CREATE TYPE purchasestatus AS ENUM ('PENDING', 'PAID', 'REFUNDED', 'FAILED')")
    op.execute("CREATE TYPE licensetype AS ENUM ('PERSONAL', 'TEAM', 'ENTERPRISE')")
    op.execute("CREATE TYPE licensestatus AS ENUM ('ACTIVE', 'REVOKED')")
    op.execute("CREATE TYPE deliverystatus AS ENUM ('NOT_READY', 'READY', 'REVOKED')")
    op.execute("CREATE TYPE webhookeventstatus AS ENUM ('RECEIVED', 'PROCESSED', 'IGNORED', 'FAILED')")

    # Catalog tables read by the purchase core
    op.create_table(
        'creators',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('display_name', sa.String(length=100), nullable=False),
        sa.Column('stripe_account_id', sa.String(length=255), nullable=True),
        sa.Column('stripe_account_status', _enum('stripeaccountstatus', 'PENDING', 'ENABLED', 'RESTRICTED', 'DISABLED'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stripe_account_id')
    )

    op.create_table(
        'blocks',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('creator_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.String(length=200), nullable=False),
        sa.Column('slug', sa.String(length=200), nullable=False),
        sa.Column('price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('platform_fee_bps', sa.Integer(), nullable=False),
        sa.Column('status', _enum('blockstatus', 'DRAFT', 'PUBLISHED', 'ARCHIVED'), nullable=False),
        sa.Column('sold_count', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('price >= 0', name='check_nonnegative_price'),
        sa.CheckConstraint('sold_count >= 0', name='check_nonnegative_sold_count'),
        sa.ForeignKeyConstraint(['creator_id'], ['creators.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('slug')
    )
    op.create_index('ix_blocks_creator_id', 'blocks', ['creator_id'])
    op.create_index('ix_blocks_status', 'blocks', ['status'])

    # Purchases and line items
    op.create_table(
        'purchases',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('status', _enum('purchasestatus', 'PENDING', 'PAID', 'REFUNDED', 'FAILED'), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('subtotal_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('platform_fee_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('stripe_fee_amount', sa.Numeric(precision=10, scale=2), nullable=False, server_default='0'),
        sa.Column('total_amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('external_payment_reference', sa.String(length=255), nullable=True),
        sa.Column('stripe_charge_id', sa.String(length=255), nullable=True),
        sa.Column('checkout_session_id', sa.String(length=255), nullable=True),
        sa.Column('paid_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            'round(total_amount * 100) = round(subtotal_amount * 100) + round(platform_fee_amount * 100)',
            name='check_total_matches_components',
        ),
        sa.CheckConstraint('subtotal_amount >= 0', name='check_nonnegative_subtotal'),
        sa.CheckConstraint('platform_fee_amount >= 0', name='check_nonnegative_platform_fee'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_payment_reference'),
        sa.UniqueConstraint('checkout_session_id')
    )
    op.create_index('ix_purchases_buyer_id', 'purchases', ['buyer_id'])
    op.create_index('ix_purchases_status', 'purchases', ['status'])
    op.create_index('ix_purchases_created_at', 'purchases', ['created_at'])
    op.create_index('ix_purchases_buyer_created', 'purchases', ['buyer_id', sa.text('created_at DESC')])

    op.create_table(
        'purchase_line_items',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('purchase_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('block_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('position', sa.Integer(), nullable=False),
        sa.Column('unit_price', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('license_type', _enum('licensetype', 'PERSONAL', 'TEAM', 'ENTERPRISE'), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False, server_default='1'),
        sa.CheckConstraint('quantity > 0', name='check_positive_quantity'),
        sa.CheckConstraint('unit_price >= 0', name='check_nonnegative_unit_price'),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['block_id'], ['blocks.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('purchase_id', 'block_id', name='uq_line_item_purchase_block')
    )
    op.create_index('ix_purchase_line_items_purchase_id', 'purchase_line_items', ['purchase_id'])
    op.create_index('ix_purchase_line_items_block_id', 'purchase_line_items', ['block_id'])

    # Licenses, one per (purchase, block)
    op.create_table(
        'licenses',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('purchase_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('buyer_id', sa.String(length=64), nullable=False),
        sa.Column('block_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('type', _enum('licensetype', 'PERSONAL', 'TEAM', 'ENTERPRISE'), nullable=False),
        sa.Column('status', _enum('licensestatus', 'ACTIVE', 'REVOKED'), nullable=False),
        sa.Column('delivery_status', _enum('deliverystatus', 'NOT_READY', 'READY', 'REVOKED'), nullable=False),
        sa.Column('delivery_ready_at', sa.DateTime(), nullable=True),
        sa.Column('transaction_hash', sa.String(length=64), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['block_id'], ['blocks.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_hash'),
        sa.UniqueConstraint('purchase_id', 'block_id', name='uq_license_purchase_block')
    )
    op.create_index('ix_licenses_purchase_id', 'licenses', ['purchase_id'])
    op.create_index('ix_licenses_buyer_id', 'licenses', ['buyer_id'])
    op.create_index('ix_licenses_block_id', 'licenses', ['block_id'])
    op.create_index('ix_licenses_buyer_created', 'licenses', ['buyer_id', sa.text('created_at DESC')])

    # Creator payouts
    op.create_table(
        'payouts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('creator_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('purchase_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('amount', sa.Numeric(precision=10, scale=2), nullable=False),
        sa.Column('external_transfer_reference', sa.String(length=255), nullable=False),
        sa.Column('period_start', sa.DateTime(), nullable=False),
        sa.Column('period_end', sa.DateTime(), nullable=False),
        sa.Column('paid_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint('amount >= 0', name='check_nonnegative_payout_amount'),
        sa.ForeignKeyConstraint(['creator_id'], ['creators.id']),
        sa.ForeignKeyConstraint(['purchase_id'], ['purchases.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_transfer_reference')
    )
    op.create_index('ix_payouts_creator_id', 'payouts', ['creator_id'])
    op.create_index('ix_payouts_purchase_id', 'payouts', ['purchase_id'])
    op.create_index('ix_payouts_creator_paid', 'payouts', ['creator_id', sa.text('paid_at DESC')])

    # Gateway event ledger
    op.create_table(
        'webhook_events',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False, primary_key=True),
        sa.Column('provider', sa.String(length=20), nullable=False),
        sa.Column('external_id', sa.String(length=255), nullable=False),
        sa.Column('event_type', sa.String(length=100), nullable=False),
        sa.Column('status', _enum('webhookeventstatus', 'RECEIVED', 'PROCESSED', 'IGNORED', 'FAILED'), nullable=False),
        sa.Column('payload', postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column('error', sa.Text(), nullable=True),
        sa.Column('received_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('external_id')
    )
    op.create_index('ix_webhook_events_event_type', 'webhook_events', ['event_type'])
    op.create_index('ix_webhook_events_status', 'webhook_events', ['status'])


def downgrade() -> None:
    """Drop all tables and types."""
    op.drop_table('webhook_events')
    op.drop_table('payouts')
    op.drop_table('licenses')
    op.drop_table('purchase_line_items')
    op.drop_table('purchases')
    op.drop_table('blocks')
    op.drop_table('creators')

    op.execute('DROP TYPE IF EXISTS webhookeventstatus')
    op.execute('DROP TYPE IF EXISTS deliverystatus')
    op.execute('DROP TYPE IF EXISTS licensestatus')
    op.execute('DROP TYPE IF EXISTS licensetype')
    op.execute('DROP TYPE IF EXISTS purchasestatus')
    op.execute('DROP TYPE IF EXISTS blockstatus')
    op.execute('DROP TYPE IF EXISTS stripeaccountstatus')
