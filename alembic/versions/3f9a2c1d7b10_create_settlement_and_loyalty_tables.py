"""create_settlement_and_loyalty_tables

Revision ID: 3f9a2c1d7b10
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision: str = '3f9a2c1d7b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

order_status_enum = sa.Enum(
    'open', 'completed', 'cancelled', 'refunded', name='order_status_enum'
)
order_payment_status_enum = sa.Enum(
    'pending', 'partial', 'paid', 'failed', 'refunded',
    name='order_payment_status_enum',
)
order_payment_method_enum = sa.Enum(
    'cash', 'card', 'online', 'points', 'mixed', name='order_payment_method_enum'
)
payment_method_enum = sa.Enum(
    'cash', 'card', 'online', 'points', 'mixed', name='payment_method_enum'
)
payment_status_enum = sa.Enum(
    'pending', 'paid', 'failed', 'refunded', name='payment_status_enum'
)
loyalty_tier_enum = sa.Enum(
    'bronze', 'silver', 'gold', 'platinum', name='loyalty_tier_enum'
)
loyalty_transaction_type_enum = sa.Enum(
    'earned_purchase', 'earned_bonus', 'earned_referral', 'earned_birthday',
    'redeemed_discount', 'redeemed_item', 'adjustment_add', 'adjustment_subtract',
    'expired',
    name='loyalty_transaction_type_enum',
)


def upgrade() -> None:
    """Upgrade schema - Create order settlement and loyalty ledger tables."""

    # Orders
    op.create_table(
        'orders',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('order_number', sa.String(length=32), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=True),
        sa.Column('status', order_status_enum, nullable=False),
        sa.Column('total_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('paid_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('change_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('payment_status', order_payment_status_enum, nullable=False),
        sa.Column('payment_method', order_payment_method_enum, nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'total_amount >= 0', name=op.f('ck_orders_total_amount_non_negative')
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_orders')),
        sa.UniqueConstraint('tenant_id', 'order_number', name='uq_orders_tenant_number'),
    )
    op.create_index(op.f('ix_orders_tenant_id'), 'orders', ['tenant_id'])
    op.create_index(op.f('ix_orders_customer_id'), 'orders', ['customer_id'])

    # Payment records
    op.create_table(
        'payment_records',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('payment_number', sa.String(length=32), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('payment_method', payment_method_enum, nullable=False),
        sa.Column('payment_status', payment_status_enum, nullable=False),
        sa.Column('gateway_id', sa.String(length=64), nullable=True),
        sa.Column('transaction_id', sa.String(length=128), nullable=True),
        sa.Column('reference_number', sa.String(length=128), nullable=True),
        sa.Column('terminal_id', sa.String(length=64), nullable=True),
        sa.Column('card_mask', sa.String(length=32), nullable=True),
        sa.Column('card_type', sa.String(length=32), nullable=True),
        sa.Column('cash_received', sa.Numeric(14, 2), nullable=True),
        sa.Column('points_used', sa.Integer(), nullable=True),
        sa.Column('split_details', postgresql.JSONB(), nullable=True),
        sa.Column('refund_of_payment_id', sa.Uuid(), nullable=True),
        sa.Column('refunded_amount', sa.Numeric(14, 2), nullable=False),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('processed_by', sa.String(length=64), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('failure_reason', sa.Text(), nullable=True),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(
            ['order_id'], ['orders.id'],
            name=op.f('fk_payment_records_order_id_orders'),
        ),
        sa.ForeignKeyConstraint(
            ['refund_of_payment_id'], ['payment_records.id'],
            name=op.f('fk_payment_records_refund_of_payment_id_payment_records'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_payment_records')),
        sa.UniqueConstraint(
            'tenant_id', 'payment_number', name='uq_payment_records_tenant_number'
        ),
    )
    op.create_index(op.f('ix_payment_records_order_id'), 'payment_records', ['order_id'])
    op.create_index(
        op.f('ix_payment_records_refund_of_payment_id'),
        'payment_records',
        ['refund_of_payment_id'],
    )
    op.create_index(
        'ix_payment_records_tenant_created', 'payment_records', ['tenant_id', 'created_at']
    )

    # Customer loyalty accounts
    op.create_table(
        'customer_loyalty',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('current_points', sa.Integer(), nullable=False),
        sa.Column('points_earned', sa.Integer(), nullable=False),
        sa.Column('points_redeemed', sa.Integer(), nullable=False),
        sa.Column('points_expired', sa.Integer(), nullable=False),
        sa.Column('ledger_sequence', sa.Integer(), nullable=False),
        sa.Column('tier_level', loyalty_tier_enum, nullable=False),
        sa.Column('tier_updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('lifetime_spent', sa.Numeric(14, 2), nullable=False),
        sa.Column('current_year_spent', sa.Numeric(14, 2), nullable=False),
        sa.Column('current_month_spent', sa.Numeric(14, 2), nullable=False),
        sa.Column('total_visits', sa.Integer(), nullable=False),
        sa.Column('visits_this_month', sa.Integer(), nullable=False),
        sa.Column('first_visit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('last_visit_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('counters_reset_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'current_points >= 0',
            name=op.f('ck_customer_loyalty_current_points_non_negative'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_customer_loyalty')),
        sa.UniqueConstraint(
            'tenant_id', 'customer_id', name='uq_customer_loyalty_tenant_customer'
        ),
    )
    op.create_index(
        op.f('ix_customer_loyalty_tenant_id'), 'customer_loyalty', ['tenant_id']
    )

    # Loyalty ledger
    op.create_table(
        'loyalty_transactions',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('transaction_type', loyalty_transaction_type_enum, nullable=False),
        sa.Column('points_change', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('description', sa.String(length=255), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('visit_id', sa.String(length=64), nullable=True),
        sa.Column('order_reference', sa.String(length=64), nullable=True),
        sa.Column('campaign_id', sa.String(length=64), nullable=True),
        sa.Column('related_amount', sa.Numeric(14, 2), nullable=True),
        sa.Column('created_by', sa.String(length=64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            'points_change <> 0',
            name=op.f('ck_loyalty_transactions_points_change_non_zero'),
        ),
        sa.CheckConstraint(
            'balance_after >= 0',
            name=op.f('ck_loyalty_transactions_balance_after_non_negative'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_loyalty_transactions')),
        sa.UniqueConstraint(
            'tenant_id', 'customer_id', 'sequence',
            name='uq_loyalty_transactions_customer_sequence',
        ),
    )
    op.create_index(
        'ix_loyalty_transactions_customer_created',
        'loyalty_transactions',
        ['tenant_id', 'customer_id', 'created_at'],
    )

    # Point lots
    op.create_table(
        'loyalty_point_lots',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('tenant_id', sa.String(length=64), nullable=False),
        sa.Column('customer_id', sa.String(length=64), nullable=False),
        sa.Column('source_transaction_id', sa.Uuid(), nullable=False),
        sa.Column('points', sa.Integer(), nullable=False),
        sa.Column('points_remaining', sa.Integer(), nullable=False),
        sa.Column('expires', sa.Boolean(), nullable=False),
        sa.Column('earned_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expired_at', sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            'points > 0', name=op.f('ck_loyalty_point_lots_lot_points_positive')
        ),
        sa.CheckConstraint(
            'points_remaining >= 0 AND points_remaining <= points',
            name=op.f('ck_loyalty_point_lots_lot_points_remaining_in_range'),
        ),
        sa.ForeignKeyConstraint(
            ['source_transaction_id'], ['loyalty_transactions.id'],
            name=op.f('fk_loyalty_point_lots_source_transaction_id_loyalty_transactions'),
        ),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_loyalty_point_lots')),
        sa.UniqueConstraint(
            'source_transaction_id',
            name=op.f('uq_loyalty_point_lots_source_transaction_id'),
        ),
    )
    op.create_index(
        'ix_loyalty_point_lots_customer_earned',
        'loyalty_point_lots',
        ['tenant_id', 'customer_id', 'earned_at'],
    )


def downgrade() -> None:
    """Downgrade schema - Drop settlement and loyalty tables."""
    op.drop_index('ix_loyalty_point_lots_customer_earned', table_name='loyalty_point_lots')
    op.drop_table('loyalty_point_lots')
    op.drop_index(
        'ix_loyalty_transactions_customer_created', table_name='loyalty_transactions'
    )
    op.drop_table('loyalty_transactions')
    op.drop_index(op.f('ix_customer_loyalty_tenant_id'), table_name='customer_loyalty')
    op.drop_table('customer_loyalty')
    op.drop_index('ix_payment_records_tenant_created', table_name='payment_records')
    op.drop_index(
        op.f('ix_payment_records_refund_of_payment_id'), table_name='payment_records'
    )
    op.drop_index(op.f('ix_payment_records_order_id'), table_name='payment_records')
    op.drop_table('payment_records')
    op.drop_index(op.f('ix_orders_customer_id'), table_name='orders')
    op.drop_index(op.f('ix_orders_tenant_id'), table_name='orders')
    op.drop_table('orders')

    bind = op.get_bind()
    for enum_type in (
        loyalty_transaction_type_enum,
        loyalty_tier_enum,
        payment_status_enum,
        payment_method_enum,
        order_payment_method_enum,
        order_payment_status_enum,
        order_status_enum,
    ):
        enum_type.drop(bind, checkfirst=True)
