"""create_order_and_settlement_tables

Revision ID: 3f1c2a7d9b10
Revises:
Create Date: 2026-03-01 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a7d9b10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

MONEY = sa.Numeric(precision=12, scale=3)


def _timestamps(with_updated: bool = True) -> list:
    cols = [sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)]
    if with_updated:
        cols.append(sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False))
    return cols


def upgrade() -> None:
    op.create_table(
        'staff',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False, comment='Display name'),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=30), nullable=False, comment='SUPER_ADMIN/OPERATION_MANAGER/DRIVER/FACILITY_TEAM'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_staff_email', 'staff', ['email'], unique=True)
    op.create_index('ix_staff_role', 'staff', ['role'], unique=False)

    op.create_table(
        'orders',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_number', sa.String(length=50), nullable=False, comment='Human order number'),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('status', sa.String(length=40), nullable=False, server_default='ORDER_PLACED'),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='PENDING',
                  comment='PENDING/PAID/FAILED/REFUNDED/PARTIAL_REFUND'),
        sa.Column('invoice_total', MONEY, nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'], unique=False)
    op.create_index('ix_orders_status', 'orders', ['status'], unique=False)
    op.create_index('ix_orders_created_at', 'orders', ['created_at'], unique=False)

    op.create_table(
        'order_history',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('staff_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=40), nullable=False),
        sa.Column('old_value', sa.String(length=100), nullable=True),
        sa.Column('new_value', sa.String(length=100), nullable=True),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('metadata', sa.JSON(), nullable=True),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['staff_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_order_history_order_id', 'order_history', ['order_id'], unique=False)
    op.create_index('ix_order_history_order_action', 'order_history', ['order_id', 'action'], unique=False)

    op.create_table(
        'driver_assignments',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('driver_id', sa.Integer(), nullable=False),
        sa.Column('assignment_type', sa.String(length=20), nullable=False, comment='pickup/delivery'),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='ASSIGNED'),
        sa.Column('estimated_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('actual_time', sa.DateTime(timezone=True), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['driver_id'], ['staff.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_driver_assignments_order_id', 'driver_assignments', ['order_id'], unique=False)
    op.create_index('ix_driver_assignments_driver_id', 'driver_assignments', ['driver_id'], unique=False)
    op.create_index('ix_driver_assignments_status', 'driver_assignments', ['status'], unique=False)
    op.create_index('ix_driver_assignments_order_type', 'driver_assignments', ['order_id', 'assignment_type'], unique=False)

    op.create_table(
        'wallets',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('balance', MONEY, nullable=False, server_default='0'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='BHD'),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_transaction_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wallets_customer_id', 'wallets', ['customer_id'], unique=True)

    op.create_table(
        'wallet_transactions',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('wallet_id', sa.Integer(), nullable=False),
        sa.Column('transaction_type', sa.String(length=20), nullable=False, comment='PAYMENT/REFUND/TOPUP'),
        sa.Column('amount', MONEY, nullable=False),
        sa.Column('balance_before', MONEY, nullable=False),
        sa.Column('balance_after', MONEY, nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('reference', sa.String(length=100), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='COMPLETED'),
        *_timestamps(with_updated=False),
        sa.ForeignKeyConstraint(['wallet_id'], ['wallets.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_wallet_transactions_wallet_id', 'wallet_transactions', ['wallet_id'], unique=False)
    op.create_index('ix_wallet_transactions_reference', 'wallet_transactions', ['reference'], unique=False)

    op.create_table(
        'payment_records',
        sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
        sa.Column('order_id', sa.Integer(), nullable=False),
        sa.Column('customer_id', sa.Integer(), nullable=False),
        sa.Column('amount', MONEY, nullable=False, comment='Immutable once created'),
        sa.Column('currency', sa.String(length=3), nullable=False, server_default='BHD'),
        sa.Column('payment_method', sa.String(length=20), nullable=False),
        sa.Column('payment_status', sa.String(length=20), nullable=False, server_default='PENDING'),
        sa.Column('refund_amount', MONEY, nullable=False, server_default='0', comment='Cumulative refunded amount'),
        sa.Column('refund_reason', sa.Text(), nullable=True),
        sa.Column('gateway_charge_id', sa.String(length=200), nullable=True),
        sa.Column('gateway_refund_id', sa.String(length=200), nullable=True),
        sa.Column('wallet_transaction_id', sa.Integer(), nullable=True),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        sa.Column('processed_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id']),
        sa.ForeignKeyConstraint(['wallet_transaction_id'], ['wallet_transactions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.CheckConstraint('refund_amount <= amount', name='ck_payment_records_refund_le_amount'),
    )
    op.create_index('ix_payment_records_order_id', 'payment_records', ['order_id'], unique=False)
    op.create_index('ix_payment_records_customer_id', 'payment_records', ['customer_id'], unique=False)
    op.create_index('ix_payment_records_payment_status', 'payment_records', ['payment_status'], unique=False)
    op.create_index('ix_payment_records_gateway_charge_id', 'payment_records', ['gateway_charge_id'], unique=False)
    op.create_index('ix_payment_records_created_at', 'payment_records', ['created_at'], unique=False)
    op.create_index('ix_payment_records_order_status', 'payment_records', ['order_id', 'payment_status'], unique=False)


def downgrade() -> None:
    op.drop_table('payment_records')
    op.drop_table('wallet_transactions')
    op.drop_table('wallets')
    op.drop_table('driver_assignments')
    op.drop_table('order_history')
    op.drop_table('orders')
    op.drop_table('staff')
