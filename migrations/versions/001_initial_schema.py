"""
Alembic migration: initial telecore schema.

Creates the catalog (products, countries, pricing plans), orders with their
status history and pricing snapshots, phone numbers and disconnection
requests, invoices and the wallet ledger.

Revision ID: 001
Revises:
Create Date: 2024-05-02 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

RATE_COLUMNS = (
    'nrc',
    'mrc',
    'ppm',
    'ppm_fix',
    'ppm_mobile',
    'ppm_payphone',
    'arc',
    'mo',
    'mt',
    'incoming_ppm',
    'outgoing_ppm_fix',
    'outgoing_ppm_mobile',
    'incoming_sms',
    'outgoing_sms',
)

plan_status = postgresql.ENUM('Active', 'Inactive', name='plan_status', create_type=False)
order_status = postgresql.ENUM(
    'In Progress',
    'Confirmed',
    'Amount Paid',
    'Delivered',
    'Cancelled',
    name='order_status',
    create_type=False,
)
pricing_type = postgresql.ENUM('current', 'desired', name='pricing_type', create_type=False)
number_status = postgresql.ENUM(
    'Active', 'Inactive', 'Disconnected', name='number_status', create_type=False
)
disconnection_status = postgresql.ENUM(
    'Pending',
    'Approved',
    'Rejected',
    'Completed',
    name='disconnection_status',
    create_type=False,
)
disconnection_request_status = postgresql.ENUM(
    'Pending',
    'Approved',
    'Rejected',
    name='disconnection_request_status',
    create_type=False,
)
invoice_status = postgresql.ENUM(
    'Pending', 'Paid', 'Overdue', name='invoice_status', create_type=False
)
wallet_transaction_type = postgresql.ENUM(
    'credit', 'debit', name='wallet_transaction_type', create_type=False
)

ENUM_TYPES = (
    plan_status,
    order_status,
    pricing_type,
    number_status,
    disconnection_status,
    disconnection_request_status,
    invoice_status,
    wallet_transaction_type,
)


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column('id', sa.Uuid(), nullable=False, comment='Unique identifier for the record'),
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
    ]


def _rate_columns() -> list[sa.Column]:
    columns = [
        sa.Column(name, sa.Numeric(precision=14, scale=4), nullable=True)
        for name in RATE_COLUMNS
    ]
    columns += [
        sa.Column('billing_pulse', sa.String(length=50), nullable=True),
        sa.Column('estimated_lead_time', sa.String(length=100), nullable=True),
        sa.Column('contract_term', sa.String(length=100), nullable=True),
        sa.Column('disconnection_notice_term', sa.String(length=100), nullable=True),
    ]
    return columns


def upgrade() -> None:
    """
    Create all telecore tables, enum types and indexes.
    """
    bind = op.get_bind()
    for enum_type in ENUM_TYPES:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        'products',
        *_base_columns(),
        sa.Column('code', sa.String(length=50), nullable=False, comment='Product code'),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('category', sa.String(length=100), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_products'),
    )
    op.create_index('ix_products_code', 'products', ['code'], unique=True)

    op.create_table(
        'countries',
        *_base_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('iso_code', sa.String(length=2), nullable=False),
        sa.Column('phone_code', sa.String(length=10), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_countries'),
        sa.UniqueConstraint('iso_code', name='uq_countries_iso_code'),
    )

    op.create_table(
        'pricing_plans',
        *_base_columns(),
        *_rate_columns(),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('country_id', sa.Uuid(), nullable=False),
        sa.Column('area_code', sa.String(length=20), nullable=True),
        sa.Column('status', plan_status, nullable=False),
        sa.Column('effective_from', sa.Date(), nullable=False),
        sa.Column('effective_to', sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_pricing_plans'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['country_id'], ['countries.id'], ondelete='RESTRICT'),
        sa.CheckConstraint(
            'effective_to IS NULL OR effective_to >= effective_from',
            name='ck_pricing_plans_effective_window',
        ),
    )
    op.create_index('ix_pricing_plans_product_id', 'pricing_plans', ['product_id'])
    op.create_index('ix_pricing_plans_country_id', 'pricing_plans', ['country_id'])
    op.create_index(
        'ix_pricing_plans_lookup',
        'pricing_plans',
        ['product_id', 'country_id', 'area_code', 'status'],
    )

    op.create_table(
        'orders',
        *_base_columns(),
        sa.Column('order_number', sa.String(length=50), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('vendor_id', sa.Uuid(), nullable=True),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('country_id', sa.Uuid(), nullable=False),
        sa.Column('area_code', sa.String(length=20), nullable=True),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('status', order_status, nullable=False),
        sa.Column('total_amount', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('documents', sa.JSON(), nullable=False),
        sa.Column('notes', sa.String(length=1000), nullable=True),
        sa.Column('confirmed_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('paid_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('delivered_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('cancelled_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_orders'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['country_id'], ['countries.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('quantity >= 1', name='ck_orders_quantity_positive'),
        sa.CheckConstraint('total_amount >= 0', name='ck_orders_total_amount_non_negative'),
    )
    op.create_index('ix_orders_order_number', 'orders', ['order_number'], unique=True)
    op.create_index('ix_orders_customer_id', 'orders', ['customer_id'])
    op.create_index('ix_orders_status', 'orders', ['status'])
    op.create_index('ix_orders_delivered_at', 'orders', ['delivered_at'])
    op.create_index('ix_orders_customer_status', 'orders', ['customer_id', 'status'])

    op.create_table(
        'order_status_history',
        *_base_columns(),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('from_status', order_status, nullable=True),
        sa.Column('to_status', order_status, nullable=False),
        sa.Column('changed_by', sa.Uuid(), nullable=True),
        sa.Column('reason', sa.String(length=500), nullable=True),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_order_status_history'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
    )
    op.create_index('ix_order_status_history_order_id', 'order_status_history', ['order_id'])

    op.create_table(
        'order_pricing',
        *_base_columns(),
        *_rate_columns(),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('pricing_type', pricing_type, nullable=False),
        sa.Column('updated_by', sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_order_pricing'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='CASCADE'),
        sa.UniqueConstraint('order_id', 'pricing_type', name='uq_order_pricing_order_type'),
    )
    op.create_index('ix_order_pricing_order_id', 'order_pricing', ['order_id'])

    op.create_table(
        'phone_numbers',
        *_base_columns(),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=True),
        sa.Column('country_id', sa.Uuid(), nullable=False),
        sa.Column('product_id', sa.Uuid(), nullable=False),
        sa.Column('area_code', sa.String(length=20), nullable=True),
        sa.Column('number', sa.String(length=32), nullable=False),
        sa.Column('status', number_status, nullable=False),
        sa.Column('disconnection_status', disconnection_status, nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_phone_numbers'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['country_id'], ['countries.id'], ondelete='RESTRICT'),
        sa.ForeignKeyConstraint(['product_id'], ['products.id'], ondelete='RESTRICT'),
        sa.UniqueConstraint('number', name='uq_phone_numbers_number'),
    )
    op.create_index('ix_phone_numbers_order_id', 'phone_numbers', ['order_id'])
    op.create_index('ix_phone_numbers_customer_id', 'phone_numbers', ['customer_id'])
    op.create_index('ix_phone_numbers_status', 'phone_numbers', ['status'])

    op.create_table(
        'disconnection_requests',
        *_base_columns(),
        sa.Column('number_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('status', disconnection_request_status, nullable=False),
        sa.Column('notes', sa.String(length=1000), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('requested_at', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('decided_at', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('decided_by', sa.Uuid(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_disconnection_requests'),
        sa.ForeignKeyConstraint(['number_id'], ['phone_numbers.id'], ondelete='RESTRICT'),
    )
    op.create_index(
        'ix_disconnection_requests_number_id', 'disconnection_requests', ['number_id']
    )
    op.create_index(
        'ix_disconnection_requests_customer_id', 'disconnection_requests', ['customer_id']
    )
    op.create_index('ix_disconnection_requests_status', 'disconnection_requests', ['status'])
    op.create_index(
        'uq_disconnection_requests_pending_number',
        'disconnection_requests',
        ['number_id'],
        unique=True,
        postgresql_where=sa.text("status = 'Pending'"),
    )

    op.create_table(
        'invoices',
        *_base_columns(),
        sa.Column('invoice_number', sa.String(length=80), nullable=False),
        sa.Column('order_id', sa.Uuid(), nullable=False),
        sa.Column('customer_id', sa.Uuid(), nullable=False),
        sa.Column('period', sa.String(length=7), nullable=False),
        sa.Column('from_date', sa.Date(), nullable=False),
        sa.Column('to_date', sa.Date(), nullable=False),
        sa.Column('quantity', sa.Integer(), nullable=False),
        sa.Column('mrc_amount', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('usage_amount', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('status', invoice_status, nullable=False),
        sa.Column('due_date', sa.Date(), nullable=False),
        sa.Column('paid_date', sa.Date(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_invoices'),
        sa.ForeignKeyConstraint(['order_id'], ['orders.id'], ondelete='RESTRICT'),
        sa.CheckConstraint('usage_amount >= 0', name='ck_invoices_usage_non_negative'),
        sa.CheckConstraint('quantity >= 1', name='ck_invoices_quantity_positive'),
    )
    op.create_index('ix_invoices_invoice_number', 'invoices', ['invoice_number'], unique=True)
    op.create_index('ix_invoices_order_id', 'invoices', ['order_id'])
    op.create_index('ix_invoices_customer_id', 'invoices', ['customer_id'])
    op.create_index('ix_invoices_status', 'invoices', ['status'])
    op.create_index('ix_invoices_due_date', 'invoices', ['due_date'])
    op.create_index('ix_invoices_order_period', 'invoices', ['order_id', 'period'])

    op.create_table(
        'wallet_transactions',
        *_base_columns(),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('transaction_type', wallet_transaction_type, nullable=False),
        sa.Column('amount', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('balance_before', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('balance_after', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column('description', sa.String(length=500), nullable=False),
        sa.PrimaryKeyConstraint('id', name='pk_wallet_transactions'),
        sa.UniqueConstraint('user_id', 'sequence', name='uq_wallet_transactions_user_seq'),
        sa.CheckConstraint('amount > 0', name='ck_wallet_transactions_amount_positive'),
    )
    op.create_index('ix_wallet_transactions_user_id', 'wallet_transactions', ['user_id'])

    op.create_table(
        'wallet_settings',
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('low_balance_threshold', sa.Numeric(precision=14, scale=4), nullable=False),
        sa.Column(
            'created_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.Column(
            'updated_at',
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.text('CURRENT_TIMESTAMP'),
        ),
        sa.PrimaryKeyConstraint('user_id', name='pk_wallet_settings'),
    )


def downgrade() -> None:
    """
    Drop all telecore tables and enum types.
    """
    op.drop_table('wallet_settings')
    op.drop_index('ix_wallet_transactions_user_id', table_name='wallet_transactions')
    op.drop_table('wallet_transactions')
    op.drop_table('invoices')
    op.drop_index(
        'uq_disconnection_requests_pending_number', table_name='disconnection_requests'
    )
    op.drop_table('disconnection_requests')
    op.drop_table('phone_numbers')
    op.drop_table('order_pricing')
    op.drop_table('order_status_history')
    op.drop_table('orders')
    op.drop_table('pricing_plans')
    op.drop_table('countries')
    op.drop_table('products')

    bind = op.get_bind()
    for enum_type in reversed(ENUM_TYPES):
        enum_type.drop(bind, checkfirst=True)
