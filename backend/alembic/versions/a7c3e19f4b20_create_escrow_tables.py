"""create escrow tables

Revision ID: a7c3e19f4b20
Revises:
Create Date: 2026-10-19 00:00:00.000000
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = 'a7c3e19f4b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_ONE_RELEASE_PER_BOOKING = "type = 'escrow_release' AND status = 'completed'"


def _timestamps() -> list:
    return [
        sa.Column('created_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('email', sa.String(), nullable=False),
        sa.Column('first_name', sa.String(), nullable=False, server_default=''),
        sa.Column('last_name', sa.String(), nullable=False, server_default=''),
        sa.Column('phone_number', sa.String(), nullable=True),
        sa.Column('user_type', sa.Enum('SERVICE_PROVIDER', 'CLIENT', name='usertype'), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_users_id', 'users', ['id'])
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'admin_users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('role', sa.String(), nullable=False, server_default='admin'),
        *_timestamps(),
        sa.UniqueConstraint('user_id', name='uq_admin_users_user_id'),
    )
    op.create_index('ix_admin_users_id', 'admin_users', ['id'])
    op.create_index('ix_admin_users_user_id', 'admin_users', ['user_id'])

    op.create_table(
        'bookings',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('client_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('title', sa.String(), nullable=False, server_default=''),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('total_amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('commission_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('provider_amount', sa.Numeric(12, 2), nullable=True),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('is_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('escrow_released', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('client_confirm_deadline', sa.DateTime(), nullable=True),
        sa.Column('client_confirmed_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_at', sa.DateTime(), nullable=True),
        sa.Column('cancelled_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=True),
        sa.Column('cancellation_reason', sa.String(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint(
            "NOT escrow_released OR status = 'completed'",
            name='ck_bookings_released_implies_completed',
        ),
    )
    op.create_index('ix_bookings_id', 'bookings', ['id'])
    op.create_index('ix_bookings_client_id', 'bookings', ['client_id'])
    op.create_index('ix_bookings_provider_id', 'bookings', ['provider_id'])
    op.create_index('ix_bookings_status', 'bookings', ['status'])
    op.create_index(
        'ix_bookings_auto_release',
        'bookings',
        ['status', 'escrow_released', 'client_confirm_deadline'],
    )

    op.create_table(
        'disputes',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('raised_by', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('raised_by_type', sa.String(length=40), nullable=False),
        sa.Column('type', sa.String(), nullable=False, server_default='service_quality'),
        sa.Column('subject', sa.String(), nullable=False, server_default='Service completion dispute'),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('status', sa.String(length=40), nullable=False, server_default='open'),
        sa.Column('resolution', sa.String(), nullable=True),
        sa.Column('resolved_at', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_disputes_id', 'disputes', ['id'])
    op.create_index('ix_disputes_booking_id', 'disputes', ['booking_id'], unique=True)

    op.create_table(
        'transactions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('reference', sa.String(length=32), nullable=False, unique=True),
        sa.Column('booking_id', sa.Integer(), sa.ForeignKey('bookings.id'), nullable=False),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('user_type', sa.String(length=40), nullable=False),
        sa.Column('type', sa.String(length=40), nullable=False),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('status', sa.String(length=40), nullable=False),
        sa.Column('description', sa.String(), nullable=True),
        sa.Column('metadata', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_transactions_id', 'transactions', ['id'])
    op.create_index('ix_transactions_booking_id', 'transactions', ['booking_id'])
    op.create_index('ix_transactions_user_id', 'transactions', ['user_id'])
    op.create_index(
        'uq_transactions_one_escrow_release',
        'transactions',
        ['booking_id'],
        unique=True,
        sqlite_where=sa.text(_ONE_RELEASE_PER_BOOKING),
        postgresql_where=sa.text(_ONE_RELEASE_PER_BOOKING),
    )

    op.create_table(
        'provider_wallets',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('provider_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column('balance', sa.Numeric(12, 2), nullable=False, server_default='0.00'),
        sa.Column('currency', sa.String(length=3), nullable=False),
        sa.Column('can_withdraw', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint('balance >= 0', name='ck_provider_wallets_balance_non_negative'),
    )
    op.create_index('ix_provider_wallets_id', 'provider_wallets', ['id'])
    op.create_index('ix_provider_wallets_provider_id', 'provider_wallets', ['provider_id'], unique=True)

    op.create_table(
        'notifications',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id'), nullable=False),
        sa.Column(
            'type',
            sa.Enum(
                'PAYMENT_RELEASED',
                'BOOKING_CONFIRMED',
                'DISPUTE_CREATED',
                'BOOKING_STATUS_UPDATED',
                name='notificationtype',
            ),
            nullable=False,
        ),
        sa.Column('title', sa.String(), nullable=False, server_default=''),
        sa.Column('message', sa.String(), nullable=False),
        sa.Column('link', sa.String(), nullable=False, server_default=''),
        sa.Column('data', sa.JSON(), nullable=True),
        sa.Column('is_read', sa.Boolean(), nullable=True),
        sa.Column('timestamp', sa.DateTime(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_notifications_id', 'notifications', ['id'])
    op.create_index('ix_notifications_user_id', 'notifications', ['user_id'])


def downgrade() -> None:
    op.drop_table('notifications')
    op.drop_table('provider_wallets')
    op.drop_index('uq_transactions_one_escrow_release', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('disputes')
    op.drop_table('bookings')
    op.drop_table('admin_users')
    op.drop_table('users')
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TYPE IF EXISTS notificationtype")
        op.execute("DROP TYPE IF EXISTS usertype")
