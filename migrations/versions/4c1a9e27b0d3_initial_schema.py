"""initial schema: users, subscriptions, referrals, withdrawals, audit logs

Revision ID: 4c1a9e27b0d3
Revises:
Create Date: 2026-10-19 04:30:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c1a9e27b0d3'
down_revision = None
branch_labels = None
depends_on = None

subscription_status = sa.Enum(
    'PENDING', 'ACTIVE', 'EXPIRED', 'CANCELLED', 'REJECTED', name='subscriptionstatus'
)


def upgrade():
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('google_id', sa.String(length=64), nullable=True),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=120), nullable=True),
        sa.Column('last_name', sa.String(length=120), nullable=True),
        sa.Column('display_name', sa.String(length=255), nullable=True),
        sa.Column('picture', sa.String(length=512), nullable=True),
        sa.Column('role', sa.String(length=20), nullable=False),
        sa.Column('email_verified', sa.Boolean(), nullable=True),
        sa.Column('last_login', sa.DateTime(), nullable=True),
        sa.Column('referral_code', sa.String(length=20), nullable=True),
        sa.Column('referral_code_used', sa.String(length=20), nullable=True),
        sa.Column('referred_by_id', sa.Integer(), nullable=True),
        sa.Column('withdrawable_balance', sa.Numeric(precision=12, scale=2),
                  server_default=sa.text('0.00'), nullable=False),
        sa.Column('bank_name', sa.String(length=120), nullable=True),
        sa.Column('bank_account_number', sa.String(length=64), nullable=True),
        sa.Column('bank_account_name', sa.String(length=120), nullable=True),
        sa.Column('whatsapp_number', sa.String(length=32), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['referred_by_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
        sa.UniqueConstraint('google_id'),
        sa.UniqueConstraint('referral_code'),
    )
    with op.batch_alter_table('users') as batch_op:
        batch_op.create_index('ix_users_role', ['role'], unique=False)

    op.create_table(
        'subscriptions',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('stock_id', sa.String(length=64), nullable=False),
        sa.Column('status', subscription_status, nullable=False),
        sa.Column('monthly_fee', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('payment_proof', sa.String(length=255), nullable=True),
        sa.Column('api_token', sa.String(length=512), nullable=True),
        sa.Column('last_activated_at', sa.DateTime(), nullable=True),
        sa.Column('active_until', sa.DateTime(), nullable=True),
        sa.Column('rejection_reason', sa.String(length=500), nullable=True),
        sa.Column('continued_from_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['continued_from_id'], ['subscriptions.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('stock_id'),
    )
    with op.batch_alter_table('subscriptions') as batch_op:
        batch_op.create_index('ix_subscriptions_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_subscriptions_continued_from_id', ['continued_from_id'], unique=False)
        batch_op.create_index('idx_subscription_user_status', ['user_id', 'status'], unique=False)

    op.create_table(
        'referrals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('referred_user_id', sa.Integer(), nullable=False),
        sa.Column('referral_code', sa.String(length=20), nullable=False),
        sa.Column('profit_per_month', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('first_active_date', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['referred_user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('referred_user_id'),
        sa.UniqueConstraint('referrer_id', 'referred_user_id', name='uq_referral_pair'),
    )
    with op.batch_alter_table('referrals') as batch_op:
        batch_op.create_index('ix_referrals_referrer_id', ['referrer_id'], unique=False)

    op.create_table(
        'referral_earnings',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('referral_id', sa.Integer(), nullable=False),
        sa.Column('referrer_id', sa.Integer(), nullable=False),
        sa.Column('subscription_id', sa.Integer(), nullable=True),
        sa.Column('month', sa.String(length=7), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['referral_id'], ['referrals.id']),
        sa.ForeignKeyConstraint(['referrer_id'], ['users.id']),
        sa.ForeignKeyConstraint(['subscription_id'], ['subscriptions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('referral_earnings') as batch_op:
        batch_op.create_index('ix_referral_earnings_referral_id', ['referral_id'], unique=False)
        batch_op.create_index('ix_referral_earnings_referrer_id', ['referrer_id'], unique=False)
        batch_op.create_index('idx_earning_referrer_month', ['referrer_id', 'month'], unique=False)

    op.create_table(
        'withdrawals',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('fee', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('net_amount', sa.Numeric(precision=12, scale=2), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('receipt', sa.String(length=255), nullable=True),
        sa.Column('admin_note', sa.String(length=500), nullable=True),
        sa.Column('processed_by_id', sa.Integer(), nullable=True),
        sa.Column('requested_at', sa.DateTime(), nullable=False),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['processed_by_id'], ['users.id']),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('withdrawals') as batch_op:
        batch_op.create_index('ix_withdrawals_user_id', ['user_id'], unique=False)
        batch_op.create_index('ix_withdrawals_status', ['status'], unique=False)

    op.create_table(
        'audit_logs',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('actor_id', sa.Integer(), nullable=True),
        sa.Column('action', sa.String(length=255), nullable=False),
        sa.Column('target_type', sa.String(length=50), nullable=True),
        sa.Column('target_id', sa.Integer(), nullable=True),
        sa.Column('details', sa.JSON(), nullable=True),
        sa.Column('ip_address', sa.String(length=50), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['actor_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    with op.batch_alter_table('audit_logs') as batch_op:
        batch_op.create_index('ix_audit_logs_actor_id', ['actor_id'], unique=False)


def downgrade():
    op.drop_table('audit_logs')
    op.drop_table('withdrawals')
    op.drop_table('referral_earnings')
    op.drop_table('referrals')
    op.drop_table('subscriptions')
    op.drop_table('users')
    subscription_status.drop(op.get_bind(), checkfirst=True)
