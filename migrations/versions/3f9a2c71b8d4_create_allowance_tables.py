"""create_allowance_tables

Revision ID: 3f9a2c71b8d4
Revises:
Create Date: 2026-10-18 09:12:44.518302

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9a2c71b8d4'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'guardians',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    op.create_table(
        'dependent_accounts',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('guardian_id', sa.Integer(), nullable=False),
        sa.Column('display_name', sa.String(length=255), nullable=False),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_dependent_accounts_guardian_id', 'dependent_accounts', ['guardian_id'])

    op.create_table(
        'allowance_settings',
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('weekly_amount', sa.Numeric(precision=20, scale=2), server_default='0', nullable=False),
        sa.Column('day_of_week', sa.String(length=16), server_default='Sunday', nullable=False),
        sa.Column('is_enabled', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('last_processed', sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('account_id'),
    )

    op.create_table(
        'wallets',
        sa.Column('id', sa.String(length=64), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('currency', sa.String(length=3), server_default='SAR', nullable=False),
        sa.Column('total_balance', sa.Numeric(precision=20, scale=2), server_default='0', nullable=False),
        sa.Column('spending_balance', sa.Numeric(precision=20, scale=2), server_default='0', nullable=False),
        sa.Column('version_id', sa.Integer(), nullable=False),
        sa.Column('updated_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('account_id'),
        sa.CheckConstraint('total_balance >= 0', name='ck_wallets_total_balance_non_negative'),
        sa.CheckConstraint('spending_balance >= 0', name='ck_wallets_spending_balance_non_negative'),
    )

    op.create_table(
        'ledger_entries',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('account_id', sa.Integer(), nullable=False),
        sa.Column('wallet_id', sa.String(length=64), nullable=False),
        sa.Column('type', sa.String(length=32), nullable=False),
        sa.Column('category', sa.String(length=64), nullable=False),
        sa.Column('amount', sa.Numeric(precision=20, scale=2), nullable=False),
        sa.Column('description', sa.Text(), server_default='', nullable=False),
        sa.Column('timestamp', sa.TIMESTAMP(timezone=True), nullable=False),
        sa.Column('from_bucket', sa.String(length=32), nullable=False),
        sa.Column('to_bucket', sa.String(length=32), nullable=False),
        sa.Column('idempotency_key', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.TIMESTAMP(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )

    # Indexes для производительности
    op.create_index('ix_ledger_entries_account_id', 'ledger_entries', ['account_id'])
    op.create_index('ix_ledger_entries_category', 'ledger_entries', ['category'])
    op.create_index('ix_ledger_entries_timestamp', 'ledger_entries', ['timestamp'])
    op.create_index('ix_ledger_entries_idempotency_key', 'ledger_entries', ['idempotency_key'], unique=True)


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_index('ix_ledger_entries_idempotency_key', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_timestamp', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_category', table_name='ledger_entries')
    op.drop_index('ix_ledger_entries_account_id', table_name='ledger_entries')
    op.drop_table('ledger_entries')
    op.drop_table('wallets')
    op.drop_table('allowance_settings')
    op.drop_index('ix_dependent_accounts_guardian_id', table_name='dependent_accounts')
    op.drop_table('dependent_accounts')
    op.drop_table('guardians')
