"""Add schedule engine tables

Revision ID: a1c4e7f2b9d0
Revises:
Create Date: 2026-03-01 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = 'a1c4e7f2b9d0'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    json_type = sa.JSON().with_variant(postgresql.JSONB(), "postgresql")

    op.create_table(
        'rules',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('stage', sa.String(), nullable=True),
        sa.Column('conditions_op', sa.String(), nullable=False, server_default='and'),
        sa.Column('conditions', json_type, nullable=False),
        sa.Column('actions', json_type, nullable=False),
        sa.Column('tombstone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'accounts',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('closed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tombstone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'payees',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('tombstone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table(
        'schedules',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=True),
        sa.Column('rule', sa.String(), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('completed', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('posts_transaction', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('tombstone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['rule'], ['rules.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_schedules_name', 'schedules', ['name'])
    op.create_index('ix_schedules_rule', 'schedules', ['rule'])

    op.create_table(
        'schedules_next_date',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('schedule_id', sa.String(), nullable=False),
        sa.Column('local_next_date', sa.Date(), nullable=True),
        sa.Column('local_next_date_ts', sa.BigInteger(), nullable=True),
        sa.Column('base_next_date', sa.Date(), nullable=True),
        sa.Column('base_next_date_ts', sa.BigInteger(), nullable=True),
        sa.Column('tombstone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['schedule_id'], ['schedules.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('schedule_id'),
    )

    op.create_table(
        'transactions',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('account', sa.String(), nullable=False),
        sa.Column('payee', sa.String(), nullable=True),
        sa.Column('amount', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('date', sa.Date(), nullable=False),
        sa.Column('schedule', sa.String(), nullable=True),
        sa.Column('cleared', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('tombstone', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['account'], ['accounts.id']),
        sa.ForeignKeyConstraint(['payee'], ['payees.id']),
        sa.ForeignKeyConstraint(['schedule'], ['schedules.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_transactions_schedule', 'transactions', ['schedule'])
    op.create_index('ix_transactions_date', 'transactions', ['date'])

    op.create_table(
        'preferences',
        sa.Column('id', sa.String(), nullable=False),
        sa.Column('value', sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('preferences')
    op.drop_index('ix_transactions_date', table_name='transactions')
    op.drop_index('ix_transactions_schedule', table_name='transactions')
    op.drop_table('transactions')
    op.drop_table('schedules_next_date')
    op.drop_index('ix_schedules_rule', table_name='schedules')
    op.drop_index('ix_schedules_name', table_name='schedules')
    op.drop_table('schedules')
    op.drop_table('payees')
    op.drop_table('accounts')
    op.drop_table('rules')
