"""initial schema: cards, predictions, credit accounts and transactions

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSONType = sa.JSON().with_variant(postgresql.JSONB(), 'postgresql')

PREDICTION_STATUS = sa.Enum('PENDING', 'PROCESSING', 'COMPLETED', 'FAILED', name='prediction_status')
TRANSACTION_TYPE = sa.Enum('DEBIT', 'TOPUP', 'REFUND', name='credit_transaction_type')


def upgrade() -> None:
    op.create_table('cards',
        sa.Column('card_id', sa.Integer(), primary_key=True, autoincrement=False),
        sa.Column('name', sa.String(100), nullable=False),
        sa.Column('display_name', sa.String(100), nullable=False),
        sa.Column('arcana', sa.String(20), nullable=False),
        sa.Column('suit', sa.String(20), nullable=True),
        sa.Column('keywords', JSONType, nullable=False),
        sa.Column('short_meaning', sa.Text(), nullable=True),
        sa.Column('long_meaning', sa.Text(), nullable=True),
        sa.Column('image_url', sa.String(255), nullable=True),
    )

    op.create_table('predictions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('job_id', sa.String(64), nullable=False),
        sa.Column('user_id', sa.String(255), nullable=True),
        sa.Column('question', sa.Text(), nullable=False),
        sa.Column('status', PREDICTION_STATUS, nullable=False),
        sa.Column('analysis_result', JSONType, nullable=True),
        sa.Column('selected_cards', JSONType, nullable=True),
        sa.Column('final_reading', JSONType, nullable=True),
        sa.Column('failure_code', sa.String(64), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_predictions_job_id', 'predictions', ['job_id'], unique=True)
    op.create_index('ix_predictions_user_id', 'predictions', ['user_id'])
    op.create_index('ix_predictions_user_created', 'predictions', ['user_id', 'created_at'])

    op.create_table('credit_accounts',
        sa.Column('user_id', sa.String(255), primary_key=True),
        sa.Column('balance', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('balance >= 0', name='ck_credit_accounts_balance_non_negative'),
    )

    op.create_table('credit_transactions',
        sa.Column('id', sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column('user_id', sa.String(255), nullable=False),
        sa.Column('amount', sa.Integer(), nullable=False),
        sa.Column('balance_after', sa.Integer(), nullable=False),
        sa.Column('type', TRANSACTION_TYPE, nullable=False),
        sa.Column('metadata', JSONType, nullable=True),
        sa.Column('idempotency_key', sa.String(128), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('idempotency_key', name='uq_credit_transactions_idempotency_key'),
    )
    op.create_index('ix_credit_transactions_user_id', 'credit_transactions', ['user_id'])
    op.create_index('ix_credit_transactions_user_created', 'credit_transactions', ['user_id', 'created_at'])


def downgrade() -> None:
    op.drop_index('ix_credit_transactions_user_created', table_name='credit_transactions')
    op.drop_index('ix_credit_transactions_user_id', table_name='credit_transactions')
    op.drop_table('credit_transactions')
    op.drop_table('credit_accounts')
    op.drop_index('ix_predictions_user_created', table_name='predictions')
    op.drop_index('ix_predictions_user_id', table_name='predictions')
    op.drop_index('ix_predictions_job_id', table_name='predictions')
    op.drop_table('predictions')
    op.drop_table('cards')
    TRANSACTION_TYPE.drop(op.get_bind(), checkfirst=True)
    PREDICTION_STATUS.drop(op.get_bind(), checkfirst=True)
