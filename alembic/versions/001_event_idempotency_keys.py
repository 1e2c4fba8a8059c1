"""Create event idempotency keys table

Revision ID: 001
Revises:
Create Date: 2026-10-19 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '001'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'event_idempotency_keys',
        sa.Column('idempotency_key', sa.String(255), nullable=False),
        sa.Column('operation_name', sa.String(150), nullable=False),
        sa.Column('event_source', sa.String(100), nullable=False),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('processing_status', sa.String(20), nullable=False),
        sa.Column('processing_result', sa.JSON(), nullable=True),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('processed_at', sa.DateTime(), nullable=True),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('idempotency_key')
    )
    op.create_index('ix_event_idempotency_keys_operation_name', 'event_idempotency_keys', ['operation_name'])
    op.create_index('ix_event_idempotency_keys_processing_status', 'event_idempotency_keys', ['processing_status'])
    op.create_index('ix_event_idempotency_keys_expires_at', 'event_idempotency_keys', ['expires_at'])
    op.create_index('idx_operation_created', 'event_idempotency_keys', ['operation_name', 'created_at'])
    op.create_index('idx_status_expires', 'event_idempotency_keys', ['processing_status', 'expires_at'])


def downgrade() -> None:
    op.drop_index('idx_status_expires', table_name='event_idempotency_keys')
    op.drop_index('idx_operation_created', table_name='event_idempotency_keys')
    op.drop_index('ix_event_idempotency_keys_expires_at', table_name='event_idempotency_keys')
    op.drop_index('ix_event_idempotency_keys_processing_status', table_name='event_idempotency_keys')
    op.drop_index('ix_event_idempotency_keys_operation_name', table_name='event_idempotency_keys')
    op.drop_table('event_idempotency_keys')
