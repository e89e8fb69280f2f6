"""Initial schema: shared record store and change journal

Revision ID: 20261019_initial
Revises:
Create Date: 2026-10-19

This migration adds:
1. stored_records (key -> JSON document, optimistic version column)
2. change_events (append-only STORAGE / SIGNAL journal polled by instances)
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '20261019_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ==========================================================================
    # 1. STORED RECORDS
    # ==========================================================================
    op.create_table('stored_records',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('version', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('updated_by_instance', sa.String(length=64), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('stored_records', schema=None) as batch_op:
        batch_op.create_index(batch_op.f('ix_stored_records_key'), ['key'], unique=True)

    # ==========================================================================
    # 2. CHANGE JOURNAL
    # ==========================================================================
    op.create_table('change_events',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('kind', sa.String(length=16), nullable=False),
        sa.Column('key', sa.String(length=128), nullable=True),
        sa.Column('signal_name', sa.String(length=64), nullable=True),
        sa.Column('payload', sa.JSON(), nullable=True),
        sa.Column('origin', sa.String(length=64), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sqlite_autoincrement=True
    )
    with op.batch_alter_table('change_events', schema=None) as batch_op:
        batch_op.create_index('ix_change_events_origin', ['origin'], unique=False)
        batch_op.create_index('ix_change_events_occurred', ['occurred_at'], unique=False)


def downgrade():
    with op.batch_alter_table('change_events', schema=None) as batch_op:
        batch_op.drop_index('ix_change_events_occurred')
        batch_op.drop_index('ix_change_events_origin')
    op.drop_table('change_events')

    with op.batch_alter_table('stored_records', schema=None) as batch_op:
        batch_op.drop_index(batch_op.f('ix_stored_records_key'))
    op.drop_table('stored_records')
