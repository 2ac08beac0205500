"""Initial release engine schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-19

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001_initial_schema'
down_revision = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Create extensions
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")

    # Create ENUM types
    op.execute("CREATE TYPE time_unit AS ENUM ('minutes', 'hours', 'days')")
    op.execute("CREATE TYPE cycle_state AS ENUM ('ACTIVE', 'OVERDUE', 'COMPLETED')")
    op.execute("CREATE TYPE message_scope AS ENUM ('NORMAL', 'PROTECTED')")
    op.execute("CREATE TYPE message_status AS ENUM ('DRAFT', 'SCHEDULED', 'SENT', 'FAILED')")
    op.execute("CREATE TYPE audit_outcome AS ENUM ('SUCCESS', 'FAILED')")

    time_unit = postgresql.ENUM('minutes', 'hours', 'days', name='time_unit', create_type=False)

    # Create checkin_configuration table
    op.create_table('checkin_configuration',
        sa.Column('config_id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('frequency', sa.Integer(), server_default='7', nullable=False),
        sa.Column('frequency_unit', time_unit, server_default='days', nullable=False),
        sa.Column('grace_duration', sa.Integer(), server_default='3', nullable=False),
        sa.Column('grace_unit', time_unit, server_default='days', nullable=False),
        sa.Column('starts_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('config_id'),
        sa.CheckConstraint('frequency > 0', name='check_frequency_positive'),
        sa.CheckConstraint('grace_duration >= 0', name='check_grace_non_negative')
    )
    op.create_index('idx_checkin_configuration_owner', 'checkin_configuration', ['owner_id'])

    # Create checkin_cycle table
    op.create_table('checkin_cycle',
        sa.Column('cycle_id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('config_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('sequence', sa.Integer(), nullable=False),
        sa.Column('next_checkin_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('state', postgresql.ENUM('ACTIVE', 'OVERDUE', 'COMPLETED', name='cycle_state', create_type=False), server_default='ACTIVE', nullable=False),
        sa.Column('completed_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(['config_id'], ['checkin_configuration.config_id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('cycle_id'),
        sa.UniqueConstraint('config_id', 'sequence'),
        sa.CheckConstraint('sequence > 0', name='check_sequence_positive')
    )
    op.create_index(
        'uq_checkin_cycle_active', 'checkin_cycle', ['config_id'],
        unique=True, postgresql_where=sa.text("state = 'ACTIVE'")
    )

    # Create recipient table
    op.create_table('recipient',
        sa.Column('recipient_id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('recipient_id')
    )
    op.create_index('idx_recipient_owner', 'recipient', ['owner_id'])

    # Create protected_message table
    op.create_table('protected_message',
        sa.Column('message_id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('owner_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('title', sa.Text(), nullable=False),
        sa.Column('body', sa.Text(), server_default='', nullable=False),
        sa.Column('recipient_ids', postgresql.ARRAY(postgresql.UUID(as_uuid=True)), server_default='{}', nullable=False),
        sa.Column('scope', postgresql.ENUM('NORMAL', 'PROTECTED', name='message_scope', create_type=False), server_default='NORMAL', nullable=False),
        sa.Column('status', postgresql.ENUM('DRAFT', 'SCHEDULED', 'SENT', 'FAILED', name='message_status', create_type=False), server_default='DRAFT', nullable=False),
        sa.Column('sent_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('message_id')
    )
    op.create_index(
        'idx_protected_message_releasable', 'protected_message', ['owner_id'],
        postgresql_where=sa.text("scope = 'PROTECTED' AND status = 'SCHEDULED'")
    )

    # Create audit_log table
    op.create_table('audit_log',
        sa.Column('audit_id', postgresql.UUID(as_uuid=True), server_default=sa.text('gen_random_uuid()'), nullable=False),
        sa.Column('actor_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('action', sa.Text(), nullable=False),
        sa.Column('resource_type', sa.Text(), nullable=True),
        sa.Column('resource_id', sa.Text(), nullable=True),
        sa.Column('outcome', postgresql.ENUM('SUCCESS', 'FAILED', name='audit_outcome', create_type=False), server_default='SUCCESS', nullable=False),
        sa.Column('metadata', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('ip_address', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('audit_id')
    )
    op.create_index('idx_audit_log_action_created', 'audit_log', ['action', 'created_at'])
    op.create_index('idx_audit_log_actor', 'audit_log', ['actor_id'])


def downgrade() -> None:
    op.drop_table('audit_log')
    op.drop_table('protected_message')
    op.drop_table('recipient')
    op.drop_table('checkin_cycle')
    op.drop_table('checkin_configuration')

    op.execute("DROP TYPE IF EXISTS audit_outcome")
    op.execute("DROP TYPE IF EXISTS message_status")
    op.execute("DROP TYPE IF EXISTS message_scope")
    op.execute("DROP TYPE IF EXISTS cycle_state")
    op.execute("DROP TYPE IF EXISTS time_unit")
