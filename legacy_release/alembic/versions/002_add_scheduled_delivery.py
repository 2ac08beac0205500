"""add scheduled delivery

Revision ID: 002
Revises: 001
Create Date: 2026-10-19

Normal-scope messages may carry an absolute delivery time:
- protected_message.scheduled_for: instant after which the message is due
- idx_protected_message_due: partial index over undelivered normal messages
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = '002_add_scheduled_delivery'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        'protected_message',
        sa.Column('scheduled_for', sa.DateTime(timezone=True), nullable=True)
    )
    op.create_index(
        'idx_protected_message_due', 'protected_message', ['scheduled_for'],
        postgresql_where=sa.text("scope = 'NORMAL' AND status = 'SCHEDULED'")
    )


def downgrade() -> None:
    op.drop_index('idx_protected_message_due', table_name='protected_message')
    op.drop_column('protected_message', 'scheduled_for')
