"""SQLAlchemy ORM models for the release engine tables.

Only the fields the engine reads or writes are modelled here; message
composition and recipient management live in other services that share the
same database.
"""

from uuid import uuid4

from sqlalchemy import (
    Column, Integer, Text, DateTime, ForeignKey, UniqueConstraint,
    CheckConstraint, Index, Enum as SQLEnum, text, func
)
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.dialects.postgresql import UUID as PostgreUUID, JSONB, ARRAY

# Create base class for all models
Base = declarative_base()

TIME_UNITS = ('minutes', 'hours', 'days')
CYCLE_STATES = ('ACTIVE', 'OVERDUE', 'COMPLETED')
MESSAGE_SCOPES = ('NORMAL', 'PROTECTED')
MESSAGE_STATUSES = ('DRAFT', 'SCHEDULED', 'SENT', 'FAILED')
AUDIT_OUTCOMES = ('SUCCESS', 'FAILED')

# Shared by both unit columns so the type is created once
TimeUnit = SQLEnum(*TIME_UNITS, name='time_unit')


# Mixins for common patterns
class TimestampMixin:
    """Mixin for created_at and updated_at timestamps."""
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())


class CheckInConfiguration(Base, TimestampMixin):
    """Owner's check-in schedule and grace period."""
    __tablename__ = 'checkin_configuration'

    config_id = Column(PostgreUUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(PostgreUUID(as_uuid=True), nullable=False)
    frequency = Column(Integer, nullable=False, default=7)
    frequency_unit = Column(TimeUnit, nullable=False, default='days')
    grace_duration = Column(Integer, nullable=False, default=3)
    grace_unit = Column(TimeUnit, nullable=False, default='days')
    starts_at = Column(DateTime(timezone=True))
    expires_at = Column(DateTime(timezone=True))

    # Relationships
    cycles = relationship(
        'CheckInCycle',
        back_populates='configuration',
        cascade='all, delete-orphan',
        order_by='desc(CheckInCycle.sequence)',
    )

    __table_args__ = (
        CheckConstraint('frequency > 0', name='check_frequency_positive'),
        CheckConstraint('grace_duration >= 0', name='check_grace_non_negative'),
        Index('idx_checkin_configuration_owner', 'owner_id'),
    )


class CheckInCycle(Base, TimestampMixin):
    """One deadline-to-deadline interval of a configuration."""
    __tablename__ = 'checkin_cycle'

    cycle_id = Column(PostgreUUID(as_uuid=True), primary_key=True, default=uuid4)
    config_id = Column(
        PostgreUUID(as_uuid=True),
        ForeignKey('checkin_configuration.config_id', ondelete='CASCADE'),
        nullable=False,
    )
    sequence = Column(Integer, nullable=False)
    next_checkin_at = Column(DateTime(timezone=True), nullable=False)
    state = Column(SQLEnum(*CYCLE_STATES, name='cycle_state'), nullable=False, default='ACTIVE')
    completed_at = Column(DateTime(timezone=True))

    # Relationships
    configuration = relationship('CheckInConfiguration', back_populates='cycles')

    __table_args__ = (
        UniqueConstraint('config_id', 'sequence'),
        CheckConstraint('sequence > 0', name='check_sequence_positive'),
        # At most one ACTIVE cycle per configuration
        Index(
            'uq_checkin_cycle_active',
            'config_id',
            unique=True,
            postgresql_where=text("state = 'ACTIVE'"),
        ),
    )


class Recipient(Base, TimestampMixin):
    """Delivery target owned by a message author."""
    __tablename__ = 'recipient'

    recipient_id = Column(PostgreUUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(PostgreUUID(as_uuid=True), nullable=False)
    name = Column(Text)
    email = Column(Text, nullable=False)

    __table_args__ = (
        Index('idx_recipient_owner', 'owner_id'),
    )


class ProtectedMessage(Base, TimestampMixin):
    """Pre-authored message.

    Protected scope is released by a missed check-in; normal scope is delivered
    once ``scheduled_for`` has passed.
    """
    __tablename__ = 'protected_message'

    message_id = Column(PostgreUUID(as_uuid=True), primary_key=True, default=uuid4)
    owner_id = Column(PostgreUUID(as_uuid=True), nullable=False)
    title = Column(Text, nullable=False)
    body = Column(Text, nullable=False, default='')
    recipient_ids = Column(ARRAY(PostgreUUID(as_uuid=True)), nullable=False, default=list)
    scope = Column(SQLEnum(*MESSAGE_SCOPES, name='message_scope'), nullable=False, default='NORMAL')
    status = Column(SQLEnum(*MESSAGE_STATUSES, name='message_status'), nullable=False, default='DRAFT')
    scheduled_for = Column(DateTime(timezone=True))
    sent_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            'idx_protected_message_releasable',
            'owner_id',
            postgresql_where=text("scope = 'PROTECTED' AND status = 'SCHEDULED'"),
        ),
        Index(
            'idx_protected_message_due',
            'scheduled_for',
            postgresql_where=text("scope = 'NORMAL' AND status = 'SCHEDULED'"),
        ),
    )


class AuditLog(Base):
    """Append-only record of security-relevant engine decisions."""
    __tablename__ = 'audit_log'

    audit_id = Column(PostgreUUID(as_uuid=True), primary_key=True, default=uuid4)
    actor_id = Column(PostgreUUID(as_uuid=True))
    action = Column(Text, nullable=False)
    resource_type = Column(Text)
    resource_id = Column(Text)
    outcome = Column(SQLEnum(*AUDIT_OUTCOMES, name='audit_outcome'), nullable=False, default='SUCCESS')
    # "metadata" is reserved on declarative classes
    details = Column('metadata', JSONB, nullable=False, default=dict)
    error_message = Column(Text)
    ip_address = Column(Text)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index('idx_audit_log_action_created', 'action', 'created_at'),
        Index('idx_audit_log_actor', 'actor_id'),
    )
