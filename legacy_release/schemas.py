"""Pydantic schemas for the release engine records and wire payloads.

The engine works on these validated objects rather than ORM rows, so the store
adapter can be swapped without touching the state machine.
"""

from typing import Optional, List, Dict, Any
from datetime import datetime, timedelta, timezone
from uuid import UUID
from pydantic import BaseModel, Field, ConfigDict, StrictBool, field_validator
from enum import Enum


class GraceUnit(str, Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    @property
    def milliseconds(self) -> int:
        return _UNIT_MILLISECONDS[self]

    def to_timedelta(self, amount: int) -> timedelta:
        """Convert ``amount`` of this unit to an absolute duration."""
        return timedelta(milliseconds=amount * self.milliseconds)


_UNIT_MILLISECONDS = {
    GraceUnit.MINUTES: 60_000,
    GraceUnit.HOURS: 3_600_000,
    GraceUnit.DAYS: 86_400_000,
}


class CycleState(str, Enum):
    ACTIVE = "ACTIVE"
    OVERDUE = "OVERDUE"        # Released by the engine, terminal
    COMPLETED = "COMPLETED"    # Closed by an owner check-in, terminal


class MessageScope(str, Enum):
    NORMAL = "NORMAL"
    PROTECTED = "PROTECTED"


class MessageStatus(str, Enum):
    DRAFT = "DRAFT"
    SCHEDULED = "SCHEDULED"
    SENT = "SENT"
    FAILED = "FAILED"


class AuditOutcome(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class AuditAction(str, Enum):
    EMERGENCY_RELEASE = "EMERGENCY_RELEASE"
    OVERDUE_RELEASE = "OVERDUE_RELEASE"
    UNAUTHORIZED_FORCED_RELEASE = "UNAUTHORIZED_FORCED_RELEASE"
    MESSAGE_DELIVERY = "MESSAGE_DELIVERY"
    MESSAGE_RELEASE_FAILED = "MESSAGE_RELEASE_FAILED"
    CYCLE_OVERDUE = "CYCLE_OVERDUE"


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# Check-in configuration schemas
class CheckInConfigurationBase(BaseModel):
    owner_id: UUID
    frequency: int = Field(..., ge=1)
    frequency_unit: GraceUnit = GraceUnit.DAYS
    grace_duration: int = Field(..., ge=0)
    grace_unit: GraceUnit = GraceUnit.DAYS
    starts_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    @field_validator('starts_at', 'expires_at')
    @classmethod
    def normalize_bounds(cls, v):
        return ensure_utc(v) if v is not None else v

    @property
    def frequency_delta(self) -> timedelta:
        return self.frequency_unit.to_timedelta(self.frequency)

    @property
    def grace_delta(self) -> timedelta:
        return self.grace_unit.to_timedelta(self.grace_duration)

    def is_in_effect(self, now: datetime) -> bool:
        """Whether ``now`` falls inside the configuration's bounds."""
        now = ensure_utc(now)
        if self.starts_at is not None and now < self.starts_at:
            return False
        if self.expires_at is not None and now > self.expires_at:
            return False
        return True


class CheckInConfigurationCreate(CheckInConfigurationBase):
    pass


class CheckInConfiguration(CheckInConfigurationBase):
    config_id: UUID
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Check-in cycle schemas
class CheckInCycle(BaseModel):
    cycle_id: UUID
    config_id: UUID
    sequence: int = Field(..., ge=1)
    next_checkin_at: datetime
    state: CycleState = CycleState.ACTIVE
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator('next_checkin_at', 'completed_at')
    @classmethod
    def normalize_timestamps(cls, v):
        return ensure_utc(v) if v is not None else v

    @property
    def is_active(self) -> bool:
        return self.state == CycleState.ACTIVE


# Recipient schemas
class Recipient(BaseModel):
    recipient_id: UUID
    owner_id: Optional[UUID] = None
    name: Optional[str] = None
    email: str

    model_config = ConfigDict(from_attributes=True)

    @property
    def display_name(self) -> str:
        return (self.name or "").strip() or self.email


# Protected message schemas
class ProtectedMessage(BaseModel):
    message_id: UUID
    owner_id: UUID
    title: str
    body: str
    recipient_ids: List[UUID] = Field(default_factory=list)
    scope: MessageScope = MessageScope.PROTECTED
    status: MessageStatus = MessageStatus.DRAFT
    scheduled_for: Optional[datetime] = None
    sent_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator('scheduled_for', 'sent_at')
    @classmethod
    def normalize_timestamps(cls, v):
        return ensure_utc(v) if v is not None else v

    @property
    def is_releasable(self) -> bool:
        return self.scope == MessageScope.PROTECTED and self.status == MessageStatus.SCHEDULED

    def is_due(self, now: datetime) -> bool:
        """Whether a normal-scope message has reached its delivery time."""
        return (
            self.scope == MessageScope.NORMAL
            and self.status == MessageStatus.SCHEDULED
            and self.scheduled_for is not None
            and self.scheduled_for <= ensure_utc(now)
        )


# Audit schemas
class AuditRecordCreate(BaseModel):
    action: AuditAction
    outcome: AuditOutcome = AuditOutcome.SUCCESS
    actor_id: Optional[UUID] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class AuditRecord(AuditRecordCreate):
    audit_id: UUID

    model_config = ConfigDict(from_attributes=True)


# Delivery schemas
class DispatchResult(BaseModel):
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None


class ReleaseSummary(BaseModel):
    """Aggregate counts for one orchestrator invocation."""
    processed: int = 0
    emergency: int = 0
    messages_released: int = 0
    deliveries_succeeded: int = 0
    deliveries_failed: int = 0
    scheduled_released: int = 0
    failed_configurations: int = 0
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# Processing endpoint payloads
class ProcessRequest(BaseModel):
    emergency_release: StrictBool = False


class ProcessResponse(BaseModel):
    success: bool = True
    message: str
    overdue_count: int = Field(0, alias="overdueCount")
    emergency_count: int = Field(0, alias="emergencyCount")
    released_count: int = Field(0, alias="releasedCount")
    scheduled_count: int = Field(0, alias="scheduledCount")
    timestamp: datetime

    model_config = ConfigDict(populate_by_name=True)


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    retry_after: Optional[int] = Field(None, alias="retryAfter")

    model_config = ConfigDict(populate_by_name=True)
