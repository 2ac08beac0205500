"""Check-in cycle store adapter.

``CheckInStore`` is the contract the release engine consumes from the
persistence collaborator. ``SqlAlchemyCheckInStore`` implements it on top of
``DatabaseManager``.

Consistency: reads for one configuration go through fresh sessions after any
prior write committed, which gives read-after-write per configuration. Every
state-changing write is conditional on the expected prior state, so a
concurrent invocation that already moved a message or cycle simply loses the
update instead of repeating it.
"""

import abc
import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from . import models
from .database import DatabaseManager
from .errors import CycleStateError, StoreError
from .schemas import (
    AuditRecord,
    AuditRecordCreate,
    CheckInConfiguration,
    CheckInCycle,
    CycleState,
    MessageScope,
    MessageStatus,
    ProtectedMessage,
    Recipient,
    ensure_utc,
)

logger = logging.getLogger(__name__)


class CheckInStore(abc.ABC):
    """Persistence operations the release engine depends on."""

    @abc.abstractmethod
    async def list_configurations(self) -> List[CheckInConfiguration]:
        """Return every check-in configuration."""

    @abc.abstractmethod
    async def get_configuration(self, config_id: UUID) -> Optional[CheckInConfiguration]:
        """Return one configuration or None."""

    @abc.abstractmethod
    async def list_cycles(self, config_id: UUID) -> List[CheckInCycle]:
        """Return the cycles of a configuration, highest sequence first."""

    async def get_latest_cycle(self, config_id: UUID) -> Optional[CheckInCycle]:
        cycles = await self.list_cycles(config_id)
        return cycles[0] if cycles else None

    @abc.abstractmethod
    async def mark_cycle_overdue(self, cycle_id: UUID, completed_at: datetime) -> bool:
        """Move an ACTIVE cycle to OVERDUE. Returns False if it was not ACTIVE."""

    @abc.abstractmethod
    async def list_releasable_messages(self, owner_id: UUID) -> List[ProtectedMessage]:
        """Return the owner's protected messages that are still SCHEDULED."""

    @abc.abstractmethod
    async def list_due_messages(self, now: datetime) -> List[ProtectedMessage]:
        """Return normal-scope SCHEDULED messages whose delivery time has passed."""

    @abc.abstractmethod
    async def get_recipients(self, recipient_ids: Sequence[UUID]) -> List[Recipient]:
        """Resolve recipient ids to delivery targets."""

    @abc.abstractmethod
    async def claim_message_for_release(self, message_id: UUID, sent_at: datetime) -> bool:
        """Move a SCHEDULED message to SENT. Returns False if already claimed."""

    @abc.abstractmethod
    async def mark_message_failed(self, message_id: UUID) -> bool:
        """Move a SCHEDULED message to FAILED."""

    @abc.abstractmethod
    async def append_audit(self, record: AuditRecordCreate) -> AuditRecord:
        """Append one audit row."""

    @abc.abstractmethod
    async def activate_protection(self, config_id: UUID, now: datetime) -> CheckInCycle:
        """Open the next ACTIVE cycle for a configuration with no ACTIVE cycle."""

    @abc.abstractmethod
    async def check_in(self, config_id: UUID, now: datetime) -> CheckInCycle:
        """Close the ACTIVE cycle as COMPLETED and open the next one."""


class SqlAlchemyCheckInStore(CheckInStore):
    """PostgreSQL-backed store using the async SQLAlchemy session factory."""

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @asynccontextmanager
    async def _session(self, operation: str):
        try:
            async with self.db_manager.get_session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error(f"Store operation {operation} failed: {e}")
            raise StoreError(f"{operation} failed: {e}") from e
        except OSError as e:
            logger.error(f"Store operation {operation} could not reach the database: {e}")
            raise StoreError(f"{operation} failed: {e}") from e

    async def list_configurations(self) -> List[CheckInConfiguration]:
        async with self._session("list_configurations") as session:
            result = await session.execute(
                select(models.CheckInConfiguration).order_by(models.CheckInConfiguration.created_at)
            )
            return [CheckInConfiguration.model_validate(row) for row in result.scalars().all()]

    async def get_configuration(self, config_id: UUID) -> Optional[CheckInConfiguration]:
        async with self._session("get_configuration") as session:
            row = await session.get(models.CheckInConfiguration, config_id)
            return CheckInConfiguration.model_validate(row) if row else None

    async def list_cycles(self, config_id: UUID) -> List[CheckInCycle]:
        async with self._session("list_cycles") as session:
            result = await session.execute(
                select(models.CheckInCycle)
                .where(models.CheckInCycle.config_id == config_id)
                .order_by(models.CheckInCycle.sequence.desc())
            )
            return [CheckInCycle.model_validate(row) for row in result.scalars().all()]

    async def get_latest_cycle(self, config_id: UUID) -> Optional[CheckInCycle]:
        async with self._session("get_latest_cycle") as session:
            result = await session.execute(
                select(models.CheckInCycle)
                .where(models.CheckInCycle.config_id == config_id)
                .order_by(models.CheckInCycle.sequence.desc())
                .limit(1)
            )
            row = result.scalar_one_or_none()
            return CheckInCycle.model_validate(row) if row else None

    async def mark_cycle_overdue(self, cycle_id: UUID, completed_at: datetime) -> bool:
        async with self._session("mark_cycle_overdue") as session:
            result = await session.execute(
                update(models.CheckInCycle)
                .where(models.CheckInCycle.cycle_id == cycle_id)
                .where(models.CheckInCycle.state == CycleState.ACTIVE.value)
                .values(state=CycleState.OVERDUE.value, completed_at=ensure_utc(completed_at))
            )
            return result.rowcount == 1

    async def list_releasable_messages(self, owner_id: UUID) -> List[ProtectedMessage]:
        async with self._session("list_releasable_messages") as session:
            result = await session.execute(
                select(models.ProtectedMessage)
                .where(models.ProtectedMessage.owner_id == owner_id)
                .where(models.ProtectedMessage.scope == MessageScope.PROTECTED.value)
                .where(models.ProtectedMessage.status == MessageStatus.SCHEDULED.value)
                .order_by(models.ProtectedMessage.created_at)
            )
            return [ProtectedMessage.model_validate(row) for row in result.scalars().all()]

    async def list_due_messages(self, now: datetime) -> List[ProtectedMessage]:
        async with self._session("list_due_messages") as session:
            result = await session.execute(
                select(models.ProtectedMessage)
                .where(models.ProtectedMessage.scope == MessageScope.NORMAL.value)
                .where(models.ProtectedMessage.status == MessageStatus.SCHEDULED.value)
                .where(models.ProtectedMessage.scheduled_for <= ensure_utc(now))
                .order_by(models.ProtectedMessage.scheduled_for)
            )
            return [ProtectedMessage.model_validate(row) for row in result.scalars().all()]

    async def get_recipients(self, recipient_ids: Sequence[UUID]) -> List[Recipient]:
        if not recipient_ids:
            return []
        async with self._session("get_recipients") as session:
            result = await session.execute(
                select(models.Recipient).where(models.Recipient.recipient_id.in_(list(recipient_ids)))
            )
            return [Recipient.model_validate(row) for row in result.scalars().all()]

    async def claim_message_for_release(self, message_id: UUID, sent_at: datetime) -> bool:
        async with self._session("claim_message_for_release") as session:
            result = await session.execute(
                update(models.ProtectedMessage)
                .where(models.ProtectedMessage.message_id == message_id)
                .where(models.ProtectedMessage.status == MessageStatus.SCHEDULED.value)
                .values(status=MessageStatus.SENT.value, sent_at=ensure_utc(sent_at))
            )
            return result.rowcount == 1

    async def mark_message_failed(self, message_id: UUID) -> bool:
        async with self._session("mark_message_failed") as session:
            result = await session.execute(
                update(models.ProtectedMessage)
                .where(models.ProtectedMessage.message_id == message_id)
                .where(models.ProtectedMessage.status == MessageStatus.SCHEDULED.value)
                .values(status=MessageStatus.FAILED.value)
            )
            return result.rowcount == 1

    async def append_audit(self, record: AuditRecordCreate) -> AuditRecord:
        async with self._session("append_audit") as session:
            row = models.AuditLog(
                actor_id=record.actor_id,
                action=record.action.value,
                resource_type=record.resource_type,
                resource_id=record.resource_id,
                outcome=record.outcome.value,
                details=record.model_dump(mode="json")["details"],
                error_message=record.error_message,
                ip_address=record.ip_address,
                created_at=record.created_at,
            )
            session.add(row)
            await session.flush()
            return AuditRecord.model_validate(row)

    async def activate_protection(self, config_id: UUID, now: datetime) -> CheckInCycle:
        async with self._session("activate_protection") as session:
            config = await session.get(models.CheckInConfiguration, config_id)
            if config is None:
                raise StoreError(f"Configuration {config_id} not found")

            latest = await self._latest_cycle_for_update(session, config_id)
            if latest is not None and latest.state == CycleState.ACTIVE.value:
                raise CycleStateError(f"Configuration {config_id} already has an active cycle")

            cycle = self._open_cycle(config, latest, now)
            session.add(cycle)
            await session.flush()
            logger.info(f"Activated protection for configuration {config_id} (cycle {cycle.sequence})")
            return CheckInCycle.model_validate(cycle)

    async def check_in(self, config_id: UUID, now: datetime) -> CheckInCycle:
        async with self._session("check_in") as session:
            config = await session.get(models.CheckInConfiguration, config_id)
            if config is None:
                raise StoreError(f"Configuration {config_id} not found")

            latest = await self._latest_cycle_for_update(session, config_id)
            if latest is None or latest.state != CycleState.ACTIVE.value:
                raise CycleStateError(f"Configuration {config_id} has no active cycle to check in")

            latest.state = CycleState.COMPLETED.value
            latest.completed_at = ensure_utc(now)
            # Release the partial unique index before the next ACTIVE row lands
            await session.flush()

            cycle = self._open_cycle(config, latest, now)
            session.add(cycle)
            await session.flush()
            logger.info(f"Check-in recorded for configuration {config_id} (cycle {cycle.sequence})")
            return CheckInCycle.model_validate(cycle)

    async def _latest_cycle_for_update(self, session, config_id: UUID):
        result = await session.execute(
            select(models.CheckInCycle)
            .where(models.CheckInCycle.config_id == config_id)
            .order_by(models.CheckInCycle.sequence.desc())
            .limit(1)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    @staticmethod
    def _open_cycle(config, latest, now: datetime):
        settings = CheckInConfiguration.model_validate(config)
        return models.CheckInCycle(
            config_id=config.config_id,
            sequence=(latest.sequence + 1) if latest is not None else 1,
            next_checkin_at=ensure_utc(now) + settings.frequency_delta,
            state=CycleState.ACTIVE.value,
        )
