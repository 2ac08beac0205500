"""Integration tests for the SQLAlchemy check-in store."""
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from legacy_release import models
from legacy_release.audit import AuditSink
from legacy_release.errors import CycleStateError
from legacy_release.orchestrator import ReleaseOrchestrator
from legacy_release.schemas import (
    AuditAction,
    AuditOutcome,
    AuditRecordCreate,
    CycleState,
    MessageStatus,
)

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


async def seed_owner(db_manager, grace_days=3, deadline=None):
    owner_id = uuid4()
    async with db_manager.get_session() as session:
        config = models.CheckInConfiguration(
            owner_id=owner_id, frequency=7, frequency_unit="days",
            grace_duration=grace_days, grace_unit="days",
        )
        session.add(config)
        await session.flush()
        session.add(models.CheckInCycle(
            config_id=config.config_id,
            sequence=1,
            next_checkin_at=deadline or NOW - timedelta(days=4),
            state="ACTIVE",
        ))
        alice = models.Recipient(owner_id=owner_id, name="Alice", email="alice@example.com")
        bob = models.Recipient(owner_id=owner_id, name="Bob", email="bob@example.com")
        session.add_all([alice, bob])
        await session.flush()
        message = models.ProtectedMessage(
            owner_id=owner_id, title="For [Name]", body="Hello",
            recipient_ids=[alice.recipient_id, bob.recipient_id],
            scope="PROTECTED", status="SCHEDULED",
        )
        session.add(message)
        await session.flush()
        return config.config_id, message.message_id


@pytest.mark.integration
@pytest.mark.asyncio
class TestSqlAlchemyCheckInStore:
    """Test store operations against PostgreSQL."""

    async def test_database_connection(self, db_manager):
        assert await db_manager.health_check() is True

    async def test_claim_is_conditional(self, db_manager, sql_store):
        _, message_id = await seed_owner(db_manager)

        assert await sql_store.claim_message_for_release(message_id, NOW) is True
        assert await sql_store.claim_message_for_release(message_id, NOW) is False
        assert await sql_store.mark_message_failed(message_id) is False

    async def test_mark_cycle_overdue_is_conditional(self, db_manager, sql_store):
        config_id, _ = await seed_owner(db_manager)
        cycle = await sql_store.get_latest_cycle(config_id)

        assert await sql_store.mark_cycle_overdue(cycle.cycle_id, NOW) is True
        assert await sql_store.mark_cycle_overdue(cycle.cycle_id, NOW) is False
        latest = await sql_store.get_latest_cycle(config_id)
        assert latest.state == CycleState.OVERDUE
        assert latest.completed_at == NOW

    async def test_releasable_messages(self, db_manager, sql_store):
        config_id, message_id = await seed_owner(db_manager)
        config = await sql_store.get_configuration(config_id)

        messages = await sql_store.list_releasable_messages(config.owner_id)
        assert [m.message_id for m in messages] == [message_id]

        recipients = await sql_store.get_recipients(messages[0].recipient_ids)
        assert {r.email for r in recipients} == {"alice@example.com", "bob@example.com"}

    async def test_repeated_recipient_ids_collapse(self, db_manager, sql_store):
        config_id, message_id = await seed_owner(db_manager)
        config = await sql_store.get_configuration(config_id)
        message = (await sql_store.list_releasable_messages(config.owner_id))[0]

        recipients = await sql_store.get_recipients(message.recipient_ids * 2)
        assert len(recipients) == 2

    async def test_due_messages(self, db_manager, sql_store):
        config_id, _ = await seed_owner(db_manager)
        config = await sql_store.get_configuration(config_id)
        async with db_manager.get_session() as session:
            due = models.ProtectedMessage(
                owner_id=config.owner_id, title="Birthday", body="Happy birthday",
                scope="NORMAL", status="SCHEDULED", scheduled_for=NOW - timedelta(hours=1),
            )
            later = models.ProtectedMessage(
                owner_id=config.owner_id, title="Anniversary", body="Later",
                scope="NORMAL", status="SCHEDULED", scheduled_for=NOW + timedelta(days=30),
            )
            session.add_all([due, later])
            await session.flush()
            due_id = due.message_id

        messages = await sql_store.list_due_messages(NOW)

        assert [m.message_id for m in messages] == [due_id]
        assert messages[0].scheduled_for == NOW - timedelta(hours=1)

    async def test_append_audit(self, sql_store):
        record = await sql_store.append_audit(
            AuditRecordCreate(action=AuditAction.CYCLE_OVERDUE, details={"k": "v"})
        )
        assert record.audit_id is not None
        assert record.details == {"k": "v"}

    async def test_check_in_rolls_cycle(self, db_manager, sql_store):
        config_id, _ = await seed_owner(db_manager, deadline=NOW + timedelta(days=1))

        cycle = await sql_store.check_in(config_id, NOW)

        assert cycle.sequence == 2
        assert cycle.state == CycleState.ACTIVE
        assert cycle.next_checkin_at == NOW + timedelta(days=7)
        cycles = await sql_store.list_cycles(config_id)
        assert [c.state for c in cycles] == [CycleState.ACTIVE, CycleState.COMPLETED]

    async def test_activate_requires_no_active_cycle(self, db_manager, sql_store):
        config_id, _ = await seed_owner(db_manager)

        with pytest.raises(CycleStateError):
            await sql_store.activate_protection(config_id, NOW)

        cycle = await sql_store.get_latest_cycle(config_id)
        await sql_store.mark_cycle_overdue(cycle.cycle_id, NOW)
        reopened = await sql_store.activate_protection(config_id, NOW)
        assert reopened.sequence == 2

    async def test_single_active_cycle_enforced(self, db_manager):
        config_id, _ = await seed_owner(db_manager)
        with pytest.raises(IntegrityError):
            async with db_manager.get_session() as session:
                session.add(models.CheckInCycle(
                    config_id=config_id, sequence=2, next_checkin_at=NOW, state="ACTIVE",
                ))

    async def test_end_to_end_release(self, db_manager, sql_store, dispatcher):
        config_id, message_id = await seed_owner(db_manager)
        orchestrator = ReleaseOrchestrator(sql_store, dispatcher, AuditSink(sql_store))

        summary = await orchestrator.run(now=NOW)
        again = await orchestrator.run(now=NOW + timedelta(minutes=1))

        assert summary.processed == 1
        assert again.processed == 0
        assert len(dispatcher.sent) == 2

        async with db_manager.get_session() as session:
            message = await session.get(models.ProtectedMessage, message_id)
            assert message.status == MessageStatus.SENT.value
            result = await session.execute(
                select(models.AuditLog).where(models.AuditLog.action == AuditAction.MESSAGE_DELIVERY.value)
            )
            deliveries = result.scalars().all()
            assert len(deliveries) == 2
            assert all(d.outcome == AuditOutcome.SUCCESS.value for d in deliveries)
