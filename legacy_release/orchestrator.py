"""Release orchestrator: the check-in state machine driver.

Per cycle:    ACTIVE -> OVERDUE (terminal)
Per message:  SCHEDULED -> SENT (terminal) or SCHEDULED -> FAILED

One ``run`` call evaluates every configuration once, then delivers normal-scope
messages whose ``scheduled_for`` time has passed. Release is best effort:
failed recipients are audited and logged but never roll back a message that
was already claimed.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from .audit import AuditSink
from .content import MessageRenderer
from .email_dispatch import EmailDispatcher
from .errors import StoreUnavailableError
from .overdue import is_overdue
from .schemas import (
    CheckInConfiguration,
    ProtectedMessage,
    ReleaseSummary,
    ensure_utc,
)
from .store import CheckInStore

logger = logging.getLogger(__name__)


class _ReleaseOutcome:
    __slots__ = ("released", "forced", "messages", "delivered", "failed")

    def __init__(self):
        self.released = False
        self.forced = False
        self.messages = 0
        self.delivered = 0
        self.failed = 0


class ReleaseOrchestrator:
    """Evaluate configurations and release protected messages when due."""

    def __init__(
        self,
        store: CheckInStore,
        dispatcher: EmailDispatcher,
        audit_sink: AuditSink,
        renderer: Optional[MessageRenderer] = None,
        max_concurrency: int = 1,
    ):
        """Initialize the orchestrator.

        Args:
            store: Persistence adapter
            dispatcher: Email dispatch collaborator
            audit_sink: Sink for release and delivery audit records
            renderer: Subject/body renderer
            max_concurrency: Configurations processed in parallel; each
                configuration is always handled by a single task
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.store = store
        self.dispatcher = dispatcher
        self.audit_sink = audit_sink
        self.renderer = renderer or MessageRenderer()
        self.max_concurrency = max_concurrency

    async def run(
        self,
        forced: bool = False,
        now: Optional[datetime] = None,
        actor_id: Optional[UUID] = None,
        origin: Optional[str] = None,
    ) -> ReleaseSummary:
        """Run one release pass over every configuration.

        Raises:
            StoreUnavailableError: Configurations could not be listed; nothing
                was mutated and the call is safe to retry
        """
        now = ensure_utc(now or datetime.now(timezone.utc))

        try:
            configurations = await self.store.list_configurations()
        except Exception as e:
            logger.error(f"Unable to list check-in configurations: {e}")
            raise StoreUnavailableError(f"Unable to list configurations: {e}", cause=e) from e

        logger.info(
            f"Evaluating {len(configurations)} configurations "
            f"(forced={forced}, at={now.isoformat()})"
        )

        summary = ReleaseSummary(timestamp=now)
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def guarded(config: CheckInConfiguration):
            async with semaphore:
                return await self._process_configuration(config, forced, now, actor_id, origin)

        # Configuration ids are unique, so no two tasks share a cycle
        outcomes = await asyncio.gather(
            *(guarded(config) for config in configurations),
            return_exceptions=True,
        )

        for config, outcome in zip(configurations, outcomes):
            if isinstance(outcome, BaseException):
                if not isinstance(outcome, Exception):
                    raise outcome
                summary.failed_configurations += 1
                logger.error(f"Configuration {config.config_id} failed: {outcome}")
                continue
            if outcome.released:
                summary.processed += 1
                if outcome.forced:
                    summary.emergency += 1
            summary.messages_released += outcome.messages
            summary.deliveries_succeeded += outcome.delivered
            summary.deliveries_failed += outcome.failed

        await self._deliver_scheduled(summary, now, origin)

        logger.info(
            f"Release pass complete: processed={summary.processed} emergency={summary.emergency} "
            f"messages={summary.messages_released} delivered={summary.deliveries_succeeded} "
            f"failed={summary.deliveries_failed} "
            f"scheduled={summary.scheduled_released} config_errors={summary.failed_configurations}"
        )
        return summary

    async def _process_configuration(
        self,
        config: CheckInConfiguration,
        forced: bool,
        now: datetime,
        actor_id: Optional[UUID],
        origin: Optional[str],
    ) -> _ReleaseOutcome:
        outcome = _ReleaseOutcome()

        if not config.is_in_effect(now):
            logger.debug(f"Configuration {config.config_id} is outside its active window")
            return outcome

        cycle = await self.store.get_latest_cycle(config.config_id)
        if cycle is None or not cycle.is_active:
            return outcome

        if not (forced or is_overdue(cycle, config, now)):
            return outcome

        logger.info(
            f"Releasing configuration {config.config_id} "
            f"({'emergency' if forced else 'overdue'}, cycle {cycle.sequence})"
        )
        # Intent is audited before any side effect
        await self.audit_sink.log_release_intent(
            config_id=config.config_id,
            owner_id=config.owner_id,
            forced=forced,
            actor_id=actor_id,
            origin=origin,
            details={"cycle_id": str(cycle.cycle_id), "cycle_sequence": cycle.sequence},
        )
        outcome.released = True
        outcome.forced = forced

        messages = await self.store.list_releasable_messages(config.owner_id)
        logger.info(f"Found {len(messages)} protected messages for owner {config.owner_id}")

        for message in messages:
            await self._release_message(message, now, origin, outcome)

        transitioned = await self.store.mark_cycle_overdue(cycle.cycle_id, now)
        if not transitioned:
            logger.warning(f"Cycle {cycle.cycle_id} was no longer active when closing it")
        await self.audit_sink.log_cycle_overdue(
            cycle_id=cycle.cycle_id,
            config_id=config.config_id,
            owner_id=config.owner_id,
            transitioned=transitioned,
            origin=origin,
        )
        return outcome

    async def _deliver_scheduled(self, summary: ReleaseSummary, now: datetime, origin: Optional[str]):
        """Deliver normal-scope messages whose absolute delivery time has passed."""
        try:
            messages = await self.store.list_due_messages(now)
        except Exception as e:
            logger.error(f"Unable to list scheduled messages: {e}")
            return

        if messages:
            logger.info(f"Found {len(messages)} scheduled messages due at {now.isoformat()}")

        outcome = _ReleaseOutcome()
        for message in messages:
            await self._release_message(message, now, origin, outcome)

        summary.scheduled_released += outcome.messages
        summary.deliveries_succeeded += outcome.delivered
        summary.deliveries_failed += outcome.failed

    async def _release_message(
        self,
        message: ProtectedMessage,
        now: datetime,
        origin: Optional[str],
        outcome: _ReleaseOutcome,
    ):
        try:
            recipients = await self.store.get_recipients(message.recipient_ids)
            rendered = [(recipient, self.renderer.render(message, recipient)) for recipient in recipients]
        except Exception as e:
            logger.error(f"Cannot prepare message {message.message_id} for release: {e}")
            try:
                await self.store.mark_message_failed(message.message_id)
            except Exception as mark_error:
                logger.error(f"Unable to mark message {message.message_id} FAILED: {mark_error}")
            await self.audit_sink.log_release_failure(
                message_id=message.message_id,
                owner_id=message.owner_id,
                error=str(e),
                origin=origin,
            )
            return

        missing = len(set(message.recipient_ids)) - len(recipients)
        if missing > 0:
            logger.warning(f"Message {message.message_id} references {missing} unknown recipients")

        # The status flip is the idempotency boundary; losing it means another
        # invocation already owns this message
        if not await self.store.claim_message_for_release(message.message_id, now):
            logger.info(f"Message {message.message_id} already released elsewhere, skipping")
            return
        outcome.messages += 1

        for recipient, (subject, html_body) in rendered:
            try:
                result = await self.dispatcher.send(
                    recipient_email=recipient.email,
                    recipient_name=recipient.display_name,
                    subject=subject,
                    html_body=html_body,
                    owner_id=message.owner_id,
                )
                success, provider_id, error = result.success, result.message_id, result.error
            except Exception as e:
                success, provider_id, error = False, None, str(e)

            if success:
                outcome.delivered += 1
            else:
                outcome.failed += 1
                logger.error(
                    f"Delivery of message {message.message_id} to {recipient.email} failed: {error}"
                )

            await self.audit_sink.log_delivery(
                message_id=message.message_id,
                owner_id=message.owner_id,
                recipient_id=recipient.recipient_id,
                success=success,
                provider_message_id=provider_id,
                error=error,
                origin=origin,
            )
