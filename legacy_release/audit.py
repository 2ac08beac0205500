"""Audit sink for security-relevant release engine decisions."""

import json
import logging
from typing import Any, Dict, Optional
from uuid import UUID

from .schemas import AuditAction, AuditOutcome, AuditRecordCreate

logger = logging.getLogger(__name__)
_fallback_logger = logging.getLogger(__name__ + ".fallback")


class AuditSink:
    """Append audit records to the store with a process-log fallback.

    Writes never raise into the caller. When the store rejects a record the
    full entry is written to the fallback logger so the trail is not lost.
    """

    def __init__(self, store, fallback_logger: Optional[logging.Logger] = None):
        """Initialize the sink.

        Args:
            store: ``CheckInStore`` providing ``append_audit``
            fallback_logger: Logger receiving records the store could not persist
        """
        self.store = store
        self.fallback = fallback_logger or _fallback_logger

    async def record(self, entry: AuditRecordCreate) -> bool:
        """Persist ``entry`` and return whether the store accepted it."""
        try:
            await self.store.append_audit(entry)
        except Exception as e:
            logger.error(f"Audit write failed for {entry.action.value}: {e}")
            self.fallback.error(
                "AUDIT_FALLBACK %s",
                json.dumps(entry.model_dump(mode="json"), sort_keys=True),
            )
            return False
        return True

    async def log_release_intent(
        self,
        config_id: UUID,
        owner_id: UUID,
        forced: bool,
        actor_id: Optional[UUID] = None,
        origin: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Record the decision to release a configuration before side effects."""
        action = AuditAction.EMERGENCY_RELEASE if forced else AuditAction.OVERDUE_RELEASE
        return await self.record(
            AuditRecordCreate(
                action=action,
                actor_id=actor_id or owner_id,
                resource_type="checkin_configuration",
                resource_id=str(config_id),
                details={"owner_id": str(owner_id), "forced": forced, **(details or {})},
                ip_address=origin,
            )
        )

    async def log_delivery(
        self,
        message_id: UUID,
        owner_id: UUID,
        recipient_id: UUID,
        success: bool,
        provider_message_id: Optional[str] = None,
        error: Optional[str] = None,
        origin: Optional[str] = None,
    ) -> bool:
        """Record the outcome of one per-recipient dispatch."""
        details = {"recipient_id": str(recipient_id)}
        if provider_message_id:
            details["provider_message_id"] = provider_message_id
        return await self.record(
            AuditRecordCreate(
                action=AuditAction.MESSAGE_DELIVERY,
                outcome=AuditOutcome.SUCCESS if success else AuditOutcome.FAILED,
                actor_id=owner_id,
                resource_type="protected_message",
                resource_id=str(message_id),
                details=details,
                error_message=error,
                ip_address=origin,
            )
        )

    async def log_release_failure(
        self,
        message_id: UUID,
        owner_id: UUID,
        error: str,
        origin: Optional[str] = None,
    ) -> bool:
        return await self.record(
            AuditRecordCreate(
                action=AuditAction.MESSAGE_RELEASE_FAILED,
                outcome=AuditOutcome.FAILED,
                actor_id=owner_id,
                resource_type="protected_message",
                resource_id=str(message_id),
                error_message=error,
                ip_address=origin,
            )
        )

    async def log_cycle_overdue(
        self,
        cycle_id: UUID,
        config_id: UUID,
        owner_id: UUID,
        transitioned: bool,
        origin: Optional[str] = None,
    ) -> bool:
        return await self.record(
            AuditRecordCreate(
                action=AuditAction.CYCLE_OVERDUE,
                outcome=AuditOutcome.SUCCESS if transitioned else AuditOutcome.FAILED,
                actor_id=owner_id,
                resource_type="checkin_cycle",
                resource_id=str(cycle_id),
                details={"config_id": str(config_id)},
                error_message=None if transitioned else "Cycle was no longer active",
                ip_address=origin,
            )
        )

    async def log_unauthorized(
        self,
        origin: Optional[str] = None,
        reason: str = "invalid_credential",
    ) -> bool:
        """Record a rejected forced-release attempt."""
        return await self.record(
            AuditRecordCreate(
                action=AuditAction.UNAUTHORIZED_FORCED_RELEASE,
                outcome=AuditOutcome.FAILED,
                resource_type="release_engine",
                details={"reason": reason},
                error_message="Forced release denied",
                ip_address=origin,
            )
        )
