"""Single entry point of the release engine.

Admission happens strictly before any state change: the rate limiter first,
then, for forced releases only, the authorization guard.
"""

import logging
from datetime import datetime
from typing import Optional
from uuid import UUID

from .errors import RateLimitExceededError, UnauthorizedError
from .orchestrator import ReleaseOrchestrator
from .rate_limiter import SlidingWindowRateLimiter
from .schemas import ProcessRequest, ProcessResponse
from .security import AuthorizationGuard

logger = logging.getLogger(__name__)


class ReleaseEngine:
    """Admit a trigger and run one release pass."""

    def __init__(
        self,
        orchestrator: ReleaseOrchestrator,
        rate_limiter: SlidingWindowRateLimiter,
        guard: AuthorizationGuard,
    ):
        self.orchestrator = orchestrator
        self.rate_limiter = rate_limiter
        self.guard = guard

    async def process(
        self,
        request: ProcessRequest,
        *,
        caller_key: str,
        credential: Optional[str] = None,
        actor_id: Optional[UUID] = None,
        now: Optional[datetime] = None,
    ) -> ProcessResponse:
        """Run one admitted release pass.

        Args:
            request: Trigger payload
            caller_key: Caller identity used for rate limiting and auditing
            credential: Bearer credential, consulted only for emergency release
            actor_id: Optional acting user recorded on release audits
            now: Evaluation instant, defaults to the current time

        Raises:
            RateLimitExceededError: Caller exceeded its admission window
            UnauthorizedError: Emergency release without a valid credential
            StoreUnavailableError: Configurations could not be read
        """
        if not self.rate_limiter.allow(caller_key):
            raise RateLimitExceededError(
                caller_key=caller_key,
                retry_after=self.rate_limiter.retry_after(caller_key),
                limit=self.rate_limiter.max_requests,
            )

        forced = request.emergency_release
        if forced and not await self.guard.authorize_forced_release(credential, origin=caller_key):
            raise UnauthorizedError()

        summary = await self.orchestrator.run(
            forced=forced,
            now=now,
            actor_id=actor_id,
            origin=caller_key,
        )

        if forced:
            message = f"Emergency release processed {summary.processed} configurations"
        else:
            message = f"Processed {summary.processed} overdue configurations"

        return ProcessResponse(
            success=True,
            message=message,
            overdue_count=summary.processed,
            emergency_count=summary.emergency,
            released_count=summary.messages_released,
            scheduled_count=summary.scheduled_released,
            timestamp=summary.timestamp,
        )

    async def aclose(self):
        """Release the dispatcher's resources."""
        await self.orchestrator.dispatcher.aclose()
