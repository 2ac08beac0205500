"""Email dispatch collaborator.

The engine treats dispatch as a black box: one call per recipient, a
structured result back, and no retries here.
"""

import abc
import logging
from typing import Optional
from uuid import UUID

import httpx

from .constants import DEFAULT_RESEND_BASE_URL, DEFAULT_RESEND_FROM, EMAIL_TIMEOUT_SECONDS
from .schemas import DispatchResult
from .validators import is_valid_email

logger = logging.getLogger(__name__)


class EmailDispatcher(abc.ABC):
    """Contract for sending one rendered email to one recipient."""

    @abc.abstractmethod
    async def send(
        self,
        recipient_email: str,
        recipient_name: str,
        subject: str,
        html_body: str,
        owner_id: UUID,
    ) -> DispatchResult:
        """Send one email and report the outcome."""

    async def aclose(self):
        """Release any underlying resources."""


class ResendEmailDispatcher(EmailDispatcher):
    """Dispatcher speaking the Resend HTTP API."""

    def __init__(
        self,
        api_key: str,
        from_address: str = DEFAULT_RESEND_FROM,
        reply_to: Optional[str] = None,
        base_url: str = DEFAULT_RESEND_BASE_URL,
        timeout: float = EMAIL_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the dispatcher.

        Args:
            api_key: Resend API key
            from_address: Sender shown to recipients
            reply_to: Optional reply-to address
            base_url: API root, overridable for tests
            timeout: Per-request timeout in seconds
            client: Pre-built client (tests inject a mock transport)
        """
        if not api_key:
            raise ValueError("Resend API key is required")
        self.from_address = from_address
        self.reply_to = reply_to
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Authorization": f"Bearer {api_key}"},
        )

    async def send(
        self,
        recipient_email: str,
        recipient_name: str,
        subject: str,
        html_body: str,
        owner_id: UUID,
    ) -> DispatchResult:
        if not is_valid_email(recipient_email):
            return DispatchResult(success=False, error=f"Invalid recipient email: {recipient_email!r}")
        if not subject or not html_body:
            return DispatchResult(success=False, error="Missing required fields: subject, content")

        payload = {
            "from": self.from_address,
            "to": [recipient_email],
            "subject": subject,
            "html": html_body,
            "tags": [{"name": "owner_id", "value": str(owner_id)}],
        }
        if self.reply_to:
            payload["reply_to"] = self.reply_to

        try:
            response = await self._client.post("/emails", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Email transport error for {recipient_email}: {e}")
            return DispatchResult(success=False, error=f"Transport error: {e}")

        if response.status_code >= 400:
            logger.error(f"Resend API error {response.status_code} for {recipient_email}")
            return DispatchResult(
                success=False,
                error=f"Resend API error: {response.status_code} - {response.text}",
            )

        provider_id = None
        try:
            provider_id = response.json().get("id")
        except ValueError:
            logger.warning("Resend API returned a non-JSON success body")

        logger.info(f"Email sent to {recipient_name} <{recipient_email}>")
        return DispatchResult(success=True, message_id=provider_id)

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()
