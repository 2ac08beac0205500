"""Security utilities for the processing endpoint and forced releases."""

import hmac
import logging
from typing import Mapping, Optional

from .audit import AuditSink

logger = logging.getLogger(__name__)

# Security headers for all responses
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Content-Security-Policy": "default-src 'self'",
}


class AuthorizationGuard:
    """Gate for emergency (forced) releases.

    Only forced releases consult the guard. The provided credential must
    match the privileged service credential exactly; anything else is denied
    and audited once.
    """

    def __init__(self, service_credential: Optional[str], audit_sink: AuditSink):
        """Initialize the guard.

        Args:
            service_credential: Privileged credential; None denies everything
            audit_sink: Sink receiving unauthorized-attempt records
        """
        self._service_credential = service_credential or None
        self.audit_sink = audit_sink
        if self._service_credential is None:
            logger.warning("No service credential configured; forced releases will be denied")

    def is_valid(self, provided_credential: Optional[str]) -> bool:
        if not provided_credential or self._service_credential is None:
            return False
        return hmac.compare_digest(
            provided_credential.encode("utf-8"),
            self._service_credential.encode("utf-8"),
        )

    async def authorize_forced_release(
        self,
        provided_credential: Optional[str],
        origin: Optional[str] = None,
    ) -> bool:
        """Check a forced-release credential, auditing any denial.

        Args:
            provided_credential: Bearer token presented by the caller
            origin: Caller network origin, recorded on denial

        Returns:
            bool: True if the forced release may proceed
        """
        if self.is_valid(provided_credential):
            logger.info(f"Forced release authorized for origin {origin}")
            return True

        reason = "missing_credential" if not provided_credential else "invalid_credential"
        logger.warning(f"Unauthorized forced release attempt from {origin} ({reason})")
        await self.audit_sink.log_unauthorized(origin=origin, reason=reason)
        return False


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer <token>`` header.

    Returns:
        The token, or None if the header is absent or not a bearer header
    """
    if not authorization:
        return None
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def get_client_ip(
    headers: Mapping[str, str],
    fallback: Optional[str] = None,
    trust_proxy_headers: bool = False,
) -> str:
    """Resolve the caller's network origin used as the rate-limit key.

    With ``trust_proxy_headers`` the first ``x-forwarded-for`` hop wins, then
    ``x-real-ip``. Those headers are caller-controlled, so they are only
    honored behind a proxy that overwrites them. Otherwise the socket peer
    address is used.
    """
    if not trust_proxy_headers:
        return fallback or "unknown"
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop
    real_ip = headers.get("x-real-ip")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    return fallback or "unknown"

