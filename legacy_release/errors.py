"""Exception hierarchy for the release engine."""

from typing import Optional


class ReleaseEngineError(Exception):
    """Base class for all release engine errors."""


class ConfigurationError(ReleaseEngineError):
    """Settings or secrets are missing or malformed."""


class RateLimitExceededError(ReleaseEngineError):
    """Caller exceeded the admission window."""

    def __init__(self, caller_key: str, retry_after: float, limit: int):
        self.caller_key = caller_key
        self.retry_after = retry_after
        self.limit = limit
        super().__init__("Rate limit exceeded")


class UnauthorizedError(ReleaseEngineError):
    """Forced release requested without a valid privileged credential."""

    def __init__(self, message: str = "Unauthorized emergency release"):
        super().__init__(message)


class StoreError(ReleaseEngineError):
    """A persistence operation failed for a single item."""


class StoreUnavailableError(StoreError):
    """The persistence collaborator could not be read at all.

    Raised before any state is mutated, so the invocation is safe to retry.
    """

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        self.cause = cause
        super().__init__(message)


class CycleStateError(ReleaseEngineError):
    """A check-in cycle operation is not valid in the cycle's current state."""
