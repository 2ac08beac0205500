"""legacy-release - Check-in driven release of protected messages."""

__version__ = "0.1.0"

from .constants import (
    DATABASE_REQUIREMENTS,
    VERSION_COMPATIBILITY,
    EXTENSION_VERSIONS,
    RATE_LIMIT_DEFAULTS,
)

from .errors import (
    ReleaseEngineError,
    ConfigurationError,
    RateLimitExceededError,
    UnauthorizedError,
    StoreError,
    StoreUnavailableError,
    CycleStateError,
)

from .schemas import (
    # Enums
    GraceUnit,
    CycleState,
    MessageScope,
    MessageStatus,
    AuditOutcome,
    AuditAction,

    # Entities
    CheckInConfigurationCreate,
    CheckInConfiguration,
    CheckInCycle,
    Recipient,
    ProtectedMessage,
    AuditRecordCreate,
    AuditRecord,

    # Results
    DispatchResult,
    ReleaseSummary,
    ProcessRequest,
    ProcessResponse,
    ErrorResponse,
)

from .overdue import grace_deadline, is_overdue
from .rate_limiter import SlidingWindowRateLimiter
from .audit import AuditSink
from .security import (
    SECURITY_HEADERS,
    AuthorizationGuard,
    extract_bearer_token,
    get_client_ip,
)
from .store import CheckInStore, SqlAlchemyCheckInStore
from .content import MessageRenderer
from .email_dispatch import EmailDispatcher, ResendEmailDispatcher
from .orchestrator import ReleaseOrchestrator
from .engine import ReleaseEngine
from .scheduler import PeriodicReleaseRunner
from .config import Settings

from .database import DatabaseManager

from .validators import (
    validate_postgresql_version_async,
    validate_postgresql_version_sync,
    validate_extensions_async,
    validate_extensions_sync,
    validate_database_compatibility_async,
    validate_database_compatibility_sync,
)

__all__ = [
    # Constants
    "DATABASE_REQUIREMENTS",
    "VERSION_COMPATIBILITY",
    "EXTENSION_VERSIONS",
    "RATE_LIMIT_DEFAULTS",

    # Errors
    "ReleaseEngineError",
    "ConfigurationError",
    "RateLimitExceededError",
    "UnauthorizedError",
    "StoreError",
    "StoreUnavailableError",
    "CycleStateError",

    # Enums
    "GraceUnit",
    "CycleState",
    "MessageScope",
    "MessageStatus",
    "AuditOutcome",
    "AuditAction",

    # Schemas
    "CheckInConfigurationCreate",
    "CheckInConfiguration",
    "CheckInCycle",
    "Recipient",
    "ProtectedMessage",
    "AuditRecordCreate",
    "AuditRecord",
    "DispatchResult",
    "ReleaseSummary",
    "ProcessRequest",
    "ProcessResponse",
    "ErrorResponse",

    # Engine
    "grace_deadline",
    "is_overdue",
    "SlidingWindowRateLimiter",
    "AuditSink",
    "SECURITY_HEADERS",
    "AuthorizationGuard",
    "extract_bearer_token",
    "get_client_ip",
    "CheckInStore",
    "SqlAlchemyCheckInStore",
    "MessageRenderer",
    "EmailDispatcher",
    "ResendEmailDispatcher",
    "ReleaseOrchestrator",
    "ReleaseEngine",
    "PeriodicReleaseRunner",
    "Settings",

    # Database
    "DatabaseManager",

    # Validators
    "validate_postgresql_version_async",
    "validate_postgresql_version_sync",
    "validate_extensions_async",
    "validate_extensions_sync",
    "validate_database_compatibility_async",
    "validate_database_compatibility_sync",
]
