"""Database requirements and engine defaults for legacy-release.

This module defines the minimum requirements that any PostgreSQL instance
must meet to host the release engine tables, plus the operational defaults
used when no explicit configuration is supplied.
"""

# Database version requirements
DATABASE_REQUIREMENTS = {
    "min_postgresql_version": "14.0",
    "required_extensions": [
        "pgcrypto",      # gen_random_uuid() for primary keys
    ],
    "recommended_extensions": [
        "pg_stat_statements",  # Query performance monitoring
    ]
}

# Version compatibility matrix
VERSION_COMPATIBILITY = {
    "0.1.x": {
        "postgresql": "14.0+",
        "sqlalchemy": "2.0+",
        "pydantic": "2.0+",
    }
}

# Extension version requirements (if specific versions needed)
EXTENSION_VERSIONS = {
    "pgcrypto": "1.3",
}

# Processing endpoint admission defaults
RATE_LIMIT_DEFAULTS = {
    "max_requests": 20,
    "window_seconds": 60,
    "max_tracked_keys": 10000,  # Purge stale callers beyond this
}

# External trigger cadence
POLL_INTERVAL_SECONDS = 30

# CORS
ALLOWED_METHODS = ["POST", "OPTIONS"]
ALLOWED_HEADERS = ["authorization", "x-client-info", "apikey", "content-type"]
CORS_MAX_AGE = 86400

# Email delivery
DEFAULT_SENDER_NAME = "Legacy Scheduler"
DEFAULT_RESEND_FROM = "Legacy Scheduler <onboarding@resend.dev>"
DEFAULT_RESEND_BASE_URL = "https://api.resend.com"
EMAIL_TIMEOUT_SECONDS = 15.0
