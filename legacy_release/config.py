"""Runtime settings for the release engine, read from the environment."""

import os
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

from .constants import (
    DEFAULT_RESEND_BASE_URL,
    DEFAULT_RESEND_FROM,
    DEFAULT_SENDER_NAME,
    POLL_INTERVAL_SECONDS,
    RATE_LIMIT_DEFAULTS,
)
from .credential_manager import CredentialManager, resolve_secret


class Settings(BaseModel):
    """Engine settings.

    Secrets may be given directly or as AWS ARNs; see ``resolve_secrets``.
    """

    database_url: Optional[str] = None

    service_role_key: Optional[str] = Field(default=None, repr=False)
    service_role_key_arn: Optional[str] = None

    resend_api_key: Optional[str] = Field(default=None, repr=False)
    resend_api_key_arn: Optional[str] = None
    resend_from: str = DEFAULT_RESEND_FROM
    resend_reply_to: Optional[str] = None
    resend_base_url: str = DEFAULT_RESEND_BASE_URL

    allowed_origins: List[str] = Field(default_factory=list)
    trust_proxy_headers: bool = False
    rate_limit_max_requests: int = Field(RATE_LIMIT_DEFAULTS["max_requests"], ge=1)
    rate_limit_window_seconds: int = Field(RATE_LIMIT_DEFAULTS["window_seconds"], ge=1)
    poll_interval_seconds: int = Field(POLL_INTERVAL_SECONDS, ge=1)
    max_concurrency: int = Field(4, ge=1)
    sender_name: str = DEFAULT_SENDER_NAME
    log_level: str = "INFO"

    @field_validator('allowed_origins', mode='before')
    @classmethod
    def split_origins(cls, v):
        if v is None:
            return []
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(',') if origin.strip()]
        return v

    @field_validator('log_level')
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper()

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "Settings":
        """Build settings from environment variables (and ``.env`` if present)."""
        if dotenv:
            load_dotenv()

        mapping = {
            "DATABASE_URL": "database_url",
            "SERVICE_ROLE_KEY": "service_role_key",
            "SERVICE_ROLE_KEY_ARN": "service_role_key_arn",
            "RESEND_API_KEY": "resend_api_key",
            "RESEND_API_KEY_ARN": "resend_api_key_arn",
            "RESEND_FROM": "resend_from",
            "RESEND_REPLY_TO": "resend_reply_to",
            "RESEND_BASE_URL": "resend_base_url",
            "ALLOWED_ORIGINS": "allowed_origins",
            "TRUST_PROXY_HEADERS": "trust_proxy_headers",
            "RATE_LIMIT_MAX_REQUESTS": "rate_limit_max_requests",
            "RATE_LIMIT_WINDOW_SECONDS": "rate_limit_window_seconds",
            "POLL_INTERVAL_SECONDS": "poll_interval_seconds",
            "RELEASE_MAX_CONCURRENCY": "max_concurrency",
            "SENDER_NAME": "sender_name",
            "LOG_LEVEL": "log_level",
        }
        data = {}
        for env_key, field in mapping.items():
            raw = os.getenv(env_key)
            if raw is not None and raw != "":
                data[field] = raw
        return cls(**data)

    def resolve_secrets(self, manager: Optional[CredentialManager] = None) -> "Settings":
        """Return a copy with ARN-referenced secrets fetched into place."""
        return self.model_copy(update={
            "service_role_key": resolve_secret(
                self.service_role_key, self.service_role_key_arn, "service_role_key", manager
            ),
            "resend_api_key": resolve_secret(
                self.resend_api_key, self.resend_api_key_arn, "api_key", manager
            ),
        })
