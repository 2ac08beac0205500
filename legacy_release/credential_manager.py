"""Credential retrieval for the release engine's secrets.

The privileged service credential and the email provider key may be
supplied directly or referenced by an AWS SSM Parameter Store / Secrets
Manager ARN. Referenced secrets hold either a JSON object or a bare string.
"""
import base64
import json
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Any

import boto3
from botocore.exceptions import ClientError

from .errors import ConfigurationError
from .validators import validate_secret_arn, sanitize_secret_arn_for_logging

logger = logging.getLogger(__name__)


class CredentialManager:
    """Fetch secrets from AWS with an in-memory TTL cache."""

    def __init__(
        self,
        cache_ttl_minutes: int = 10,
        ssm_client=None,
        secrets_manager_client=None
    ):
        """Initialize the credential manager.

        Args:
            cache_ttl_minutes: How long to cache secrets in memory
            ssm_client: Optional boto3 SSM client (for testing)
            secrets_manager_client: Optional boto3 Secrets Manager client (for testing)
        """
        self.cache_ttl = timedelta(minutes=cache_ttl_minutes)
        self._cache: Dict[str, tuple[Dict[str, Any], datetime]] = {}
        self._ssm = ssm_client
        self._secrets_manager = secrets_manager_client

    @property
    def ssm(self):
        if self._ssm is None:
            self._ssm = boto3.client('ssm')
        return self._ssm

    @property
    def secrets_manager(self):
        if self._secrets_manager is None:
            self._secrets_manager = boto3.client('secretsmanager')
        return self._secrets_manager

    def get_credentials(self, secret_arn: str) -> Dict[str, Any]:
        """Retrieve a secret from AWS with caching.

        Args:
            secret_arn: AWS SSM Parameter Store or Secrets Manager ARN

        Returns:
            Dictionary containing the secret data; bare string secrets are
            returned under the ``value`` key

        Raises:
            ValueError: If ARN format is invalid
            ClientError: If AWS API call fails
        """
        if not secret_arn or not validate_secret_arn(secret_arn):
            raise ValueError(f"Invalid secret ARN format: {sanitize_secret_arn_for_logging(secret_arn)}")

        if secret_arn in self._cache:
            cached_data, cached_time = self._cache[secret_arn]
            if datetime.now() - cached_time < self.cache_ttl:
                logger.debug(f"Cache hit for {sanitize_secret_arn_for_logging(secret_arn)}")
                return cached_data

        try:
            if secret_arn.startswith('arn:aws:ssm:'):
                raw = self._fetch_from_ssm(secret_arn)
            else:
                raw = self._fetch_from_secrets_manager(secret_arn)
        except ClientError as e:
            logger.error(
                f"Failed to retrieve credentials for {sanitize_secret_arn_for_logging(secret_arn)}: {e}"
            )
            raise

        creds = _parse_secret(raw)
        self._cache[secret_arn] = (creds, datetime.now())
        logger.info(f"Successfully retrieved credentials for {sanitize_secret_arn_for_logging(secret_arn)}")
        return creds

    def get_secret_value(self, secret_arn: str, key: str) -> str:
        """Return one string field of a secret.

        Falls back to the ``value`` field for bare string secrets.

        Raises:
            ConfigurationError: If the secret holds neither field
        """
        creds = self.get_credentials(secret_arn)
        value = creds.get(key, creds.get('value'))
        if not value or not isinstance(value, str):
            raise ConfigurationError(
                f"Secret {sanitize_secret_arn_for_logging(secret_arn)} has no string field '{key}'"
            )
        return value

    def _fetch_from_ssm(self, arn: str) -> str:
        # arn:aws:ssm:region:account:parameter/path -> /path
        param_name = arn.split(':parameter')[-1]
        response = self.ssm.get_parameter(Name=param_name, WithDecryption=True)
        return response['Parameter']['Value']

    def _fetch_from_secrets_manager(self, arn: str) -> str:
        response = self.secrets_manager.get_secret_value(SecretId=arn)
        if 'SecretString' in response:
            return response['SecretString']
        return base64.b64decode(response['SecretBinary']).decode('utf-8')

    def clear_cache(self, secret_arn: Optional[str] = None):
        """Clear cached secrets.

        Args:
            secret_arn: Specific ARN to clear, or None to clear all
        """
        if secret_arn:
            self._cache.pop(secret_arn, None)
            logger.info(f"Cleared cache for {sanitize_secret_arn_for_logging(secret_arn)}")
        else:
            self._cache.clear()
            logger.info("Cleared all cached credentials")


def _parse_secret(raw: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(raw)
    except (TypeError, ValueError):
        return {'value': raw}
    if isinstance(parsed, dict):
        return parsed
    return {'value': raw}


def resolve_secret(
    value: Optional[str],
    secret_arn: Optional[str],
    key: str,
    manager: Optional[CredentialManager] = None,
) -> Optional[str]:
    """Return a directly configured secret, or look it up by ARN.

    A direct value wins over an ARN. Returns None when neither is set.
    """
    if value:
        return value
    if not secret_arn:
        return None
    manager = manager or CredentialManager()
    try:
        return manager.get_secret_value(secret_arn, key)
    except ValueError as e:
        raise ConfigurationError(str(e)) from e
