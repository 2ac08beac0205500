"""Validation utilities for legacy-release.

Database checks confirm that the PostgreSQL instance meets the minimum
requirements in constants.py. Secret ARN helpers guard the credential
lookups performed by the credential manager.
"""
import re
import logging
from typing import Optional, Dict

import asyncpg

from .constants import DATABASE_REQUIREMENTS, EXTENSION_VERSIONS

logger = logging.getLogger(__name__)

_EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def parse_postgresql_version(version_string: str) -> Optional[float]:
    """Parse PostgreSQL version from version() output.

    Args:
        version_string: Output from SELECT version()

    Returns:
        Float version number (e.g., 16.1 -> 16.1) or None if parsing fails
    """
    # Example: "PostgreSQL 16.1 on x86_64-pc-linux-gnu, compiled by..."
    match = re.search(r'PostgreSQL (\d+(?:\.\d+)?)', version_string or "")
    if match:
        return float(match.group(1))
    return None


def _check_version(version_string: str) -> float:
    version = parse_postgresql_version(version_string)

    if version is None:
        logger.warning(f"Could not parse PostgreSQL version from: {version_string}")
        raise RuntimeError("Unable to determine PostgreSQL version")

    min_version = float(DATABASE_REQUIREMENTS["min_postgresql_version"])
    if version < min_version:
        raise RuntimeError(
            f"PostgreSQL {min_version}+ required, but found {version}. "
            f"Please upgrade your PostgreSQL installation."
        )

    logger.info(f"PostgreSQL version {version} meets requirement (>= {min_version})")
    return version


def _missing_extensions_error(missing_extensions) -> RuntimeError:
    return RuntimeError(
        f"Required PostgreSQL extensions not installed: {', '.join(missing_extensions)}. "
        f"Please install them with: CREATE EXTENSION IF NOT EXISTS <extension_name>;"
    )


async def validate_postgresql_version_async(connection: asyncpg.Connection) -> float:
    """Validate PostgreSQL version meets minimum requirements (async).

    Args:
        connection: AsyncPG database connection

    Raises:
        RuntimeError: If version is below minimum requirement
    """
    version_string = await connection.fetchval("SELECT version()")
    return _check_version(version_string)


def validate_postgresql_version_sync(connection) -> float:
    """Validate PostgreSQL version meets minimum requirements (sync).

    Args:
        connection: Psycopg2 database connection

    Raises:
        RuntimeError: If version is below minimum requirement
    """
    cursor = connection.cursor()
    cursor.execute("SELECT version()")
    version_string = cursor.fetchone()[0]
    cursor.close()
    return _check_version(version_string)


async def validate_extensions_async(connection: asyncpg.Connection) -> Dict[str, bool]:
    """Validate required PostgreSQL extensions are installed (async).

    Returns:
        Dict mapping extension name to installation status

    Raises:
        RuntimeError: If any required extension is missing
    """
    results = {}
    missing_extensions = []

    for ext_name in DATABASE_REQUIREMENTS["required_extensions"]:
        exists = await connection.fetchval(
            "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = $1)",
            ext_name
        )
        results[ext_name] = bool(exists)
        if not exists:
            missing_extensions.append(ext_name)

    if missing_extensions:
        raise _missing_extensions_error(missing_extensions)

    for ext_name, min_version in EXTENSION_VERSIONS.items():
        if results.get(ext_name):
            version = await connection.fetchval(
                "SELECT extversion FROM pg_extension WHERE extname = $1",
                ext_name
            )
            logger.info(f"Extension {ext_name} version: {version} (minimum: {min_version})")

    return results


def validate_extensions_sync(connection) -> Dict[str, bool]:
    """Validate required PostgreSQL extensions are installed (sync).

    Args:
        connection: Psycopg2 database connection

    Raises:
        RuntimeError: If any required extension is missing
    """
    results = {}
    missing_extensions = []
    cursor = connection.cursor()

    for ext_name in DATABASE_REQUIREMENTS["required_extensions"]:
        cursor.execute(
            "SELECT EXISTS(SELECT 1 FROM pg_extension WHERE extname = %s)",
            (ext_name,)
        )
        exists = cursor.fetchone()[0]
        results[ext_name] = bool(exists)
        if not exists:
            missing_extensions.append(ext_name)

    cursor.close()
    if missing_extensions:
        raise _missing_extensions_error(missing_extensions)

    return results


async def validate_database_compatibility_async(connection: asyncpg.Connection) -> None:
    """Perform full database compatibility validation (async).

    Raises:
        RuntimeError: If any requirement is not met
    """
    logger.info("Validating database compatibility...")
    await validate_postgresql_version_async(connection)
    await validate_extensions_async(connection)
    logger.info("Database compatibility validation passed")


def validate_database_compatibility_sync(connection) -> None:
    """Perform full database compatibility validation (sync).

    Raises:
        RuntimeError: If any requirement is not met
    """
    logger.info("Validating database compatibility...")
    validate_postgresql_version_sync(connection)
    validate_extensions_sync(connection)
    logger.info("Database compatibility validation passed")


# Secret and address validation

def validate_secret_arn(arn: Optional[str]) -> bool:
    """Validate AWS secret ARN format.

    Args:
        arn: AWS SSM Parameter Store or Secrets Manager ARN

    Returns:
        True if valid ARN format or None, False otherwise
    """
    if arn is None:
        return True

    # arn:aws:ssm:region:account-id:parameter/path
    ssm_pattern = re.compile(
        r'^arn:aws:ssm:[a-z0-9-]+:\d{12}:parameter/[\w/\-._]+$'
    )

    # arn:aws:secretsmanager:region:account-id:secret:name-abcdef
    secrets_pattern = re.compile(
        r'^arn:aws:secretsmanager:[a-z0-9-]+:\d{12}:secret:[\w/\-._]+-[A-Za-z0-9]+$'
    )

    return bool(ssm_pattern.match(arn) or secrets_pattern.match(arn))


def sanitize_secret_arn_for_logging(arn: Optional[str]) -> Optional[str]:
    """Replace the account ID in an ARN so it can be logged."""
    if not arn:
        return arn
    return re.sub(r':\d{12}:', ':****:', arn)


def is_valid_email(email: Optional[str]) -> bool:
    """Loose syntactic check for a deliverable email address."""
    return bool(email) and bool(_EMAIL_PATTERN.match(email))
