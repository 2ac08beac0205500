"""Apply and verify the release engine schema.

1. Validates PostgreSQL compatibility (version, extensions)
2. Runs Alembic migrations
3. Verifies the expected tables and types exist
"""

import logging
from pathlib import Path
from typing import List

import psycopg2
from alembic import command
from alembic.config import Config

from .validators import validate_database_compatibility_sync, validate_postgresql_version_sync

logger = logging.getLogger(__name__)

ALEMBIC_INI = Path(__file__).parent / "alembic.ini"

EXPECTED_TABLES = [
    'checkin_configuration',
    'checkin_cycle',
    'recipient',
    'protected_message',
    'audit_log',
]

EXPECTED_TYPES = [
    'time_unit', 'cycle_state', 'message_scope', 'message_status', 'audit_outcome',
]


def to_sync_url(database_url: str) -> str:
    """Convert an asyncpg URL to the plain form psycopg2 understands."""
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url.replace("postgresql+asyncpg://", "postgresql://", 1)
    if database_url.startswith("postgres://"):
        return database_url.replace("postgres://", "postgresql://", 1)
    return database_url


def build_alembic_config(database_url: str) -> Config:
    alembic_cfg = Config(str(ALEMBIC_INI))
    alembic_cfg.set_main_option("script_location", str(ALEMBIC_INI.parent / "alembic"))
    # ConfigParser interpolation treats % specially
    alembic_cfg.set_main_option("sqlalchemy.url", to_sync_url(database_url).replace("%", "%%"))
    return alembic_cfg


def check_compatibility(database_url: str):
    """Fail fast if the server is too old to host the schema.

    Extensions are checked after migrating, since the first revision
    creates them.
    """
    conn = psycopg2.connect(to_sync_url(database_url))
    try:
        validate_postgresql_version_sync(conn)
    finally:
        conn.close()


def run_alembic_migrations(database_url: str, revision: str = "head"):
    """Run Alembic migrations.

    Args:
        database_url: PostgreSQL connection string
        revision: Target revision (default: head)
    """
    alembic_cfg = build_alembic_config(database_url)
    try:
        logger.info(f"Running migrations to revision: {revision}")
        command.upgrade(alembic_cfg, revision)
        logger.info("Alembic migrations completed successfully")
    except Exception as e:
        logger.error(f"Error running Alembic migrations: {e}")
        raise


def verify_schema(database_url: str) -> List[str]:
    """Verify that all expected tables and types exist.

    Returns:
        Names of missing tables and types (empty when the schema is complete)
    """
    missing = []
    conn = psycopg2.connect(to_sync_url(database_url))
    try:
        validate_database_compatibility_sync(conn)
        with conn.cursor() as cursor:
            logger.info("Verifying database schema...")
            for table in EXPECTED_TABLES:
                cursor.execute("""
                    SELECT EXISTS (
                        SELECT 1 FROM information_schema.tables
                        WHERE table_schema = 'public'
                        AND table_name = %s
                    )
                """, (table,))
                if cursor.fetchone()[0]:
                    logger.info(f"Table exists: {table}")
                else:
                    logger.error(f"Table missing: {table}")
                    missing.append(table)

            for type_name in EXPECTED_TYPES:
                cursor.execute("SELECT EXISTS (SELECT 1 FROM pg_type WHERE typname = %s)", (type_name,))
                if cursor.fetchone()[0]:
                    logger.info(f"Type exists: {type_name}")
                else:
                    logger.error(f"Type missing: {type_name}")
                    missing.append(type_name)
    finally:
        conn.close()

    logger.info("Schema verification completed")
    return missing


def migrate(database_url: str, revision: str = "head", verify: bool = True) -> List[str]:
    """Validate, upgrade and optionally verify the schema."""
    check_compatibility(database_url)
    run_alembic_migrations(database_url, revision)
    return verify_schema(database_url) if verify else []
