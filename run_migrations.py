#!/usr/bin/env python3
"""Run release engine database migrations.

This script:
1. Checks the PostgreSQL server version
2. Runs Alembic migrations
3. Verifies tables, enum types and extensions
"""

import argparse
import logging
import os
import sys

from dotenv import load_dotenv

from legacy_release.migrations import check_compatibility, run_alembic_migrations, verify_schema

# Setup logging
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# Load environment variables
load_dotenv()


def main():
    """Main migration runner."""
    parser = argparse.ArgumentParser(description="Run legacy-release database migrations")
    parser.add_argument(
        "--database-url",
        help="Database URL (overrides DATABASE_URL env var)"
    )
    parser.add_argument(
        "--revision",
        default="head",
        help="Target revision for Alembic (default: head)"
    )
    parser.add_argument(
        "--verify-only",
        action="store_true",
        help="Only verify schema, don't run migrations"
    )
    args = parser.parse_args()

    database_url = args.database_url or os.getenv("DATABASE_URL")
    if not database_url:
        logger.error("DATABASE_URL not provided")
        sys.exit(1)

    try:
        if not args.verify_only:
            check_compatibility(database_url)
            run_alembic_migrations(database_url, args.revision)

        missing = verify_schema(database_url)
        if missing:
            logger.error(f"Schema incomplete: {', '.join(missing)}")
            sys.exit(1)

        logger.info("Migration process completed successfully!")

    except Exception as e:
        logger.error(f"Migration process failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
