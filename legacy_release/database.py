"""Async database connection and session management utilities."""

import os
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    AsyncEngine,
    create_async_engine,
    async_sessionmaker
)
from sqlalchemy.pool import NullPool
from sqlalchemy import text
import logging

from .validators import validate_database_compatibility_async

logger = logging.getLogger(__name__)


def to_async_url(database_url: str) -> str:
    """Normalize a PostgreSQL URL to the asyncpg driver form.

    Raises:
        ValueError: If the URL is not a PostgreSQL URL
    """
    if database_url.startswith("postgres://"):
        database_url = "postgresql://" + database_url[len("postgres://"):]
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("postgresql+asyncpg://"):
        return database_url
    raise ValueError("Database URL must be PostgreSQL")


class DatabaseManager:
    """Manages async database connections with connection pooling."""

    def __init__(self, database_url: Optional[str] = None, validate_on_connect: bool = True):
        """Initialize database manager.

        Args:
            database_url: PostgreSQL connection string. If not provided,
                         will use DATABASE_URL environment variable.
            validate_on_connect: Run the PostgreSQL compatibility checks
                         when the engine is first initialized.
        """
        database_url = database_url or os.getenv("DATABASE_URL")
        if not database_url:
            raise ValueError("DATABASE_URL not provided or set in environment")

        self.database_url = to_async_url(database_url)
        self.validate_on_connect = validate_on_connect
        self._engine: Optional[AsyncEngine] = None
        self._sessionmaker: Optional[async_sessionmaker] = None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    async def initialize(self, **engine_kwargs):
        """Initialize the database engine and session factory.

        Args:
            **engine_kwargs: Additional arguments for create_async_engine
        """
        if self._engine is not None:
            return

        # Default engine configuration
        default_config = {
            "echo": os.getenv("SQL_ECHO", "false").lower() == "true",
            "pool_size": int(os.getenv("DB_POOL_SIZE", "5")),
            "max_overflow": int(os.getenv("DB_MAX_OVERFLOW", "10")),
            "pool_timeout": int(os.getenv("DB_POOL_TIMEOUT", "30")),
            "pool_recycle": int(os.getenv("DB_POOL_RECYCLE", "3600")),
            "pool_pre_ping": True,  # Verify connections before use
        }

        # Use NullPool for serverless environments
        if os.getenv("SERVERLESS", "false").lower() == "true":
            default_config["poolclass"] = NullPool
            default_config.pop("pool_size", None)
            default_config.pop("max_overflow", None)

        config = {**default_config, **engine_kwargs}

        self._engine = create_async_engine(self.database_url, **config)
        self._sessionmaker = async_sessionmaker(
            self._engine,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        # Test connection and validate compatibility
        try:
            async with self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
                logger.info("Database connection established")

                if self.validate_on_connect:
                    raw_conn = await conn.get_raw_connection()
                    asyncpg_conn = raw_conn.driver_connection
                    await validate_database_compatibility_async(asyncpg_conn)

        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            await self.close()
            raise

    async def close(self):
        """Close the database engine."""
        if self._engine:
            await self._engine.dispose()
            self._engine = None
            self._sessionmaker = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get an async database session.

        Commits when the block exits normally and rolls back on error.

        Example:
            async with db_manager.get_session() as session:
                result = await session.execute(select(CheckInConfiguration))
                configs = result.scalars().all()
        """
        if self._sessionmaker is None:
            await self.initialize()

        async with self._sessionmaker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> bool:
        """Check if database is accessible.

        Returns:
            bool: True if database is healthy
        """
        try:
            async with self.get_session() as session:
                result = await session.execute(text("SELECT 1"))
                return result.scalar() == 1
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

