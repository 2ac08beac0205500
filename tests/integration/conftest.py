"""Database fixtures for integration tests."""
import pytest
import pytest_asyncio
from sqlalchemy import create_engine, text
from sqlalchemy.pool import NullPool

from legacy_release.database import DatabaseManager
from legacy_release.models import Base
from legacy_release.store import SqlAlchemyCheckInStore


@pytest.fixture(scope="session")
def sync_engine(test_database_url):
    """Create synchronous engine for test database setup."""
    url = test_database_url.replace("postgresql+asyncpg://", "postgresql://")
    engine = create_engine(url, poolclass=NullPool)
    yield engine
    engine.dispose()


@pytest.fixture
def setup_database(sync_engine):
    """Create all tables before each test and drop after."""
    with sync_engine.begin() as conn:
        conn.execute(text("CREATE EXTENSION IF NOT EXISTS pgcrypto"))
    Base.metadata.create_all(bind=sync_engine)
    yield
    Base.metadata.drop_all(bind=sync_engine)


@pytest_asyncio.fixture
async def db_manager(test_database_url, setup_database):
    """Provide initialized DatabaseManager for tests."""
    manager = DatabaseManager(test_database_url)
    await manager.initialize()
    yield manager
    await manager.close()


@pytest.fixture
def sql_store(db_manager):
    return SqlAlchemyCheckInStore(db_manager)
