import pytest
from sqlalchemy import text
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from unittest.mock import AsyncMock, MagicMock
import os

# Set test environment before any wms_shared import reads the settings
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "DEBUG"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"


@pytest.fixture(scope="function")
async def test_db_engine(tmp_path):
    """
    Create a test database engine.

    A file database gives every session its own connection, so concurrent
    transactions contend on the table the way separate processes would.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        future=True,
        connect_args={"timeout": 30},
    )

    # Create tables
    from wms_shared.database.base import Base
    import wms_shared.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Cleanup
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def test_session_factory(test_db_engine):
    """Create a session factory bound to the test engine."""
    return async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture(scope="function")
async def test_db_session(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest.fixture
async def shipments_table(test_db_engine):
    """A side-effect table written by the operations under test."""
    async with test_db_engine.begin() as conn:
        await conn.execute(
            text("CREATE TABLE shipments (id INTEGER PRIMARY KEY, order_id INTEGER NOT NULL)")
        )
    return "shipments"


@pytest.fixture
def unit_of_work(test_session_factory):
    """Unit of work over the test database."""
    from wms_shared.database.unit_of_work import UnitOfWork

    return UnitOfWork(test_session_factory)


@pytest.fixture
def idempotency_service(unit_of_work):
    """Idempotency service with explicit TTL and staleness settings."""
    from wms_shared.idempotency import IdempotencyService

    return IdempotencyService(
        unit_of_work,
        default_ttl_hours=24,
        stale_processing_seconds=900,
    )


@pytest.fixture
def transactional_service(idempotency_service):
    """Transactional executor sharing the idempotency service's unit of work."""
    from wms_shared.transactional import TransactionalEventService

    return TransactionalEventService(idempotency_service)


@pytest.fixture
def mock_redis():
    """Create a mock Redis client."""
    redis_client = AsyncMock()
    redis_client.pubsub = MagicMock(return_value=AsyncMock())
    return redis_client
