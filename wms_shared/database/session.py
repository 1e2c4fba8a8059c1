from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
import logging

from wms_shared.config import settings

logger = logging.getLogger(__name__)

# Create async engine with connection pooling
# Only set pool parameters for PostgreSQL (SQLite doesn't support them)
engine_kwargs = {
    "echo": False,
    "future": True,
}

if "postgresql" in settings.database_url:
    engine_kwargs.update({
        "pool_size": 10,
        "max_overflow": 20,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    })

engine = create_async_engine(
    settings.database_url,
    **engine_kwargs
)

# Create session factory
SessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autoflush=False,
)


def get_session_factory() -> async_sessionmaker:
    """Dependency for FastAPI to get the session factory used by units of work."""
    return SessionLocal


async def init_db():
    """Initialize database (create tables)."""
    from wms_shared.database.base import Base
    import wms_shared.models  # noqa: F401  register tables on the metadata

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database initialized")


async def close_db():
    """Close database connections."""
    await engine.dispose()
    logger.info("Database connections closed")
