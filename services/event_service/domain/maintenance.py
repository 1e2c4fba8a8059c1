"""Idempotency key maintenance shared by the API, the CLI and the scheduler."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from wms_shared.config import settings
from wms_shared.database.unit_of_work import UnitOfWork
from wms_shared.idempotency import IdempotencyService
from wms_shared.schemas import CleanupResult, IdempotencyStatistics

logger = logging.getLogger(__name__)


async def cleanup_idempotency_keys(
    service: IdempotencyService,
    dry_run: bool = False,
) -> CleanupResult:
    """
    Delete expired idempotency keys.

    Args:
        service: Idempotency service bound to the target database
        dry_run: Only report what would be deleted

    Returns:
        Statistics before and after, and the number of deleted keys
    """
    before = await service.get_statistics()

    if dry_run:
        logger.info(
            f"Dry run: would delete {before.expired_keys} expired idempotency keys"
        )
        return CleanupResult(
            dry_run=True,
            deleted_count=0,
            before=before,
            after=before,
        )

    deleted_count = await service.cleanup_expired()
    after = await service.get_statistics() if deleted_count > 0 else before

    logger.info(
        "Idempotency keys cleanup completed",
        extra={
            "deleted_count": deleted_count,
            "before_stats": before.model_dump(),
            "after_stats": after.model_dump(),
        },
    )

    return CleanupResult(
        dry_run=False,
        deleted_count=deleted_count,
        before=before,
        after=after,
    )


@asynccontextmanager
async def standalone_service() -> AsyncIterator[IdempotencyService]:
    """
    Idempotency service with its own engine, for use outside the web service.

    Worker processes and the CLI call this from a fresh event loop, so the
    pooled connections of the service engine cannot be reused here.
    """
    engine = create_async_engine(settings.database_url, future=True)
    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    try:
        yield IdempotencyService(UnitOfWork(session_factory))
    finally:
        await engine.dispose()


async def run_standalone_cleanup(dry_run: bool = False) -> CleanupResult:
    """Run a cleanup outside the web service."""
    async with standalone_service() as service:
        return await cleanup_idempotency_keys(service, dry_run=dry_run)


async def run_standalone_statistics() -> IdempotencyStatistics:
    """Read idempotency key statistics outside the web service."""
    async with standalone_service() as service:
        return await service.get_statistics()
