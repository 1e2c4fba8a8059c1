"""FastAPI dependencies wiring the idempotency guard to the database."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import async_sessionmaker

from wms_shared.database import UnitOfWork, get_session_factory
from wms_shared.idempotency import IdempotencyService


def get_unit_of_work(
    session_factory: async_sessionmaker = Depends(get_session_factory),
) -> UnitOfWork:
    return UnitOfWork(session_factory)


def get_idempotency_service(
    unit_of_work: UnitOfWork = Depends(get_unit_of_work),
) -> IdempotencyService:
    return IdempotencyService(unit_of_work)
