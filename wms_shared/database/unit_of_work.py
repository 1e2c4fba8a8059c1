"""Explicit unit-of-work over async SQLAlchemy sessions."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)


class Transaction:
    """A single storage transaction bound to its own session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    async def commit(self):
        """Commit the transaction. A finished transaction cannot be reused."""
        if self._finished:
            raise RuntimeError("Transaction already finished")
        await self.session.commit()
        self._finished = True

    async def rollback(self):
        """Roll back the transaction. Rolling back twice is a no-op."""
        if self._finished:
            return
        await self.session.rollback()
        self._finished = True

    async def close(self):
        await self.session.close()


class UnitOfWork:
    """
    Opens storage transactions for the idempotency guard and the executor.

    Every transaction gets a fresh session so that a rollback in one
    transaction never discards work committed by another.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        if session_factory is None:
            from wms_shared.database.session import SessionLocal

            session_factory = SessionLocal

        self.session_factory = session_factory

    async def begin(self) -> Transaction:
        """Begin a new transaction. The caller must commit or roll back and close it."""
        session = self.session_factory()
        return Transaction(session)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """
        Run a block inside a transaction.

        Commits on normal exit unless the block already finished the
        transaction; rolls back and re-raises on any exception.
        """
        txn = await self.begin()
        try:
            yield txn
            if not txn.finished:
                await txn.commit()
        except BaseException:
            await txn.rollback()
            raise
        finally:
            await txn.close()
