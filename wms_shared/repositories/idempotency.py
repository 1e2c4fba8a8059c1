from typing import Optional, Any
from datetime import datetime, timedelta
from sqlalchemy import select, delete, func, update as sql_update
from sqlalchemy.ext.asyncio import AsyncSession

from wms_shared.models.idempotency import EventIdempotencyKey, ProcessingStatus
from .base import BaseRepository


class IdempotencyRepository(BaseRepository[EventIdempotencyKey]):
    """Repository for idempotency key records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, EventIdempotencyKey, key_column="idempotency_key")

    async def get_active(
        self,
        key: str,
        now: Optional[datetime] = None,
    ) -> Optional[EventIdempotencyKey]:
        """Get a non-expired record by key string."""
        stmt = select(self.model).where(
            self.model.idempotency_key == key,
            self.model.expires_at > (now or datetime.utcnow()),
        )
        result = await self.session.execute(stmt)
        return result.scalars().first()

    async def delete_if_expired(self, key: str, now: Optional[datetime] = None) -> bool:
        """Delete the record for a key only if it has expired."""
        stmt = delete(self.model).where(
            self.model.idempotency_key == key,
            self.model.expires_at <= (now or datetime.utcnow()),
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def insert_pending(
        self,
        key: str,
        operation_name: str,
        event_source: str,
        payload: Any,
        ttl_hours: int,
    ) -> EventIdempotencyKey:
        """
        Insert a new record in pending state.

        Raises:
            sqlalchemy.exc.IntegrityError: If a record with the same key exists
        """
        now = datetime.utcnow()
        entry = EventIdempotencyKey(
            idempotency_key=key,
            operation_name=operation_name,
            event_source=event_source,
            payload=payload,
            processing_status=ProcessingStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            expires_at=now + timedelta(hours=ttl_hours),
        )
        return await self.create(entry)

    async def transition(
        self,
        key: str,
        from_status: ProcessingStatus,
        to_status: ProcessingStatus,
        **values,
    ) -> bool:
        """
        Compare-and-swap the status of a record.

        Returns:
            True if the record was in from_status and has been updated
        """
        stmt = (
            sql_update(self.model)
            .where(
                self.model.idempotency_key == key,
                self.model.processing_status == from_status.value,
            )
            .values(processing_status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def mark_processing(self, key: str) -> bool:
        return await self.transition(
            key, ProcessingStatus.PENDING, ProcessingStatus.PROCESSING
        )

    async def mark_completed(self, key: str, result: Any) -> bool:
        return await self.transition(
            key,
            ProcessingStatus.PROCESSING,
            ProcessingStatus.COMPLETED,
            processing_result=result,
            processed_at=datetime.utcnow(),
        )

    async def mark_failed(self, key: str, error_message: str) -> bool:
        return await self.transition(
            key,
            ProcessingStatus.PROCESSING,
            ProcessingStatus.FAILED,
            error_message=error_message,
            processed_at=datetime.utcnow(),
        )

    async def delete_failed(self, key: str) -> bool:
        """Delete a record only if it resolved to failure."""
        stmt = delete(self.model).where(
            self.model.idempotency_key == key,
            self.model.processing_status == ProcessingStatus.FAILED.value,
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount > 0

    async def cleanup_expired(self, now: Optional[datetime] = None) -> int:
        """Delete all expired idempotency keys. Returns count deleted."""
        stmt = delete(self.model).where(
            self.model.expires_at <= (now or datetime.utcnow())
        )
        result = await self.session.execute(stmt)
        await self.session.flush()
        return result.rowcount

    async def count(self, *criteria) -> int:
        """Count records matching the given criteria."""
        stmt = select(func.count()).select_from(self.model)
        if criteria:
            stmt = stmt.where(*criteria)
        result = await self.session.execute(stmt)
        return result.scalar_one()

    async def get_statistics(self, now: Optional[datetime] = None) -> dict:
        """Counts of records by expiry and status."""
        now = now or datetime.utcnow()
        status = self.model.processing_status

        return {
            "total_keys": await self.count(),
            "active_keys": await self.count(self.model.expires_at > now),
            "expired_keys": await self.count(self.model.expires_at <= now),
            "completed_keys": await self.count(status == ProcessingStatus.COMPLETED.value),
            "failed_keys": await self.count(status == ProcessingStatus.FAILED.value),
            "processing_keys": await self.count(status == ProcessingStatus.PROCESSING.value),
            "pending_keys": await self.count(status == ProcessingStatus.PENDING.value),
        }
