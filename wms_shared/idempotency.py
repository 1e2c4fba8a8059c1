"""Idempotency guard: run an operation's side effects at most once per key."""

import hashlib
import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Optional, Union

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from wms_shared.config import settings
from wms_shared.database.unit_of_work import UnitOfWork
from wms_shared.exceptions import (
    DuplicateInFlightError,
    PreviousFailureError,
    UnknownKeyStateError,
)
from wms_shared.models.idempotency import EventIdempotencyKey, ProcessingStatus
from wms_shared.payload import canonical_json, strip_volatile_fields, to_json_value
from wms_shared.repositories.idempotency import IdempotencyRepository
from wms_shared.schemas import IdempotencyStatistics, ProcessingResult

logger = logging.getLogger(__name__)

# An operation receives the payload and the session of the transaction it runs in
Operation = Callable[[Any, AsyncSession], Union[Any, Awaitable[Any]]]

ABANDONED_MESSAGE = "Processing abandoned"


class IdempotencyService:
    """
    Guards operations with persisted idempotency keys.

    The claim on a key is a unique-constrained insert, so concurrent callers
    in different processes collapse to exactly one winner. The winner's
    operation and the transition to completed commit in one transaction.
    """

    # Bounded re-claims when a conflicting record disappears before it is read
    CLAIM_ATTEMPTS = 3

    def __init__(
        self,
        unit_of_work: UnitOfWork,
        default_ttl_hours: Optional[int] = None,
        stale_processing_seconds: Optional[int] = None,
    ):
        """
        Initialize the idempotency service.

        Args:
            unit_of_work: Opens the storage transactions
            default_ttl_hours: TTL used when a call does not pass one
            stale_processing_seconds: Age after which a record stuck in
                processing is treated as abandoned
        """
        self.unit_of_work = unit_of_work
        self.default_ttl_hours = (
            settings.idempotency_ttl_hours
            if default_ttl_hours is None
            else default_ttl_hours
        )
        self.stale_processing_seconds = (
            settings.idempotency_stale_processing_seconds
            if stale_processing_seconds is None
            else stale_processing_seconds
        )

    def generate_key(
        self,
        operation_name: str,
        payload: Any,
        source: Optional[str] = None,
    ) -> str:
        """
        Generate a deterministic idempotency key.

        Volatile timestamp fields are dropped and the remaining payload is
        serialized with sorted keys, so field order never changes the key.
        """
        key_data = {
            "event_name": operation_name,
            "source": source,
            "payload": strip_volatile_fields(payload),
        }

        return hashlib.sha256(canonical_json(key_data).encode("utf-8")).hexdigest()

    async def process_with_idempotency(
        self,
        idempotency_key: str,
        operation_name: str,
        source: str,
        payload: Any,
        operation: Operation,
        ttl_hours: Optional[int] = None,
    ) -> ProcessingResult:
        """
        Process an operation with idempotency protection.

        Args:
            idempotency_key: Key identifying the logical operation attempt
            operation_name: Name stored with the record
            source: Event source stored with the record
            payload: Operation input, must have a canonical JSON form
            operation: Callable invoked as operation(payload, session)
            ttl_hours: Record lifetime (defaults to the service TTL)

        Returns:
            ProcessingResult with was_duplicate=True when a completed record
            already existed for the key

        Raises:
            DuplicateInFlightError: If another caller is processing the key
            PreviousFailureError: If the key previously failed
            UnknownKeyStateError: If the record has an unrecognized status
            Exception: Whatever the operation raised, after it was recorded
        """
        ttl_hours = self.default_ttl_hours if ttl_hours is None else ttl_hours
        payload_snapshot = to_json_value(payload)

        existing = await self._claim(
            idempotency_key, operation_name, source, payload_snapshot, ttl_hours
        )

        if existing is not None:
            return await self._handle_existing_key(existing)

        return await self._execute_claimed(
            idempotency_key, operation_name, source, payload, operation
        )

    async def _claim(
        self,
        idempotency_key: str,
        operation_name: str,
        source: str,
        payload_snapshot: Any,
        ttl_hours: int,
    ) -> Optional[EventIdempotencyKey]:
        """
        Claim the key or return the record that already holds it.

        Returns:
            None if this caller won the claim, otherwise the existing record
        """
        for attempt in range(1, self.CLAIM_ATTEMPTS + 1):
            try:
                async with self.unit_of_work.transaction() as txn:
                    repo = IdempotencyRepository(txn.session)
                    await repo.delete_if_expired(idempotency_key)
                    await repo.insert_pending(
                        idempotency_key,
                        operation_name,
                        source,
                        payload_snapshot,
                        ttl_hours,
                    )
                    await repo.mark_processing(idempotency_key)
                return None

            except IntegrityError:
                logger.debug(
                    f"Idempotency key {idempotency_key} already claimed",
                    extra={"idempotency_key": idempotency_key, "attempt": attempt},
                )

            async with self.unit_of_work.transaction() as txn:
                existing = await IdempotencyRepository(txn.session).get_active(
                    idempotency_key
                )

            if existing is not None:
                return existing

        raise UnknownKeyStateError(idempotency_key, None)

    async def _execute_claimed(
        self,
        idempotency_key: str,
        operation_name: str,
        source: str,
        payload: Any,
        operation: Operation,
    ) -> ProcessingResult:
        """Run the operation and mark the record completed in one transaction."""
        txn = await self.unit_of_work.begin()
        try:
            result = operation(payload, txn.session)
            if inspect.isawaitable(result):
                result = await result
            result = to_json_value(result)

            repo = IdempotencyRepository(txn.session)
            if not await repo.mark_completed(idempotency_key, result):
                current = await repo.get_by_id(idempotency_key)
                if current is not None:
                    raise UnknownKeyStateError(
                        idempotency_key, current.processing_status
                    )
                logger.warning(
                    f"Idempotency key {idempotency_key} expired while processing",
                    extra={"idempotency_key": idempotency_key},
                )

            await txn.commit()

        except Exception as e:
            await txn.rollback()
            await self._record_failure(idempotency_key, operation_name, source, e)
            raise

        except BaseException:
            await txn.rollback()
            raise

        finally:
            await txn.close()

        logger.info(
            f"Event processed successfully with idempotency: {operation_name}",
            extra={
                "idempotency_key": idempotency_key,
                "event_name": operation_name,
                "event_source": source,
            },
        )

        return ProcessingResult(success=True, result=result, was_duplicate=False)

    async def _record_failure(
        self,
        idempotency_key: str,
        operation_name: str,
        source: str,
        error: Exception,
    ):
        """Persist the failure on the record. The caller re-raises the error."""
        error_message = str(error) or type(error).__name__

        try:
            async with self.unit_of_work.transaction() as txn:
                await IdempotencyRepository(txn.session).mark_failed(
                    idempotency_key, error_message
                )
        except Exception as mark_error:
            logger.error(
                f"Failed to record failure for idempotency key {idempotency_key}: {mark_error}",
                extra={"idempotency_key": idempotency_key},
            )

        logger.error(
            f"Event processing failed with idempotency: {operation_name} - {error_message}",
            extra={
                "idempotency_key": idempotency_key,
                "event_name": operation_name,
                "event_source": source,
            },
        )

    async def _handle_existing_key(self, record: EventIdempotencyKey) -> ProcessingResult:
        """Resolve a call that lost the claim to an existing record."""
        key = record.idempotency_key
        status = record.status

        if status == ProcessingStatus.COMPLETED:
            logger.info(
                f"Duplicate event detected, returning cached result: {record.operation_name}",
                extra={"idempotency_key": key},
            )
            return ProcessingResult(
                success=True,
                result=record.processing_result,
                was_duplicate=True,
            )

        if status == ProcessingStatus.FAILED:
            logger.warning(
                f"Duplicate event with previous failure detected: {record.operation_name}",
                extra={"idempotency_key": key, "error_message": record.error_message},
            )
            raise PreviousFailureError(key, record.error_message)

        if status == ProcessingStatus.PROCESSING:
            if self._is_stale(record):
                return await self._abandon(record)

            logger.warning(
                f"Duplicate event currently being processed: {record.operation_name}",
                extra={"idempotency_key": key},
            )
            raise DuplicateInFlightError(key)

        logger.warning(
            f"Duplicate event with unknown status: {record.processing_status}",
            extra={"idempotency_key": key, "status": record.processing_status},
        )
        raise UnknownKeyStateError(key, record.processing_status)

    def _is_stale(self, record: EventIdempotencyKey) -> bool:
        threshold = datetime.utcnow() - timedelta(seconds=self.stale_processing_seconds)
        return record.updated_at <= threshold

    async def _abandon(self, record: EventIdempotencyKey) -> ProcessingResult:
        """Resolve a record whose owner never finished as a failure."""
        key = record.idempotency_key

        async with self.unit_of_work.transaction() as txn:
            repo = IdempotencyRepository(txn.session)
            swapped = await repo.mark_failed(key, ABANDONED_MESSAGE)
            current = None if swapped else await repo.get_active(key)

        if swapped:
            logger.warning(
                f"Abandoned processing detected for {record.operation_name}",
                extra={"idempotency_key": key},
            )
            raise PreviousFailureError(key, ABANDONED_MESSAGE)

        # The owner finished between our read and the swap
        if current is None or current.is_processing():
            raise DuplicateInFlightError(key)

        return await self._handle_existing_key(current)

    async def get_record(self, idempotency_key: str) -> Optional[EventIdempotencyKey]:
        """Get the record for a key, expired or not."""
        async with self.unit_of_work.transaction() as txn:
            return await IdempotencyRepository(txn.session).get_by_id(idempotency_key)

    async def release_failed(self, idempotency_key: str) -> bool:
        """Delete a failed record so the key can be claimed again."""
        async with self.unit_of_work.transaction() as txn:
            released = await IdempotencyRepository(txn.session).delete_failed(
                idempotency_key
            )

        if released:
            logger.debug(
                f"Released failed idempotency key {idempotency_key}",
                extra={"idempotency_key": idempotency_key},
            )

        return released

    async def cleanup_expired(self) -> int:
        """
        Clean up expired idempotency keys.

        Expiry is fixed at creation, so records inside their TTL are never
        touched whatever their status.

        Returns:
            Number of deleted keys
        """
        async with self.unit_of_work.transaction() as txn:
            count = await IdempotencyRepository(txn.session).cleanup_expired()

        if count > 0:
            logger.info(
                f"Cleaned up {count} expired idempotency keys",
                extra={"count": count},
            )

        return count

    async def get_statistics(self) -> IdempotencyStatistics:
        """Get statistics about idempotency keys."""
        async with self.unit_of_work.transaction() as txn:
            stats = await IdempotencyRepository(txn.session).get_statistics()

        return IdempotencyStatistics(**stats)
