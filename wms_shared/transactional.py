"""Transactional executor with idempotency protection and bounded retries."""

import asyncio
import inspect
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence, Union
from uuid import uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from wms_shared.database.unit_of_work import UnitOfWork
from wms_shared.exceptions import (
    BatchOperationError,
    IdempotencyError,
    OperationTimeoutError,
)
from wms_shared.idempotency import IdempotencyService, Operation
from wms_shared.payload import to_json_value
from wms_shared.retry_manager import RetryConfig, RetryScheduler
from wms_shared.schemas import BatchItemResult, ProcessingResult, TransactionOptions

logger = logging.getLogger(__name__)

TRANSACTIONAL_SOURCE = "transactional_service"

# Option profiles for the operation categories
INVENTORY_OPERATION_OPTIONS = TransactionOptions(
    max_retries=5,
    retry_delay_ms=2000,
    timeout_seconds=60,
    idempotency_ttl_hours=48,
)

ORDER_OPERATION_OPTIONS = TransactionOptions(
    max_retries=3,
    retry_delay_ms=1500,
    timeout_seconds=45,
    idempotency_ttl_hours=24,
)

WAREHOUSE_OPERATION_OPTIONS = TransactionOptions(
    max_retries=3,
    retry_delay_ms=1000,
    timeout_seconds=30,
    idempotency_ttl_hours=12,
)

# Financial operations are never retried automatically
FINANCIAL_OPERATION_OPTIONS = TransactionOptions(
    max_retries=1,
    retry_delay_ms=0,
    timeout_seconds=30,
    idempotency_ttl_hours=72,
)


def _new_transaction_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex[:13]}"


@dataclass
class TransactionContext:
    """Correlation and timing data for one top-level executor call."""

    operation_name: str
    max_retries: int
    transaction_id: str = field(default_factory=lambda: _new_transaction_id("txn"))
    attempt: int = 0
    started_at: float = field(default_factory=time.monotonic)

    def elapsed_ms(self) -> float:
        return round((time.monotonic() - self.started_at) * 1000, 2)

    def log_extra(self) -> dict:
        return {
            "operation_name": self.operation_name,
            "transaction_id": self.transaction_id,
        }


@dataclass
class BatchOperation:
    """One named member of a batch."""

    callback: Operation
    payload: Any = None
    name: Optional[str] = None


OptionsArg = Union[TransactionOptions, Mapping, None]


class TransactionalEventService:
    """Runs operations inside storage transactions, guarded by idempotency keys."""

    def __init__(
        self,
        idempotency_service: IdempotencyService,
        unit_of_work: Optional[UnitOfWork] = None,
    ):
        self.idempotency_service = idempotency_service
        self.unit_of_work = unit_of_work or idempotency_service.unit_of_work

    def resolve_options(self, options: OptionsArg = None) -> TransactionOptions:
        """Build options from caller fields; unset fields use the configured defaults."""
        if isinstance(options, TransactionOptions):
            return options

        return TransactionOptions(**dict(options or {}))

    async def execute_with_transaction(
        self,
        operation_name: str,
        payload: Any,
        operation: Operation,
        idempotency_key: Optional[str] = None,
        options: OptionsArg = None,
    ) -> ProcessingResult:
        """
        Execute an operation with a database transaction and idempotency protection.

        Args:
            operation_name: Name used for the derived key and in logs
            payload: Operation input
            operation: Callable invoked as operation(payload, session)
            idempotency_key: Explicit key; derived from the payload when omitted
            options: TransactionOptions or a dict of option fields

        Returns:
            ProcessingResult of the successful attempt or of the cached duplicate

        Raises:
            Exception: The first non-retryable error, or the last error after
                all attempts
        """
        options = self.resolve_options(options)
        context = TransactionContext(operation_name, options.max_retries)

        # Derived once per call so every attempt shares the same key
        if options.use_idempotency and not idempotency_key:
            idempotency_key = self.idempotency_service.generate_key(
                operation_name, payload, TRANSACTIONAL_SOURCE
            )

        logger.info(
            f"Starting transactional operation {operation_name}",
            extra={
                **context.log_extra(),
                "idempotency_key": idempotency_key,
                "options": options.model_dump(),
            },
        )

        async def attempt_once() -> ProcessingResult:
            context.attempt += 1
            if options.use_idempotency:
                return await self._execute_with_idempotency(
                    payload, operation, idempotency_key, options, context
                )
            return await self._execute_without_idempotency(
                payload, operation, options, context
            )

        async def before_retry(error: Exception, attempt: int):
            # Only the operation's own failure is ours to release; a guard
            # error means another caller owns the key
            if options.use_idempotency and not isinstance(error, IdempotencyError):
                await self.idempotency_service.release_failed(idempotency_key)

        scheduler = RetryScheduler(
            RetryConfig(
                max_attempts=options.max_retries,
                retry_delay_ms=options.retry_delay_ms,
            )
        )

        return await scheduler.retry(
            attempt_once,
            name=f"Transactional operation {operation_name}",
            on_retry=before_retry,
            log_extra=context.log_extra(),
        )

    async def _execute_with_idempotency(
        self,
        payload: Any,
        operation: Operation,
        idempotency_key: str,
        options: TransactionOptions,
        context: TransactionContext,
    ) -> ProcessingResult:
        return await self.idempotency_service.process_with_idempotency(
            idempotency_key,
            context.operation_name,
            TRANSACTIONAL_SOURCE,
            payload,
            lambda p, session: self._execute_in_transaction(
                operation, p, session, options, context
            ),
            options.idempotency_ttl_hours,
        )

    async def _execute_without_idempotency(
        self,
        payload: Any,
        operation: Operation,
        options: TransactionOptions,
        context: TransactionContext,
    ) -> ProcessingResult:
        async with self.unit_of_work.transaction() as txn:
            result = await self._execute_in_transaction(
                operation, payload, txn.session, options, context
            )
            result = to_json_value(result)

        return ProcessingResult(success=True, result=result, was_duplicate=False)

    async def _execute_in_transaction(
        self,
        operation: Operation,
        payload: Any,
        session: AsyncSession,
        options: TransactionOptions,
        context: TransactionContext,
    ) -> Any:
        """Run the operation against the session of the current transaction."""
        logger.debug(
            f"Executing {context.operation_name} within transaction",
            extra={**context.log_extra(), "attempt": context.attempt},
        )

        result = await self._call_with_deadline(
            operation, payload, session, context.operation_name, options.timeout_seconds
        )

        logger.info(
            f"Transactional operation completed successfully: {context.operation_name}",
            extra={**context.log_extra(), "execution_time_ms": context.elapsed_ms()},
        )

        return result

    @staticmethod
    async def _call_with_deadline(
        operation: Operation,
        payload: Any,
        session: AsyncSession,
        operation_name: str,
        timeout_seconds: Optional[float],
    ) -> Any:
        """
        Invoke an operation, enforcing the deadline on awaitable results.

        Sync callables run to completion; they cannot be interrupted.
        """
        result = operation(payload, session)

        if not inspect.isawaitable(result):
            return result

        if timeout_seconds is None:
            return await result

        try:
            return await asyncio.wait_for(result, timeout=timeout_seconds)
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(operation_name, timeout_seconds) from e

    async def execute_batch(
        self,
        operations: Sequence[Union[BatchOperation, Mapping]],
        timeout_seconds: Optional[float] = None,
    ) -> Dict[str, BatchItemResult]:
        """
        Execute multiple operations in a single transaction.

        All or nothing: the first failing operation rolls back the whole
        batch and BatchOperationError is raised; no partial results are
        returned. Batches are not retried and not idempotency-guarded.

        Args:
            operations: BatchOperation items, or dicts with callback,
                payload and name
            timeout_seconds: Deadline applied to each awaitable callback

        Returns:
            Results keyed by operation name, in input order

        Raises:
            ValueError: If an operation has no callback or names repeat
            BatchOperationError: If an operation failed
        """
        batch = self._normalize_batch(operations)
        context = TransactionContext(
            "batch",
            max_retries=1,
            transaction_id=_new_transaction_id("batch_txn"),
        )

        logger.info(
            "Starting batch transactional operations",
            extra={**context.log_extra(), "operation_count": len(batch)},
        )

        results: Dict[str, BatchItemResult] = {}

        async with self.unit_of_work.transaction() as txn:
            for index, item in enumerate(batch):
                logger.debug(
                    f"Executing batch operation {item.name}",
                    extra={**context.log_extra(), "operation_index": index},
                )

                try:
                    result = await self._call_with_deadline(
                        item.callback, item.payload, txn.session, item.name, timeout_seconds
                    )
                    results[item.name] = BatchItemResult(
                        success=True,
                        result=to_json_value(result),
                    )

                except Exception as e:
                    logger.error(
                        f"Batch operation {item.name} failed: {e}",
                        extra={**context.log_extra(), "operation_index": index},
                    )
                    raise BatchOperationError(item.name, index, e) from e

        logger.info(
            "Batch transactional operations completed successfully",
            extra={
                **context.log_extra(),
                "operation_count": len(batch),
                "execution_time_ms": context.elapsed_ms(),
            },
        )

        return results

    @staticmethod
    def _normalize_batch(
        operations: Sequence[Union[BatchOperation, Mapping]],
    ) -> list[BatchOperation]:
        batch = []
        seen = set()

        for index, operation in enumerate(operations):
            if isinstance(operation, Mapping):
                if "callback" not in operation:
                    raise ValueError(f"Batch operation {index} has no callback")
                operation = BatchOperation(
                    callback=operation["callback"],
                    payload=operation.get("payload"),
                    name=operation.get("name"),
                )

            name = operation.name or f"operation_{index}"
            if name in seen:
                raise ValueError(f"Duplicate batch operation name: {name}")
            seen.add(name)

            batch.append(BatchOperation(operation.callback, operation.payload, name))

        return batch

    async def execute_inventory_operation(
        self,
        operation_name: str,
        payload: Any,
        operation: Operation,
        idempotency_key: Optional[str] = None,
    ) -> ProcessingResult:
        """Execute an inventory operation with transaction protection."""
        return await self.execute_with_transaction(
            f"inventory.{operation_name}",
            payload,
            operation,
            idempotency_key,
            INVENTORY_OPERATION_OPTIONS,
        )

    async def execute_order_operation(
        self,
        operation_name: str,
        payload: Any,
        operation: Operation,
        idempotency_key: Optional[str] = None,
    ) -> ProcessingResult:
        """Execute an order operation with transaction protection."""
        return await self.execute_with_transaction(
            f"order.{operation_name}",
            payload,
            operation,
            idempotency_key,
            ORDER_OPERATION_OPTIONS,
        )

    async def execute_warehouse_operation(
        self,
        operation_name: str,
        payload: Any,
        operation: Operation,
        idempotency_key: Optional[str] = None,
    ) -> ProcessingResult:
        """Execute a warehouse operation with transaction protection."""
        return await self.execute_with_transaction(
            f"warehouse.{operation_name}",
            payload,
            operation,
            idempotency_key,
            WAREHOUSE_OPERATION_OPTIONS,
        )

    async def execute_financial_operation(
        self,
        operation_name: str,
        payload: Any,
        operation: Operation,
        idempotency_key: Optional[str] = None,
    ) -> ProcessingResult:
        """Execute a financial operation; a single attempt with long-lived keys."""
        return await self.execute_with_transaction(
            f"financial.{operation_name}",
            payload,
            operation,
            idempotency_key,
            FINANCIAL_OPERATION_OPTIONS,
        )
