"""Errors raised by the idempotency guard and the transactional executor."""

from typing import Optional


class TransactionalEventError(Exception):
    """Base class for errors raised by the transactional event core."""


# Idempotency guard

class IdempotencyError(TransactionalEventError):
    """An idempotency key could not be processed."""

    def __init__(self, message: str, idempotency_key: Optional[str] = None):
        super().__init__(message)
        self.idempotency_key = idempotency_key


class DuplicateInFlightError(IdempotencyError):
    """The key is currently being processed by another caller."""

    def __init__(self, idempotency_key: str):
        super().__init__("Operation is currently being processed", idempotency_key)


class PreviousFailureError(IdempotencyError):
    """The key previously resolved to a failure; carries the stored message."""

    def __init__(self, idempotency_key: str, error_message: Optional[str]):
        super().__init__(f"Previous processing failed: {error_message}", idempotency_key)
        self.error_message = error_message


class UnknownKeyStateError(IdempotencyError):
    """The stored record has a status outside the recognized set."""

    def __init__(self, idempotency_key: str, status: Optional[str]):
        super().__init__(f"Unknown processing status: {status}", idempotency_key)
        self.status = status


# Operation outcomes

class NonRetryableOperationError(TransactionalEventError):
    """Retrying the same operation cannot succeed."""


class OperationValidationError(NonRetryableOperationError):
    """The operation rejected its input."""


class AuthenticationFailedError(NonRetryableOperationError):
    """The caller could not be authenticated."""


class AuthorizationFailedError(NonRetryableOperationError):
    """The caller is not allowed to perform the operation."""


class RetryableOperationError(TransactionalEventError):
    """A transient failure; the operation may succeed when attempted again."""


class OperationTimeoutError(RetryableOperationError):
    """The operation did not finish before its deadline."""

    def __init__(self, operation_name: str, timeout_seconds: float):
        super().__init__(
            f"Operation {operation_name} timed out after {timeout_seconds}s"
        )
        self.operation_name = operation_name
        self.timeout_seconds = timeout_seconds


# Payloads and batches

class PayloadTypeError(ValueError):
    """A payload or result contains a value with no canonical JSON form."""


class BatchOperationError(TransactionalEventError):
    """A batch member failed; the whole batch was rolled back."""

    def __init__(self, operation_name: str, index: int, cause: BaseException):
        super().__init__(
            f"Batch operation {operation_name} (index {index}) failed: {cause}"
        )
        self.operation_name = operation_name
        self.index = index
        self.cause = cause
