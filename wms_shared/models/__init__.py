from .idempotency import EventIdempotencyKey, ProcessingStatus

__all__ = [
    "EventIdempotencyKey",
    "ProcessingStatus",
]
