from .base import BaseRepository
from .idempotency import IdempotencyRepository

__all__ = [
    "BaseRepository",
    "IdempotencyRepository",
]
