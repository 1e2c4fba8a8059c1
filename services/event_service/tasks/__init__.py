from .maintenance_tasks import cleanup_expired_idempotency_keys

__all__ = [
    "cleanup_expired_idempotency_keys",
]
