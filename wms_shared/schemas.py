"""Result and option schemas shared by the idempotency guard and the executor."""

from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional

from wms_shared.config import settings


class ProcessingResult(BaseModel):
    """Outcome of an idempotent or transactional operation."""

    success: bool
    result: Any = None
    was_duplicate: bool = False


class BatchItemResult(BaseModel):
    """Outcome of one member of a committed batch."""

    success: bool
    result: Any = None


class IdempotencyStatistics(BaseModel):
    """Counts of idempotency records by expiry and status."""

    total_keys: int
    active_keys: int
    expired_keys: int
    completed_keys: int
    failed_keys: int
    processing_keys: int
    pending_keys: int = 0


class CleanupResult(BaseModel):
    """Outcome of an expired-key cleanup."""

    dry_run: bool
    deleted_count: int
    before: IdempotencyStatistics
    after: IdempotencyStatistics


class TransactionOptions(BaseModel):
    """Options recognized by the transactional executor."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    # Unset fields fall back to the configured executor defaults
    max_retries: int = Field(
        default_factory=lambda: settings.transaction_max_retries, ge=1
    )
    retry_delay_ms: int = Field(
        default_factory=lambda: settings.transaction_retry_delay_ms, ge=0
    )
    use_idempotency: bool = True
    idempotency_ttl_hours: int = Field(
        default_factory=lambda: settings.idempotency_ttl_hours, ge=0
    )
    # Deadline for awaitable operations; None disables it
    timeout_seconds: Optional[float] = Field(default=None, gt=0)
