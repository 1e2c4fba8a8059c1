"""Request/response schemas for the Event Service API."""

from pydantic import BaseModel
from datetime import datetime
from typing import Any, Optional

from wms_shared.schemas import CleanupResult, IdempotencyStatistics


class ResponseMeta(BaseModel):
    """Metadata attached to every successful response."""

    generated_at: datetime


class IdempotencyStatisticsResponse(BaseModel):
    """Response for idempotency statistics."""

    success: bool = True
    data: IdempotencyStatistics
    meta: ResponseMeta


class IdempotencyKeyDetail(BaseModel):
    """A single idempotency record."""

    idempotency_key: str
    operation_name: str
    event_source: str
    payload: Any = None
    processing_status: str
    processing_result: Any = None
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None
    created_at: datetime
    expires_at: datetime
    is_expired: bool


class IdempotencyKeyResponse(BaseModel):
    """Response for a single idempotency record."""

    success: bool = True
    data: IdempotencyKeyDetail
    meta: ResponseMeta


class CleanupResponse(BaseModel):
    """Response for an expired-key cleanup."""

    success: bool = True
    data: CleanupResult
    meta: ResponseMeta


class ErrorResponse(BaseModel):
    """Error envelope."""

    success: bool = False
    message: str
    error: Optional[str] = None
