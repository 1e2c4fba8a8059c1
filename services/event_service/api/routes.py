"""Idempotency administration API routes."""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse

from wms_shared.config import settings
from wms_shared.idempotency import IdempotencyService
from services.event_service.dependencies import get_idempotency_service
from services.event_service.domain.maintenance import cleanup_idempotency_keys
from services.event_service.api.schemas import (
    CleanupResponse,
    ErrorResponse,
    IdempotencyKeyDetail,
    IdempotencyKeyResponse,
    IdempotencyStatisticsResponse,
    ResponseMeta,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix=settings.api_v1_prefix,
    tags=["idempotency"],
)


def _meta() -> ResponseMeta:
    return ResponseMeta(generated_at=datetime.utcnow())


def error_response(message: str, exc: Exception, status_code: int = 500) -> JSONResponse:
    """Build the error envelope; the exception text is only exposed in development."""
    body = ErrorResponse(
        message=message,
        error=str(exc) if settings.environment == "development" else None,
    )
    return JSONResponse(status_code=status_code, content=body.model_dump())


@router.get(
    "/idempotency/statistics",
    response_model=IdempotencyStatisticsResponse,
    responses={500: {"model": ErrorResponse}},
)
async def get_idempotency_statistics(
    service: IdempotencyService = Depends(get_idempotency_service),
):
    """Get counts of idempotency keys by expiry and status."""
    try:
        statistics = await service.get_statistics()

        return IdempotencyStatisticsResponse(data=statistics, meta=_meta())

    except Exception as e:
        logger.error(f"Failed to retrieve idempotency statistics: {e}")
        return error_response("Failed to retrieve idempotency statistics", e)


@router.get(
    "/idempotency/keys/{idempotency_key}",
    response_model=IdempotencyKeyResponse,
    responses={404: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def get_idempotency_key(
    idempotency_key: str,
    service: IdempotencyService = Depends(get_idempotency_service),
):
    """Get a single idempotency record."""
    try:
        record = await service.get_record(idempotency_key)

    except Exception as e:
        logger.error(f"Failed to retrieve idempotency key {idempotency_key}: {e}")
        return error_response("Failed to retrieve idempotency key", e)

    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Idempotency key not found: {idempotency_key}",
        )

    detail = IdempotencyKeyDetail(
        idempotency_key=record.idempotency_key,
        operation_name=record.operation_name,
        event_source=record.event_source,
        payload=record.payload,
        processing_status=record.processing_status,
        processing_result=record.processing_result,
        error_message=record.error_message,
        processed_at=record.processed_at,
        created_at=record.created_at,
        expires_at=record.expires_at,
        is_expired=record.is_expired(),
    )

    return IdempotencyKeyResponse(data=detail, meta=_meta())


@router.post(
    "/idempotency/cleanup",
    response_model=CleanupResponse,
    responses={500: {"model": ErrorResponse}},
)
async def cleanup_expired_keys(
    dry_run: bool = Query(False, description="Report without deleting"),
    service: IdempotencyService = Depends(get_idempotency_service),
):
    """Delete expired idempotency keys."""
    try:
        result = await cleanup_idempotency_keys(service, dry_run=dry_run)

        return CleanupResponse(data=result, meta=_meta())

    except Exception as e:
        logger.error(f"Idempotency keys cleanup failed: {e}")
        return error_response("Idempotency keys cleanup failed", e)
