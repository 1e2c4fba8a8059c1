"""Celery tasks for idempotency key maintenance."""

import asyncio
import logging

from wms_shared.celery_app import celery_app
from services.event_service.domain.maintenance import run_standalone_cleanup

logger = logging.getLogger(__name__)


@celery_app.task(name="event_service.cleanup_expired_idempotency_keys")
def cleanup_expired_idempotency_keys(dry_run: bool = False) -> dict:
    """
    Delete expired idempotency keys. Scheduled daily by celery beat.

    Returns:
        Dict with the cleanup result
    """
    logger.info("Starting idempotency keys cleanup")

    try:
        result = asyncio.run(run_standalone_cleanup(dry_run=dry_run))
    except Exception as e:
        logger.error(f"Idempotency keys cleanup failed: {e}")
        raise

    return result.model_dump(mode="json")
