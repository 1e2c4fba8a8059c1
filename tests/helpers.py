"""Shared test doubles and database helpers."""

import asyncio
from datetime import datetime, timedelta
from sqlalchemy import text

from wms_shared.models.idempotency import EventIdempotencyKey


async def count_shipments(session_factory) -> int:
    async with session_factory() as session:
        result = await session.execute(text("SELECT COUNT(*) FROM shipments"))
        return result.scalar_one()


async def insert_record(session_factory, key: str, status: str, **overrides):
    """Insert an idempotency record directly, bypassing the guard."""
    now = datetime.utcnow()
    values = {
        "idempotency_key": key,
        "operation_name": "create_shipment",
        "event_source": "test",
        "payload": {"order_id": 1},
        "processing_status": status,
        "created_at": now,
        "updated_at": now,
        "expires_at": now + timedelta(hours=24),
    }
    values.update(overrides)

    async with session_factory() as session:
        session.add(EventIdempotencyKey(**values))
        await session.commit()


class Counter:
    """Operation double that records its invocations."""

    def __init__(self, result=None, error=None, delay=0.0):
        self.calls = 0
        self.result = result
        self.error = error
        self.delay = delay

    async def __call__(self, payload, session):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result
