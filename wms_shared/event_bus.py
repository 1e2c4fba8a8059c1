"""Event bus: local dispatch, Redis pub/sub re-dispatch and idempotent consumption."""

import json
import logging
from typing import Callable, Dict, List, Optional
from datetime import datetime
from uuid import uuid4
import inspect
import redis.asyncio as redis

from wms_shared.events.schemas import BaseEvent
from wms_shared.exceptions import DuplicateInFlightError, PreviousFailureError
from wms_shared.idempotency import IdempotencyService

logger = logging.getLogger(__name__)

# Event topics
WAREHOUSE_EVENTS_TOPIC = "warehouse:events"
NOTIFICATION_EVENTS_TOPIC = "notification:events"
DLQ_TOPIC = "events:dlq"

CONSUMER_SOURCE = "event_consumer"


class EventPublisher:
    """Publishes events to Redis pub/sub."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def publish(
        self,
        event: BaseEvent,
        topic: str = WAREHOUSE_EVENTS_TOPIC,
    ) -> bool:
        """
        Publish an event to a topic.

        Returns:
            True if at least one subscriber received the event
        """
        try:
            num_subscribers = await self.redis.publish(topic, event.model_dump_json())

            logger.info(
                f"Published {event.event_type} to {topic}. "
                f"Subscribers: {num_subscribers}",
                extra={"event_id": event.event_id},
            )

            return num_subscribers > 0

        except Exception as e:
            logger.error(f"Failed to publish event {event.event_type}: {e}")
            raise


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", repr(handler))


class EventConsumer:
    """
    Consumes events from Redis pub/sub.

    Each handler runs through the idempotency guard, keyed by the event and
    the handler, so a redelivered event is handled at most once per handler.
    Handlers are invoked as handler(event_data, session).
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        idempotency_service: IdempotencyService,
        ttl_hours: Optional[int] = None,
    ):
        self.redis = redis_client
        self.idempotency_service = idempotency_service
        self.ttl_hours = ttl_hours
        self.pubsub = redis_client.pubsub()
        self.handlers: Dict[str, List[Callable]] = {}
        self._running = False

    def register_handler(
        self,
        event_type: str,
        handler: Callable,
    ):
        """
        Register a handler for a specific event type.

        Args:
            event_type: Type of event to handle (e.g., "INVENTORY_CHANGED")
            handler: Sync or async callable taking (event_data, session)
        """
        self.handlers.setdefault(event_type, []).append(handler)

        logger.info(f"Registered handler {_handler_name(handler)} for {event_type}")

    async def subscribe(self, *topics: str):
        """Subscribe to one or more topics."""
        if not topics:
            topics = (WAREHOUSE_EVENTS_TOPIC, NOTIFICATION_EVENTS_TOPIC)

        await self.pubsub.subscribe(*topics)
        logger.info(f"Subscribed to topics: {topics}")

    async def start(self):
        """Start consuming events."""
        self._running = True
        logger.info("Event consumer started")

        try:
            async for message in self.pubsub.listen():
                if not self._running:
                    break

                if message["type"] == "message":
                    await self.handle_message(message)

        except Exception as e:
            logger.error(f"Error in event consumer: {e}")
            raise

        finally:
            await self.stop()

    async def handle_message(self, message: dict):
        """Handle a received pub/sub message."""
        try:
            event_data = json.loads(message["data"])
        except (json.JSONDecodeError, TypeError) as e:
            logger.error(f"Failed to parse event JSON: {e}")
            return

        event_type = event_data.get("event_type")
        handlers = self.handlers.get(event_type, [])

        logger.debug(f"Received event {event_type} (id={event_data.get('event_id')})")

        if not handlers:
            logger.warning(f"No handlers registered for {event_type}")
            return

        for handler in handlers:
            await self._run_handler(handler, event_type, event_data)

    async def _run_handler(self, handler: Callable, event_type: str, event_data: dict):
        name = _handler_name(handler)
        operation_name = f"{event_type}:{name}"
        key = self.idempotency_service.generate_key(
            operation_name,
            event_data,
            event_data.get("source"),
        )

        try:
            outcome = await self.idempotency_service.process_with_idempotency(
                key,
                operation_name,
                CONSUMER_SOURCE,
                event_data,
                handler,
                self.ttl_hours,
            )

            if outcome.was_duplicate:
                logger.info(
                    f"Skipped duplicate delivery of {event_type} for {name}",
                    extra={"event_id": event_data.get("event_id")},
                )
            else:
                logger.debug(f"Handler {name} executed for {event_type}")

        except DuplicateInFlightError:
            logger.info(
                f"{event_type} is already being handled by {name} elsewhere",
                extra={"event_id": event_data.get("event_id")},
            )

        except PreviousFailureError as e:
            # The first failure already went to the DLQ
            logger.warning(
                f"Skipped redelivery of failed {event_type} for {name}: {e}",
                extra={"event_id": event_data.get("event_id")},
            )

        except Exception as e:
            logger.error(f"Handler {name} failed for {event_type}: {e}")
            await self._send_to_dlq(event_data, str(e), name)

    async def _send_to_dlq(self, event_data: dict, error: str, handler_name: str):
        """Send failed event to dead letter queue."""
        try:
            dlq_entry = {
                "original_event": event_data,
                "handler": handler_name,
                "error": error,
                "failed_at": datetime.utcnow().isoformat(),
                "dlq_id": str(uuid4()),
            }

            await self.redis.lpush(
                DLQ_TOPIC,
                json.dumps(dlq_entry),
            )

            logger.info(
                f"Event sent to DLQ: {dlq_entry['dlq_id']}"
            )

        except Exception as e:
            logger.error(f"Failed to send event to DLQ: {e}")

    async def stop(self):
        """Stop the event consumer."""
        self._running = False
        await self.pubsub.unsubscribe()
        logger.info("Event consumer stopped")


class DeadLetterQueue:
    """Manages dead letter queue for failed events."""

    def __init__(self, redis_client: redis.Redis):
        self.redis = redis_client

    async def get_dlq_entries(self, limit: int = 100) -> List[dict]:
        """Get entries from DLQ."""
        try:
            entries = await self.redis.lrange(DLQ_TOPIC, 0, limit - 1)
            return [json.loads(entry) for entry in entries]
        except Exception as e:
            logger.error(f"Failed to get DLQ entries: {e}")
            return []

    async def acknowledge(self, dlq_id: str) -> bool:
        """Remove entry from DLQ (acknowledge processing)."""
        try:
            entries = await self.redis.lrange(DLQ_TOPIC, 0, -1)

            for entry in entries:
                if json.loads(entry).get("dlq_id") == dlq_id:
                    await self.redis.lrem(DLQ_TOPIC, 1, entry)
                    logger.info(f"Acknowledged DLQ entry: {dlq_id}")
                    return True

            logger.warning(f"DLQ entry not found: {dlq_id}")
            return False

        except Exception as e:
            logger.error(f"Failed to acknowledge DLQ entry: {e}")
            return False

    async def get_dlq_count(self) -> int:
        """Get number of entries in DLQ."""
        try:
            return await self.redis.llen(DLQ_TOPIC)
        except Exception as e:
            logger.error(f"Failed to get DLQ count: {e}")
            return 0

    async def clear_dlq(self) -> bool:
        """Clear all entries from DLQ."""
        try:
            await self.redis.delete(DLQ_TOPIC)
            logger.info("DLQ cleared")
            return True
        except Exception as e:
            logger.error(f"Failed to clear DLQ: {e}")
            return False


class EventDispatcher:
    """
    Dispatches events to local listeners, then re-dispatches them to the queue.

    Dispatch failures are logged and reported through the return value; they
    never propagate into the request that emitted the event.
    """

    def __init__(
        self,
        publisher: Optional[EventPublisher] = None,
        topic: str = WAREHOUSE_EVENTS_TOPIC,
    ):
        self.publisher = publisher
        self.topic = topic
        self.listeners: Dict[str, List[Callable]] = {}

    def listen(self, event_type: str, listener: Callable):
        """Register a local listener called synchronously on dispatch."""
        self.listeners.setdefault(event_type, []).append(listener)

    async def dispatch(self, event: BaseEvent, queue: bool = True) -> bool:
        """
        Dispatch an event.

        Args:
            event: Event to dispatch
            queue: Also publish the event for asynchronous consumers

        Returns:
            True if every listener ran and the event was queued when requested
        """
        try:
            for listener in self.listeners.get(event.event_type, []):
                result = listener(event)
                if inspect.isawaitable(result):
                    await result

            queued = False
            if queue and self.publisher is not None:
                await self.publisher.publish(event, self.topic)
                queued = True

            logger.info(
                f"Event dispatched: {event.event_type}",
                extra={
                    "event_id": event.event_id,
                    "payload": event.get_payload(),
                    "queued": queued,
                },
            )

            return True

        except Exception as e:
            logger.error(
                f"Failed to dispatch event {event.event_type}: {e}",
                extra={"event_id": event.event_id},
            )
            return False
