"""Event schemas for warehouse domain events."""

from pydantic import BaseModel, Field, ConfigDict
from datetime import datetime
from uuid import uuid4
from typing import Any, Optional


class BaseEvent(BaseModel):
    """Base event schema with common fields."""

    model_config = ConfigDict(extra="allow")

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    event_type: str
    source: str = "wms-api"
    timestamp: datetime = Field(default_factory=datetime.utcnow)

    def get_payload(self) -> dict:
        """Event fields without the envelope metadata."""
        return self.model_dump(
            mode="json",
            exclude={"event_id", "event_type", "source", "timestamp"},
        )


class InventoryChangedEvent(BaseEvent):
    """Event emitted when an inventory quantity changes."""

    event_type: str = Field(default="INVENTORY_CHANGED")
    inventory_id: int
    product_id: int
    warehouse_id: Optional[int] = None
    change_type: str
    previous_quantity: int
    new_quantity: int


class InventoryAllocatedEvent(BaseEvent):
    """Event emitted when inventory is allocated to an order."""

    event_type: str = Field(default="INVENTORY_ALLOCATED")
    inventory_id: int
    product_id: int
    order_id: int
    allocated_quantity: int


class GoodsReceivedEvent(BaseEvent):
    """Event emitted when a goods received note is posted."""

    event_type: str = Field(default="GOODS_RECEIVED")
    grn_id: int
    purchase_order_id: Optional[int] = None
    warehouse_id: Optional[int] = None


class TaskCompletedEvent(BaseEvent):
    """Event emitted when a warehouse task is completed."""

    event_type: str = Field(default="TASK_COMPLETED")
    task_id: int
    task_type: str
    completed_by: Optional[int] = None


class NotificationEvent(BaseEvent):
    """Event carrying a user-facing notification."""

    event_type: str = Field(default="NOTIFICATION")
    notification_type: str
    message: str
    data: dict[str, Any] = Field(default_factory=dict)
    recipients: list[int] = Field(default_factory=list)
