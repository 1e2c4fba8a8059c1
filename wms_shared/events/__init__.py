from .schemas import (
    BaseEvent,
    InventoryChangedEvent,
    InventoryAllocatedEvent,
    GoodsReceivedEvent,
    TaskCompletedEvent,
    NotificationEvent,
)

__all__ = [
    "BaseEvent",
    "InventoryChangedEvent",
    "InventoryAllocatedEvent",
    "GoodsReceivedEvent",
    "TaskCompletedEvent",
    "NotificationEvent",
]
