from sqlalchemy import (
    Column, String, Text, DateTime, Index, JSON
)
from datetime import datetime
from typing import Optional
import enum

from wms_shared.database.base import Base


class ProcessingStatus(str, enum.Enum):
    """Lifecycle of an idempotency key."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class EventIdempotencyKey(Base):
    """Idempotency record guarding one logical operation attempt."""

    __tablename__ = "event_idempotency_keys"

    # Primary Key (the idempotency key itself, serializes concurrent claims)
    idempotency_key = Column(
        String(255),
        primary_key=True,
    )

    # Operation
    operation_name = Column(
        String(150),
        nullable=False,
        index=True,
    )

    event_source = Column(
        String(100),
        nullable=False,
    )

    payload = Column(
        JSON,
        nullable=True,
    )

    # Plain string so an unrecognized value can still be loaded and reported
    processing_status = Column(
        String(20),
        nullable=False,
        default=ProcessingStatus.PENDING.value,
        index=True,
    )

    processing_result = Column(
        JSON,
        nullable=True,
    )

    error_message = Column(
        Text,
        nullable=True,
    )

    processed_at = Column(
        DateTime,
        nullable=True,
    )

    # Expiration (for cleanup)
    expires_at = Column(
        DateTime,
        nullable=False,
        index=True,
    )

    # Timestamps
    created_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
    )

    updated_at = Column(
        DateTime,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
    )

    # Indexes
    __table_args__ = (
        Index("idx_operation_created", "operation_name", "created_at"),
        Index("idx_status_expires", "processing_status", "expires_at"),
    )

    @property
    def status(self) -> Optional[ProcessingStatus]:
        """Parsed status, or None when the stored value is not recognized."""
        try:
            return ProcessingStatus(self.processing_status)
        except ValueError:
            return None

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return self.expires_at <= (now or datetime.utcnow())

    def is_processing(self) -> bool:
        return self.processing_status == ProcessingStatus.PROCESSING.value

    def is_completed(self) -> bool:
        return self.processing_status == ProcessingStatus.COMPLETED.value

    def is_failed(self) -> bool:
        return self.processing_status == ProcessingStatus.FAILED.value

    def __repr__(self):
        return (
            f"<EventIdempotencyKey(key={self.idempotency_key}, "
            f"operation={self.operation_name}, status={self.processing_status})>"
        )
