"""Database models for in-app notifications."""
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import String, Text, DateTime, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import IdType, new_id


class NotificationType(str, Enum):
    """What happened in the auction."""
    NEW_BID_OPPORTUNITY = "NEW_BID_OPPORTUNITY"
    OFFER_PLACED = "OFFER_PLACED"
    OUTBID = "OUTBID"
    COUNTER_RECEIVED = "COUNTER_RECEIVED"
    COUNTER_ACCEPTED = "COUNTER_ACCEPTED"
    COUNTER_REJECTED = "COUNTER_REJECTED"
    BID_FINALIZED = "BID_FINALIZED"
    VEHICLE_ASSIGNED = "VEHICLE_ASSIGNED"
    BID_CLOSED = "BID_CLOSED"


class NotificationSeverity(str, Enum):
    """Display category of a notification."""
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ALERT = "alert"


class Notification(Base):
    """
    Notification addressed to one user id.
    Side channel only: auction state never depends on these rows.
    """
    __tablename__ = "notifications"

    id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)

    # Recipient (opaque id from the identity provider)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    notification_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    severity: Mapped[str] = mapped_column(String(20), default="info", nullable=False)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Reference to the related shipment bid
    bid_id: Mapped[Optional[str]] = mapped_column(IdType, nullable=True)

    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    __table_args__ = (
        Index('ix_notifications_user_unread', 'user_id', 'is_read'),
        Index('ix_notifications_created', 'created_at'),
    )

    def __repr__(self) -> str:
        return f"<Notification(user='{self.user_id}', type='{self.notification_type}')>"
