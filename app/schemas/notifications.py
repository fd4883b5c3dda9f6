"""Pydantic schemas for notifications."""
from typing import List, Optional

from pydantic import BaseModel

from app.schemas.base import BaseResponseSchema, UTCDateTime


class NotificationResponse(BaseResponseSchema):
    """Response schema for Notification."""
    id: str
    user_id: str
    notification_type: str
    severity: str
    title: str
    message: str
    bid_id: Optional[str] = None
    is_read: bool = False
    read_at: Optional[UTCDateTime] = None
    created_at: UTCDateTime


class NotificationListResponse(BaseModel):
    """Response for listing notifications."""
    items: List[NotificationResponse]
    total: int
    unread_count: int


class NotificationMarkRead(BaseModel):
    """Schema for marking notifications as read."""
    notification_ids: List[str]
