"""API endpoints for auction notifications."""
from typing import Optional

from fastapi import APIRouter, Query

from app.api.deps import DB, AuthUser, CurrentUser
from app.config import settings
from app.schemas.notifications import (
    NotificationResponse,
    NotificationListResponse,
    NotificationMarkRead,
)
from app.services.notification_service import NotificationService

router = APIRouter()


def inbox_for(user: AuthUser) -> str:
    """Admin notifications share one inbox; vendors get their own."""
    return settings.ADMIN_USER_ID if user.is_admin else user.id


@router.get("/my", response_model=NotificationListResponse)
async def get_my_notifications(
    db: DB,
    current_user: CurrentUser,
    unread_only: bool = Query(False),
    limit: Optional[int] = Query(None, ge=1, le=200),
):
    """Get current user's notifications, newest first."""
    service = NotificationService(db)
    inbox = inbox_for(current_user)
    notifications = await service.list_for_user(
        inbox,
        unread_only=unread_only,
        limit=limit or settings.NOTIFICATION_PAGE_SIZE or 50,
    )
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in notifications],
        total=await service.count_for_user(inbox),
        unread_count=await service.unread_count(inbox),
    )


@router.get("/my/unread-count")
async def get_unread_count(db: DB, current_user: CurrentUser):
    """Get count of unread notifications for current user."""
    count = await NotificationService(db).unread_count(inbox_for(current_user))
    return {"unread_count": count}


@router.put("/my/read")
async def mark_notifications_read(data: NotificationMarkRead, db: DB, current_user: CurrentUser):
    """Mark specific notifications as read."""
    marked = await NotificationService(db).mark_read(inbox_for(current_user), data.notification_ids)
    return {"marked_read": marked}


@router.put("/my/read-all")
async def mark_all_read(db: DB, current_user: CurrentUser):
    """Mark all notifications as read for current user."""
    marked = await NotificationService(db).mark_read(inbox_for(current_user))
    return {"marked_read": marked}
