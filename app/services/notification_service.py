"""
Auction Notification Service

Turns auction events into in-app notifications:
- new shipment         -> every eligible vendor
- new offer            -> admin (and the vendor it displaced from L1)
- counter offer        -> targeted vendor
- accept / reject      -> admin
- finalized            -> admin and winning vendor
- vehicle assigned     -> admin
- closed by admin      -> vendor that was negotiating, if any

Notifications are written in their own session after the auction change has
been committed. A failed write is logged and dropped; it never reaches the
caller of the auction operation.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import async_session_factory
from app.models.notifications import Notification, NotificationSeverity, NotificationType
from app.services.auction_engine import AuctionEvent
from app.services.realtime import NOTIFICATIONS, RealtimeBroker, broker as default_broker


logger = logging.getLogger(__name__)

ADMIN = "admin"
VENDOR = "vendor"

# type -> (title, message template, severity, audiences)
TEMPLATES: Dict[NotificationType, Tuple[str, str, NotificationSeverity, Tuple[str, ...]]] = {
    NotificationType.NEW_BID_OPPORTUNITY: (
        "New Bid Opportunity",
        "New shipment available for lane {lane}",
        NotificationSeverity.WARNING,
        (VENDOR,),
    ),
    NotificationType.OFFER_PLACED: (
        "New Bid Submitted",
        "{vendor_name} submitted a bid of Rs.{amount} for {lane}",
        NotificationSeverity.INFO,
        (ADMIN,),
    ),
    NotificationType.OUTBID: (
        "You Have Been Outbid",
        "A lower offer of Rs.{amount} is now L1 for {lane}",
        NotificationSeverity.WARNING,
        (VENDOR,),
    ),
    NotificationType.COUNTER_RECEIVED: (
        "Counter Offer Received",
        "Admin has countered your bid for {lane} with Rs.{amount}",
        NotificationSeverity.ALERT,
        (VENDOR,),
    ),
    NotificationType.COUNTER_ACCEPTED: (
        "Counter Offer Accepted",
        "{vendor_name} accepted the counter offer of Rs.{amount} for {lane}",
        NotificationSeverity.SUCCESS,
        (ADMIN,),
    ),
    NotificationType.COUNTER_REJECTED: (
        "Counter Offer Rejected",
        "{vendor_name} rejected the counter offer for {lane}. Bidding is open again.",
        NotificationSeverity.WARNING,
        (ADMIN,),
    ),
    NotificationType.BID_FINALIZED: (
        "Bid Finalized",
        "Shipment {lane} is finalized with {vendor_name} at Rs.{amount}",
        NotificationSeverity.SUCCESS,
        (ADMIN, VENDOR),
    ),
    NotificationType.VEHICLE_ASSIGNED: (
        "Vehicle Assigned",
        "{vendor_name} has submitted vehicle details for {lane}",
        NotificationSeverity.SUCCESS,
        (ADMIN,),
    ),
    NotificationType.BID_CLOSED: (
        "Bid Closed",
        "Bidding for {lane} was closed by the shipper",
        NotificationSeverity.INFO,
        (VENDOR,),
    ),
}


def format_amount(amount: Optional[float]) -> str:
    if amount is None:
        return "-"
    if float(amount).is_integer():
        return f"{int(amount):,}"
    return f"{amount:,.2f}"


def build_notifications(
    event: AuctionEvent,
    lane: str,
    vendor_names: Dict[str, str],
    vendor_recipients: Optional[Iterable[str]] = None,
) -> List[Notification]:
    """
    Notification rows for one event.

    `vendor_recipients` overrides the event's vendor (used to fan a new
    shipment out to every eligible vendor).
    """
    template = TEMPLATES.get(event.kind)
    if template is None:
        logger.warning("No notification template for %s", event.kind)
        return []
    title, body, severity, audiences = template

    message = body.format(
        lane=lane,
        amount=format_amount(event.amount),
        vendor_name=vendor_names.get(event.vendor_id or "", event.vendor_id or "A vendor"),
    )

    recipients: List[str] = []
    if ADMIN in audiences:
        recipients.append(settings.ADMIN_USER_ID)
    if VENDOR in audiences:
        if vendor_recipients is not None:
            recipients.extend(vendor_recipients)
        elif event.vendor_id:
            recipients.append(event.vendor_id)

    return [
        Notification(
            user_id=user_id,
            notification_type=event.kind.value,
            severity=severity.value,
            title=title,
            message=message,
            bid_id=event.bid_id,
            is_read=False,
            created_at=datetime.now(timezone.utc),
        )
        for user_id in dict.fromkeys(recipients)
    ]


class NotificationEmitter:
    """Best-effort delivery of auction notifications."""

    def __init__(
        self,
        session_factory: async_sessionmaker = async_session_factory,
        broker: RealtimeBroker = default_broker,
    ):
        self.session_factory = session_factory
        self.broker = broker

    async def emit(
        self,
        events: Iterable[AuctionEvent],
        lane: str,
        vendor_names: Dict[str, str],
        vendor_recipients: Optional[Iterable[str]] = None,
    ) -> int:
        """Store and publish notifications; returns how many were stored (0 on failure)."""
        if not settings.NOTIFICATIONS_ENABLED:
            return 0

        recipients = list(vendor_recipients) if vendor_recipients is not None else None
        notifications: List[Notification] = []
        for event in events:
            notifications.extend(build_notifications(event, lane, vendor_names, recipients))
        if not notifications:
            return 0

        try:
            async with self.session_factory() as session:
                session.add_all(notifications)
                await session.commit()
        except Exception as e:
            logger.warning("Dropped %d notification(s): %s", len(notifications), e, exc_info=True)
            return 0

        for notification in notifications:
            await self.broker.publish(NOTIFICATIONS, {
                "event": notification.notification_type,
                "id": notification.id,
                "user_id": notification.user_id,
                "bid_id": notification.bid_id,
            })

        logger.info("Sent %d notification(s) for %s", len(notifications), lane)
        return len(notifications)


class NotificationService:
    """Reading and acknowledging a user's notifications."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        stmt = (
            select(Notification)
            .where(Notification.user_id == user_id)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        if unread_only:
            stmt = stmt.where(Notification.is_read == False)  # noqa: E712
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def count_for_user(self, user_id: str) -> int:
        stmt = select(func.count(Notification.id)).where(Notification.user_id == user_id)
        return (await self.db.execute(stmt)).scalar() or 0

    async def unread_count(self, user_id: str) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.is_read == False,  # noqa: E712
        )
        return (await self.db.execute(stmt)).scalar() or 0

    async def mark_read(self, user_id: str, notification_ids: Optional[List[str]] = None) -> int:
        """Mark the given (or all) unread notifications of the user as read."""
        stmt = (
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read == False)  # noqa: E712
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        )
        if notification_ids is not None:
            stmt = stmt.where(Notification.id.in_(notification_ids))
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount or 0
