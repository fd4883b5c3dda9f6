"""
Tests for the realtime broker and the notification emitter.

Verifies that:
- Subscribers only hear their collection and can unsubscribe
- A failing subscriber does not stop delivery to the others
- Each auction event reaches the right inboxes with a readable message
- A notification store failure is swallowed and reported as 0 sent
"""

import pytest
from sqlalchemy import select

from app.config import settings
from app.database import async_session_factory
from app.models.notifications import Notification, NotificationType
from app.services.auction_engine import AuctionEvent
from app.services.notification_service import (
    NotificationEmitter,
    NotificationService,
    build_notifications,
    format_amount,
)
from app.services.realtime import NOTIFICATIONS, SHIPMENT_BIDS, RealtimeBroker
from tests.conftest import run_async


class TestRealtimeBroker:

    def setup_method(self):
        self.broker = RealtimeBroker()
        self.received = []

    def test_publish_to_sync_and_async_subscribers(self):
        async def async_listener(message):
            self.received.append(("async", message["id"]))

        self.broker.subscribe(SHIPMENT_BIDS, lambda message: self.received.append(("sync", message["id"])))
        self.broker.subscribe(SHIPMENT_BIDS, async_listener)

        delivered = run_async(self.broker.publish(SHIPMENT_BIDS, {"event": "updated", "id": "b1"}))

        assert delivered == 2
        assert self.received == [("sync", "b1"), ("async", "b1")]

    def test_collections_are_separate(self):
        self.broker.subscribe(NOTIFICATIONS, self.received.append)
        run_async(self.broker.publish(SHIPMENT_BIDS, {"id": "b1"}))
        assert self.received == []

    def test_message_carries_collection(self):
        self.broker.subscribe(SHIPMENT_BIDS, self.received.append)
        run_async(self.broker.publish(SHIPMENT_BIDS, {"id": "b1"}))
        assert self.received == [{"collection": SHIPMENT_BIDS, "id": "b1"}]

    def test_unsubscribe(self):
        unsubscribe = self.broker.subscribe(SHIPMENT_BIDS, self.received.append)
        unsubscribe()
        unsubscribe()

        assert self.broker.subscriber_count(SHIPMENT_BIDS) == 0
        assert run_async(self.broker.publish(SHIPMENT_BIDS, {"id": "b1"})) == 0

    def test_failing_subscriber_is_skipped(self, caplog):
        def broken(message):
            raise RuntimeError("socket gone")

        self.broker.subscribe(SHIPMENT_BIDS, broken)
        self.broker.subscribe(SHIPMENT_BIDS, self.received.append)

        delivered = run_async(self.broker.publish(SHIPMENT_BIDS, {"id": "b1"}))

        assert delivered == 1
        assert len(self.received) == 1
        assert "socket gone" in caplog.text


class TestBuildNotifications:

    def test_offer_placed_goes_to_admin(self):
        event = AuctionEvent(NotificationType.OFFER_PLACED, "b1", "v1", 45000)
        [notification] = build_notifications(event, "DELHI-MUMBAI", {"v1": "Speedy Logistics"})

        assert notification.user_id == settings.ADMIN_USER_ID
        assert notification.bid_id == "b1"
        assert notification.message == "Speedy Logistics submitted a bid of Rs.45,000 for DELHI-MUMBAI"
        assert notification.is_read is False

    def test_counter_goes_to_target_vendor(self):
        event = AuctionEvent(NotificationType.COUNTER_RECEIVED, "b1", "v1", 43000)
        notifications = build_notifications(event, "DELHI-MUMBAI", {})
        assert [n.user_id for n in notifications] == ["v1"]
        assert notifications[0].severity == "alert"

    def test_finalized_goes_to_admin_and_winner(self):
        event = AuctionEvent(NotificationType.BID_FINALIZED, "b1", "v2", 43000)
        notifications = build_notifications(event, "DELHI-MUMBAI", {"v2": "Roadways"})
        assert [n.user_id for n in notifications] == [settings.ADMIN_USER_ID, "v2"]

    def test_new_opportunity_fans_out_once_per_vendor(self):
        event = AuctionEvent(NotificationType.NEW_BID_OPPORTUNITY, "b1")
        notifications = build_notifications(event, "DELHI-MUMBAI", {}, ["v1", "v2", "v1"])
        assert [n.user_id for n in notifications] == ["v1", "v2"]
        assert notifications[0].message == "New shipment available for lane DELHI-MUMBAI"

    def test_close_without_negotiating_vendor_notifies_nobody(self):
        event = AuctionEvent(NotificationType.BID_CLOSED, "b1")
        assert build_notifications(event, "DELHI-MUMBAI", {}) == []

    def test_unknown_vendor_name_falls_back_to_id(self):
        event = AuctionEvent(NotificationType.COUNTER_REJECTED, "b1", "v9", 43000)
        [notification] = build_notifications(event, "DELHI-MUMBAI", {})
        assert notification.message.startswith("v9 rejected the counter offer")

    @pytest.mark.parametrize("amount,expected", [(45000, "45,000"), (45000.5, "45,000.50"), (None, "-")])
    def test_format_amount(self, amount, expected):
        assert format_amount(amount) == expected


class FailingSession:
    """Session factory whose commit blows up, like a dropped database."""

    def __call__(self):
        return self

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    def add_all(self, rows):
        pass

    async def commit(self):
        raise ConnectionError("database unavailable")


class TestNotificationEmitter:

    def setup_method(self):
        self.broker = RealtimeBroker()
        self.published = []
        self.broker.subscribe(NOTIFICATIONS, self.published.append)
        self.events = [
            AuctionEvent(NotificationType.OFFER_PLACED, "b1", "v2", 44000),
            AuctionEvent(NotificationType.OUTBID, "b1", "v1", 44000),
        ]

    def test_store_failure_returns_zero(self, caplog):
        emitter = NotificationEmitter(session_factory=FailingSession(), broker=self.broker)
        sent = run_async(emitter.emit(self.events, "DELHI-MUMBAI", {"v2": "Roadways"}))

        assert sent == 0
        assert self.published == []
        assert "Dropped 2 notification(s)" in caplog.text

    def test_disabled(self, monkeypatch):
        monkeypatch.setattr(settings, "NOTIFICATIONS_ENABLED", False)
        emitter = NotificationEmitter(session_factory=FailingSession(), broker=self.broker)
        assert run_async(emitter.emit(self.events, "DELHI-MUMBAI", {})) == 0

    def test_stores_and_publishes(self, fresh_db):
        emitter = NotificationEmitter(broker=self.broker)

        async def go():
            sent = await emitter.emit(self.events, "DELHI-MUMBAI", {"v2": "Roadways"})
            async with async_session_factory() as db:
                rows = (await db.execute(select(Notification).order_by(Notification.user_id))).scalars().all()
            return sent, rows

        sent, rows = run_async(go())

        assert sent == 2
        assert [(row.user_id, row.notification_type) for row in rows] == [
            (settings.ADMIN_USER_ID, "OFFER_PLACED"),
            ("v1", "OUTBID"),
        ]
        assert [message["user_id"] for message in self.published] == [settings.ADMIN_USER_ID, "v1"]


class TestNotificationService:

    def test_mark_read(self, fresh_db):
        events = [
            AuctionEvent(NotificationType.COUNTER_RECEIVED, "b1", "v1", 43000),
            AuctionEvent(NotificationType.OUTBID, "b2", "v1", 41000),
            AuctionEvent(NotificationType.OUTBID, "b3", "v2", 41000),
        ]

        async def go():
            await NotificationEmitter(broker=RealtimeBroker()).emit(events, "DELHI-MUMBAI", {})
            async with async_session_factory() as db:
                service = NotificationService(db)
                before = await service.unread_count("v1")
                [first, *_] = await service.list_for_user("v1")
                marked_one = await service.mark_read("v1", [first.id])
                after_one = await service.unread_count("v1")
                marked_rest = await service.mark_read("v1")
                unread = await service.list_for_user("v1", unread_only=True)
                total = await service.count_for_user("v1")
                other = await service.unread_count("v2")
            return before, marked_one, after_one, marked_rest, unread, total, other

        before, marked_one, after_one, marked_rest, unread, total, other = run_async(go())

        assert (before, marked_one, after_one, marked_rest) == (2, 1, 1, 1)
        assert unread == []
        assert total == 2
        assert other == 1
