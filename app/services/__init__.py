# Services module
from app.services.lane_service import LaneService
from app.services.vendor_service import VendorService
from app.services.shipment_bid_service import ShipmentBidService

# Notifications / realtime
from app.services.notification_service import NotificationEmitter, NotificationService
from app.services.realtime import RealtimeBroker

__all__ = [
    "LaneService",
    "VendorService",
    "ShipmentBidService",
    # Notifications / realtime
    "NotificationEmitter",
    "NotificationService",
    "RealtimeBroker",
]
