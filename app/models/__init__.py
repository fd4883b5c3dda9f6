# Models module
from app.models.lane import Lane
from app.models.vendor import Vendor, VendorLane
from app.models.shipment_bid import ShipmentBid, BidOffer, BidStatus, LoadType, VehicleType
from app.models.notifications import Notification, NotificationType, NotificationSeverity

__all__ = [
    "Lane",
    "Vendor",
    "VendorLane",
    "ShipmentBid",
    "BidOffer",
    "BidStatus",
    "LoadType",
    "VehicleType",
    "Notification",
    "NotificationType",
    "NotificationSeverity",
]
