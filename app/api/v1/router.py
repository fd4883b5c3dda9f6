from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Lane registry & vendors
    lanes,
    vendors,
    # Reverse auctions
    shipment_bids,
    # Notifications & realtime feed
    notifications,
    realtime,
)


# Create main API router
api_router = APIRouter(prefix="/api/v1")

# ==================== Lanes & Vendors ====================
api_router.include_router(
    lanes.router,
    prefix="/lanes",
    tags=["Lanes"]
)
api_router.include_router(
    vendors.router,
    prefix="/vendors",
    tags=["Vendors"]
)

# ==================== Shipment Bids ====================
api_router.include_router(
    shipment_bids.router,
    prefix="/shipment-bids",
    tags=["Shipment Bids"]
)

# ==================== Notifications ====================
api_router.include_router(
    notifications.router,
    prefix="/notifications",
    tags=["Notifications"]
)
api_router.include_router(
    realtime.router,
    prefix="/realtime",
    tags=["Realtime"]
)
