"""Shipment bid (reverse auction) API endpoints."""
from typing import Annotated, Union

from fastapi import APIRouter, Depends, status

from app.api.deps import DB, AdminUser, CurrentUser, CurrentVendor, active_vendor_for
from app.core.errors import OperationRejected, ReasonCode
from app.schemas.shipment_bid import (
    ShipmentBidCreate,
    ShipmentBidResponse,
    ShipmentBidListResponse,
    VendorBidView,
    VendorBidListResponse,
    OfferCreate,
    CounterOfferCreate,
    CounterOfferReply,
    FinalizeRequest,
    VehicleDetailsCreate,
    RankingResponse,
    EligibleVendor,
    EligibleVendorsResponse,
)
from app.services.shipment_bid_service import ShipmentBidService


router = APIRouter()


def get_bid_service(db: DB) -> ShipmentBidService:
    return ShipmentBidService(db)


BidService = Annotated[ShipmentBidService, Depends(get_bid_service)]


# ==================== SHIPMENT BIDS ====================

@router.get("", response_model=None)
async def list_shipment_bids(
    db: DB,
    user: CurrentUser,
    service: BidService,
) -> Union[ShipmentBidListResponse, VendorBidListResponse]:
    """
    Bids visible to the current user.
    Admin: every bid. Vendor: bids on its active lanes, with the vendor view.
    """
    if user.is_admin:
        bids = await service.get_bids()
        return ShipmentBidListResponse(items=[service.admin_view(bid) for bid in bids], total=len(bids))

    vendor = await active_vendor_for(user, db)
    bids = await service.bids_for_vendor(vendor)
    return VendorBidListResponse(items=[service.vendor_view(bid, vendor.id) for bid in bids], total=len(bids))


@router.post("", response_model=ShipmentBidResponse, status_code=status.HTTP_201_CREATED)
async def create_shipment_bid(data: ShipmentBidCreate, admin: AdminUser, service: BidService):
    """Create a shipment bid at OPEN; eligible vendors are notified."""
    bid = await service.create_bid(data)
    return service.admin_view(bid)


@router.get("/{bid_id}", response_model=None)
async def get_shipment_bid(
    bid_id: str,
    db: DB,
    user: CurrentUser,
    service: BidService,
) -> Union[ShipmentBidResponse, VendorBidView]:
    """Get a bid. Vendors only see bids they are eligible for or have bid on."""
    bid = await service.require_bid(bid_id)
    if user.is_admin:
        return service.admin_view(bid)

    vendor = await active_vendor_for(user, db)
    if not await service.vendor_may_view(bid, vendor):
        raise OperationRejected(ReasonCode.FORBIDDEN, "This shipment is not on your lanes")
    return service.vendor_view(bid, vendor.id)


@router.get("/{bid_id}/eligible-vendors", response_model=EligibleVendorsResponse)
async def get_eligible_vendors(bid_id: str, admin: AdminUser, service: BidService):
    """Vendors whose active lanes match the shipment route."""
    bid = await service.require_bid(bid_id)
    vendors = await service.eligible_vendors(bid)
    return EligibleVendorsResponse(
        bid_id=bid.id,
        vendors=[EligibleVendor(id=v.id, name=v.name) for v in vendors],
    )


@router.get("/{bid_id}/ranking", response_model=RankingResponse)
async def get_ranking(bid_id: str, admin: AdminUser, service: BidService):
    """All offers, L1 first."""
    return await service.ranking(bid_id)


# ==================== VENDOR ACTIONS ====================

@router.post("/{bid_id}/offers", response_model=VendorBidView, status_code=status.HTTP_201_CREATED)
async def place_offer(bid_id: str, data: OfferCreate, vendor: CurrentVendor, service: BidService):
    """Place a price offer. Re-bidding appends a new offer."""
    vendor_id = vendor.id
    bid = await service.place_offer(bid_id, vendor, data.amount)
    return service.vendor_view(bid, vendor_id)


@router.post("/{bid_id}/respond", response_model=VendorBidView)
async def respond_to_counter(bid_id: str, data: CounterOfferReply, vendor: CurrentVendor, service: BidService):
    """Accept (finalizes the bid) or reject (reopens bidding) the counter offer."""
    vendor_id = vendor.id
    bid = await service.respond_to_counter(bid_id, vendor_id, data.accept)
    return service.vendor_view(bid, vendor_id)


@router.post("/{bid_id}/vehicle-details", response_model=VendorBidView)
async def submit_vehicle_details(
    bid_id: str,
    data: VehicleDetailsCreate,
    vendor: CurrentVendor,
    service: BidService,
):
    """Winning vendor submits vehicle and driver details."""
    vendor_id = vendor.id
    bid = await service.submit_vehicle_details(bid_id, vendor_id, data.model_dump())
    return service.vendor_view(bid, vendor_id)


# ==================== ADMIN ACTIONS ====================

@router.post("/{bid_id}/counter", response_model=ShipmentBidResponse)
async def counter_offer(bid_id: str, data: CounterOfferCreate, admin: AdminUser, service: BidService):
    """Counter the current L1 offer."""
    bid = await service.counter_offer(bid_id, data.amount)
    return service.admin_view(bid)


@router.post("/{bid_id}/finalize", response_model=ShipmentBidResponse)
async def finalize_bid(bid_id: str, data: FinalizeRequest, admin: AdminUser, service: BidService):
    """Finalize with a vendor's offer without negotiating."""
    bid = await service.finalize(bid_id, data.vendor_id, data.amount)
    return service.admin_view(bid)


@router.post("/{bid_id}/close", response_model=ShipmentBidResponse)
async def close_bid(bid_id: str, admin: AdminUser, service: BidService):
    """Close an OPEN or NEGOTIATING bid."""
    bid = await service.close(bid_id)
    return service.admin_view(bid)
