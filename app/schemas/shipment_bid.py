"""Pydantic schemas for shipment bids and auction actions."""
from datetime import date, datetime, time
from typing import List, Optional, Tuple
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from app.config import settings
from app.models.shipment_bid import BidStatus, LoadType, VehicleType
from app.schemas.base import BaseCreateSchema, BaseResponseSchema, UTCDateTime


# ==================== SHIPMENT BID SCHEMAS ====================

class ShipmentBidCreate(BaseCreateSchema):
    """
    Shipment bid creation schema.

    The bid window is given either as instants (bid_start_at / bid_end_at) or as
    date + time pairs entered in the auction timezone.
    """
    # Request summary
    request_by_customer: Optional[str] = Field(None, max_length=200)
    request_date: Optional[date] = None
    entry_location: Optional[str] = Field(None, max_length=200)
    product: Optional[str] = Field(None, max_length=200)
    packaging_type: Optional[str] = Field(None, max_length=100)
    load_type: LoadType = LoadType.FTL
    vehicle_type: VehicleType = VehicleType.TRUCK
    capacity: Optional[str] = Field(None, max_length=50)
    material_type: Optional[str] = Field(None, max_length=100)
    no_of_packages: int = Field(1, ge=1)
    weight_kg: float = Field(0.0, ge=0)
    comments: Optional[str] = None

    # Pickup
    pickup_party: Optional[str] = Field(None, max_length=200)
    pickup_city: str = Field(..., max_length=100)
    pickup_location: Optional[str] = Field(None, max_length=200)
    pickup_address: Optional[str] = None
    pickup_pincode: Optional[str] = Field(None, max_length=10)
    pickup_date: Optional[date] = None

    # Delivery
    delivery_party: Optional[str] = Field(None, max_length=200)
    delivery_city: str = Field(..., max_length=100)
    delivery_location: Optional[str] = Field(None, max_length=200)
    delivery_address: Optional[str] = None
    delivery_pincode: Optional[str] = Field(None, max_length=10)
    delivery_date: Optional[date] = None

    # Auction parameters
    reserved_price: float = 0.0
    ceiling_rate: float = 0.0
    step_value: float = 0.0
    show_l1_value: bool = False

    bid_start_at: Optional[datetime] = None
    bid_end_at: Optional[datetime] = None
    bid_start_date: Optional[date] = None
    bid_start_time: Optional[time] = None
    bid_end_date: Optional[date] = None
    bid_end_time: Optional[time] = None

    def resolve_window(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Aware (start, end); naive values are read in the auction timezone."""
        zone = ZoneInfo(settings.AUCTION_TIMEZONE)

        def resolve(at: Optional[datetime], day: Optional[date], clock: Optional[time]) -> Optional[datetime]:
            if at is None and day is not None and clock is not None:
                at = datetime.combine(day, clock)
            if at is not None and at.tzinfo is None:
                at = at.replace(tzinfo=zone)
            return at

        return (
            resolve(self.bid_start_at, self.bid_start_date, self.bid_start_time),
            resolve(self.bid_end_at, self.bid_end_date, self.bid_end_time),
        )


class OfferResponse(BaseModel):
    """One offer with its position in the current ranking."""
    rank: int
    vendor_id: str
    vendor_name: str
    amount: float
    timestamp: UTCDateTime


class VehicleDetailsResponse(BaseModel):
    vehicle_number: str
    vehicle_type: Optional[str] = None
    driver_name: str
    driver_phone: str
    expected_dispatch: Optional[str] = None


class ShipmentBidResponse(BaseResponseSchema):
    """
    Shipment bid as seen by an admin: every offer, ranked.
    `status` is the effective status (bid window expiry applied).
    """
    id: str
    request_by_customer: Optional[str] = None
    request_date: Optional[str] = None
    entry_location: Optional[str] = None
    product: Optional[str] = None
    packaging_type: Optional[str] = None
    load_type: str
    vehicle_type: str
    capacity: Optional[str] = None
    material_type: Optional[str] = None
    no_of_packages: int
    weight_kg: float
    comments: Optional[str] = None

    pickup_party: Optional[str] = None
    pickup_city: str
    pickup_location: Optional[str] = None
    pickup_address: Optional[str] = None
    pickup_pincode: Optional[str] = None
    pickup_date: Optional[str] = None
    delivery_party: Optional[str] = None
    delivery_city: str
    delivery_location: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_pincode: Optional[str] = None
    delivery_date: Optional[str] = None

    reserved_price: float
    ceiling_rate: float
    step_value: float
    show_l1_value: bool
    bid_start_at: UTCDateTime
    bid_end_at: UTCDateTime

    status: BidStatus
    winning_vendor_id: Optional[str] = None
    counter_offer: Optional[float] = None
    final_amount: Optional[float] = None
    vehicle_details: Optional[VehicleDetailsResponse] = None

    offers: List[OfferResponse] = Field(default_factory=list)
    l1_amount: Optional[float] = None
    l1_vendor_id: Optional[str] = None

    created_at: UTCDateTime
    updated_at: UTCDateTime


class VendorBidView(BaseModel):
    """
    Shipment bid as seen by a vendor: only the vendor's own offers, its rank,
    and the L1 amount when the shipper chose to show it.
    """
    id: str
    load_type: str
    vehicle_type: str
    capacity: Optional[str] = None
    product: Optional[str] = None
    packaging_type: Optional[str] = None
    material_type: Optional[str] = None
    no_of_packages: int
    weight_kg: float
    pickup_city: str
    pickup_location: Optional[str] = None
    pickup_date: Optional[str] = None
    delivery_city: str
    delivery_location: Optional[str] = None
    delivery_date: Optional[str] = None
    ceiling_rate: float
    step_value: float
    bid_start_at: UTCDateTime
    bid_end_at: UTCDateTime

    status: BidStatus
    my_offers: List[OfferResponse] = Field(default_factory=list)
    my_rank: Optional[int] = None
    l1_amount: Optional[float] = None
    is_winner: bool = False
    counter_offer: Optional[float] = None
    final_amount: Optional[float] = None
    vehicle_details: Optional[VehicleDetailsResponse] = None


class ShipmentBidListResponse(BaseModel):
    """Bids visible to the current user."""
    items: List[ShipmentBidResponse]
    total: int


class VendorBidListResponse(BaseModel):
    items: List[VendorBidView]
    total: int


# ==================== AUCTION ACTIONS ====================

class OfferCreate(BaseModel):
    """Vendor price offer. Positivity is checked by the auction engine."""
    amount: float


class CounterOfferCreate(BaseModel):
    """Admin counter offer to the current L1 vendor."""
    amount: float


class CounterOfferReply(BaseModel):
    """Vendor reply to a counter offer."""
    accept: bool


class FinalizeRequest(BaseModel):
    """Admin finalizes directly with a vendor that has an offer on the bid."""
    vendor_id: str
    amount: Optional[float] = None


class VehicleDetailsCreate(BaseModel):
    """Dispatch details from the winning vendor. Required fields are checked by the engine."""
    vehicle_number: Optional[str] = None
    vehicle_type: Optional[str] = None
    driver_name: Optional[str] = None
    driver_phone: Optional[str] = None
    expected_dispatch: Optional[str] = None


class RankingResponse(BaseModel):
    bid_id: str
    status: BidStatus
    offers: List[OfferResponse]


class EligibleVendor(BaseModel):
    id: str
    name: str


class EligibleVendorsResponse(BaseModel):
    bid_id: str
    vendors: List[EligibleVendor]
