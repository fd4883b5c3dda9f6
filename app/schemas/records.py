"""
Typed core records and the parsing boundary for untrusted store data.

Raw records (JSON exports, broker payloads, ORM rows) pass through the
parse_* functions exactly once. Malformed optional fields are replaced with
safe defaults; records missing identity or route fields are rejected (None).
Everything past this boundary can rely on well-typed values.
"""
import logging
import math
from datetime import date, datetime, time, timezone
from typing import Any, List, Optional
from zoneinfo import ZoneInfo

from pydantic import (
    AliasChoices,
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from app.config import settings
from app.models.shipment_bid import BidStatus


logger = logging.getLogger(__name__)


def ensure_aware(value: datetime) -> datetime:
    """Stored datetimes are UTC; SQLite hands them back naive."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def combine_local(day: Any, clock: Any) -> Optional[datetime]:
    """Combine a bid date and time entered in the auction timezone into an aware datetime."""
    try:
        if isinstance(day, str):
            day = date.fromisoformat(day)
        if isinstance(clock, str):
            clock = time.fromisoformat(clock)
    except ValueError:
        return None
    if not isinstance(day, date) or not isinstance(clock, time):
        return None
    return datetime.combine(day, clock).replace(tzinfo=ZoneInfo(settings.AUCTION_TIMEZONE))


def _to_number(value: Any) -> Optional[float]:
    """Finite float from a number or numeric string; None otherwise."""
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _accept_snake_or_camel(field_name: str) -> AliasChoices:
    return AliasChoices(field_name, to_camel(field_name))


class RecordModel(BaseModel):
    """Accepts snake_case (our store) and camelCase (legacy exports) keys."""
    model_config = ConfigDict(
        alias_generator=AliasGenerator(validation_alias=_accept_snake_or_camel),
        populate_by_name=True,
        extra="ignore",
    )


class LaneRecord(RecordModel):
    id: str
    origin: str
    destination: str
    name: str = ""
    code: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("is_active", mode="before")
    @classmethod
    def default_active(cls, v):
        return v if isinstance(v, bool) else True


class VendorRecord(RecordModel):
    id: str
    name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_name: Optional[str] = None
    vehicle_types: List[str] = Field(default_factory=list)
    lanes: List[str] = Field(default_factory=list)
    is_deleted: bool = False

    @field_validator("vehicle_types", "lanes", mode="before")
    @classmethod
    def keep_strings(cls, v):
        # Firebase stores arrays as {index: value} maps once edited
        if isinstance(v, dict):
            v = list(v.values())
        if not isinstance(v, (list, tuple, set)):
            return []
        return [item for item in v if isinstance(item, str) and item]

    @field_validator("is_deleted", mode="before")
    @classmethod
    def default_not_deleted(cls, v):
        return v if isinstance(v, bool) else False


class OfferRecord(RecordModel):
    vendor_id: str
    vendor_name: str = ""
    amount: float
    timestamp: datetime
    sequence: int = 0

    @field_validator("amount")
    @classmethod
    def positive_finite(cls, v: float) -> float:
        if not math.isfinite(v) or v <= 0:
            raise ValueError("offer amount must be positive")
        return v

    @field_validator("timestamp")
    @classmethod
    def aware_timestamp(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class VehicleDetailsRecord(RecordModel):
    vehicle_number: str = ""
    vehicle_type: Optional[str] = None
    driver_name: str = ""
    driver_phone: str = ""
    expected_dispatch: Optional[str] = None


class BidRecord(RecordModel):
    """Auction state of one shipment bid as the engine sees it."""
    id: str
    pickup_city: str
    delivery_city: str
    reserved_price: float = 0.0
    ceiling_rate: float = 0.0
    step_value: float = 0.0
    bid_start_at: datetime
    bid_end_at: datetime
    show_l1_value: bool = False
    status: BidStatus = BidStatus.OPEN
    offers: List[OfferRecord] = Field(default_factory=list)
    winning_vendor_id: Optional[str] = None
    counter_offer: Optional[float] = None
    final_amount: Optional[float] = None
    vehicle_details: Optional[VehicleDetailsRecord] = None
    version: int = 1

    @model_validator(mode="before")
    @classmethod
    def combine_window(cls, data):
        # Legacy exports carry bidStartDate/bidStartTime pairs instead of instants
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for edge in ("start", "end"):
            at_key = f"bid_{edge}_at"
            if data.get(at_key) is None and data.get(to_camel(at_key)) is None:
                day = data.get(f"bid_{edge}_date", data.get(f"bid{edge.title()}Date"))
                clock = data.get(f"bid_{edge}_time", data.get(f"bid{edge.title()}Time"))
                data[at_key] = combine_local(day, clock)
        return data

    @field_validator("reserved_price", "ceiling_rate", "step_value", mode="before")
    @classmethod
    def non_negative_price(cls, v):
        number = _to_number(v)
        return number if number is not None and number >= 0 else 0.0

    @field_validator("counter_offer", "final_amount", mode="before")
    @classmethod
    def optional_amount(cls, v):
        number = _to_number(v)
        return number if number is not None and number > 0 else None

    @field_validator("status", mode="before")
    @classmethod
    def known_status(cls, v):
        if v is None:
            return BidStatus.OPEN
        if isinstance(v, str) and v.upper() in BidStatus.__members__:
            return BidStatus(v.upper())
        logger.warning("Unknown bid status %r, treating bid as CLOSED", v)
        return BidStatus.CLOSED

    @field_validator("show_l1_value", mode="before")
    @classmethod
    def default_hidden(cls, v):
        return v if isinstance(v, bool) else False

    @field_validator("vehicle_details", mode="before")
    @classmethod
    def drop_bad_details(cls, v):
        return v if isinstance(v, (dict, VehicleDetailsRecord)) else None

    @field_validator("bid_start_at", "bid_end_at")
    @classmethod
    def aware_window(cls, v: datetime) -> datetime:
        return ensure_aware(v)


def _as_dict(raw: Any) -> Optional[dict]:
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, BaseModel):
        return raw.model_dump()
    to_record = getattr(raw, "to_record", None)
    if callable(to_record):
        return to_record()
    return None


def parse_lane_record(raw: Any, record_id: Optional[str] = None) -> Optional[LaneRecord]:
    """Typed lane, or None when id/origin/destination are missing or not text."""
    data = _as_dict(raw)
    if data is None:
        logger.warning("Skipping lane record of type %s", type(raw).__name__)
        return None
    if record_id is not None and not data.get("id"):
        data = {**data, "id": record_id}
    try:
        return LaneRecord.model_validate(data)
    except ValidationError as e:
        logger.warning("Skipping malformed lane %r: %s", data.get("id"), e.errors()[0]["msg"])
        return None


def parse_vendor_record(raw: Any, record_id: Optional[str] = None) -> Optional[VendorRecord]:
    """Typed vendor; a missing or malformed lane list becomes empty (eligible for nothing)."""
    data = _as_dict(raw)
    if data is None:
        logger.warning("Skipping vendor record of type %s", type(raw).__name__)
        return None
    if record_id is not None and not data.get("id"):
        data = {**data, "id": record_id}
    try:
        return VendorRecord.model_validate(data)
    except ValidationError as e:
        logger.warning("Skipping malformed vendor %r: %s", data.get("id"), e.errors()[0]["msg"])
        return None


def parse_offer_record(raw: Any, position: int = 0) -> Optional[OfferRecord]:
    """Typed offer; `position` stands in for the sequence when the record has none."""
    data = _as_dict(raw)
    if data is None:
        return None
    if "sequence" not in data:
        data = {**data, "sequence": position}
    try:
        return OfferRecord.model_validate(data)
    except ValidationError as e:
        logger.warning("Dropping malformed offer at position %d: %s", position, e.errors()[0]["msg"])
        return None


def parse_bid_record(raw: Any, record_id: Optional[str] = None) -> Optional[BidRecord]:
    """
    Typed auction state. An absent or non-list `offers` becomes [], and
    individual malformed offers are dropped without rejecting the bid.
    """
    data = _as_dict(raw)
    if data is None:
        logger.warning("Skipping bid record of type %s", type(raw).__name__)
        return None
    if record_id is not None and not data.get("id"):
        data = {**data, "id": record_id}

    raw_offers = data.get("offers")
    if isinstance(raw_offers, dict):
        raw_offers = list(raw_offers.values())
    if not isinstance(raw_offers, list):
        if raw_offers is not None:
            logger.warning("Bid %r has malformed offers, using an empty list", data.get("id"))
        raw_offers = []

    offers = []
    for position, item in enumerate(raw_offers):
        offer = parse_offer_record(item, position)
        if offer is not None:
            offers.append(offer)

    try:
        return BidRecord.model_validate({**data, "offers": offers})
    except ValidationError as e:
        logger.warning("Skipping malformed bid %r: %s", data.get("id"), e.errors()[0]["msg"])
        return None


class ShipmentDetailsRecord(RecordModel):
    """Descriptive shipment fields of an imported bid; anything unreadable becomes empty."""
    request_by_customer: Optional[str] = None
    request_date: Optional[str] = None
    entry_location: Optional[str] = None
    product: Optional[str] = None
    packaging_type: Optional[str] = None
    load_type: str = "FTL"
    vehicle_type: str = "Truck"
    capacity: Optional[str] = None
    material_type: Optional[str] = None
    no_of_packages: int = 1
    weight_kg: float = 0.0
    comments: Optional[str] = None
    pickup_party: Optional[str] = None
    pickup_location: Optional[str] = None
    pickup_address: Optional[str] = None
    pickup_pincode: Optional[str] = None
    pickup_date: Optional[str] = None
    delivery_party: Optional[str] = None
    delivery_location: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_pincode: Optional[str] = None
    delivery_date: Optional[str] = None

    @field_validator(
        "request_by_customer", "request_date", "entry_location", "product", "packaging_type",
        "capacity", "material_type", "comments",
        "pickup_party", "pickup_location", "pickup_address", "pickup_pincode", "pickup_date",
        "delivery_party", "delivery_location", "delivery_address", "delivery_pincode", "delivery_date",
        mode="before",
    )
    @classmethod
    def text_or_none(cls, v):
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return str(v)
        return v if isinstance(v, str) else None

    @field_validator("load_type", "vehicle_type", mode="before")
    @classmethod
    def tag_or_default(cls, v, info):
        if isinstance(v, str) and v.strip():
            return v.strip()
        return "FTL" if info.field_name == "load_type" else "Truck"

    @field_validator("no_of_packages", mode="before")
    @classmethod
    def package_count(cls, v):
        number = _to_number(v)
        return int(number) if number is not None and number >= 1 else 1

    @field_validator("weight_kg", mode="before")
    @classmethod
    def weight(cls, v):
        number = _to_number(v)
        return number if number is not None and number >= 0 else 0.0


def parse_shipment_details(raw: Any) -> ShipmentDetailsRecord:
    data = _as_dict(raw) or {}
    return ShipmentDetailsRecord.model_validate(data)
