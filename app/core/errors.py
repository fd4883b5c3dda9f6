"""
Reason codes and the domain rejection raised by the service layer.

Pure functions (lane matching, auction engine) return a ReasonCode inside their
result objects. Services turn a rejected result into OperationRejected, which the
API renders as {"code": ..., "message": ...} with the mapped HTTP status.
"""
from enum import Enum
from typing import Any, Dict, Optional, Sequence

from fastapi import status


class ReasonCode(str, Enum):
    """Why an operation was rejected."""
    # Lane validation
    EMPTY_CITY = "EmptyCity"
    SAME_ORIGIN_DESTINATION = "SameOriginDestination"
    DUPLICATE_LANE = "DuplicateLane"

    # Vendor registry
    DUPLICATE_VENDOR = "DuplicateVendor"

    # Lookups
    LANE_NOT_FOUND = "LaneNotFound"
    VENDOR_NOT_FOUND = "VendorNotFound"
    BID_NOT_FOUND = "BidNotFound"

    # Bid creation
    INVALID_AUCTION_WINDOW = "InvalidAuctionWindow"
    INVALID_AMOUNT = "InvalidAmount"

    # Auction state guards
    AUCTION_NOT_OPEN = "AuctionNotOpen"
    AUCTION_NOT_STARTED = "AuctionNotStarted"
    AUCTION_EXPIRED = "AuctionExpired"
    AMOUNT_NOT_POSITIVE = "AmountNotPositive"
    VENDOR_NOT_ELIGIBLE = "VendorNotEligible"
    NO_OFFERS = "NoOffers"
    NOT_NEGOTIATING = "NotNegotiating"
    NOT_WINNING_VENDOR = "NotWinningVendor"
    NOT_FINALIZED = "NotFinalized"
    MISSING_DISPATCH_FIELD = "MissingDispatchField"
    VENDOR_HAS_NO_OFFER = "VendorHasNoOffer"

    # Request shape
    INVALID_REQUEST = "InvalidRequest"

    # Actor / collaborator
    FORBIDDEN = "Forbidden"
    NOT_PERSISTED = "NotPersisted"
    CONCURRENT_MODIFICATION = "ConcurrentModification"


DEFAULT_MESSAGES = {
    ReasonCode.EMPTY_CITY: "Origin and destination cities are required",
    ReasonCode.SAME_ORIGIN_DESTINATION: "Origin and destination must differ",
    ReasonCode.DUPLICATE_LANE: "This lane already exists",
    ReasonCode.DUPLICATE_VENDOR: "A vendor with this id already exists",
    ReasonCode.LANE_NOT_FOUND: "Lane not found",
    ReasonCode.VENDOR_NOT_FOUND: "Vendor not found",
    ReasonCode.BID_NOT_FOUND: "Shipment bid not found",
    ReasonCode.INVALID_AUCTION_WINDOW: "Bid start must be before bid end",
    ReasonCode.INVALID_AMOUNT: "Auction prices must be non-negative numbers",
    ReasonCode.AUCTION_NOT_OPEN: "This auction is not open",
    ReasonCode.AUCTION_NOT_STARTED: "Bidding has not started yet",
    ReasonCode.AUCTION_EXPIRED: "Bidding has ended for this shipment",
    ReasonCode.AMOUNT_NOT_POSITIVE: "Amount must be a positive number",
    ReasonCode.VENDOR_NOT_ELIGIBLE: "Vendor is not approved for this lane",
    ReasonCode.NO_OFFERS: "No offers have been placed on this shipment",
    ReasonCode.NOT_NEGOTIATING: "There is no pending counter offer",
    ReasonCode.NOT_WINNING_VENDOR: "Only the winning vendor can perform this action",
    ReasonCode.NOT_FINALIZED: "This shipment has not been finalized",
    ReasonCode.MISSING_DISPATCH_FIELD: "Vehicle number, driver name and driver phone are required",
    ReasonCode.VENDOR_HAS_NO_OFFER: "Vendor has not placed an offer on this shipment",
    ReasonCode.INVALID_REQUEST: "The request body is not valid",
    ReasonCode.FORBIDDEN: "You are not allowed to perform this action",
    ReasonCode.NOT_PERSISTED: "The change could not be saved, please retry",
    ReasonCode.CONCURRENT_MODIFICATION: "The shipment changed while saving, please retry",
}

STATUS_CODES = {
    ReasonCode.EMPTY_CITY: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReasonCode.SAME_ORIGIN_DESTINATION: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReasonCode.INVALID_AUCTION_WINDOW: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReasonCode.INVALID_AMOUNT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReasonCode.AMOUNT_NOT_POSITIVE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReasonCode.MISSING_DISPATCH_FIELD: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReasonCode.INVALID_REQUEST: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ReasonCode.LANE_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ReasonCode.VENDOR_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ReasonCode.BID_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ReasonCode.VENDOR_NOT_ELIGIBLE: status.HTTP_403_FORBIDDEN,
    ReasonCode.NOT_WINNING_VENDOR: status.HTTP_403_FORBIDDEN,
    ReasonCode.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ReasonCode.NOT_PERSISTED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class OperationRejected(Exception):
    """A caller-facing operation was refused for a specific, reportable reason."""

    def __init__(self, code: ReasonCode, message: Optional[str] = None):
        self.code = code
        self.message = message or DEFAULT_MESSAGES.get(code, code.value)
        super().__init__(f"{code.value}: {self.message}")

    @property
    def status_code(self) -> int:
        # Anything not listed is a state or duplicate conflict
        return STATUS_CODES.get(self.code, status.HTTP_409_CONFLICT)

    def to_dict(self) -> dict:
        return {"code": self.code.value, "message": self.message}


# Request fields whose schema errors already have a domain reason
FIELD_REASONS = {
    "origin": ReasonCode.EMPTY_CITY,
    "destination": ReasonCode.EMPTY_CITY,
    "pickup_city": ReasonCode.EMPTY_CITY,
    "delivery_city": ReasonCode.EMPTY_CITY,
    "amount": ReasonCode.AMOUNT_NOT_POSITIVE,
    "reserved_price": ReasonCode.INVALID_AMOUNT,
    "ceiling_rate": ReasonCode.INVALID_AMOUNT,
    "step_value": ReasonCode.INVALID_AMOUNT,
    "bid_start_at": ReasonCode.INVALID_AUCTION_WINDOW,
    "bid_end_at": ReasonCode.INVALID_AUCTION_WINDOW,
    "bid_start_date": ReasonCode.INVALID_AUCTION_WINDOW,
    "bid_start_time": ReasonCode.INVALID_AUCTION_WINDOW,
    "bid_end_date": ReasonCode.INVALID_AUCTION_WINDOW,
    "bid_end_time": ReasonCode.INVALID_AUCTION_WINDOW,
    "vehicle_number": ReasonCode.MISSING_DISPATCH_FIELD,
    "driver_name": ReasonCode.MISSING_DISPATCH_FIELD,
    "driver_phone": ReasonCode.MISSING_DISPATCH_FIELD,
}


def _field_path(error: Dict[str, Any]) -> str:
    return ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))


def rejection_for_invalid_request(errors: Sequence[Dict[str, Any]]) -> OperationRejected:
    """
    Turn FastAPI/pydantic request errors into a single OperationRejected.

    The first error on a field listed in FIELD_REASONS decides the code;
    anything else is InvalidRequest.
    """
    for error in errors:
        names = [part for part in error.get("loc", ()) if isinstance(part, str)]
        reason = FIELD_REASONS.get(names[-1]) if names else None
        if reason is not None:
            return OperationRejected(reason, f"{_field_path(error)}: {error.get('msg')}")

    if not errors:
        return OperationRejected(ReasonCode.INVALID_REQUEST)
    first = errors[0]
    return OperationRejected(ReasonCode.INVALID_REQUEST, f"{_field_path(first) or 'body'}: {first.get('msg')}")
