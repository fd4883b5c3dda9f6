"""
Reverse-auction state machine for a single shipment bid.

    OPEN --place_offer--> OPEN
    OPEN --counter_offer--> NEGOTIATING --accept--> FINALIZED --vehicle details--> ASSIGNED
                            NEGOTIATING --reject--> OPEN
    OPEN --finalize (admin picks an offer)--> FINALIZED
    OPEN | NEGOTIATING --close--> CLOSED
    OPEN --(bid window passes, no offers)--> CLOSED, computed on read by effective_status()
    OPEN --(bid window passes, offers)--> OPEN, awaiting counter, finalize or close

Every transition is a pure function of (bid, arguments, now). It returns a
TransitionResult holding either the next BidRecord or the ReasonCode that
rejected the call; the input record is never modified. Persistence, locking and
notification delivery are the caller's job (see ShipmentBidService).

Lower amounts win. Ties go to the earlier submission.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import ValidationError

from app.core.errors import ReasonCode
from app.models.notifications import NotificationType
from app.models.shipment_bid import BidStatus
from app.schemas.records import BidRecord, OfferRecord, VehicleDetailsRecord


logger = logging.getLogger(__name__)

REQUIRED_DISPATCH_FIELDS = ("vehicle_number", "driver_name", "driver_phone")


@dataclass
class AuctionEvent:
    """Something observers may want to hear about; input to the notification emitter."""
    kind: NotificationType
    bid_id: str
    vendor_id: Optional[str] = None
    amount: Optional[float] = None


@dataclass
class TransitionResult:
    bid: BidRecord
    reason: Optional[ReasonCode] = None
    detail: Optional[str] = None
    events: List[AuctionEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.reason is None


def _reject(bid: BidRecord, reason: ReasonCode, detail: Optional[str] = None) -> TransitionResult:
    logger.info("Bid %s: rejected with %s%s", bid.id, reason.value, f" ({detail})" if detail else "")
    return TransitionResult(bid=bid, reason=reason, detail=detail)


def is_positive_amount(value: Any) -> bool:
    """Positive finite number; bools and numeric strings do not count."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and value > 0


# ==================== QUERIES ====================

def effective_status(bid: BidRecord, now: datetime) -> BidStatus:
    """
    Status a reader should trust. The stored status may still say OPEN after
    the bid window ended because nothing has written the bid since. An expired
    bid that received offers stays OPEN until the admin resolves it.
    """
    if bid.status == BidStatus.OPEN and now > bid.bid_end_at and not bid.offers:
        return BidStatus.CLOSED
    return bid.status


def ranked_offers(offers: List[OfferRecord]) -> List[OfferRecord]:
    """All offers, cheapest first; equal amounts keep submission order."""
    return sorted(offers, key=lambda offer: (offer.amount, offer.sequence, offer.timestamp))


def rank(bid: BidRecord, vendor_id: str) -> Optional[int]:
    """
    1-based position of the vendor's lowest offer among all offers, or None
    when the vendor has not bid. Rank 1 is "L1", the presumptive winner.
    """
    for position, offer in enumerate(ranked_offers(bid.offers), start=1):
        if offer.vendor_id == vendor_id:
            return position
    return None


def current_leader(bid: BidRecord) -> Optional[OfferRecord]:
    """The rank-1 offer. Not a winner until the bid is FINALIZED."""
    ordered = ranked_offers(bid.offers)
    return ordered[0] if ordered else None


def best_offer_for(bid: BidRecord, vendor_id: str) -> Optional[OfferRecord]:
    for offer in ranked_offers(bid.offers):
        if offer.vendor_id == vendor_id:
            return offer
    return None


# ==================== TRANSITIONS ====================

def place_offer(
    bid: BidRecord,
    vendor_id: str,
    vendor_name: str,
    amount: Any,
    *,
    now: datetime,
    eligible: bool,
) -> TransitionResult:
    """Append a vendor offer. Re-bidding appends again; nothing is deduplicated."""
    if bid.status != BidStatus.OPEN:
        return _reject(bid, ReasonCode.AUCTION_NOT_OPEN, bid.status.value)
    if now < bid.bid_start_at:
        return _reject(bid, ReasonCode.AUCTION_NOT_STARTED)
    if now > bid.bid_end_at:
        return _reject(bid, ReasonCode.AUCTION_EXPIRED)
    if not is_positive_amount(amount):
        return _reject(bid, ReasonCode.AMOUNT_NOT_POSITIVE, repr(amount))
    if not eligible:
        return _reject(bid, ReasonCode.VENDOR_NOT_ELIGIBLE, vendor_id)

    previous_leader = current_leader(bid)
    next_sequence = max((offer.sequence for offer in bid.offers), default=-1) + 1
    offer = OfferRecord(
        vendor_id=vendor_id,
        vendor_name=vendor_name,
        amount=float(amount),
        timestamp=now,
        sequence=next_sequence,
    )
    updated = bid.model_copy(update={"offers": [*bid.offers, offer]})

    events = [AuctionEvent(NotificationType.OFFER_PLACED, bid.id, vendor_id, offer.amount)]
    leader = current_leader(updated)
    if previous_leader is not None and leader.vendor_id != previous_leader.vendor_id:
        events.append(AuctionEvent(NotificationType.OUTBID, bid.id, previous_leader.vendor_id, leader.amount))

    return TransitionResult(bid=updated, events=events)


def counter_offer(bid: BidRecord, amount: Any, *, now: datetime) -> TransitionResult:
    """
    Admin proposes a price to the current rank-1 vendor. Allowed after the bid
    window ended as long as nobody closed the bid.
    """
    if bid.status != BidStatus.OPEN:
        return _reject(bid, ReasonCode.AUCTION_NOT_OPEN, bid.status.value)
    if not is_positive_amount(amount):
        return _reject(bid, ReasonCode.AMOUNT_NOT_POSITIVE, repr(amount))

    leader = current_leader(bid)
    if leader is None:
        return _reject(bid, ReasonCode.NO_OFFERS)

    updated = bid.model_copy(update={
        "status": BidStatus.NEGOTIATING,
        "counter_offer": float(amount),
        "winning_vendor_id": leader.vendor_id,
    })
    return TransitionResult(
        bid=updated,
        events=[AuctionEvent(NotificationType.COUNTER_RECEIVED, bid.id, leader.vendor_id, float(amount))],
    )


def respond_to_counter(bid: BidRecord, vendor_id: str, accept: bool, *, now: datetime) -> TransitionResult:
    """The targeted vendor accepts (FINALIZED) or rejects (back to OPEN) the counter offer."""
    if bid.status != BidStatus.NEGOTIATING:
        return _reject(bid, ReasonCode.NOT_NEGOTIATING, bid.status.value)
    if vendor_id != bid.winning_vendor_id:
        return _reject(bid, ReasonCode.NOT_WINNING_VENDOR, vendor_id)

    if accept:
        updated = bid.model_copy(update={
            "status": BidStatus.FINALIZED,
            "final_amount": bid.counter_offer,
        })
        return TransitionResult(bid=updated, events=[
            AuctionEvent(NotificationType.COUNTER_ACCEPTED, bid.id, vendor_id, bid.counter_offer),
            AuctionEvent(NotificationType.BID_FINALIZED, bid.id, vendor_id, bid.counter_offer),
        ])

    # Reopen for everyone, including the vendor who declined
    updated = bid.model_copy(update={
        "status": BidStatus.OPEN,
        "counter_offer": None,
        "winning_vendor_id": None,
    })
    return TransitionResult(bid=updated, events=[
        AuctionEvent(NotificationType.COUNTER_REJECTED, bid.id, vendor_id, bid.counter_offer),
    ])


def finalize(
    bid: BidRecord,
    vendor_id: str,
    amount: Optional[Any] = None,
    *,
    now: datetime,
) -> TransitionResult:
    """Admin locks in a vendor's offer without negotiating; amount defaults to that vendor's best offer."""
    if bid.status != BidStatus.OPEN:
        return _reject(bid, ReasonCode.AUCTION_NOT_OPEN, bid.status.value)

    offer = best_offer_for(bid, vendor_id)
    if offer is None:
        return _reject(bid, ReasonCode.VENDOR_HAS_NO_OFFER, vendor_id)

    final_amount = offer.amount if amount is None else amount
    if not is_positive_amount(final_amount):
        return _reject(bid, ReasonCode.AMOUNT_NOT_POSITIVE, repr(final_amount))

    updated = bid.model_copy(update={
        "status": BidStatus.FINALIZED,
        "winning_vendor_id": vendor_id,
        "final_amount": float(final_amount),
        "counter_offer": None,
    })
    return TransitionResult(
        bid=updated,
        events=[AuctionEvent(NotificationType.BID_FINALIZED, bid.id, vendor_id, float(final_amount))],
    )


def _missing_dispatch_fields(details: VehicleDetailsRecord) -> List[str]:
    missing = []
    for name in REQUIRED_DISPATCH_FIELDS:
        value = getattr(details, name)
        if not isinstance(value, str) or not value.strip():
            missing.append(name)
    return missing


def submit_vehicle_details(
    bid: BidRecord,
    vendor_id: str,
    details: Union[VehicleDetailsRecord, dict],
    *,
    now: datetime,
) -> TransitionResult:
    """The winning vendor records the dispatch vehicle; the lifecycle ends at ASSIGNED."""
    if bid.status != BidStatus.FINALIZED:
        return _reject(bid, ReasonCode.NOT_FINALIZED, bid.status.value)
    if vendor_id != bid.winning_vendor_id:
        return _reject(bid, ReasonCode.NOT_WINNING_VENDOR, vendor_id)

    if isinstance(details, dict):
        try:
            details = VehicleDetailsRecord.model_validate(details)
        except ValidationError as e:
            return _reject(bid, ReasonCode.MISSING_DISPATCH_FIELD, str(e.errors()[0]["loc"][0]))
    missing = _missing_dispatch_fields(details)
    if missing:
        return _reject(bid, ReasonCode.MISSING_DISPATCH_FIELD, ", ".join(missing))

    cleaned = details.model_copy(update={name: getattr(details, name).strip() for name in REQUIRED_DISPATCH_FIELDS})
    updated = bid.model_copy(update={
        "status": BidStatus.ASSIGNED,
        "vehicle_details": cleaned,
    })
    return TransitionResult(
        bid=updated,
        events=[AuctionEvent(NotificationType.VEHICLE_ASSIGNED, bid.id, vendor_id, bid.final_amount)],
    )


def close(bid: BidRecord, *, now: datetime) -> TransitionResult:
    """Administrative cancellation of an OPEN or NEGOTIATING bid. Closing a CLOSED bid is a no-op."""
    if bid.status == BidStatus.CLOSED:
        return TransitionResult(bid=bid)
    if bid.status not in (BidStatus.OPEN, BidStatus.NEGOTIATING):
        return _reject(bid, ReasonCode.AUCTION_NOT_OPEN, bid.status.value)

    updated = bid.model_copy(update={
        "status": BidStatus.CLOSED,
        "counter_offer": None,
        "winning_vendor_id": None,
    })
    return TransitionResult(
        bid=updated,
        events=[AuctionEvent(NotificationType.BID_CLOSED, bid.id, bid.winning_vendor_id)],
    )
