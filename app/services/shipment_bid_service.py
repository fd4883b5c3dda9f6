"""
Shipment bid service: persistence, per-bid serialization and views around the
pure auction engine.

Every mutation runs as one read-modify-write under the bid's lock:
fresh read -> typed BidRecord -> engine transition -> apply -> commit.
A commit that loses the optimistic version check is retried from a fresh read.
Notifications go out after the commit and outside the lock.
"""
import logging
import math
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple
from zoneinfo import ZoneInfo

from sqlalchemy import select, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.core.errors import OperationRejected, ReasonCode
from app.core.locks import KeyedLocks
from app.database import commit_or_reject
from app.models.notifications import NotificationType
from app.models.shipment_bid import BidOffer, BidStatus, ShipmentBid
from app.models.vendor import Vendor
from app.schemas.records import BidRecord, OfferRecord, parse_bid_record
from app.schemas.shipment_bid import (
    OfferResponse,
    RankingResponse,
    ShipmentBidCreate,
    ShipmentBidResponse,
    VehicleDetailsResponse,
    VendorBidView,
)
from app.services import auction_engine as engine
from app.services.auction_engine import AuctionEvent, TransitionResult
from app.services.lane_matching import (
    eligible_shipments_for_vendor,
    eligible_vendors_for_shipment,
    lane_key,
    normalize_city_name,
    vendor_can_bid,
)
from app.services.lane_service import LaneService
from app.services.notification_service import NotificationEmitter
from app.services.realtime import SHIPMENT_BIDS, RealtimeBroker, broker as default_broker
from app.services.vendor_service import VendorService


logger = logging.getLogger(__name__)

Transition = Callable[..., TransitionResult]
TransitionContext = Callable[[ShipmentBid], Awaitable[Dict[str, Any]]]

# One writer per bid inside this process
bid_lock = KeyedLocks()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _offer_rows(ranked: List[OfferRecord], vendor_id: Optional[str] = None) -> List[OfferResponse]:
    return [
        OfferResponse(
            rank=position,
            vendor_id=offer.vendor_id,
            vendor_name=offer.vendor_name,
            amount=offer.amount,
            timestamp=offer.timestamp,
        )
        for position, offer in enumerate(ranked, start=1)
        if vendor_id is None or offer.vendor_id == vendor_id
    ]


def _vehicle_details(record: BidRecord) -> Optional[VehicleDetailsResponse]:
    if record.vehicle_details is None:
        return None
    return VehicleDetailsResponse.model_validate(record.vehicle_details.model_dump())


class ShipmentBidService:
    """Shipment bids and the auction operations on them."""

    def __init__(
        self,
        db: AsyncSession,
        broker: RealtimeBroker = default_broker,
        emitter: Optional[NotificationEmitter] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.broker = broker
        self.emitter = emitter or NotificationEmitter(broker=broker)
        self.clock = clock

    # ==================== QUERIES ====================

    async def get_bid(self, bid_id: str, fresh: bool = False) -> Optional[ShipmentBid]:
        """Get bid with its offers. `fresh` bypasses the session's identity map."""
        stmt = select(ShipmentBid).where(ShipmentBid.id == bid_id)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def require_bid(self, bid_id: str, fresh: bool = False) -> ShipmentBid:
        bid = await self.get_bid(bid_id, fresh=fresh)
        if bid is None:
            raise OperationRejected(ReasonCode.BID_NOT_FOUND)
        return bid

    async def get_bids(self) -> List[ShipmentBid]:
        """All bids, newest first."""
        result = await self.db.execute(select(ShipmentBid).order_by(ShipmentBid.created_at.desc()))
        return list(result.scalars().all())

    async def count_bids(self) -> int:
        return (await self.db.execute(select(func.count(ShipmentBid.id)))).scalar() or 0

    async def bids_for_vendor(self, vendor: Vendor) -> List[ShipmentBid]:
        """
        Bids the vendor may see: those on its active approved lanes, plus any it
        has offered on. Same rule as vendor_may_view.
        """
        bids = await self.get_bids()
        lanes = await LaneService(self.db).all_lanes()
        eligible = {bid.id for bid in eligible_shipments_for_vendor(bids, vendor, lanes)}
        return [
            bid for bid in bids
            if bid.id in eligible or any(offer.vendor_id == vendor.id for offer in bid.offers)
        ]

    async def eligible_vendors(self, bid: ShipmentBid) -> List[Vendor]:
        vendors = await VendorService(self.db).active_vendors()
        lanes = await LaneService(self.db).all_lanes()
        return eligible_vendors_for_shipment(bid, vendors, lanes)

    async def vendor_may_view(self, bid: ShipmentBid, vendor: Vendor) -> bool:
        """Eligible now, or already part of the auction through an offer of its own."""
        if any(offer.vendor_id == vendor.id for offer in bid.offers):
            return True
        return vendor_can_bid(bid, vendor, await LaneService(self.db).all_lanes())

    def to_record(self, bid: ShipmentBid) -> BidRecord:
        record = parse_bid_record(bid)
        if record is None:
            logger.error("Stored bid %s could not be read", bid.id)
            raise OperationRejected(ReasonCode.BID_NOT_FOUND, f"Shipment bid {bid.id} is unreadable")
        return record

    # ==================== VIEWS ====================

    def admin_view(self, bid: ShipmentBid) -> ShipmentBidResponse:
        """Full bid with every offer ranked; status has expiry applied."""
        record = self.to_record(bid)
        ranked = engine.ranked_offers(record.offers)
        leader = ranked[0] if ranked else None

        data = {
            name: getattr(bid, name)
            for name in ShipmentBidResponse.model_fields
            if name not in ("status", "offers", "vehicle_details", "l1_amount", "l1_vendor_id")
        }
        data.update(
            bid_start_at=record.bid_start_at,
            bid_end_at=record.bid_end_at,
            status=engine.effective_status(record, self.clock()),
            offers=_offer_rows(ranked),
            vehicle_details=_vehicle_details(record),
            l1_amount=leader.amount if leader else None,
            l1_vendor_id=leader.vendor_id if leader else None,
        )
        return ShipmentBidResponse.model_validate(data)

    def vendor_view(self, bid: ShipmentBid, vendor_id: str) -> VendorBidView:
        """
        What a vendor may see: its own offers and rank, the L1 amount when the
        shipper shows it, and negotiation/dispatch fields only when addressed to it.
        """
        record = self.to_record(bid)
        ranked = engine.ranked_offers(record.offers)
        leader = ranked[0] if ranked else None
        status = engine.effective_status(record, self.clock())
        targeted = record.winning_vendor_id == vendor_id
        winner = targeted and status in (BidStatus.FINALIZED, BidStatus.ASSIGNED)

        data = {
            name: getattr(bid, name)
            for name in VendorBidView.model_fields
            if hasattr(ShipmentBid, name) and name not in ("status", "vehicle_details", "counter_offer", "final_amount")
        }
        data.update(
            bid_start_at=record.bid_start_at,
            bid_end_at=record.bid_end_at,
            status=status,
            my_offers=_offer_rows(ranked, vendor_id),
            my_rank=engine.rank(record, vendor_id),
            l1_amount=leader.amount if (leader and record.show_l1_value) else None,
            is_winner=winner,
            counter_offer=record.counter_offer if targeted and status == BidStatus.NEGOTIATING else None,
            final_amount=record.final_amount if winner else None,
            vehicle_details=_vehicle_details(record) if winner else None,
        )
        return VendorBidView.model_validate(data)

    async def ranking(self, bid_id: str) -> RankingResponse:
        bid = await self.require_bid(bid_id)
        record = self.to_record(bid)
        return RankingResponse(
            bid_id=bid.id,
            status=engine.effective_status(record, self.clock()),
            offers=_offer_rows(engine.ranked_offers(record.offers)),
        )

    # ==================== CREATION ====================

    async def create_bid(self, data: ShipmentBidCreate) -> ShipmentBid:
        """Create an OPEN bid and tell every eligible vendor about it."""
        if not normalize_city_name(data.pickup_city) or not normalize_city_name(data.delivery_city):
            raise OperationRejected(ReasonCode.EMPTY_CITY, "Pickup and delivery cities are required")

        start, end = data.resolve_window()
        if start is None or end is None or start >= end:
            raise OperationRejected(ReasonCode.INVALID_AUCTION_WINDOW)

        for price in (data.reserved_price, data.ceiling_rate, data.step_value):
            if not math.isfinite(price) or price < 0:
                raise OperationRejected(ReasonCode.INVALID_AMOUNT)

        bid_data = data.model_dump(exclude={
            "bid_start_at", "bid_end_at",
            "bid_start_date", "bid_start_time", "bid_end_date", "bid_end_time",
            "request_date", "pickup_date", "delivery_date",
        })
        request_date = data.request_date or datetime.now(ZoneInfo(settings.AUCTION_TIMEZONE)).date()
        bid = ShipmentBid(
            **bid_data,
            request_date=request_date.isoformat(),
            pickup_date=data.pickup_date.isoformat() if data.pickup_date else None,
            delivery_date=data.delivery_date.isoformat() if data.delivery_date else None,
            bid_start_at=start.astimezone(timezone.utc),
            bid_end_at=end.astimezone(timezone.utc),
            status=BidStatus.OPEN.value,
        )
        bid.load_type = data.load_type.value
        bid.vehicle_type = data.vehicle_type.value
        self.db.add(bid)
        await commit_or_reject(self.db, "shipment bid")
        bid = await self.require_bid(bid.id, fresh=True)

        logger.info("Created shipment bid %s for %s", bid.id, lane_key(bid.pickup_city, bid.delivery_city))
        await self.broker.publish(SHIPMENT_BIDS, {"event": "created", "id": bid.id, "status": bid.status})

        vendors = await self.eligible_vendors(bid)
        await self.emitter.emit(
            [AuctionEvent(NotificationType.NEW_BID_OPPORTUNITY, bid.id)],
            lane=lane_key(bid.pickup_city, bid.delivery_city),
            vendor_names={},
            vendor_recipients=[vendor.id for vendor in vendors],
        )
        return bid

    # ==================== AUCTION OPERATIONS ====================

    def _apply(self, bid: ShipmentBid, record: BidRecord, now: datetime) -> None:
        """Copy a transition's result onto the row. Offers are only ever appended."""
        stored = {offer.sequence for offer in bid.offers}
        for offer in record.offers:
            if offer.sequence not in stored:
                bid.offers.append(BidOffer(
                    sequence=offer.sequence,
                    vendor_id=offer.vendor_id,
                    vendor_name=offer.vendor_name,
                    amount=offer.amount,
                    timestamp=offer.timestamp,
                ))
        bid.status = record.status.value
        bid.winning_vendor_id = record.winning_vendor_id
        bid.counter_offer = record.counter_offer
        bid.final_amount = record.final_amount
        bid.vehicle_details = record.vehicle_details.model_dump() if record.vehicle_details else None
        # Always touch a column so the version check runs even for offer-only changes
        bid.updated_at = now

    async def _mutate(
        self,
        bid_id: str,
        transition: Transition,
        context: Optional[TransitionContext] = None,
    ) -> Tuple[ShipmentBid, TransitionResult]:
        """
        Run `transition(record, now, **extra)` under the bid lock. `context`
        supplies `extra` from the same fresh read, so nothing the transition
        depends on is older than the bid it is applied to. A rollback expires
        every instance in the session; transitions must only close over plain
        values, never over ORM objects.
        """
        async with bid_lock(bid_id):
            for attempt in range(1, settings.BID_WRITE_MAX_RETRIES + 1):
                bid = await self.require_bid(bid_id, fresh=True)
                extra = await context(bid) if context else {}
                now = self.clock()
                record = self.to_record(bid)
                result = transition(record, now, **extra)
                if not result.ok:
                    raise OperationRejected(result.reason)
                if result.bid is record:
                    # No-op transition, e.g. closing a closed bid
                    return bid, result

                self._apply(bid, result.bid, now)
                try:
                    await self.db.commit()
                except (StaleDataError, IntegrityError) as e:
                    await self.db.rollback()
                    logger.warning("Bid %s changed while saving (attempt %d): %s", bid_id, attempt, e)
                    continue
                except SQLAlchemyError as e:
                    await self.db.rollback()
                    logger.error("Failed to persist bid %s: %s", bid_id, e)
                    raise OperationRejected(ReasonCode.NOT_PERSISTED) from e
                break
            else:
                raise OperationRejected(ReasonCode.CONCURRENT_MODIFICATION)

        bid = await self.require_bid(bid_id, fresh=True)
        await self.broker.publish(SHIPMENT_BIDS, {"event": "updated", "id": bid.id, "status": bid.status})
        await self._notify(bid, result.events)
        return bid, result

    async def _notify(self, bid: ShipmentBid, events: List[AuctionEvent]) -> None:
        if not events:
            return
        vendor_names: Dict[str, str] = {offer.vendor_id: offer.vendor_name for offer in bid.offers}
        await self.emitter.emit(events, lane=lane_key(bid.pickup_city, bid.delivery_city), vendor_names=vendor_names)

    async def _offer_context(self, bid: ShipmentBid, vendor_id: str) -> Dict[str, Any]:
        """Vendor name and lane eligibility as of this attempt's read."""
        vendor = await VendorService(self.db).get_active_vendor(vendor_id, fresh=True)
        if vendor is None:
            return {"vendor_name": vendor_id, "eligible": False}
        lanes = await LaneService(self.db).all_lanes(fresh=True)
        return {"vendor_name": vendor.name, "eligible": vendor_can_bid(bid, vendor, lanes)}

    async def place_offer(self, bid_id: str, vendor: Vendor, amount) -> ShipmentBid:
        """Vendor offer; eligibility is decided from the vendor's active lanes inside the write."""
        vendor_id = vendor.id

        bid, _ = await self._mutate(
            bid_id,
            lambda record, now, vendor_name, eligible: engine.place_offer(
                record, vendor_id, vendor_name, amount, now=now, eligible=eligible,
            ),
            context=lambda current: self._offer_context(current, vendor_id),
        )
        return bid

    async def counter_offer(self, bid_id: str, amount) -> ShipmentBid:
        bid, _ = await self._mutate(bid_id, lambda record, now: engine.counter_offer(record, amount, now=now))
        return bid

    async def respond_to_counter(self, bid_id: str, vendor_id: str, accept: bool) -> ShipmentBid:
        bid, _ = await self._mutate(bid_id, lambda record, now: engine.respond_to_counter(
            record, vendor_id, accept, now=now,
        ))
        return bid

    async def finalize(self, bid_id: str, vendor_id: str, amount=None) -> ShipmentBid:
        bid, _ = await self._mutate(bid_id, lambda record, now: engine.finalize(record, vendor_id, amount, now=now))
        return bid

    async def submit_vehicle_details(self, bid_id: str, vendor_id: str, details: dict) -> ShipmentBid:
        bid, _ = await self._mutate(bid_id, lambda record, now: engine.submit_vehicle_details(
            record, vendor_id, details, now=now,
        ))
        return bid

    async def close(self, bid_id: str) -> ShipmentBid:
        bid, _ = await self._mutate(bid_id, lambda record, now: engine.close(record, now=now))
        return bid
