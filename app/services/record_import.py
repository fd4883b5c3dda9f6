"""
Import of lane, vendor and bid records from a JSON export.

plan_import() runs every raw record through the parse boundary and collects a
report of what is salvageable and what is not; apply_import() inserts the
salvageable records that are not in the database yet.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import commit_or_reject
from app.models.lane import Lane
from app.models.shipment_bid import BidOffer, ShipmentBid
from app.models.vendor import Vendor, VendorLane
from app.schemas.records import (
    BidRecord,
    LaneRecord,
    ShipmentDetailsRecord,
    VendorRecord,
    parse_bid_record,
    parse_lane_record,
    parse_shipment_details,
    parse_vendor_record,
)
from app.services.lane_matching import (
    generate_lane_code,
    lane_key,
    normalize_city_name,
    validate_origin_destination,
)


logger = logging.getLogger(__name__)

SECTION_KEYS = {
    "lanes": ("lanes",),
    "vendors": ("vendors",),
    "bids": ("bids", "shipmentBids", "shipment_bids"),
}


@dataclass
class ImportReport:
    lanes: List[LaneRecord] = field(default_factory=list)
    vendors: List[VendorRecord] = field(default_factory=list)
    bids: List[Tuple[BidRecord, ShipmentDetailsRecord]] = field(default_factory=list)
    problems: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.problems

    def summary(self) -> str:
        return (
            f"{len(self.lanes)} lane(s), {len(self.vendors)} vendor(s), "
            f"{len(self.bids)} bid(s) readable; {len(self.problems)} problem(s)"
        )


def _entries(data: Dict[str, Any], section: str) -> List[Tuple[Optional[str], Any]]:
    """(key, record) pairs of a section stored either as a keyed map or a list."""
    raw = None
    for key in SECTION_KEYS[section]:
        if key in data:
            raw = data[key]
            break
    if isinstance(raw, dict):
        return list(raw.items())
    if isinstance(raw, list):
        return [(None, item) for item in raw]
    return []


def plan_import(data: Any) -> ImportReport:
    """Parse an export; never raises for malformed records, it reports them."""
    report = ImportReport()
    if not isinstance(data, dict):
        report.problems.append(f"export root must be an object, got {type(data).__name__}")
        return report

    # Lanes
    lane_ids_by_route: Dict[str, str] = {}
    for key, raw in _entries(data, "lanes"):
        lane = parse_lane_record(raw, record_id=key)
        if lane is None:
            report.problems.append(f"lane {key or '?'}: missing id, origin or destination")
            continue
        reason = validate_origin_destination(lane.origin, lane.destination)
        if reason is not None:
            report.problems.append(f"lane {lane.id}: {reason.value}")
            continue
        route = lane_key(lane.origin, lane.destination)
        if lane.is_active and route in lane_ids_by_route:
            report.problems.append(f"lane {lane.id}: duplicate of active lane {lane_ids_by_route[route]}")
            lane = lane.model_copy(update={"is_active": False})
        if lane.is_active:
            lane_ids_by_route[route] = lane.id
        report.lanes.append(lane)

    known_lanes = {lane.id for lane in report.lanes}
    lane_ids_by_name = {lane_key(lane.origin, lane.destination): lane.id for lane in report.lanes}
    lane_ids_by_name.update(lane_ids_by_route)

    # Vendors; lanes may be referenced by id or by ORIGIN-DESTINATION name
    for key, raw in _entries(data, "vendors"):
        vendor = parse_vendor_record(raw, record_id=key)
        if vendor is None:
            report.problems.append(f"vendor {key or '?'}: missing id")
            continue
        resolved = []
        for ref in vendor.lanes:
            lane_id = ref if ref in known_lanes else lane_ids_by_name.get(_name_key(ref))
            if lane_id is None:
                report.problems.append(f"vendor {vendor.id}: unknown lane {ref!r}")
                continue
            if lane_id not in resolved:
                resolved.append(lane_id)
        report.vendors.append(vendor.model_copy(update={"lanes": resolved}))

    # Bids
    for key, raw in _entries(data, "bids"):
        if isinstance(raw, dict) and not isinstance(raw.get("offers"), (list, dict)):
            report.problems.append(f"bid {key or raw.get('id', '?')}: missing offers array, using none")
        bid = parse_bid_record(raw, record_id=key)
        if bid is None:
            report.problems.append(f"bid {key or '?'}: missing id, route or bid window")
            continue
        report.bids.append((bid, parse_shipment_details(raw)))

    logger.info("Import plan: %s", report.summary())
    return report


def _name_key(ref: str) -> str:
    """Normalize a lane name like "Delhi-Mumbai" to the DELHI-MUMBAI form."""
    origin, _, destination = ref.partition("-")
    return lane_key(origin, destination)


async def apply_import(db: AsyncSession, report: ImportReport) -> Dict[str, int]:
    """Insert records whose id is not taken yet. Returns inserted counts per section."""
    inserted = {"lanes": 0, "vendors": 0, "bids": 0}

    result = await db.execute(select(Lane.name).where(Lane.is_active.is_(True)))
    active_routes = set(result.scalars().all())

    for record in report.lanes:
        if await db.get(Lane, record.id):
            continue
        origin = normalize_city_name(record.origin)
        destination = normalize_city_name(record.destination)
        name = lane_key(origin, destination)
        is_active = record.is_active
        if is_active and name in active_routes:
            logger.warning("Lane %s: route %s is already active, importing it inactive", record.id, name)
            is_active = False
        if is_active:
            active_routes.add(name)
        db.add(Lane(
            id=record.id,
            origin=origin,
            destination=destination,
            name=name,
            code=record.code or generate_lane_code(origin, destination),
            is_active=is_active,
        ))
        inserted["lanes"] += 1
    await db.flush()

    for record in report.vendors:
        if await db.get(Vendor, record.id):
            continue
        vendor = Vendor(
            id=record.id,
            name=record.name or record.id,
            email=record.email,
            phone=record.phone,
            contact_name=record.contact_name,
            vehicle_types=record.vehicle_types,
            is_deleted=record.is_deleted,
        )
        vendor.lane_links = [VendorLane(lane_id=lane_id) for lane_id in record.lanes]
        db.add(vendor)
        inserted["vendors"] += 1

    for record, details in report.bids:
        if await db.get(ShipmentBid, record.id):
            continue
        bid = ShipmentBid(
            id=record.id,
            **details.model_dump(),
            pickup_city=record.pickup_city,
            delivery_city=record.delivery_city,
            reserved_price=record.reserved_price,
            ceiling_rate=record.ceiling_rate,
            step_value=record.step_value,
            bid_start_at=record.bid_start_at,
            bid_end_at=record.bid_end_at,
            show_l1_value=record.show_l1_value,
            status=record.status.value,
            winning_vendor_id=record.winning_vendor_id,
            counter_offer=record.counter_offer,
            final_amount=record.final_amount,
            vehicle_details=record.vehicle_details.model_dump() if record.vehicle_details else None,
        )
        # Renumber so sequences stay unique even when the export had none
        ordered = sorted(record.offers, key=lambda offer: (offer.sequence, offer.timestamp))
        bid.offers = [
            BidOffer(
                sequence=position,
                vendor_id=offer.vendor_id,
                vendor_name=offer.vendor_name,
                amount=offer.amount,
                timestamp=offer.timestamp,
            )
            for position, offer in enumerate(ordered)
        ]
        db.add(bid)
        inserted["bids"] += 1

    await commit_or_reject(db, "imported records")
    return inserted
