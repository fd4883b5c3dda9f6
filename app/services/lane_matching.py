"""
Lane matching: city normalization, lane validation and shipment/vendor eligibility.

Every function in this module is pure and total. Inputs may be typed records
(LaneRecord, VendorRecord, BidRecord), ORM rows or raw dicts from the store;
anything that cannot be read safely is treated as "no match" and logged.
"""
import logging
from typing import Any, Iterable, List, Optional, Set

from app.core.errors import ReasonCode


logger = logging.getLogger(__name__)


def normalize_city_name(city: Any) -> str:
    """
    Canonical form of a city name for comparisons.

    Examples:
        "mumbai"        -> "MUMBAI"
        "  new   delhi" -> "NEWDELHI"
        None / 123 / {} -> ""

    Never raises.
    """
    if not isinstance(city, str):
        logger.warning("Expected city name string, received %s", type(city).__name__)
        return ""
    return "".join(city.split()).upper()


def read_field(record: Any, name: str) -> Any:
    """Read a field from a dict, model or ORM row; None when unreadable."""
    if record is None:
        return None
    try:
        if isinstance(record, dict):
            return record.get(name)
        return getattr(record, name, None)
    except Exception as e:
        logger.warning("Could not read %r from %s record: %s", name, type(record).__name__, e)
        return None


def lane_key(origin: Any, destination: Any) -> str:
    """ORIGIN-DESTINATION key of normalized cities, or "" if either is empty."""
    normalized_origin = normalize_city_name(origin)
    normalized_destination = normalize_city_name(destination)
    if not normalized_origin or not normalized_destination:
        return ""
    return f"{normalized_origin}-{normalized_destination}"


def validate_origin_destination(origin: Any, destination: Any) -> Optional[ReasonCode]:
    """Check the city pair of a lane; None when valid."""
    normalized_origin = normalize_city_name(origin)
    normalized_destination = normalize_city_name(destination)
    if not normalized_origin or not normalized_destination:
        return ReasonCode.EMPTY_CITY
    if normalized_origin == normalized_destination:
        return ReasonCode.SAME_ORIGIN_DESTINATION
    return None


def lane_exists(
    lanes: Any,
    origin: Any,
    destination: Any,
    exclude_id: Optional[str] = None,
) -> bool:
    """
    True if `lanes` holds a lane with the same normalized origin and destination.

    Invalid city pairs never "exist". Malformed entries in `lanes` are skipped.
    The caller decides which lanes to pass (the registry passes active lanes only).
    """
    if not isinstance(lanes, (list, tuple)):
        logger.warning("Expected a list of lanes, received %s", type(lanes).__name__)
        return False

    if validate_origin_destination(origin, destination) is not None:
        return False

    wanted = lane_key(origin, destination)

    for lane in lanes:
        if lane is None or isinstance(lane, (str, int, float, bool)):
            continue
        if exclude_id is not None and read_field(lane, "id") == exclude_id:
            continue
        if lane_key(read_field(lane, "origin"), read_field(lane, "destination")) == wanted:
            return True
    return False


def generate_lane_code(origin: Any, destination: Any) -> str:
    """Short mnemonic: first three normalized letters of each city, e.g. DEL-MUM."""
    normalized_origin = normalize_city_name(origin)
    normalized_destination = normalize_city_name(destination)
    if not normalized_origin or not normalized_destination:
        return ""
    return f"{normalized_origin[:3]}-{normalized_destination[:3]}"


def shipment_matches_lane(shipment: Any, lane: Any) -> bool:
    """
    Directional exact match of a shipment's pickup/delivery cities to an active lane.

    Mumbai->Pune never matches Pune->Mumbai.
    """
    if lane is None or read_field(lane, "is_active") is not True:
        return False
    if shipment is None:
        return False

    shipment_key = lane_key(read_field(shipment, "pickup_city"), read_field(shipment, "delivery_city"))
    route_key = lane_key(read_field(lane, "origin"), read_field(lane, "destination"))
    return shipment_key != "" and shipment_key == route_key


def _vendor_lane_ids(vendor: Any) -> List[str]:
    if vendor is None or read_field(vendor, "is_deleted") is True:
        return []
    lane_ids = read_field(vendor, "lanes")
    if not isinstance(lane_ids, (list, tuple, set, frozenset)):
        return []
    return [lane_id for lane_id in lane_ids if isinstance(lane_id, str)]


def _lane_index(lanes: Any) -> dict:
    index = {}
    if not isinstance(lanes, (list, tuple)):
        logger.warning("Expected a list of lanes, received %s", type(lanes).__name__)
        return index
    for lane in lanes:
        lane_id = read_field(lane, "id")
        if isinstance(lane_id, str) and lane_id:
            index[lane_id] = lane
    return index


def eligible_lane_ids(vendor: Any, lanes: Any) -> Set[str]:
    """Lane ids the vendor may serve right now: its lanes that are still active."""
    index = _lane_index(lanes)
    return {
        lane_id for lane_id in _vendor_lane_ids(vendor)
        if read_field(index.get(lane_id), "is_active") is True
    }


def _matches_any(shipment: Any, vendor_lanes: Iterable[Any]) -> bool:
    return any(shipment_matches_lane(shipment, lane) for lane in vendor_lanes)


def eligible_shipments_for_vendor(shipments: Any, vendor: Any, lanes: Any) -> list:
    """Shipments that match at least one lane the vendor is approved for."""
    if not isinstance(shipments, (list, tuple)):
        logger.warning("Expected a list of shipments, received %s", type(shipments).__name__)
        return []

    vendor_lane_ids = _vendor_lane_ids(vendor)
    if not vendor_lane_ids:
        return []

    index = _lane_index(lanes)
    vendor_lanes = [index[lane_id] for lane_id in vendor_lane_ids if lane_id in index]
    if not vendor_lanes:
        return []

    return [
        shipment for shipment in shipments
        if shipment is not None and _matches_any(shipment, vendor_lanes)
    ]


def eligible_vendors_for_shipment(shipment: Any, vendors: Any, lanes: Any) -> list:
    """Vendors allowed to bid on a shipment; used to pick who is notified on creation."""
    if shipment is None or not isinstance(vendors, (list, tuple)):
        logger.warning("Invalid inputs for vendor matching")
        return []

    index = _lane_index(lanes)
    if not index:
        return []

    eligible = []
    for vendor in vendors:
        vendor_lanes = [index[lane_id] for lane_id in _vendor_lane_ids(vendor) if lane_id in index]
        if vendor_lanes and _matches_any(shipment, vendor_lanes):
            eligible.append(vendor)
    return eligible


def vendor_can_bid(shipment: Any, vendor: Any, lanes: Any) -> bool:
    """Single-shipment form of eligible_shipments_for_vendor."""
    return bool(eligible_shipments_for_vendor([shipment], vendor, lanes))
