"""
Tests for the record parse boundary and the JSON export import.

Covers:
- camelCase legacy keys and date + time bid windows
- safe defaults for malformed optional fields
- records missing identity or route are rejected
- plan_import reports problems instead of raising
- apply_import skips ids that already exist
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from app.database import async_session_factory
from app.models import BidOffer, Lane, ShipmentBid, Vendor, VendorLane
from app.models.shipment_bid import BidStatus
from app.schemas.records import (
    parse_bid_record,
    parse_lane_record,
    parse_shipment_details,
    parse_vendor_record,
)
from app.services.record_import import apply_import, plan_import
from tests.conftest import run_async


LEGACY_BID = {
    "pickupCity": "Delhi",
    "deliveryCity": "Mumbai",
    "bidStartDate": "2026-03-01",
    "bidStartTime": "10:00",
    "bidEndDate": "2026-03-01",
    "bidEndTime": "18:00",
    "reservedPrice": "42000",
    "showL1Value": "yes",
    "offers": [
        {"vendorId": "v1", "vendorName": "Speedy", "amount": 45000, "timestamp": "2026-03-01T05:00:00Z"},
        {"vendorId": "v2", "amount": "abc", "timestamp": "2026-03-01T05:01:00Z"},
        "not an offer",
        {"vendorId": "v3", "vendorName": "Roadways", "amount": 44000, "timestamp": "2026-03-01T05:02:00Z"},
    ],
}


class TestParseBidRecord:

    def test_legacy_window_uses_auction_timezone(self):
        bid = parse_bid_record(LEGACY_BID, record_id="b1")
        assert bid.id == "b1"
        # 10:00 in Asia/Kolkata
        assert bid.bid_start_at == datetime(2026, 3, 1, 4, 30, tzinfo=timezone.utc)
        assert bid.bid_end_at == datetime(2026, 3, 1, 12, 30, tzinfo=timezone.utc)

    def test_malformed_offers_are_dropped(self):
        bid = parse_bid_record(LEGACY_BID, record_id="b1")
        assert [o.vendor_id for o in bid.offers] == ["v1", "v3"]
        # Position in the raw list stands in for the missing sequence
        assert [o.sequence for o in bid.offers] == [0, 3]

    def test_bad_optional_fields_get_defaults(self):
        bid = parse_bid_record(LEGACY_BID, record_id="b1")
        assert bid.reserved_price == 42000
        assert bid.show_l1_value is False
        assert bid.status == BidStatus.OPEN

    @pytest.mark.parametrize("offers", [None, "oops", 12, {"x": "not an offer"}])
    def test_non_list_offers_become_empty(self, offers):
        bid = parse_bid_record({**LEGACY_BID, "offers": offers}, record_id="b1")
        assert bid is not None
        assert bid.offers == []

    def test_offers_stored_as_map(self):
        offers = {"a": LEGACY_BID["offers"][0], "b": LEGACY_BID["offers"][3]}
        bid = parse_bid_record({**LEGACY_BID, "offers": offers}, record_id="b1")
        assert [o.vendor_id for o in bid.offers] == ["v1", "v3"]

    @pytest.mark.parametrize("status,expected", [
        ("negotiating", BidStatus.NEGOTIATING),
        ("FINALIZED", BidStatus.FINALIZED),
        ("PAUSED", BidStatus.CLOSED),
        (7, BidStatus.CLOSED),
    ])
    def test_status_values(self, status, expected):
        bid = parse_bid_record({**LEGACY_BID, "status": status}, record_id="b1")
        assert bid.status == expected

    def test_negative_prices_and_amounts_dropped(self):
        bid = parse_bid_record({**LEGACY_BID, "ceilingRate": -10, "counterOffer": 0, "finalAmount": "nan"}, record_id="b1")
        assert bid.ceiling_rate == 0.0
        assert bid.counter_offer is None
        assert bid.final_amount is None

    def test_missing_route_or_window_is_rejected(self):
        assert parse_bid_record({**LEGACY_BID, "pickupCity": None}, record_id="b1") is None
        assert parse_bid_record({**LEGACY_BID, "bidEndTime": "25:99"}, record_id="b1") is None
        assert parse_bid_record("b1") is None

    def test_bad_vehicle_details_dropped(self):
        bid = parse_bid_record({**LEGACY_BID, "vehicleDetails": "MH12"}, record_id="b1")
        assert bid.vehicle_details is None


class TestParseLaneAndVendor:

    def test_lane_defaults(self):
        lane = parse_lane_record({"origin": "Delhi", "destination": "Mumbai", "isActive": "maybe"}, record_id="L-1")
        assert lane.id == "L-1"
        assert lane.is_active is True

    def test_lane_without_destination(self):
        assert parse_lane_record({"id": "L-1", "origin": "Delhi"}) is None
        assert parse_lane_record(["Delhi", "Mumbai"]) is None

    def test_vendor_lane_map_and_junk(self):
        vendor = parse_vendor_record({"name": "Speedy", "lanes": {"0": "L-1", "1": 5, "2": "", "3": "L-2"}}, record_id="v1")
        assert vendor.lanes == ["L-1", "L-2"]

    def test_vendor_malformed_lanes_become_empty(self):
        vendor = parse_vendor_record({"id": "v1", "lanes": "L-1", "isDeleted": "no"})
        assert vendor.lanes == []
        assert vendor.is_deleted is False

    def test_shipment_details_defaults(self):
        details = parse_shipment_details({"loadType": " ", "noOfPackages": "3", "weightKg": -4, "pickupPincode": 400001})
        assert details.load_type == "FTL"
        assert details.no_of_packages == 3
        assert details.weight_kg == 0.0
        assert details.pickup_pincode == "400001"

    def test_shipment_details_descriptive_fields(self):
        details = parse_shipment_details({
            "requestDate": "2026-02-27",
            "entryLocation": "Gate 4",
            "product": "Ceramic tiles",
            "packagingType": "Pallets",
            "pickupParty": "Acme Tiles",
            "deliveryParty": 17,
        })
        assert details.request_date == "2026-02-27"
        assert details.entry_location == "Gate 4"
        assert details.product == "Ceramic tiles"
        assert details.packaging_type == "Pallets"
        assert details.pickup_party == "Acme Tiles"
        assert details.delivery_party == "17"


EXPORT = {
    "lanes": {
        "L-1": {"origin": "Delhi", "destination": "Mumbai"},
        "L-2": {"origin": "delhi", "destination": "MUMBAI"},
        "L-3": {"origin": "Goa", "destination": "goa"},
        "L-4": {"origin": 5, "destination": "Pune"},
        "L-5": {"origin": "Mumbai", "destination": "Pune", "isActive": False},
    },
    "vendors": [
        {"id": "v1", "name": "Speedy", "lanes": ["L-1", "Delhi-Mumbai", "L-404"]},
        {"name": "Nameless"},
    ],
    "shipmentBids": {
        "b1": {
            "pickupCity": "Delhi",
            "deliveryCity": "Mumbai",
            "bidStartAt": "2026-03-01T04:30:00Z",
            "bidEndAt": "2026-03-01T12:30:00Z",
            "materialType": "Steel",
        },
        "b2": {"pickupCity": "Delhi"},
    },
}


class TestPlanImport:

    def setup_method(self):
        self.report = plan_import(EXPORT)

    def test_readable_records(self):
        assert [lane.id for lane in self.report.lanes] == ["L-1", "L-2", "L-5"]
        assert [vendor.id for vendor in self.report.vendors] == ["v1"]
        assert [bid.id for bid, _ in self.report.bids] == ["b1"]

    def test_duplicate_active_lane_is_deactivated(self):
        lanes = {lane.id: lane for lane in self.report.lanes}
        assert lanes["L-1"].is_active is True
        assert lanes["L-2"].is_active is False
        assert "lane L-2: duplicate of active lane L-1" in self.report.problems

    def test_invalid_lanes_reported(self):
        assert "lane L-3: SameOriginDestination" in self.report.problems
        assert any(p.startswith("lane L-4") for p in self.report.problems)

    def test_vendor_lane_refs_resolved(self):
        assert self.report.vendors[0].lanes == ["L-1"]
        assert "vendor v1: unknown lane 'L-404'" in self.report.problems

    def test_bid_without_offers_still_imported(self):
        assert any(p.startswith("bid b1: missing offers array") for p in self.report.problems)
        _, details = self.report.bids[0]
        assert details.material_type == "Steel"

    def test_report_is_not_ok(self):
        assert self.report.ok is False
        assert "3 lane(s), 1 vendor(s), 1 bid(s)" in self.report.summary()

    def test_root_must_be_object(self):
        report = plan_import(["lanes"])
        assert report.lanes == []
        assert report.problems == ["export root must be an object, got list"]

    def test_clean_export_is_ok(self):
        report = plan_import({"lanes": [{"id": "L-1", "origin": "Pune", "destination": "Goa"}]})
        assert report.ok


class TestApplyImport:

    async def _import_twice(self, report):
        async with async_session_factory() as db:
            first = await apply_import(db, report)
        async with async_session_factory() as db:
            second = await apply_import(db, report)
        async with async_session_factory() as db:
            counts = {
                "lanes": (await db.execute(select(func.count(Lane.id)))).scalar(),
                "vendors": (await db.execute(select(func.count(Vendor.id)))).scalar(),
                "links": (await db.execute(select(func.count()).select_from(VendorLane))).scalar(),
                "bids": (await db.execute(select(func.count(ShipmentBid.id)))).scalar(),
            }
            lane = await db.get(Lane, "L-1")
        return first, second, counts, lane

    def test_insert_then_skip_existing(self, fresh_db):
        first, second, counts, lane = run_async(self._import_twice(plan_import(EXPORT)))

        assert first == {"lanes": 3, "vendors": 1, "bids": 1}
        assert second == {"lanes": 0, "vendors": 0, "bids": 0}
        assert counts == {"lanes": 3, "vendors": 1, "links": 1, "bids": 1}
        assert (lane.origin, lane.destination, lane.code) == ("DELHI", "MUMBAI", "DEL-MUM")

    def test_offers_renumbered(self, fresh_db):
        export = {"bids": [{**LEGACY_BID, "id": "b1"}]}

        async def go():
            async with async_session_factory() as db:
                await apply_import(db, plan_import(export))
            async with async_session_factory() as db:
                rows = await db.execute(select(BidOffer).order_by(BidOffer.sequence))
                return [(offer.sequence, offer.vendor_id) for offer in rows.scalars()]

        assert run_async(go()) == [(0, "v1"), (1, "v3")]

    def test_route_already_active_is_imported_inactive(self, fresh_db):
        export = {
            "lanes": [{"id": "L-9", "origin": "Delhi", "destination": "Mumbai"}],
            "bids": [{**LEGACY_BID, "id": "b1", "product": "Steel coils", "pickupParty": "Tata Steel"}],
        }

        async def go():
            async with async_session_factory() as db:
                db.add(Lane(id="L-1", origin="DELHI", destination="MUMBAI", name="DELHI-MUMBAI", code="DEL-MUM"))
                await db.commit()
            async with async_session_factory() as db:
                inserted = await apply_import(db, plan_import(export))
            async with async_session_factory() as db:
                imported = await db.get(Lane, "L-9")
                bid = await db.get(ShipmentBid, "b1")
                return inserted, imported.is_active, (bid.product, bid.pickup_party)

        inserted, is_active, details = run_async(go())
        assert inserted == {"lanes": 1, "vendors": 0, "bids": 1}
        assert is_active is False
        assert details == ("Steel coils", "Tata Steel")
