"""Service for transport vendors and their approved lanes."""
import logging
from typing import Iterable, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import OperationRejected, ReasonCode
from app.database import commit_or_reject
from app.models.lane import Lane
from app.models.vendor import Vendor, VendorLane
from app.schemas.vendor import VendorCreate, VendorUpdate
from app.services.lane_matching import eligible_lane_ids
from app.services.realtime import VENDORS, RealtimeBroker, broker as default_broker


logger = logging.getLogger(__name__)


class VendorService:
    """Vendor CRUD and the vendor eligibility index."""

    def __init__(self, db: AsyncSession, broker: RealtimeBroker = default_broker):
        self.db = db
        self.broker = broker

    # ==================== VENDOR CRUD ====================

    async def get_vendor(self, vendor_id: str, fresh: bool = False) -> Optional[Vendor]:
        """Get vendor by ID, deleted or not. `fresh` re-reads it and its lane links from the store."""
        if not fresh:
            return await self.db.get(Vendor, vendor_id)
        stmt = select(Vendor).where(Vendor.id == vendor_id).execution_options(populate_existing=True)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def get_active_vendor(self, vendor_id: str, fresh: bool = False) -> Optional[Vendor]:
        vendor = await self.get_vendor(vendor_id, fresh=fresh)
        if vendor is None or vendor.is_deleted:
            return None
        return vendor

    async def get_vendors(
        self,
        include_deleted: bool = False,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[Vendor], int]:
        """Get paginated vendors."""
        stmt = select(Vendor).order_by(Vendor.name)
        count_stmt = select(func.count(Vendor.id))
        if not include_deleted:
            stmt = stmt.where(Vendor.is_deleted == False)  # noqa: E712
            count_stmt = count_stmt.where(Vendor.is_deleted == False)  # noqa: E712

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all()), total

    async def active_vendors(self) -> List[Vendor]:
        result = await self.db.execute(select(Vendor).where(Vendor.is_deleted == False))  # noqa: E712
        return list(result.scalars().all())

    async def _check_lanes(self, lane_ids: Iterable[str]) -> List[str]:
        """De-duplicated lane ids; every id must reference a known lane (active or not)."""
        wanted = list(dict.fromkeys(lane_ids))
        if not wanted:
            return []
        result = await self.db.execute(select(Lane.id).where(Lane.id.in_(wanted)))
        known = set(result.scalars().all())
        missing = [lane_id for lane_id in wanted if lane_id not in known]
        if missing:
            raise OperationRejected(ReasonCode.LANE_NOT_FOUND, f"Unknown lane(s): {', '.join(missing)}")
        return wanted

    def _set_lanes(self, vendor: Vendor, lane_ids: List[str]) -> None:
        wanted = set(lane_ids)
        for link in list(vendor.lane_links):
            if link.lane_id not in wanted:
                vendor.lane_links.remove(link)
        existing = set(vendor.lanes)
        for lane_id in lane_ids:
            if lane_id not in existing:
                vendor.lane_links.append(VendorLane(lane_id=lane_id))

    async def create_vendor(self, data: VendorCreate) -> Vendor:
        """Create new vendor with its approved lanes."""
        duplicate = OperationRejected(ReasonCode.DUPLICATE_VENDOR, f"Vendor {data.id} already exists")
        if data.id and await self.get_vendor(data.id):
            raise duplicate

        lane_ids = await self._check_lanes(data.lanes)
        vendor_data = data.model_dump(exclude={"id", "lanes"})
        vendor_data["vehicle_types"] = [vt.value for vt in data.vehicle_types]
        if vendor_data.get("email"):
            vendor_data["email"] = str(vendor_data["email"])

        vendor = Vendor(**vendor_data)
        if data.id:
            vendor.id = data.id
        vendor.lane_links = [VendorLane(lane_id=lane_id) for lane_id in lane_ids]
        self.db.add(vendor)
        await commit_or_reject(self.db, f"vendor {data.name}", on_conflict=duplicate if data.id else None)
        await self.db.refresh(vendor)

        logger.info("Created vendor %s with %d lane(s)", vendor.id, len(lane_ids))
        await self.broker.publish(VENDORS, {"event": "created", "id": vendor.id})
        return vendor

    async def update_vendor(self, vendor_id: str, data: VendorUpdate) -> Vendor:
        """Update vendor. `lanes`, when given, replaces the approved lane set."""
        vendor = await self.get_active_vendor(vendor_id)
        if not vendor:
            raise OperationRejected(ReasonCode.VENDOR_NOT_FOUND)

        update_data = data.model_dump(exclude_unset=True)
        lane_ids = update_data.pop("lanes", None)
        if lane_ids is not None:
            self._set_lanes(vendor, await self._check_lanes(lane_ids))

        if update_data.get("vehicle_types") is not None:
            update_data["vehicle_types"] = [vt.value for vt in data.vehicle_types]
        if update_data.get("email"):
            update_data["email"] = str(update_data["email"])
        for key, value in update_data.items():
            if value is None and key in ("name", "vehicle_types"):
                continue
            setattr(vendor, key, value)

        await commit_or_reject(self.db, f"vendor {vendor.id}")
        await self.db.refresh(vendor)

        await self.broker.publish(VENDORS, {"event": "updated", "id": vendor.id})
        return vendor

    async def delete_vendor(self, vendor_id: str) -> Vendor:
        """Soft delete. Past offers keep pointing at the vendor record."""
        vendor = await self.get_vendor(vendor_id)
        if not vendor:
            raise OperationRejected(ReasonCode.VENDOR_NOT_FOUND)
        if vendor.is_deleted:
            return vendor

        vendor.is_deleted = True
        await commit_or_reject(self.db, f"vendor {vendor.id}")
        await self.db.refresh(vendor)

        logger.info("Deleted vendor %s", vendor.id)
        await self.broker.publish(VENDORS, {"event": "deleted", "id": vendor.id})
        return vendor

    # ==================== ELIGIBILITY ====================

    async def eligible_lanes(self, vendor_id: str) -> List[str]:
        """Ids of the vendor's lanes that are active right now."""
        vendor = await self.get_vendor(vendor_id)
        if not vendor:
            raise OperationRejected(ReasonCode.VENDOR_NOT_FOUND)

        result = await self.db.execute(select(Lane).where(Lane.id.in_(vendor.lanes)))
        return sorted(eligible_lane_ids(vendor, list(result.scalars().all())))
