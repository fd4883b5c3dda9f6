"""Lane registry: create, edit and deactivate approved routes."""
import logging
from typing import List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import OperationRejected, ReasonCode
from app.core.locks import KeyedLocks
from app.database import commit_or_reject
from app.models.lane import Lane
from app.schemas.lane import LaneCreate, LaneUpdate
from app.services.lane_matching import (
    generate_lane_code,
    lane_exists,
    lane_key,
    normalize_city_name,
    validate_origin_destination,
)
from app.services.realtime import LANES, RealtimeBroker, broker as default_broker


logger = logging.getLogger(__name__)

# Serializes check-then-write per ORIGIN-DESTINATION inside this process;
# uq_lanes_active_route backs it up across processes
route_lock = KeyedLocks()


def duplicate_lane(origin: str, destination: str) -> OperationRejected:
    return OperationRejected(
        ReasonCode.DUPLICATE_LANE,
        f"Lane {lane_key(origin, destination)} already exists",
    )


class LaneService:
    """Service for lane management."""

    def __init__(self, db: AsyncSession, broker: RealtimeBroker = default_broker):
        self.db = db
        self.broker = broker

    # ==================== QUERIES ====================

    async def get_lane(self, lane_id: str) -> Optional[Lane]:
        """Get lane by ID."""
        return await self.db.get(Lane, lane_id)

    async def get_lanes(
        self,
        is_active: Optional[bool] = None,
        skip: int = 0,
        limit: int = 100
    ) -> Tuple[List[Lane], int]:
        """Get lanes ordered by name, optionally only active or inactive ones."""
        stmt = select(Lane).order_by(Lane.name)
        count_stmt = select(func.count(Lane.id))
        if is_active is not None:
            stmt = stmt.where(Lane.is_active == is_active)
            count_stmt = count_stmt.where(Lane.is_active == is_active)

        total = (await self.db.execute(count_stmt)).scalar() or 0
        result = await self.db.execute(stmt.offset(skip).limit(limit))
        return list(result.scalars().all()), total

    async def all_lanes(self, fresh: bool = False) -> List[Lane]:
        """Every lane, active or not; eligibility checks filter on is_active themselves."""
        stmt = select(Lane)
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def active_lanes(self, fresh: bool = False) -> List[Lane]:
        """Active lanes. `fresh` overwrites whatever the session already holds."""
        stmt = select(Lane).where(Lane.is_active == True)  # noqa: E712
        if fresh:
            stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # ==================== MUTATIONS ====================

    async def _check_route(self, origin: str, destination: str, exclude_id: Optional[str] = None) -> None:
        """Caller holds the route lock; reads active lanes fresh from the store."""
        if lane_exists(await self.active_lanes(fresh=True), origin, destination, exclude_id=exclude_id):
            raise duplicate_lane(origin, destination)

    async def create_lane(self, data: LaneCreate) -> Lane:
        """Create a lane; duplicates are checked against active lanes only."""
        reason = validate_origin_destination(data.origin, data.destination)
        if reason is not None:
            raise OperationRejected(reason)

        origin = normalize_city_name(data.origin)
        destination = normalize_city_name(data.destination)
        async with route_lock(lane_key(origin, destination)):
            await self._check_route(origin, destination)
            lane = Lane(
                origin=origin,
                destination=destination,
                name=lane_key(origin, destination),
                code=generate_lane_code(origin, destination),
                is_active=True,
            )
            self.db.add(lane)
            await commit_or_reject(self.db, f"lane {lane.name}", on_conflict=duplicate_lane(origin, destination))
        await self.db.refresh(lane)

        logger.info("Created lane %s (%s)", lane.name, lane.id)
        await self.broker.publish(LANES, {"event": "created", "id": lane.id})
        return lane

    async def update_lane(self, lane_id: str, data: LaneUpdate) -> Lane:
        """Update lane cities or active flag; the result must not duplicate another active lane."""
        lane = await self.get_lane(lane_id)
        if not lane:
            raise OperationRejected(ReasonCode.LANE_NOT_FOUND)

        update_data = data.model_dump(exclude_unset=True)
        origin = update_data.get("origin", lane.origin)
        destination = update_data.get("destination", lane.destination)
        is_active = update_data.get("is_active", lane.is_active)
        if is_active is None:
            is_active = lane.is_active

        reason = validate_origin_destination(origin, destination)
        if reason is not None:
            raise OperationRejected(reason)

        origin = normalize_city_name(origin)
        destination = normalize_city_name(destination)
        async with route_lock(lane_key(origin, destination)):
            if is_active:
                await self._check_route(origin, destination, exclude_id=lane.id)

            lane.origin = origin
            lane.destination = destination
            lane.name = lane_key(origin, destination)
            lane.code = generate_lane_code(origin, destination)
            lane.is_active = is_active
            await commit_or_reject(self.db, f"lane {lane.id}", on_conflict=duplicate_lane(origin, destination))
        await self.db.refresh(lane)

        await self.broker.publish(LANES, {"event": "updated", "id": lane.id})
        return lane

    async def deactivate_lane(self, lane_id: str) -> Optional[Lane]:
        """
        Soft delete. Vendor links stay; the lane just stops granting eligibility.
        Unknown or already inactive lanes are left alone.
        """
        lane = await self.get_lane(lane_id)
        if not lane or not lane.is_active:
            return lane

        lane.is_active = False
        await commit_or_reject(self.db, f"lane {lane.id}")
        await self.db.refresh(lane)

        logger.info("Deactivated lane %s (%s)", lane.name, lane.id)
        await self.broker.publish(LANES, {"event": "deactivated", "id": lane.id})
        return lane
