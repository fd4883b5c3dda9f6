"""Lane API endpoints."""
from typing import Optional

from fastapi import APIRouter, Query, Response, status

from app.api.deps import DB, AdminUser, CurrentUser
from app.core.errors import OperationRejected, ReasonCode
from app.schemas.lane import LaneCreate, LaneUpdate, LaneResponse, LaneListResponse
from app.services.lane_service import LaneService


router = APIRouter()


# ==================== LANE CRUD ====================

@router.get("", response_model=LaneListResponse)
async def list_lanes(
    db: DB,
    user: CurrentUser,
    is_active: Optional[bool] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """Get lanes, optionally filtered by active flag."""
    lanes, total = await LaneService(db).get_lanes(is_active=is_active, skip=skip, limit=limit)
    return LaneListResponse(
        items=[LaneResponse.model_validate(lane) for lane in lanes],
        total=total,
    )


@router.get("/{lane_id}", response_model=LaneResponse)
async def get_lane(lane_id: str, db: DB, user: CurrentUser):
    """Get lane by ID."""
    lane = await LaneService(db).get_lane(lane_id)
    if not lane:
        raise OperationRejected(ReasonCode.LANE_NOT_FOUND)
    return LaneResponse.model_validate(lane)


@router.post("", response_model=LaneResponse, status_code=status.HTTP_201_CREATED)
async def create_lane(data: LaneCreate, db: DB, admin: AdminUser):
    """
    Create a lane.
    Rejected with EmptyCity, SameOriginDestination or DuplicateLane.
    """
    lane = await LaneService(db).create_lane(data)
    return LaneResponse.model_validate(lane)


@router.put("/{lane_id}", response_model=LaneResponse)
async def update_lane(lane_id: str, data: LaneUpdate, db: DB, admin: AdminUser):
    """Update lane cities or active flag."""
    lane = await LaneService(db).update_lane(lane_id, data)
    return LaneResponse.model_validate(lane)


@router.delete("/{lane_id}", status_code=status.HTTP_204_NO_CONTENT)
async def deactivate_lane(lane_id: str, db: DB, admin: AdminUser):
    """Deactivate a lane (soft delete). Unknown or inactive lanes are a no-op."""
    await LaneService(db).deactivate_lane(lane_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
