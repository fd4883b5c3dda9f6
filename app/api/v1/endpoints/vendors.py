"""Transport vendor API endpoints."""
from fastapi import APIRouter, Query, Response, status

from app.api.deps import DB, AdminUser, CurrentUser
from app.core.errors import OperationRejected, ReasonCode
from app.schemas.vendor import (
    VendorCreate,
    VendorUpdate,
    VendorResponse,
    VendorListResponse,
    EligibleLanesResponse,
)
from app.services.vendor_service import VendorService


router = APIRouter()


# ==================== VENDOR CRUD ====================

@router.get("", response_model=VendorListResponse)
async def list_vendors(
    db: DB,
    admin: AdminUser,
    include_deleted: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
):
    """Get vendors."""
    vendors, total = await VendorService(db).get_vendors(
        include_deleted=include_deleted, skip=skip, limit=limit,
    )
    return VendorListResponse(
        items=[VendorResponse.model_validate(v) for v in vendors],
        total=total,
    )


@router.get("/{vendor_id}", response_model=VendorResponse)
async def get_vendor(vendor_id: str, db: DB, user: CurrentUser):
    """Get vendor by ID. Vendors may only read their own profile."""
    if not user.is_admin and user.id != vendor_id:
        raise OperationRejected(ReasonCode.FORBIDDEN)

    vendor = await VendorService(db).get_vendor(vendor_id)
    if not vendor:
        raise OperationRejected(ReasonCode.VENDOR_NOT_FOUND)
    return VendorResponse.model_validate(vendor)


@router.post("", response_model=VendorResponse, status_code=status.HTTP_201_CREATED)
async def create_vendor(data: VendorCreate, db: DB, admin: AdminUser):
    """Create a vendor with its approved lanes."""
    vendor = await VendorService(db).create_vendor(data)
    return VendorResponse.model_validate(vendor)


@router.put("/{vendor_id}", response_model=VendorResponse)
async def update_vendor(vendor_id: str, data: VendorUpdate, db: DB, admin: AdminUser):
    """Update a vendor; `lanes` replaces the approved lane set."""
    vendor = await VendorService(db).update_vendor(vendor_id, data)
    return VendorResponse.model_validate(vendor)


@router.delete("/{vendor_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_vendor(vendor_id: str, db: DB, admin: AdminUser):
    """Deactivate a vendor (soft delete)."""
    await VendorService(db).delete_vendor(vendor_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{vendor_id}/eligible-lanes", response_model=EligibleLanesResponse)
async def get_eligible_lanes(vendor_id: str, db: DB, user: CurrentUser):
    """Lanes the vendor can bid on right now (approved and active)."""
    if not user.is_admin and user.id != vendor_id:
        raise OperationRejected(ReasonCode.FORBIDDEN)

    lane_ids = await VendorService(db).eligible_lanes(vendor_id)
    return EligibleLanesResponse(vendor_id=vendor_id, lane_ids=lane_ids)
