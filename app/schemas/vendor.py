"""Pydantic schemas for transport vendors."""
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from app.models.shipment_bid import VehicleType
from app.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema, UTCDateTime


class VendorCreate(BaseCreateSchema):
    """Vendor creation schema."""
    id: Optional[str] = Field(
        None,
        max_length=64,
        description="Identity-provider user id of the vendor; generated when omitted"
    )
    name: str = Field(..., min_length=2, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    contact_name: Optional[str] = Field(None, max_length=200)
    vehicle_types: List[VehicleType] = Field(default_factory=list)
    lanes: List[str] = Field(default_factory=list, description="Approved lane ids")


class VendorUpdate(BaseUpdateSchema):
    """Vendor update schema."""
    name: Optional[str] = Field(None, min_length=2, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(None, max_length=20)
    contact_name: Optional[str] = Field(None, max_length=200)
    vehicle_types: Optional[List[VehicleType]] = None
    lanes: Optional[List[str]] = None


class VendorResponse(BaseResponseSchema):
    """Vendor response schema."""
    id: str
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    contact_name: Optional[str] = None
    vehicle_types: List[str] = Field(default_factory=list)
    lanes: List[str] = Field(default_factory=list)
    is_deleted: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


class VendorListResponse(BaseModel):
    """Vendor list."""
    items: List[VendorResponse]
    total: int


class EligibleLanesResponse(BaseModel):
    """Lanes a vendor can currently bid on."""
    vendor_id: str
    lane_ids: List[str]
