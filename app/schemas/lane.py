"""Pydantic schemas for lanes."""
from typing import List, Optional

from pydantic import BaseModel, Field

from app.schemas.base import BaseCreateSchema, BaseResponseSchema, BaseUpdateSchema, UTCDateTime


class LaneCreate(BaseCreateSchema):
    """Lane creation schema. Cities are free text; validation happens in the registry."""
    origin: str = Field(..., max_length=100)
    destination: str = Field(..., max_length=100)


class LaneUpdate(BaseUpdateSchema):
    """Lane update schema."""
    origin: Optional[str] = Field(None, max_length=100)
    destination: Optional[str] = Field(None, max_length=100)
    is_active: Optional[bool] = None


class LaneResponse(BaseResponseSchema):
    """Lane response schema."""
    id: str
    name: str
    origin: str
    destination: str
    code: str
    is_active: bool
    created_at: UTCDateTime
    updated_at: UTCDateTime


class LaneListResponse(BaseModel):
    """Lane list."""
    items: List[LaneResponse]
    total: int
