"""Transport vendor models."""
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import IdType, JSONType, new_id
from app.models.lane import Lane


class Vendor(Base):
    """
    Transport vendor allowed to bid on shipments of its approved lanes.
    Soft-deleted via `is_deleted` so historical offers keep a valid reference.
    """
    __tablename__ = "vendors"

    id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)
    phone: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    contact_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    vehicle_types: Mapped[list] = mapped_column(
        JSONType,
        default=list,
        comment="Capability tags: Truck, Container, LCV, Trailer"
    )

    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    # Relationships
    lane_links: Mapped[List["VendorLane"]] = relationship(
        "VendorLane",
        back_populates="vendor",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def lanes(self) -> List[str]:
        """Ids of every lane the vendor is approved for, active or not."""
        return [link.lane_id for link in self.lane_links]

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "contact_name": self.contact_name,
            "vehicle_types": list(self.vehicle_types or []),
            "lanes": self.lanes,
            "is_deleted": self.is_deleted,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Vendor(id='{self.id}', name='{self.name}')>"


class VendorLane(Base):
    """
    Vendor to lane approval. May point at an inactive lane, which then
    contributes no eligibility until reactivated.
    """
    __tablename__ = "vendor_lanes"

    vendor_id: Mapped[str] = mapped_column(
        IdType,
        ForeignKey("vendors.id", ondelete="CASCADE"),
        primary_key=True
    )
    lane_id: Mapped[str] = mapped_column(
        IdType,
        ForeignKey("lanes.id"),
        primary_key=True,
        index=True
    )

    vendor: Mapped["Vendor"] = relationship("Vendor", back_populates="lane_links")
    lane: Mapped["Lane"] = relationship("Lane")

    def __repr__(self) -> str:
        return f"<VendorLane(vendor='{self.vendor_id}', lane='{self.lane_id}')>"
