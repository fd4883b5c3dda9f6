"""Shipment bid (reverse auction) models."""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from sqlalchemy import String, Boolean, DateTime, ForeignKey, Integer, Text, Float, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.database import Base
from app.db_types import IdType, JSONType, new_id


class BidStatus(str, Enum):
    """Auction lifecycle states."""
    OPEN = "OPEN"                 # Accepting offers inside the bid window
    CLOSED = "CLOSED"             # Expired without resolution or closed by admin
    NEGOTIATING = "NEGOTIATING"   # Counter offer sent to the rank-1 vendor
    FINALIZED = "FINALIZED"       # Price locked with the winning vendor
    ASSIGNED = "ASSIGNED"         # Vehicle and driver details recorded


class LoadType(str, Enum):
    FTL = "FTL"
    LTL = "LTL"


class VehicleType(str, Enum):
    TRUCK = "Truck"
    CONTAINER = "Container"
    LCV = "LCV"
    TRAILER = "Trailer"


class ShipmentBid(Base):
    """
    A freight request put up for reverse bidding.
    Bids are permanent records; status only moves through the auction engine.
    """
    __tablename__ = "shipment_bids"

    id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)

    # Request summary
    request_by_customer: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    request_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True, comment="YYYY-MM-DD")
    entry_location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    product: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    packaging_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    load_type: Mapped[str] = mapped_column(String(10), default="FTL", nullable=False)
    vehicle_type: Mapped[str] = mapped_column(String(20), default="Truck", nullable=False)
    capacity: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    material_type: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    no_of_packages: Mapped[int] = mapped_column(Integer, default=1)
    weight_kg: Mapped[float] = mapped_column(Float, default=0.0)
    comments: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Pickup (free text; normalized only when compared)
    pickup_party: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    pickup_city: Mapped[str] = mapped_column(String(100), nullable=False)
    pickup_location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    pickup_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    pickup_pincode: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    pickup_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Delivery
    delivery_party: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    delivery_city: Mapped[str] = mapped_column(String(100), nullable=False)
    delivery_location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    delivery_address: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    delivery_pincode: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)
    delivery_date: Mapped[Optional[str]] = mapped_column(String(10), nullable=True)

    # Auction parameters
    reserved_price: Mapped[float] = mapped_column(Float, default=0.0)
    ceiling_rate: Mapped[float] = mapped_column(Float, default=0.0)
    step_value: Mapped[float] = mapped_column(Float, default=0.0)
    bid_start_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bid_end_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    show_l1_value: Mapped[bool] = mapped_column(Boolean, default=False)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20),
        default="OPEN",
        nullable=False,
        index=True,
        comment="OPEN, CLOSED, NEGOTIATING, FINALIZED, ASSIGNED"
    )
    winning_vendor_id: Mapped[Optional[str]] = mapped_column(IdType, nullable=True)
    counter_offer: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    final_amount: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    vehicle_details: Mapped[Optional[dict]] = mapped_column(JSONType, nullable=True)

    # Optimistic concurrency: every committed mutation bumps the version
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

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

    offers: Mapped[List["BidOffer"]] = relationship(
        "BidOffer",
        back_populates="bid",
        order_by="BidOffer.sequence",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __mapper_args__ = {"version_id_col": version}

    def to_record(self) -> dict:
        """Plain dict of the auction state, consumed by the record parser."""
        return {
            "id": self.id,
            "pickup_city": self.pickup_city,
            "delivery_city": self.delivery_city,
            "reserved_price": self.reserved_price,
            "ceiling_rate": self.ceiling_rate,
            "step_value": self.step_value,
            "bid_start_at": self.bid_start_at,
            "bid_end_at": self.bid_end_at,
            "show_l1_value": self.show_l1_value,
            "status": self.status,
            "offers": [offer.to_record() for offer in self.offers],
            "winning_vendor_id": self.winning_vendor_id,
            "counter_offer": self.counter_offer,
            "final_amount": self.final_amount,
            "vehicle_details": self.vehicle_details,
            "version": self.version,
        }

    def __repr__(self) -> str:
        return f"<ShipmentBid(id='{self.id}', {self.pickup_city}->{self.delivery_city}, status='{self.status}')>"


class BidOffer(Base):
    """
    A single vendor price offer. Append-only: re-bidding adds a new row.
    `sequence` is the per-bid submission order assigned under the bid's write lock.
    """
    __tablename__ = "bid_offers"
    __table_args__ = (
        UniqueConstraint("bid_id", "sequence", name="uq_bid_offer_sequence"),
    )

    id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)
    bid_id: Mapped[str] = mapped_column(
        IdType,
        ForeignKey("shipment_bids.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)

    vendor_id: Mapped[str] = mapped_column(IdType, nullable=False, index=True)
    vendor_name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False
    )

    bid: Mapped["ShipmentBid"] = relationship("ShipmentBid", back_populates="offers")

    def to_record(self) -> dict:
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "amount": self.amount,
            "timestamp": self.timestamp,
            "sequence": self.sequence,
        }

    def __repr__(self) -> str:
        return f"<BidOffer(bid='{self.bid_id}', vendor='{self.vendor_id}', amount={self.amount})>"
