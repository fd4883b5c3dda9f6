"""Lane (approved origin -> destination route) model."""
from datetime import datetime, timezone

from sqlalchemy import String, Boolean, DateTime, Index, text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base
from app.db_types import IdType, new_id


class Lane(Base):
    """
    Approved route vendors can be assigned to.
    Never hard-deleted: deactivation keeps vendor links and bid history valid.
    """
    __tablename__ = "lanes"
    __table_args__ = (
        Index("ix_lanes_route", "origin", "destination"),
        # At most one active lane per (origin, destination); inactive history is unconstrained
        Index(
            "uq_lanes_active_route",
            "origin",
            "destination",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    id: Mapped[str] = mapped_column(IdType, primary_key=True, default=new_id)

    # Normalized city names (see lane_matching.normalize_city_name)
    origin: Mapped[str] = mapped_column(String(100), nullable=False)
    destination: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(
        String(210),
        nullable=False,
        comment="ORIGIN-DESTINATION e.g. DELHI-MUMBAI"
    )
    code: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="Short mnemonic e.g. DEL-MUM"
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False, index=True)

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

    def to_record(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "origin": self.origin,
            "destination": self.destination,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    def __repr__(self) -> str:
        return f"<Lane(code='{self.code}', {self.origin}->{self.destination}, active={self.is_active})>"
