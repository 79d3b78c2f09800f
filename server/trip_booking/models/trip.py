"""Trip and date variant model definitions."""

from datetime import datetime, timedelta
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .cart import CartEntry

# Trips without an explicit cancellation deadline can be cancelled until a week before departure
DEFAULT_CANCELLATION_WINDOW = timedelta(days=7)


class Trip(Base):
    """Trip entity; its own room counter is the trip's base-date pool."""

    __tablename__ = "trips"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Descriptive details
    destination: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    country: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    # Price information (stored as minor units, e.g., cents)
    price_amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Base pool counters
    capacity_total: Mapped[int] = mapped_column(Integer, nullable=False)
    available_rooms: Mapped[int] = mapped_column(Integer, nullable=False)

    cancellation_deadline: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Constraints
    __table_args__ = (
        CheckConstraint("capacity_total >= 0", name="ck_trip_capacity_total_non_negative"),
        CheckConstraint("available_rooms >= 0", name="ck_trip_available_rooms_non_negative"),
        CheckConstraint("available_rooms <= capacity_total", name="ck_trip_available_lte_total"),
        CheckConstraint("price_amount >= 0", name="ck_trip_price_amount_non_negative"),
        CheckConstraint("ends_at >= starts_at", name="ck_trip_dates_ordered"),
    )

    # Relationships
    date_variants: Mapped[list["DateVariant"]] = relationship(
        "DateVariant",
        back_populates="trip",
        cascade="all, delete-orphan",
        order_by="DateVariant.position"
    )
    cart_entries: Mapped[list["CartEntry"]] = relationship(
        "CartEntry",
        back_populates="trip",
        cascade="all, delete-orphan"
    )

    @property
    def effective_cancellation_deadline(self) -> datetime:
        """Explicit deadline, or a week before departure."""
        if self.cancellation_deadline is not None:
            return self.cancellation_deadline
        return self.starts_at - DEFAULT_CANCELLATION_WINDOW

    def __repr__(self) -> str:
        return (
            f"<Trip(id={self.id}, destination='{self.destination}', "
            f"rooms={self.available_rooms}/{self.capacity_total})>"
        )


class DateVariant(Base):
    """Alternative departure date of a trip with an independent room counter."""

    __tablename__ = "trip_date_variants"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    trip_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Date selector used by cart entries (0, 1, 2, ... in insertion order)
    position: Mapped[int] = mapped_column(Integer, nullable=False)

    starts_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    ends_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    capacity_total: Mapped[int] = mapped_column(Integer, nullable=False)
    available_rooms: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        CheckConstraint("position >= 0", name="ck_date_variant_position_non_negative"),
        CheckConstraint("capacity_total >= 0", name="ck_date_variant_capacity_total_non_negative"),
        CheckConstraint("available_rooms >= 0", name="ck_date_variant_available_rooms_non_negative"),
        CheckConstraint("available_rooms <= capacity_total", name="ck_date_variant_available_lte_total"),
        UniqueConstraint("trip_id", "position", name="uq_date_variant_trip_position"),
    )

    trip: Mapped["Trip"] = relationship("Trip", back_populates="date_variants")

    def __repr__(self) -> str:
        return (
            f"<DateVariant(trip_id={self.trip_id}, position={self.position}, "
            f"rooms={self.available_rooms}/{self.capacity_total})>"
        )
