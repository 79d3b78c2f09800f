"""Cart entry (hold) model definition."""

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..core.clock import utcnow
from ..core.database import Base

if TYPE_CHECKING:
    from .trip import Trip


class CartEntry(Base):
    """Unpaid hold on rooms of one pool, keyed by (user, trip, date index)."""

    __tablename__ = "cart_entries"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    user_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    trip_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # -1 targets the trip's base date, otherwise a DateVariant position
    date_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)

    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # Constraints
    __table_args__ = (
        CheckConstraint("quantity >= 1", name="ck_cart_entry_quantity_positive"),
        CheckConstraint("date_index >= -1", name="ck_cart_entry_date_index_valid"),
        UniqueConstraint("user_id", "trip_id", "date_index", name="uq_cart_entry_user_trip_date"),
    )

    # Relationships
    trip: Mapped["Trip"] = relationship("Trip", back_populates="cart_entries")

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now

    def __repr__(self) -> str:
        return (
            f"<CartEntry(id={self.id}, user_id={self.user_id}, trip_id={self.trip_id}, "
            f"date_index={self.date_index}, quantity={self.quantity}, expires_at={self.expires_at})>"
        )
