"""Booking model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base
from ..core.exceptions import InvalidTransitionError


class BookingStatus(str, Enum):
    """Booking status enumeration."""
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"


BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED}),
    BookingStatus.CANCELLED: frozenset(),
}


class Booking(Base):
    """Confirmed purchase of the rooms a cart hold reserved."""

    __tablename__ = "bookings"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    code: Mapped[str] = mapped_column(
        String(32),
        nullable=False,
        unique=True,
        index=True
    )

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
    date_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)

    # Booking details
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    total_price_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    price_currency: Mapped[str] = mapped_column(String(3), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=BookingStatus.CONFIRMED.value,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    # Constraints
    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_booking_quantity_positive"),
        CheckConstraint("date_index >= -1", name="ck_booking_date_index_valid"),
        CheckConstraint("total_price_amount >= 0", name="ck_booking_total_non_negative"),
        CheckConstraint("length(code) > 0", name="ck_booking_code_not_empty"),
    )

    @property
    def status_enum(self) -> BookingStatus:
        return BookingStatus(self.status)

    def transition_to(self, new_status: BookingStatus) -> None:
        """
        Move the booking to a new status.

        Raises:
            InvalidTransitionError: If the lifecycle does not allow the move
        """
        current = self.status_enum
        if new_status not in BOOKING_TRANSITIONS[current]:
            raise InvalidTransitionError("Booking", current.value, new_status.value)
        self.status = new_status.value

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code='{self.code}', trip_id={self.trip_id}, "
            f"quantity={self.quantity}, status={self.status})>"
        )
