"""Waitlist model definition."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base
from ..core.exceptions import InvalidTransitionError


class WaitlistStatus(str, Enum):
    """Waitlist entry status enumeration."""
    WAITING = "WAITING"
    NOTIFIED = "NOTIFIED"
    BOOKED = "BOOKED"
    EXPIRED = "EXPIRED"


# Lifecycle only moves forward
WAITLIST_TRANSITIONS: dict[WaitlistStatus, frozenset[WaitlistStatus]] = {
    WaitlistStatus.WAITING: frozenset({WaitlistStatus.NOTIFIED}),
    WaitlistStatus.NOTIFIED: frozenset({WaitlistStatus.BOOKED, WaitlistStatus.EXPIRED}),
    WaitlistStatus.BOOKED: frozenset(),
    WaitlistStatus.EXPIRED: frozenset(),
}

ACTIVE_WAITLIST_STATUSES = (WaitlistStatus.WAITING.value, WaitlistStatus.NOTIFIED.value)

_ACTIVE_PREDICATE = text("status IN ('WAITING', 'NOTIFIED')")


class WaitlistEntry(Base):
    """Waitlist entry for a trip whose rooms are sold out."""

    __tablename__ = "waitlist_entries"

    # Insertion id, also the FIFO tie-breaker for equal created_at values
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

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

    status: Mapped[str] = mapped_column(String(20), nullable=False, default=WaitlistStatus.WAITING.value)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    notified_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True, index=True)
    email_sent_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        # One live entry per (user, trip); finished entries may repeat
        Index(
            "uq_waitlist_active_user_trip",
            "user_id",
            "trip_id",
            unique=True,
            postgresql_where=_ACTIVE_PREDICATE,
            sqlite_where=_ACTIVE_PREDICATE,
        ),
        Index("ix_waitlist_trip_status_order", "trip_id", "status", "created_at", "id"),
    )

    @property
    def status_enum(self) -> WaitlistStatus:
        return WaitlistStatus(self.status)

    def transition_to(self, new_status: WaitlistStatus) -> None:
        """
        Move the entry to a new status.

        Raises:
            InvalidTransitionError: If the lifecycle does not allow the move
        """
        current = self.status_enum
        if new_status not in WAITLIST_TRANSITIONS[current]:
            raise InvalidTransitionError("WaitlistEntry", current.value, new_status.value)
        self.status = new_status.value

    def __repr__(self) -> str:
        return (
            f"<WaitlistEntry(id={self.id}, trip_id={self.trip_id}, "
            f"user_id={self.user_id}, status={self.status}, created_at={self.created_at})>"
        )
