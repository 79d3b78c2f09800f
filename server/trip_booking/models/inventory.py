"""Inventory adjustment model definition."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from ..core.clock import utcnow
from ..core.database import Base


class InventoryAdjustment(Base):
    """Inventory adjustment record for audit trail of capacity changes."""

    __tablename__ = "inventory_adjustments"

    # Primary key
    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    trip_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("trips.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    date_index: Mapped[int] = mapped_column(Integer, nullable=False, default=-1)

    # Adjustment details
    delta: Mapped[int] = mapped_column(Integer, nullable=False)  # Can be positive or negative
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    actor: Mapped[str] = mapped_column(String(255), nullable=False)  # Who made the adjustment

    # Previous and new values for audit trail
    capacity_total_before: Mapped[int] = mapped_column(Integer, nullable=False)
    capacity_total_after: Mapped[int] = mapped_column(Integer, nullable=False)
    available_before: Mapped[int] = mapped_column(Integer, nullable=False)
    available_after: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamp
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    # Constraints
    __table_args__ = (
        CheckConstraint("delta != 0", name="ck_inventory_adjustment_delta_nonzero"),
        CheckConstraint("length(reason) > 0", name="ck_inventory_adjustment_reason_not_empty"),
        CheckConstraint("length(actor) > 0", name="ck_inventory_adjustment_actor_not_empty"),
        CheckConstraint("capacity_total_after >= 0", name="ck_inventory_adjustment_total_after_non_negative"),
        CheckConstraint("available_after >= 0", name="ck_inventory_adjustment_available_after_non_negative"),
        CheckConstraint(
            "available_after <= capacity_total_after",
            name="ck_inventory_adjustment_available_lte_total_after"
        ),
        CheckConstraint(
            "capacity_total_after = capacity_total_before + delta",
            name="ck_inventory_adjustment_total_delta_consistency"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryAdjustment(id={self.id}, trip_id={self.trip_id}, "
            f"date_index={self.date_index}, delta={self.delta}, actor='{self.actor}')>"
        )
