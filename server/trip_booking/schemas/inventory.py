"""Inventory-related Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .waitlist import WaitlistEntry


class AdjustInventoryRequest(BaseModel):
    """Request schema for adjusting inventory."""

    trip_id: UUID = Field(..., description="Trip to adjust")
    date_index: int = Field(-1, ge=-1, description="-1 for the base date, otherwise a date variant position")
    delta: int = Field(..., description="Capacity change (positive or negative)")
    reason: str = Field(..., min_length=1, max_length=500, description="Reason for adjustment")


class GetInventoryRequest(BaseModel):
    """Request schema for reading a pool."""

    trip_id: UUID = Field(..., description="Trip to read")
    date_index: int = Field(-1, ge=-1, description="-1 for the base date, otherwise a date variant position")


class InventoryAdjustment(BaseModel):
    """Inventory adjustment response schema."""

    id: UUID = Field(..., description="Unique adjustment ID")
    trip_id: UUID = Field(..., description="Associated trip ID")
    date_index: int = Field(..., description="Adjusted pool")
    delta: int = Field(..., description="Capacity change (positive or negative)")
    reason: str = Field(..., description="Reason for adjustment")
    actor: str = Field(..., description="User who made the adjustment")
    capacity_total_after: int = Field(..., description="Provisioned rooms after the change")
    available_after: int = Field(..., description="Available rooms after the change")
    created_at: datetime = Field(..., description="Adjustment time (ISO 8601)")

    model_config = ConfigDict(from_attributes=True)


class PoolSnapshot(BaseModel):
    """Point-in-time view of one pool; available + held + booked == capacity_total."""

    trip_id: UUID = Field(..., description="Trip ID")
    date_index: int = Field(..., description="-1 for the base date, otherwise a date variant position")
    capacity_total: int = Field(..., description="Provisioned rooms")
    available: int = Field(..., description="Rooms free to reserve")
    held: int = Field(..., description="Rooms in unpaid holds")
    booked: int = Field(..., description="Rooms in confirmed bookings")
    waiting: int = Field(..., description="Users waiting for the trip")

    model_config = ConfigDict(from_attributes=True)


class AdjustInventoryResponse(BaseModel):
    """Response schema for an inventory adjustment."""

    outcome: str = Field(..., description="OK")
    adjustment: InventoryAdjustment = Field(..., description="Audit record")
    promoted: list[WaitlistEntry] = Field(default_factory=list, description="Waitlist entries promoted by new rooms")
