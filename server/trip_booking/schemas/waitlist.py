"""Waitlist-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class JoinWaitlistRequest(BaseModel):
    """Request schema for joining a trip's waitlist."""

    user_id: UUID = Field(..., description="User joining the waitlist")
    trip_id: UUID = Field(..., description="Sold-out trip")


class WaitlistStatusRequest(BaseModel):
    """Request schema for looking up a user's waitlist entry."""

    user_id: UUID = Field(..., description="User to look up")
    trip_id: UUID = Field(..., description="Trip to look up")


class WaitlistEntry(BaseModel):
    """Waitlist entry response schema."""

    id: int = Field(..., description="Waitlist entry ID")
    user_id: UUID = Field(..., description="Waiting user")
    trip_id: UUID = Field(..., description="Associated trip ID")
    status: str = Field(..., description="WAITING, NOTIFIED, BOOKED or EXPIRED")
    created_at: datetime = Field(..., description="Join time (ISO 8601)")
    notified_at: Optional[datetime] = Field(None, description="Promotion time (ISO 8601)")
    expires_at: Optional[datetime] = Field(None, description="End of the booking window (ISO 8601)")

    model_config = ConfigDict(from_attributes=True)


class JoinWaitlistResponse(BaseModel):
    """Response schema for joining a waitlist."""

    outcome: str = Field(..., description="OK or ALREADY_ON_WAITLIST")
    entry: WaitlistEntry = Field(..., description="The user's live entry")
    position: Optional[int] = Field(None, description="1-based position while waiting")
    queue_length: int = Field(..., description="Users currently waiting for the trip")


class WaitlistStatusResponse(BaseModel):
    """Response schema for a waitlist lookup."""

    entry: Optional[WaitlistEntry] = Field(None, description="The user's live entry, if any")
    position: Optional[int] = Field(None, description="1-based position while waiting")
    queue_length: int = Field(..., description="Users currently waiting for the trip")
