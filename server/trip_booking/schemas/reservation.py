"""Reservation-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .common import Money
from .waitlist import WaitlistEntry


class RequestReservationRequest(BaseModel):
    """Request schema for holding rooms."""

    user_id: UUID = Field(..., description="User placing the hold")
    trip_id: UUID = Field(..., description="Trip to reserve")
    date_index: int = Field(-1, ge=-1, description="-1 for the base date, otherwise a date variant position")
    quantity: int = Field(1, ge=1, description="Rooms to hold")


class ReleaseHoldRequest(BaseModel):
    """Request schema for releasing a hold."""

    cart_entry_id: UUID = Field(..., description="Hold to release")
    user_id: UUID = Field(..., description="Owner of the hold")


class ConfirmPurchaseRequest(BaseModel):
    """Request schema for paying for a hold."""

    cart_entry_id: UUID = Field(..., description="Hold to convert into a booking")
    user_id: UUID = Field(..., description="Owner of the hold")


class CancelBookingRequest(BaseModel):
    """Request schema for cancelling a booking."""

    booking_id: UUID = Field(..., description="Booking to cancel")
    user_id: Optional[UUID] = Field(None, description="Owner of the booking")


class CartEntry(BaseModel):
    """Cart hold response schema."""

    id: UUID = Field(..., description="Unique hold ID")
    user_id: UUID = Field(..., description="Owner of the hold")
    trip_id: UUID = Field(..., description="Associated trip ID")
    date_index: int = Field(..., description="-1 for the base date, otherwise a date variant position")
    quantity: int = Field(..., ge=1, description="Rooms held")
    expires_at: datetime = Field(..., description="Hold expiration time (ISO 8601)")

    model_config = ConfigDict(from_attributes=True)


class Booking(BaseModel):
    """Booking response schema."""

    id: UUID = Field(..., description="Unique booking ID")
    code: str = Field(..., description="Confirmation code")
    user_id: UUID = Field(..., description="Customer")
    trip_id: UUID = Field(..., description="Associated trip ID")
    date_index: int = Field(..., description="-1 for the base date, otherwise a date variant position")
    quantity: int = Field(..., description="Rooms booked")
    total_price: Money = Field(..., description="Price paid")
    status: str = Field(..., description="CONFIRMED or CANCELLED")
    created_at: datetime = Field(..., description="Booking time (ISO 8601)")
    cancelled_at: Optional[datetime] = Field(None, description="Cancellation time (ISO 8601)")


class ReservationResponse(BaseModel):
    """Response schema for a reservation request."""

    outcome: str = Field(..., description="OK, PROMPT_WAITLIST or ALREADY_ON_WAITLIST")
    hold: Optional[CartEntry] = Field(None, description="The user's hold when outcome is OK")
    available_rooms: Optional[int] = Field(None, description="Rooms left in the pool")
    queue_length: Optional[int] = Field(None, description="Users waiting when the pool is sold out")
    waitlist_entry: Optional[WaitlistEntry] = Field(None, description="The user's live waitlist entry")


class ReleaseHoldResponse(BaseModel):
    """Response schema for releasing a hold."""

    outcome: str = Field(..., description="OK")
    released: CartEntry = Field(..., description="The removed hold")
    promoted: list[WaitlistEntry] = Field(default_factory=list, description="Waitlist entries promoted by the release")


class ConfirmPurchaseResponse(BaseModel):
    """Response schema for a confirmed purchase."""

    outcome: str = Field(..., description="OK")
    booking: Booking = Field(..., description="The new booking")


class CancelBookingResponse(BaseModel):
    """Response schema for a cancellation."""

    outcome: str = Field(..., description="OK")
    booking: Booking = Field(..., description="The cancelled booking")
    promoted: list[WaitlistEntry] = Field(default_factory=list, description="Waitlist entries promoted by the cancellation")
