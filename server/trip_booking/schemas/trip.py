"""Trip-related Pydantic schemas."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .common import Money


class CreateTripRequest(BaseModel):
    """Request schema for creating a trip."""

    destination: str = Field(..., min_length=1, max_length=100, description="Destination city or region")
    country: str = Field(..., min_length=1, max_length=100, description="Destination country")
    description: Optional[str] = Field(None, max_length=2000, description="Trip description")
    starts_at: datetime = Field(..., description="Departure time (ISO 8601)")
    ends_at: datetime = Field(..., description="Return time (ISO 8601)")
    price: Money = Field(..., description="Price per room")
    capacity_total: int = Field(..., ge=0, description="Rooms provisioned for the base date")
    cancellation_deadline: Optional[datetime] = Field(
        None,
        description="Last moment bookings can be cancelled; defaults to a week before departure"
    )

    @model_validator(mode="after")
    def validate_dates(self):
        if self.ends_at < self.starts_at:
            raise ValueError("ends_at must not be before starts_at")
        return self


class AddDateVariantRequest(BaseModel):
    """Request schema for adding an alternative departure date to a trip."""

    trip_id: UUID = Field(..., description="Trip the date belongs to")
    starts_at: datetime = Field(..., description="Departure time (ISO 8601)")
    ends_at: datetime = Field(..., description="Return time (ISO 8601)")
    capacity_total: int = Field(..., ge=0, description="Rooms provisioned for this date")

    @model_validator(mode="after")
    def validate_dates(self):
        if self.ends_at < self.starts_at:
            raise ValueError("ends_at must not be before starts_at")
        return self


class GetTripRequest(BaseModel):
    """Request schema for getting a trip."""

    trip_id: UUID = Field(..., description="Trip to retrieve")


class DateVariant(BaseModel):
    """Date variant response schema."""

    position: int = Field(..., ge=0, description="Date index used when reserving")
    starts_at: datetime = Field(..., description="Departure time (ISO 8601)")
    ends_at: datetime = Field(..., description="Return time (ISO 8601)")
    capacity_total: int = Field(..., description="Rooms provisioned for this date")
    available_rooms: int = Field(..., description="Rooms not yet held or booked")

    model_config = ConfigDict(from_attributes=True)


class Trip(BaseModel):
    """Trip response schema."""

    id: UUID = Field(..., description="Unique trip ID")
    destination: str = Field(..., description="Destination city or region")
    country: str = Field(..., description="Destination country")
    description: Optional[str] = Field(None, description="Trip description")
    starts_at: datetime = Field(..., description="Departure time (ISO 8601)")
    ends_at: datetime = Field(..., description="Return time (ISO 8601)")
    price: Money = Field(..., description="Price per room")
    capacity_total: int = Field(..., description="Rooms provisioned for the base date")
    available_rooms: int = Field(..., description="Base-date rooms not yet held or booked")
    cancellation_deadline: datetime = Field(..., description="Effective cancellation deadline")
    date_variants: list[DateVariant] = Field(default_factory=list, description="Alternative dates")
