"""User-related Pydantic schemas."""

from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CreateUserRequest(BaseModel):
    """Request schema for registering a user."""

    email: str = Field(..., max_length=255, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$", description="Email address")
    first_name: str = Field(..., min_length=1, max_length=100, description="First name")
    last_name: str = Field("", max_length=100, description="Last name")


class GetUserRequest(BaseModel):
    """Request schema for getting a user."""

    user_id: UUID = Field(..., description="User to retrieve")


class User(BaseModel):
    """User response schema."""

    id: UUID = Field(..., description="Unique user ID")
    email: str = Field(..., description="Email address")
    first_name: str = Field(..., description="First name")
    last_name: str = Field(..., description="Last name")

    model_config = ConfigDict(from_attributes=True)
