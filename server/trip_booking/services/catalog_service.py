"""Catalog service: trips, date variants and users."""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..core.clock import to_naive_utc
from ..core.exceptions import ConflictError, NotFoundError
from ..models.trip import DateVariant, Trip
from ..models.user import User
from ..schemas.trip import AddDateVariantRequest, CreateTripRequest
from ..schemas.user import CreateUserRequest

logger = logging.getLogger(__name__)


class CatalogService:
    """Service for the catalog records the reservation engine reads."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_trip(self, request: CreateTripRequest) -> Trip:
        """
        Create a new trip with its base-date pool fully available.

        Args:
            request: Trip creation request

        Returns:
            Created trip entity
        """
        trip = Trip(
            destination=request.destination,
            country=request.country,
            description=request.description,
            starts_at=to_naive_utc(request.starts_at),
            ends_at=to_naive_utc(request.ends_at),
            price_amount=request.price.amount,
            price_currency=request.price.currency,
            capacity_total=request.capacity_total,
            available_rooms=request.capacity_total,
            cancellation_deadline=(
                to_naive_utc(request.cancellation_deadline) if request.cancellation_deadline else None
            ),
        )

        self.db.add(trip)
        await self.db.commit()

        logger.info(
            "Trip created successfully",
            extra={
                "trip_id": str(trip.id),
                "destination": trip.destination,
                "capacity_total": trip.capacity_total,
            }
        )
        return trip

    async def add_date_variant(self, request: AddDateVariantRequest) -> DateVariant:
        """
        Add an alternative departure date with its own room pool.

        The variant takes the next free position (0, 1, 2, ...).

        Raises:
            NotFoundError: If the trip does not exist
            ConflictError: If a concurrent insert took the same position
        """
        await self.get_trip(request.trip_id)

        result = await self.db.execute(
            select(func.coalesce(func.max(DateVariant.position), -1)).where(
                DateVariant.trip_id == request.trip_id
            )
        )
        position = int(result.scalar_one()) + 1

        variant = DateVariant(
            trip_id=request.trip_id,
            position=position,
            starts_at=to_naive_utc(request.starts_at),
            ends_at=to_naive_utc(request.ends_at),
            capacity_total=request.capacity_total,
            available_rooms=request.capacity_total,
        )

        try:
            self.db.add(variant)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            logger.error(
                "Date variant creation failed due to integrity constraint",
                extra={
                    "trip_id": str(request.trip_id),
                    "position": position,
                    "error": str(e)
                }
            )
            raise ConflictError(
                detail="Another date was added to this trip concurrently",
                retryable=True
            ) from e

        logger.info(
            "Date variant added",
            extra={
                "trip_id": str(request.trip_id),
                "position": position,
                "capacity_total": variant.capacity_total,
            }
        )
        return variant

    async def find_trip(self, trip_id: UUID, with_variants: bool = False) -> Optional[Trip]:
        stmt = select(Trip).where(Trip.id == trip_id)
        if with_variants:
            stmt = stmt.options(selectinload(Trip.date_variants))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_trip(self, trip_id: UUID, with_variants: bool = False) -> Trip:
        """
        Get trip by ID or raise NotFoundError.

        Args:
            trip_id: Trip ID to search for
            with_variants: Eagerly load the trip's date variants

        Raises:
            NotFoundError: If trip not found
        """
        trip = await self.find_trip(trip_id, with_variants)
        if not trip:
            logger.warning("Trip not found", extra={"trip_id": str(trip_id)})
            raise NotFoundError(resource_type="trip", resource_id=str(trip_id))
        return trip

    async def get_date_variant(self, trip_id: UUID, position: int) -> DateVariant:
        """
        Get one date variant of a trip.

        Raises:
            NotFoundError: If the trip has no variant at that position
        """
        result = await self.db.execute(
            select(DateVariant).where(
                DateVariant.trip_id == trip_id,
                DateVariant.position == position,
            )
        )
        variant = result.scalar_one_or_none()
        if not variant:
            logger.warning(
                "Date variant not found",
                extra={"trip_id": str(trip_id), "position": position}
            )
            raise NotFoundError(
                resource_type="date_variant",
                resource_id=f"{trip_id}:{position}"
            )
        return variant

    async def get_destination(self, trip_id: UUID) -> str:
        result = await self.db.execute(select(Trip.destination).where(Trip.id == trip_id))
        destination = result.scalar_one_or_none()
        if destination is None:
            raise NotFoundError(resource_type="trip", resource_id=str(trip_id))
        return destination

    async def create_user(self, request: CreateUserRequest) -> User:
        """
        Register a user.

        Raises:
            ConflictError: If the email is already registered
        """
        existing = await self.find_user_by_email(request.email)
        if existing:
            logger.warning(
                "User creation failed - email already registered",
                extra={"existing_user_id": str(existing.id)}
            )
            raise ConflictError(
                detail="A user with this email already exists",
                conflicting_resource={"id": str(existing.id)}
            )

        user = User(
            email=request.email,
            first_name=request.first_name,
            last_name=request.last_name,
        )

        try:
            self.db.add(user)
            await self.db.commit()
        except IntegrityError as e:
            await self.db.rollback()
            raise ConflictError(detail="A user with this email already exists") from e

        logger.info("User created successfully", extra={"user_id": str(user.id)})
        return user

    async def find_user(self, user_id: UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def find_user_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_user(self, user_id: UUID) -> User:
        """
        Get user by ID or raise NotFoundError.

        Raises:
            NotFoundError: If user not found
        """
        user = await self.find_user(user_id)
        if not user:
            logger.warning("User not found", extra={"user_id": str(user_id)})
            raise NotFoundError(resource_type="user", resource_id=str(user_id))
        return user
