"""Booking service: confirmed purchases of cart holds."""

import logging
import secrets
import string
from datetime import datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.booking import Booking, BookingStatus
from ..models.cart import CartEntry
from ..models.trip import Trip
from .inventory_store import Pool

logger = logging.getLogger(__name__)


class BookingService:
    """Persistence of bookings. Never touches room counters."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _generate_booking_code(self, length: int = 8) -> str:
        """Generate a random booking confirmation code."""
        alphabet = string.ascii_uppercase + string.digits
        return ''.join(secrets.choice(alphabet) for _ in range(length))

    async def create_from_hold(self, hold: CartEntry, trip: Trip) -> Booking:
        """Record a confirmed purchase of every room in a hold."""
        booking = Booking(
            code=self._generate_booking_code(),
            user_id=hold.user_id,
            trip_id=hold.trip_id,
            date_index=hold.date_index,
            quantity=hold.quantity,
            unit_price_amount=trip.price_amount,
            total_price_amount=trip.price_amount * hold.quantity,
            price_currency=trip.price_currency,
            status=BookingStatus.CONFIRMED.value,
        )
        self.db.add(booking)
        await self.db.flush()

        logger.info(
            "Booking confirmed",
            extra={
                "booking_id": str(booking.id),
                "booking_code": booking.code,
                "user_id": str(booking.user_id),
                "trip_id": str(booking.trip_id),
                "date_index": booking.date_index,
                "quantity": booking.quantity,
            }
        )
        return booking

    async def get(self, booking_id: UUID) -> Optional[Booking]:
        return await self.db.get(Booking, booking_id)

    async def cancel(self, booking: Booking, now: datetime) -> Booking:
        """
        Move a booking to CANCELLED.

        Raises:
            InvalidTransitionError: If the booking is not CONFIRMED
        """
        booking.transition_to(BookingStatus.CANCELLED)
        booking.cancelled_at = now
        await self.db.flush()

        logger.info(
            "Booking cancelled",
            extra={
                "booking_id": str(booking.id),
                "trip_id": str(booking.trip_id),
                "quantity": booking.quantity,
            }
        )
        return booking

    async def count_upcoming(self, user_id: UUID, now: datetime) -> int:
        """Confirmed bookings of a user whose trip has not departed yet."""
        result = await self.db.execute(
            select(func.count(Booking.id))
            .join(Trip, Trip.id == Booking.trip_id)
            .where(
                Booking.user_id == user_id,
                Booking.status == BookingStatus.CONFIRMED.value,
                Trip.starts_at > now,
            )
        )
        return int(result.scalar_one())

    async def booked_quantity(self, pool: Pool) -> int:
        """Rooms of a pool sold in confirmed bookings."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(Booking.quantity), 0)).where(
                Booking.trip_id == pool.trip_id,
                Booking.date_index == pool.date_index,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
        )
        return int(result.scalar_one())
