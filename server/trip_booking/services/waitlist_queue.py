"""FIFO waitlist per trip."""

import logging
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.waitlist import ACTIVE_WAITLIST_STATUSES, WaitlistEntry, WaitlistStatus

logger = logging.getLogger(__name__)


class WaitlistQueue:
    """
    Waitlist persistence with strict FIFO promotion.

    Order is created_at ascending with the insertion id breaking ties.
    dequeue_next is the only way an entry moves from WAITING to NOTIFIED.
    """

    def __init__(self, db: AsyncSession, notification_ttl: timedelta = timedelta(hours=24)):
        self.db = db
        self.notification_ttl = notification_ttl

    async def get(self, entry_id: int) -> WaitlistEntry | None:
        return await self.db.get(WaitlistEntry, entry_id)

    async def get_active(self, user_id: UUID, trip_id: UUID) -> WaitlistEntry | None:
        """The user's WAITING or NOTIFIED entry for a trip."""
        result = await self.db.execute(
            select(WaitlistEntry).where(
                WaitlistEntry.user_id == user_id,
                WaitlistEntry.trip_id == trip_id,
                WaitlistEntry.status.in_(ACTIVE_WAITLIST_STATUSES),
            )
        )
        return result.scalar_one_or_none()

    async def enqueue(self, user_id: UUID, trip_id: UUID, now: datetime) -> bool:
        """
        Add a user to a trip's waitlist.

        Returns:
            False if the user already has a live entry for the trip

        Raises:
            IntegrityError: If another process enqueued the same user first
        """
        if await self.get_active(user_id, trip_id) is not None:
            return False

        entry = WaitlistEntry(
            user_id=user_id,
            trip_id=trip_id,
            status=WaitlistStatus.WAITING.value,
            created_at=now,
        )
        self.db.add(entry)
        await self.db.flush()

        logger.info(
            "User joined waitlist",
            extra={
                "waitlist_entry_id": entry.id,
                "user_id": str(user_id),
                "trip_id": str(trip_id),
            }
        )
        return True

    def _waiting(self, trip_id: UUID):
        return select(WaitlistEntry).where(
            WaitlistEntry.trip_id == trip_id,
            WaitlistEntry.status == WaitlistStatus.WAITING.value,
        )

    async def dequeue_next(self, trip_id: UUID, now: datetime) -> WaitlistEntry | None:
        """
        Promote the oldest WAITING entry of a trip to NOTIFIED.

        The entry gets a fresh booking window of notification_ttl.
        """
        result = await self.db.execute(
            self._waiting(trip_id)
            .order_by(WaitlistEntry.created_at, WaitlistEntry.id)
            .limit(1)
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            return None

        entry.transition_to(WaitlistStatus.NOTIFIED)
        entry.notified_at = now
        entry.expires_at = now + self.notification_ttl
        entry.email_sent_at = None
        await self.db.flush()

        logger.info(
            "Waitlist entry notified",
            extra={
                "waitlist_entry_id": entry.id,
                "user_id": str(entry.user_id),
                "trip_id": str(trip_id),
                "expires_at": entry.expires_at.isoformat(),
            }
        )
        return entry

    async def mark_expired(self, entry_id: int) -> bool:
        """
        Age a NOTIFIED entry out.

        Returns:
            False if the entry is missing or already expired
        """
        entry = await self.get(entry_id)
        if entry is None or entry.status == WaitlistStatus.EXPIRED.value:
            return False

        entry.transition_to(WaitlistStatus.EXPIRED)
        await self.db.flush()

        logger.info(
            "Waitlist entry expired",
            extra={
                "waitlist_entry_id": entry.id,
                "user_id": str(entry.user_id),
                "trip_id": str(entry.trip_id),
            }
        )
        return True

    async def mark_booked(self, user_id: UUID, trip_id: UUID) -> bool:
        """
        Settle the user's NOTIFIED entry after a purchase.

        Returns:
            False if the user had no NOTIFIED entry for the trip
        """
        entry = await self.get_active(user_id, trip_id)
        if entry is None or entry.status != WaitlistStatus.NOTIFIED.value:
            return False

        entry.transition_to(WaitlistStatus.BOOKED)
        await self.db.flush()

        logger.info(
            "Waitlist entry booked",
            extra={
                "waitlist_entry_id": entry.id,
                "user_id": str(user_id),
                "trip_id": str(trip_id),
            }
        )
        return True

    async def count_waiting(self, trip_id: UUID) -> int:
        result = await self.db.execute(
            select(func.count(WaitlistEntry.id)).where(
                WaitlistEntry.trip_id == trip_id,
                WaitlistEntry.status == WaitlistStatus.WAITING.value,
            )
        )
        return int(result.scalar_one())

    async def position(self, entry: WaitlistEntry) -> int | None:
        """1-based queue position of a WAITING entry, None for any other status."""
        if entry.status != WaitlistStatus.WAITING.value:
            return None

        result = await self.db.execute(
            select(func.count(WaitlistEntry.id)).where(
                WaitlistEntry.trip_id == entry.trip_id,
                WaitlistEntry.status == WaitlistStatus.WAITING.value,
                or_(
                    WaitlistEntry.created_at < entry.created_at,
                    and_(
                        WaitlistEntry.created_at == entry.created_at,
                        WaitlistEntry.id < entry.id,
                    ),
                ),
            )
        )
        return int(result.scalar_one()) + 1

    async def list_expired_notifications(
        self,
        now: datetime,
        limit: int,
        after_id: int | None = None,
    ) -> list[WaitlistEntry]:
        """NOTIFIED entries whose booking window closed at or before now, by id."""
        query = select(WaitlistEntry).where(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
            WaitlistEntry.expires_at <= now,
        )
        if after_id is not None:
            query = query.where(WaitlistEntry.id > after_id)

        result = await self.db.execute(query.order_by(WaitlistEntry.id).limit(limit))
        return list(result.scalars().all())

    async def list_undelivered(
        self,
        now: datetime,
        limit: int,
        notified_before: datetime | None = None,
    ) -> list[WaitlistEntry]:
        """
        NOTIFIED entries still inside their window whose email never went out.

        notified_before leaves out entries promoted after that instant, whose
        first delivery may still be in flight.
        """
        query = select(WaitlistEntry).where(
            WaitlistEntry.status == WaitlistStatus.NOTIFIED.value,
            WaitlistEntry.email_sent_at.is_(None),
            WaitlistEntry.expires_at > now,
        )
        if notified_before is not None:
            query = query.where(WaitlistEntry.notified_at <= notified_before)

        result = await self.db.execute(
            query
            .order_by(WaitlistEntry.notified_at, WaitlistEntry.id)
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_email_sent(self, entry_id: int, now: datetime) -> bool:
        entry = await self.get(entry_id)
        if entry is None:
            return False

        entry.email_sent_at = now
        await self.db.flush()
        return True
