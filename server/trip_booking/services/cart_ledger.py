"""Cart ledger: unpaid holds keyed by user, trip and date index."""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from datetime import datetime, timedelta
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.cart import CartEntry
from .inventory_store import Pool

logger = logging.getLogger(__name__)

ExpiredPageFetcher = Callable[[tuple[datetime, UUID] | None], Awaitable[list[CartEntry]]]


async def page_through_expired(fetch_page: ExpiredPageFetcher, batch_size: int) -> AsyncIterator[CartEntry]:
    """
    Walk expired holds page by page with a forward-only (expires_at, id) cursor.

    fetch_page receives the cursor of the last entry seen (None first). The
    walk is finite even while entries are removed underneath it.
    """
    after = None
    while True:
        page = await fetch_page(after)
        for entry in page:
            yield entry
        if len(page) < batch_size:
            return
        after = (page[-1].expires_at, page[-1].id)


class CartLedger:
    """Persistence of cart holds. Never touches room counters."""

    def __init__(self, db: AsyncSession, hold_ttl: timedelta = timedelta(hours=24)):
        self.db = db
        self.hold_ttl = hold_ttl

    async def get(self, entry_id: UUID) -> CartEntry | None:
        return await self.db.get(CartEntry, entry_id)

    async def find(self, user_id: UUID, trip_id: UUID, date_index: int) -> CartEntry | None:
        """Hold of one user on one pool, if any."""
        result = await self.db.execute(
            select(CartEntry).where(
                CartEntry.user_id == user_id,
                CartEntry.trip_id == trip_id,
                CartEntry.date_index == date_index,
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        user_id: UUID,
        trip_id: UUID,
        date_index: int,
        quantity: int,
        now: datetime,
    ) -> CartEntry:
        """
        Add rooms to a user's hold on a pool, creating the hold if needed.

        Either way the hold expires hold_ttl after now.
        """
        if quantity < 1:
            raise ValueError("quantity must be positive")

        expires_at = now + self.hold_ttl
        entry = await self.find(user_id, trip_id, date_index)

        if entry is None:
            entry = CartEntry(
                user_id=user_id,
                trip_id=trip_id,
                date_index=date_index,
                quantity=quantity,
                expires_at=expires_at,
            )
            self.db.add(entry)
        else:
            entry.quantity += quantity
            entry.expires_at = expires_at

        await self.db.flush()

        logger.info(
            "Cart hold recorded",
            extra={
                "cart_entry_id": str(entry.id),
                "user_id": str(user_id),
                "trip_id": str(trip_id),
                "date_index": date_index,
                "added_quantity": quantity,
                "quantity": entry.quantity,
                "expires_at": expires_at.isoformat(),
            }
        )
        return entry

    async def remove(self, entry_id: UUID) -> CartEntry | None:
        """
        Delete a hold.

        Returns:
            The removed entry, or None if it was already gone
        """
        entry = await self.get(entry_id)
        if entry is None:
            return None

        await self.db.delete(entry)
        await self.db.flush()

        logger.info(
            "Cart hold removed",
            extra={
                "cart_entry_id": str(entry_id),
                "trip_id": str(entry.trip_id),
                "date_index": entry.date_index,
                "quantity": entry.quantity,
            }
        )
        return entry

    async def list_expired_page(
        self,
        now: datetime,
        limit: int,
        after: tuple[datetime, UUID] | None = None,
    ) -> list[CartEntry]:
        """One page of holds expired at now, ordered by (expires_at, id)."""
        query = select(CartEntry).where(CartEntry.expires_at <= now)
        if after is not None:
            after_expires_at, after_id = after
            query = query.where(
                or_(
                    CartEntry.expires_at > after_expires_at,
                    and_(CartEntry.expires_at == after_expires_at, CartEntry.id > after_id),
                )
            )
        query = query.order_by(CartEntry.expires_at, CartEntry.id).limit(limit)

        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def list_expired(self, now: datetime, batch_size: int = 100) -> AsyncIterator[CartEntry]:
        """
        Lazily yield holds expired at now.

        Pages are read on demand; calling again starts over from current state.
        """

        async def fetch_page(after):
            return await self.list_expired_page(now, batch_size, after)

        async for entry in page_through_expired(fetch_page, batch_size):
            yield entry

    async def total_quantity_for_pool(self, user_id: UUID, pool: Pool) -> int:
        """Rooms one user holds on one pool."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(CartEntry.quantity), 0)).where(
                CartEntry.user_id == user_id,
                CartEntry.trip_id == pool.trip_id,
                CartEntry.date_index == pool.date_index,
            )
        )
        return int(result.scalar_one())

    async def total_quantity_for_trip(self, user_id: UUID, trip_id: UUID) -> int:
        """Rooms one user holds across every pool of a trip."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(CartEntry.quantity), 0)).where(
                CartEntry.user_id == user_id,
                CartEntry.trip_id == trip_id,
            )
        )
        return int(result.scalar_one())

    async def held_quantity(self, pool: Pool) -> int:
        """Rooms held on a pool by all users."""
        result = await self.db.execute(
            select(func.coalesce(func.sum(CartEntry.quantity), 0)).where(
                CartEntry.trip_id == pool.trip_id,
                CartEntry.date_index == pool.date_index,
            )
        )
        return int(result.scalar_one())
