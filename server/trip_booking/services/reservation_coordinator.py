"""
Reservation coordinator: the only writer of room counters, holds and the waitlist.

Each operation runs under the trip's lock inside a single transaction, so a
counter change and the hold or waitlist change that explains it commit
together or not at all. Engine errors never escape; every call returns a
ReservationResult.
"""

import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.clock import utcnow
from ..core.config import Settings, settings as default_settings
from ..core.database import acquire_trip_advisory_lock
from ..core.exceptions import ConflictError, NotFoundError, ProblemDetailsException
from ..core.locks import TripLockRegistry
from ..core.observability import get_tracer, metrics_collector
from ..models.booking import Booking, BookingStatus
from ..models.cart import CartEntry
from ..models.inventory import InventoryAdjustment
from ..models.waitlist import WaitlistEntry, WaitlistStatus
from .booking_service import BookingService
from .cart_ledger import CartLedger, page_through_expired
from .catalog_service import CatalogService
from .inventory_store import BASE_DATE, InventoryStore, Pool
from .notifier import NotificationDispatchFailed, Notifier, RoomAvailableEvent
from .results import ReservationResult
from .waitlist_queue import WaitlistQueue

logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


@dataclass(frozen=True)
class PoolSnapshot:
    """Counters of one pool at one instant."""

    trip_id: UUID
    date_index: int
    capacity_total: int
    available: int
    held: int
    booked: int
    waiting: int

    @property
    def balanced(self) -> bool:
        """Every provisioned room is either available, held or booked."""
        return self.available + self.held + self.booked == self.capacity_total


class _Stores:
    """Engine components bound to one session."""

    def __init__(self, db: AsyncSession, settings: Settings):
        self.db = db
        self.inventory = InventoryStore(db)
        self.cart = CartLedger(db, timedelta(hours=settings.hold_ttl_hours))
        self.waitlist = WaitlistQueue(db, timedelta(hours=settings.notification_ttl_hours))
        self.bookings = BookingService(db)
        self.catalog = CatalogService(db)


Work = Callable[[_Stores, datetime], Awaitable[ReservationResult]]


class ReservationCoordinator:
    """State-transition authority for holds, bookings and waitlist promotion."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Notifier,
        settings: Settings = default_settings,
        locks: Optional[TripLockRegistry] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.settings = settings
        self.locks = locks or TripLockRegistry()
        self.clock = clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _locate_trip(self, model: Any, entity_id: Any) -> Optional[UUID]:
        async with self.session_factory() as db:
            result = await db.execute(select(model.trip_id).where(model.id == entity_id))
            return result.scalar_one_or_none()

    async def _execute(
        self,
        operation: str,
        work: Work,
        trip_id: Optional[UUID] = None,
        locate: Optional[tuple[Any, Any, str]] = None,
        now: Optional[datetime] = None,
    ) -> ReservationResult:
        """
        Run one unit of work under the trip lock and commit it if it succeeded.

        When trip_id is unknown, locate names (model, entity id, resource type)
        of the entity whose trip should be locked.
        """
        with tracer.start_as_current_span(f"reservation.{operation}"):
            try:
                if trip_id is None and locate is not None:
                    model, entity_id, resource_type = locate
                    trip_id = await self._locate_trip(model, entity_id)
                    if trip_id is None:
                        raise NotFoundError(resource_type=resource_type, resource_id=str(entity_id))

                async with self.locks.hold(trip_id):
                    async with self.session_factory() as db:
                        try:
                            await acquire_trip_advisory_lock(db, trip_id)
                            result = await work(_Stores(db, self.settings), now or self.clock())
                            if result.succeeded:
                                await db.commit()
                            else:
                                await db.rollback()
                        except Exception:
                            await db.rollback()
                            raise

            except ProblemDetailsException as e:
                result = ReservationResult.from_exception(e)
            except IntegrityError as e:
                logger.warning(
                    "Reservation operation hit a constraint violation",
                    extra={"operation": operation, "trip_id": str(trip_id), "error": str(e.orig)}
                )
                result = ReservationResult.conflict(
                    "The operation conflicted with a concurrent change; retry",
                    retryable=True,
                )
            except DBAPIError as e:
                logger.error(
                    "Reservation operation failed in the datastore",
                    extra={"operation": operation, "trip_id": str(trip_id), "error": str(e.orig)}
                )
                result = ReservationResult.conflict(
                    "The datastore could not complete the operation; retry",
                    retryable=True,
                )

        metrics_collector.record_outcome(operation, result.outcome.value)
        if result.events:
            await self._dispatch(result.events)
        return result

    async def _read(self, operation: str, work: Work) -> ReservationResult:
        """Run a read-only unit of work without taking the trip lock."""
        try:
            async with self.session_factory() as db:
                result = await work(_Stores(db, self.settings), self.clock())
        except ProblemDetailsException as e:
            result = ReservationResult.from_exception(e)
        except DBAPIError as e:
            logger.error(
                "Reservation read failed in the datastore",
                extra={"operation": operation, "error": str(e.orig)}
            )
            result = ReservationResult.conflict(
                "The datastore could not complete the operation; retry",
                retryable=True,
            )
        return result

    async def _promote(
        self,
        stores: _Stores,
        trip_id: UUID,
        rooms_freed: int,
        now: datetime,
    ) -> tuple[list[WaitlistEntry], list[RoomAvailableEvent]]:
        """
        Turn freed rooms into holds for the oldest waiting users.

        Promotes at most rooms_freed users, one base-date room each, and stops
        as soon as the base pool or the queue runs dry.
        """
        base = Pool(trip_id)
        promoted: list[WaitlistEntry] = []

        while rooms_freed > 0 and await stores.inventory.peek(base) > 0:
            entry = await stores.waitlist.dequeue_next(trip_id, now)
            if entry is None:
                break

            if not await stores.inventory.try_decrement(base, 1):
                # Unreachable while the trip lock is held
                raise ConflictError(
                    detail="Base pool was depleted during waitlist promotion",
                    retryable=True
                )
            await stores.cart.upsert(entry.user_id, trip_id, BASE_DATE, 1, now)

            rooms_freed -= 1
            promoted.append(entry)
            metrics_collector.record_promotion()
            metrics_collector.record_hold_created("promotion")

        if promoted:
            logger.info(
                "Waitlist promoted",
                extra={
                    "trip_id": str(trip_id),
                    "promoted_count": len(promoted),
                    "waitlist_entry_ids": [entry.id for entry in promoted],
                }
            )

        return promoted, await self._build_events(stores, trip_id, promoted)

    async def _build_events(
        self,
        stores: _Stores,
        trip_id: UUID,
        entries: list[WaitlistEntry],
    ) -> list[RoomAvailableEvent]:
        if not entries:
            return []

        destination = await stores.catalog.get_destination(trip_id)
        events = []
        for entry in entries:
            user = await stores.catalog.find_user(entry.user_id)
            if user is None:
                logger.warning(
                    "Promoted user has no profile; notification skipped",
                    extra={"waitlist_entry_id": entry.id, "user_id": str(entry.user_id)}
                )
                continue
            events.append(RoomAvailableEvent(
                user_id=entry.user_id,
                trip_id=trip_id,
                destination=destination,
                email=user.email,
                first_name=user.first_name,
                waitlist_entry_id=entry.id,
                expires_at=entry.expires_at,
            ))
        return events

    async def _dispatch(self, events: list[RoomAvailableEvent]) -> int:
        """
        Deliver notifications after the promoting transaction committed.

        A failed delivery leaves the hold in place; the resend sweep retries it.

        Returns:
            Number of notifications delivered
        """
        delivered = 0
        for event in events:
            try:
                await self.notifier.send_room_available(event)
            except NotificationDispatchFailed as e:
                logger.warning(
                    "Room available notification failed",
                    extra={
                        "waitlist_entry_id": event.waitlist_entry_id,
                        "user_id": str(event.user_id),
                        "trip_id": str(event.trip_id),
                        "reason": e.reason,
                    }
                )
                metrics_collector.record_notification_failure()
                continue

            delivered += 1
            try:
                async with self.session_factory() as db:
                    await WaitlistQueue(db).mark_email_sent(event.waitlist_entry_id, self.clock())
                    await db.commit()
            except DBAPIError as e:
                logger.error(
                    "Could not record notification delivery",
                    extra={"waitlist_entry_id": event.waitlist_entry_id, "error": str(e.orig)}
                )
        return delivered

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def request_reservation(
        self,
        user_id: UUID,
        trip_id: UUID,
        date_index: int = BASE_DATE,
        quantity: int = 1,
    ) -> ReservationResult:
        """
        Hold rooms on a pool for a user.

        A sold-out pool never creates a hold: the result is PROMPT_WAITLIST,
        or ALREADY_ON_WAITLIST when the user is queued already. Asking for more
        rooms than are left is INSUFFICIENT_INVENTORY with nothing changed.
        """
        pool = Pool(trip_id, date_index)

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            if quantity < 1:
                return ReservationResult.conflict("Quantity must be at least 1")

            await stores.catalog.get_user(user_id)
            available = await stores.inventory.peek(pool)

            if available == 0:
                queue_length = await stores.waitlist.count_waiting(trip_id)
                entry = await stores.waitlist.get_active(user_id, trip_id)
                if entry is not None:
                    return ReservationResult.already_on_waitlist(
                        entry, queue_length, await stores.waitlist.position(entry)
                    )
                return ReservationResult.prompt_waitlist(queue_length)

            if quantity > available:
                logger.warning(
                    "Reservation rejected - insufficient inventory",
                    extra={
                        "user_id": str(user_id),
                        "pool": str(pool),
                        "requested_quantity": quantity,
                        "available_rooms": available,
                    }
                )
                return ReservationResult.insufficient_inventory(quantity, available)

            already_held = await stores.cart.total_quantity_for_trip(user_id, trip_id)
            limit = self.settings.max_rooms_per_user_per_trip
            if already_held + quantity > limit:
                return ReservationResult.conflict(
                    f"A user may hold at most {limit} rooms per trip; {already_held} already held"
                )

            if not await stores.inventory.try_decrement(pool, quantity):
                return ReservationResult.insufficient_inventory(quantity, await stores.inventory.peek(pool))

            hold = await stores.cart.upsert(user_id, trip_id, date_index, quantity, now)
            metrics_collector.record_hold_created("request")
            return ReservationResult.success(hold, available=available - quantity)

        return await self._execute("request_reservation", work, trip_id=trip_id)

    async def join_waitlist(self, user_id: UUID, trip_id: UUID) -> ReservationResult:
        """
        Queue a user for a trip; joining twice is ALREADY_ON_WAITLIST.

        Base-date rooms that are free when the user joins (a hold released
        after the user was prompted) go to the queue at once, oldest first,
        so nobody waits next to a free room.
        """

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            await stores.catalog.get_user(user_id)
            await stores.catalog.get_trip(trip_id)

            created = await stores.waitlist.enqueue(user_id, trip_id, now)

            promoted, events = [], []
            free_rooms = await stores.inventory.peek(Pool(trip_id))
            if free_rooms > 0:
                promoted, events = await self._promote(stores, trip_id, free_rooms, now)

            entry = await stores.waitlist.get_active(user_id, trip_id)
            queue_length = await stores.waitlist.count_waiting(trip_id)
            position = await stores.waitlist.position(entry)

            if not created:
                result = ReservationResult.already_on_waitlist(entry, queue_length, position)
                result.promoted, result.events = promoted, events
                return result
            return ReservationResult.success(
                entry,
                queue_length=queue_length,
                position=position,
                promoted=promoted,
                events=events,
            )

        return await self._execute("join_waitlist", work, trip_id=trip_id)

    async def waitlist_status(self, user_id: UUID, trip_id: UUID) -> ReservationResult:
        """The user's live waitlist entry for a trip (data is None when not queued)."""

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            await stores.catalog.get_trip(trip_id)
            entry = await stores.waitlist.get_active(user_id, trip_id)
            position = await stores.waitlist.position(entry) if entry is not None else None
            return ReservationResult.success(
                entry,
                queue_length=await stores.waitlist.count_waiting(trip_id),
                position=position,
            )

        return await self._read("waitlist_status", work)

    async def release_hold(
        self,
        cart_entry_id: UUID,
        user_id: Optional[UUID] = None,
        expired_as_of: Optional[datetime] = None,
    ) -> ReservationResult:
        """
        Remove a hold, return its rooms and promote waiting users.

        user_id, when given, must own the hold. expired_as_of is used by the
        sweeper: the hold is only released if it is still expired at that
        instant, so a hold refreshed in the meantime survives.
        """

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            hold = await stores.cart.get(cart_entry_id)
            if hold is None or (user_id is not None and hold.user_id != user_id):
                return ReservationResult.not_found("cart_entry", cart_entry_id)
            if expired_as_of is not None and not hold.is_expired(expired_as_of):
                return ReservationResult.conflict("Cart entry was refreshed and has not expired")

            removed = await stores.cart.remove(cart_entry_id)
            pool = Pool(removed.trip_id, removed.date_index)
            await stores.inventory.increment(pool, removed.quantity)
            metrics_collector.record_hold_released("expired" if expired_as_of else "released", removed.quantity)

            # A promoted user giving up the room ends their turn
            if pool.is_base:
                entry = await stores.waitlist.get_active(removed.user_id, removed.trip_id)
                if entry is not None and entry.status == WaitlistStatus.NOTIFIED.value:
                    await stores.waitlist.mark_expired(entry.id)
                    metrics_collector.record_waitlist_expired()

            promoted, events = await self._promote(stores, removed.trip_id, removed.quantity, now)
            return ReservationResult.success(
                removed,
                reclaimed=removed.quantity,
                available=await stores.inventory.peek(pool),
                promoted=promoted,
                events=events,
            )

        return await self._execute(
            "release_hold",
            work,
            locate=(CartEntry, cart_entry_id, "cart_entry"),
            now=expired_as_of,
        )

    async def promote_waitlist(self, trip_id: UUID, rooms_freed: int) -> ReservationResult:
        """Promote up to rooms_freed waiting users onto free base-date rooms."""

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            await stores.catalog.get_trip(trip_id)
            promoted, events = await self._promote(stores, trip_id, rooms_freed, now)
            return ReservationResult.success(promoted, promoted=promoted, events=events)

        return await self._execute("promote_waitlist", work, trip_id=trip_id)

    async def expire_notification(self, entry_id: int, now: Optional[datetime] = None) -> ReservationResult:
        """
        Close a NOTIFIED entry whose booking window has passed.

        The promoted hold is removed if it is still expired, its rooms return
        to the pool and the next waiting user is promoted. Entries that are no
        longer NOTIFIED are left alone, so overlapping sweeps are harmless.
        """

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            entry = await stores.waitlist.get(entry_id)
            if entry is None:
                return ReservationResult.not_found("waitlist_entry", entry_id)
            if entry.status != WaitlistStatus.NOTIFIED.value:
                return ReservationResult.success(entry, changed=False, detail="Waitlist entry already settled")
            if entry.expires_at is not None and entry.expires_at > now:
                return ReservationResult.conflict("Waitlist notification has not expired")

            reclaimed = 0
            hold = await stores.cart.find(entry.user_id, entry.trip_id, BASE_DATE)
            if hold is not None and hold.is_expired(now):
                await stores.cart.remove(hold.id)
                await stores.inventory.increment(Pool(entry.trip_id), hold.quantity)
                metrics_collector.record_hold_released("expired", hold.quantity)
                reclaimed = hold.quantity

            await stores.waitlist.mark_expired(entry.id)
            metrics_collector.record_waitlist_expired()

            promoted, events = await self._promote(stores, entry.trip_id, reclaimed, now)
            return ReservationResult.success(entry, reclaimed=reclaimed, promoted=promoted, events=events)

        return await self._execute(
            "expire_notification",
            work,
            locate=(WaitlistEntry, entry_id, "waitlist_entry"),
            now=now,
        )

    async def confirm_purchase(self, cart_entry_id: UUID, user_id: UUID) -> ReservationResult:
        """
        Pay for a hold (payment is simulated and always succeeds).

        The hold becomes a booking; its rooms stay taken. A promoted user's
        waitlist entry becomes BOOKED.
        """

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            hold = await stores.cart.get(cart_entry_id)
            if hold is None or hold.user_id != user_id:
                return ReservationResult.not_found("cart_entry", cart_entry_id)
            if hold.is_expired(now):
                return ReservationResult.conflict("Cart hold has expired")

            upcoming = await stores.bookings.count_upcoming(user_id, now)
            limit = self.settings.max_upcoming_bookings
            if upcoming >= limit:
                return ReservationResult.conflict(
                    f"A user may have at most {limit} upcoming bookings"
                )

            trip = await stores.catalog.get_trip(hold.trip_id)
            booking = await stores.bookings.create_from_hold(hold, trip)
            await stores.cart.remove(hold.id)

            if hold.date_index == BASE_DATE:
                await stores.waitlist.mark_booked(user_id, hold.trip_id)

            metrics_collector.record_booking_confirmed()
            return ReservationResult.success(booking)

        return await self._execute(
            "confirm_purchase",
            work,
            locate=(CartEntry, cart_entry_id, "cart_entry"),
        )

    async def cancel_booking(self, booking_id: UUID, user_id: Optional[UUID] = None) -> ReservationResult:
        """
        Cancel a confirmed booking before the trip's cancellation deadline.

        The rooms return to their pool and waiting users are promoted.
        Cancelling twice is OK with nothing changed.
        """

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            booking = await stores.bookings.get(booking_id)
            if booking is None or (user_id is not None and booking.user_id != user_id):
                return ReservationResult.not_found("booking", booking_id)
            if booking.status == BookingStatus.CANCELLED.value:
                return ReservationResult.success(booking, changed=False, detail="Booking already cancelled")

            trip = await stores.catalog.get_trip(booking.trip_id)
            if now > trip.effective_cancellation_deadline:
                return ReservationResult.conflict("The cancellation deadline for this trip has passed")

            await stores.bookings.cancel(booking, now)
            await stores.inventory.increment(Pool(booking.trip_id, booking.date_index), booking.quantity)
            metrics_collector.record_booking_cancelled()

            promoted, events = await self._promote(stores, booking.trip_id, booking.quantity, now)
            return ReservationResult.success(
                booking,
                reclaimed=booking.quantity,
                promoted=promoted,
                events=events,
            )

        return await self._execute(
            "cancel_booking",
            work,
            locate=(Booking, booking_id, "booking"),
        )

    async def adjust_inventory(
        self,
        trip_id: UUID,
        date_index: int,
        delta: int,
        reason: str,
        actor: str,
    ) -> ReservationResult:
        """
        Provision or withdraw rooms on a pool and keep an audit record.

        New rooms are offered to waiting users straight away.
        """
        pool = Pool(trip_id, date_index)

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            if delta == 0:
                return ReservationResult.conflict("Adjustment delta must be non-zero")

            capacity_before, available_before = await stores.inventory.counters(pool)
            capacity_after, available_after = await stores.inventory.adjust_capacity(pool, delta)

            adjustment = InventoryAdjustment(
                trip_id=trip_id,
                date_index=date_index,
                delta=delta,
                reason=reason,
                actor=actor,
                capacity_total_before=capacity_before,
                capacity_total_after=capacity_after,
                available_before=available_before,
                available_after=available_after,
                created_at=now,
            )
            stores.db.add(adjustment)
            await stores.db.flush()

            logger.info(
                "Inventory adjusted",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "pool": str(pool),
                    "delta": delta,
                    "actor": actor,
                    "capacity_total_after": capacity_after,
                    "available_after": available_after,
                }
            )

            promoted, events = [], []
            if delta > 0:
                promoted, events = await self._promote(stores, trip_id, delta, now)
            return ReservationResult.success(
                adjustment,
                available=await stores.inventory.peek(pool),
                promoted=promoted,
                events=events,
            )

        return await self._execute("adjust_inventory", work, trip_id=trip_id)

    async def pool_snapshot(self, trip_id: UUID, date_index: int = BASE_DATE) -> ReservationResult:
        """Read capacity, availability, held and booked rooms of a pool."""
        pool = Pool(trip_id, date_index)

        async def work(stores: _Stores, now: datetime) -> ReservationResult:
            capacity_total, available = await stores.inventory.counters(pool)
            snapshot = PoolSnapshot(
                trip_id=trip_id,
                date_index=date_index,
                capacity_total=capacity_total,
                available=available,
                held=await stores.cart.held_quantity(pool),
                booked=await stores.bookings.booked_quantity(pool),
                waiting=await stores.waitlist.count_waiting(trip_id),
            )
            return ReservationResult.success(snapshot, available=available)

        return await self._read("pool_snapshot", work)

    async def resend_notifications(self, now: Optional[datetime] = None, limit: int = 100) -> int:
        """
        Redeliver notifications of NOTIFIED entries whose email never went out.

        Entries promoted within the last resend interval are skipped; their
        first delivery may still be running.

        Returns:
            Number of notifications delivered
        """
        now = now or self.clock()
        grace = timedelta(seconds=self.settings.notification_resend_interval_seconds)
        events: list[RoomAvailableEvent] = []

        async with self.session_factory() as db:
            stores = _Stores(db, self.settings)
            for entry in await stores.waitlist.list_undelivered(now, limit, notified_before=now - grace):
                events.extend(await self._build_events(stores, entry.trip_id, [entry]))

        if not events:
            return 0

        delivered = await self._dispatch(events)
        logger.info(
            "Undelivered notifications retried",
            extra={"attempted": len(events), "delivered": delivered}
        )
        return delivered

    # ------------------------------------------------------------------
    # Sweep sources
    # ------------------------------------------------------------------

    async def expired_hold_ids(self, now: datetime, batch_size: int) -> AsyncIterator[UUID]:
        """
        Ids of holds expired at now, read a page at a time.

        Each page uses a short-lived session so no read transaction stays open
        while the caller releases holds.
        """

        async def fetch_page(after):
            async with self.session_factory() as db:
                return await CartLedger(db).list_expired_page(now, batch_size, after)

        async for entry in page_through_expired(fetch_page, batch_size):
            yield entry.id

    async def expired_notification_ids(self, now: datetime, batch_size: int) -> AsyncIterator[int]:
        """Ids of NOTIFIED waitlist entries whose window closed at now."""
        after_id = None
        while True:
            async with self.session_factory() as db:
                page = await WaitlistQueue(db).list_expired_notifications(now, batch_size, after_id)
            for entry in page:
                yield entry.id
            if len(page) < batch_size:
                return
            after_id = page[-1].id
