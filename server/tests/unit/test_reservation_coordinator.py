"""Unit tests for the reservation coordinator."""

from datetime import timedelta
from uuid import uuid4

import pytest

from trip_booking.models.booking import BookingStatus
from trip_booking.models.waitlist import WaitlistStatus
from trip_booking.services.cart_ledger import CartLedger
from trip_booking.services.inventory_store import InventoryStore, Pool
from trip_booking.services.results import ReservationOutcome
from trip_booking.services.waitlist_queue import WaitlistQueue


async def _find_hold(session_factory, user_id, trip_id, date_index=-1):
    async with session_factory() as db:
        return await CartLedger(db).find(user_id, trip_id, date_index)


async def _active_entry(session_factory, user_id, trip_id):
    async with session_factory() as db:
        return await WaitlistQueue(db).get_active(user_id, trip_id)


async def _waitlist_entry(session_factory, entry_id):
    async with session_factory() as db:
        return await WaitlistQueue(db).get(entry_id)


async def _available(coordinator, trip_id, date_index=-1):
    result = await coordinator.pool_snapshot(trip_id, date_index)
    assert result.ok
    return result.data.available


# ---------------------------------------------------------------------------
# request_reservation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_request_reservation_creates_hold(coordinator, make_trip, make_user, clock):
    trip = await make_trip(capacity=3)
    user = await make_user()

    result = await coordinator.request_reservation(user.id, trip.id, quantity=2)

    assert result.outcome is ReservationOutcome.OK
    assert result.available == 1
    assert result.data.quantity == 2
    assert result.data.expires_at == clock.now + timedelta(hours=24)
    assert await _available(coordinator, trip.id) == 1


@pytest.mark.asyncio
async def test_repeat_request_extends_the_same_hold(coordinator, make_trip, make_user, clock):
    trip = await make_trip(capacity=5)
    user = await make_user()

    first = await coordinator.request_reservation(user.id, trip.id)
    clock.advance(hours=2)
    second = await coordinator.request_reservation(user.id, trip.id, quantity=2)

    assert second.data.id == first.data.id
    assert second.data.quantity == 3
    assert second.data.expires_at == clock.now + timedelta(hours=24)
    assert await _available(coordinator, trip.id) == 2


@pytest.mark.asyncio
async def test_sold_out_pool_prompts_waitlist(coordinator, make_trip, make_user, session_factory):
    trip = await make_trip(capacity=1)
    first = await make_user("Ada")
    second = await make_user("Brian")
    await coordinator.request_reservation(first.id, trip.id)

    result = await coordinator.request_reservation(second.id, trip.id)

    assert result.outcome is ReservationOutcome.PROMPT_WAITLIST
    assert result.queue_length == 0
    assert result.available == 0
    assert await _find_hold(session_factory, second.id, trip.id) is None


@pytest.mark.asyncio
async def test_sold_out_pool_reports_existing_waitlist_entry(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=1)
    first = await make_user("Ada")
    second = await make_user("Brian")
    await coordinator.request_reservation(first.id, trip.id)
    await coordinator.join_waitlist(second.id, trip.id)

    result = await coordinator.request_reservation(second.id, trip.id)

    assert result.outcome is ReservationOutcome.ALREADY_ON_WAITLIST
    assert result.data.user_id == second.id
    assert result.position == 1
    assert result.queue_length == 1


@pytest.mark.asyncio
async def test_request_more_than_available_changes_nothing(coordinator, make_trip, make_user, session_factory):
    trip = await make_trip(capacity=2)
    user = await make_user()

    result = await coordinator.request_reservation(user.id, trip.id, quantity=3)

    assert result.outcome is ReservationOutcome.INSUFFICIENT_INVENTORY
    assert result.requested == 3
    assert result.available == 2
    assert await _available(coordinator, trip.id) == 2
    assert await _find_hold(session_factory, user.id, trip.id) is None


@pytest.mark.asyncio
async def test_request_on_date_variant_uses_its_own_pool(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=1, variant_capacities=(2,))
    user = await make_user()

    result = await coordinator.request_reservation(user.id, trip.id, date_index=0, quantity=2)

    assert result.ok
    assert result.data.date_index == 0
    assert await _available(coordinator, trip.id, 0) == 0
    assert await _available(coordinator, trip.id) == 1


@pytest.mark.asyncio
async def test_request_for_unknown_entities_is_not_found(coordinator, make_trip, make_user):
    trip = await make_trip()
    user = await make_user()

    unknown_trip = await coordinator.request_reservation(user.id, uuid4())
    unknown_user = await coordinator.request_reservation(uuid4(), trip.id)
    unknown_date = await coordinator.request_reservation(user.id, trip.id, date_index=4)

    assert unknown_trip.outcome is ReservationOutcome.NOT_FOUND
    assert unknown_user.outcome is ReservationOutcome.NOT_FOUND
    assert unknown_user.resource_type == "user"
    assert unknown_date.outcome is ReservationOutcome.NOT_FOUND
    assert unknown_date.resource_type == "date_variant"


@pytest.mark.asyncio
async def test_per_user_room_cap_spans_all_dates_of_a_trip(make_coordinator, make_trip, make_user):
    coordinator = make_coordinator(max_rooms_per_user_per_trip=3)
    trip = await make_trip(capacity=5, variant_capacities=(5,))
    user = await make_user()

    assert (await coordinator.request_reservation(user.id, trip.id, quantity=2)).ok
    result = await coordinator.request_reservation(user.id, trip.id, date_index=0, quantity=2)

    assert result.outcome is ReservationOutcome.CONFLICT
    assert await _available(coordinator, trip.id, 0) == 5


# ---------------------------------------------------------------------------
# waitlist
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_join_waitlist_twice_is_already_on_waitlist(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=0)
    ada = await make_user("Ada")
    brian = await make_user("Brian")

    joined = await coordinator.join_waitlist(ada.id, trip.id)
    await coordinator.join_waitlist(brian.id, trip.id)
    again = await coordinator.join_waitlist(ada.id, trip.id)

    assert joined.outcome is ReservationOutcome.OK
    assert joined.position == 1
    assert again.outcome is ReservationOutcome.ALREADY_ON_WAITLIST
    assert again.data.id == joined.data.id
    assert again.queue_length == 2


@pytest.mark.asyncio
async def test_join_after_room_freed_up_promotes_immediately(coordinator, make_trip, make_user, session_factory, notifier):
    trip = await make_trip(capacity=1)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    chen = await make_user("Chen")
    hold = (await coordinator.request_reservation(ada.id, trip.id)).data
    prompted = await coordinator.request_reservation(brian.id, trip.id)
    await coordinator.release_hold(hold.id, user_id=ada.id)

    joined = await coordinator.join_waitlist(brian.id, trip.id)
    latecomer = await coordinator.request_reservation(chen.id, trip.id)

    assert prompted.outcome is ReservationOutcome.PROMPT_WAITLIST
    assert joined.ok
    assert [entry.user_id for entry in joined.promoted] == [brian.id]
    assert joined.data.status == WaitlistStatus.NOTIFIED.value
    assert joined.queue_length == 0
    assert await _find_hold(session_factory, brian.id, trip.id) is not None
    assert [event.user_id for event in notifier.sent] == [brian.id]
    assert latecomer.outcome is ReservationOutcome.PROMPT_WAITLIST
    assert await _available(coordinator, trip.id) == 0


@pytest.mark.asyncio
async def test_waitlist_status_reports_position(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=0)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    await coordinator.join_waitlist(ada.id, trip.id)
    await coordinator.join_waitlist(brian.id, trip.id)

    status = await coordinator.waitlist_status(brian.id, trip.id)
    missing = await coordinator.waitlist_status((await make_user("Chen")).id, trip.id)

    assert status.position == 2
    assert status.queue_length == 2
    assert missing.ok
    assert missing.data is None


@pytest.mark.asyncio
async def test_release_promotes_oldest_waiting_user(coordinator, make_trip, make_user, session_factory, notifier):
    trip = await make_trip(capacity=1)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    chen = await make_user("Chen")
    hold = (await coordinator.request_reservation(ada.id, trip.id)).data
    await coordinator.join_waitlist(brian.id, trip.id)
    await coordinator.join_waitlist(chen.id, trip.id)

    result = await coordinator.release_hold(hold.id, user_id=ada.id)

    assert result.ok
    assert result.reclaimed == 1
    assert [entry.user_id for entry in result.promoted] == [brian.id]
    assert result.available == 0

    promoted_hold = await _find_hold(session_factory, brian.id, trip.id)
    assert promoted_hold.quantity == 1
    entry = await _active_entry(session_factory, brian.id, trip.id)
    assert entry.status == WaitlistStatus.NOTIFIED.value
    assert entry.email_sent_at is not None
    assert (await _active_entry(session_factory, chen.id, trip.id)).status == WaitlistStatus.WAITING.value

    assert [event.email for event in notifier.sent] == [brian.email]
    assert notifier.sent[0].destination == "Reykjavik"


@pytest.mark.asyncio
async def test_promotion_is_bounded_by_rooms_freed(coordinator, make_trip, make_user, session_factory):
    trip = await make_trip(capacity=2)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    waiting = [await make_user(name) for name in ("Chen", "Dana")]
    ada_hold = (await coordinator.request_reservation(ada.id, trip.id)).data
    await coordinator.request_reservation(brian.id, trip.id)
    for user in waiting:
        await coordinator.join_waitlist(user.id, trip.id)

    result = await coordinator.release_hold(ada_hold.id, user_id=ada.id)

    assert [entry.user_id for entry in result.promoted] == [waiting[0].id]
    status = await coordinator.waitlist_status(waiting[1].id, trip.id)
    assert status.position == 1


@pytest.mark.asyncio
async def test_promotion_stops_when_queue_is_empty(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=3)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    hold = (await coordinator.request_reservation(ada.id, trip.id, quantity=3)).data
    await coordinator.join_waitlist(brian.id, trip.id)

    result = await coordinator.release_hold(hold.id, user_id=ada.id)

    assert len(result.promoted) == 1
    assert result.available == 2


@pytest.mark.asyncio
async def test_variant_release_does_not_promote_onto_sold_out_base(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=1, variant_capacities=(1,))
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    await coordinator.request_reservation(ada.id, trip.id)
    variant_hold = (await coordinator.request_reservation(ada.id, trip.id, date_index=0)).data
    await coordinator.join_waitlist(brian.id, trip.id)

    result = await coordinator.release_hold(variant_hold.id, user_id=ada.id)

    assert result.ok
    assert result.promoted == []
    assert await _available(coordinator, trip.id, 0) == 1
    assert (await coordinator.waitlist_status(brian.id, trip.id)).position == 1


@pytest.mark.asyncio
async def test_release_of_someone_elses_hold_is_not_found(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=2)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    hold = (await coordinator.request_reservation(ada.id, trip.id)).data

    result = await coordinator.release_hold(hold.id, user_id=brian.id)
    missing = await coordinator.release_hold(uuid4())

    assert result.outcome is ReservationOutcome.NOT_FOUND
    assert missing.outcome is ReservationOutcome.NOT_FOUND
    assert await _available(coordinator, trip.id) == 1


@pytest.mark.asyncio
async def test_promoted_user_releasing_hold_passes_the_turn(coordinator, make_trip, make_user, session_factory):
    trip = await make_trip(capacity=1)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    chen = await make_user("Chen")
    ada_hold = (await coordinator.request_reservation(ada.id, trip.id)).data
    await coordinator.join_waitlist(brian.id, trip.id)
    await coordinator.join_waitlist(chen.id, trip.id)
    brian_entry = (await coordinator.release_hold(ada_hold.id)).promoted[0]
    brian_hold = await _find_hold(session_factory, brian.id, trip.id)

    result = await coordinator.release_hold(brian_hold.id, user_id=brian.id)

    assert [entry.user_id for entry in result.promoted] == [chen.id]
    assert (await _waitlist_entry(session_factory, brian_entry.id)).status == WaitlistStatus.EXPIRED.value


@pytest.mark.asyncio
async def test_expire_notification_waits_for_window(coordinator, make_trip, make_user, session_factory, clock):
    trip = await make_trip(capacity=1)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    chen = await make_user("Chen")
    ada_hold = (await coordinator.request_reservation(ada.id, trip.id)).data
    await coordinator.join_waitlist(brian.id, trip.id)
    await coordinator.join_waitlist(chen.id, trip.id)
    brian_entry = (await coordinator.release_hold(ada_hold.id)).promoted[0]

    early = await coordinator.expire_notification(brian_entry.id)
    assert early.outcome is ReservationOutcome.CONFLICT

    clock.advance(hours=25)
    result = await coordinator.expire_notification(brian_entry.id)

    assert result.ok
    assert result.reclaimed == 1
    assert [entry.user_id for entry in result.promoted] == [chen.id]
    assert await _find_hold(session_factory, brian.id, trip.id) is None
    assert (await _waitlist_entry(session_factory, brian_entry.id)).status == WaitlistStatus.EXPIRED.value

    again = await coordinator.expire_notification(brian_entry.id)
    assert again.ok
    assert again.changed is False


@pytest.mark.asyncio
async def test_adjust_inventory_promotes_waiting_users(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=0)
    waiting = [await make_user(name) for name in ("Ada", "Brian", "Chen")]
    for user in waiting:
        await coordinator.join_waitlist(user.id, trip.id)

    result = await coordinator.adjust_inventory(trip.id, -1, 2, "Extra rooms released by hotel", "ops@example.com")

    assert result.ok
    assert result.data.capacity_total_after == 2
    assert result.data.available_after == 2
    assert [entry.user_id for entry in result.promoted] == [waiting[0].id, waiting[1].id]
    assert result.available == 0


@pytest.mark.asyncio
async def test_adjust_inventory_rejects_withdrawing_allocated_rooms(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=2)
    user = await make_user()
    await coordinator.request_reservation(user.id, trip.id, quantity=2)

    withdraw = await coordinator.adjust_inventory(trip.id, -1, -1, "Hotel overbooked", "ops@example.com")
    zero = await coordinator.adjust_inventory(trip.id, -1, 0, "No-op", "ops@example.com")

    assert withdraw.outcome is ReservationOutcome.CONFLICT
    assert zero.outcome is ReservationOutcome.CONFLICT
    snapshot = (await coordinator.pool_snapshot(trip.id)).data
    assert snapshot.capacity_total == 2
    assert snapshot.balanced


@pytest.mark.asyncio
async def test_promote_waitlist_is_bounded_by_free_base_rooms(coordinator, make_trip, make_user, session_factory):
    trip = await make_trip(capacity=0)
    waiting = [await make_user(name) for name in ("Ada", "Brian")]
    for user in waiting:
        await coordinator.join_waitlist(user.id, trip.id)
    async with session_factory() as db:
        await InventoryStore(db).adjust_capacity(Pool(trip.id), 1)
        await db.commit()

    result = await coordinator.promote_waitlist(trip.id, rooms_freed=5)

    assert result.ok
    assert [entry.user_id for entry in result.promoted] == [waiting[0].id]
    assert await _available(coordinator, trip.id) == 0
    assert await _find_hold(session_factory, waiting[0].id, trip.id) is not None
    assert (await _active_entry(session_factory, waiting[1].id, trip.id)).status == WaitlistStatus.WAITING.value


@pytest.mark.asyncio
async def test_promote_waitlist_for_unknown_trip_is_not_found(coordinator):
    result = await coordinator.promote_waitlist(uuid4(), rooms_freed=1)

    assert result.outcome is ReservationOutcome.NOT_FOUND


# ---------------------------------------------------------------------------
# purchase and cancellation
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_confirm_purchase_books_the_hold(coordinator, make_trip, make_user, session_factory):
    trip = await make_trip(capacity=3)
    user = await make_user()
    hold = (await coordinator.request_reservation(user.id, trip.id, quantity=2)).data

    result = await coordinator.confirm_purchase(hold.id, user.id)

    assert result.ok
    booking = result.data
    assert booking.status == BookingStatus.CONFIRMED.value
    assert booking.quantity == 2
    assert booking.total_price_amount == 2 * 129900
    assert len(booking.code) == 8
    assert await _find_hold(session_factory, user.id, trip.id) is None

    snapshot = (await coordinator.pool_snapshot(trip.id)).data
    assert (snapshot.available, snapshot.held, snapshot.booked) == (1, 0, 2)
    assert snapshot.balanced


@pytest.mark.asyncio
async def test_confirm_purchase_of_expired_hold_is_conflict(coordinator, make_trip, make_user, clock):
    trip = await make_trip(capacity=1)
    user = await make_user()
    hold = (await coordinator.request_reservation(user.id, trip.id)).data

    clock.advance(hours=24)
    result = await coordinator.confirm_purchase(hold.id, user.id)

    assert result.outcome is ReservationOutcome.CONFLICT


@pytest.mark.asyncio
async def test_confirm_purchase_settles_promoted_waitlist_entry(coordinator, make_trip, make_user, session_factory):
    trip = await make_trip(capacity=1)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    ada_hold = (await coordinator.request_reservation(ada.id, trip.id)).data
    await coordinator.join_waitlist(brian.id, trip.id)
    entry = (await coordinator.release_hold(ada_hold.id)).promoted[0]
    brian_hold = await _find_hold(session_factory, brian.id, trip.id)

    result = await coordinator.confirm_purchase(brian_hold.id, brian.id)

    assert result.ok
    assert (await _waitlist_entry(session_factory, entry.id)).status == WaitlistStatus.BOOKED.value


@pytest.mark.asyncio
async def test_upcoming_booking_limit(make_coordinator, make_trip, make_user):
    coordinator = make_coordinator(max_upcoming_bookings=1)
    first_trip = await make_trip(capacity=1)
    second_trip = await make_trip(capacity=1, destination="Lisbon", country="Portugal")
    user = await make_user()
    first_hold = (await coordinator.request_reservation(user.id, first_trip.id)).data
    second_hold = (await coordinator.request_reservation(user.id, second_trip.id)).data

    assert (await coordinator.confirm_purchase(first_hold.id, user.id)).ok
    result = await coordinator.confirm_purchase(second_hold.id, user.id)

    assert result.outcome is ReservationOutcome.CONFLICT
    assert "upcoming" in result.detail


@pytest.mark.asyncio
async def test_cancel_booking_returns_rooms_and_promotes(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=1)
    ada = await make_user("Ada")
    brian = await make_user("Brian")
    hold = (await coordinator.request_reservation(ada.id, trip.id)).data
    booking = (await coordinator.confirm_purchase(hold.id, ada.id)).data
    await coordinator.join_waitlist(brian.id, trip.id)

    result = await coordinator.cancel_booking(booking.id, user_id=ada.id)

    assert result.ok
    assert result.data.status == BookingStatus.CANCELLED.value
    assert [entry.user_id for entry in result.promoted] == [brian.id]

    again = await coordinator.cancel_booking(booking.id, user_id=ada.id)
    assert again.ok
    assert again.changed is False
    snapshot = (await coordinator.pool_snapshot(trip.id)).data
    assert (snapshot.available, snapshot.held, snapshot.booked) == (0, 1, 0)


@pytest.mark.asyncio
async def test_cancel_after_deadline_is_conflict(coordinator, make_trip, make_user, clock):
    trip = await make_trip(capacity=1, cancellation_deadline=clock.now + timedelta(days=1))
    user = await make_user()
    hold = (await coordinator.request_reservation(user.id, trip.id)).data
    booking = (await coordinator.confirm_purchase(hold.id, user.id)).data

    clock.advance(days=2)
    result = await coordinator.cancel_booking(booking.id, user_id=user.id)

    assert result.outcome is ReservationOutcome.CONFLICT
    assert await _available(coordinator, trip.id) == 0
