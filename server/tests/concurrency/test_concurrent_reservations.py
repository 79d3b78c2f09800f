"""Concurrency tests for reservation operations."""

import asyncio
from collections import Counter

import pytest

from trip_booking.services.results import ReservationOutcome


@pytest.mark.asyncio
async def test_concurrent_requests_never_oversell(coordinator, make_trip, make_user):
    """Test that concurrent hold requests don't cause overbooking."""
    trip = await make_trip(capacity=5)
    users = [await make_user() for _ in range(20)]

    results = await asyncio.gather(
        *(coordinator.request_reservation(user.id, trip.id) for user in users)
    )

    outcomes = Counter(result.outcome for result in results)
    assert outcomes[ReservationOutcome.OK] == 5
    assert outcomes[ReservationOutcome.PROMPT_WAITLIST] == 15

    snapshot = (await coordinator.pool_snapshot(trip.id)).data
    assert snapshot.available == 0
    assert snapshot.held == 5
    assert snapshot.balanced


@pytest.mark.asyncio
async def test_last_room_goes_to_exactly_one_user(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=1)
    ada = await make_user("Ada")
    brian = await make_user("Brian")

    first, second = await asyncio.gather(
        coordinator.request_reservation(ada.id, trip.id),
        coordinator.request_reservation(brian.id, trip.id),
    )

    assert sorted([first.outcome.value, second.outcome.value]) == ["OK", "PROMPT_WAITLIST"]
    assert (await coordinator.pool_snapshot(trip.id)).data.available == 0


@pytest.mark.asyncio
async def test_concurrent_joins_create_one_entry(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=0)
    user = await make_user()

    results = await asyncio.gather(*(coordinator.join_waitlist(user.id, trip.id) for _ in range(5)))

    outcomes = Counter(result.outcome for result in results)
    assert outcomes[ReservationOutcome.OK] == 1
    assert outcomes[ReservationOutcome.ALREADY_ON_WAITLIST] == 4
    assert (await coordinator.waitlist_status(user.id, trip.id)).queue_length == 1


@pytest.mark.asyncio
async def test_concurrent_releases_and_requests_conserve_rooms(coordinator, make_trip, make_user):
    trip = await make_trip(capacity=4, variant_capacities=(3,))
    holders = [await make_user() for _ in range(4)]
    holds = [(await coordinator.request_reservation(user.id, trip.id)).data for user in holders]
    newcomers = [await make_user() for _ in range(6)]
    waiting = [await make_user() for _ in range(2)]
    for user in waiting:
        await coordinator.join_waitlist(user.id, trip.id)

    operations = [coordinator.release_hold(hold.id) for hold in holds[:3]]
    operations += [coordinator.request_reservation(user.id, trip.id) for user in newcomers[:3]]
    operations += [coordinator.request_reservation(user.id, trip.id, date_index=0) for user in newcomers[3:]]
    results = await asyncio.gather(*operations)

    assert all(result.outcome is not ReservationOutcome.CONFLICT for result in results)
    for date_index in (-1, 0):
        snapshot = (await coordinator.pool_snapshot(trip.id, date_index)).data
        assert snapshot.available >= 0
        assert snapshot.balanced
    # Both waiting users were promoted before any newcomer could take a freed base room
    assert (await coordinator.waitlist_status(waiting[0].id, trip.id)).data.status == "NOTIFIED"
    assert (await coordinator.waitlist_status(waiting[1].id, trip.id)).data.status == "NOTIFIED"


@pytest.mark.asyncio
async def test_concurrent_operations_on_different_trips(coordinator, make_trip, make_user):
    trips = [await make_trip(capacity=2, destination=f"Stop {i}") for i in range(3)]
    users = [await make_user() for _ in range(3)]

    results = await asyncio.gather(
        *(coordinator.request_reservation(user.id, trip.id) for trip in trips for user in users)
    )

    assert Counter(result.outcome for result in results)[ReservationOutcome.OK] == 6
    for trip in trips:
        assert (await coordinator.pool_snapshot(trip.id)).data.available == 0
