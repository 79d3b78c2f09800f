"""Unit tests for pool room counters."""

from uuid import uuid4

import pytest

from trip_booking.core.exceptions import NotFoundError
from trip_booking.services.inventory_store import CapacityConflictError, InventoryStore, Pool


@pytest.mark.asyncio
async def test_try_decrement_takes_rooms(test_session, make_trip):
    trip = await make_trip(capacity=5)
    store = InventoryStore(test_session)
    pool = Pool(trip.id)

    assert await store.try_decrement(pool, 3) is True
    assert await store.peek(pool) == 2
    assert await store.capacity(pool) == 5


@pytest.mark.asyncio
async def test_try_decrement_refuses_instead_of_going_negative(test_session, make_trip):
    trip = await make_trip(capacity=2)
    store = InventoryStore(test_session)
    pool = Pool(trip.id)

    assert await store.try_decrement(pool, 3) is False
    assert await store.peek(pool) == 2

    assert await store.try_decrement(pool, 2) is True
    assert await store.try_decrement(pool, 1) is False
    assert await store.peek(pool) == 0


@pytest.mark.asyncio
async def test_try_decrement_rejects_non_positive_quantity(test_session, make_trip):
    trip = await make_trip(capacity=2)
    store = InventoryStore(test_session)

    with pytest.raises(ValueError):
        await store.try_decrement(Pool(trip.id), 0)


@pytest.mark.asyncio
async def test_increment_is_clamped_at_capacity(test_session, make_trip):
    """Returning more rooms than were taken never exceeds the provisioned count."""
    trip = await make_trip(capacity=4)
    store = InventoryStore(test_session)
    pool = Pool(trip.id)

    await store.try_decrement(pool, 1)
    added = await store.increment(pool, 3)

    assert added == 1
    assert await store.peek(pool) == 4


@pytest.mark.asyncio
async def test_date_variant_pools_are_independent(test_session, make_trip):
    trip = await make_trip(capacity=2, variant_capacities=(3, 1))
    store = InventoryStore(test_session)

    assert await store.try_decrement(Pool(trip.id, 0), 3) is True
    assert await store.peek(Pool(trip.id, 0)) == 0
    assert await store.peek(Pool(trip.id)) == 2
    assert await store.peek(Pool(trip.id, 1)) == 1


@pytest.mark.asyncio
async def test_unknown_pool_raises_not_found(test_session, make_trip):
    trip = await make_trip(capacity=2)
    store = InventoryStore(test_session)

    with pytest.raises(NotFoundError):
        await store.peek(Pool(trip.id, 5))
    with pytest.raises(NotFoundError):
        await store.peek(Pool(uuid4()))
    with pytest.raises(NotFoundError):
        await store.peek(Pool(trip.id, -2))


@pytest.mark.asyncio
async def test_adjust_capacity_moves_both_counters(test_session, make_trip):
    trip = await make_trip(capacity=5)
    store = InventoryStore(test_session)
    pool = Pool(trip.id)
    await store.try_decrement(pool, 2)

    assert await store.adjust_capacity(pool, 3) == (8, 6)
    assert await store.adjust_capacity(pool, -6) == (2, 0)
    assert await store.counters(pool) == (2, 0)


@pytest.mark.asyncio
async def test_adjust_capacity_cannot_withdraw_allocated_rooms(test_session, make_trip):
    trip = await make_trip(capacity=5)
    store = InventoryStore(test_session)
    pool = Pool(trip.id)
    await store.try_decrement(pool, 4)

    with pytest.raises(CapacityConflictError) as exc_info:
        await store.adjust_capacity(pool, -2)

    assert exc_info.value.problem_details["code"] == "CAPACITY_CONFLICT"
    assert await store.counters(pool) == (5, 1)
