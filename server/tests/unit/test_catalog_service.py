"""Unit tests for the catalog service."""

from datetime import timedelta
from uuid import uuid4

import pytest

from trip_booking.core.exceptions import ConflictError, NotFoundError
from trip_booking.schemas.trip import AddDateVariantRequest
from trip_booking.schemas.user import CreateUserRequest
from trip_booking.services.catalog_service import CatalogService


@pytest.mark.asyncio
async def test_create_trip_starts_fully_available(test_session, make_trip):
    trip = await make_trip(capacity=6)

    stored = await CatalogService(test_session).get_trip(trip.id)

    assert stored.capacity_total == 6
    assert stored.available_rooms == 6
    assert stored.destination == "Reykjavik"


@pytest.mark.asyncio
async def test_date_variants_take_consecutive_positions(test_session, make_trip):
    trip = await make_trip(capacity=2, variant_capacities=(3, 4))
    catalog = CatalogService(test_session)

    first = await catalog.get_date_variant(trip.id, 0)
    second = await catalog.get_date_variant(trip.id, 1)

    assert (first.capacity_total, first.available_rooms) == (3, 3)
    assert (second.capacity_total, second.available_rooms) == (4, 4)
    assert second.starts_at > first.starts_at


@pytest.mark.asyncio
async def test_get_missing_date_variant_raises(test_session, make_trip):
    trip = await make_trip(capacity=2, variant_capacities=(1,))
    catalog = CatalogService(test_session)

    with pytest.raises(NotFoundError) as exc_info:
        await catalog.get_date_variant(trip.id, 1)

    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_add_date_variant_to_unknown_trip(test_session, clock):
    starts_at = clock.now + timedelta(days=30)
    request = AddDateVariantRequest(
        trip_id=uuid4(),
        starts_at=starts_at,
        ends_at=starts_at + timedelta(days=3),
        capacity_total=2,
    )

    with pytest.raises(NotFoundError):
        await CatalogService(test_session).add_date_variant(request)


@pytest.mark.asyncio
async def test_duplicate_email_is_conflict(test_session):
    catalog = CatalogService(test_session)
    request = CreateUserRequest(email="grace@example.com", first_name="Grace")
    user = await catalog.create_user(request)

    with pytest.raises(ConflictError):
        await catalog.create_user(request)

    assert (await catalog.find_user_by_email("grace@example.com")).id == user.id
