"""Test configuration and fixtures."""

import os

# Settings are read at import time; point them at SQLite before importing the app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "staging")
os.environ.setdefault("WORKERS_ENABLED", "false")

from datetime import datetime, timedelta  # noqa: E402
from uuid import uuid4  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from trip_booking.core.clock import utcnow  # noqa: E402
from trip_booking.core.config import Settings  # noqa: E402
from trip_booking.core.database import Base, get_db  # noqa: E402
from trip_booking.models import *  # noqa: E402,F403 - Import all models
from trip_booking.schemas.common import Money  # noqa: E402
from trip_booking.schemas.trip import AddDateVariantRequest, CreateTripRequest  # noqa: E402
from trip_booking.schemas.user import CreateUserRequest  # noqa: E402
from trip_booking.services.catalog_service import CatalogService  # noqa: E402
from trip_booking.services.notifier import NotificationDispatchFailed, Notifier, RoomAvailableEvent  # noqa: E402
from trip_booking.services.reservation_coordinator import ReservationCoordinator  # noqa: E402


class FakeClock:
    """Settable clock so tests can move past hold and notification expiry."""

    def __init__(self, start: datetime | None = None):
        self.now = start or utcnow()

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier(Notifier):
    """Collects delivered events instead of sending them."""

    def __init__(self):
        self.sent: list[RoomAvailableEvent] = []

    async def _deliver(self, event: RoomAvailableEvent) -> None:
        self.sent.append(event)


class FailingNotifier(Notifier):
    """Fails every delivery until healed."""

    def __init__(self):
        self.failing = True
        self.attempts = 0
        self.sent: list[RoomAvailableEvent] = []

    async def _deliver(self, event: RoomAvailableEvent) -> None:
        self.attempts += 1
        if self.failing:
            raise ConnectionRefusedError("SMTP relay unavailable")
        self.sent.append(event)


class BrokenNotifier(Notifier):
    """Raises the dispatch failure directly."""

    async def _deliver(self, event: RoomAvailableEvent) -> None:
        raise NotificationDispatchFailed(event, "mailbox full")


def build_test_settings(**overrides) -> Settings:
    values = {
        "database_url": "sqlite+aiosqlite:///:memory:",
        "environment": "staging",
        "workers_enabled": False,
    }
    values.update(overrides)
    return Settings(**values)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """
    Create a file-backed SQLite engine for one test.

    Each session gets its own connection so concurrent coordinator calls
    behave like separate requests.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'trip_booking.db'}",
        echo=False,
        poolclass=NullPool,
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def test_session(session_factory):
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def test_settings():
    return build_test_settings()


@pytest.fixture
def coordinator(session_factory, notifier, test_settings, clock):
    """Coordinator wired to the test database, recording notifier and fake clock."""
    return ReservationCoordinator(session_factory, notifier, test_settings, clock=clock)


@pytest.fixture
def make_coordinator(session_factory, notifier, clock):
    """Factory for coordinators with non-default settings or notifiers."""

    def _make_coordinator(notifier_override: Notifier | None = None, **setting_overrides):
        return ReservationCoordinator(
            session_factory,
            notifier_override or notifier,
            build_test_settings(**setting_overrides),
            clock=clock,
        )

    return _make_coordinator


@pytest.fixture
def make_trip(session_factory, clock):
    """Factory creating trips that depart 60 days after the fake clock's start."""

    async def _make_trip(capacity: int = 2, variant_capacities=(), **overrides):
        starts_at = overrides.pop("starts_at", clock.now + timedelta(days=60))
        data = {
            "destination": "Reykjavik",
            "country": "Iceland",
            "description": "Northern lights and hot springs",
            "starts_at": starts_at,
            "ends_at": starts_at + timedelta(days=5),
            "price": Money(amount=129900, currency="EUR"),
            "capacity_total": capacity,
        }
        data.update(overrides)

        async with session_factory() as db:
            catalog = CatalogService(db)
            trip = await catalog.create_trip(CreateTripRequest(**data))
            for offset, variant_capacity in enumerate(variant_capacities, start=1):
                await catalog.add_date_variant(
                    AddDateVariantRequest(
                        trip_id=trip.id,
                        starts_at=starts_at + timedelta(days=7 * offset),
                        ends_at=starts_at + timedelta(days=7 * offset + 5),
                        capacity_total=variant_capacity,
                    )
                )
        return trip

    return _make_trip


@pytest.fixture
def make_user(session_factory):
    """Factory creating users with unique emails."""

    async def _make_user(first_name: str = "Ada"):
        async with session_factory() as db:
            return await CatalogService(db).create_user(
                CreateUserRequest(
                    email=f"{first_name.lower()}.{uuid4().hex[:8]}@example.com",
                    first_name=first_name,
                    last_name="Traveller",
                )
            )

    return _make_user


@pytest_asyncio.fixture(scope="function")
async def test_app(session_factory, coordinator):
    """Create the FastAPI application bound to the test database."""
    from trip_booking.main import create_app

    app = create_app()
    # ASGITransport does not run the lifespan, so wire state by hand
    app.state.coordinator = coordinator

    # Override database dependency
    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def sample_trip_data():
    """Sample trip payload for API tests."""
    return {
        "destination": "Kyoto",
        "country": "Japan",
        "description": "Temples, gardens and autumn leaves",
        "starts_at": "2031-11-02T09:00:00Z",
        "ends_at": "2031-11-09T18:00:00Z",
        "price": {
            "amount": 249900,
            "currency": "USD"
        },
        "capacity_total": 2
    }


@pytest.fixture
def sample_user_data():
    """Sample user payload for API tests."""
    return {
        "email": "grace@example.com",
        "first_name": "Grace",
        "last_name": "Hopper"
    }
