"""Service layer package."""

from .booking_service import BookingService
from .cart_ledger import CartLedger
from .catalog_service import CatalogService
from .inventory_store import BASE_DATE, InventoryStore, Pool
from .notifier import (
    EmailNotifier,
    LogNotifier,
    NotificationDispatchFailed,
    Notifier,
    RoomAvailableEvent,
    build_notifier,
)
from .reservation_coordinator import PoolSnapshot, ReservationCoordinator
from .results import ReservationOutcome, ReservationResult
from .waitlist_queue import WaitlistQueue

__all__ = [
    "BASE_DATE",
    "BookingService",
    "CartLedger",
    "CatalogService",
    "EmailNotifier",
    "InventoryStore",
    "LogNotifier",
    "NotificationDispatchFailed",
    "Notifier",
    "Pool",
    "PoolSnapshot",
    "ReservationCoordinator",
    "ReservationOutcome",
    "ReservationResult",
    "RoomAvailableEvent",
    "WaitlistQueue",
    "build_notifier",
]
