"""Models module exporting all database models."""

from .booking import Booking, BookingStatus
from .cart import CartEntry
from .inventory import InventoryAdjustment
from .trip import DateVariant, Trip
from .user import User
from .waitlist import WaitlistEntry, WaitlistStatus

__all__ = [
    # Catalog entities
    "Trip",
    "DateVariant",
    "User",

    # Reservation entities
    "CartEntry",
    "Booking",
    "BookingStatus",

    # Waitlist entity
    "WaitlistEntry",
    "WaitlistStatus",

    # Inventory entity
    "InventoryAdjustment",
]
