"""FastAPI routers package."""

from .health import router as health_router
from .inventory import router as inventory_router
from .metrics import router as metrics_router
from .reservation import router as reservation_router
from .trip import router as trip_router
from .user import router as user_router
from .waitlist import router as waitlist_router

__all__ = [
    "health_router",
    "inventory_router",
    "metrics_router",
    "reservation_router",
    "trip_router",
    "user_router",
    "waitlist_router",
]
