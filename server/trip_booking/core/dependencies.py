"""FastAPI dependencies shared by the routers."""

from typing import Optional
from uuid import UUID

from fastapi import Request

from ..services.reservation_coordinator import ReservationCoordinator
from ..services.results import ReservationResult


def get_coordinator(request: Request) -> ReservationCoordinator:
    """
    Coordinator dependency.

    The application builds one coordinator at startup so every request and
    background worker shares the same per-trip locks.
    """
    return request.app.state.coordinator


def raise_for_outcome(
    result: ReservationResult,
    trip_id: Optional[UUID] = None,
    date_index: Optional[int] = None,
) -> None:
    """Raise the Problem Details exception for a failed coordinator outcome."""
    problem = result.to_problem(trip_id=trip_id, date_index=date_index)
    if problem is not None:
        raise problem
