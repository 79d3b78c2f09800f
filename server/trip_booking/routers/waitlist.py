"""Waitlist router for joining and inspecting trip waitlists."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.dependencies import get_coordinator, raise_for_outcome
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.waitlist import (
    JoinWaitlistRequest,
    JoinWaitlistResponse,
    WaitlistEntry,
    WaitlistStatusRequest,
    WaitlistStatusResponse,
)
from ..services.reservation_coordinator import ReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/waitlist", tags=["waitlist"], responses=PROBLEM_RESPONSES)

COORDINATOR_DEPENDENCY = Depends(get_coordinator)


@router.post("/join", response_model=JoinWaitlistResponse)
async def join_waitlist(
    request: JoinWaitlistRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """
    Join a trip's waitlist.

    Joining twice is not an error: the second call answers ALREADY_ON_WAITLIST
    with the existing entry.
    """
    result = await coordinator.join_waitlist(request.user_id, request.trip_id)
    raise_for_outcome(result, request.trip_id)

    response_data = JoinWaitlistResponse(
        outcome=result.outcome.value,
        entry=WaitlistEntry.model_validate(result.data),
        position=result.position,
        queue_length=result.queue_length or 0
    )

    logger.info(
        "Waitlist join handled",
        extra={
            "user_id": str(request.user_id),
            "trip_id": str(request.trip_id),
            "outcome": result.outcome.value,
            "position": result.position
        }
    )

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/status", response_model=WaitlistStatusResponse)
async def waitlist_status(
    request: WaitlistStatusRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """Look up a user's live waitlist entry and queue position for a trip."""
    result = await coordinator.waitlist_status(request.user_id, request.trip_id)
    raise_for_outcome(result, request.trip_id)

    response_data = WaitlistStatusResponse(
        entry=WaitlistEntry.model_validate(result.data) if result.data is not None else None,
        position=result.position,
        queue_length=result.queue_length or 0
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
