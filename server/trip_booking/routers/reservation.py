"""Reservation router for holds, purchases and cancellations."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..core.dependencies import get_coordinator, raise_for_outcome
from ..schemas.common import PROBLEM_RESPONSES, Money
from ..schemas.reservation import (
    Booking,
    CancelBookingRequest,
    CancelBookingResponse,
    CartEntry,
    ConfirmPurchaseRequest,
    ConfirmPurchaseResponse,
    ReleaseHoldRequest,
    ReleaseHoldResponse,
    RequestReservationRequest,
    ReservationResponse,
)
from ..schemas.waitlist import WaitlistEntry
from ..services.reservation_coordinator import ReservationCoordinator
from ..services.results import ReservationOutcome

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/reservation", tags=["reservation"], responses=PROBLEM_RESPONSES)

# Define dependencies to avoid B008 linting errors
COORDINATOR_DEPENDENCY = Depends(get_coordinator)


def _convert_booking_to_schema(booking_model) -> Booking:
    """Convert booking model to schema."""
    return Booking(
        id=booking_model.id,
        code=booking_model.code,
        user_id=booking_model.user_id,
        trip_id=booking_model.trip_id,
        date_index=booking_model.date_index,
        quantity=booking_model.quantity,
        total_price=Money(
            amount=booking_model.total_price_amount,
            currency=booking_model.price_currency
        ),
        status=booking_model.status,
        created_at=booking_model.created_at,
        cancelled_at=booking_model.cancelled_at
    )


@router.post("/request", response_model=ReservationResponse)
async def request_reservation(
    request: RequestReservationRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """
    Hold rooms on a trip's base date or one of its date variants.

    A sold-out pool answers PROMPT_WAITLIST (or ALREADY_ON_WAITLIST) instead
    of creating a hold; asking for more rooms than remain is a 409.
    """
    result = await coordinator.request_reservation(
        user_id=request.user_id,
        trip_id=request.trip_id,
        date_index=request.date_index,
        quantity=request.quantity
    )
    raise_for_outcome(result, request.trip_id, request.date_index)

    response_data = ReservationResponse(
        outcome=result.outcome.value,
        available_rooms=result.available,
        queue_length=result.queue_length,
    )
    if result.outcome is ReservationOutcome.OK:
        response_data.hold = CartEntry.model_validate(result.data)
    elif result.outcome is ReservationOutcome.ALREADY_ON_WAITLIST:
        response_data.waitlist_entry = WaitlistEntry.model_validate(result.data)

    logger.info(
        "Reservation request handled",
        extra={
            "user_id": str(request.user_id),
            "trip_id": str(request.trip_id),
            "date_index": request.date_index,
            "quantity": request.quantity,
            "outcome": result.outcome.value
        }
    )

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/release", response_model=ReleaseHoldResponse)
async def release_hold(
    request: ReleaseHoldRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """Remove a hold from the cart; freed rooms go to the waitlist first."""
    result = await coordinator.release_hold(request.cart_entry_id, user_id=request.user_id)
    raise_for_outcome(result)

    response_data = ReleaseHoldResponse(
        outcome=result.outcome.value,
        released=CartEntry.model_validate(result.data),
        promoted=[WaitlistEntry.model_validate(entry) for entry in result.promoted]
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/confirm", response_model=ConfirmPurchaseResponse)
async def confirm_purchase(
    request: ConfirmPurchaseRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """Pay for a hold and turn it into a booking."""
    result = await coordinator.confirm_purchase(request.cart_entry_id, request.user_id)
    raise_for_outcome(result)

    response_data = ConfirmPurchaseResponse(
        outcome=result.outcome.value,
        booking=_convert_booking_to_schema(result.data)
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/cancel", response_model=CancelBookingResponse)
async def cancel_booking(
    request: CancelBookingRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """
    Cancel a booking before the trip's cancellation deadline.

    Cancelling an already cancelled booking returns it unchanged.
    """
    result = await coordinator.cancel_booking(request.booking_id, user_id=request.user_id)
    raise_for_outcome(result)

    response_data = CancelBookingResponse(
        outcome=result.outcome.value,
        booking=_convert_booking_to_schema(result.data),
        promoted=[WaitlistEntry.model_validate(entry) for entry in result.promoted]
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
