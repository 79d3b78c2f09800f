"""Inventory router for capacity adjustment operations."""

import logging

from fastapi import APIRouter, Depends, Header
from fastapi.responses import JSONResponse

from ..core.dependencies import get_coordinator, raise_for_outcome
from ..schemas.common import PROBLEM_RESPONSES
from ..schemas.inventory import (
    AdjustInventoryRequest,
    AdjustInventoryResponse,
    GetInventoryRequest,
    InventoryAdjustment,
    PoolSnapshot,
)
from ..schemas.waitlist import WaitlistEntry
from ..services.reservation_coordinator import ReservationCoordinator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/inventory", tags=["inventory"], responses=PROBLEM_RESPONSES)

COORDINATOR_DEPENDENCY = Depends(get_coordinator)


@router.post("/adjust", response_model=AdjustInventoryResponse)
async def adjust_inventory(
    request: AdjustInventoryRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY,
    # In a real implementation, you'd extract actor from authentication context
    actor: str = Header("system", alias="X-Actor")
) -> JSONResponse:
    """
    Adjust a pool's provisioned rooms.

    Can increase or decrease capacity, but never below the rooms already held
    or booked. Added rooms go to the trip's waitlist first.
    """
    result = await coordinator.adjust_inventory(
        trip_id=request.trip_id,
        date_index=request.date_index,
        delta=request.delta,
        reason=request.reason,
        actor=actor
    )
    raise_for_outcome(result, request.trip_id, request.date_index)

    response_data = AdjustInventoryResponse(
        outcome=result.outcome.value,
        adjustment=InventoryAdjustment.model_validate(result.data),
        promoted=[WaitlistEntry.model_validate(entry) for entry in result.promoted]
    )

    logger.info(
        "Inventory adjustment completed successfully",
        extra={
            "adjustment_id": str(result.data.id),
            "trip_id": str(request.trip_id),
            "date_index": request.date_index,
            "delta": request.delta,
            "reason": request.reason,
            "actor": actor
        }
    )

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/get", response_model=PoolSnapshot)
async def get_inventory(
    request: GetInventoryRequest,
    coordinator: ReservationCoordinator = COORDINATOR_DEPENDENCY
) -> JSONResponse:
    """Read a pool's capacity, availability, held and booked rooms."""
    result = await coordinator.pool_snapshot(request.trip_id, request.date_index)
    raise_for_outcome(result, request.trip_id, request.date_index)

    response_data = PoolSnapshot.model_validate(result.data)
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
