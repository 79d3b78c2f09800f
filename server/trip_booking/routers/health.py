"""RPC health probe."""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..core.clock import utcnow
from ..core.config import settings
from ..schemas.health import HealthResponse, HealthStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/health", tags=["health"])


@router.post("/ping", response_model=HealthResponse)
async def health_ping(request: Request) -> JSONResponse:
    """
    Report liveness and the reservation engine's clock.

    Hold and notification expiry are judged against that clock, so operators
    can compare it with the timestamps in hold responses.
    """
    coordinator = getattr(request.app.state, "coordinator", None)
    if coordinator is None:
        logger.warning("Health ping before the reservation coordinator was created")

    response_data = HealthResponse(
        status=HealthStatus.HEALTHY if coordinator is not None else HealthStatus.DEGRADED,
        environment=settings.environment,
        engine_ready=coordinator is not None,
        server_time=coordinator.clock() if coordinator is not None else utcnow(),
    )

    return JSONResponse(content=response_data.model_dump(mode="json"))
