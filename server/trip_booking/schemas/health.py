"""Schemas for the RPC health probe."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .. import __version__


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


class HealthResponse(BaseModel):
    """Liveness answer of the reservation API."""

    status: HealthStatus = Field(..., description="healthy once the reservation engine is wired up")
    service: str = Field("trip-booking-api", description="Service name")
    version: str = Field(__version__, description="API version")
    environment: str = Field(..., description="Deployment environment")
    engine_ready: bool = Field(..., description="Whether the reservation coordinator is available")
    server_time: datetime = Field(..., description="Reading of the engine clock (UTC, ISO 8601)")
