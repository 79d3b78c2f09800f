"""Trip router for catalog management operations."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import get_db
from ..schemas.common import PROBLEM_RESPONSES, Money
from ..schemas.trip import AddDateVariantRequest, CreateTripRequest, DateVariant, GetTripRequest, Trip
from ..services.catalog_service import CatalogService

router = APIRouter(prefix="/v1/trip", tags=["trip"], responses=PROBLEM_RESPONSES)

DB_DEPENDENCY = Depends(get_db)


def _convert_trip_to_schema(trip_model, variants) -> Trip:
    """Convert trip model and its date variants to schema."""
    return Trip(
        id=trip_model.id,
        destination=trip_model.destination,
        country=trip_model.country,
        description=trip_model.description,
        starts_at=trip_model.starts_at,
        ends_at=trip_model.ends_at,
        price=Money(amount=trip_model.price_amount, currency=trip_model.price_currency),
        capacity_total=trip_model.capacity_total,
        available_rooms=trip_model.available_rooms,
        cancellation_deadline=trip_model.effective_cancellation_deadline,
        date_variants=[DateVariant.model_validate(variant) for variant in variants]
    )


@router.post("/create", response_model=Trip)
async def create_trip(
    request: CreateTripRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Create a trip; all of its base-date rooms start out available."""
    trip = await CatalogService(db).create_trip(request)
    response_data = _convert_trip_to_schema(trip, [])
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/add-date", response_model=DateVariant)
async def add_date_variant(
    request: AddDateVariantRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Add an alternative departure date with its own rooms."""
    variant = await CatalogService(db).add_date_variant(request)
    response_data = DateVariant.model_validate(variant)
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/get", response_model=Trip)
async def get_trip(
    request: GetTripRequest,
    db: AsyncSession = DB_DEPENDENCY
) -> JSONResponse:
    """Get a trip with its date variants and current availability."""
    trip = await CatalogService(db).get_trip(request.trip_id, with_variants=True)
    response_data = _convert_trip_to_schema(trip, trip.date_variants)
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
