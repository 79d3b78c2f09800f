"""FastAPI application initialization and configuration."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError

from .core.config import settings
from .core.database import async_session_factory, close_db, engine, init_db
from .core.exceptions import (
    ProblemDetailsException,
    generic_exception_handler,
    problem_details_handler,
    validation_exception_handler,
)
from .core.middleware import setup_middleware
from .core.observability import (
    instrument_fastapi,
    instrument_sqlalchemy,
    setup_metrics,
    setup_structured_logging,
    setup_tracing,
)
from .routers import health, inventory, metrics, reservation, trip, user, waitlist
from .services.notifier import build_notifier
from .services.reservation_coordinator import ReservationCoordinator
from .workers.manager import WorkerManager

# Configure structured logging
setup_structured_logging()

# Configure traditional logging for compatibility
logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan context manager.

    Builds the reservation coordinator shared by requests and background
    workers, and starts the workers when enabled.
    """
    # Startup
    logger.info("Starting FastAPI application")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Debug mode: {settings.debug}")

    try:
        # Setup observability
        setup_tracing()
        setup_metrics()
        instrument_sqlalchemy(engine)
        logger.info("Observability setup completed")

        # Initialize database
        await init_db()
        logger.info("Database initialized successfully")

        coordinator = ReservationCoordinator(async_session_factory, build_notifier(settings), settings)
        app.state.coordinator = coordinator
        app.state.worker_manager = WorkerManager(coordinator, settings)

        # Start background workers
        if settings.workers_enabled:
            await app.state.worker_manager.start_all()
            logger.info("Background workers started successfully")
        else:
            logger.info("Background workers disabled")
    except Exception as e:
        logger.error(f"Failed to initialize application: {e}")
        raise

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down FastAPI application")

    try:
        # Stop background workers
        await app.state.worker_manager.stop_all()
        logger.info("Background workers stopped")

        # Close database connections
        await close_db()
        logger.info("Database connections closed")
    except Exception as e:
        logger.error(f"Error during application cleanup: {e}")

    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title="Trip Booking API",
        description="RPC-over-HTTP API for room-limited trips with expiring cart holds, FIFO waitlists, and inventory adjustments",
        version="1.0.0",
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "traceparent", "tracestate"],
    )

    # Setup custom middleware
    setup_middleware(app, enable_logging=True)

    # Instrument FastAPI with OpenTelemetry
    instrument_fastapi(app)

    # Register exception handlers
    app.add_exception_handler(ProblemDetailsException, problem_details_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    # Health check endpoint (inline)
    @app.get(
        "/health",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Health Check",
        description="Check if the service is healthy and responsive",
        response_model=dict,
    )
    async def health_check():
        """
        Health check endpoint that returns service status.

        Returns:
            dict: Health status information
        """
        return {
            "status": "healthy",
            "service": "trip-booking-api",
            "version": "1.0.0",
            "environment": settings.environment,
            "debug": settings.debug,
        }

    # Readiness check endpoint (inline)
    @app.get(
        "/ready",
        status_code=status.HTTP_200_OK,
        tags=["Health"],
        summary="Readiness Check",
        description="Check if the service can reach its database",
        response_model=dict,
    )
    async def readiness_check():
        """
        Readiness check endpoint that verifies the database connection.

        Returns:
            dict: Readiness status information
        """
        try:
            async with async_session_factory() as db:
                await db.execute(text("SELECT 1"))
        except DBAPIError as e:
            logger.warning("Readiness check failed", extra={"error": str(e.orig)})
            return JSONResponse(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                content={
                    "status": "unavailable",
                    "service": "trip-booking-api",
                    "checks": {"database": "error"},
                },
            )

        manager = getattr(app.state, "worker_manager", None)
        return {
            "status": "ready",
            "service": "trip-booking-api",
            "checks": {
                "database": "ok",
                "workers": manager.get_worker_status() if manager else {},
            },
        }

    # Info endpoint (inline)
    @app.get(
        "/info",
        status_code=status.HTTP_200_OK,
        tags=["Info"],
        summary="Service Information",
        description="Get detailed information about the service",
        response_model=dict,
    )
    async def service_info():
        """
        Service information endpoint.

        Returns:
            dict: Detailed service information
        """
        return {
            "service": "trip-booking-api",
            "version": "1.0.0",
            "description": "Room inventory, cart holds and waitlist promotion for trip bookings",
            "environment": settings.environment,
            "debug": settings.debug,
            "features": {
                "waitlist_promotion": True,
                "hold_expiry_sweep": settings.workers_enabled,
                "email_notifications": settings.smtp_configured,
                "tracing": True,
                "problem_details": True,
            },
            "limits": {
                "hold_ttl_hours": settings.hold_ttl_hours,
                "notification_ttl_hours": settings.notification_ttl_hours,
                "max_rooms_per_user_per_trip": settings.max_rooms_per_user_per_trip,
                "max_upcoming_bookings": settings.max_upcoming_bookings,
            },
            "endpoints": {
                "health": "/health",
                "readiness": "/ready",
                "info": "/info",
                "docs": "/docs" if settings.debug else None,
                "redoc": "/redoc" if settings.debug else None,
            },
        }

    # Register API routers
    app.include_router(health.router)
    app.include_router(trip.router)
    app.include_router(user.router)
    app.include_router(reservation.router)
    app.include_router(waitlist.router)
    app.include_router(inventory.router)
    app.include_router(metrics.router)

    logger.info("FastAPI application created and configured")

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "trip_booking.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
        access_log=True,
    )
