"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry
import structlog

from .config import settings

SERVICE_NAME = "trip-booking-api"

# Prometheus metrics
REGISTRY = CollectorRegistry()

# Request metrics
REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code'],
    registry=REGISTRY
)

REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration in seconds',
    ['method', 'endpoint'],
    registry=REGISTRY
)

# Business metrics
HOLDS_CREATED = Counter(
    'reservation_holds_created_total',
    'Total cart holds created or extended',
    ['source'],
    registry=REGISTRY
)

HOLDS_RELEASED = Counter(
    'reservation_holds_released_total',
    'Total cart holds released back to inventory',
    ['reason'],
    registry=REGISTRY
)

RESERVATION_OUTCOMES = Counter(
    'reservation_outcomes_total',
    'Coordinator operation outcomes',
    ['operation', 'outcome'],
    registry=REGISTRY
)

WAITLIST_PROMOTIONS = Counter(
    'waitlist_promotions_total',
    'Waitlist entries promoted to Notified',
    registry=REGISTRY
)

WAITLIST_EXPIRED = Counter(
    'waitlist_notifications_expired_total',
    'Notified waitlist entries that lapsed without purchase',
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'bookings_confirmed_total',
    'Total bookings confirmed',
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    registry=REGISTRY
)

INVENTORY_CLAMPS = Counter(
    'inventory_clamp_events_total',
    'Increments that would have exceeded provisioned capacity',
    registry=REGISTRY
)

NOTIFICATION_FAILURES = Counter(
    'notification_dispatch_failures_total',
    'Room-available notifications that could not be delivered',
    registry=REGISTRY
)

SWEEP_DURATION = Histogram(
    'expiry_sweep_duration_seconds',
    'Duration of one expiry sweep',
    registry=REGISTRY
)

LAST_SWEEP_RECLAIMED = Gauge(
    'expiry_sweep_last_reclaimed_rooms',
    'Rooms reclaimed by the most recent sweep',
    registry=REGISTRY
)


def setup_structured_logging():
    """Configure structured logging with structlog."""

    def add_trace_context(logger, method_name, event_dict):
        """Add trace context to log events."""
        span = trace.get_current_span()
        if span and span.is_recording():
            ctx = span.get_span_context()
            event_dict['trace_id'] = format(ctx.trace_id, '032x')
            event_dict['span_id'] = format(ctx.span_id, '016x')
        return event_dict

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    trace.set_tracer_provider(TracerProvider(resource=_resource()))

    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        trace.get_tracer_provider().add_span_processor(BatchSpanProcessor(otlp_exporter))

    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    """Instrument FastAPI with OpenTelemetry."""
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    """Instrument SQLAlchemy with OpenTelemetry."""
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


def get_tracer(name: str):
    """Return a tracer; spans are no-ops until setup_tracing runs."""
    return trace.get_tracer(name)


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
        """Record one HTTP request."""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration_seconds)

    @staticmethod
    def record_hold_created(source: str):
        """Record a hold creation (``request`` or ``promotion``)."""
        HOLDS_CREATED.labels(source=source).inc()

    @staticmethod
    def record_hold_released(reason: str, count: int = 1):
        """Record holds returned to inventory."""
        HOLDS_RELEASED.labels(reason=reason).inc(count)

    @staticmethod
    def record_outcome(operation: str, outcome: str):
        """Record the typed result of a coordinator operation."""
        RESERVATION_OUTCOMES.labels(operation=operation, outcome=outcome).inc()

    @staticmethod
    def record_promotion():
        """Record a waitlist promotion."""
        WAITLIST_PROMOTIONS.inc()

    @staticmethod
    def record_waitlist_expired():
        """Record a lapsed waitlist notification."""
        WAITLIST_EXPIRED.inc()

    @staticmethod
    def record_booking_confirmed():
        """Record a booking confirmation."""
        BOOKINGS_CONFIRMED.inc()

    @staticmethod
    def record_booking_cancelled():
        """Record a booking cancellation."""
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def record_inventory_clamp():
        """Record an increment clamped at provisioned capacity."""
        INVENTORY_CLAMPS.inc()

    @staticmethod
    def record_notification_failure():
        """Record a failed notification dispatch."""
        NOTIFICATION_FAILURES.inc()

    @staticmethod
    def record_sweep(duration_seconds: float, rooms_reclaimed: int):
        """Record one expiry sweep."""
        SWEEP_DURATION.observe(duration_seconds)
        LAST_SWEEP_RECLAIMED.set(rooms_reclaimed)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, name_or_logger):
        if isinstance(name_or_logger, str):
            self.logger = structlog.get_logger(name_or_logger)
        else:
            self.logger = name_or_logger

    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with context."""
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with context."""
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs):
        """Log debug message with context."""
        self.logger.debug(message, **kwargs)

    def with_context(self, **kwargs):
        """Add context to logger."""
        return StructuredLogger(self.logger.bind(**kwargs))


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
