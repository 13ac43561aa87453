"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, generate_latest
import structlog

from .config import settings

SERVICE_NAME = "airline-booking-engine"
SERVICE_VERSION = "1.0.0"

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
BOOKINGS_CREATED = Counter(
    'bookings_created_total',
    'Total bookings created',
    ['flight_id'],
    registry=REGISTRY
)

SEATS_RESERVED = Counter(
    'seats_reserved_total',
    'Total seats reserved by bookings',
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'bookings_cancelled_total',
    'Total bookings cancelled',
    registry=REGISTRY
)

SEATS_RELEASED = Counter(
    'seats_released_total',
    'Total seats returned to inventory by cancellations',
    registry=REGISTRY
)

SEAT_CONFLICTS = Counter(
    'seat_reservation_conflicts_total',
    'Reservations rejected because a seat was missing, taken or of the wrong class',
    registry=REGISTRY
)

PAYMENT_REJECTIONS = Counter(
    'payment_rejections_total',
    'Booking requests rejected by the payment gate',
    registry=REGISTRY
)

COMPENSATIONS = Counter(
    'saga_compensations_total',
    'Saga compensations by outcome',
    ['saga', 'outcome'],
    registry=REGISTRY
)

EVENTS_DISPATCHED = Counter(
    'booking_events_dispatched_total',
    'Booking event delivery attempts by outcome',
    ['event_type', 'outcome'],
    registry=REGISTRY
)

ORPHANED_SEATS = Gauge(
    'orphaned_seats',
    'Unavailable seats without an active assignment at the last audit',
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

    logging.basicConfig(level=getattr(logging, settings.log_level), format="%(levelname)s %(name)s %(message)s")

    # request_id is bound per request by the logging middleware
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
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
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_resource())

    # Export only when an OTLP endpoint is configured
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))

    trace.set_tracer_provider(provider)
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


class MetricsCollector:
    """Collector for business metrics."""

    @staticmethod
    def record_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
        """Record one HTTP request."""
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration_seconds)

    @staticmethod
    def record_booking_created(flight_id: str, seat_count: int):
        """Record a booking creation."""
        BOOKINGS_CREATED.labels(flight_id=flight_id).inc()
        SEATS_RESERVED.inc(seat_count)

    @staticmethod
    def record_booking_cancelled(seats_released: int):
        """Record a booking cancellation."""
        BOOKINGS_CANCELLED.inc()
        SEATS_RELEASED.inc(seats_released)

    @staticmethod
    def record_seat_conflict(seat_count: int = 1):
        SEAT_CONFLICTS.inc(max(seat_count, 1))

    @staticmethod
    def record_payment_rejected():
        PAYMENT_REJECTIONS.inc()

    @staticmethod
    def record_compensation(saga: str, succeeded: bool):
        COMPENSATIONS.labels(saga=saga, outcome="succeeded" if succeeded else "exhausted").inc()

    @staticmethod
    def record_event_dispatch(event_type: str, delivered: bool):
        EVENTS_DISPATCHED.labels(event_type=event_type, outcome="delivered" if delivered else "failed").inc()

    @staticmethod
    def set_orphaned_seats(count: int):
        """Set the number of orphaned seats found by the last audit."""
        ORPHANED_SEATS.set(count)


def get_prometheus_metrics():
    """Get Prometheus metrics for the /metrics endpoint."""
    return generate_latest(REGISTRY)


# Global metrics collector instance
metrics_collector = MetricsCollector()


class StructuredLogger:
    """Structured logger with business context."""

    def __init__(self, logger: Any):
        self.logger = structlog.get_logger(logger) if isinstance(logger, str) else logger

    def info(self, message: str, **kwargs):
        """Log info message with context."""
        self.logger.info(message, **kwargs)

    def critical(self, message: str, **kwargs):
        """Log a condition that needs an operator."""
        self.logger.critical(message, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
