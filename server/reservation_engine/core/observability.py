"""Observability setup for OpenTelemetry, metrics, and structured logging."""

import logging

import structlog
from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

# Prometheus metrics
REGISTRY = CollectorRegistry()

HOLDS_CREATED = Counter(
    'reservation_holds_created_total',
    'Total holds placed on departure resources',
    ['tenant_id'],
    registry=REGISTRY
)

HOLD_CONFLICTS = Counter(
    'reservation_hold_conflicts_total',
    'Holds refused because the resource had insufficient capacity',
    ['tenant_id'],
    registry=REGISTRY
)

HOLDS_EXPIRED = Counter(
    'reservation_holds_expired_total',
    'Total holds released by expiry',
    ['trigger'],
    registry=REGISTRY
)

BOOKINGS_CONFIRMED = Counter(
    'reservation_bookings_confirmed_total',
    'Total bookings confirmed',
    ['tenant_id'],
    registry=REGISTRY
)

BOOKINGS_CANCELLED = Counter(
    'reservation_bookings_cancelled_total',
    'Total bookings cancelled',
    ['previous_status'],
    registry=REGISTRY
)

SCHEDULER_FAILURES = Counter(
    'reservation_expiry_scheduler_failures_total',
    'Expiry scheduler calls that failed and were skipped',
    ['operation'],
    registry=REGISTRY
)

SWEEP_DURATION = Histogram(
    'reservation_expiry_sweep_duration_seconds',
    'Duration of the overdue hold reconciliation sweep',
    registry=REGISTRY
)


def configure_logging() -> None:
    """Configure stdlib logging for modules that log through ``logging``."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
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


def _service_resource() -> Resource:
    return Resource.create({
        "service.name": settings.service_name,
        "service.version": "1.0.0",
        "environment": settings.environment,
    })


def setup_tracing():
    """Setup OpenTelemetry tracing."""
    provider = TracerProvider(resource=_service_resource())

    if settings.otlp_endpoint:
        otlp_exporter = OTLPSpanExporter(endpoint=settings.otlp_endpoint)
        provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Setup OpenTelemetry metrics."""
    if settings.otlp_endpoint:
        otlp_exporter = OTLPMetricExporter(endpoint=settings.otlp_endpoint)
        reader = PeriodicExportingMetricReader(exporter=otlp_exporter, export_interval_millis=60000)
        metrics.set_meter_provider(MeterProvider(resource=_service_resource(), metric_readers=[reader]))

    return metrics.get_meter(__name__)


def instrument_sqlalchemy(engine=None):
    """Instrument SQLAlchemy with OpenTelemetry."""
    if engine is not None:
        SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)
    else:
        SQLAlchemyInstrumentor().instrument()


class MetricsCollector:
    """Collector for reservation metrics."""

    @staticmethod
    def record_hold_created(tenant_id: str):
        HOLDS_CREATED.labels(tenant_id=tenant_id).inc()

    @staticmethod
    def record_hold_conflict(tenant_id: str):
        HOLD_CONFLICTS.labels(tenant_id=tenant_id).inc()

    @staticmethod
    def record_hold_expired(trigger: str):
        """Record a hold expiration; ``trigger`` is ``scheduler`` or ``sweep``."""
        HOLDS_EXPIRED.labels(trigger=trigger).inc()

    @staticmethod
    def record_booking_confirmed(tenant_id: str):
        BOOKINGS_CONFIRMED.labels(tenant_id=tenant_id).inc()

    @staticmethod
    def record_booking_cancelled(previous_status: str):
        BOOKINGS_CANCELLED.labels(previous_status=previous_status).inc()

    @staticmethod
    def record_scheduler_failure(operation: str):
        SCHEDULER_FAILURES.labels(operation=operation).inc()

    @staticmethod
    def observe_sweep_duration(seconds: float):
        SWEEP_DURATION.observe(seconds)


def get_prometheus_metrics() -> bytes:
    """Render the reservation metrics in Prometheus text format."""
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
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs):
        self.logger.error(message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.logger.debug(message, **kwargs)


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance."""
    return StructuredLogger(name)
