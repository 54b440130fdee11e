"""Logging, tracing and Prometheus metrics for the booking service."""

import logging

import structlog
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
from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from .config import settings

SERVICE_NAME = "tourops-booking-api"
SERVICE_VERSION = "1.0.0"

OTLP_EXPORT_INTERVAL_MS = 60_000

REGISTRY = CollectorRegistry()

# HTTP
REQUEST_COUNT = Counter(
    'http_requests_total', 'Total HTTP requests',
    ['method', 'endpoint', 'status_code'], registry=REGISTRY
)
REQUEST_DURATION = Histogram(
    'http_request_duration_seconds', 'HTTP request duration in seconds',
    ['method', 'endpoint'], registry=REGISTRY
)

# Bookings
BOOKINGS_CREATED = Counter('bookings_created_total', 'Bookings committed', registry=REGISTRY)
SEATS_RESERVED = Counter('seats_reserved_total', 'Seats taken by committed bookings', registry=REGISTRY)
BOOKINGS_CANCELLED = Counter('bookings_cancelled_total', 'Bookings cancelled', registry=REGISTRY)
BOOKING_REJECTIONS = Counter(
    'booking_rejections_total', 'Booking attempts rejected, by error code',
    ['reason'], registry=REGISTRY
)
TRANSACTION_RETRIES = Counter(
    'booking_transaction_retries_total', 'Booking transactions retried after a transient store conflict',
    registry=REGISTRY
)

# Notifications
NOTIFICATION_FAILURES = Counter(
    'notification_failures_total', 'Booking notifications that failed to send', registry=REGISTRY
)


def _add_trace_context(logger, method_name, event_dict):
    """Stamp log events with the active span, when there is one."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict['trace_id'] = format(ctx.trace_id, '032x')
        event_dict['span_id'] = format(ctx.span_id, '016x')
    return event_dict


def configure_logging():
    """
    Configure structlog and the standard library root logger.

    Both honour ``settings.log_level``. structlog renders to the console in
    debug mode and to JSON lines otherwise.
    """
    level = getattr(logging, settings.log_level)
    renderer = structlog.dev.ConsoleRenderer() if settings.debug else structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            # request_id is bound by RequestIDMiddleware
            structlog.contextvars.merge_contextvars,
            _add_trace_context,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def _resource() -> Resource:
    return Resource.create({
        "service.name": SERVICE_NAME,
        "service.version": SERVICE_VERSION,
        "environment": settings.environment,
    })


def setup_tracing():
    """Install the tracer provider, exporting over OTLP when an endpoint is set."""
    provider = TracerProvider(resource=_resource())
    if settings.otlp_endpoint:
        provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    return trace.get_tracer(__name__)


def setup_metrics():
    """Install an OTLP meter provider; without an endpoint the no-op default stays."""
    if settings.otlp_endpoint:
        reader = PeriodicExportingMetricReader(
            exporter=OTLPMetricExporter(endpoint=settings.otlp_endpoint),
            export_interval_millis=OTLP_EXPORT_INTERVAL_MS,
        )
        metrics.set_meter_provider(MeterProvider(resource=_resource(), metric_readers=[reader]))
    return metrics.get_meter(__name__)


def instrument_fastapi(app):
    FastAPIInstrumentor.instrument_app(app)


def instrument_sqlalchemy(engine):
    # The instrumentor hooks the sync core that AsyncEngine wraps
    SQLAlchemyInstrumentor().instrument(engine=engine.sync_engine)


class MetricsCollector:
    """Facade over the Prometheus series so services never touch label names."""

    @staticmethod
    def record_booking_created(num_guests: int):
        BOOKINGS_CREATED.inc()
        SEATS_RESERVED.inc(num_guests)

    @staticmethod
    def record_booking_rejected(reason: str):
        BOOKING_REJECTIONS.labels(reason=reason).inc()

    @staticmethod
    def record_transaction_retry():
        TRANSACTION_RETRIES.inc()

    @staticmethod
    def record_booking_cancelled():
        BOOKINGS_CANCELLED.inc()

    @staticmethod
    def record_notification_failure():
        NOTIFICATION_FAILURES.inc()

    @staticmethod
    def observe_request(method: str, endpoint: str, status_code: int, duration_seconds: float):
        REQUEST_COUNT.labels(method=method, endpoint=endpoint, status_code=str(status_code)).inc()
        REQUEST_DURATION.labels(method=method, endpoint=endpoint).observe(duration_seconds)


def get_prometheus_metrics() -> bytes:
    """Serialize the registry in the Prometheus text format."""
    return generate_latest(REGISTRY)


metrics_collector = MetricsCollector()


def get_logger(name: str):
    """structlog logger bound to a component name."""
    return structlog.get_logger(name).bind(component=name)
