"""OpenTelemetry instrumentation for the interview console."""

import logging
from typing import Optional

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk._logs import LoggerProvider, LoggingHandler
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource, SERVICE_NAME, SERVICE_VERSION, DEPLOYMENT_ENVIRONMENT

from intraview.config import Config

SERVICE = "intraview-console"


def get_resource(client_id: str) -> Resource:
    """Create resource with service and console information."""
    return Resource.create({
        SERVICE_NAME: SERVICE,
        SERVICE_VERSION: "0.1.0",
        DEPLOYMENT_ENVIRONMENT: Config.ENV,
        "service.namespace": "intraview",
        "client.id": client_id,
    })


def setup_tracing(client_id: str, endpoint: str) -> TracerProvider:
    resource = get_resource(client_id)
    provider = TracerProvider(resource=resource)
    processor = BatchSpanProcessor(
        OTLPSpanExporter(endpoint=f"{endpoint}/v1/traces", timeout=30),
        max_queue_size=1024,
        max_export_batch_size=256,
        schedule_delay_millis=5000,
    )
    provider.add_span_processor(processor)
    trace.set_tracer_provider(provider)
    return provider


def setup_metrics(client_id: str, endpoint: str) -> MeterProvider:
    reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=f"{endpoint}/v1/metrics", timeout=30),
        export_interval_millis=30000,
    )
    provider = MeterProvider(resource=get_resource(client_id), metric_readers=[reader])
    metrics.set_meter_provider(provider)
    return provider


def setup_logging(client_id: str, endpoint: str) -> LoggerProvider:
    """Export records of the root logger over OTLP."""
    provider = LoggerProvider(resource=get_resource(client_id))
    provider.add_log_record_processor(BatchLogRecordProcessor(
        OTLPLogExporter(endpoint=f"{endpoint}/v1/logs", timeout=30),
        max_queue_size=1024,
        max_export_batch_size=256,
        schedule_delay_millis=5000,
    ))
    handler = LoggingHandler(level=logging.INFO, logger_provider=provider)
    logging.getLogger().addHandler(handler)
    return provider


def setup_telemetry(client_id: str, endpoint: Optional[str] = None):
    """Setup all OpenTelemetry components.

    Args:
        client_id: Identifier attached to every span, metric and log record
        endpoint: OTLP/HTTP collector (default: Config.OTEL_EXPORTER_ENDPOINT)

    Returns:
        (tracer_provider, meter_provider, logger_provider), all None when disabled
    """
    if not Config.OTEL_ENABLED:
        logging.info("OpenTelemetry is disabled")
        return None, None, None

    endpoint = endpoint or Config.OTEL_EXPORTER_ENDPOINT
    logging.info(f"Initializing OpenTelemetry for {SERVICE}, client_id: {client_id}, endpoint: {endpoint}")
    providers = (
        setup_tracing(client_id, endpoint),
        setup_metrics(client_id, endpoint),
        setup_logging(client_id, endpoint),
    )
    logging.info("OpenTelemetry initialized successfully")
    return providers


def shutdown_telemetry(providers) -> None:
    """Flush and stop whichever providers were created."""
    for provider in providers:
        if provider is not None:
            provider.shutdown()


def get_logger(name: str, client_id: str = None):
    """Get a logger that stamps client/service attributes onto every record.

    Args:
        name: Logger name (typically __name__)
        client_id: Console instance id to include in all logs
    """
    logger = logging.getLogger(name)

    if client_id:
        class ClientAdapter(logging.LoggerAdapter):
            def process(self, msg, kwargs):
                extra = kwargs.get('extra', {})
                extra['client_id'] = client_id
                extra['service.name'] = SERVICE
                extra['telemetry.sdk.language'] = "python"
                kwargs['extra'] = extra
                return msg, kwargs

        return ClientAdapter(logger, {'client_id': client_id})

    return logger


def add_span_event(name: str, **attributes):
    """Add an event to the current span (no-op outside a recording span)."""
    span = trace.get_current_span()
    if span.is_recording():
        span.add_event(name, {k: str(v) for k, v in attributes.items() if v is not None})


def record_exception(exception: Exception):
    """Record an exception in the current span."""
    span = trace.get_current_span()
    if span.is_recording():
        span.record_exception(exception)
        span.set_status(trace.Status(trace.StatusCode.ERROR, str(exception)))


def create_session_trace(name: str, **attributes):
    """Start a root span covering one console run.

    Returns:
        Span context manager

    Example:
        with create_session_trace("interview", persona="Friendly"):
            await console.run()
    """
    tracer = trace.get_tracer(__name__)
    span = tracer.start_span(name)
    for key, value in attributes.items():
        if value is not None:
            span.set_attribute(key, str(value))
    return trace.use_span(span, end_on_exit=True)


def create_client_metrics():
    """Create the console's metric instruments.

    Returns:
        Dictionary of metric instruments
    """
    meter = metrics.get_meter(SERVICE)

    return {
        "sessions_started": meter.create_counter(
            name="sessions_started_total",
            description="Total number of interview sessions connected",
            unit="1",
        ),
        "interruptions": meter.create_counter(
            name="playback_interruptions_total",
            description="Agent playback interrupted by the candidate",
            unit="1",
        ),
        "cancellation_failures": meter.create_counter(
            name="cancellation_failures_total",
            description="Response cancellations rejected by the server",
            unit="1",
        ),
        "decode_failures": meter.create_counter(
            name="decode_failures_total",
            description="Completed items whose audio could not be decoded",
            unit="1",
        ),
        "session_duration": meter.create_histogram(
            name="session_duration_seconds",
            description="Duration of interview sessions in seconds",
            unit="s",
        ),
    }
