"""
OpenTelemetry tracing for AETHER playbooks.

Each playbook run is a `playbook.run` span. Under the Flask instrumentation
it is a child of the HTTP request span, and the requests instrumentation
adds a child span for every call the step handlers make to AETHER Core,
so one trace shows the whole remediation.

Environment variables:
- OTEL_ENABLED: Set to "false" to skip instrumentation (default: true)
- OTEL_EXPORTER_OTLP_ENDPOINT: OTLP/gRPC collector (default: http://localhost:4317)
- OTEL_SERVICE_NAME: Service name for traces (default: aether-playbooks)
- OTEL_RESOURCE_ATTRIBUTES: Extra resource attributes, key=value,...
- AETHER_ENVIRONMENT: Deployment environment (default: development)
- AETHER_VERSION: Application version (default: unknown)

Usage:
    from Aether.Core.telemetry import init_telemetry, playbook_span

    init_telemetry(app)

    with playbook_span("node_recovery", confirmed=False) as span:
        ...
"""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Optional

from flask import Flask, g
from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import (
    OTLPSpanExporter,
)
from opentelemetry.instrumentation.flask import FlaskInstrumentor
from opentelemetry.instrumentation.requests import RequestsInstrumentor
from opentelemetry.propagate import set_global_textmap
from opentelemetry.propagators.composite import CompositePropagator
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace.propagation.tracecontext import (
    TraceContextTextMapPropagator,
)

import Aether.Helpers.logSettings as logLevel

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())

DEFAULT_OTLP_ENDPOINT: str = "http://localhost:4317"
DEFAULT_SERVICE_NAME: str = "aether-playbooks"
DEFAULT_ENVIRONMENT: str = "development"
DEFAULT_VERSION: str = "unknown"

RUN_SPAN_NAME = "playbook.run"

_initialized: bool = False
_tracer_provider: Optional[TracerProvider] = None


def _parse_resource_attributes(raw: str) -> dict[str, str]:
    """Parse OTEL_RESOURCE_ATTRIBUTES, skipping entries without '='."""
    attributes = {}
    for entry in raw.split(","):
        key, sep, value = entry.partition("=")
        if sep and key.strip():
            attributes[key.strip()] = value.strip()
    return attributes


@dataclass
class TelemetryConfig:
    """Tracing configuration."""
    enabled: bool
    endpoint: str
    service_name: str
    environment: str
    version: str
    resource_attributes: dict = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> "TelemetryConfig":
        """Create configuration from environment variables."""
        return cls(
            enabled=os.environ.get("OTEL_ENABLED", "true").lower() == "true",
            endpoint=os.environ.get("OTEL_EXPORTER_OTLP_ENDPOINT", DEFAULT_OTLP_ENDPOINT),
            service_name=os.environ.get("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME),
            environment=os.environ.get("AETHER_ENVIRONMENT", DEFAULT_ENVIRONMENT),
            version=os.environ.get("AETHER_VERSION", DEFAULT_VERSION),
            resource_attributes=_parse_resource_attributes(
                os.environ.get("OTEL_RESOURCE_ATTRIBUTES", "")
            ),
        )

    def resource(self) -> Resource:
        """Resource describing this service; extra attributes win on clashes."""
        attributes = {
            "service.name": self.service_name,
            "service.version": self.version,
            "deployment.environment": self.environment,
        }
        attributes.update(self.resource_attributes)
        return Resource.create(attributes)


def create_tracer_provider(config: TelemetryConfig) -> TracerProvider:
    """TracerProvider batching spans to the configured OTLP/gRPC endpoint."""
    provider = TracerProvider(resource=config.resource())
    # Collectors on the show network run without TLS
    exporter = OTLPSpanExporter(endpoint=config.endpoint, insecure=True)
    provider.add_span_processor(BatchSpanProcessor(exporter))
    return provider


def setup_propagators() -> None:
    set_global_textmap(CompositePropagator([TraceContextTextMapPropagator()]))


def span_trace_id(span: trace.Span) -> Optional[str]:
    """Hex trace id of a span, or None for a non-recording span."""
    span_context = span.get_span_context()
    if not span_context.is_valid:
        return None
    return format(span_context.trace_id, "032x")


def store_trace_context() -> None:
    """
    Copy the current span's ids into Flask g.

    Registered as a before_request hook; the log formatter and the request
    metrics read g.trace_id / g.span_id.
    """
    g.trace_id = None
    g.span_id = None

    span = trace.get_current_span()
    if span is None:
        return
    span_context = span.get_span_context()
    if span_context.is_valid:
        g.trace_id = format(span_context.trace_id, "032x")
        g.span_id = format(span_context.span_id, "016x")


def get_current_trace_id() -> Optional[str]:
    return getattr(g, "trace_id", None)


def get_current_span_id() -> Optional[str]:
    return getattr(g, "span_id", None)


def init_telemetry(app: Flask, config: Optional[TelemetryConfig] = None) -> bool:
    """
    Instrument the Flask app and outgoing requests.

    Only the first call in a process does anything. A failure to set up
    tracing is logged and never stops the service from starting.

    Args:
        app: Flask application to instrument
        config: Tracing configuration (default: from the environment)

    Returns:
        True if tracing is active, False if disabled or setup failed
    """
    global _initialized, _tracer_provider

    if _initialized:
        logger.log(level=10, msg="Telemetry already initialized, skipping")
        return True

    config = config or TelemetryConfig.from_env()
    if not config.enabled:
        logger.log(level=20, msg="Telemetry disabled (OTEL_ENABLED=false)")
        return False

    try:
        logger.log(
            level=20,
            msg=f"Initializing OpenTelemetry for {config.service_name} "
                f"({config.environment}) -> {config.endpoint}",
        )

        _tracer_provider = create_tracer_provider(config)
        trace.set_tracer_provider(_tracer_provider)
        setup_propagators()

        FlaskInstrumentor().instrument_app(app)
        RequestsInstrumentor().instrument()
        app.before_request(store_trace_context)

        _initialized = True
        return True

    except Exception as e:
        logger.log(level=40, msg=f"Failed to initialize OpenTelemetry: {e}")
        return False


def shutdown_telemetry() -> None:
    """Flush pending spans and release the tracer provider."""
    global _initialized, _tracer_provider

    if _tracer_provider is not None:
        try:
            _tracer_provider.shutdown()
            logger.log(level=20, msg="OpenTelemetry shutdown complete")
        except Exception as e:
            logger.log(level=30, msg=f"Error during OpenTelemetry shutdown: {e}")

    _initialized = False
    _tracer_provider = None


def is_telemetry_enabled() -> bool:
    return _initialized


def get_tracer(name: str = __name__) -> trace.Tracer:
    return trace.get_tracer(name)


@contextmanager
def playbook_span(playbook_id: str, confirmed: bool) -> Iterator[trace.Span]:
    """
    Span covering one playbook run.

    The caller sets `playbook.status` once the run has stopped.
    """
    with get_tracer(__name__).start_as_current_span(RUN_SPAN_NAME) as span:
        span.set_attribute("playbook.id", playbook_id)
        span.set_attribute("playbook.confirmed", confirmed)
        yield span
