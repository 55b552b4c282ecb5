"""
Prometheus metrics for AETHER playbooks.

Every series carries a `service_name` label (OTEL_SERVICE_NAME) so several
playbook services on one show network can share a Prometheus. Output is
OpenMetrics by default; run durations and request latencies carry the
trace id as an exemplar so Grafana can jump from a slow run to its trace.

Environment variables:
- OTEL_SERVICE_NAME: Service name label (default: aether-playbooks)
- AETHER_ENVIRONMENT: Deployment environment (default: development)
- AETHER_VERSION: Application version (default: unknown)

Usage:
    from Aether.Core.metrics import record_playbook_run, get_metrics

    record_playbook_run("node_recovery", "needs_confirm", "low")
"""

import logging
import os
import platform
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, Optional

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)
from prometheus_client.openmetrics.exposition import (
    CONTENT_TYPE_LATEST as OPENMETRICS_CONTENT_TYPE,
)
from prometheus_client.openmetrics.exposition import (
    generate_latest as generate_openmetrics_latest,
)

import Aether.Helpers.logSettings as logLevel

# Log Setup
logger = logging.getLogger(__name__)
logger.setLevel(logLevel.logSetup())

DEFAULT_SERVICE_NAME: str = "aether-playbooks"
DEFAULT_ENVIRONMENT: str = "development"
DEFAULT_VERSION: str = "unknown"

# Runs include wait steps, so buckets reach into minutes
RUN_DURATION_BUCKETS = [0.1, 0.5, 1.0, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0]
REQUEST_LATENCY_BUCKETS = [
    0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 300.0
]


def _get_config() -> dict[str, str]:
    """Read the label values from the environment."""
    return {
        "service_name": os.environ.get("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME),
        "environment": os.environ.get("AETHER_ENVIRONMENT", DEFAULT_ENVIRONMENT),
        "version": os.environ.get("AETHER_VERSION", DEFAULT_VERSION),
        "python_version": platform.python_version(),
    }


_config = _get_config()


def _labels(**labels: str) -> dict[str, str]:
    labels["service_name"] = _config["service_name"]
    return labels


def _build_exemplar(trace_id: Optional[str]) -> Optional[dict[str, str]]:
    return {"trace_id": trace_id} if trace_id else None


BUILD_INFO = Gauge(
    "aether_playbooks_build_info",
    "Playbook service build information",
    ["service_name", "service_version", "deployment_environment", "python_version"],
)

PLAYBOOKS_REGISTERED = Gauge(
    "aether_playbooks_registered",
    "Number of playbooks in the registry being served",
    ["service_name"],
)

REQUEST_COUNT = Counter(
    "aether_http_server_request_total",
    "HTTP requests by route and status (OTEL: http.server.request.total)",
    ["method", "route", "status_code", "service_name"],
)

REQUEST_LATENCY = Histogram(
    "aether_http_server_request_duration_seconds",
    "HTTP request latency (OTEL: http.server.request.duration)",
    ["method", "route", "service_name"],
    buckets=REQUEST_LATENCY_BUCKETS,
)

PLAYBOOK_RUNS = Counter(
    "aether_playbook_runs_total",
    "Playbook runs by terminal status",
    ["playbook", "status", "risk", "service_name"],
)

PLAYBOOK_RUN_DURATION = Histogram(
    "aether_playbook_run_duration_seconds",
    "Wall time of one playbook run",
    ["playbook", "service_name"],
    buckets=RUN_DURATION_BUCKETS,
)

PLAYBOOK_STEPS = Counter(
    "aether_playbook_steps_total",
    "Executed playbook steps by action and outcome",
    ["action", "status", "service_name"],
)

PLAYBOOK_CONFIRMATIONS_REQUESTED = Counter(
    "aether_playbook_confirmations_requested_total",
    "Runs that paused for operator confirmation",
    ["playbook", "service_name"],
)


def _set_build_info() -> None:
    BUILD_INFO.labels(
        service_name=_config["service_name"],
        service_version=_config["version"],
        deployment_environment=_config["environment"],
        python_version=_config["python_version"],
    ).set(1)


_set_build_info()


def track_request_metrics(func: Callable) -> Callable:
    """
    Count and time a Flask view.

    The status code comes from a `(body, status)` return value; a raised
    exception counts as 500 and is re-raised. The request's trace id (set
    by the telemetry before_request hook) becomes the latency exemplar.
    """

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        from flask import g, request

        route = request.endpoint or "unknown"
        status = "500"
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
            status = str(result[1]) if isinstance(result, tuple) else "200"
            return result
        finally:
            REQUEST_COUNT.labels(
                **_labels(method=request.method, route=route, status_code=status)
            ).inc()
            REQUEST_LATENCY.labels(
                **_labels(method=request.method, route=route)
            ).observe(
                time.perf_counter() - started,
                exemplar=_build_exemplar(getattr(g, "trace_id", None)),
            )

    return wrapper


def set_playbooks_registered(count: int) -> None:
    """Publish the size of the served registry."""
    PLAYBOOKS_REGISTERED.labels(**_labels()).set(count)


def record_playbook_run(playbook_id: str, status: str, risk: str) -> None:
    """
    Count a finished run.

    Args:
        playbook_id: Requested playbook id
        status: Terminal status value (completed, needs_confirm, ...)
        risk: Playbook risk level, "unknown" for unregistered ids
    """
    PLAYBOOK_RUNS.labels(
        **_labels(playbook=playbook_id, status=status, risk=risk)
    ).inc()


def record_playbook_run_duration(
    playbook_id: str, duration_seconds: float, trace_id: Optional[str] = None
) -> None:
    """Observe a run's wall time, linking the run's trace when known."""
    PLAYBOOK_RUN_DURATION.labels(**_labels(playbook=playbook_id)).observe(
        duration_seconds, exemplar=_build_exemplar(trace_id)
    )


def record_step(action: str, status: str) -> None:
    """Count one executed step ("completed" or "failed")."""
    PLAYBOOK_STEPS.labels(**_labels(action=action, status=status)).inc()


def record_confirmation_requested(playbook_id: str) -> None:
    PLAYBOOK_CONFIRMATIONS_REQUESTED.labels(**_labels(playbook=playbook_id)).inc()


def get_metrics(openmetrics: bool = True) -> bytes:
    """
    Render the default registry.

    Args:
        openmetrics: OpenMetrics text (with exemplars) when True, classic
            Prometheus text otherwise
    """
    if openmetrics:
        return generate_openmetrics_latest(REGISTRY)
    return generate_latest(REGISTRY)


def get_metrics_content_type(openmetrics: bool = True) -> str:
    return OPENMETRICS_CONTENT_TYPE if openmetrics else CONTENT_TYPE_LATEST


def refresh_config() -> None:
    """Re-read the label values after the environment changed."""
    global _config
    _config = _get_config()
    _set_build_info()
