"""
Structured logging for AETHER playbooks.

Two output formats:
- json: one object per line in the OTEL log data model, for Loki
- text: a plain line for the show controller's console

Lines written while a playbook runs carry the playbook id (see
`bind_playbook`), and lines written inside a traced request or run carry
the trace and span ids so Grafana can link them to Tempo.

Environment variables:
- AETHER_LOG_FORMAT: 'json' (default) or 'text'
- AETHER_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- OTEL_SERVICE_NAME: Service name for logs (default: aether-playbooks)
- AETHER_ENVIRONMENT: Deployment environment (default: development)
- AETHER_VERSION: Application version (default: unknown)

Usage:
    from Aether.Core.logging_config import bind_playbook, configure_logging

    configure_logging()

    with bind_playbook("node_recovery"):
        logger.info("Rescanning nodes")
"""
import json
import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from flask import g, has_request_context, request
from opentelemetry import trace

# https://opentelemetry.io/docs/specs/otel/logs/data-model/#severity-fields
OTEL_SEVERITY: Dict[int, tuple] = {
    logging.DEBUG: ("DEBUG", 5),
    logging.INFO: ("INFO", 9),
    logging.WARNING: ("WARN", 13),
    logging.ERROR: ("ERROR", 17),
    logging.CRITICAL: ("FATAL", 21),
}

DEFAULT_LOG_FORMAT: str = "json"
DEFAULT_LOG_LEVEL: str = "INFO"
DEFAULT_SERVICE_NAME: str = "aether-playbooks"
DEFAULT_ENVIRONMENT: str = "development"
DEFAULT_VERSION: str = "unknown"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
TEXT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord has; anything else arrived through `extra`
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}

# Playbook being run in the current task or worker thread
_current_playbook: ContextVar[Optional[str]] = ContextVar(
    "aether_current_playbook", default=None
)

_configured: bool = False


def get_log_config() -> Dict[str, str]:
    """Logging settings from the environment."""
    return {
        "format": os.environ.get("AETHER_LOG_FORMAT", DEFAULT_LOG_FORMAT).lower(),
        "level": os.environ.get("AETHER_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        "service_name": os.environ.get("OTEL_SERVICE_NAME", DEFAULT_SERVICE_NAME),
        "environment": os.environ.get("AETHER_ENVIRONMENT", DEFAULT_ENVIRONMENT),
        "version": os.environ.get("AETHER_VERSION", DEFAULT_VERSION),
    }


@contextmanager
def bind_playbook(playbook_id: str) -> Iterator[None]:
    """Tag log lines written inside the block with the playbook id."""
    token = _current_playbook.set(playbook_id)
    try:
        yield
    finally:
        _current_playbook.reset(token)


def current_playbook() -> Optional[str]:
    return _current_playbook.get()


def get_trace_context() -> Dict[str, Optional[str]]:
    """
    Trace and span ids for the current log line.

    Inside a Flask request these come from g (set by the telemetry
    before_request hook). Elsewhere, e.g. a run started from the CLI, the
    active OTEL span is used.
    """
    if has_request_context() and getattr(g, "trace_id", None):
        return {
            "trace_id": g.trace_id,
            "span_id": getattr(g, "span_id", None),
        }

    span_context = trace.get_current_span().get_span_context()
    if span_context.is_valid:
        return {
            "trace_id": format(span_context.trace_id, "032x"),
            "span_id": format(span_context.span_id, "016x"),
        }
    return {"trace_id": None, "span_id": None}


def get_request_context() -> Dict[str, str]:
    if not has_request_context():
        return {}
    return {
        "http.method": request.method,
        "http.route": request.path,
        "http.url": request.url,
    }


class JSONFormatter(logging.Formatter):
    """Formats records as OTEL log data model JSON."""

    def __init__(
        self,
        service_name: str = DEFAULT_SERVICE_NAME,
        environment: str = DEFAULT_ENVIRONMENT,
        version: str = DEFAULT_VERSION,
    ):
        super().__init__()
        self.resource = {
            "service.name": service_name,
            "service.version": version,
            "deployment.environment": environment,
        }

    def _attributes(self, record: logging.LogRecord) -> Dict[str, Any]:
        attributes: Dict[str, Any] = get_request_context()
        attributes.update({
            "code.filepath": record.pathname,
            "code.lineno": record.lineno,
            "code.function": record.funcName,
        })

        playbook_id = current_playbook()
        if playbook_id:
            attributes["playbook.id"] = playbook_id

        if record.exc_info and record.exc_info[0] is not None:
            attributes["exception.type"] = record.exc_info[0].__name__
            attributes["exception.message"] = str(record.exc_info[1])
            attributes["exception.stacktrace"] = self.formatException(record.exc_info)

        attributes.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRS
        )
        return attributes

    def format(self, record: logging.LogRecord) -> str:
        severity_text, severity_number = OTEL_SEVERITY.get(record.levelno, ("INFO", 9))

        entry: Dict[str, Any] = {
            "Timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "SeverityText": severity_text,
            "SeverityNumber": severity_number,
            "Body": record.getMessage(),
            "Resource": self.resource,
            "InstrumentationScope": {"Name": record.name},
            "Attributes": self._attributes(record),
        }

        ids = get_trace_context()
        if ids["trace_id"]:
            entry["TraceId"] = ids["trace_id"]
        if ids["span_id"]:
            entry["SpanId"] = ids["span_id"]

        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """
    Console formatter.

    Prefixes the message with the running playbook and the trace id when
    either is known, e.g. `[node_recovery trace_id=4bf9...] Node rescan`.
    """

    def __init__(self, fmt: Optional[str] = None, datefmt: Optional[str] = None):
        super().__init__(fmt=fmt or TEXT_FORMAT, datefmt=datefmt or TEXT_DATE_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        tags = []
        playbook_id = current_playbook()
        if playbook_id:
            tags.append(playbook_id)
        trace_id = get_trace_context()["trace_id"]
        if trace_id:
            tags.append(f"trace_id={trace_id}")

        if tags:
            record = logging.makeLogRecord(record.__dict__)
            record.msg = f"[{' '.join(tags)}] {record.getMessage()}"
            record.args = ()

        return super().format(record)


def configure_logging(
    log_format: Optional[str] = None,
    log_level: Optional[str] = None,
    service_name: Optional[str] = None,
    environment: Optional[str] = None,
    version: Optional[str] = None,
) -> None:
    """
    Replace the root logger's handlers with one stdout handler.

    Arguments override the environment.

    Args:
        log_format: 'json' or 'text'
        log_level: Level name; unknown names mean INFO
        service_name: service.name resource attribute (json only)
        environment: deployment.environment resource attribute (json only)
        version: service.version resource attribute (json only)
    """
    global _configured

    config = get_log_config()
    level = logging.getLevelName((log_level or config["level"]).upper())
    if not isinstance(level, int):
        level = logging.INFO

    if (log_format or config["format"]).lower() == "json":
        formatter: logging.Formatter = JSONFormatter(
            service_name=service_name or config["service_name"],
            environment=environment or config["environment"],
            version=version or config["version"],
        )
    else:
        formatter = TextFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger, configuring logging with defaults on first use."""
    if not _configured:
        configure_logging()
    return logging.getLogger(name)


def is_logging_configured() -> bool:
    return _configured


def reset_logging_config() -> None:
    global _configured
    _configured = False
