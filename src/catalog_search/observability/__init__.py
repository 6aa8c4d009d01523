"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from catalog_search.observability.context import (
    get_request_id,
    get_trace_context,
    set_trace_context,
    trace_context,
)
from catalog_search.observability.logging import JsonFormatter, configure_logging
from catalog_search.observability.metrics import (
    ERROR_COUNT,
    IDENTITY_LOOKUPS,
    INDEX_LATENCY,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from catalog_search.observability.tracing import (
    TraceContextMiddleware,
    configure_trace_exporter,
    create_span,
    get_tracer,
    init_tracing,
    trace_request,
)


__all__ = [
    "ERROR_COUNT",
    "IDENTITY_LOOKUPS",
    "INDEX_LATENCY",
    "REQUEST_COUNT",
    "REQUEST_LATENCY",
    "JsonFormatter",
    "TraceContextMiddleware",
    "configure_logging",
    "configure_trace_exporter",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_request_id",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "set_trace_context",
    "trace_context",
    "trace_request",
]
