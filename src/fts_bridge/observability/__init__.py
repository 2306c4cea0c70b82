"""Observability module for OpenTelemetry-aligned tracing, metrics, and logging."""

from fts_bridge.observability.context import call_context, get_trace_context, operation_scope, set_trace_context
from fts_bridge.observability.logging import JsonFormatter, configure_logging
from fts_bridge.observability.metrics import (
    DOCUMENT_MUTATIONS,
    ERROR_COUNT,
    OPERATION_LATENCY,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    track_latency,
)
from fts_bridge.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "DOCUMENT_MUTATIONS",
    "ERROR_COUNT",
    "OPERATION_LATENCY",
    "JsonFormatter",
    "call_context",
    "configure_logging",
    "create_span",
    "get_metrics",
    "get_metrics_content_type",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "operation_scope",
    "set_trace_context",
    "track_latency",
]
