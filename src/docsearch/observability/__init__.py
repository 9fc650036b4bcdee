"""Observability module for tracing, metrics, and structured logging."""

from docsearch.observability.context import bind_context, get_trace_context, trace_context
from docsearch.observability.logging import JsonFormatter, configure_logging
from docsearch.observability.metrics import (
    BATCH_COMMITS,
    DOCUMENTS_INDEXED,
    INDEX_DOC_COUNT,
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    init_metrics,
    track_latency,
)
from docsearch.observability.tracing import create_span, get_tracer, init_tracing


__all__ = [
    "BATCH_COMMITS",
    "DOCUMENTS_INDEXED",
    "INDEX_DOC_COUNT",
    "SEARCH_LATENCY",
    "SEARCH_REQUESTS",
    "JsonFormatter",
    "bind_context",
    "configure_logging",
    "create_span",
    "get_trace_context",
    "get_tracer",
    "init_metrics",
    "init_tracing",
    "trace_context",
    "track_latency",
]
