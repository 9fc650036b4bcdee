"""Unit tests for observability module."""

import io
import json
import logging
import sys

from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode
from prometheus_client import REGISTRY
import pytest

from docsearch.observability import (
    SEARCH_LATENCY,
    SEARCH_REQUESTS,
    JsonFormatter,
    bind_context,
    configure_logging,
    create_span,
    get_trace_context,
    init_tracing,
    track_latency,
)
from docsearch.observability.context import trace_context


def _record(msg="test message", level=logging.INFO, name="docsearch.search.indexer", exc_info=None):
    return logging.LogRecord(
        name=name,
        level=level,
        pathname="test.py",
        lineno=1,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)


class TestJsonFormatter:
    """Tests for structured JSON logging."""

    def test_format_includes_trace_context(self):
        with bind_context(trace_id="a" * 32, span_id="b" * 16, index="docs.sqlite"):
            data = json.loads(JsonFormatter().format(_record()))

        assert data["message"] == "test message"
        assert data["level"] == "INFO"
        assert data["logger"] == "docsearch.search.indexer"
        assert data["component"] == "indexer"
        assert data["trace_id"] == "a" * 32
        assert data["span_id"] == "b" * 16
        assert data["index"] == "docs.sqlite"
        assert "timestamp" in data

    def test_standard_record_attributes_are_not_repeated(self):
        data = json.loads(JsonFormatter().format(_record()))
        assert "msg" not in data
        assert "args" not in data
        assert "levelname" not in data

    def test_extra_fields_are_included_and_redacted(self):
        record = _record()
        record.documents = 3
        record.terms = {"b", "a"}
        record.api_key = "super-secret"
        data = json.loads(JsonFormatter().format(record))

        assert data["documents"] == 3
        assert data["terms"] == ["a", "b"]
        assert data["api_key"] == "[REDACTED]"

    def test_long_messages_are_truncated(self):
        data = json.loads(JsonFormatter().format(_record(msg="x" * 5000)))
        assert len(data["message"]) == JsonFormatter.MAX_MESSAGE_LEN + 3

    def test_exception_info_is_rendered(self):
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = _record(level=logging.ERROR, exc_info=sys.exc_info())
        data = json.loads(JsonFormatter().format(record))
        assert "RuntimeError: boom" in data["exception"]


class TestConfigureLogging:
    def test_json_output(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging("debug", True, stream=stream)
        logging.getLogger("docsearch.test").debug("hello %s", "world")

        assert restore_root_logger.level == logging.DEBUG
        assert json.loads(stream.getvalue().strip())["message"] == "hello world"

    def test_plain_output_and_overrides(self, restore_root_logger):
        stream = io.StringIO()
        configure_logging("info", False, logger_levels={"docsearch.noisy": "error"}, stream=stream)
        logging.getLogger("docsearch.noisy").warning("hidden")
        logging.getLogger("docsearch.test").info("shown")

        output = stream.getvalue()
        assert "hidden" not in output
        assert "INFO [docsearch.test] shown" in output


class TestTraceContext:
    def test_context_is_generated_on_demand(self):
        trace_context.set(None)
        ctx = get_trace_context()
        assert len(ctx["trace_id"]) == 32
        assert len(ctx["span_id"]) == 16

    def test_bind_context_overlays_and_restores(self):
        trace_context.set({"trace_id": "t" * 32, "span_id": "s" * 16})
        with bind_context(index="docs.sqlite", span_id="n" * 16) as ctx:
            assert ctx == {"trace_id": "t" * 32, "span_id": "n" * 16, "index": "docs.sqlite"}
            assert get_trace_context() is ctx
        assert trace_context.get() == {"trace_id": "t" * 32, "span_id": "s" * 16}


class TestTracing:
    def test_create_span_records_attributes_and_errors(self):
        exporter = InMemorySpanExporter()
        init_tracing(span_processors=[SimpleSpanProcessor(exporter)])

        with create_span("ok.span", attributes={"index.path": "x.sqlite"}):
            pass
        with pytest.raises(ValueError):
            with create_span("failing.span"):
                raise ValueError("bad")

        spans = {span.name: span for span in exporter.get_finished_spans()}
        assert spans["ok.span"].attributes["index.path"] == "x.sqlite"
        assert spans["failing.span"].status.status_code == StatusCode.ERROR
        assert spans["failing.span"].events[0].name == "exception"

    def test_span_ids_reach_logs_and_are_restored(self):
        exporter = InMemorySpanExporter()
        init_tracing(span_processors=[SimpleSpanProcessor(exporter)])
        trace_context.set(None)

        with create_span("correlated.span") as span:
            inside = dict(get_trace_context())
            span_ctx = span.get_span_context()

        assert inside["trace_id"] == format(span_ctx.trace_id, "032x")
        assert inside["span_id"] == format(span_ctx.span_id, "016x")
        assert trace_context.get() is None


class TestMetrics:
    def test_track_latency_observes_histogram(self):
        labels = {"index": "metrics-test"}
        before = REGISTRY.get_sample_value("docsearch_search_latency_seconds_count", labels) or 0.0
        with track_latency(SEARCH_LATENCY, **labels):
            pass
        assert REGISTRY.get_sample_value("docsearch_search_latency_seconds_count", labels) == before + 1

    def test_search_counter_is_registered(self):
        labels = {"index": "metrics-test", "outcome": "hit"}
        before = REGISTRY.get_sample_value("docsearch_search_requests_total", labels) or 0.0
        SEARCH_REQUESTS.labels(**labels).inc()
        assert REGISTRY.get_sample_value("docsearch_search_requests_total", labels) == before + 1
