# ============================================================================
# OBSERVABILITY TESTS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Tests - OpenTelemetry spans and metrics
# PURPOSE: Verify spans and counters reach an OpenTelemetry SDK provider
# CREATED: 12 OCT 2026
# ============================================================================
"""
Observability Tests

Each test builds its own SDK provider with an in-memory exporter/reader,
so nothing touches the global OpenTelemetry providers.

Run with:
    pytest tests/test_observability.py -v
"""

import pytest
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import InMemoryMetricReader
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter
from opentelemetry.trace import StatusCode

from core.observability import MetricsCollector, Tracer, WorkflowMetrics


@pytest.fixture
def span_exporter():
    return InMemorySpanExporter()


@pytest.fixture
def tracer(span_exporter):
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(span_exporter))
    return Tracer(tracer_provider=provider)


@pytest.fixture
def metric_reader():
    return InMemoryMetricReader()


@pytest.fixture
def collector(metric_reader):
    return MetricsCollector(meter_provider=MeterProvider(metric_readers=[metric_reader]))


def _exported(reader):
    """Map metric name -> list of (attributes, value) data points."""
    result = {}
    for resource_metrics in reader.get_metrics_data().resource_metrics:
        for scope_metrics in resource_metrics.scope_metrics:
            for metric in scope_metrics.metrics:
                result[metric.name] = [
                    (dict(point.attributes), getattr(point, "value", None) or getattr(point, "sum", None))
                    for point in metric.data.data_points
                ]
    return result


class TestTracer:

    def test_span_exported_with_attributes(self, tracer, span_exporter):
        with tracer.start_span("scheduler_pass", {"instance_id": "inst-1"}) as span:
            span.set_attribute("activated", 2)

        finished = span_exporter.get_finished_spans()
        assert [s.name for s in finished] == ["scheduler_pass"]
        assert finished[0].attributes["instance_id"] == "inst-1"
        assert finished[0].attributes["activated"] == 2
        assert span.attributes == {"instance_id": "inst-1", "activated": 2}
        assert span.end_time is not None

    def test_exception_marks_span_error(self, tracer, span_exporter):
        with pytest.raises(RuntimeError):
            with tracer.start_span("scheduler_pass") as span:
                raise RuntimeError("boom")

        assert span.status == "ERROR"
        assert span_exporter.get_finished_spans()[0].status.status_code == StatusCode.ERROR


class TestMetricsCollector:

    def test_counter_exported_and_kept_in_process(self, collector, metric_reader):
        metrics = WorkflowMetrics(collector)

        metrics.record_transition("PENDING", "READY")
        metrics.record_transition("PENDING", "READY")
        metrics.record_instance_created("intake")

        assert collector.get_counter(
            WorkflowMetrics.STEP_TRANSITIONS, {"from": "PENDING", "to": "READY"}
        ) == 2

        exported = _exported(metric_reader)
        assert exported[WorkflowMetrics.STEP_TRANSITIONS] == [({"from": "PENDING", "to": "READY"}, 2)]
        assert exported[WorkflowMetrics.INSTANCES_CREATED] == [({"template_id": "intake"}, 1)]

    def test_histogram_exported(self, collector, metric_reader):
        WorkflowMetrics(collector).record_scheduler_pass(12.5, activated=1, deferred=0)

        exported = _exported(metric_reader)
        assert exported[WorkflowMetrics.SCHEDULER_PASS] == [({}, 12.5)]
        assert WorkflowMetrics.SCHEDULER_DEFERRED not in exported

    def test_clear_resets_in_process_record(self, collector):
        collector.counter("workflow.step.ready", 3)
        collector.clear()

        assert collector.get_counter("workflow.step.ready") == 0
        assert collector.get_metrics() == []
