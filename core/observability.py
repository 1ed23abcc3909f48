# ============================================================================
# OBSERVABILITY
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - OpenTelemetry tracing and metrics
# PURPOSE: Spans around scheduler passes, counters for workflow transitions
# CREATED: 12 OCT 2026
# ============================================================================
"""
Observability

Tracing and metrics go through the OpenTelemetry API:
- Spans around service operations (scheduler passes)
- Counters for step transitions and instance lifecycle
- Histograms for scheduler pass duration

Without a configured SDK the API providers are no-ops. A deployment that
installs opentelemetry-sdk (or runs under `opentelemetry-instrument`)
exports everything recorded here with no code change.

Every counter and histogram is also kept in process, so tests and the
health of a single process can be inspected without an exporter.

Usage:
    from core.observability import get_tracer, get_workflow_metrics

    with get_tracer().start_span("scheduler_pass", {"instance_id": instance_id}) as span:
        ...
        span.set_attribute("activated", 2)
    get_workflow_metrics().record_scheduler_pass(duration_ms, 2, 0)
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from opentelemetry import metrics, trace

logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "caseflow-engine"


# ============================================================================
# SPAN / TRACING
# ============================================================================

@dataclass
class Span:
    """
    Local view of an OpenTelemetry span.

    Attributes and events are forwarded to the underlying span and kept
    here as well, so callers can read back what they recorded.
    """
    name: str
    otel_span: Optional[trace.Span] = None
    start_time: float = field(default_factory=time.time)
    end_time: Optional[float] = None
    attributes: Dict[str, Any] = field(default_factory=dict)
    status: str = "OK"

    def set_attribute(self, key: str, value: Any) -> None:
        self.attributes[key] = value
        if self.otel_span is not None:
            self.otel_span.set_attribute(key, value)

    def add_event(self, name: str, attributes: Optional[Dict[str, Any]] = None) -> None:
        if self.otel_span is not None:
            self.otel_span.add_event(name, attributes or {})

    @property
    def duration_ms(self) -> float:
        end = self.end_time or time.time()
        return (end - self.start_time) * 1000


class Tracer:
    """Starts OpenTelemetry spans and logs their duration when they close."""

    def __init__(
        self,
        name: str = INSTRUMENTATION_NAME,
        tracer_provider: Optional[trace.TracerProvider] = None,
    ):
        self.name = name
        provider = tracer_provider or trace.get_tracer_provider()
        self._otel_tracer = provider.get_tracer(name)

    @contextmanager
    def start_span(
        self,
        name: str,
        attributes: Optional[Dict[str, Any]] = None,
    ):
        """
        Start a span as the current span.

        An exception escaping the block is recorded on the span, which is
        marked ERROR, and then re-raised.

        Yields:
            Span
        """
        with self._otel_tracer.start_as_current_span(name, attributes=dict(attributes or {})) as otel_span:
            span = Span(name=name, otel_span=otel_span, attributes=dict(attributes or {}))
            try:
                yield span
            except Exception:
                span.status = "ERROR"
                raise
            finally:
                span.end_time = time.time()
                logger.debug(f"Span completed: {name} ({span.duration_ms:.2f}ms) status={span.status}")


# ============================================================================
# METRICS
# ============================================================================

@dataclass
class MetricPoint:
    """A single recorded value."""
    name: str
    value: float
    timestamp: float = field(default_factory=time.time)
    tags: Dict[str, str] = field(default_factory=dict)
    unit: str = ""


def _metric_key(name: str, tags: Optional[Dict[str, str]]) -> str:
    if not tags:
        return name
    rendered = ",".join(f"{k}={v}" for k, v in sorted(tags.items()))
    return f"{name}:{rendered}"


class MetricsCollector:
    """
    Records counters and histograms on an OpenTelemetry meter.

    Instruments are created on first use. Values are also kept in
    process for get_counter() / get_metrics().
    """

    def __init__(self, meter_provider: Optional[metrics.MeterProvider] = None):
        provider = meter_provider or metrics.get_meter_provider()
        self._meter = provider.get_meter(INSTRUMENTATION_NAME)
        self._counter_instruments: Dict[str, metrics.Counter] = {}
        self._histogram_instruments: Dict[str, metrics.Histogram] = {}
        self._metrics: List[MetricPoint] = []
        self._counters: Dict[str, float] = {}

    def counter(
        self,
        name: str,
        value: float = 1.0,
        tags: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Increment a counter metric.

        Args:
            name: Metric name
            value: Value to add (default 1)
            tags: Optional tags (exported as attributes)
        """
        instrument = self._counter_instruments.get(name)
        if instrument is None:
            instrument = self._meter.create_counter(name)
            self._counter_instruments[name] = instrument
        instrument.add(value, attributes=tags or {})

        key = _metric_key(name, tags)
        self._counters[key] = self._counters.get(key, 0) + value
        self._metrics.append(MetricPoint(name=name, value=value, tags=tags or {}))

    def histogram(
        self,
        name: str,
        value: float,
        tags: Optional[Dict[str, str]] = None,
        unit: str = "ms",
    ) -> None:
        instrument = self._histogram_instruments.get(name)
        if instrument is None:
            instrument = self._meter.create_histogram(name, unit=unit)
            self._histogram_instruments[name] = instrument
        instrument.record(value, attributes=tags or {})

        self._metrics.append(MetricPoint(name=name, value=value, tags=tags or {}, unit=unit))

    def get_counter(self, name: str, tags: Optional[Dict[str, str]] = None) -> float:
        return self._counters.get(_metric_key(name, tags), 0)

    def get_metrics(self) -> List[MetricPoint]:
        return self._metrics.copy()

    def clear(self) -> None:
        """Clear the in-process record. Exported values are unaffected."""
        self._metrics.clear()
        self._counters.clear()


# ============================================================================
# WORKFLOW METRICS
# ============================================================================

class WorkflowMetrics:
    """
    Named metrics for the workflow engine.

    Thin wrapper so metric names live in one place.
    """

    STEP_TRANSITIONS = "workflow.step.transitions"
    STEPS_READY = "workflow.step.ready"
    SCHEDULER_PASS = "workflow.scheduler.pass_ms"
    SCHEDULER_DEFERRED = "workflow.scheduler.deferred"
    INSTANCES_CREATED = "workflow.instance.created"
    INSTANCES_COMPLETED = "workflow.instance.completed"
    VALIDATION_FAILURES = "workflow.template.validation_failures"

    def __init__(self, collector: MetricsCollector):
        self.collector = collector

    def record_transition(self, from_state: str, to_state: str) -> None:
        self.collector.counter(
            self.STEP_TRANSITIONS,
            tags={"from": from_state, "to": to_state},
        )

    def record_step_ready(self, count: int = 1) -> None:
        if count:
            self.collector.counter(self.STEPS_READY, value=count)

    def record_scheduler_pass(self, duration_ms: float, activated: int, deferred: int) -> None:
        self.collector.histogram(self.SCHEDULER_PASS, duration_ms)
        if deferred:
            self.collector.counter(self.SCHEDULER_DEFERRED, value=deferred)

    def record_instance_created(self, template_id: str) -> None:
        self.collector.counter(self.INSTANCES_CREATED, tags={"template_id": template_id})

    def record_instance_completed(self, template_id: str) -> None:
        self.collector.counter(self.INSTANCES_COMPLETED, tags={"template_id": template_id})

    def record_validation_failure(self, issue_count: int) -> None:
        self.collector.counter(self.VALIDATION_FAILURES, tags={"issues": str(issue_count)})


# ============================================================================
# GLOBAL INSTANCES
# ============================================================================

_tracer: Optional[Tracer] = None
_metrics: Optional[MetricsCollector] = None


def get_tracer() -> Tracer:
    """Get the global tracer."""
    global _tracer
    if _tracer is None:
        _tracer = Tracer()
    return _tracer


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_workflow_metrics() -> WorkflowMetrics:
    return WorkflowMetrics(get_metrics())


__all__ = [
    "Span",
    "Tracer",
    "MetricPoint",
    "MetricsCollector",
    "WorkflowMetrics",
    "get_tracer",
    "get_metrics",
    "get_workflow_metrics",
]
