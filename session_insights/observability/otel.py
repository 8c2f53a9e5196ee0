"""OpenTelemetry wiring for pipeline runs."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from session_insights import config

logger = logging.getLogger("insights.observability")


_initialized = False
_enabled = False
_tracer: Any | None = None
_trace_provider: Any | None = None
_meter_provider: Any | None = None

_session_scan_counter: Any | None = None
_tool_calls_counter: Any | None = None
_tokens_counter: Any | None = None
_pass_counter: Any | None = None
_pass_latency_hist: Any | None = None


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    if endpoint.endswith("/"):
        endpoint = endpoint[:-1]
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def initialize() -> None:
    global _initialized, _enabled, _tracer, _trace_provider, _meter_provider
    global _session_scan_counter, _tool_calls_counter, _tokens_counter
    global _pass_counter, _pass_latency_hist

    if _initialized:
        return

    _initialized = True

    if not config.OTEL_ENABLED:
        logger.debug("OpenTelemetry disabled (INSIGHTS_OTEL_ENABLED=false)")
        return

    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return

    traces_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces")
    metrics_endpoint = _normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics")
    service_name = config.OTEL_SERVICE_NAME or "session-insights"

    resource = Resource.create(
        {
            "service.name": service_name,
            "service.namespace": "insights",
        }
    )

    trace_provider = TracerProvider(resource=resource)
    trace_provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=traces_endpoint or None)))
    trace.set_tracer_provider(trace_provider)

    metric_reader = PeriodicExportingMetricReader(
        OTLPMetricExporter(endpoint=metrics_endpoint or None)
    )
    meter_provider = MeterProvider(resource=resource, metric_readers=[metric_reader])
    metrics.set_meter_provider(meter_provider)
    meter = metrics.get_meter("insights.pipeline")

    _session_scan_counter = meter.create_counter(
        "insights_sessions_scanned_total",
        unit="1",
        description="Session files scanned, by admission result",
    )
    _tool_calls_counter = meter.create_counter(
        "insights_tool_calls_total",
        unit="1",
        description="Tool call outcomes observed while aggregating sessions",
    )
    _tokens_counter = meter.create_counter(
        "insights_tokens_total",
        unit="1",
        description="Token totals by direction",
    )
    _pass_counter = meter.create_counter(
        "insights_passes_total",
        unit="1",
        description="Orchestration passes by stage reached",
    )
    _pass_latency_hist = meter.create_histogram(
        "insights_pass_latency_ms",
        unit="ms",
        description="Wall time of one orchestration invocation",
    )

    _trace_provider = trace_provider
    _meter_provider = meter_provider
    _tracer = trace.get_tracer("insights.pipeline")
    _enabled = True

    logger.info(
        "OpenTelemetry initialized (service=%s endpoint=%s)",
        service_name,
        config.OTEL_ENDPOINT,
    )


def shutdown() -> None:
    global _enabled
    if not _initialized:
        return
    for provider in (_meter_provider, _trace_provider):
        if provider is None:
            continue
        try:
            provider.shutdown()
        except Exception as exc:  # noqa: BLE001
            logger.debug("Telemetry provider shutdown failed: %s", exc)
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        if attributes:
            for key, value in attributes.items():
                if value is not None:
                    span.set_attribute(key, value)
        yield span


def record_session_scan(result: str) -> None:
    if _enabled and _session_scan_counter is not None:
        _session_scan_counter.add(1, {"result": result or "unknown"})


def record_tool_result(tool: str, status: str, *, count: int = 1) -> None:
    safe_count = max(0, int(count))
    if safe_count == 0:
        return
    if _enabled and _tool_calls_counter is not None:
        _tool_calls_counter.add(
            safe_count,
            {"tool": tool or "unknown", "status": status or "unknown"},
        )


def record_tokens(direction: str, count: int) -> None:
    amount = max(0, int(count))
    if amount and _enabled and _tokens_counter is not None:
        _tokens_counter.add(amount, {"direction": direction or "unknown"})


def record_pass(stage: str, duration_ms: float) -> None:
    labels = {"stage": stage or "unknown"}
    if _enabled and _pass_counter is not None:
        _pass_counter.add(1, labels)
    if _enabled and _pass_latency_hist is not None:
        _pass_latency_hist.record(max(0.0, float(duration_ms)), labels)
