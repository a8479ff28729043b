"""OpenTelemetry wiring for the viewer, with an optional Prometheus endpoint.

Both backends are driven by the ``_METRICS`` table. Every helper is a no-op
until ``initialize()`` has enabled at least one backend.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any

from fastapi import FastAPI

from workflow_viewer import config

logger = logging.getLogger("workflow_viewer.observability")

# key -> (exported name, instrument kind, unit, description, label name)
_METRICS: dict[str, tuple[str, str, str, str, str]] = {
    "rebuilds": ("workflow_viewer_tree_rebuilds_total", "counter", "1", "Count of display tree rebuilds", "result"),
    "rebuild_ms": ("workflow_viewer_tree_rebuild_ms", "histogram", "ms", "Latency of a full display tree rebuild", "result"),
    "lines": ("workflow_viewer_log_lines_total", "counter", "1", "Log lines read, by outcome", "outcome"),
    "broadcasts": ("workflow_viewer_broadcasts_total", "counter", "1", "Messages pushed to live subscribers", "kind"),
}

_initialized = False
_enabled = False
_prom_enabled = False
_tracer: Any | None = None
_providers: list[Any] = []
_fastapi_instrumentor: Any | None = None
_otel_instruments: dict[str, Any] = {}
_prom_instruments: dict[str, Any] = {}


def _normalize_otlp_endpoint(base_endpoint: str, signal_path: str) -> str:
    endpoint = (base_endpoint or "").strip()
    if not endpoint:
        return ""
    if endpoint.endswith(signal_path):
        return endpoint
    endpoint = endpoint.rstrip("/")
    if endpoint.endswith("/v1"):
        return f"{endpoint}{signal_path[3:]}"
    return f"{endpoint}{signal_path}"


def _start_otel() -> bool:
    global _tracer, _fastapi_instrumentor
    try:
        from opentelemetry import metrics, trace
        from opentelemetry.exporter.otlp.proto.http.metric_exporter import OTLPMetricExporter
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
        from opentelemetry.sdk.metrics import MeterProvider
        from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor
    except ImportError as exc:
        logger.warning("OpenTelemetry dependencies unavailable: %s", exc)
        return False

    resource = Resource.create({"service.name": config.OTEL_SERVICE_NAME or "workflow-viewer"})

    tracer_provider = TracerProvider(resource=resource)
    span_exporter = OTLPSpanExporter(endpoint=_normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/traces") or None)
    tracer_provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(tracer_provider)

    metric_exporter = OTLPMetricExporter(endpoint=_normalize_otlp_endpoint(config.OTEL_ENDPOINT, "/v1/metrics") or None)
    meter_provider = MeterProvider(resource=resource, metric_readers=[PeriodicExportingMetricReader(metric_exporter)])
    metrics.set_meter_provider(meter_provider)

    meter = metrics.get_meter("workflow_viewer")
    for key, (name, kind, unit, description, _label) in _METRICS.items():
        create = meter.create_counter if kind == "counter" else meter.create_histogram
        _otel_instruments[key] = create(name, unit=unit, description=description)

    _providers[:] = [meter_provider, tracer_provider]
    _tracer = trace.get_tracer("workflow_viewer")
    _fastapi_instrumentor = FastAPIInstrumentor()
    return True


def _start_prometheus(port: int) -> bool:
    try:
        from prometheus_client import Counter, Histogram, start_http_server

        start_http_server(port)
        for key, (name, kind, _unit, description, label) in _METRICS.items():
            metric_type = Counter if kind == "counter" else Histogram
            _prom_instruments[key] = metric_type(name, description, [label])
    except Exception as exc:  # noqa: BLE001
        logger.warning("Prometheus endpoint not started: %s", exc)
        _prom_instruments.clear()
        return False
    logger.info("Prometheus metrics listening on port %s", port)
    return True


def initialize(app: FastAPI | None = None) -> None:
    global _initialized, _enabled, _prom_enabled

    if _initialized:
        if _enabled and app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        return
    _initialized = True

    if not config.OTEL_ENABLED:
        logger.info("OpenTelemetry disabled (WORKFLOW_VIEWER_OTEL_ENABLED=false)")
        return

    _enabled = _start_otel()
    if _enabled:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.instrument_app(app)
        logger.info("OpenTelemetry initialized (endpoint=%s)", config.OTEL_ENDPOINT)
    if config.PROM_PORT > 0:
        _prom_enabled = _start_prometheus(config.PROM_PORT)


def shutdown(app: FastAPI | None = None) -> None:
    global _enabled
    if not _initialized:
        return
    try:
        if app and _fastapi_instrumentor:
            _fastapi_instrumentor.uninstrument_app(app)
    except Exception:
        logger.debug("FastAPI uninstrument failed", exc_info=True)
    for provider in _providers:
        try:
            provider.shutdown()
        except Exception:
            logger.debug("Telemetry provider shutdown failed", exc_info=True)
    _providers.clear()
    _enabled = False


@contextmanager
def start_span(name: str, attributes: dict[str, Any] | None = None):
    if not _enabled or _tracer is None:
        yield None
        return
    with _tracer.start_as_current_span(name) as span:
        for key, value in (attributes or {}).items():
            if value is not None:
                span.set_attribute(key, value)
        yield span


def _emit(key: str, value: float, label_value: str) -> None:
    _name, kind, _unit, _description, label = _METRICS[key]
    labels = {label: label_value or "unknown"}

    instrument = _otel_instruments.get(key)
    if _enabled and instrument is not None:
        if kind == "counter":
            instrument.add(value, labels)
        else:
            instrument.record(value, labels)

    prom_metric = _prom_instruments.get(key)
    if _prom_enabled and prom_metric is not None:
        if kind == "counter":
            prom_metric.labels(**labels).inc(value)
        else:
            prom_metric.labels(**labels).observe(value)


def record_rebuild(result: str, duration_ms: float) -> None:
    _emit("rebuilds", 1, result)
    _emit("rebuild_ms", max(0.0, float(duration_ms)), result)


def record_lines(*, accepted: int, skipped: int) -> None:
    for outcome, count in (("accepted", accepted), ("skipped", skipped)):
        if count > 0:
            _emit("lines", int(count), outcome)


def record_broadcast(kind: str, subscribers: int) -> None:
    if subscribers > 0:
        _emit("broadcasts", int(subscribers), kind)
