"""Prometheus metrics mirrored to OpenTelemetry instruments."""

from __future__ import annotations

from contextlib import contextmanager
import time
from typing import TYPE_CHECKING, Any

from opentelemetry import metrics as otel_metrics
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


if TYPE_CHECKING:
    from collections.abc import Generator


_meter_holder: dict[str, Any] = {"meter": None, "provider": None}


def init_metrics(
    service_name: str = "catalog-search",
    resource_attributes: dict[str, str] | None = None,
) -> MeterProvider:
    """Initialize OpenTelemetry metrics once per process."""
    provider = _meter_holder.get("provider")
    if isinstance(provider, MeterProvider):
        return provider

    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = MeterProvider(resource=Resource.create(attributes))
    otel_metrics.set_meter_provider(provider)
    _meter_holder["provider"] = provider
    _meter_holder["meter"] = otel_metrics.get_meter(__name__)
    return provider


def _get_meter():
    meter = _meter_holder.get("meter")
    if meter is None:
        init_metrics()
        meter = _meter_holder.get("meter")
    return meter


class _BoundMetric:
    def __init__(self, wrapper: MetricBridge, labels: dict[str, str]) -> None:
        self._wrapper = wrapper
        self._labels = labels

    def inc(self, amount: float = 1.0) -> None:
        self._wrapper.inc(self._labels, amount)

    def observe(self, value: float) -> None:
        self._wrapper.observe(self._labels, value)


class MetricBridge:
    """Bridge a Prometheus metric to a lazily created OTel instrument."""

    def __init__(
        self,
        prom_metric: Counter | Histogram,
        *,
        otel_name: str,
        otel_description: str,
        otel_kind: str,
    ) -> None:
        self._prom_metric = prom_metric
        self._otel_name = otel_name
        self._otel_description = otel_description
        self._otel_kind = otel_kind
        self._otel_instrument = None

    def labels(self, **labels: str) -> _BoundMetric:
        return _BoundMetric(self, labels)

    def _ensure_otel_instrument(self):
        if self._otel_instrument is not None:
            return self._otel_instrument
        meter = _get_meter()
        if self._otel_kind == "counter":
            self._otel_instrument = meter.create_counter(self._otel_name, description=self._otel_description)
        elif self._otel_kind == "histogram":
            self._otel_instrument = meter.create_histogram(self._otel_name, description=self._otel_description)
        else:
            raise ValueError(f"Unknown metric kind: {self._otel_kind}")
        return self._otel_instrument

    def inc(self, labels: dict[str, str], amount: float) -> None:
        self._prom_metric.labels(**labels).inc(amount)
        self._ensure_otel_instrument().add(amount, labels)

    def observe(self, labels: dict[str, str], value: float) -> None:
        self._prom_metric.labels(**labels).observe(value)
        self._ensure_otel_instrument().record(value, labels)


_REQUEST_LATENCY_PROM = Histogram(
    "catalog_request_latency_seconds",
    "HTTP request latency in seconds",
    ["route"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

_REQUEST_COUNT_PROM = Counter(
    "catalog_requests_total",
    "Total HTTP requests",
    ["route", "status"],
)

_ERROR_COUNT_PROM = Counter(
    "catalog_errors_total",
    "Requests failed by error kind",
    ["error_type", "route"],
)

_INDEX_LATENCY_PROM = Histogram(
    "catalog_index_latency_seconds",
    "Index request latency in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

_IDENTITY_LOOKUPS_PROM = Counter(
    "catalog_identity_lookups_total",
    "Identity service calls by operation and outcome",
    ["operation", "outcome"],
)

REQUEST_LATENCY = MetricBridge(
    _REQUEST_LATENCY_PROM,
    otel_name="catalog_request_latency_seconds",
    otel_description="HTTP request latency in seconds",
    otel_kind="histogram",
)

REQUEST_COUNT = MetricBridge(
    _REQUEST_COUNT_PROM,
    otel_name="catalog_requests_total",
    otel_description="Total HTTP requests",
    otel_kind="counter",
)

ERROR_COUNT = MetricBridge(
    _ERROR_COUNT_PROM,
    otel_name="catalog_errors_total",
    otel_description="Requests failed by error kind",
    otel_kind="counter",
)

INDEX_LATENCY = MetricBridge(
    _INDEX_LATENCY_PROM,
    otel_name="catalog_index_latency_seconds",
    otel_description="Index request latency in seconds",
    otel_kind="histogram",
)

IDENTITY_LOOKUPS = MetricBridge(
    _IDENTITY_LOOKUPS_PROM,
    otel_name="catalog_identity_lookups_total",
    otel_description="Identity service calls by operation and outcome",
    otel_kind="counter",
)


@contextmanager
def track_latency(histogram: MetricBridge, **labels: str) -> Generator[None, None, None]:
    """Context manager to track operation latency."""
    start = time.perf_counter()
    try:
        yield
    finally:
        histogram.labels(**labels).observe(time.perf_counter() - start)


def get_metrics() -> bytes:
    """Generate Prometheus metrics output."""
    return generate_latest()


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
