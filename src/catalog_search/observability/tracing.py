"""OpenTelemetry tracing with Starlette middleware."""

from __future__ import annotations

from contextlib import contextmanager
import logging
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter as GrpcOTLPSpanExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter as HttpOTLPSpanExporter
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from catalog_search.observability.context import (
    generate_span_id,
    get_trace_context,
    set_trace_context,
    update_span_id,
    with_otel_span,
)


if TYPE_CHECKING:
    from collections.abc import Generator

    from opentelemetry.trace import Span, Tracer
    from starlette.requests import Request
    from starlette.responses import Response

    from catalog_search.config import Settings

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = b"x-socrata-requestid"

_tracer_holder: dict[str, Tracer | None] = {"tracer": None}


def init_tracing(
    service_name: str = "catalog-search",
    resource_attributes: dict[str, str] | None = None,
) -> TracerProvider:
    """Initialize OpenTelemetry tracing."""
    attributes = {"service.name": service_name}
    if resource_attributes:
        attributes.update(resource_attributes)
    provider = TracerProvider(resource=Resource.create(attributes))
    trace.set_tracer_provider(provider)
    _tracer_holder["tracer"] = trace.get_tracer(__name__)
    logger.info("Tracing initialized for service: %s", service_name)
    return provider


def configure_trace_exporter(settings: Settings, provider: TracerProvider | None = None) -> None:
    """Attach an OTLP span exporter when ``otlp_endpoint`` is configured."""
    if not settings.otlp_endpoint:
        return

    active_provider = provider or trace.get_tracer_provider()
    if not isinstance(active_provider, TracerProvider):
        active_provider = init_tracing(settings.service_name)

    try:
        if settings.otlp_protocol == "grpc":
            exporter = GrpcOTLPSpanExporter(
                endpoint=settings.otlp_endpoint,
                headers=settings.otlp_headers,
                timeout=settings.otlp_timeout,
            )
        else:
            exporter = HttpOTLPSpanExporter(
                endpoint=settings.otlp_endpoint,
                headers=settings.otlp_headers,
                timeout=settings.otlp_timeout,
            )
    except Exception as exc:
        logger.error("Failed to configure OTLP exporter: %s", exc, exc_info=True)
        return

    active_provider.add_span_processor(BatchSpanProcessor(exporter))
    logger.info("OTLP trace export enabled (%s) to %s", settings.otlp_protocol, settings.otlp_endpoint)


def get_tracer() -> Tracer:
    if _tracer_holder["tracer"] is None:
        init_tracing()
    return _tracer_holder["tracer"]  # type: ignore[return-value]


@contextmanager
def create_span(
    name: str,
    kind: SpanKind = SpanKind.INTERNAL,
    attributes: dict[str, Any] | None = None,
) -> Generator[Span, None, None]:
    """Create a traced span with context propagation."""
    tracer = get_tracer()
    with tracer.start_as_current_span(name, kind=kind) as span:
        if attributes:
            for key, value in attributes.items():
                span.set_attribute(key, value)

        update_span_id(with_otel_span(span)["span_id"])

        try:
            yield span
        except Exception as exc:
            span.set_status(Status(StatusCode.ERROR, str(exc)))
            span.record_exception(exc)
            raise


class TraceContextMiddleware:
    """ASGI middleware seeding trace and request-id context for each request."""

    def __init__(self, app: Any) -> None:
        self.app = app

    async def __call__(self, scope: dict, receive: Any, send: Any) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        headers = dict(scope.get("headers", []))
        trace_id = headers.get(b"x-trace-id", b"").decode() or get_trace_context()["trace_id"]
        request_id = headers.get(REQUEST_ID_HEADER, b"").decode() or None

        extra: dict[str, object] = {}
        if request_id:
            extra["request_id"] = request_id
        set_trace_context(trace_id, generate_span_id(), **extra)

        await self.app(scope, receive, send)


async def trace_request(request: Request, call_next: Any) -> Response:
    """HTTP middleware wrapping each request in a server span."""
    attributes = {
        "http.method": request.method,
        "http.url": str(request.url),
        "http.route": request.url.path,
    }

    with create_span("http.request", kind=SpanKind.SERVER, attributes=attributes) as span:
        response: Response = await call_next(request)
        span.set_attribute("http.status_code", response.status_code)
        if response.status_code >= 500:
            span.set_status(Status(StatusCode.ERROR, f"HTTP {response.status_code}"))
        return response
