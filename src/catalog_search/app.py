"""Catalog search HTTP surface.

Routes:
    GET /catalog/v1                          search
    GET /catalog/v1/domains                  visible document count per domain
    GET /catalog/v1/domains/{cname}/facets   facets for one domain
    GET /catalog/v1/{field}                  counts by categories, tags, domain_category, domain_tags
    GET /health, GET /metrics

Usage:
    python -m catalog_search.app
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
import time
from typing import TYPE_CHECKING, Any

from starlette.applications import Starlette
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from catalog_search.adapters.domain_registry import DomainRegistry
from catalog_search.adapters.identity_client import AbstractIdentityClient, HttpIdentityClient
from catalog_search.adapters.index_client import AbstractIndexClient, HttpIndexClient
from catalog_search.config import Settings
from catalog_search.domain.types import CountableField
from catalog_search.errors import CatalogSearchError
from catalog_search.observability import (
    ERROR_COUNT,
    REQUEST_COUNT,
    REQUEST_LATENCY,
    configure_logging,
    configure_trace_exporter,
    get_metrics,
    get_metrics_content_type,
    init_metrics,
    init_tracing,
)
from catalog_search.observability.tracing import TraceContextMiddleware, trace_request
from catalog_search.search.document_queries import DocumentQueryBuilder
from catalog_search.search.domain_queries import DomainQueryBuilder
from catalog_search.service_layer.services import (
    CountService,
    DomainCountService,
    FacetService,
    RequestContext,
    SearchService,
)
from catalog_search.service_layer.visibility import DomainVisibilityResolver


if TYPE_CHECKING:
    from starlette.requests import Request


logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Socrata-RequestId"
CORS_HEADERS = {"Access-Control-Allow-Origin": "*"}

# Fields reachable through /catalog/v1/{field}; domains has its own route
ROUTED_COUNT_FIELDS = frozenset(
    {
        CountableField.CATEGORIES,
        CountableField.TAGS,
        CountableField.DOMAIN_CATEGORY,
        CountableField.DOMAIN_TAGS,
    }
)


def raw_params(request: Request) -> dict[str, list[str]]:
    """Multi-valued query parameters keyed by name."""
    collected: dict[str, list[str]] = {}
    for key, value in request.query_params.multi_items():
        collected.setdefault(key, []).append(value)
    return collected


def request_context(request: Request) -> RequestContext:
    return RequestContext(
        cookie=request.headers.get("cookie"),
        request_id=request.headers.get(REQUEST_ID_HEADER),
    )


def json_response(payload: Any, *, status_code: int = 200, set_cookies: tuple[str, ...] = ()) -> JSONResponse:
    response = JSONResponse(payload, status_code=status_code, headers=CORS_HEADERS)
    for cookie in set_cookies:
        response.headers.append("set-cookie", cookie)
    return response


async def catalog_error_handler(request: Request, exc: Exception) -> Response:
    assert isinstance(exc, CatalogSearchError)
    route = request.scope.get("route")
    route_path = getattr(route, "path", request.url.path)
    ERROR_COUNT.labels(error_type=type(exc).__name__, route=route_path).inc()
    if exc.status_code >= 500:
        logger.error("Request to %s failed: %s: %s", request.url.path, type(exc).__name__, exc)
    else:
        logger.info("Rejected request to %s: %s", request.url.path, exc)
    return json_response(exc.to_payload(), status_code=exc.status_code)


async def record_request_metrics(request: Request, call_next: Any) -> Response:
    start = time.perf_counter()
    response: Response = await call_next(request)
    route = request.scope.get("route")
    route_path = getattr(route, "path", "unmatched")
    REQUEST_LATENCY.labels(route=route_path).observe(time.perf_counter() - start)
    REQUEST_COUNT.labels(route=route_path, status=str(response.status_code)).inc()
    return response


class AppBuilder:
    """Wires settings, clients and services into the Starlette app."""

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        index_client: AbstractIndexClient | None = None,
        identity_client: AbstractIdentityClient | None = None,
        configure_observability: bool = True,
    ) -> None:
        self.settings = settings or Settings()
        self.index_client = index_client or HttpIndexClient(
            self.settings.index_url, timeout=self.settings.index_timeout
        )
        self.identity_client = identity_client or HttpIdentityClient(
            self.settings.identity_url, timeout=self.settings.identity_timeout
        )
        self.configure_observability = configure_observability

    def build(self) -> Starlette:
        settings = self.settings
        if self.configure_observability:
            configure_logging(level=settings.log_level, json_output=settings.log_json)
            init_metrics(service_name=settings.service_name)
            provider = init_tracing(service_name=settings.service_name)
            configure_trace_exporter(settings, provider)

        document_queries = DocumentQueryBuilder.from_settings(settings)
        domain_queries = DomainQueryBuilder(
            settings.domains_index,
            settings.documents_index,
            settings.customer_domain_search_size,
        )
        visibility = DomainVisibilityResolver(
            self.identity_client, concurrency=settings.identity_lookup_concurrency
        )
        registry = DomainRegistry(self.index_client, domain_queries, visibility)

        shared = (settings, self.index_client, registry, document_queries)
        search_service = SearchService(*shared)
        count_service = CountService(*shared)
        facet_service = FacetService(*shared)
        domain_count_service = DomainCountService(*shared, domain_queries)

        routes = [
            Route("/health", endpoint=self._health_endpoint, methods=["GET"]),
            Route("/metrics", endpoint=self._metrics_endpoint, methods=["GET"]),
            Route("/catalog/v1", endpoint=self._build_search_endpoint(search_service), methods=["GET"]),
            Route(
                "/catalog/v1/domains",
                endpoint=self._build_domain_count_endpoint(domain_count_service),
                methods=["GET"],
            ),
            Route(
                "/catalog/v1/domains/{cname}/facets",
                endpoint=self._build_facet_endpoint(facet_service),
                methods=["GET"],
            ),
            Route("/catalog/v1/{field}", endpoint=self._build_count_endpoint(count_service), methods=["GET"]),
        ]

        app = Starlette(
            debug=settings.log_level == "debug",
            routes=routes,
            lifespan=self._build_lifespan_manager(),
            exception_handlers={CatalogSearchError: catalog_error_handler},
        )
        # Last added runs outermost: context seeding wraps the server span, which wraps request metrics
        app.add_middleware(BaseHTTPMiddleware, dispatch=record_request_metrics)
        app.add_middleware(BaseHTTPMiddleware, dispatch=trace_request)
        app.add_middleware(TraceContextMiddleware)
        logger.info("Catalog search initialized against %s", settings.index_url)
        return app

    def _build_lifespan_manager(self):
        @asynccontextmanager
        async def lifespan(app: Starlette):
            try:
                yield
            finally:
                await self.index_client.aclose()
                await self.identity_client.aclose()

        return lifespan

    @staticmethod
    async def _health_endpoint(_: Request) -> JSONResponse:
        return JSONResponse({"status": "healthy"})

    @staticmethod
    async def _metrics_endpoint(_: Request) -> Response:
        return Response(content=get_metrics(), media_type=get_metrics_content_type())

    @staticmethod
    def _build_search_endpoint(service: SearchService):
        async def search_endpoint(request: Request) -> Response:
            results, _, set_cookies = await service.do_search(raw_params(request), request_context(request))
            return json_response(results.model_dump(mode="json", by_alias=True), set_cookies=set_cookies)

        return search_endpoint

    @staticmethod
    def _build_count_endpoint(service: CountService):
        async def count_endpoint(request: Request) -> Response:
            field = CountableField.from_path(request.path_params["field"])
            if field not in ROUTED_COUNT_FIELDS:
                return json_response({"error": "Not found"}, status_code=404)
            results, _, set_cookies = await service.do_aggregate(field, raw_params(request), request_context(request))
            return json_response(results.model_dump(mode="json", by_alias=True), set_cookies=set_cookies)

        return count_endpoint

    @staticmethod
    def _build_facet_endpoint(service: FacetService):
        async def facet_endpoint(request: Request) -> Response:
            facets, _, set_cookies = await service.do_aggregate(
                request.path_params["cname"], raw_params(request), request_context(request)
            )
            payload = [facet.model_dump(mode="json") for facet in facets]
            return json_response(payload, set_cookies=set_cookies)

        return facet_endpoint

    @staticmethod
    def _build_domain_count_endpoint(service: DomainCountService):
        async def domain_count_endpoint(request: Request) -> Response:
            results, _, set_cookies = await service.do_aggregate(raw_params(request), request_context(request))
            return json_response(results.model_dump(mode="json", by_alias=True), set_cookies=set_cookies)

        return domain_count_endpoint


def create_app(
    settings: Settings | None = None,
    *,
    index_client: AbstractIndexClient | None = None,
    identity_client: AbstractIdentityClient | None = None,
    configure_observability: bool = True,
) -> Starlette:
    return AppBuilder(
        settings,
        index_client=index_client,
        identity_client=identity_client,
        configure_observability=configure_observability,
    ).build()


def main() -> None:
    import uvicorn

    settings = Settings()
    app = create_app(settings)
    logger.info("Starting server on %s:%d", settings.host, settings.port)
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
        log_config=None,
    )


if __name__ == "__main__":
    main()
