"""Service layer - use case orchestration.

Each service runs the same pipeline:
1. Validate raw parameters (no external calls before this succeeds)
2. Resolve the search context and the domains the caller may see
3. Build one index request and execute it
4. Format hits or buckets into response records

Every ``do_*`` coroutine returns ``(payload, timings, set_cookies)``.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
import time

from catalog_search.adapters.domain_registry import DomainRegistry
from catalog_search.adapters.index_client import AbstractIndexClient
from catalog_search.config import Settings
from catalog_search.domain.model import Domain, DomainSet
from catalog_search.domain.params import QueryParameters
from catalog_search.domain.results import FacetCount, InternalTimings, SearchResults
from catalog_search.domain.types import CountableField
from catalog_search.errors import DomainNotFound
from catalog_search.params.parser import RawParams, parse_query_parameters
from catalog_search.search.aggregations import choose_aggregation
from catalog_search.search.document_queries import DocumentQueryBuilder
from catalog_search.search.domain_queries import DomainQueryBuilder
from catalog_search.service_layer.formatting import format_counts, format_domain_counts, format_facets, format_hits


logger = logging.getLogger(__name__)

SetCookies = tuple[str, ...]


@dataclass(frozen=True)
class RequestContext:
    """Caller details carried from the transport."""

    cookie: str | None = None
    request_id: str | None = None


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class _CatalogService:
    def __init__(
        self,
        settings: Settings,
        index_client: AbstractIndexClient,
        registry: DomainRegistry,
        document_queries: DocumentQueryBuilder,
    ):
        self.settings = settings
        self.index_client = index_client
        self.registry = registry
        self.document_queries = document_queries

    def parse(self, raw: RawParams) -> QueryParameters:
        return parse_query_parameters(
            raw,
            default_limit=self.settings.default_limit,
            max_limit=self.settings.max_limit,
        )

    async def searchable_domains(
        self,
        context_cname: str | None,
        domain_cnames: frozenset[str] | None,
        request: RequestContext,
    ) -> tuple[DomainSet, int, SetCookies]:
        return await self.registry.find_searchable_domains(
            context_cname,
            domain_cnames,
            filter_out_locked=self.settings.enforce_lockdown,
            cookie=request.cookie,
            request_id=request.request_id,
        )


class SearchService(_CatalogService):
    async def do_search(
        self, raw: RawParams, request: RequestContext
    ) -> tuple[SearchResults, InternalTimings, SetCookies]:
        start = time.perf_counter()
        params = self.parse(raw)
        domain_set, domain_took_ms, set_cookies = await self.searchable_domains(
            params.search_context, params.domains, request
        )

        response = await self.index_client.search(self.document_queries.build_search_request(params, domain_set))
        results = format_hits(response, show_score=params.show_score, show_feature_vals=params.show_feature_vals)

        timings = InternalTimings(service_millis=_elapsed_ms(start), search_millis=[domain_took_ms, response.took_ms])
        logger.info(
            "Search returned %d of %d results in %dms",
            len(results),
            response.total,
            timings.service_millis,
        )
        return SearchResults(results=results, result_set_size=response.total, timings=timings), timings, set_cookies


class CountService(_CatalogService):
    async def do_aggregate(
        self, field: CountableField, raw: RawParams, request: RequestContext
    ) -> tuple[SearchResults, InternalTimings, SetCookies]:
        start = time.perf_counter()
        params = self.parse(raw)
        domain_set, domain_took_ms, set_cookies = await self.searchable_domains(
            params.search_context, params.domains, request
        )

        count_request = self.document_queries.build_count_request(field, params, domain_set)
        response = await self.index_client.search(count_request)
        counts = format_counts(response, choose_aggregation(field))

        timings = InternalTimings(service_millis=_elapsed_ms(start), search_millis=[domain_took_ms, response.took_ms])
        return SearchResults(results=counts, timings=timings), timings, set_cookies


class FacetService(_CatalogService):
    async def do_aggregate(
        self, cname: str, raw: RawParams, request: RequestContext
    ) -> tuple[list[FacetCount], InternalTimings, SetCookies]:
        """Facets for one domain.

        Raises:
            DomainNotFound: for an unknown domain, and equally for a locked
                domain the caller may not view
        """
        start = time.perf_counter()
        self.parse(raw)
        cname = cname.strip().lower()
        domain_set, domain_took_ms, set_cookies = await self.searchable_domains(cname, frozenset({cname}), request)
        domain: Domain | None = domain_set.search_context
        if domain is None:
            raise DomainNotFound(cname)

        response = await self.index_client.search(self.document_queries.build_facet_request(domain))
        facets = format_facets(response)

        timings = InternalTimings(service_millis=_elapsed_ms(start), search_millis=[domain_took_ms, response.took_ms])
        return facets, timings, set_cookies


class DomainCountService(_CatalogService):
    def __init__(
        self,
        settings: Settings,
        index_client: AbstractIndexClient,
        registry: DomainRegistry,
        document_queries: DocumentQueryBuilder,
        domain_queries: DomainQueryBuilder,
    ):
        super().__init__(settings, index_client, registry, document_queries)
        self.domain_queries = domain_queries

    async def do_aggregate(
        self, raw: RawParams, request: RequestContext
    ) -> tuple[SearchResults, InternalTimings, SetCookies]:
        start = time.perf_counter()
        params = self.parse(raw)
        domain_set, domain_took_ms, set_cookies = await self.searchable_domains(
            params.search_context, params.domains, request
        )

        response = await self.index_client.search(self.domain_queries.build_domain_count_request(domain_set))
        counts = format_domain_counts(response, domain_set)

        timings = InternalTimings(service_millis=_elapsed_ms(start), search_millis=[domain_took_ms, response.took_ms])
        return SearchResults(results=counts, timings=timings), timings, set_cookies
