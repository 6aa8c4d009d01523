"""Domain registry lookups and candidate domain resolution."""

from __future__ import annotations

from collections.abc import Iterable
import logging
from typing import TYPE_CHECKING

from catalog_search.adapters.index_client import AbstractIndexClient, IndexResponse
from catalog_search.domain.model import Domain, DomainSet
from catalog_search.errors import DecodeFailure, DomainNotFound
from catalog_search.search.domain_queries import DomainQueryBuilder


if TYPE_CHECKING:
    from catalog_search.service_layer.visibility import DomainVisibilityResolver

logger = logging.getLogger(__name__)


def _decode_domains(response: IndexResponse) -> set[Domain]:
    domains: set[Domain] = set()
    for hit in response.hits:
        source = hit.get("_source")
        if not isinstance(source, dict):
            logger.error("Domain hit without a source document: %s", hit)
            raise DecodeFailure("Domain hit without a source document")
        domains.add(Domain.from_source(source))
    return domains


class DomainRegistry:
    """Fetches domain snapshots from the domain index; nothing is cached."""

    def __init__(
        self,
        index_client: AbstractIndexClient,
        query_builder: DomainQueryBuilder,
        visibility: DomainVisibilityResolver,
    ):
        self.index_client = index_client
        self.query_builder = query_builder
        self.visibility = visibility

    async def fetch(self, domain_id: int) -> Domain | None:
        response = await self.index_client.search(self.query_builder.build_fetch_request(domain_id))
        return next(iter(_decode_domains(response)), None)

    async def find(self, cname: str) -> tuple[Domain | None, int]:
        domains, took_ms = await self.find_many({cname})
        return next(iter(domains), None), took_ms

    async def find_many(self, cnames: Iterable[str]) -> tuple[set[Domain], int]:
        """One batched lookup for every cname."""
        wanted = {cname.lower() for cname in cnames if cname}
        if not wanted:
            return set(), 0
        response = await self.index_client.search(self.query_builder.build_find_request(wanted))
        return _decode_domains(response), response.took_ms

    async def customer_domains(self) -> tuple[set[Domain], int]:
        response = await self.index_client.search(self.query_builder.build_customer_domain_request())
        return _decode_domains(response), response.took_ms

    async def find_domains(
        self,
        context_cname: str | None,
        domain_cnames: Iterable[str] | None,
    ) -> tuple[Domain | None, frozenset[Domain], int]:
        """Resolve the search context and candidate domains.

        Explicit cnames are fetched together with the context in one lookup,
        then narrowed back to the requested cnames. Without cnames every
        customer domain is a candidate, and the context must be one of them.

        Raises:
            DomainNotFound: when ``context_cname`` matches no domain
        """
        if domain_cnames is not None:
            requested = {cname.lower() for cname in domain_cnames}
            found, took_ms = await self.find_many(requested | ({context_cname} if context_cname else set()))
            domains = frozenset(domain for domain in found if domain.domain_cname in requested)
        else:
            found, took_ms = await self.customer_domains()
            domains = frozenset(found)

        context: Domain | None = None
        if context_cname is not None:
            context = next((domain for domain in found if domain.domain_cname == context_cname.lower()), None)
            if context is None:
                raise DomainNotFound(context_cname)

        return context, domains, took_ms

    async def find_searchable_domains(
        self,
        context_cname: str | None,
        domain_cnames: Iterable[str] | None,
        *,
        filter_out_locked: bool,
        cookie: str | None,
        request_id: str | None,
    ) -> tuple[DomainSet, int, tuple[str, ...]]:
        """Candidate domains narrowed to what the caller may see."""
        context, domains, took_ms = await self.find_domains(context_cname, domain_cnames)
        if not filter_out_locked:
            return DomainSet.of(domains, context), took_ms, ()

        decision = await self.visibility.resolve(context, domains, cookie, request_id)
        return decision.to_domain_set(), took_ms, decision.set_cookies
