"""Requests against the domain index and the per-domain count request."""

from __future__ import annotations

from collections.abc import Iterable

from catalog_search.domain.model import DomainSet
from catalog_search.domain.types import (
    DOMAIN_INDEX_CNAME_RAW_FIELD,
    DOMAIN_INDEX_ID_FIELD,
    DOMAIN_INDEX_IS_CUSTOMER_FIELD,
)
from catalog_search.search.aggregations import domain_count_aggregations
from catalog_search.search.filters import domain_ids_filter, domain_visibility_filter, term, terms
from catalog_search.search.requests import AggregationRequest, SearchRequest


class DomainQueryBuilder:
    """Lookups by id or cname, customer-domain listing and domain counts."""

    def __init__(self, domains_index: str, documents_index: str, customer_domain_search_size: int = 42000):
        self.domains_index = domains_index
        self.documents_index = documents_index
        self.customer_domain_search_size = customer_domain_search_size

    def build_fetch_request(self, domain_id: int) -> SearchRequest:
        body = {"query": {"bool": {"filter": [term(DOMAIN_INDEX_ID_FIELD, domain_id)]}}, "size": 1}
        return SearchRequest(index=self.domains_index, body=body)

    def build_find_request(self, cnames: Iterable[str]) -> SearchRequest:
        """Batched lookup of every cname in one terms query."""
        wanted = {cname.lower() for cname in cnames}
        body = {
            "query": {"bool": {"filter": [terms(DOMAIN_INDEX_CNAME_RAW_FIELD, wanted)]}},
            "size": max(len(wanted), 1),
        }
        return SearchRequest(index=self.domains_index, body=body)

    def build_customer_domain_request(self) -> SearchRequest:
        # Truncates silently beyond customer_domain_search_size domains
        body = {
            "query": {"bool": {"filter": [term(DOMAIN_INDEX_IS_CUSTOMER_FIELD, True)]}},
            "size": self.customer_domain_search_size,
        }
        return SearchRequest(index=self.domains_index, body=body)

    def build_domain_count_request(self, domain_set: DomainSet) -> AggregationRequest:
        """Visible document count per domain of ``domain_set``.

        Request parameters other than the domain set do not narrow the count.
        """
        partition = domain_set.partition()
        visible = domain_visibility_filter(domain_set.context_moderated, partition)
        body = {
            "query": {"bool": {"filter": [domain_ids_filter(partition.ids)]}},
            "size": 0,
            "aggs": domain_count_aggregations(visible, len(partition.ids)),
        }
        return AggregationRequest(index=self.documents_index, body=body)
