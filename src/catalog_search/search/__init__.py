"""Index request construction.

Builders here produce :class:`SearchRequest` objects and never execute them.
"""

from .document_queries import DocumentQueryBuilder
from .domain_queries import DomainQueryBuilder
from .filters import CatalogFilterSet, ContextFilterSet, DocumentFilters, select_filter_set
from .requests import AggregationRequest, SearchRequest
from .sorts import choose_sort


__all__ = [
    "AggregationRequest",
    "CatalogFilterSet",
    "ContextFilterSet",
    "DocumentFilters",
    "DocumentQueryBuilder",
    "DomainQueryBuilder",
    "SearchRequest",
    "choose_sort",
    "select_filter_set",
]
