"""Domain layer - catalog vocabulary, domain records and request parameters.

Nothing in this package talks to the index or the identity service:
- Value objects: datatypes, query modes, boostable and countable fields
- Entities: ``Domain`` snapshots and the per-request ``DomainSet``
- Validated ``QueryParameters`` and response records
"""

from catalog_search.domain.model import (
    Domain,
    DomainPartition,
    DomainSet,
    RoleGrant,
    UserIdentity,
    VisibilityDecision,
)
from catalog_search.domain.params import QueryParameters
from catalog_search.domain.results import (
    Count,
    FacetCount,
    InternalTimings,
    SearchResult,
    SearchResults,
    ValueCount,
)


__all__ = [
    "Count",
    "Domain",
    "DomainPartition",
    "DomainSet",
    "FacetCount",
    "InternalTimings",
    "QueryParameters",
    "RoleGrant",
    "SearchResult",
    "SearchResults",
    "UserIdentity",
    "ValueCount",
    "VisibilityDecision",
]
