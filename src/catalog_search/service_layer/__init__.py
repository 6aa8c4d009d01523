"""Service layer - visibility resolution, orchestration and formatting."""

from .services import (
    CountService,
    DomainCountService,
    FacetService,
    RequestContext,
    SearchService,
)
from .visibility import DomainVisibilityResolver


__all__ = [
    "CountService",
    "DomainCountService",
    "DomainVisibilityResolver",
    "FacetService",
    "RequestContext",
    "SearchService",
]
