"""Request objects handed unmodified to the index."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import orjson


@dataclass(frozen=True)
class SearchRequest:
    """A structured index request: target index plus query DSL body.

    Builders produce these without executing them. ``body`` may carry a
    query, sort, pagination and aggregations.
    """

    index: str
    body: dict[str, Any] = field(default_factory=dict)

    @property
    def query(self) -> dict[str, Any]:
        return self.body.get("query", {"match_all": {}})

    @property
    def aggregations(self) -> dict[str, Any]:
        return self.body.get("aggs", {})

    def to_json(self) -> str:
        return orjson.dumps(self.body, option=orjson.OPT_SORT_KEYS).decode("utf-8")

    def describe(self) -> str:
        """One-line form used when logging index requests."""
        return f"index={self.index} body={self.to_json()}"


# Count, facet and domain-count requests share the search request shape.
AggregationRequest = SearchRequest
