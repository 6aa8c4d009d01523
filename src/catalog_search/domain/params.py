"""Validated query parameters.

Built once per request by the parameter parser and immutable afterwards.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from catalog_search.domain.types import (
    NO_QUERY,
    AdvancedQuery,
    BoostableField,
    Datatype,
    NoQuery,
    ScriptScoreFunction,
    SimpleQuery,
)


class QueryParameters(BaseModel):
    """Strongly typed, internally consistent search parameters."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    search_query: NoQuery | SimpleQuery | AdvancedQuery = NO_QUERY
    domains: frozenset[str] | None = None
    search_context: str | None = None
    categories: frozenset[str] | None = None
    tags: frozenset[str] | None = None
    domain_metadata: frozenset[tuple[str, str]] | None = None
    only: tuple[str, ...] | None = None
    field_boosts: dict[BoostableField, float] = Field(default_factory=dict)
    datatype_boosts: dict[Datatype, float] = Field(default_factory=dict)
    domain_boosts: dict[str, float] = Field(default_factory=dict)
    min_should_match: str | None = None
    slop: int | None = None
    function_score_functions: tuple[ScriptScoreFunction, ...] = ()
    show_score: bool = False
    show_feature_vals: bool = False
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=100, gt=0)
