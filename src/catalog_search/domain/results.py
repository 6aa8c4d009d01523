"""Response records produced by the result formatter.

Serialized with ``model_dump(by_alias=True)`` so the wire names stay
camel-cased where clients expect them.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SearchResult(BaseModel):
    """One catalog document as returned to clients."""

    model_config = ConfigDict(frozen=True)

    resource: dict[str, Any]
    classification: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    permalink: str
    link: str


class Count(BaseModel):
    """Documents per value of a countable field."""

    model_config = ConfigDict(frozen=True)

    value: str
    count: int = Field(ge=0)


class ValueCount(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str
    count: int = Field(ge=0)


class FacetCount(BaseModel):
    """A facet, its total, and the per-value counts; zero counts are valid."""

    model_config = ConfigDict(frozen=True)

    facet: str
    count: int = Field(ge=0)
    values: list[ValueCount] = Field(default_factory=list)


class InternalTimings(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    service_millis: int = Field(ge=0, serialization_alias="serviceMillis")
    search_millis: list[int] = Field(default_factory=list, serialization_alias="searchMillis")


class SearchResults(BaseModel):
    """Envelope for search and count responses."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    results: list[SearchResult] | list[Count]
    result_set_size: int | None = Field(default=None, serialization_alias="resultSetSize")
    timings: InternalTimings | None = None
