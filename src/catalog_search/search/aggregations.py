"""Aggregation bodies for count, facet and domain-count requests."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from catalog_search.domain.types import (
    CATEGORIES_NAME_RAW_FIELD,
    CATEGORIES_PATH,
    DATATYPE_FIELD,
    DOMAIN_CATEGORY_RAW_FIELD,
    DOMAIN_CNAME_FIELD,
    DOMAIN_ID_FIELD,
    DOMAIN_METADATA_KEY_RAW_FIELD,
    DOMAIN_METADATA_PATH,
    DOMAIN_METADATA_VALUE_RAW_FIELD,
    DOMAIN_TAGS_RAW_FIELD,
    TAGS_NAME_RAW_FIELD,
    TAGS_PATH,
    CountableField,
)


# Upper bound on buckets per terms aggregation
BUCKET_LIMIT = 10000

FACET_FILTER_AGG = "domain_filter"
DOMAIN_COUNT_AGG = "domains"
DOMAIN_VISIBLE_AGG = "visible"


def terms_agg(field: str, *, size: int = BUCKET_LIMIT, **sub_aggs: dict[str, Any]) -> dict[str, Any]:
    agg: dict[str, Any] = {"terms": {"field": field, "size": size, "order": {"_count": "desc"}}}
    if sub_aggs:
        agg["aggs"] = sub_aggs
    return agg


def nested_agg(path: str, **sub_aggs: dict[str, Any]) -> dict[str, Any]:
    return {"nested": {"path": path}, "aggs": sub_aggs}


@dataclass(frozen=True)
class CountAggregation:
    """A named aggregation plus the path to its terms buckets in the response."""

    name: str
    body: dict[str, Any]
    bucket_path: tuple[str, ...]

    def as_aggs(self) -> dict[str, Any]:
        return {self.name: self.body}


_COUNT_AGGREGATIONS: dict[CountableField, CountAggregation] = {
    CountableField.DOMAINS: CountAggregation(
        name="domains",
        body=terms_agg(DOMAIN_CNAME_FIELD),
        bucket_path=("domains",),
    ),
    CountableField.CATEGORIES: CountAggregation(
        name="annotations",
        body=nested_agg(CATEGORIES_PATH, names=terms_agg(CATEGORIES_NAME_RAW_FIELD)),
        bucket_path=("annotations", "names"),
    ),
    CountableField.TAGS: CountAggregation(
        name="annotations",
        body=nested_agg(TAGS_PATH, names=terms_agg(TAGS_NAME_RAW_FIELD)),
        bucket_path=("annotations", "names"),
    ),
    CountableField.DOMAIN_CATEGORY: CountAggregation(
        name="categories",
        body=terms_agg(DOMAIN_CATEGORY_RAW_FIELD),
        bucket_path=("categories",),
    ),
    CountableField.DOMAIN_TAGS: CountAggregation(
        name="tags",
        body=terms_agg(DOMAIN_TAGS_RAW_FIELD),
        bucket_path=("tags",),
    ),
}


def choose_aggregation(field: CountableField) -> CountAggregation:
    return _COUNT_AGGREGATIONS[field]


def facet_aggregations(visibility_filter: dict[str, Any]) -> dict[str, Any]:
    """Fixed facet set, nested under one filter aggregation scoped to a domain."""
    return {
        FACET_FILTER_AGG: {
            "filter": visibility_filter,
            "aggs": {
                "datatypes": terms_agg(DATATYPE_FIELD),
                "categories": terms_agg(DOMAIN_CATEGORY_RAW_FIELD),
                "tags": terms_agg(DOMAIN_TAGS_RAW_FIELD),
                "metadata": nested_agg(
                    DOMAIN_METADATA_PATH,
                    keys=terms_agg(
                        DOMAIN_METADATA_KEY_RAW_FIELD,
                        values=terms_agg(DOMAIN_METADATA_VALUE_RAW_FIELD),
                    ),
                ),
            },
        }
    }


def domain_count_aggregations(visible_filter: dict[str, Any], domain_count: int) -> dict[str, Any]:
    """Documents per domain id, with a sub-count of those visible in results."""
    return {
        DOMAIN_COUNT_AGG: terms_agg(
            DOMAIN_ID_FIELD,
            size=max(domain_count, 1),
            **{DOMAIN_VISIBLE_AGG: {"filter": visible_filter}},
        )
    }
