"""Maps index hits and aggregation buckets to response records."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import re
from typing import Any

from catalog_search.adapters.index_client import IndexResponse
from catalog_search.domain.model import DomainSet
from catalog_search.domain.results import Count, FacetCount, SearchResult, ValueCount
from catalog_search.errors import DecodeFailure
from catalog_search.search.aggregations import (
    DOMAIN_COUNT_AGG,
    DOMAIN_VISIBLE_AGG,
    FACET_FILTER_AGG,
    CountAggregation,
)


logger = logging.getLogger(__name__)

_DATALENS_DATATYPES = frozenset({"datalens", "datalens_chart", "datalens_map"})
_NON_WORD = re.compile(r"\W+")
SEO_SEGMENT_LENGTH = 50


def _seo_segment(text: str | None, default: str) -> str:
    if not text or not text.strip():
        return default
    return _NON_WORD.sub("-", text)[:SEO_SEGMENT_LENGTH]


def links(
    cname: str,
    datatype: str | None,
    viewtype: str | None,
    dataset_id: str,
    category: str | None,
    name: str | None,
) -> dict[str, str]:
    """Permalink and human-readable link for one catalog document."""
    base = f"https://{cname}"
    if datatype == "story":
        story = f"{base}/stories/s/{dataset_id}"
        return {"permalink": story, "link": story}

    perma = "view" if datatype in _DATALENS_DATATYPES or viewtype == "datalens" else "d"
    category_segment = _seo_segment(category, "dataset")
    name_segment = _seo_segment(name, "-")
    return {
        "permalink": f"{base}/{perma}/{dataset_id}",
        "link": f"{base}/{category_segment}/{name_segment}/{dataset_id}",
    }


def _domain_cname(socrata_id: Mapping[str, Any]) -> str | None:
    cname = socrata_id.get("domain_cname")
    if isinstance(cname, list):
        # Federated documents list their origin last
        return cname[-1] if cname else None
    return cname


def _names(annotations: Any) -> list[Any]:
    return [item.get("name") for item in annotations or [] if isinstance(item, Mapping)]


def _classification(source: Mapping[str, Any]) -> dict[str, Any]:
    annotations = source.get("animl_annotations") or {}
    return {
        "categories": _names(annotations.get("categories")),
        "tags": _names(annotations.get("tags")),
        "domain_category": source.get("customer_category"),
        "domain_tags": source.get("customer_tags"),
        "domain_metadata": source.get("customer_metadata_flattened"),
    }


def format_hit(hit: Mapping[str, Any], *, show_score: bool, show_feature_vals: bool) -> SearchResult:
    """Build one result; raises DecodeFailure when the hit lacks required fields."""
    source = hit.get("_source")
    if not isinstance(source, Mapping):
        raise DecodeFailure("hit without source document")
    resource = source.get("resource")
    socrata_id = source.get("socrata_id")
    if not isinstance(resource, Mapping) or not isinstance(socrata_id, Mapping):
        raise DecodeFailure("hit without resource or socrata_id")

    cname = _domain_cname(socrata_id)
    dataset_id = resource.get("id") or socrata_id.get("dataset_id")
    if not cname or not dataset_id:
        raise DecodeFailure("hit without domain cname or dataset id")

    metadata: dict[str, Any] = {"domain": cname}
    if show_score:
        metadata["score"] = hit.get("_score")
    if show_feature_vals:
        metadata["page_views"] = source.get("page_views")
        metadata["update_freq"] = source.get("update_freq")

    urls = links(
        cname,
        source.get("datatype"),
        source.get("viewtype"),
        str(dataset_id),
        source.get("customer_category"),
        resource.get("name"),
    )
    return SearchResult(
        resource=dict(resource),
        classification=_classification(source),
        metadata=metadata,
        permalink=urls["permalink"],
        link=urls["link"],
    )


def format_hits(response: IndexResponse, *, show_score: bool, show_feature_vals: bool) -> list[SearchResult]:
    """Format every well-formed hit; malformed hits are logged and omitted."""
    results: list[SearchResult] = []
    for hit in response.hits:
        try:
            results.append(format_hit(hit, show_score=show_score, show_feature_vals=show_feature_vals))
        except DecodeFailure as exc:
            logger.error("Dropping malformed hit %s: %s", hit.get("_id"), exc, extra={"hit": dict(hit)})
    return results


def _dig(aggregations: Mapping[str, Any], path: Sequence[str]) -> Mapping[str, Any]:
    node: Any = aggregations
    for key in path:
        if not isinstance(node, Mapping) or key not in node:
            logger.error("Aggregation path %s missing from response: %s", "/".join(path), aggregations)
            raise DecodeFailure(f"aggregation {'/'.join(path)} missing")
        node = node[key]
    if not isinstance(node, Mapping):
        raise DecodeFailure(f"aggregation {'/'.join(path)} is not an object")
    return node


def _buckets(node: Mapping[str, Any]) -> list[Mapping[str, Any]]:
    buckets = node.get("buckets")
    if not isinstance(buckets, list):
        raise DecodeFailure("aggregation without buckets")
    return buckets


def _value_counts(node: Mapping[str, Any], *, drop_blank: bool = True) -> list[ValueCount]:
    counts = [ValueCount(value=str(bucket["key"]), count=int(bucket["doc_count"])) for bucket in _buckets(node)]
    if drop_blank:
        counts = [count for count in counts if count.value]
    return counts


def format_counts(response: IndexResponse, aggregation: CountAggregation) -> list[Count]:
    node = _dig(response.aggregations, aggregation.bucket_path)
    try:
        return [Count(value=str(bucket["key"]), count=int(bucket["doc_count"])) for bucket in _buckets(node)]
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeFailure(f"malformed count bucket: {exc}") from exc


def format_facets(response: IndexResponse) -> list[FacetCount]:
    """Datatype, category and tag facets, then one facet per metadata key."""
    scoped = _dig(response.aggregations, (FACET_FILTER_AGG,))
    try:
        facets: list[FacetCount] = []
        for facet in ("datatypes", "categories", "tags"):
            values = _value_counts(_dig(scoped, (facet,)))
            facets.append(FacetCount(facet=facet, count=sum(value.count for value in values), values=values))

        for key_bucket in _buckets(_dig(scoped, ("metadata", "keys"))):
            values = _value_counts(_dig(key_bucket, ("values",)), drop_blank=False)
            facets.append(FacetCount(facet=str(key_bucket["key"]), count=int(key_bucket["doc_count"]), values=values))
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeFailure(f"malformed facet bucket: {exc}") from exc
    return facets


def format_domain_counts(response: IndexResponse, domain_set: DomainSet) -> list[Count]:
    """Visible document count for every domain of the set, zero when absent."""
    visible_by_id: dict[int, int] = {}
    try:
        for bucket in _buckets(_dig(response.aggregations, (DOMAIN_COUNT_AGG,))):
            visible = bucket.get(DOMAIN_VISIBLE_AGG) or {}
            visible_by_id[int(bucket["key"])] = int(visible.get("doc_count", 0))
    except (KeyError, TypeError, ValueError) as exc:
        raise DecodeFailure(f"malformed domain bucket: {exc}") from exc

    counts = [
        Count(value=domain.domain_cname, count=visible_by_id.get(domain.domain_id, 0)) for domain in domain_set.domains
    ]
    return sorted(counts, key=lambda count: (-count.count, count.value))
