"""Query and aggregation request construction for the document index.

:class:`DocumentQueryBuilder` turns validated parameters plus a resolved
:class:`DomainSet` into :class:`SearchRequest` objects. Nothing here talks
to the index; the requests are handed to an index client unmodified.

Simple queries combine a required cross-field term match with optional
phrase, datatype and domain relevance clauses. Advanced queries are raw
query-string expressions and honor field boosts only.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from catalog_search.config import Settings
from catalog_search.domain.model import Domain, DomainSet
from catalog_search.domain.params import QueryParameters
from catalog_search.domain.types import (
    FULL_TEXT_FIELDS,
    AdvancedQuery,
    BoostableField,
    CountableField,
    Datatype,
    QueryType,
    ScriptScoreFunction,
    SimpleQuery,
)
from catalog_search.search.aggregations import choose_aggregation, facet_aggregations
from catalog_search.search.boosts import boost_datatypes, boost_domains, merge_boosts
from catalog_search.search.filters import (
    DocumentFilters,
    all_of,
    compose_filters,
    domain_ids_filter,
    domain_visibility_filter,
)
from catalog_search.search.requests import AggregationRequest, SearchRequest
from catalog_search.search.sorts import choose_sort


def _field_list(base: Sequence[str], field_boosts: Mapping[BoostableField, float]) -> list[str]:
    boosted = [f"{field.field_name}^{weight:g}" for field, weight in sorted(field_boosts.items())]
    return [*base, *boosted]


def _filters_from(params: QueryParameters) -> DocumentFilters:
    return DocumentFilters(
        categories=params.categories,
        tags=params.tags,
        domain_metadata=params.domain_metadata,
        only=params.only,
    )


class DocumentQueryBuilder:
    """Builds search, count and facet requests against the document index."""

    def __init__(
        self,
        index: str,
        *,
        default_title_boost: float | None = None,
        default_datatype_boosts: Mapping[Datatype, float] | None = None,
        default_min_should_match: str | None = None,
        script_score_functions: Sequence[ScriptScoreFunction] = (),
    ):
        self.index = index
        self.default_title_boost = default_title_boost
        self.default_datatype_boosts = dict(default_datatype_boosts or {})
        self.default_min_should_match = default_min_should_match
        self.script_score_functions = tuple(script_score_functions)

    @classmethod
    def from_settings(cls, settings: Settings) -> DocumentQueryBuilder:
        return cls(
            settings.documents_index,
            default_title_boost=settings.default_title_boost,
            default_datatype_boosts=settings.get_default_datatype_boosts(),
            default_min_should_match=settings.default_min_should_match,
            script_score_functions=settings.script_score_functions,
        )

    # Relevance defaults

    def apply_default_title_boost(self, field_boosts: Mapping[BoostableField, float]) -> dict[BoostableField, float]:
        if self.default_title_boost is None:
            return dict(field_boosts)
        return merge_boosts({BoostableField.TITLE: self.default_title_boost}, field_boosts)

    def apply_default_datatype_boosts(self, datatype_boosts: Mapping[Datatype, float]) -> dict[Datatype, float]:
        return merge_boosts(self.default_datatype_boosts, datatype_boosts)

    def apply_min_should_match(self, min_should_match: str | None, search_context: Domain | None) -> str | None:
        """Explicit value, else the configured default under a context, else none."""
        if min_should_match is not None:
            return min_should_match
        if search_context is not None:
            return self.default_min_should_match
        return None

    # Match queries

    def generate_simple_query(
        self,
        text: str,
        field_boosts: Mapping[BoostableField, float],
        datatype_boosts: Mapping[Datatype, float],
        domain_id_boosts: Mapping[int, float],
        min_should_match: str | None,
        slop: int | None,
    ) -> dict[str, Any]:
        # The phrase clause only adds relevance; a document matches on the term clause alone
        match_terms: dict[str, Any] = {"query": text, "fields": list(FULL_TEXT_FIELDS), "type": "cross_fields"}
        if min_should_match is not None:
            match_terms["minimum_should_match"] = min_should_match

        match_phrase: dict[str, Any] = {
            "query": text,
            "fields": _field_list(FULL_TEXT_FIELDS, field_boosts),
            "type": "phrase",
        }
        if slop is not None:
            match_phrase["slop"] = slop

        should: list[dict[str, Any]] = [{"multi_match": match_phrase}]
        datatype_clause = boost_datatypes(datatype_boosts)
        if datatype_clause is not None:
            should.append(datatype_clause)
        domain_clause = boost_domains(domain_id_boosts)
        if domain_clause is not None:
            should.append(domain_clause)

        return {"bool": {"must": [{"multi_match": match_terms}], "should": should}}

    def generate_advanced_query(self, text: str, field_boosts: Mapping[BoostableField, float]) -> dict[str, Any]:
        return {
            "query_string": {
                "query": text,
                "fields": _field_list(FULL_TEXT_FIELDS, field_boosts),
                "auto_generate_phrase_queries": True,
            }
        }

    def match_query(self, params: QueryParameters, domain_set: DomainSet, *, boosted: bool = True) -> dict[str, Any]:
        search_query: QueryType = params.search_query
        if isinstance(search_query, AdvancedQuery):
            return self.generate_advanced_query(search_query.text, params.field_boosts if boosted else {})
        if isinstance(search_query, SimpleQuery):
            if not boosted:
                min_should_match = self.apply_min_should_match(None, domain_set.search_context)
                return self.generate_simple_query(search_query.text, {}, {}, {}, min_should_match, None)
            return self.generate_simple_query(
                search_query.text,
                self.apply_default_title_boost(params.field_boosts),
                self.apply_default_datatype_boosts(params.datatype_boosts),
                domain_set.domain_id_boosts(params.domain_boosts),
                self.apply_min_should_match(params.min_should_match, domain_set.search_context),
                params.slop,
            )
        return {"match_all": {}}

    def apply_scoring_functions(
        self, query: dict[str, Any], functions: Sequence[ScriptScoreFunction] = ()
    ) -> dict[str, Any]:
        chosen = tuple(functions) or self.script_score_functions
        if not chosen:
            return query
        return {
            "function_score": {
                "query": query,
                "functions": [{"script_score": {"script": {"source": fn.script}}} for fn in chosen],
                "score_mode": "multiply",
                "boost_mode": "replace",
            }
        }

    # Requests

    def build_base_query(self, query: dict[str, Any], domain_set: DomainSet, filters: DocumentFilters) -> dict[str, Any]:
        clauses = compose_filters(domain_set.domain_ids, domain_set.search_context, filters)
        return {"bool": {"must": [query], "filter": clauses}}

    def build_search_request(self, params: QueryParameters, domain_set: DomainSet) -> SearchRequest:
        """Scored, sorted and paginated search over the visible domains."""
        query = self.apply_scoring_functions(self.match_query(params, domain_set), params.function_score_functions)
        sort = choose_sort(params.search_query, domain_set.search_context, params.categories, params.tags)
        body = {
            "query": self.build_base_query(query, domain_set, _filters_from(params)),
            "sort": [sort],
            "from": params.offset,
            "size": params.limit,
        }
        return SearchRequest(index=self.index, body=body)

    def build_count_request(
        self, field: CountableField, params: QueryParameters, domain_set: DomainSet
    ) -> AggregationRequest:
        """Document counts grouped by ``field``; no boosts, sort or pagination."""
        aggregation = choose_aggregation(field)
        query = self.match_query(params, domain_set, boosted=False)
        body = {
            "query": self.build_base_query(query, domain_set, _filters_from(params)),
            "size": 0,
            "aggs": aggregation.as_aggs(),
        }
        return AggregationRequest(index=self.index, body=body)

    def build_facet_request(self, domain: Domain) -> AggregationRequest:
        """Datatype, category, tag and metadata facets for one domain's visible documents."""
        partition = DomainSet.of([domain]).partition()
        visibility = all_of(
            domain_ids_filter(partition.ids),
            domain_visibility_filter(domain.moderation_enabled, partition),
        )
        return AggregationRequest(index=self.index, body={"size": 0, "aggs": facet_aggregations(visibility)})
