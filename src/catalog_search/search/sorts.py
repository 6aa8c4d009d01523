"""Sort selection for search requests.

Precedence, first match wins:

1. a query is present -> relevance (``_score`` descending)
2. no context and category filters -> average category score
3. no context and tag filters -> average tag score
4. otherwise -> total page views descending
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from catalog_search.domain.model import Domain
from catalog_search.domain.types import (
    CATEGORIES_NAME_RAW_FIELD,
    CATEGORIES_PATH,
    CATEGORIES_SCORE_FIELD,
    PAGE_VIEWS_TOTAL_FIELD,
    TAGS_NAME_RAW_FIELD,
    TAGS_PATH,
    TAGS_SCORE_FIELD,
    NoQuery,
    QueryType,
)


Sort = dict[str, Any]

SORT_BY_SCORE: Sort = {"_score": {"order": "desc"}}
SORT_BY_PAGE_VIEWS: Sort = {PAGE_VIEWS_TOTAL_FIELD: {"order": "desc", "missing": "_last"}}


def _average_nested_score(score_field: str, path: str, name_field: str, names: Iterable[str]) -> Sort:
    return {
        score_field: {
            "order": "desc",
            "mode": "avg",
            "nested": {"path": path, "filter": {"terms": {name_field: sorted(names)}}},
        }
    }


def sort_by_average_category_score(categories: Iterable[str]) -> Sort:
    return _average_nested_score(CATEGORIES_SCORE_FIELD, CATEGORIES_PATH, CATEGORIES_NAME_RAW_FIELD, categories)


def sort_by_average_tag_score(tags: Iterable[str]) -> Sort:
    return _average_nested_score(TAGS_SCORE_FIELD, TAGS_PATH, TAGS_NAME_RAW_FIELD, tags)


def choose_sort(
    search_query: QueryType,
    search_context: Domain | None,
    categories: frozenset[str] | None,
    tags: frozenset[str] | None,
) -> Sort:
    if not isinstance(search_query, NoQuery):
        return SORT_BY_SCORE
    if search_context is None and categories:
        return sort_by_average_category_score(categories)
    if search_context is None and tags:
        return sort_by_average_tag_score(tags)
    return SORT_BY_PAGE_VIEWS
