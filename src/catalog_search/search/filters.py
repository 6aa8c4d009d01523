"""Structural filters for document queries.

Every builder returns an index DSL clause or ``None`` when the filter does
not apply. The context-present and context-absent filter groups are the two
named variants :class:`ContextFilterSet` and :class:`CatalogFilterSet`;
:func:`select_filter_set` is the single branch between them.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from catalog_search.domain.model import Domain, DomainPartition
from catalog_search.domain.types import (
    APPROVING_DOMAIN_IDS_FIELD,
    CATEGORIES_NAME_RAW_FIELD,
    CATEGORIES_PATH,
    DATATYPE_FIELD,
    DOMAIN_CATEGORY_RAW_FIELD,
    DOMAIN_ID_FIELD,
    DOMAIN_METADATA_KEY_RAW_FIELD,
    DOMAIN_METADATA_PATH,
    DOMAIN_METADATA_VALUE_RAW_FIELD,
    DOMAIN_TAGS_RAW_FIELD,
    IS_APPROVED_BY_PARENT_DOMAIN_FIELD,
    IS_CUSTOMER_DOMAIN_FIELD,
    IS_DEFAULT_VIEW_FIELD,
    MODERATION_STATUS_FIELD,
    TAGS_NAME_RAW_FIELD,
    TAGS_PATH,
    ModerationStatus,
)


Clause = dict[str, Any]


def any_of(*clauses: Clause) -> Clause:
    return {"bool": {"should": list(clauses), "minimum_should_match": 1}}


def all_of(*clauses: Clause) -> Clause:
    return {"bool": {"filter": list(clauses)}}


def terms(field: str, values: Iterable[Any]) -> Clause:
    return {"terms": {field: sorted(values)}}


def term(field: str, value: Any) -> Clause:
    return {"term": {field: value}}


def datatype_filter(datatypes: Iterable[str] | None) -> Clause | None:
    if not datatypes:
        return None
    return terms(DATATYPE_FIELD, datatypes)


def domain_ids_filter(domain_ids: Iterable[int]) -> Clause:
    """Restrict documents to the given domains; an empty set matches nothing."""
    return terms(DOMAIN_ID_FIELD, domain_ids)


def customer_domain_filter() -> Clause:
    return term(IS_CUSTOMER_DOMAIN_FIELD, True)


def moderation_status_filter(context_moderated: bool) -> Clause:
    """Exclude documents whose moderation state conflicts with the context.

    A moderated context admits only default views and approved views. Any
    other request drops rejected and pending views.
    """
    if context_moderated:
        return any_of(
            term(IS_DEFAULT_VIEW_FIELD, True),
            term(MODERATION_STATUS_FIELD, ModerationStatus.APPROVED.value),
        )
    return {
        "bool": {
            "must_not": [
                terms(
                    MODERATION_STATUS_FIELD,
                    [ModerationStatus.REJECTED.value, ModerationStatus.PENDING.value],
                )
            ]
        }
    }


def routing_approval_filter(search_context: Domain | None) -> Clause | None:
    if search_context is None or not search_context.routing_approval_enabled:
        return None
    return term(APPROVING_DOMAIN_IDS_FIELD, search_context.domain_id)


def domain_visibility_filter(context_moderated: bool, partition: DomainPartition) -> Clause:
    """Per-domain moderation and routing visibility for aggregation buckets."""
    default_view = term(IS_DEFAULT_VIEW_FIELD, True)
    approved_on_moderated = all_of(
        domain_ids_filter(partition.moderated_ids),
        term(MODERATION_STATUS_FIELD, ModerationStatus.APPROVED.value),
    )
    if context_moderated:
        moderation = any_of(default_view, approved_on_moderated)
    else:
        moderation = any_of(default_view, domain_ids_filter(partition.unmoderated_ids), approved_on_moderated)

    routing = any_of(
        domain_ids_filter(partition.routing_approval_disabled_ids),
        term(IS_APPROVED_BY_PARENT_DOMAIN_FIELD, True),
    )
    return all_of(moderation, routing)


def categories_filter(categories: Iterable[str] | None) -> Clause | None:
    if not categories:
        return None
    return {"nested": {"path": CATEGORIES_PATH, "query": terms(CATEGORIES_NAME_RAW_FIELD, categories)}}


def tags_filter(tags: Iterable[str] | None) -> Clause | None:
    if not tags:
        return None
    return {"nested": {"path": TAGS_PATH, "query": terms(TAGS_NAME_RAW_FIELD, tags)}}


def domain_categories_filter(categories: Iterable[str] | None) -> Clause | None:
    if not categories:
        return None
    return terms(DOMAIN_CATEGORY_RAW_FIELD, categories)


def domain_tags_filter(tags: Iterable[str] | None) -> Clause | None:
    if not tags:
        return None
    return terms(DOMAIN_TAGS_RAW_FIELD, tags)


def domain_metadata_filter(pairs: Iterable[tuple[str, str]] | None) -> Clause | None:
    """Values of one key are alternatives; distinct keys must all match."""
    if not pairs:
        return None
    values_by_key: dict[str, set[str]] = defaultdict(set)
    for key, value in pairs:
        values_by_key[key].add(value)
    per_key = [
        {
            "nested": {
                "path": DOMAIN_METADATA_PATH,
                "query": all_of(
                    term(DOMAIN_METADATA_KEY_RAW_FIELD, key),
                    terms(DOMAIN_METADATA_VALUE_RAW_FIELD, values),
                ),
            }
        }
        for key, values in sorted(values_by_key.items())
    ]
    return per_key[0] if len(per_key) == 1 else all_of(*per_key)


def _present(*clauses: Clause | None) -> list[Clause]:
    return [clause for clause in clauses if clause is not None]


@dataclass(frozen=True)
class ContextFilterSet:
    """Filters scoped to one domain's own categories, tags and metadata schema."""

    categories: frozenset[str] | None = None
    tags: frozenset[str] | None = None
    domain_metadata: frozenset[tuple[str, str]] | None = None

    def clauses(self) -> list[Clause]:
        return _present(
            domain_categories_filter(self.categories),
            domain_tags_filter(self.tags),
            domain_metadata_filter(self.domain_metadata),
        )


@dataclass(frozen=True)
class CatalogFilterSet:
    """Catalog-wide categories and tags over customer domains only.

    Domain metadata has no meaning outside a single domain's schema, so
    this variant carries none.
    """

    categories: frozenset[str] | None = None
    tags: frozenset[str] | None = None

    def clauses(self) -> list[Clause]:
        return _present(
            customer_domain_filter(),
            categories_filter(self.categories),
            tags_filter(self.tags),
        )


FilterSet = ContextFilterSet | CatalogFilterSet


def select_filter_set(
    search_context: Domain | None,
    categories: frozenset[str] | None,
    tags: frozenset[str] | None,
    domain_metadata: frozenset[tuple[str, str]] | None,
) -> FilterSet:
    if search_context is not None:
        return ContextFilterSet(categories=categories, tags=tags, domain_metadata=domain_metadata)
    return CatalogFilterSet(categories=categories, tags=tags)


@dataclass(frozen=True)
class DocumentFilters:
    """User-facing filters shared by search and count requests."""

    categories: frozenset[str] | None = None
    tags: frozenset[str] | None = None
    domain_metadata: frozenset[tuple[str, str]] | None = None
    only: tuple[str, ...] | None = None


def compose_filters(
    domain_ids: Iterable[int],
    search_context: Domain | None,
    filters: DocumentFilters,
) -> list[Clause]:
    """All structural filters for a document request; they are AND-ed by the caller."""
    filter_set = select_filter_set(search_context, filters.categories, filters.tags, filters.domain_metadata)
    context_moderated = search_context is not None and search_context.moderation_enabled
    return [
        *_present(
            datatype_filter(filters.only),
            domain_ids_filter(domain_ids),
            moderation_status_filter(context_moderated),
            routing_approval_filter(search_context),
        ),
        *filter_set.clauses(),
    ]
