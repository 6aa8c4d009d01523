"""Catalog vocabulary: datatypes, index fields, query modes and scoring functions.

Field names here are the document and domain index mapping. Query and
aggregation builders never spell a field name inline.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


# Document index fields
DATATYPE_FIELD = "datatype"
DOMAIN_ID_FIELD = "socrata_id.domain_id"
DOMAIN_CNAME_FIELD = "socrata_id.domain_cname"
IS_CUSTOMER_DOMAIN_FIELD = "is_customer_domain"
IS_DEFAULT_VIEW_FIELD = "is_default_view"
MODERATION_STATUS_FIELD = "moderation_status"
APPROVING_DOMAIN_IDS_FIELD = "approving_domain_ids"
IS_APPROVED_BY_PARENT_DOMAIN_FIELD = "is_approved_by_parent_domain"
PAGE_VIEWS_TOTAL_FIELD = "page_views.page_views_total"

CATEGORIES_PATH = "animl_annotations.categories"
CATEGORIES_NAME_RAW_FIELD = "animl_annotations.categories.name.raw"
CATEGORIES_SCORE_FIELD = "animl_annotations.categories.score"
TAGS_PATH = "animl_annotations.tags"
TAGS_NAME_RAW_FIELD = "animl_annotations.tags.name.raw"
TAGS_SCORE_FIELD = "animl_annotations.tags.score"

DOMAIN_CATEGORY_RAW_FIELD = "customer_category.raw"
DOMAIN_TAGS_RAW_FIELD = "customer_tags.raw"
DOMAIN_METADATA_PATH = "customer_metadata_flattened"
DOMAIN_METADATA_KEY_RAW_FIELD = "customer_metadata_flattened.key.raw"
DOMAIN_METADATA_VALUE_RAW_FIELD = "customer_metadata_flattened.value.raw"

# Full-text fields searched by every query mode
FULL_TEXT_FIELDS = ("fts_analyzed", "fts_raw", "domain_cname")

# Domain index fields
DOMAIN_INDEX_ID_FIELD = "domain_id"
DOMAIN_INDEX_CNAME_RAW_FIELD = "domain_cname.raw"
DOMAIN_INDEX_IS_CUSTOMER_FIELD = "is_customer_domain"


class ModerationStatus(str, Enum):
    """Per-document approval state."""

    APPROVED = "approved"
    REJECTED = "rejected"
    PENDING = "pending"
    NOT_MODERATED = "not_moderated"


@dataclass(frozen=True)
class Datatype:
    """A user-facing datatype and the index datatype names it covers."""

    plural: str
    singular: str
    names: tuple[str, ...]

    @property
    def boost_param(self) -> str:
        """Query parameter that boosts this datatype, e.g. ``boostDatasets``."""
        return f"boost{self.plural.capitalize()}"


TYPE_CALENDARS = Datatype("calendars", "calendar", ("calendar",))
TYPE_CHARTS = Datatype("charts", "chart", ("chart", "datalens_chart"))
TYPE_DATALENSES = Datatype("datalenses", "datalens", ("datalens",))
TYPE_DATALENS_CHARTS = Datatype("datalens_charts", "datalens_chart", ("datalens_chart",))
TYPE_DATALENS_MAPS = Datatype("datalens_maps", "datalens_map", ("datalens_map",))
TYPE_DATASETS = Datatype("datasets", "dataset", ("dataset",))
TYPE_FILES = Datatype("files", "file", ("file",))
TYPE_FILTERS = Datatype("filters", "filter", ("filter",))
TYPE_FORMS = Datatype("forms", "form", ("form",))
TYPE_HREFS = Datatype("hrefs", "href", ("href",))
TYPE_LINKS = Datatype("links", "link", ("href",))
TYPE_MAPS = Datatype("maps", "map", ("datalens_map", "geo_map", "map", "tabular_map"))
TYPE_PULSES = Datatype("pulses", "pulse", ("pulse",))
TYPE_STORIES = Datatype("stories", "story", ("story",))
TYPE_TABULAR_MAPS = Datatype("tabular_maps", "tabular_map", ("tabular_map",))

DATATYPES: tuple[Datatype, ...] = (
    TYPE_CALENDARS,
    TYPE_CHARTS,
    TYPE_DATALENSES,
    TYPE_DATALENS_CHARTS,
    TYPE_DATALENS_MAPS,
    TYPE_DATASETS,
    TYPE_FILES,
    TYPE_FILTERS,
    TYPE_FORMS,
    TYPE_HREFS,
    TYPE_LINKS,
    TYPE_MAPS,
    TYPE_PULSES,
    TYPE_STORIES,
    TYPE_TABULAR_MAPS,
)

_DATATYPES_BY_NAME: dict[str, Datatype] = {}
for _datatype in DATATYPES:
    _DATATYPES_BY_NAME.setdefault(_datatype.plural, _datatype)
    _DATATYPES_BY_NAME.setdefault(_datatype.singular, _datatype)

_DATATYPES_BY_BOOST_PARAM = {datatype.boost_param: datatype for datatype in DATATYPES}


def datatype_from_name(name: str | None) -> Datatype | None:
    """Resolve a singular or plural datatype name; lookup is exact."""
    if not name:
        return None
    return _DATATYPES_BY_NAME.get(name)


def datatype_from_boost_param(param: str) -> Datatype | None:
    """Resolve a ``boost<Plural>`` parameter name; lookup is case-sensitive."""
    return _DATATYPES_BY_BOOST_PARAM.get(param)


class BoostableField(str, Enum):
    """Document fields that accept relevance boosts."""

    TITLE = "indexed_metadata.name"
    DESCRIPTION = "indexed_metadata.description"
    COLUMN_NAME = "indexed_metadata.columns_name"
    COLUMN_DESCRIPTION = "indexed_metadata.columns_description"
    COLUMN_FIELD_NAME = "indexed_metadata.columns_field_name"

    @property
    def field_name(self) -> str:
        return self.value


class CountableField(str, Enum):
    """Fields that documents can be counted by."""

    DOMAINS = "domains"
    CATEGORIES = "categories"
    TAGS = "tags"
    DOMAIN_CATEGORY = "domain_category"
    DOMAIN_TAGS = "domain_tags"

    @classmethod
    def from_path(cls, value: str) -> CountableField | None:
        try:
            return cls(value)
        except ValueError:
            return None


class ScriptScoreFunction(str, Enum):
    """Named scoring scripts applied through a function_score query."""

    VIEWS = "views"
    SCORE = "score"

    @property
    def script(self) -> str:
        if self is ScriptScoreFunction.VIEWS:
            return f"Math.log(2 + doc['{PAGE_VIEWS_TOTAL_FIELD}'].value)"
        return "_score"


@dataclass(frozen=True)
class NoQuery:
    """No query text; every visible document matches."""


@dataclass(frozen=True)
class SimpleQuery:
    """Free text matched across fields with a phrase relevance boost."""

    text: str


@dataclass(frozen=True)
class AdvancedQuery:
    """Structured query-string expression."""

    text: str


QueryType = NoQuery | SimpleQuery | AdvancedQuery

NO_QUERY = NoQuery()


__all__ = [
    "DATATYPES",
    "NO_QUERY",
    "AdvancedQuery",
    "BoostableField",
    "CountableField",
    "Datatype",
    "ModerationStatus",
    "NoQuery",
    "QueryType",
    "ScriptScoreFunction",
    "SimpleQuery",
    "datatype_from_boost_param",
    "datatype_from_name",
]
