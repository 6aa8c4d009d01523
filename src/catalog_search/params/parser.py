"""Query parameter validation.

Turns raw multi-valued query parameters into a :class:`QueryParameters`.
Validation is synchronous and makes no external calls; every offending
parameter is reported, not just the first.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import logging
import re

from catalog_search.domain.params import QueryParameters
from catalog_search.domain.types import (
    DATATYPES,
    NO_QUERY,
    AdvancedQuery,
    BoostableField,
    Datatype,
    QueryType,
    ScriptScoreFunction,
    SimpleQuery,
    datatype_from_boost_param,
    datatype_from_name,
)
from catalog_search.errors import InvalidQueryParameters, ParamError


logger = logging.getLogger(__name__)

RawParams = Mapping[str, Sequence[str]]


class Params:
    """Recognised query parameter names."""

    CONTEXT = "search_context"
    FILTER_DOMAINS = "domains"
    FILTER_CATEGORIES = "categories"
    FILTER_CATEGORIES_ARRAY = "categories[]"
    FILTER_TAGS = "tags"
    FILTER_TAGS_ARRAY = "tags[]"
    FILTER_TYPE = "only"
    QUERY_SIMPLE = "q"
    QUERY_ADVANCED = "q_internal"
    BOOST_COLUMNS = "boostColumns"
    BOOST_DESCRIPTION = "boostDesc"
    BOOST_TITLE = "boostTitle"
    BOOST_DOMAINS = "boostDomains"
    MIN_SHOULD_MATCH = "min_should_match"
    SLOP = "slop"
    FUNCTION_SCORE = "function_score"
    SHOW_SCORE = "show_score"
    SHOW_FEATURE_VALS = "show_feature_vals"
    OFFSET = "offset"
    LIMIT = "limit"

    FIELD_BOOSTS: dict[str, tuple[BoostableField, ...]] = {
        BOOST_COLUMNS: (
            BoostableField.COLUMN_NAME,
            BoostableField.COLUMN_DESCRIPTION,
            BoostableField.COLUMN_FIELD_NAME,
        ),
        BOOST_DESCRIPTION: (BoostableField.DESCRIPTION,),
        BOOST_TITLE: (BoostableField.TITLE,),
    }

    KNOWN: frozenset[str] = frozenset(
        {
            CONTEXT,
            FILTER_DOMAINS,
            FILTER_CATEGORIES,
            FILTER_CATEGORIES_ARRAY,
            FILTER_TAGS,
            FILTER_TAGS_ARRAY,
            FILTER_TYPE,
            QUERY_SIMPLE,
            QUERY_ADVANCED,
            BOOST_COLUMNS,
            BOOST_DESCRIPTION,
            BOOST_TITLE,
            MIN_SHOULD_MATCH,
            SLOP,
            FUNCTION_SCORE,
            SHOW_SCORE,
            SHOW_FEATURE_VALS,
            OFFSET,
            LIMIT,
        }
        | {datatype.boost_param for datatype in DATATYPES}
    )

    @staticmethod
    def datatype_boost_param(param: str) -> Datatype | None:
        return datatype_from_boost_param(param)

    @staticmethod
    def is_domain_boost_param(param: str) -> bool:
        return param.startswith(f"{Params.BOOST_DOMAINS}[")

    @staticmethod
    def remaining(raw: RawParams) -> dict[str, list[str]]:
        """Parameters that are not recognised and so count as domain metadata."""
        return {
            key: list(values)
            for key, values in raw.items()
            if key not in Params.KNOWN and not Params.is_domain_boost_param(key)
        }


_DOMAIN_BOOST_PATTERN = re.compile(r"^boostDomains\[(.+)\]$")
_TRUE_VALUES = frozenset({"", "true", "1"})
_FALSE_VALUES = frozenset({"false", "0"})


def _first(raw: RawParams, key: str) -> str | None:
    values = raw.get(key) or ()
    return values[0] if values else None


def _values(raw: RawParams, *keys: str) -> list[str]:
    collected: list[str] = []
    for key in keys:
        collected.extend(value for value in raw.get(key) or () if value and value.strip())
    return collected


def restrict_param_filter_type(value: str | None) -> tuple[str, ...] | None:
    """Resolve the ``only`` parameter to index datatype names.

    Raises:
        ValueError: when more than one selection is given or the name is unknown
    """
    if value is None or not value.strip():
        return None
    selections = [part.strip() for part in value.split(",") if part.strip()]
    if len(selections) > 1:
        raise ValueError(f"only one datatype may be selected, got '{value}'")
    datatype = datatype_from_name(selections[0])
    if datatype is None:
        allowed = ", ".join(sorted({d.plural for d in DATATYPES}))
        raise ValueError(f"'{selections[0]}' is not a datatype; expected one of {allowed}")
    return datatype.names


class _Collector:
    """Accumulates itemized parameter errors."""

    def __init__(self) -> None:
        self.errors: list[ParamError] = []

    def add(self, param: str, message: str) -> None:
        self.errors.append(ParamError(param, message))

    def positive_float(self, param: str, value: str) -> float | None:
        try:
            parsed = float(value)
        except ValueError:
            self.add(param, f"'{value}' is not a number")
            return None
        if parsed <= 0:
            self.add(param, f"weight must be greater than 0, got {value}")
            return None
        return parsed

    def integer(self, param: str, value: str | None, *, minimum: int) -> int | None:
        if value is None or value == "":
            return None
        try:
            parsed = int(value)
        except ValueError:
            self.add(param, f"'{value}' is not an integer")
            return None
        if parsed < minimum:
            self.add(param, f"must be at least {minimum}, got {parsed}")
            return None
        return parsed

    def flag(self, raw: RawParams, param: str) -> bool:
        if param not in raw:
            return False
        value = (_first(raw, param) or "").strip().lower()
        if value in _TRUE_VALUES:
            return True
        if value in _FALSE_VALUES:
            return False
        self.add(param, f"'{value}' is not a boolean")
        return False


def _search_query(raw: RawParams) -> QueryType:
    advanced = _first(raw, Params.QUERY_ADVANCED)
    if advanced and advanced.strip():
        return AdvancedQuery(advanced)
    simple = _first(raw, Params.QUERY_SIMPLE)
    if simple and simple.strip():
        return SimpleQuery(simple)
    return NO_QUERY


def _domain_boosts(raw: RawParams, collector: _Collector) -> dict[str, float]:
    boosts: dict[str, float] = {}
    for key, values in raw.items():
        match = _DOMAIN_BOOST_PATTERN.match(key)
        if match is None:
            continue
        # Missing or repeated values are ignored rather than rejected
        if len(values) != 1:
            continue
        weight = collector.positive_float(key, values[0])
        if weight is not None:
            boosts[match.group(1).strip().lower()] = weight
    return boosts


def parse_query_parameters(
    raw: RawParams,
    *,
    default_limit: int = 100,
    max_limit: int = 10000,
) -> QueryParameters:
    """Validate raw query parameters.

    Args:
        raw: Parameter name to every value supplied for it
        default_limit: Page size when ``limit`` is absent
        max_limit: Upper bound applied to ``limit``

    Returns:
        Immutable QueryParameters

    Raises:
        InvalidQueryParameters: itemized per offending parameter
    """
    collector = _Collector()

    only: tuple[str, ...] | None = None
    try:
        only_values = _values(raw, Params.FILTER_TYPE)
        if len(only_values) > 1:
            raise ValueError("only one datatype may be selected")
        only = restrict_param_filter_type(only_values[0] if only_values else None)
    except ValueError as exc:
        collector.add(Params.FILTER_TYPE, str(exc))

    field_boosts: dict[BoostableField, float] = {}
    for param, fields in Params.FIELD_BOOSTS.items():
        value = _first(raw, param)
        if value is None or value == "":
            continue
        weight = collector.positive_float(param, value)
        if weight is not None:
            field_boosts.update({field: weight for field in fields})

    datatype_boosts: dict[Datatype, float] = {}
    for key in raw:
        datatype = Params.datatype_boost_param(key)
        value = _first(raw, key)
        if datatype is None or value is None or value == "":
            continue
        weight = collector.positive_float(key, value)
        if weight is not None:
            datatype_boosts[datatype] = weight

    functions: list[ScriptScoreFunction] = []
    for name in _values(raw, Params.FUNCTION_SCORE):
        try:
            functions.append(ScriptScoreFunction(name.strip()))
        except ValueError:
            collector.add(Params.FUNCTION_SCORE, f"'{name}' is not a scoring function")

    domains = frozenset(
        cname.strip().lower()
        for value in _values(raw, Params.FILTER_DOMAINS)
        for cname in value.split(",")
        if cname.strip()
    )
    categories = frozenset(_values(raw, Params.FILTER_CATEGORIES, Params.FILTER_CATEGORIES_ARRAY))
    tags = frozenset(tag.lower() for tag in _values(raw, Params.FILTER_TAGS, Params.FILTER_TAGS_ARRAY))
    metadata = frozenset(
        (key, value) for key, values in Params.remaining(raw).items() if key.strip() for value in values if value
    )

    context = (_first(raw, Params.CONTEXT) or "").strip().lower() or None
    min_should_match = (_first(raw, Params.MIN_SHOULD_MATCH) or "").strip() or None

    offset = collector.integer(Params.OFFSET, _first(raw, Params.OFFSET), minimum=0)
    limit = collector.integer(Params.LIMIT, _first(raw, Params.LIMIT), minimum=1)
    slop = collector.integer(Params.SLOP, _first(raw, Params.SLOP), minimum=0)
    show_score = collector.flag(raw, Params.SHOW_SCORE)
    show_feature_vals = collector.flag(raw, Params.SHOW_FEATURE_VALS)
    domain_boosts = _domain_boosts(raw, collector)

    if collector.errors:
        logger.info("Rejected query parameters: %s", "; ".join(str(error) for error in collector.errors))
        raise InvalidQueryParameters(collector.errors)

    return QueryParameters(
        search_query=_search_query(raw),
        domains=domains or None,
        search_context=context,
        categories=categories or None,
        tags=tags or None,
        domain_metadata=metadata or None,
        only=only,
        field_boosts=field_boosts,
        datatype_boosts=datatype_boosts,
        domain_boosts=domain_boosts,
        min_should_match=min_should_match,
        slop=slop,
        function_score_functions=tuple(functions),
        show_score=show_score,
        show_feature_vals=show_feature_vals,
        offset=offset if offset is not None else 0,
        limit=min(limit, max_limit) if limit is not None else default_limit,
    )
