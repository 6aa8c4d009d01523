"""Relevance boost clauses for simple queries."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from catalog_search.domain.types import DATATYPE_FIELD, DOMAIN_ID_FIELD, Datatype


def boost_datatypes(datatype_boosts: Mapping[Datatype, float]) -> dict[str, Any] | None:
    """One weighted term clause per index datatype name.

    A name covered by several boosted datatypes keeps the largest weight.
    """
    weights: dict[str, float] = {}
    for datatype, weight in datatype_boosts.items():
        for name in datatype.names:
            weights[name] = max(weight, weights.get(name, weight))
    if not weights:
        return None
    return {
        "bool": {
            "should": [
                {"term": {DATATYPE_FIELD: {"value": name, "boost": weight}}}
                for name, weight in sorted(weights.items())
            ]
        }
    }


def boost_domains(domain_id_boosts: Mapping[int, float]) -> dict[str, Any] | None:
    if not domain_id_boosts:
        return None
    return {
        "bool": {
            "should": [
                {"term": {DOMAIN_ID_FIELD: {"value": domain_id, "boost": weight}}}
                for domain_id, weight in sorted(domain_id_boosts.items())
            ]
        }
    }


def merge_boosts(defaults: Mapping[Any, float], explicit: Mapping[Any, float]) -> dict[Any, float]:
    """Map union where explicit weights win on conflicting keys."""
    return {**defaults, **explicit}
