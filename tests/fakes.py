"""In-memory stand-ins for the index and identity services.

``InMemoryIndex`` evaluates the subset of the query DSL the builders emit:
bool (must / filter / should / must_not / minimum_should_match), term,
terms, match_all, nested, function_score, multi_match and query_string, and
the terms / filter / nested aggregations. ``.raw`` sub-fields resolve to
their parent field.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from catalog_search.adapters.identity_client import AbstractIdentityClient
from catalog_search.adapters.index_client import AbstractIndexClient, IndexResponse
from catalog_search.domain.model import RoleGrant, UserIdentity
from catalog_search.errors import IdentityServiceUnavailable
from catalog_search.search.requests import SearchRequest


DOCUMENTS_INDEX = "catalog"
DOMAINS_INDEX = "domains"


def _strip_raw(field: str) -> str:
    return field[: -len(".raw")] if field.endswith(".raw") else field


def field_values(doc: Any, field: str) -> list[Any]:
    """Every value reachable at a dotted path, flattening lists on the way."""
    nodes = [doc]
    for key in _strip_raw(field).split("."):
        next_nodes: list[Any] = []
        for node in nodes:
            if isinstance(node, list):
                candidates = node
            else:
                candidates = [node]
            for candidate in candidates:
                if isinstance(candidate, Mapping) and key in candidate:
                    next_nodes.append(candidate[key])
        nodes = next_nodes
    values: list[Any] = []
    for node in nodes:
        if isinstance(node, list):
            values.extend(node)
        elif node is not None:
            values.append(node)
    return values


def _nest(path: str, obj: Any) -> dict[str, Any]:
    scoped: Any = obj
    for key in reversed(path.split(".")):
        scoped = {key: scoped}
    return scoped


def _nested_scopes(doc: Mapping[str, Any], path: str) -> list[dict[str, Any]]:
    return [_nest(path, obj) for obj in field_values(doc, path)]


def _text_fields(fields: Iterable[str]) -> list[str]:
    return [field.split("^", 1)[0] for field in fields]


def _text_matches(doc: Mapping[str, Any], spec: Mapping[str, Any], *, phrase: bool) -> bool:
    text = " ".join(
        str(value) for field in _text_fields(spec.get("fields", [])) for value in field_values(doc, field)
    ).lower()
    query = str(spec.get("query", "")).lower()
    if phrase:
        return query in text
    return any(token in text.split() for token in query.split())


def matches(doc: Mapping[str, Any], query: Mapping[str, Any]) -> bool:
    if "match_all" in query:
        return True
    if "bool" in query:
        clause = query["bool"]
        must = clause.get("must", []) + clause.get("filter", [])
        if not all(matches(doc, sub) for sub in must):
            return False
        if any(matches(doc, sub) for sub in clause.get("must_not", [])):
            return False
        should = clause.get("should", [])
        required = clause.get("minimum_should_match", 0 if must else (1 if should else 0))
        return sum(1 for sub in should if matches(doc, sub)) >= int(required)
    if "term" in query:
        ((field, wanted),) = query["term"].items()
        if isinstance(wanted, Mapping):
            wanted = wanted["value"]
        return wanted in field_values(doc, field)
    if "terms" in query:
        ((field, wanted),) = query["terms"].items()
        present = field_values(doc, field)
        return any(value in present for value in wanted)
    if "nested" in query:
        nested = query["nested"]
        return any(matches(scope, nested["query"]) for scope in _nested_scopes(doc, nested["path"]))
    if "function_score" in query:
        return matches(doc, query["function_score"]["query"])
    if "multi_match" in query:
        spec = query["multi_match"]
        return _text_matches(doc, spec, phrase=spec.get("type") == "phrase")
    if "query_string" in query:
        return _text_matches(doc, query["query_string"], phrase=False)
    raise AssertionError(f"Unsupported query clause: {query}")


def score(doc: Mapping[str, Any], query: Mapping[str, Any]) -> float:
    """Crude relevance: one point per matching should clause, weighted by boost."""
    if "bool" in query:
        clause = query["bool"]
        total = sum(score(doc, sub) for sub in clause.get("must", []))
        for sub in clause.get("should", []):
            if matches(doc, sub):
                total += max(score(doc, sub), 1.0)
        return total
    if "term" in query:
        ((_, wanted),) = query["term"].items()
        return float(wanted.get("boost", 1.0)) if isinstance(wanted, Mapping) else 1.0
    if "function_score" in query:
        return score(doc, query["function_score"]["query"])
    return 1.0 if matches(doc, query) else 0.0


def _sort_value(doc: Mapping[str, Any], doc_score: float, field: str, spec: Mapping[str, Any]) -> Any:
    if field == "_score":
        return doc_score
    nested = spec.get("nested")
    if nested:
        scopes = [scope for scope in _nested_scopes(doc, nested["path"]) if matches(scope, nested["filter"])]
        values = [value for scope in scopes for value in field_values(scope, field)]
    else:
        values = field_values(doc, field)
    if not values:
        return None
    if spec.get("mode") == "avg":
        return sum(values) / len(values)
    return values[0]


def _sort_hits(scored: list[tuple[dict[str, Any], float]], sorts: list[Mapping[str, Any]]):
    for sort in reversed(sorts):
        ((field, spec),) = sort.items()
        descending = spec.get("order") == "desc"
        present = [item for item in scored if _sort_value(item[0], item[1], field, spec) is not None]
        missing = [item for item in scored if _sort_value(item[0], item[1], field, spec) is None]
        present.sort(key=lambda item: _sort_value(item[0], item[1], field, spec), reverse=descending)
        scored = present + missing
    return scored


def _terms_buckets(docs: list[dict[str, Any]], spec: Mapping[str, Any]) -> list[tuple[Any, list[dict[str, Any]]]]:
    by_key: dict[Any, list[dict[str, Any]]] = {}
    for doc in docs:
        for key in dict.fromkeys(field_values(doc, spec["field"])):
            by_key.setdefault(key, []).append(doc)
    ordered = sorted(by_key.items(), key=lambda item: (-len(item[1]), str(item[0])))
    return ordered[: spec.get("size", 10)]


def aggregate(docs: list[dict[str, Any]], aggs: Mapping[str, Any]) -> dict[str, Any]:
    results: dict[str, Any] = {}
    for name, agg in aggs.items():
        sub_aggs = agg.get("aggs", {})
        if "terms" in agg:
            results[name] = {
                "buckets": [
                    {"key": key, "doc_count": len(bucket_docs), **aggregate(bucket_docs, sub_aggs)}
                    for key, bucket_docs in _terms_buckets(docs, agg["terms"])
                ]
            }
        elif "filter" in agg:
            kept = [doc for doc in docs if matches(doc, agg["filter"])]
            results[name] = {"doc_count": len(kept), **aggregate(kept, sub_aggs)}
        elif "nested" in agg:
            scopes = [scope for doc in docs for scope in _nested_scopes(doc, agg["nested"]["path"])]
            results[name] = {"doc_count": len(scopes), **aggregate(scopes, sub_aggs)}
        else:
            raise AssertionError(f"Unsupported aggregation: {agg}")
    return results


class InMemoryIndex(AbstractIndexClient):
    """Evaluates requests against in-memory documents and records each request."""

    def __init__(self, indices: Mapping[str, Iterable[dict[str, Any]]] | None = None) -> None:
        self.indices: dict[str, list[dict[str, Any]]] = {name: list(docs) for name, docs in (indices or {}).items()}
        self.requests: list[SearchRequest] = []
        self.closed = False

    def requests_to(self, index: str) -> list[SearchRequest]:
        return [request for request in self.requests if request.index == index]

    async def search(self, request: SearchRequest) -> IndexResponse:
        self.requests.append(request)
        body = request.body
        docs = self.indices.get(request.index, [])
        query = body.get("query", {"match_all": {}})
        matched = [doc for doc in docs if matches(doc, query)]

        scored = [(doc, score(doc, query)) for doc in matched]
        scored = _sort_hits(scored, body.get("sort", []))
        offset = body.get("from", 0)
        size = body.get("size", 10)
        hits = [
            {"_id": doc.get("_id"), "_score": doc_score, "_source": {k: v for k, v in doc.items() if k != "_id"}}
            for doc, doc_score in scored[offset : offset + size]
        ]

        payload: dict[str, Any] = {"took": 3, "hits": {"total": {"value": len(matched)}, "hits": hits}}
        if "aggs" in body:
            payload["aggregations"] = aggregate(matched, body["aggs"])
        return IndexResponse.from_payload(payload)

    async def aclose(self) -> None:
        self.closed = True


class FakeIdentityClient(AbstractIdentityClient):
    """Identity service backed by dictionaries; records every call."""

    def __init__(
        self,
        users: Mapping[str, UserIdentity] | None = None,
        grants: Mapping[tuple[str, str], RoleGrant] | None = None,
        *,
        set_cookies: tuple[str, ...] = (),
        fail_on: frozenset[str] = frozenset(),
    ) -> None:
        self.users = dict(users or {})
        self.grants = dict(grants or {})
        self.set_cookies = set_cookies
        self.fail_on = fail_on
        self.cookie_calls: list[tuple[str | None, str | None, str | None]] = []
        self.role_calls: list[tuple[str, str, str | None]] = []
        self.closed = False

    @property
    def call_count(self) -> int:
        return len(self.cookie_calls) + len(self.role_calls)

    async def resolve_user_by_cookie(self, context_cname, cookie, request_id):
        self.cookie_calls.append((context_cname, cookie, request_id))
        if "current_user" in self.fail_on:
            raise IdentityServiceUnavailable("identity down")
        if cookie is None:
            return None, ()
        return self.users.get(cookie), self.set_cookies

    async def fetch_user_role(self, domain_cname, user_id, request_id):
        self.role_calls.append((domain_cname, user_id, request_id))
        if "user_role" in self.fail_on:
            raise IdentityServiceUnavailable("identity down")
        return self.grants.get((domain_cname, user_id))

    async def aclose(self) -> None:
        self.closed = True


# Domains

PETERCETERA = {
    "domain_id": 0,
    "domain_cname": "petercetera.net",
    "is_customer_domain": True,
    "moderation_enabled": False,
    "routing_approval_enabled": False,
    "locked_down": False,
    "site_title": "Temporary URI",
}
OPENDATA = {
    "domain_id": 1,
    "domain_cname": "opendata-demo.socrata.com",
    "is_customer_domain": False,
    "moderation_enabled": False,
    "routing_approval_enabled": False,
    "locked_down": False,
}
ANNABELLE = {
    "domain_id": 2,
    "domain_cname": "annabelle.island.net",
    "is_customer_domain": True,
    "moderation_enabled": True,
    "routing_approval_enabled": True,
    "locked_down": False,
}
BLUE = {
    "domain_id": 3,
    "domain_cname": "blue.org",
    "is_customer_domain": True,
    "moderation_enabled": False,
    "routing_approval_enabled": True,
    "locked_down": False,
}
LOCKED = {
    "domain_id": 4,
    "domain_cname": "locked.gov",
    "is_customer_domain": True,
    "moderation_enabled": False,
    "routing_approval_enabled": False,
    "locked_down": True,
}

DOMAIN_SOURCES = [PETERCETERA, OPENDATA, ANNABELLE, BLUE, LOCKED]


def document(
    doc_id: str,
    domain: Mapping[str, Any],
    *,
    name: str,
    datatype: str = "dataset",
    default_view: bool = True,
    status: str = "not_moderated",
    approving: Iterable[int] = (),
    approved_by_parent: bool = True,
    category: str | None = None,
    tags: Iterable[str] = (),
    metadata: Iterable[tuple[str, str]] = (),
    annotations: Iterable[tuple[str, float]] = (),
    page_views: int = 0,
    text: str = "",
) -> dict[str, Any]:
    return {
        "_id": doc_id,
        "socrata_id": {
            "domain_id": domain["domain_id"],
            "domain_cname": domain["domain_cname"],
            "dataset_id": doc_id,
        },
        "resource": {"id": doc_id, "name": name, "description": text},
        "datatype": datatype,
        "viewtype": "",
        "is_customer_domain": domain["is_customer_domain"],
        "is_default_view": default_view,
        "moderation_status": status,
        "approving_domain_ids": list(approving),
        "is_approved_by_parent_domain": approved_by_parent,
        "animl_annotations": {
            "categories": [{"name": label, "score": weight} for label, weight in annotations],
            "tags": [],
        },
        "customer_category": category,
        "customer_tags": list(tags),
        "customer_metadata_flattened": [{"key": key, "value": value} for key, value in metadata],
        "page_views": {"page_views_total": page_views},
        "fts_analyzed": f"{name} {text}",
        "fts_raw": f"{name} {text}",
        "domain_cname": domain["domain_cname"],
    }


DOCUMENTS = [
    document(
        "fxf-0000",
        PETERCETERA,
        name="City Budget",
        category="Finance",
        tags=["budget", "finance"],
        metadata=[("Department", "Fire")],
        annotations=[("finance", 0.9)],
        page_views=100,
        text="city budget data",
    ),
    document(
        "fxf-0001",
        PETERCETERA,
        name="Fire Incidents",
        datatype="chart",
        default_view=False,
        status="pending",
        category="Public Safety",
        tags=["fire"],
        metadata=[("Department", "Police")],
        page_views=50,
        text="fire incidents",
    ),
    document(
        "fxf-0002",
        PETERCETERA,
        name="Budget Map",
        datatype="map",
        default_view=False,
        status="rejected",
        category="Finance",
        tags=["budget"],
        metadata=[("Department", "Fire")],
        page_views=10,
        text="budget map",
    ),
    document(
        "fxf-0003",
        PETERCETERA,
        name="Budget Story",
        datatype="story",
        default_view=False,
        status="approved",
        category="Finance",
        page_views=5,
        text="budget story",
    ),
    document(
        "fxf-0004",
        OPENDATA,
        name="Crime Data",
        approving=[1],
        category="Finance",
        page_views=200,
        text="crime data",
    ),
    document(
        "fxf-0005",
        ANNABELLE,
        name="Island Budget",
        approving=[2],
        category="Finance",
        annotations=[("finance", 0.5), ("environment", 0.7)],
        page_views=30,
        text="island budget",
    ),
    document(
        "fxf-0006",
        ANNABELLE,
        name="Pending Chart",
        datatype="chart",
        default_view=False,
        status="pending",
        category="Finance",
        page_views=20,
        text="pending chart",
    ),
    document(
        "fxf-0007",
        ANNABELLE,
        name="Ferry Schedule",
        datatype="chart",
        default_view=False,
        status="approved",
        approving=[2],
        approved_by_parent=False,
        category="Transportation",
        page_views=25,
        text="ferry schedule",
    ),
    document(
        "fxf-0008",
        BLUE,
        name="Unapproved Routes",
        approved_by_parent=False,
        page_views=15,
        text="bus routes",
    ),
    document(
        "fxf-0009",
        BLUE,
        name="Bike Lanes",
        default_view=False,
        approving=[3],
        category="Transportation",
        annotations=[("environment", 0.4)],
        page_views=40,
        text="bike lanes",
    ),
    document(
        "fxf-0010",
        LOCKED,
        name="Secret Budget",
        approving=[4],
        category="Finance",
        page_views=60,
        text="secret budget",
    ),
]


def catalog_index() -> InMemoryIndex:
    return InMemoryIndex({DOCUMENTS_INDEX: DOCUMENTS, DOMAINS_INDEX: DOMAIN_SOURCES})


VIEWER = UserIdentity(id="user-1234", role_name="viewer")
OUTSIDER = UserIdentity(id="user-9999")
