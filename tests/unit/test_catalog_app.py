"""HTTP surface tests through Starlette's TestClient."""

from __future__ import annotations

from fakes import VIEWER, FakeIdentityClient, InMemoryIndex, catalog_index
import pytest
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.testclient import TestClient

from catalog_search.adapters.index_client import AbstractIndexClient
from catalog_search.app import create_app, record_request_metrics
from catalog_search.domain.model import RoleGrant
from catalog_search.errors import IndexUnavailable
from catalog_search.observability import get_request_id, get_trace_context
from catalog_search.observability.tracing import TraceContextMiddleware, trace_request


class BrokenIndex(AbstractIndexClient):
    async def search(self, request):
        raise IndexUnavailable("connection refused")


@pytest.fixture
def index() -> InMemoryIndex:
    return catalog_index()


@pytest.fixture
def identity() -> FakeIdentityClient:
    return FakeIdentityClient(
        users={"session=1": VIEWER},
        grants={("locked.gov", VIEWER.id): RoleGrant(id=VIEWER.id, role_name="viewer")},
        set_cookies=("_core_session_id=new; Path=/", "socrata-csrf-token=abc; Path=/"),
    )


@pytest.fixture
def client(settings, index, identity):
    app = create_app(settings, index_client=index, identity_client=identity, configure_observability=False)
    with TestClient(app) as test_client:
        yield test_client


class TestSearchEndpoint:
    def test_search(self, client):
        response = client.get("/catalog/v1", params={"q": "budget", "show_score": "true"})
        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"
        payload = response.json()
        assert payload["resultSetSize"] == 3
        assert set(payload["timings"]) == {"serviceMillis", "searchMillis"}
        first = payload["results"][0]
        assert set(first) == {"resource", "classification", "metadata", "permalink", "link"}
        assert "score" in first["metadata"]

    def test_repeated_parameters_are_kept(self, client):
        params = [("tags", "budget"), ("tags", "fire"), ("search_context", "petercetera.net")]
        response = client.get("/catalog/v1", params=params)
        assert response.status_code == 200
        assert response.json()["resultSetSize"] == 1

    def test_cookies_and_request_id_reach_identity(self, client, identity):
        response = client.get(
            "/catalog/v1",
            params={"q": "secret"},
            headers={"Cookie": "session=1", "X-Socrata-RequestId": "req-42"},
        )
        assert response.status_code == 200
        assert response.json()["resultSetSize"] == 1
        assert response.headers.get_list("set-cookie") == [
            "_core_session_id=new; Path=/",
            "socrata-csrf-token=abc; Path=/",
        ]
        assert identity.cookie_calls[-1] == (None, "session=1", "req-42")

    def test_invalid_parameters(self, client):
        response = client.get("/catalog/v1", params={"limit": "0", "boostTitle": "-2"})
        assert response.status_code == 400
        assert response.headers["access-control-allow-origin"] == "*"
        assert {item["param"] for item in response.json()["params"]} == {"limit", "boostTitle"}

    def test_unknown_context(self, client):
        response = client.get("/catalog/v1", params={"search_context": "nowhere.org"})
        assert response.status_code == 400
        assert response.json() == {"error": "Domain not found: nowhere.org"}

    def test_identity_outage_is_503(self, settings, index):
        identity = FakeIdentityClient(fail_on=frozenset({"current_user"}))
        app = create_app(settings, index_client=index, identity_client=identity, configure_observability=False)
        response = TestClient(app).get("/catalog/v1")
        assert response.status_code == 503
        assert response.json() == {"error": "Identity service unavailable"}

    def test_index_failure_is_502_with_generic_message(self, settings, identity):
        app = create_app(settings, index_client=BrokenIndex(), identity_client=identity, configure_observability=False)
        response = TestClient(app).get("/catalog/v1")
        assert response.status_code == 502
        assert response.json() == {"error": "Upstream index error"}


class TestCountEndpoints:
    def test_count_by_field(self, client):
        response = client.get("/catalog/v1/domain_category")
        assert response.status_code == 200
        assert response.json()["results"] == [
            {"value": "Finance", "count": 3},
            {"value": "Transportation", "count": 2},
        ]

    def test_unknown_field(self, client):
        assert client.get("/catalog/v1/bogus").status_code == 404

    def test_domain_counts(self, client):
        response = client.get("/catalog/v1/domains")
        assert response.status_code == 200
        assert response.json()["results"][0] == {"value": "petercetera.net", "count": 4}

    def test_domain_counts_for_granted_user(self, client):
        response = client.get("/catalog/v1/domains", headers={"Cookie": "session=1"})
        values = {item["value"]: item["count"] for item in response.json()["results"]}
        assert values["locked.gov"] == 1


class TestFacetEndpoint:
    def test_facets(self, client):
        response = client.get("/catalog/v1/domains/petercetera.net/facets")
        assert response.status_code == 200
        facets = response.json()
        assert facets[0]["facet"] == "datatypes"
        assert facets[0]["count"] == 4

    def test_locked_and_unknown_domains_answer_alike(self, client):
        locked = client.get("/catalog/v1/domains/locked.gov/facets")
        unknown = client.get("/catalog/v1/domains/nowhere.org/facets")
        assert locked.status_code == unknown.status_code == 400
        assert locked.json()["error"].replace("locked.gov", "X") == unknown.json()["error"].replace("nowhere.org", "X")


class TestOperationalEndpoints:
    def test_health(self, client):
        assert client.get("/health").json() == {"status": "healthy"}

    def test_metrics(self, client):
        client.get("/catalog/v1")
        response = client.get("/metrics")
        assert response.status_code == 200
        assert "catalog_requests_total" in response.text

    def test_lifespan_closes_clients(self, settings, index, identity):
        app = create_app(settings, index_client=index, identity_client=identity, configure_observability=False)
        with TestClient(app):
            pass
        assert index.closed
        assert identity.closed


class RecordingIdentityClient(FakeIdentityClient):
    """Captures the trace context visible while the identity service is called."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.seen_contexts: list[tuple[str | None, str]] = []

    async def resolve_user_by_cookie(self, context_cname, cookie, request_id):
        self.seen_contexts.append((get_request_id(), get_trace_context()["trace_id"]))
        return await super().resolve_user_by_cookie(context_cname, cookie, request_id)


class TestMiddleware:
    def test_stack_is_registered_outermost_first(self, settings, index, identity):
        app = create_app(settings, index_client=index, identity_client=identity, configure_observability=False)
        stack = [(middleware.cls, middleware.kwargs.get("dispatch")) for middleware in app.user_middleware]
        assert stack == [
            (TraceContextMiddleware, None),
            (BaseHTTPMiddleware, trace_request),
            (BaseHTTPMiddleware, record_request_metrics),
        ]

    def test_trace_context_reaches_services(self, settings, index):
        identity = RecordingIdentityClient(users={"session=1": VIEWER})
        app = create_app(settings, index_client=index, identity_client=identity, configure_observability=False)
        with TestClient(app) as client:
            response = client.get(
                "/catalog/v1",
                params={"search_context": "locked.gov"},
                headers={"Cookie": "session=1", "X-Socrata-RequestId": "req-77", "X-Trace-Id": "ab" * 16},
            )
        assert response.status_code == 200
        assert identity.seen_contexts == [("req-77", "ab" * 16)]
