"""Unit tests for domain lookups and candidate domain resolution."""

from __future__ import annotations

from fakes import DOMAINS_INDEX, VIEWER, FakeIdentityClient, InMemoryIndex
import pytest

from catalog_search.adapters.domain_registry import DomainRegistry
from catalog_search.domain.model import RoleGrant
from catalog_search.errors import DecodeFailure, DomainNotFound
from catalog_search.search.domain_queries import DomainQueryBuilder
from catalog_search.service_layer.visibility import DomainVisibilityResolver


def _registry(index: InMemoryIndex, identity: FakeIdentityClient | None = None) -> DomainRegistry:
    return DomainRegistry(
        index,
        DomainQueryBuilder("domains", "catalog"),
        DomainVisibilityResolver(identity or FakeIdentityClient()),
    )


def _cnames(domains) -> set[str]:
    return {domain.domain_cname for domain in domains}


class TestLookups:
    @pytest.mark.asyncio
    async def test_fetch_by_id(self, index):
        domain = await _registry(index).fetch(2)
        assert domain is not None
        assert domain.domain_cname == "annabelle.island.net"

    @pytest.mark.asyncio
    async def test_fetch_unknown_id(self, index):
        assert await _registry(index).fetch(99) is None

    @pytest.mark.asyncio
    async def test_find_is_case_insensitive(self, index):
        domain, took_ms = await _registry(index).find("Blue.ORG")
        assert domain is not None and domain.domain_id == 3
        assert took_ms == 3

    @pytest.mark.asyncio
    async def test_find_many_is_one_request(self, index):
        domains, _ = await _registry(index).find_many(["blue.org", "petercetera.net", "nowhere.org"])
        assert _cnames(domains) == {"blue.org", "petercetera.net"}
        assert len(index.requests_to(DOMAINS_INDEX)) == 1

    @pytest.mark.asyncio
    async def test_find_many_without_cnames_skips_the_index(self, index):
        assert await _registry(index).find_many([]) == (set(), 0)
        assert index.requests == []

    @pytest.mark.asyncio
    async def test_customer_domains(self, index):
        domains, _ = await _registry(index).customer_domains()
        assert _cnames(domains) == {"petercetera.net", "annabelle.island.net", "blue.org", "locked.gov"}

    @pytest.mark.asyncio
    async def test_malformed_domain_document_is_decode_failure(self):
        index = InMemoryIndex({DOMAINS_INDEX: [{"_id": "bad", "domain_cname": "bad.org"}]})
        with pytest.raises(DecodeFailure):
            await _registry(index).find("bad.org")


class TestFindDomains:
    @pytest.mark.asyncio
    async def test_explicit_cnames_are_restricted_back(self, index):
        context, domains, _ = await _registry(index).find_domains("annabelle.island.net", ["blue.org"])
        assert context is not None and context.domain_cname == "annabelle.island.net"
        assert _cnames(domains) == {"blue.org"}
        assert len(index.requests) == 1

    @pytest.mark.asyncio
    async def test_no_cnames_means_customer_domains(self, index):
        context, domains, _ = await _registry(index).find_domains(None, None)
        assert context is None
        assert "opendata-demo.socrata.com" not in _cnames(domains)
        assert len(domains) == 4

    @pytest.mark.asyncio
    async def test_unknown_context_is_domain_not_found(self, index):
        with pytest.raises(DomainNotFound) as exc_info:
            await _registry(index).find_domains("nowhere.org", ["blue.org"])
        assert exc_info.value.status_code == 400

    @pytest.mark.asyncio
    async def test_non_customer_context_without_cnames_is_not_found(self, index):
        with pytest.raises(DomainNotFound):
            await _registry(index).find_domains("opendata-demo.socrata.com", None)


class TestFindSearchableDomains:
    @pytest.mark.asyncio
    async def test_lockdown_hides_locked_domains_from_anonymous(self, index):
        domain_set, _, cookies = await _registry(index).find_searchable_domains(
            None, None, filter_out_locked=True, cookie=None, request_id=None
        )
        assert "locked.gov" not in _cnames(domain_set.domains)
        assert cookies == ()

    @pytest.mark.asyncio
    async def test_lockdown_disabled_keeps_everything(self, index):
        identity = FakeIdentityClient()
        domain_set, _, _ = await _registry(index, identity).find_searchable_domains(
            "locked.gov", None, filter_out_locked=False, cookie=None, request_id=None
        )
        assert domain_set.search_context is not None
        assert "locked.gov" in _cnames(domain_set.domains)
        assert identity.call_count == 0

    @pytest.mark.asyncio
    async def test_granted_user_sees_locked_domain(self, index):
        identity = FakeIdentityClient(
            users={"session=1": VIEWER},
            grants={("locked.gov", VIEWER.id): RoleGrant(id=VIEWER.id, role_name="viewer")},
            set_cookies=("refreshed=1",),
        )
        domain_set, _, cookies = await _registry(index, identity).find_searchable_domains(
            "locked.gov", ["locked.gov", "blue.org"], filter_out_locked=True, cookie="session=1", request_id="r-1"
        )
        assert domain_set.search_context is not None
        assert _cnames(domain_set.domains) == {"locked.gov", "blue.org"}
        assert cookies == ("refreshed=1",)
