"""Shared test fixtures and configuration."""

import os

from fakes import FakeIdentityClient, InMemoryIndex, catalog_index
import pytest

from catalog_search.config import Settings


# Settings are read from CATALOG_* variables; keep the host environment out of tests
TEST_ENV = {
    "CATALOG_INDEX_URL": "http://index.test:9200",
    "CATALOG_DOCUMENTS_INDEX": "catalog",
    "CATALOG_DOMAINS_INDEX": "domains",
    "CATALOG_IDENTITY_URL": "http://identity.test",
    "CATALOG_LOG_LEVEL": "info",
    "CATALOG_LOG_JSON": "false",
}


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Drop ambient CATALOG_* variables and set test defaults."""
    for key in list(os.environ):
        if key.startswith("CATALOG_"):
            monkeypatch.delenv(key, raising=False)
    for key, value in TEST_ENV.items():
        monkeypatch.setenv(key, value)


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture
def index() -> InMemoryIndex:
    return catalog_index()


@pytest.fixture
def identity() -> FakeIdentityClient:
    return FakeIdentityClient()
