"""Adapters layer - index, identity and domain registry access.

Abstract clients define the boundary contracts; the httpx implementations
talk to the search index and the identity service.
"""

from .domain_registry import DomainRegistry
from .identity_client import AbstractIdentityClient, HttpIdentityClient
from .index_client import AbstractIndexClient, HttpIndexClient, IndexResponse


__all__ = [
    "AbstractIdentityClient",
    "AbstractIndexClient",
    "DomainRegistry",
    "HttpIdentityClient",
    "HttpIndexClient",
    "IndexResponse",
]
