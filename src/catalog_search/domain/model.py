"""Domain model - entities and value objects for catalog visibility.

Everything here is an immutable snapshot built per request. Nothing is
cached across requests and nothing depends on infrastructure.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from catalog_search.errors import DecodeFailure


logger = logging.getLogger(__name__)


class Domain(BaseModel):
    """A catalog domain as stored in the domain index."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    domain_id: int
    domain_cname: str = Field(min_length=1)
    is_customer_domain: bool = False
    locked_down: bool = False
    moderation_enabled: bool = False
    routing_approval_enabled: bool = False
    site_title: str | None = None
    organization: str | None = None

    @field_validator("domain_cname")
    @classmethod
    def _normalize_cname(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def is_locked(self) -> bool:
        return self.locked_down

    @classmethod
    def from_source(cls, source: Mapping[str, Any]) -> Domain:
        """Decode a domain index document, raising DecodeFailure on bad shape."""
        try:
            return cls.model_validate(source)
        except ValidationError as exc:
            logger.error("Failed to decode domain document %s: %s", dict(source), exc)
            raise DecodeFailure(str(exc)) from exc


class DomainPartition(BaseModel):
    """Four-way split of a domain set's ids by moderation and routing approval."""

    model_config = ConfigDict(frozen=True)

    ids: frozenset[int]
    moderated_ids: frozenset[int]
    unmoderated_ids: frozenset[int]
    routing_approval_disabled_ids: frozenset[int]


class DomainSet(BaseModel):
    """Candidate domains plus an optional search context.

    The context may or may not also be a member of ``domains``.
    """

    model_config = ConfigDict(frozen=True)

    domains: frozenset[Domain] = frozenset()
    search_context: Domain | None = None

    @classmethod
    def of(cls, domains: Iterable[Domain], search_context: Domain | None = None) -> DomainSet:
        return cls(domains=frozenset(domains), search_context=search_context)

    @property
    def id_cname_map(self) -> dict[int, str]:
        all_domains = set(self.domains)
        if self.search_context is not None:
            all_domains.add(self.search_context)
        return {domain.domain_id: domain.domain_cname for domain in all_domains}

    @property
    def cname_id_map(self) -> dict[str, int]:
        return {cname: domain_id for domain_id, cname in self.id_cname_map.items()}

    @property
    def domain_ids(self) -> frozenset[int]:
        return frozenset(domain.domain_id for domain in self.domains)

    @property
    def context_moderated(self) -> bool:
        return self.search_context is not None and self.search_context.moderation_enabled

    def domain_id_boosts(self, domain_boosts: Mapping[str, float]) -> dict[int, float]:
        """Translate cname boosts to id boosts, skipping cnames outside the set."""
        id_map = self.cname_id_map
        return {id_map[cname]: weight for cname, weight in domain_boosts.items() if cname in id_map}

    def partition(self) -> DomainPartition:
        return DomainPartition(
            ids=frozenset(d.domain_id for d in self.domains),
            moderated_ids=frozenset(d.domain_id for d in self.domains if d.moderation_enabled),
            unmoderated_ids=frozenset(d.domain_id for d in self.domains if not d.moderation_enabled),
            routing_approval_disabled_ids=frozenset(
                d.domain_id for d in self.domains if not d.routing_approval_enabled
            ),
        )


class UserIdentity(BaseModel):
    """A caller resolved by the identity service, or a user's grant on one domain."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    id: str
    role_name: str | None = Field(default=None, alias="roleName")
    rights: tuple[str, ...] = ()
    flags: tuple[str, ...] = ()

    @property
    def can_view_catalog(self) -> bool:
        return bool(self.role_name) or "admin" in self.flags


# A role lookup answers with the same user shape, scoped to the queried domain.
RoleGrant = UserIdentity


class VisibilityDecision(BaseModel):
    """What a caller may see: a context (possibly suppressed) and a domain set."""

    model_config = ConfigDict(frozen=True)

    search_context: Domain | None = None
    domains: frozenset[Domain] = frozenset()
    set_cookies: tuple[str, ...] = ()

    def to_domain_set(self) -> DomainSet:
        return DomainSet(domains=self.domains, search_context=self.search_context)
