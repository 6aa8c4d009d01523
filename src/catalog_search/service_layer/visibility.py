"""Domain visibility resolution under lock-down.

Decides which of the candidate domains, and whether the requested search
context, a caller may see:

1. Nothing locked among context and candidates -> everything is visible and
   the identity service is not consulted.
2. Otherwise the caller is resolved from the cookie exactly once. Cookies
   the identity service sets are propagated whatever the outcome.
3. A locked context the caller cannot view is dropped, silently. The caller
   never learns that the domain exists and is locked.
4. An anonymous caller sees only unlocked domains. A resolved caller also
   sees each locked domain on which a per-domain role lookup grants catalog
   view.

Role lookups are independent and run concurrently; the decision equals the
sequential one. Any identity failure aborts the whole resolution.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
import logging

from catalog_search.adapters.identity_client import AbstractIdentityClient
from catalog_search.domain.model import Domain, UserIdentity, VisibilityDecision


logger = logging.getLogger(__name__)


class DomainVisibilityResolver:
    def __init__(self, identity_client: AbstractIdentityClient, *, concurrency: int = 8):
        self.identity_client = identity_client
        self.concurrency = max(1, concurrency)

    async def resolve(
        self,
        search_context: Domain | None,
        domains: Iterable[Domain],
        cookie: str | None,
        request_id: str | None,
    ) -> VisibilityDecision:
        candidates = frozenset(domains)
        context_locked = search_context is not None and search_context.is_locked
        locked = frozenset(domain for domain in candidates if domain.is_locked)
        unlocked = candidates - locked

        if not context_locked and not locked:
            return VisibilityDecision(search_context=search_context, domains=candidates)

        user, set_cookies = await self.identity_client.resolve_user_by_cookie(
            search_context.domain_cname if search_context is not None else None,
            cookie,
            request_id,
        )

        viewable_context = search_context
        if context_locked and (user is None or not user.can_view_catalog):
            logger.info("Dropping locked search context for caller without catalog view rights")
            viewable_context = None

        if user is None:
            return VisibilityDecision(search_context=viewable_context, domains=unlocked, set_cookies=set_cookies)

        viewable_locked = await self._viewable_locked_domains(user, locked, request_id)
        logger.debug(
            "Visibility resolved: %d unlocked, %d of %d locked viewable",
            len(unlocked),
            len(viewable_locked),
            len(locked),
        )
        return VisibilityDecision(
            search_context=viewable_context,
            domains=unlocked | viewable_locked,
            set_cookies=set_cookies,
        )

    async def _viewable_locked_domains(
        self,
        user: UserIdentity,
        locked: frozenset[Domain],
        request_id: str | None,
    ) -> frozenset[Domain]:
        if not locked:
            return frozenset()

        semaphore = asyncio.Semaphore(self.concurrency)

        async def can_view(domain: Domain) -> bool:
            async with semaphore:
                grant = await self.identity_client.fetch_user_role(domain.domain_cname, user.id, request_id)
            return grant is not None and grant.can_view_catalog

        # Sorted so lookups are issued in a stable order
        ordered = sorted(locked, key=lambda domain: domain.domain_cname)
        results = await asyncio.gather(*(can_view(domain) for domain in ordered))
        return frozenset(domain for domain, allowed in zip(ordered, results) if allowed)
