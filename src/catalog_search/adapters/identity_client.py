"""Identity resolution interface.

Resolves a session cookie to a user and looks up a user's grant on one
domain. Transport failures surface as :class:`IdentityServiceUnavailable`;
an unknown or unauthenticated user is ``None``, never an error.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
import logging

import httpx
from opentelemetry.trace import SpanKind
from pydantic import ValidationError

from catalog_search.domain.model import RoleGrant, UserIdentity
from catalog_search.errors import DecodeFailure, IdentityServiceUnavailable
from catalog_search.observability.metrics import IDENTITY_LOOKUPS
from catalog_search.observability.tracing import create_span


logger = logging.getLogger(__name__)

HOST_HEADER = "X-Socrata-Host"
REQUEST_ID_HEADER = "X-Socrata-RequestId"

# Statuses meaning "no such user here" rather than a service fault
_NO_USER_STATUSES = frozenset({401, 403, 404})


class AbstractIdentityClient(ABC):
    @abstractmethod
    async def resolve_user_by_cookie(
        self,
        context_cname: str | None,
        cookie: str | None,
        request_id: str | None,
    ) -> tuple[UserIdentity | None, tuple[str, ...]]:
        """Resolve the caller; returns the user (if any) and cookies to propagate."""
        raise NotImplementedError

    @abstractmethod
    async def fetch_user_role(
        self,
        domain_cname: str,
        user_id: str,
        request_id: str | None,
    ) -> RoleGrant | None:
        """The user's grant on ``domain_cname``, or None when they hold none."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return


class HttpIdentityClient(AbstractIdentityClient):
    """Identity client for the core user service."""

    def __init__(self, base_url: str, *, timeout: float = 5.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 2.0)),
        )

    @staticmethod
    def _headers(host: str | None, request_id: str | None, cookie: str | None = None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if host:
            headers[HOST_HEADER] = host
        if request_id:
            headers[REQUEST_ID_HEADER] = request_id
        if cookie:
            headers["Cookie"] = cookie
        return headers

    async def _get(self, operation: str, path: str, headers: dict[str, str]) -> httpx.Response:
        with create_span(f"identity.{operation}", kind=SpanKind.CLIENT, attributes={"identity.path": path}):
            try:
                response = await self._client.get(path, headers=headers)
            except httpx.HTTPError as exc:
                IDENTITY_LOOKUPS.labels(operation=operation, outcome="unavailable").inc()
                logger.error("Identity service %s failed: %s", operation, exc)
                raise IdentityServiceUnavailable(str(exc)) from exc

        if response.status_code >= 500:
            IDENTITY_LOOKUPS.labels(operation=operation, outcome="unavailable").inc()
            logger.error("Identity service %s returned HTTP %s", operation, response.status_code)
            raise IdentityServiceUnavailable(f"HTTP {response.status_code} from identity service")
        return response

    @staticmethod
    def _decode(operation: str, response: httpx.Response) -> UserIdentity:
        try:
            return UserIdentity.model_validate_json(response.content)
        except ValidationError as exc:
            logger.error("Failed to decode identity %s response: %s", operation, exc)
            raise DecodeFailure(str(exc)) from exc

    async def resolve_user_by_cookie(
        self,
        context_cname: str | None,
        cookie: str | None,
        request_id: str | None,
    ) -> tuple[UserIdentity | None, tuple[str, ...]]:
        if not cookie:
            IDENTITY_LOOKUPS.labels(operation="current_user", outcome="anonymous").inc()
            return None, ()

        response = await self._get(
            "current_user",
            "/users/current.json",
            self._headers(context_cname, request_id, cookie),
        )
        set_cookies = tuple(response.headers.get_list("set-cookie"))
        if response.status_code in _NO_USER_STATUSES:
            IDENTITY_LOOKUPS.labels(operation="current_user", outcome="anonymous").inc()
            return None, set_cookies
        if response.status_code != 200:
            IDENTITY_LOOKUPS.labels(operation="current_user", outcome="unavailable").inc()
            raise IdentityServiceUnavailable(f"HTTP {response.status_code} from identity service")

        user = self._decode("current_user", response)
        IDENTITY_LOOKUPS.labels(operation="current_user", outcome="resolved").inc()
        return user, set_cookies

    async def fetch_user_role(
        self,
        domain_cname: str,
        user_id: str,
        request_id: str | None,
    ) -> RoleGrant | None:
        response = await self._get(
            "user_role",
            f"/users/{user_id}.json",
            self._headers(domain_cname, request_id),
        )
        if response.status_code in _NO_USER_STATUSES:
            IDENTITY_LOOKUPS.labels(operation="user_role", outcome="none").inc()
            return None
        if response.status_code != 200:
            IDENTITY_LOOKUPS.labels(operation="user_role", outcome="unavailable").inc()
            raise IdentityServiceUnavailable(f"HTTP {response.status_code} from identity service")

        grant = self._decode("user_role", response)
        IDENTITY_LOOKUPS.labels(operation="user_role", outcome="resolved").inc()
        return grant

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
