"""Index query interface.

The core hands :class:`SearchRequest` objects to an index client and gets
back hits or aggregation buckets. The HTTP implementation speaks the
search-engine ``_search`` endpoint through httpx.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
import logging
from typing import Any

import httpx
from opentelemetry.trace import SpanKind
import orjson

from catalog_search.errors import DecodeFailure, IndexUnavailable
from catalog_search.observability.metrics import INDEX_LATENCY, track_latency
from catalog_search.observability.tracing import create_span
from catalog_search.search.requests import SearchRequest


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IndexResponse:
    """Ranked hits or aggregation buckets for one request."""

    took_ms: int = 0
    total: int = 0
    hits: list[dict[str, Any]] = field(default_factory=list)
    aggregations: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> IndexResponse:
        """Decode a ``_search`` response body.

        Raises:
            DecodeFailure: when the body lacks the expected structure
        """
        try:
            hits_block = payload.get("hits") or {}
            total = hits_block.get("total", 0)
            if isinstance(total, Mapping):
                total = total.get("value", 0)
            return cls(
                took_ms=int(payload.get("took", 0)),
                total=int(total),
                hits=list(hits_block.get("hits") or []),
                aggregations=dict(payload.get("aggregations") or {}),
            )
        except (AttributeError, TypeError, ValueError) as exc:
            logger.error("Malformed index response: %s", exc)
            raise DecodeFailure(f"Malformed index response: {exc}") from exc


class AbstractIndexClient(ABC):
    """Executes structured requests against the document and domain indices."""

    @abstractmethod
    async def search(self, request: SearchRequest) -> IndexResponse:
        raise NotImplementedError

    async def aclose(self) -> None:
        return


class HttpIndexClient(AbstractIndexClient):
    """Index client posting request bodies to ``{base_url}/{index}/_search``."""

    def __init__(self, base_url: str, *, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.base_url = base_url.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=min(timeout, 5.0)),
            headers={"Content-Type": "application/json"},
        )

    async def search(self, request: SearchRequest) -> IndexResponse:
        logger.info("Index request %s", request.describe())
        attributes = {"index.name": request.index}
        with create_span("index.search", kind=SpanKind.CLIENT, attributes=attributes), track_latency(
            INDEX_LATENCY, operation=request.index
        ):
            try:
                response = await self._client.post(f"/{request.index}/_search", content=request.to_json())
                response.raise_for_status()
            except httpx.HTTPStatusError as exc:
                logger.error(
                    "Index rejected request to %s: HTTP %s %s",
                    request.index,
                    exc.response.status_code,
                    exc.response.text[:500],
                )
                raise IndexUnavailable(f"HTTP {exc.response.status_code} from index") from exc
            except httpx.HTTPError as exc:
                logger.error("Index request to %s failed: %s", request.index, exc)
                raise IndexUnavailable(str(exc)) from exc

        try:
            payload = orjson.loads(response.content)
        except orjson.JSONDecodeError as exc:
            logger.error("Index returned non-JSON body for %s: %s", request.index, exc)
            raise DecodeFailure("Index returned a non-JSON body") from exc
        if not isinstance(payload, dict):
            raise DecodeFailure("Index returned a non-object body")
        return IndexResponse.from_payload(payload)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
