"""Failure kinds surfaced to the HTTP boundary.

Each error carries the status code the transport maps it to and a message
that is safe to show to clients. Internal detail stays in the logs.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass


class CatalogSearchError(Exception):
    """Base error for the catalog search core."""

    status_code: int = 500
    client_message: str = "Internal error"

    def to_payload(self) -> dict[str, object]:
        return {"error": self.client_message}


@dataclass(frozen=True)
class ParamError:
    """A single offending query parameter."""

    param: str
    message: str

    def __str__(self) -> str:
        return f"{self.param}: {self.message}"


class InvalidQueryParameters(CatalogSearchError):
    """Raised when raw query parameters fail validation."""

    status_code = 400

    def __init__(self, errors: Sequence[ParamError]) -> None:
        self.errors = tuple(errors)
        super().__init__(", ".join(str(error) for error in self.errors))

    @property
    def client_message(self) -> str:  # type: ignore[override]
        return f"Invalid query parameters: {self}"

    def to_payload(self) -> dict[str, object]:
        return {
            "error": self.client_message,
            "params": [{"param": error.param, "message": error.message} for error in self.errors],
        }


class DomainNotFound(CatalogSearchError):
    """Raised when a requested search context cname is unknown."""

    status_code = 400

    def __init__(self, cname: str) -> None:
        self.cname = cname
        super().__init__(f"Domain not found: {cname}")

    @property
    def client_message(self) -> str:  # type: ignore[override]
        return str(self)


class IdentityServiceUnavailable(CatalogSearchError):
    """Raised when the identity service fails or times out.

    Callers may retry; this is never coerced into "no access".
    """

    status_code = 503
    client_message = "Identity service unavailable"


class DecodeFailure(CatalogSearchError):
    """Raised when an index document does not parse into the expected shape."""

    status_code = 502
    client_message = "Upstream data error"


class IndexUnavailable(CatalogSearchError):
    """Raised when the document index rejects or fails a request."""

    status_code = 502
    client_message = "Upstream index error"
