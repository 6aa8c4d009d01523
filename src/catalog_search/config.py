"""Centralized configuration for catalog-search using Pydantic Settings."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from catalog_search.domain.types import Datatype, ScriptScoreFunction, datatype_from_name


class Settings(BaseSettings):
    """Strictly typed configuration loaded from ``CATALOG_*`` environment variables.

    Mapping-valued settings (``CATALOG_DEFAULT_DATATYPE_BOOSTS``) and lists
    (``CATALOG_SCRIPT_SCORE_FUNCTIONS``) are read as JSON.
    """

    model_config = SettingsConfigDict(
        env_prefix="CATALOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        validate_default=True,
        extra="ignore",
    )

    # Document index
    index_url: str = Field(default="http://localhost:9200", description="Base URL of the search index")
    documents_index: str = Field(default="catalog", min_length=1, description="Alias of the document index")
    domains_index: str = Field(default="domains", min_length=1, description="Alias of the domain index")
    index_timeout: float = Field(default=10.0, gt=0, description="Index request timeout in seconds")

    # Identity service
    identity_url: str = Field(default="http://localhost:8081", description="Base URL of the identity service")
    identity_timeout: float = Field(default=5.0, gt=0, description="Identity request timeout in seconds")
    identity_lookup_concurrency: int = Field(
        default=8, ge=1, description="Maximum concurrent role lookups for locked domains in one request"
    )
    enforce_lockdown: bool = Field(
        default=True, description="Hide locked domains from callers without catalog-view rights"
    )

    # Relevance defaults
    default_title_boost: float | None = Field(
        default=None, gt=0, description="Title boost applied to simple queries unless the caller sets one"
    )
    default_datatype_boosts: dict[str, float] = Field(
        default_factory=dict, description="Datatype name (singular or plural) to boost weight"
    )
    default_min_should_match: str | None = Field(
        default=None, description="minimum_should_match used for context-scoped simple queries"
    )
    script_score_functions: list[ScriptScoreFunction] = Field(
        default_factory=list, description="Scoring scripts applied when a request names none"
    )

    # Limits
    customer_domain_search_size: int = Field(
        default=42000, ge=1, description="Cap on customer domains fetched when no domain filter is given"
    )
    default_limit: int = Field(default=100, ge=1, description="Page size when the request omits limit")
    max_limit: int = Field(default=10000, ge=1, description="Upper bound on requested page size")

    # Server / logging
    host: str = Field(default="127.0.0.1", description="HTTP bind host")
    port: int = Field(default=5704, ge=1, le=65535, description="HTTP bind port")
    log_level: str = Field(default="info", pattern=r"^(debug|info|warning|error|critical)$")
    log_json: bool = Field(default=True, description="Emit structured JSON logs")

    # Tracing
    service_name: str = Field(default="catalog-search", min_length=1)
    otlp_endpoint: str | None = Field(default=None, description="OTLP collector endpoint; tracing export is off when unset")
    otlp_protocol: str = Field(default="http", pattern=r"^(grpc|http)$")
    otlp_headers: dict[str, str] = Field(default_factory=dict)
    otlp_timeout: int = Field(default=10, ge=1, description="OTLP export timeout in seconds")

    @field_validator("default_datatype_boosts")
    @classmethod
    def _check_datatype_names(cls, value: dict[str, float]) -> dict[str, float]:
        unknown = sorted(name for name in value if datatype_from_name(name) is None)
        if unknown:
            raise ValueError(f"Unknown datatype(s) in default_datatype_boosts: {', '.join(unknown)}")
        invalid = sorted(name for name, weight in value.items() if weight <= 0)
        if invalid:
            raise ValueError(f"Datatype boosts must be greater than 0: {', '.join(invalid)}")
        return value

    def get_default_datatype_boosts(self) -> dict[Datatype, float]:
        """Default datatype boosts keyed by resolved datatype."""
        boosts: dict[Datatype, float] = {}
        for name, weight in self.default_datatype_boosts.items():
            datatype = datatype_from_name(name)
            if datatype is not None:
                boosts[datatype] = weight
        return boosts
