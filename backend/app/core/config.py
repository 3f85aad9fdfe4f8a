from functools import lru_cache
from typing import Any
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from pydantic import AnyUrl, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _ensure_sqlalchemy_postgres_scheme(value: str) -> str:
    if not value.lower().startswith("postgres"):
        return value

    parsed = urlparse(value)
    scheme = parsed.scheme.lower()

    if scheme in {"postgres", "postgresql"}:
        scheme = "postgresql+psycopg"

    query_params = dict(parse_qsl(parsed.query, keep_blank_values=True))
    query_params.setdefault("sslmode", "require")
    new_query = urlencode(query_params, doseq=True)

    return urlunparse(parsed._replace(scheme=scheme, query=new_query))


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    debug: bool = Field(False, description="Enable FastAPI debug mode")
    environment: str = Field(
        default="development",
        description="Runtime environment (development|staging|production)",
    )
    database_url: AnyUrl | str = Field(
        default="sqlite:///../data/movers.db",
        description="SQLAlchemy compatible database URL",
    )
    production_database_url: AnyUrl | str | None = Field(
        default=None,
        description="Postgres connection string used when ENVIRONMENT=production",
    )
    kalshi_base_url: AnyUrl = Field(
        default="https://api.elections.kalshi.com/trade-api/v2",
        description="Base URL for the Kalshi trade API",
    )
    kalshi_api_key: str | None = Field(
        default=None,
        description="Optional Kalshi API key sent as a bearer token for higher rate limits",
    )
    kalshi_fetch_event_details: bool = Field(
        default=False,
        description="Resolve Kalshi event titles with one extra request per event ticker",
    )
    polymarket_base_url: AnyUrl = Field(
        default="https://gamma-api.polymarket.com",
        description="Base URL for the Polymarket Gamma API",
    )
    manifold_base_url: AnyUrl = Field(
        default="https://api.manifold.markets",
        description="Base URL for the Manifold public API",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Per-request timeout applied to upstream market APIs",
        gt=0,
    )
    fetch_max_attempts: int = Field(
        default=3,
        description="Total attempts for a single upstream request before giving up",
        ge=1,
    )
    fetch_backoff_base_ms: float = Field(
        default=1000.0,
        description="Base delay (milliseconds) for exponential retry backoff",
        gt=0,
    )
    fetch_backoff_max_ms: float = Field(
        default=30000.0,
        description="Upper bound (milliseconds) for a single retry delay",
        gt=0,
    )
    fetch_backoff_jitter: float = Field(
        default=0.3,
        description="Maximum random jitter added to each retry delay, as a fraction of the delay",
        ge=0,
    )
    metadata_concurrency: int = Field(
        default=5,
        description="Simultaneous event/group lookups issued while enriching markets",
        ge=1,
    )
    refresh_chunk_size: int = Field(
        default=500,
        description="Number of markets written per bulk refresh chunk",
        ge=1,
    )
    price_lookup_tolerance_hours: float = Field(
        default=4.0,
        description="Slack allowed when matching a historical snapshot to a lookback instant",
        gt=0,
    )
    price_change_batch_size: int = Field(
        default=10,
        description="Markets whose price changes are computed together",
        ge=1,
    )
    top_movers_limit: int = Field(
        default=20,
        description="Maximum number of markets returned by the movers listing",
        ge=1,
    )
    gemini_api_key: str | None = Field(
        default=None,
        description="API key used for Gemini-powered market explanations",
    )
    gemini_model: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used to explain price movements",
    )

    @field_validator("database_url", "production_database_url", mode="before")
    @classmethod
    def _normalize_postgres_urls(cls, value: Any) -> Any:
        if value is None or not isinstance(value, str):
            return value
        if value.startswith("postgres://"):
            return "postgresql://" + value[len("postgres://") :]
        return value

    @field_validator("production_database_url")
    @classmethod
    def _require_postgres_scheme(cls, value: Any) -> Any:
        if value is None:
            return value
        scheme = str(value).split(":", 1)[0].lower()
        if scheme not in {"postgres", "postgresql", "postgresql+psycopg"}:
            raise ValueError(
                "PRODUCTION_DATABASE_URL must be a PostgreSQL connection string (e.g. postgresql://...)."
            )
        return value

    @property
    def resolved_database_url(self) -> str:
        if self.environment.lower() == "production":
            if not self.production_database_url:
                raise ValueError(
                    "PRODUCTION_DATABASE_URL must be set when ENVIRONMENT=production"
                )
            return _ensure_sqlalchemy_postgres_scheme(str(self.production_database_url))
        return _ensure_sqlalchemy_postgres_scheme(str(self.database_url))


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
