"""
Configuration Management
========================

Pydantic-settings based configuration for the engine and its external
collaborators. Reads from environment variables with sensible defaults.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMSettings(BaseSettings):
    """Configuration for the LLM classifier (OpenAI-compatible)."""

    model_config = SettingsConfigDict(env_prefix="LLM_", extra="ignore")

    enabled: bool = Field(
        default=False,
        description="Classify with the LLM; keyword routing is used otherwise and on failure",
    )
    base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL for OpenAI-compatible API",
    )
    api_key: SecretStr = Field(
        default=SecretStr("no-key-required"),
        description="API key (some OpenAI-compatible servers require a value)",
    )
    model: str = Field(default="gpt-4o-mini", description="Model name/ID to use")
    timeout_seconds: float = Field(default=30.0, ge=1.0)
    max_retries: int = Field(default=2, ge=0)
    generate_queries: bool = Field(
        default=True,
        description="Also use the LLM to generate discovery search queries",
    )


class RedisSettings(BaseSettings):
    """Configuration for the Redis proof store."""

    model_config = SettingsConfigDict(env_prefix="REDIS_")

    enabled: bool = Field(
        default=False, description="Persist proofs in Redis instead of process memory"
    )
    host: str = Field(default="localhost")
    port: int = Field(default=6379)
    socket_path: str | None = Field(default=None, description="Path to Unix socket")
    password: SecretStr | None = Field(default=None)
    db: int = Field(default=0, ge=0)
    max_connections: int = Field(default=10, ge=1)
    connect_retries: int = Field(default=5, ge=1)
    proof_ttl_seconds: int = Field(
        default=0,
        ge=0,
        description="Expiry for proof blobs; 0 keeps them forever",
    )


class APISettings(BaseSettings):
    """Configuration for the FastAPI application."""

    model_config = SettingsConfigDict(env_prefix="API_")

    title: str = Field(default="Permissionless Oracle API")
    version: str = Field(default="0.1.0")
    debug: bool = Field(default=False)
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8080)
    workers: int = Field(default=1, ge=1)
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    # API key for public access (optional, leave empty to disable)
    api_key: str = Field(
        default="",
        description="API key for authentication. Leave empty to disable auth.",
    )


class ConsensusSettings(BaseSettings):
    """Configuration for research calls and the consensus core."""

    model_config = SettingsConfigDict(env_prefix="CONSENSUS_")

    default_budget: float = Field(default=0.50, ge=0.0, description="Budget per research call")
    min_sources: int = Field(default=5, ge=1)
    max_sources: int = Field(default=10, ge=1, le=10, description="Fan-out cap per call")
    max_parallel_queries: int = Field(default=10, ge=1, le=10)

    # === Timeouts (seconds) ===
    source_timeout_seconds: float = Field(default=10.0, gt=0.0)
    payment_timeout_seconds: float = Field(default=5.0, gt=0.0)
    classify_timeout_seconds: float = Field(default=30.0, gt=0.0)

    # === Statistics ===
    outlier_k: float = Field(default=2.0, gt=0.0, description="MAD multiplier")
    outlier_policy: Literal["penalize", "exempt"] = Field(
        default="penalize",
        description="Whether excluded outliers are graded as incorrect",
    )
    trust_model: Literal["raw_confidence", "reputation_weighted"] = Field(
        default="raw_confidence",
        description="Vote weighting strategy",
    )


class DiscoverySettings(BaseSettings):
    """Configuration for source discovery."""

    model_config = SettingsConfigDict(env_prefix="DISCOVERY_")

    enabled: bool = Field(default=True)
    budget_fraction: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Share of the research budget discovery may spend",
    )
    max_candidates: int = Field(default=10, ge=1)
    validation_timeout_seconds: float = Field(default=5.0, gt=0.0)
    search_timeout_seconds: float = Field(default=15.0, gt=0.0)
    max_parallel_validations: int = Field(default=5, ge=1)

    apis_guru_enabled: bool = Field(default=True)
    apis_guru_url: str = Field(default="https://api.apis.guru/v2/list.json")
    apis_guru_search_cost: float = Field(default=0.02, ge=0.0)

    curated_enabled: bool = Field(default=True, description="Search the built-in curated list")
    curated_search_cost: float = Field(default=0.01, ge=0.0)
    static_directory_file: str | None = Field(
        default=None,
        description="YAML file with an additional curated directory",
    )


class PaymentSettings(BaseSettings):
    """Configuration for the in-process payment ledger."""

    model_config = SettingsConfigDict(env_prefix="PAYMENT_")

    spend_limit: float | None = Field(
        default=None, ge=0.0, description="Total spend the ledger may authorize"
    )
    max_per_call: float | None = Field(default=0.25, ge=0.0)


class CatalogSettings(BaseSettings):
    """Configuration for the initial source catalog."""

    model_config = SettingsConfigDict(env_prefix="CATALOG_")

    load_defaults: bool = Field(default=True, description="Register the built-in seed sources")
    seed_file: str | None = Field(default=None, description="YAML file with extra sources")


class FetcherSettings(BaseSettings):
    """Configuration for the HTTP fetcher."""

    model_config = SettingsConfigDict(env_prefix="FETCHER_")

    require_https: bool = Field(default=True)
    max_response_bytes: int = Field(default=1_000_000, ge=1024)
    max_connections: int = Field(default=20, ge=1)


class Settings(BaseSettings):
    """
    Root configuration aggregating all service settings.

    Usage:
        settings = get_settings()
        budget = settings.consensus.default_budget
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Nested settings (manually instantiated due to pydantic-settings behavior)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    redis: RedisSettings = Field(default_factory=RedisSettings)
    api: APISettings = Field(default_factory=APISettings)
    consensus: ConsensusSettings = Field(default_factory=ConsensusSettings)
    discovery: DiscoverySettings = Field(default_factory=DiscoverySettings)
    payment: PaymentSettings = Field(default_factory=PaymentSettings)
    catalog: CatalogSettings = Field(default_factory=CatalogSettings)
    fetcher: FetcherSettings = Field(default_factory=FetcherSettings)

    # Environment
    environment: Literal["development", "staging", "production", "test"] = Field(
        default="development"
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached application settings.

    Returns singleton instance, reading from environment on first call.
    """
    return Settings()
