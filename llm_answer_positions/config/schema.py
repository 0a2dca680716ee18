"""
Configuration schema models for LLM Answer Positions.

This module defines Pydantic models for validating and parsing the
positions.config.yaml file. All models use Pydantic v2 field validators.

Models:
    StorageSettings: SQLite database location
    BatchSettings: Batch size, worker pool bound, abort threshold
    EnrichmentProviderConfig: One product-name provider (priority = list order)
    EnrichmentSettings: Provider chain and lookup timeout
    PositionsConfig: Root configuration model (validates entire YAML)
    RuntimeProvider: Provider configuration with resolved API key
    RuntimeConfig: Runtime configuration with resolved API keys
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from llm_answer_positions.config.constants import (
    DEFAULT_BATCH_LIMIT,
    DEFAULT_ENRICHMENT_TIMEOUT_SECONDS,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
    MAX_COMPETITOR_PRODUCTS,
)
from llm_answer_positions.extractor.product_names import clean_product_names

ProviderName = Literal["cerebras", "openai", "gemini", "metadata"]

# Providers that call a remote API and therefore need a model and a key
NETWORK_PROVIDERS = frozenset({"cerebras", "openai", "gemini"})


class StorageSettings(BaseModel):
    """
    Storage settings.

    Attributes:
        sqlite_db_path: Path to the SQLite database holding brands,
            competitors, answers and position records
    """

    sqlite_db_path: str = "./output/positions.db"

    @field_validator("sqlite_db_path")
    @classmethod
    def validate_sqlite_db_path(cls, v: str) -> str:
        """Validate sqlite_db_path is non-empty."""
        if not v or v.isspace():
            raise ValueError("sqlite_db_path cannot be empty")
        return v


class BatchSettings(BaseModel):
    """
    Batch runner settings.

    Attributes:
        limit: Maximum number of answers selected per batch
        max_concurrency: Answers processed at the same time (1-50)
        max_consecutive_failures: Consecutive database failures before the
            batch aborts
    """

    limit: int = DEFAULT_BATCH_LIMIT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES

    @field_validator("limit", "max_consecutive_failures")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate counts are at least 1."""
        if v < 1:
            raise ValueError(f"must be >= 1, got: {v}")
        return v

    @field_validator("max_concurrency")
    @classmethod
    def validate_max_concurrency(cls, v: int) -> int:
        """Validate max_concurrency is within 1-50."""
        if not 1 <= v <= 50:
            raise ValueError(f"max_concurrency must be between 1 and 50, got: {v}")
        return v


class EnrichmentProviderConfig(BaseModel):
    """
    One product-name provider.

    Providers are tried in the order they are listed; the first one that
    answers wins.

    Attributes:
        provider: "cerebras", "openai", "gemini" or "metadata"
        model_name: Model identifier (required for network providers)
        env_api_key: Environment variable holding the API key (required for
            network providers)
        base_url: Optional API base URL override
        temperature: Sampling temperature for the extraction prompt
        max_tokens: Output token cap for the extraction prompt

    Example:
        enrichment:
          providers:
            - provider: cerebras
              model_name: qwen-3-235b-a22b-instruct-2507
              env_api_key: CEREBRAS_API_KEY
            - provider: metadata
    """

    provider: ProviderName
    model_name: str | None = None
    env_api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.1
    max_tokens: int = 1000

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        """Validate temperature is between 0.0 and 2.0."""
        if not 0.0 <= v <= 2.0:
            raise ValueError(f"temperature must be between 0.0 and 2.0, got: {v}")
        return v

    @field_validator("max_tokens")
    @classmethod
    def validate_max_tokens(cls, v: int) -> int:
        """Validate max_tokens is positive."""
        if v < 1:
            raise ValueError(f"max_tokens must be >= 1, got: {v}")
        return v

    @model_validator(mode="after")
    def validate_network_fields(self) -> "EnrichmentProviderConfig":
        """Network providers need a model name and an API key variable."""
        if self.provider in NETWORK_PROVIDERS:
            if not self.model_name or self.model_name.isspace():
                raise ValueError(f"model_name is required for provider '{self.provider}'")
            if not self.env_api_key or self.env_api_key.isspace():
                raise ValueError(f"env_api_key is required for provider '{self.provider}'")
        return self


class EnrichmentSettings(BaseModel):
    """
    Product-name enrichment settings.

    Attributes:
        timeout_seconds: Time allowed for one brand lookup across all
            providers; on timeout the brand is matched by name only
        providers: Prioritized provider list (may be empty: name-only matching)
    """

    timeout_seconds: float = DEFAULT_ENRICHMENT_TIMEOUT_SECONDS
    providers: list[EnrichmentProviderConfig] = Field(default_factory=list)

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError(f"timeout_seconds must be positive, got: {v}")
        return v


def _merge_competitor_products(v: dict[str, list[str]]) -> dict[str, list[str]]:
    merged: dict[str, list[str]] = {}
    display: dict[str, str] = {}

    for name, products in v.items():
        stripped = name.strip()
        if not stripped:
            raise ValueError("competitor_products keys cannot be empty")
        key = stripped.lower()
        display.setdefault(key, stripped)
        merged.setdefault(key, []).extend(products)

    return {
        display[key]: clean_product_names(products, limit=MAX_COMPETITOR_PRODUCTS)
        for key, products in merged.items()
    }


class PositionsConfig(BaseModel):
    """
    Root configuration model for positions.config.yaml.

    Attributes:
        storage: Storage settings
        batch: Batch runner settings
        enrichment: Product-name enrichment settings
        competitor_products: Static competitor metadata, competitor name ->
            product names. Keys are case-insensitive; "Adidas" and "adidas"
            are merged under the first spelling.
    """

    storage: StorageSettings = Field(default_factory=StorageSettings)
    batch: BatchSettings = Field(default_factory=BatchSettings)
    enrichment: EnrichmentSettings = Field(default_factory=EnrichmentSettings)
    competitor_products: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("competitor_products")
    @classmethod
    def validate_competitor_products(
        cls, v: dict[str, list[str]]
    ) -> dict[str, list[str]]:
        """Trim, merge case-insensitive duplicates and cap product lists."""
        return _merge_competitor_products(v)


class RuntimeProvider(BaseModel):
    """
    Provider configuration with the API key resolved from the environment.

    api_key is None for the metadata provider. NEVER log api_key.
    """

    provider: ProviderName
    model_name: str | None = None
    api_key: str | None = None
    base_url: str | None = None
    temperature: float = 0.1
    max_tokens: int = 1000


class RuntimeConfig(BaseModel):
    """
    Runtime configuration: validated YAML plus resolved secrets.

    Attributes:
        storage: Storage settings
        batch: Batch runner settings
        enrichment_timeout_seconds: Timeout for one brand lookup
        providers: Resolved providers in priority order
        competitor_products: Static competitor metadata
    """

    storage: StorageSettings
    batch: BatchSettings
    enrichment_timeout_seconds: float = DEFAULT_ENRICHMENT_TIMEOUT_SECONDS
    providers: list[RuntimeProvider] = Field(default_factory=list)
    competitor_products: dict[str, list[str]] = Field(default_factory=dict)
