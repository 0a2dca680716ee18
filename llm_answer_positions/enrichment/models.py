"""
Product-name provider abstractions.

Key components:
- ProductNameProvider: Protocol every provider implements
- ProductLookup: Explicit result of one brand lookup (products, source, outcome)
- build_provider: Factory turning a RuntimeProvider into a provider instance

Example:
    >>> provider = build_provider(runtime_provider)
    >>> products = await provider.extract_products("Nike", None, answer_text)
"""

from dataclasses import dataclass
from typing import Any, Literal, Protocol

from llm_answer_positions.config.schema import RuntimeProvider

LookupOutcome = Literal["found", "empty", "all_failed", "timeout", "no_providers"]


class ProductNameProvider(Protocol):
    """
    Source of official product names for a brand.

    Implementations raise EnrichmentError subclasses on failure so that the
    resolver can fall through to the next provider.

    Attributes:
        name: Provider identifier used in logs and ProductLookup.source
    """

    name: str

    async def extract_products(
        self, brand_name: str, brand_metadata: Any, answer_text: str
    ) -> list[Any]:
        """
        Return raw product names for the brand (cleaned by the caller).

        Raises:
            EnrichmentProviderError: Provider failed or returned garbage
            EnrichmentTimeoutError: Provider timed out after retries
        """
        ...


@dataclass(frozen=True)
class ProductLookup:
    """
    Result of one brand lookup across the provider chain.

    Attributes:
        products: Clean product names (0-12)
        source: Name of the provider that answered, None if none did
        outcome: "found" (non-empty answer), "empty" (a provider answered []),
            "all_failed", "timeout" or "no_providers"
    """

    products: tuple[str, ...]
    source: str | None
    outcome: LookupOutcome


def build_provider(config: RuntimeProvider) -> ProductNameProvider:
    """
    Create a provider from its resolved runtime configuration.

    Supported providers:
    - "cerebras": Cerebras chat completions
    - "openai": OpenAI chat completions
    - "gemini": Google Gemini generateContent
    - "metadata": Product names from brand metadata (no network)

    Raises:
        ValueError: If the provider is unknown

    Security:
        The api_key is passed to the provider constructor only, never logged.
    """
    if config.provider in ("cerebras", "openai"):
        # Import here to keep provider modules lazy
        from llm_answer_positions.enrichment.openai_compatible import (
            DEFAULT_API_URLS,
            OpenAICompatibleProvider,
        )

        return OpenAICompatibleProvider(
            name=config.provider,
            model_name=config.model_name,
            api_key=config.api_key,
            api_url=config.base_url or DEFAULT_API_URLS[config.provider],
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    if config.provider == "gemini":
        from llm_answer_positions.enrichment.gemini_provider import (
            GEMINI_API_BASE_URL,
            GeminiProvider,
        )

        return GeminiProvider(
            model_name=config.model_name,
            api_key=config.api_key,
            base_url=config.base_url or GEMINI_API_BASE_URL,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
        )

    if config.provider == "metadata":
        from llm_answer_positions.enrichment.metadata_provider import (
            MetadataProvider,
        )

        return MetadataProvider()

    raise ValueError(
        f"Unsupported enrichment provider: '{config.provider}'. "
        f"Supported providers: cerebras, openai, gemini, metadata"
    )
