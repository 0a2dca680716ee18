"""
Brand product-name resolver: prioritized provider chain, timeout, cache.

The resolver is the extraction pipeline's only enrichment collaborator.
Providers are tried in configured order and the first that answers wins.
If every provider fails, or the lookup exceeds the timeout, the brand is
matched by name only (empty product list). Enrichment problems never fail
an answer.

Example:
    >>> resolver = ProductNameResolver([cerebras, gemini], timeout_seconds=20)
    >>> await resolver.get_brand_products("brand-1", "Nike", metadata, answer_text)
    ['Air Max', 'Pegasus']
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from llm_answer_positions.config.constants import (
    DEFAULT_ENRICHMENT_TIMEOUT_SECONDS,
    MAX_BRAND_PRODUCTS,
)
from llm_answer_positions.config.schema import RuntimeConfig
from llm_answer_positions.enrichment.cache import ProductNameCache
from llm_answer_positions.enrichment.models import (
    ProductLookup,
    ProductNameProvider,
    build_provider,
)
from llm_answer_positions.exceptions import EnrichmentError
from llm_answer_positions.extractor.product_names import clean_product_names
from llm_answer_positions.utils.logging import log_with_context

logger = logging.getLogger(__name__)


class ProductNameResolver:
    """
    Resolves a brand's product names through a provider chain.

    Attributes:
        providers: Providers in priority order (may be empty)
        timeout_seconds: Bound on one uncached lookup across the whole chain
        cache: Per-brand single-flight cache
        lookups: Every uncached ProductLookup performed, keyed by brand id
    """

    def __init__(
        self,
        providers: Sequence[ProductNameProvider],
        timeout_seconds: float = DEFAULT_ENRICHMENT_TIMEOUT_SECONDS,
        cache: ProductNameCache | None = None,
    ):
        self.providers = list(providers)
        self.timeout_seconds = timeout_seconds
        self.cache = cache if cache is not None else ProductNameCache()
        self.lookups: dict[str, ProductLookup] = {}

    @classmethod
    def from_config(cls, config: RuntimeConfig) -> "ProductNameResolver":
        """Build providers from the runtime config, keeping their order."""
        return cls(
            providers=[build_provider(p) for p in config.providers],
            timeout_seconds=config.enrichment_timeout_seconds,
        )

    async def get_brand_products(
        self,
        brand_id: str,
        brand_name: str,
        brand_metadata: Any,
        answer_text: str,
    ) -> list[str]:
        """
        Return up to 12 product names for the brand, cached per brand id.

        The answer text of the first answer seen for a brand is the snippet
        sent to the model; later answers of the same brand reuse the result.

        Returns:
            Clean product names; [] when nothing could be resolved
        """
        key = str(brand_id)

        async def fetch() -> list[str]:
            lookup = await self.lookup(brand_name, brand_metadata, answer_text)
            self.lookups[key] = lookup
            log_with_context(
                logger,
                logging.INFO if lookup.outcome in ("found", "empty", "no_providers") else logging.WARNING,
                f"Product lookup for brand '{brand_name}': {lookup.outcome}",
                context={
                    "brand_id": key,
                    "outcome": lookup.outcome,
                    "source": lookup.source,
                    "product_count": len(lookup.products),
                },
            )
            return list(lookup.products)

        return await self.cache.get_or_fetch(key, fetch)

    async def lookup(
        self, brand_name: str, brand_metadata: Any, answer_text: str
    ) -> ProductLookup:
        """
        Run the provider chain once, bounded by timeout_seconds. Not cached.

        Returns:
            ProductLookup with an explicit outcome
        """
        if not self.providers:
            return ProductLookup(products=(), source=None, outcome="no_providers")

        try:
            return await asyncio.wait_for(
                self._try_providers(brand_name, brand_metadata, answer_text),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Product lookup for brand '{brand_name}' timed out after "
                f"{self.timeout_seconds}s, matching by name only"
            )
            return ProductLookup(products=(), source=None, outcome="timeout")

    async def _try_providers(
        self, brand_name: str, brand_metadata: Any, answer_text: str
    ) -> ProductLookup:
        for provider in self.providers:
            try:
                raw = await provider.extract_products(brand_name, brand_metadata, answer_text)
            except EnrichmentError as e:
                logger.warning(f"Provider {provider.name} failed for brand '{brand_name}': {e}")
                continue

            products = clean_product_names(raw, limit=MAX_BRAND_PRODUCTS)
            return ProductLookup(
                products=tuple(products),
                source=provider.name,
                outcome="found" if products else "empty",
            )

        return ProductLookup(products=(), source=None, outcome="all_failed")
