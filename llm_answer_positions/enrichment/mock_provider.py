"""
Mock product-name provider for testing.

Implements the ProductNameProvider protocol without making real API calls.
Used for deterministic tests of the resolver, the extractor and the batch
runner without HTTP mocking.

Example:
    >>> provider = MockProductProvider(products={"Nike": ["Air Max", "Pegasus"]})
    >>> await provider.extract_products("Nike", None, "...")
    ['Air Max', 'Pegasus']
    >>> provider.call_count
    1
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

from llm_answer_positions.exceptions import EnrichmentProviderError

logger = logging.getLogger(__name__)


@dataclass
class MockProductProvider:
    """
    Mock provider returning canned product lists.

    Attributes:
        products: Brand name -> product names. Unknown brands get default_products.
        default_products: Products returned for brands not in products
        name: Provider name reported in ProductLookup.source
        delay_seconds: Simulated latency before answering
        fail: If True, every call raises EnrichmentProviderError
        calls: Brand names requested, in call order
    """

    products: dict[str, list[str]] = field(default_factory=dict)
    default_products: list[str] = field(default_factory=list)
    name: str = "mock"
    delay_seconds: float = 0.0
    fail: bool = False
    calls: list[str] = field(default_factory=list)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def extract_products(
        self, brand_name: str, brand_metadata: Any, answer_text: str
    ) -> list[Any]:
        self.calls.append(brand_name)
        logger.debug(f"MockProductProvider lookup for brand: {brand_name}")

        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)

        if self.fail:
            raise EnrichmentProviderError(f"{self.name}: simulated failure")

        return list(self.products.get(brand_name, self.default_products))
