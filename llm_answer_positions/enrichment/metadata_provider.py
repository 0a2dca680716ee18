"""Product names read straight from brand metadata (no network)."""

from typing import Any

from llm_answer_positions.config.constants import MAX_BRAND_PRODUCTS
from llm_answer_positions.exceptions import EnrichmentProviderError
from llm_answer_positions.extractor.product_names import product_names_from_metadata


class MetadataProvider:
    """
    Reads products/aliases/keywords from the brand's metadata.

    Raises EnrichmentProviderError when the metadata lists no product names,
    so a chain like [metadata, cerebras] uses the curated list when one
    exists and asks the model otherwise.
    """

    name = "metadata"

    async def extract_products(
        self, brand_name: str, brand_metadata: Any, answer_text: str
    ) -> list[Any]:
        products = product_names_from_metadata(brand_metadata, limit=MAX_BRAND_PRODUCTS)
        if not products:
            raise EnrichmentProviderError(
                f"metadata: no product names in metadata for brand '{brand_name}'"
            )
        return products
