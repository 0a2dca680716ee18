"""
Prompt and response contract for language-model product extraction.

The model is asked for a bare JSON array of product names; parse_product_list
accepts that array, optionally wrapped in a Markdown code fence or surrounded
by stray prose.
"""

import json
from typing import Any

from llm_answer_positions.config.constants import (
    MAX_BRAND_PRODUCTS,
    MAX_ENRICHMENT_ANSWER_CHARS,
    MAX_ENRICHMENT_METADATA_CHARS,
)
from llm_answer_positions.exceptions import EnrichmentProviderError

PRODUCT_EXTRACTION_SYSTEM_PROMPT = (
    "You are a precise text analysis assistant. "
    "Return only valid JSON, no explanations."
)

PRODUCT_EXTRACTION_TEMPLATE = """\
Your task is to extract only real, commercially branded products made by the brand below.

Brand: "{brand_name}"
Context:
{metadata}
Snippet:
{answer_text}

Rules:
1. Include only official products sold by "{brand_name}": specific product names, SKUs, models, or variants that consumers can buy and that appear in the brand's catalog or marketing.
2. Exclude all generics: ingredients, materials, components, drug names, categories (e.g. "pain reliever", "running shoes", "smartphone"), and any descriptive phrases.
3. Exclude competitors and their products entirely.
4. Exclude side effects, conditions, benefits, use-cases, and features (e.g. "noise cancellation", "headache relief", "extra strength formula").
5. If a name is not clearly an official product of "{brand_name}", leave it out.
6. Use both the snippet and your general knowledge, but never invent products.

Output: A JSON array of up to {max_products} valid product names. If none exist, return [].
"""


def _format_metadata(brand_metadata: Any) -> str:
    if not brand_metadata:
        return "No metadata provided"
    if isinstance(brand_metadata, str):
        text = brand_metadata
    else:
        text = json.dumps(brand_metadata, indent=2, ensure_ascii=False, default=str)
    return text[:MAX_ENRICHMENT_METADATA_CHARS]


def build_product_extraction_prompt(
    brand_name: str, brand_metadata: Any, answer_text: str
) -> str:
    """
    Build the user prompt for one brand lookup.

    Metadata is rendered as indented JSON and truncated; the answer snippet is
    truncated to keep requests within provider context limits.

    Example:
        >>> prompt = build_product_extraction_prompt("Nike", None, "Nike Air Max is great")
        >>> 'Brand: "Nike"' in prompt
        True
    """
    return PRODUCT_EXTRACTION_TEMPLATE.format(
        brand_name=brand_name,
        metadata=_format_metadata(brand_metadata),
        answer_text=answer_text[:MAX_ENRICHMENT_ANSWER_CHARS],
        max_products=MAX_BRAND_PRODUCTS,
    )


def _strip_code_fence(content: str) -> str:
    stripped = content.strip()
    if stripped.startswith("```"):
        stripped = stripped.split("\n", 1)[1] if "\n" in stripped else ""
        if stripped.rstrip().endswith("```"):
            stripped = stripped.rstrip()[:-3]
    return stripped.strip()


def parse_product_list(content: str, provider_name: str) -> list[Any]:
    """
    Parse a model reply into a list of raw product names.

    Args:
        content: Raw message content returned by the model
        provider_name: Provider name used in error messages

    Returns:
        The decoded JSON array (items are cleaned later by the resolver)

    Raises:
        EnrichmentProviderError: If no JSON array can be decoded

    Examples:
        >>> parse_product_list('["Air Max", "Pegasus"]', "cerebras")
        ['Air Max', 'Pegasus']
        >>> parse_product_list('```json\\n["Air Max"]\\n```', "cerebras")
        ['Air Max']
    """
    text = _strip_code_fence(content)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("["), text.rfind("]")
        if start == -1 or end <= start:
            raise EnrichmentProviderError(
                f"{provider_name}: response content is not a JSON array"
            ) from None
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError as e:
            raise EnrichmentProviderError(
                f"{provider_name}: response content is not valid JSON: {e}"
            ) from e

    if not isinstance(parsed, list):
        raise EnrichmentProviderError(
            f"{provider_name}: expected a JSON array, got {type(parsed).__name__}"
        )

    return parsed
