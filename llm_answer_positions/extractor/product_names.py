"""
Product-name cleanup and metadata helpers.

Product names come from language-model output and from free-form brand or
competitor metadata, so they arrive with decorations that would never match
answer text word-for-word: quotes, parenthesised notes, trailing
" - description" tails. These helpers clean them up before they become
match terms.
"""

import json
import re
from collections.abc import Iterable
from typing import Any

# Metadata keys that may hold product names or aliases
PRODUCT_METADATA_KEYS = (
    "products",
    "product_names",
    "productNames",
    "aliases",
    "alias",
    "keywords",
    "keyword_aliases",
)

_PARENTHESIZED_RE = re.compile(r"\([^)]*\)")
_QUOTE_RE = re.compile(r"[\"`“”]")
_DESCRIPTION_TAIL_RE = re.compile(r"\s*[-–—:]\s+.*$")
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_product_name(name: str) -> str:
    """
    Strip decorations from a product name.

    Apostrophes are kept: the normalizer handles them the same way on both
    sides of a match.

    Examples:
        >>> sanitize_product_name('"Air Max 90" (running)')
        'Air Max 90'
        >>> sanitize_product_name("Ultraboost - a cushioned running shoe")
        'Ultraboost'
    """
    sanitized = _PARENTHESIZED_RE.sub(" ", name)
    sanitized = _QUOTE_RE.sub("", sanitized)
    sanitized = _DESCRIPTION_TAIL_RE.sub("", sanitized)
    return _WHITESPACE_RE.sub(" ", sanitized).strip()


def clean_product_names(names: Iterable[Any], limit: int | None = None) -> list[str]:
    """
    Sanitize, drop empties and deduplicate (case-insensitive, first wins).

    Non-string items are ignored.

    Args:
        names: Raw product names
        limit: Optional maximum number of names to keep

    Returns:
        Clean product names in input order
    """
    cleaned: list[str] = []
    seen: set[str] = set()

    for name in names:
        if not isinstance(name, str):
            continue
        sanitized = sanitize_product_name(name)
        key = sanitized.lower()
        if not sanitized or key in seen:
            continue
        seen.add(key)
        cleaned.append(sanitized)
        if limit is not None and len(cleaned) >= limit:
            break

    return cleaned


def _parse_metadata(metadata: Any) -> dict | None:
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata)
        except json.JSONDecodeError:
            return None
    return metadata if isinstance(metadata, dict) else None


def _flatten_strings(value: Any) -> list[str]:
    if isinstance(value, str):
        return [value]
    if isinstance(value, list | tuple):
        return [item for element in value for item in _flatten_strings(element)]
    return []


def product_names_from_metadata(metadata: Any, limit: int | None = None) -> list[str]:
    """
    Collect product names from brand or competitor metadata.

    Looks at the PRODUCT_METADATA_KEYS in order, flattening nested lists.
    Metadata may be a dict or a JSON-encoded string; anything else yields [].

    Example:
        >>> product_names_from_metadata({"products": ["Ultraboost", ["Stan Smith"]]})
        ['Ultraboost', 'Stan Smith']
    """
    parsed = _parse_metadata(metadata)
    if not parsed:
        return []

    candidates: list[str] = []
    for key in PRODUCT_METADATA_KEYS:
        if key in parsed:
            candidates.extend(_flatten_strings(parsed[key]))

    return clean_product_names(candidates, limit=limit)


def topic_from_metadata(metadata: Any) -> str | None:
    """
    Read a topic label from answer metadata ("topic_name", then "topic").

    Example:
        >>> topic_from_metadata('{"topic": " running shoes "}')
        'running shoes'
    """
    parsed = _parse_metadata(metadata)
    if not parsed:
        return None

    for key in ("topic_name", "topic"):
        value = parsed.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()

    return None
