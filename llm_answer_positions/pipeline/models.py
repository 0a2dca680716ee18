"""
Data types and collaborator protocols of the extraction pipeline.

Key components:
- AnswerRecord: One stored AI answer to analyse (read-only input)
- CompetitorSpec, normalize_competitor_inputs: Canonical competitor input
- BrandRecord: A tracked brand with its metadata
- PositionRecord: One output row per (answer, entity)
- PositionExtraction: All rows derived from one answer
- BrandRepository, ProductEnricher, PositionStore: Collaborator protocols

Every raw competitor shape (plain strings, dicts with "competitor_name" or
"name") is converted to CompetitorSpec at the boundary; nothing past
normalize_competitor_inputs branches on input shape.
"""

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal, Protocol

from llm_answer_positions.config.constants import (
    MAX_BRAND_PRODUCTS,
    MAX_COMPETITOR_PRODUCTS,
)
from llm_answer_positions.extractor.product_names import (
    clean_product_names,
    product_names_from_metadata,
)

EntityType = Literal["brand", "competitor"]


@dataclass(frozen=True)
class CompetitorSpec:
    """A competitor tracked for an answer, with any products known up front."""

    name: str
    products: tuple[str, ...] = ()


@dataclass(frozen=True)
class AnswerRecord:
    """
    One stored AI answer.

    Attributes:
        id: Answer id
        answer_text: Raw answer text (may be empty)
        brand_id: Brand the answer is tracked for
        topic: Optional topic label
        competitors: Competitors tracked for this answer (may be empty)
        query_id: Optional query the answer responds to
        collector_type: Optional collector label (e.g. "chatgpt", "perplexity")
        customer_id: Optional owning customer
        metadata: Free-form answer metadata (may carry "topic_name"/"topic")
    """

    id: int
    answer_text: str
    brand_id: str
    topic: str | None = None
    competitors: tuple[CompetitorSpec, ...] = ()
    query_id: str | None = None
    collector_type: str | None = None
    customer_id: str | None = None
    metadata: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class BrandRecord:
    """A tracked brand: display name plus free-form metadata."""

    id: str
    name: str
    metadata: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class PositionRecord:
    """
    Position and metrics row for one entity in one answer.

    Created once per (answer, entity) and never mutated; re-extraction
    replaces all rows of the answer. The store stamps processed_at when it
    writes the row, so extracting the same answer twice yields equal records.

    product_names holds the entity's resolved products the row was matched
    with, so product_positions can be traced back to names.
    """

    answer_id: int
    brand_id: str
    brand_name: str
    entity_type: EntityType
    entity_name: str
    first_position: int | None
    mention_positions: tuple[int, ...]
    product_positions: tuple[int, ...]
    mention_count: int
    product_mention_count: int
    total_word_count: int
    visibility_index: float
    share_of_answer: float | None
    has_presence: bool
    topic: str | None = None
    query_id: str | None = None
    collector_type: str | None = None
    customer_id: str | None = None
    product_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class PositionExtraction:
    """
    Everything derived from one answer.

    Attributes:
        answer_id: Answer the rows belong to
        brand: The brand row
        competitors: One row per competitor, in input order
        brand_products: Product names the brand was matched with
        total_word_count: Word count of the answer
    """

    answer_id: int
    brand: PositionRecord
    competitors: tuple[PositionRecord, ...] = ()
    brand_products: tuple[str, ...] = ()
    total_word_count: int = 0

    @property
    def records(self) -> list[PositionRecord]:
        """Brand row first, then competitor rows."""
        return [self.brand, *self.competitors]


@dataclass(frozen=True)
class ExtractorSettings:
    """Caps applied to product lists before matching."""

    max_brand_products: int = MAX_BRAND_PRODUCTS
    max_competitor_products: int = MAX_COMPETITOR_PRODUCTS


def _competitor_from_mapping(raw: Mapping[str, Any]) -> CompetitorSpec | None:
    name = raw.get("competitor_name") or raw.get("name")
    if not isinstance(name, str) or not name.strip():
        return None

    products = list(raw.get("products") or [])
    products.extend(product_names_from_metadata(raw.get("metadata")))
    return CompetitorSpec(name=name.strip(), products=tuple(clean_product_names(products)))


def normalize_competitor_inputs(raw: Iterable[Any] | None) -> tuple[CompetitorSpec, ...]:
    """
    Convert raw competitor input into canonical CompetitorSpec records.

    Accepted shapes per item: a plain name string, a mapping with
    "competitor_name" or "name" (optionally "products" and "metadata"), or
    an existing CompetitorSpec. Blank names are dropped. Names differing only
    by case collapse into the first spelling seen, merging their products.

    Example:
        >>> normalize_competitor_inputs(["Adidas", {"competitor_name": "adidas",
        ...     "products": ["Ultraboost"]}, " "])
        (CompetitorSpec(name='Adidas', products=('Ultraboost',)),)
    """
    if not raw:
        return ()

    order: list[str] = []
    names: dict[str, str] = {}
    products: dict[str, list[str]] = {}

    for item in raw:
        if isinstance(item, CompetitorSpec):
            spec = item if item.name.strip() else None
        elif isinstance(item, str):
            spec = CompetitorSpec(name=item.strip()) if item.strip() else None
        elif isinstance(item, Mapping):
            spec = _competitor_from_mapping(item)
        else:
            spec = None

        if spec is None:
            continue

        key = spec.name.strip().lower()
        if key not in names:
            order.append(key)
            names[key] = spec.name.strip()
            products[key] = []
        products[key].extend(spec.products)

    return tuple(
        CompetitorSpec(name=names[key], products=tuple(clean_product_names(products[key])))
        for key in order
    )


class BrandRepository(Protocol):
    """Read access to brands and their competitor metadata."""

    def get_brand(self, brand_id: str) -> BrandRecord | None:
        """Return the brand, or None if it does not exist."""
        ...

    def get_competitor_metadata(self, brand_id: str) -> dict[str, Any]:
        """Return competitor metadata keyed by lowercased competitor name."""
        ...


class ProductEnricher(Protocol):
    """Resolves official product names for a brand (see ProductNameResolver)."""

    async def get_brand_products(
        self,
        brand_id: str,
        brand_name: str,
        brand_metadata: Any,
        answer_text: str,
    ) -> list[str]: ...


class PositionStore(Protocol):
    """
    Persistence of answers and position records.

    replace_position_records deletes the answer's prior rows and inserts the
    new ones in one transaction; the delete always runs first.
    """

    def delete_position_records(self, answer_id: int) -> int: ...

    def insert_position_records(self, records: Sequence[PositionRecord]) -> int: ...

    def replace_position_records(
        self, answer_id: int, records: Sequence[PositionRecord]
    ) -> int: ...

    def select_unprocessed_answers(
        self,
        limit: int,
        brand_ids: Sequence[str] = (),
        since: datetime | None = None,
        customer_id: str | None = None,
    ) -> list[AnswerRecord]: ...

    def get_answers(self, answer_ids: Sequence[int]) -> list[AnswerRecord]: ...
