"""
Extraction orchestrator: one answer in, one set of position records out.

Flow for a single answer:
1. Load the brand (BrandNotFoundError if missing)
2. Resolve brand product names through the enricher (cached per brand,
   degrades to [] on failure or timeout)
3. Resolve competitor products from competitor metadata
   (case-insensitive lookup; unknown competitors match on name only)
4. Tokenize once, match brand and competitors, compute metrics
5. Build one brand PositionRecord plus one per competitor

process() additionally replaces the answer's stored rows in one transaction.
Steps 4-5 are available on their own as compute_extraction(), which does no
I/O at all.
"""

import logging
from collections.abc import Sequence
from typing import Any

from llm_answer_positions.exceptions import (
    BrandNotFoundError,
    InvalidAnswerRecordError,
)
from llm_answer_positions.extractor.metrics import EntityMetrics, calculate_answer_metrics
from llm_answer_positions.extractor.position_matcher import (
    EntityPositions,
    TrackedEntity,
    calculate_word_positions,
)
from llm_answer_positions.extractor.product_names import (
    clean_product_names,
    product_names_from_metadata,
    topic_from_metadata,
)
from llm_answer_positions.pipeline.models import (
    AnswerRecord,
    BrandRecord,
    BrandRepository,
    CompetitorSpec,
    EntityType,
    ExtractorSettings,
    PositionExtraction,
    PositionRecord,
    PositionStore,
    ProductEnricher,
)
from llm_answer_positions.utils.logging import log_with_context

logger = logging.getLogger(__name__)


def _build_record(
    record: AnswerRecord,
    brand: BrandRecord,
    entity_type: EntityType,
    positions: EntityPositions,
    metrics: EntityMetrics,
    word_count: int,
    topic: str | None,
    product_names: Sequence[str] = (),
) -> PositionRecord:
    return PositionRecord(
        answer_id=record.id,
        brand_id=brand.id,
        brand_name=brand.name,
        entity_type=entity_type,
        entity_name=positions.name,
        first_position=positions.first_position,
        mention_positions=positions.mention_positions,
        product_positions=positions.product_positions,
        mention_count=positions.mention_count,
        product_mention_count=positions.product_mention_count,
        total_word_count=word_count,
        visibility_index=metrics.visibility_index,
        share_of_answer=metrics.share_of_answer,
        has_presence=positions.mention_count > 0,
        topic=topic,
        query_id=record.query_id,
        collector_type=record.collector_type,
        customer_id=record.customer_id,
        product_names=tuple(product_names),
    )


def compute_extraction(
    record: AnswerRecord,
    brand: BrandRecord,
    brand_entity: TrackedEntity,
    competitor_entities: Sequence[TrackedEntity] = (),
) -> PositionExtraction:
    """
    Compute position records from already-resolved names. Pure.

    Args:
        record: The answer
        brand: The answer's brand (ids and display name for the rows)
        brand_entity: Brand name plus resolved product names
        competitor_entities: Competitors with resolved product names

    Returns:
        PositionExtraction with the brand row and one row per competitor
    """
    positions = calculate_word_positions(
        record.answer_text, brand_entity, competitor_entities
    )
    metrics = calculate_answer_metrics(positions)
    topic = record.topic or topic_from_metadata(record.metadata)

    brand_row = _build_record(
        record, brand, "brand", positions.brand, metrics.brand,
        positions.word_count, topic, brand_entity.products,
    )
    competitor_rows = tuple(
        _build_record(
            record, brand, "competitor", entity_positions, entity_metrics,
            positions.word_count, topic, entity.products,
        )
        for entity, entity_positions, entity_metrics in zip(
            competitor_entities, positions.competitors, metrics.competitors, strict=True
        )
    )

    return PositionExtraction(
        answer_id=record.id,
        brand=brand_row,
        competitors=competitor_rows,
        brand_products=brand_entity.products,
        total_word_count=positions.word_count,
    )


class PositionExtractor:
    """
    Computes and persists position records for answers.

    One extractor is meant to live for one batch: the enricher's product
    cache is shared by every answer it processes.

    Attributes:
        brand_repository: Brand and competitor metadata lookups
        enricher: Brand product-name resolver
        store: Position record persistence
        settings: Product list caps

    Example:
        >>> extractor = PositionExtractor(repository, resolver, store)
        >>> extraction = await extractor.process(answer)
        >>> extraction.brand.first_position
        3
    """

    def __init__(
        self,
        brand_repository: BrandRepository,
        enricher: ProductEnricher,
        store: PositionStore,
        settings: ExtractorSettings | None = None,
    ):
        self.brand_repository = brand_repository
        self.enricher = enricher
        self.store = store
        self.settings = settings or ExtractorSettings()

    async def extract(self, record: AnswerRecord) -> PositionExtraction:
        """
        Compute position records for one answer without writing them.

        Raises:
            InvalidAnswerRecordError: If the record has no brand or no text
            BrandNotFoundError: If the brand does not exist
            EmptyTermError: Never expected; signals a matcher bug
        """
        if not record.brand_id:
            raise InvalidAnswerRecordError(f"Answer {record.id} has no associated brand")

        if record.answer_text is None:
            raise InvalidAnswerRecordError(f"Answer {record.id} has no answer text")

        brand = self.brand_repository.get_brand(record.brand_id)
        if brand is None:
            raise BrandNotFoundError(
                f"Brand {record.brand_id} not found for answer {record.id}"
            )

        brand_products = await self.enricher.get_brand_products(
            brand.id, brand.name, brand.metadata, record.answer_text
        )
        brand_entity = TrackedEntity(
            name=brand.name,
            products=tuple(
                clean_product_names(
                    brand_products, limit=self.settings.max_brand_products
                )
            ),
        )

        competitor_metadata = self.brand_repository.get_competitor_metadata(brand.id)
        competitor_entities = [
            self._resolve_competitor(spec, competitor_metadata)
            for spec in record.competitors
        ]

        extraction = compute_extraction(record, brand, brand_entity, competitor_entities)

        logger.debug(
            f"Extracted positions for answer {record.id}: "
            f"{extraction.total_word_count} words, "
            f"brand mentions={extraction.brand.mention_count}, "
            f"{len(extraction.competitors)} competitors"
        )
        return extraction

    async def process(self, record: AnswerRecord) -> PositionExtraction:
        """
        Extract and persist: prior rows for the answer are replaced atomically.

        Raises:
            ExtractionError: See extract()
            DatabaseError: If the replacement fails (rolled back)
        """
        extraction = await self.extract(record)
        written = self.store.replace_position_records(record.id, extraction.records)

        log_with_context(
            logger,
            logging.INFO,
            f"Saved {written} position records",
            context={
                "brand_id": record.brand_id,
                "word_count": extraction.total_word_count,
                "brand_mentions": extraction.brand.mention_count,
            },
            answer_id=record.id,
        )
        return extraction

    def _resolve_competitor(
        self, spec: CompetitorSpec, competitor_metadata: dict[str, Any]
    ) -> TrackedEntity:
        products = list(spec.products)
        metadata = competitor_metadata.get(spec.name.strip().lower())
        if metadata is not None:
            products.extend(product_names_from_metadata(metadata))

        return TrackedEntity(
            name=spec.name,
            products=tuple(
                clean_product_names(
                    products, limit=self.settings.max_competitor_products
                )
            ),
        )
