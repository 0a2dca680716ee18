"""
Tests for pipeline.orchestrator.

Tests cover:
- End-to-end extraction for one answer against a SQLite database
- No-mention and multi-competitor scenarios
- Idempotent re-extraction (no duplicate rows)
- Competitor product resolution (answer input, stored metadata, config)
- Enrichment failures degrading to name-only matching
- Invalid answers and missing brands
- compute_extraction() without I/O
"""

import pytest

from llm_answer_positions.enrichment.metadata_provider import MetadataProvider
from llm_answer_positions.enrichment.mock_provider import MockProductProvider
from llm_answer_positions.enrichment.resolver import ProductNameResolver
from llm_answer_positions.exceptions import (
    BrandNotFoundError,
    InvalidAnswerRecordError,
)
from llm_answer_positions.extractor.position_matcher import TrackedEntity
from llm_answer_positions.pipeline.models import (
    AnswerRecord,
    BrandRecord,
    CompetitorSpec,
    ExtractorSettings,
)
from llm_answer_positions.pipeline.orchestrator import (
    PositionExtractor,
    compute_extraction,
)
from llm_answer_positions.storage.db import (
    SQLiteBrandRepository,
    SQLitePositionStore,
    connect,
    init_db_if_needed,
    insert_answer,
    insert_brand,
    insert_competitor,
)

SAMPLE_TEXT = "I love Nike shoes and Nike Air Max"


@pytest.fixture
def db_path(tmp_path):
    path = str(tmp_path / "positions.db")
    init_db_if_needed(path)
    with connect(path) as conn:
        insert_brand(conn, "brand-nike", "Nike", {"products": ["Air Max"]})
        insert_competitor(conn, "brand-nike", "Adidas", {"products": ["Ultraboost"]})
        for answer_id in range(1, 6):
            insert_answer(conn, answer_id, "brand-nike", "placeholder", "2025-11-02T08:00:00Z")
    return path


@pytest.fixture
def store(db_path):
    return SQLitePositionStore(db_path)


@pytest.fixture
def extractor(db_path, store):
    return PositionExtractor(
        brand_repository=SQLiteBrandRepository(db_path),
        enricher=ProductNameResolver([MetadataProvider()]),
        store=store,
    )


def _answer(answer_id=1, text=SAMPLE_TEXT, competitors=(), brand_id="brand-nike", **kwargs):
    return AnswerRecord(
        id=answer_id,
        answer_text=text,
        brand_id=brand_id,
        competitors=tuple(competitors),
        **kwargs,
    )


class TestExtract:
    @pytest.mark.asyncio
    async def test_brand_positions_and_products(self, extractor):
        """Test the brand row for the canonical sample sentence."""
        extraction = await extractor.extract(_answer(competitors=[CompetitorSpec("Adidas")]))

        brand = extraction.brand
        assert brand.entity_type == "brand"
        assert brand.mention_positions == (3, 6, 7)
        assert brand.product_positions == (7,)
        assert brand.first_position == 3
        assert brand.mention_count == 3
        assert brand.product_mention_count == 1
        assert brand.total_word_count == 8
        assert brand.visibility_index == 0.71
        assert brand.share_of_answer == 100.0
        assert brand.has_presence is True
        assert extraction.brand_products == ("Air Max",)
        assert brand.product_names == ("Air Max",)

        adidas = extraction.competitors[0]
        assert adidas.entity_type == "competitor"
        assert adidas.entity_name == "Adidas"
        assert adidas.brand_id == "brand-nike"
        assert adidas.first_position is None
        assert adidas.share_of_answer == 0.0
        assert adidas.has_presence is False
        assert adidas.product_names == ("Ultraboost",)

    @pytest.mark.asyncio
    async def test_no_brand_mentions(self, extractor):
        """Test the brand row when neither brand nor products appear."""
        extraction = await extractor.extract(_answer(text="A generic answer about running shoes"))

        brand = extraction.brand
        assert brand.first_position is None
        assert brand.mention_count == 0
        assert brand.visibility_index == 0.0
        assert brand.share_of_answer is None
        assert brand.has_presence is False
        assert brand.total_word_count == 6
        assert extraction.competitors == ()

    @pytest.mark.asyncio
    async def test_multi_competitor_shares(self, extractor):
        extraction = await extractor.extract(
            _answer(
                text="Nike and Nike beat Adidas and Puma",
                competitors=[CompetitorSpec("Adidas"), CompetitorSpec("Puma")],
            )
        )

        assert extraction.brand.share_of_answer == 50.0
        assert [c.share_of_answer for c in extraction.competitors] == [25.0, 25.0]

    @pytest.mark.asyncio
    async def test_competitor_products_from_metadata(self, extractor):
        """Test that stored competitor metadata is found case-insensitively."""
        extraction = await extractor.extract(
            _answer(text="adidas Ultraboost rocks", competitors=[CompetitorSpec("ADIDAS")])
        )

        competitor = extraction.competitors[0]
        assert competitor.entity_name == "ADIDAS"
        assert competitor.mention_positions == (1, 2)
        assert competitor.product_positions == (2,)

    @pytest.mark.asyncio
    async def test_competitor_products_from_answer_and_config(self, db_path, store):
        """Test that answer, database and config products are all used."""
        extractor = PositionExtractor(
            brand_repository=SQLiteBrandRepository(
                db_path, competitor_products={"Puma": ["Suede"]}
            ),
            enricher=ProductNameResolver([]),
            store=store,
        )

        extraction = await extractor.extract(
            _answer(
                text="Samba, Suede and Ultraboost",
                competitors=[
                    CompetitorSpec("Adidas", ("Samba",)),
                    CompetitorSpec("Puma"),
                ],
            )
        )

        adidas, puma = extraction.competitors
        assert adidas.product_positions == (1, 4)
        assert puma.product_positions == (2,)

    @pytest.mark.asyncio
    async def test_competitor_products_capped(self, store, db_path):
        extractor = PositionExtractor(
            brand_repository=SQLiteBrandRepository(db_path),
            enricher=ProductNameResolver([]),
            store=store,
            settings=ExtractorSettings(max_competitor_products=1),
        )

        extraction = await extractor.extract(
            _answer(text="Samba and Gazelle", competitors=[CompetitorSpec("Adidas", ("Samba", "Gazelle"))])
        )

        assert extraction.competitors[0].product_positions == (1,)
        assert extraction.competitors[0].product_names == ("Samba",)

    @pytest.mark.asyncio
    async def test_enrichment_failure_matches_by_name(self, db_path, store):
        """Test that failing providers never fail the answer."""
        extractor = PositionExtractor(
            brand_repository=SQLiteBrandRepository(db_path),
            enricher=ProductNameResolver([MockProductProvider(fail=True)]),
            store=store,
        )

        extraction = await extractor.extract(_answer())

        assert extraction.brand_products == ()
        assert extraction.brand.mention_positions == (3, 6)
        assert extraction.brand.product_positions == ()

    @pytest.mark.asyncio
    async def test_topic_and_context_copied(self, extractor):
        extraction = await extractor.extract(
            _answer(
                metadata={"topic_name": "sneakers"},
                query_id="q-1",
                collector_type="chatgpt",
                customer_id="cust-9",
            )
        )

        assert extraction.brand.topic == "sneakers"
        assert extraction.brand.query_id == "q-1"
        assert extraction.brand.collector_type == "chatgpt"
        assert extraction.brand.customer_id == "cust-9"

    @pytest.mark.asyncio
    async def test_explicit_topic_wins(self, extractor):
        extraction = await extractor.extract(
            _answer(topic="running", metadata={"topic": "sneakers"})
        )

        assert extraction.brand.topic == "running"

    @pytest.mark.asyncio
    async def test_empty_text(self, extractor):
        extraction = await extractor.extract(_answer(text=""))

        assert extraction.total_word_count == 0
        assert extraction.brand.visibility_index == 0.0

    @pytest.mark.asyncio
    async def test_missing_brand(self, extractor):
        with pytest.raises(BrandNotFoundError, match="brand-missing"):
            await extractor.extract(_answer(brand_id="brand-missing"))

    @pytest.mark.asyncio
    async def test_blank_brand_id(self, extractor):
        with pytest.raises(InvalidAnswerRecordError, match="no associated brand"):
            await extractor.extract(_answer(brand_id=""))

    @pytest.mark.asyncio
    async def test_missing_text(self, extractor):
        with pytest.raises(InvalidAnswerRecordError, match="no answer text"):
            await extractor.extract(_answer(text=None))


class TestProcess:
    @pytest.mark.asyncio
    async def test_persists_rows(self, extractor, store):
        extraction = await extractor.process(_answer(competitors=[CompetitorSpec("Adidas")]))

        assert store.get_position_records(1) == extraction.records

    @pytest.mark.asyncio
    async def test_reprocessing_is_idempotent(self, extractor, store):
        """Test that processing the same answer twice leaves one set of rows."""
        answer = _answer(competitors=[CompetitorSpec("Adidas")])

        first = await extractor.process(answer)
        second = await extractor.process(answer)

        assert first.records == second.records
        assert len(store.get_position_records(1)) == 2

    @pytest.mark.asyncio
    async def test_brand_lookup_cached_across_answers(self, db_path, store):
        provider = MockProductProvider(products={"Nike": ["Air Max"]})
        extractor = PositionExtractor(
            brand_repository=SQLiteBrandRepository(db_path),
            enricher=ProductNameResolver([provider]),
            store=store,
        )

        for answer_id in (1, 2, 3):
            await extractor.process(_answer(answer_id=answer_id))

        assert provider.call_count == 1


class TestComputeExtraction:
    def test_pure_computation(self):
        """Test that rows can be computed without any collaborator."""
        extraction = compute_extraction(
            AnswerRecord(id=7, answer_text=SAMPLE_TEXT, brand_id="b"),
            BrandRecord(id="b", name="Nike"),
            TrackedEntity("Nike", ("Air Max",)),
            [TrackedEntity("Love")],
        )

        assert extraction.answer_id == 7
        assert extraction.brand.mention_positions == (3, 6, 7)
        assert extraction.competitors[0].mention_positions == (2,)
        assert [r.entity_type for r in extraction.records] == ["brand", "competitor"]
