"""
Tests for pipeline.batch.

Tests cover:
- Selecting unprocessed answers and explicit answer ids
- Continuing past per-answer failures
- Bounded concurrency and single-flight brand lookups
- Cooperative cancellation
- Abort after consecutive database failures
- EmptyTermError propagation
- BatchSummary status and serialization
"""

import asyncio

import pytest

from llm_answer_positions.enrichment.mock_provider import MockProductProvider
from llm_answer_positions.enrichment.resolver import ProductNameResolver
from llm_answer_positions.exceptions import (
    BatchAbortedError,
    DatabaseQueryError,
    EmptyTermError,
)
from llm_answer_positions.pipeline.batch import BatchOptions, BatchSummary, run_batch
from llm_answer_positions.pipeline.models import AnswerRecord, PositionExtraction
from llm_answer_positions.pipeline.orchestrator import PositionExtractor
from llm_answer_positions.storage.db import (
    SQLiteBrandRepository,
    SQLitePositionStore,
    connect,
    init_db_if_needed,
    insert_answer,
    insert_brand,
)


@pytest.fixture
def db_path(tmp_path):
    """Database with brand-nike and four answers; answer 2 has an unknown brand.

    Answers 1 and 3 belong to customer "cust-acme", answer 4 to "cust-other".
    """
    path = str(tmp_path / "positions.db")
    init_db_if_needed(path)
    with connect(path) as conn:
        insert_brand(conn, "brand-nike", "Nike")
        insert_answer(conn, 1, "brand-nike", "Nike Air Max", "2025-11-01T08:00:00Z", competitors=["Adidas"], customer_id="cust-acme")
        insert_answer(conn, 2, "brand-gone", "Nothing to see", "2025-11-02T08:00:00Z")
        insert_answer(conn, 3, "brand-nike", "Adidas then Nike", "2025-11-03T08:00:00Z", competitors=["Adidas"], customer_id="cust-acme")
        insert_answer(conn, 4, "brand-nike", "No mentions", "2025-11-04T08:00:00Z", customer_id="cust-other")
    return path


def _extractor(db_path, provider=None):
    store = SQLitePositionStore(db_path)
    extractor = PositionExtractor(
        brand_repository=SQLiteBrandRepository(db_path),
        enricher=ProductNameResolver([provider] if provider else []),
        store=store,
    )
    return extractor, store


class FakeStore:
    """Store returning canned answers; replace fails when told to."""

    def __init__(self, answers):
        self.answers = list(answers)
        self.selection = None

    def select_unprocessed_answers(self, limit, brand_ids=(), since=None, customer_id=None):
        self.selection = {
            "limit": limit,
            "brand_ids": brand_ids,
            "since": since,
            "customer_id": customer_id,
        }
        return self.answers[:limit]

    def get_answers(self, answer_ids):
        return [a for a in self.answers if a.id in answer_ids]


class FakeExtractor:
    """Extractor stand-in with configurable per-answer behavior."""

    def __init__(self, delay=0.0, errors=None):
        self.delay = delay
        self.errors = errors or {}
        self.in_flight = 0
        self.max_in_flight = 0
        self.processed = []

    async def process(self, record):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            error = self.errors.get(record.id)
            if error is not None:
                raise error
            self.processed.append(record.id)
            return PositionExtraction(answer_id=record.id, brand=None)
        finally:
            self.in_flight -= 1


def _answers(count):
    return [AnswerRecord(id=i, answer_text="text", brand_id="brand-nike") for i in range(1, count + 1)]


class TestRunBatch:
    @pytest.mark.asyncio
    async def test_continues_past_failures(self, db_path):
        """Test that one bad answer doesn't stop the batch."""
        extractor, store = _extractor(db_path)

        summary = await run_batch(extractor, store, BatchOptions(max_concurrency=2))

        assert summary.selected == 4
        assert summary.processed == 3
        assert summary.failed == 1
        assert summary.failures == [
            {
                "answer_id": 2,
                "error_type": "BrandNotFoundError",
                "error_message": "Brand brand-gone not found for answer 2",
            }
        ]
        assert summary.records_written == 5
        assert summary.status == "partial"
        assert len(store.get_position_records(3)) == 2

    @pytest.mark.asyncio
    async def test_processed_answers_not_selected_again(self, db_path):
        extractor, store = _extractor(db_path)
        await run_batch(extractor, store)

        summary = await run_batch(extractor, store)

        assert summary.selected == 1
        assert summary.failed == 1
        assert summary.status == "failed"

    @pytest.mark.asyncio
    async def test_newest_first_with_limit(self, db_path):
        extractor, store = _extractor(db_path)
        seen = []

        summary = await run_batch(
            extractor,
            store,
            BatchOptions(limit=2, max_concurrency=1),
            progress_callback=lambda answer_id, status: seen.append((answer_id, status)),
        )

        assert seen == [(4, "processed"), (3, "processed")]
        assert summary.status == "success"

    @pytest.mark.asyncio
    async def test_brand_filter(self, db_path):
        extractor, store = _extractor(db_path)

        summary = await run_batch(extractor, store, BatchOptions(brand_ids=("brand-nike",)))

        assert summary.selected == 3
        assert summary.failed == 0

    @pytest.mark.asyncio
    async def test_customer_filter(self, db_path):
        """Test that only the customer's unprocessed answers are selected."""
        extractor, store = _extractor(db_path)

        summary = await run_batch(extractor, store, BatchOptions(customer_id="cust-acme"))

        assert summary.selected == 2
        assert summary.processed == 2
        assert store.get_position_records(4) == []
        assert {r.customer_id for r in store.get_position_records(3)} == {"cust-acme"}

    @pytest.mark.asyncio
    async def test_selection_options_passed_to_store(self):
        store = FakeStore(_answers(2))

        await run_batch(
            FakeExtractor(),
            store,
            BatchOptions(limit=5, brand_ids=("brand-nike",), customer_id="cust-acme"),
        )

        assert store.selection == {
            "limit": 5,
            "brand_ids": ["brand-nike"],
            "since": None,
            "customer_id": "cust-acme",
        }

    @pytest.mark.asyncio
    async def test_explicit_answer_ids_reprocess(self, db_path):
        """Test that --answer-id style selection re-extracts processed answers."""
        extractor, store = _extractor(db_path)
        await run_batch(extractor, store, BatchOptions(brand_ids=("brand-nike",)))

        summary = await run_batch(extractor, store, BatchOptions(answer_ids=(3, 1)))

        assert summary.selected == 2
        assert summary.processed == 2
        assert len(store.get_position_records(3)) == 2

    @pytest.mark.asyncio
    async def test_nothing_to_do(self, db_path):
        extractor, store = _extractor(db_path)

        summary = await run_batch(extractor, store, BatchOptions(brand_ids=("brand-unknown",)))

        assert summary.selected == 0
        assert summary.status == "empty"

    @pytest.mark.asyncio
    async def test_single_brand_lookup_per_batch(self, db_path):
        """Test that concurrent answers of one brand share one lookup."""
        provider = MockProductProvider(products={"Nike": ["Air Max"]}, delay_seconds=0.05)
        extractor, store = _extractor(db_path, provider)

        await run_batch(extractor, store, BatchOptions(max_concurrency=4))

        assert provider.call_count == 1
        assert store.get_position_records(1)[0].product_positions == (2,)

    @pytest.mark.asyncio
    async def test_concurrency_bounded(self):
        extractor = FakeExtractor(delay=0.02)

        summary = await run_batch(extractor, FakeStore(_answers(10)), BatchOptions(max_concurrency=3))

        assert summary.processed == 10
        assert 1 < extractor.max_in_flight <= 3

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        cancel_event = asyncio.Event()
        cancel_event.set()
        extractor = FakeExtractor()

        summary = await run_batch(extractor, FakeStore(_answers(3)), cancel_event=cancel_event)

        assert summary.cancelled is True
        assert summary.skipped == 3
        assert extractor.processed == []
        assert summary.status == "partial"

    @pytest.mark.asyncio
    async def test_cancel_mid_batch(self):
        """Test that in-flight answers finish and no new answer starts."""
        cancel_event = asyncio.Event()
        extractor = FakeExtractor()

        def on_progress(answer_id, status):
            if status == "processed":
                cancel_event.set()

        summary = await run_batch(
            extractor,
            FakeStore(_answers(5)),
            BatchOptions(max_concurrency=1),
            cancel_event=cancel_event,
            progress_callback=on_progress,
        )

        assert extractor.processed == [1]
        assert summary.processed == 1
        assert summary.skipped == 4
        assert summary.cancelled is True

    @pytest.mark.asyncio
    async def test_aborts_after_consecutive_db_failures(self):
        errors = {i: DatabaseQueryError("database is locked") for i in range(1, 6)}
        extractor = FakeExtractor(errors=errors)

        with pytest.raises(BatchAbortedError, match="2 consecutive") as exc_info:
            await run_batch(
                extractor,
                FakeStore(_answers(5)),
                BatchOptions(max_concurrency=1, max_consecutive_failures=2),
            )

        summary = exc_info.value.summary
        assert summary.aborted is True
        assert summary.failed == 2
        assert summary.skipped == 3
        assert summary.status == "failed"

    @pytest.mark.asyncio
    async def test_success_resets_failure_streak(self):
        errors = {1: DatabaseQueryError("locked"), 3: DatabaseQueryError("locked")}
        extractor = FakeExtractor(errors=errors)

        summary = await run_batch(
            extractor,
            FakeStore(_answers(4)),
            BatchOptions(max_concurrency=1, max_consecutive_failures=2),
        )

        assert summary.failed == 2
        assert summary.processed == 2
        assert summary.aborted is False

    @pytest.mark.asyncio
    async def test_empty_term_error_propagates(self):
        extractor = FakeExtractor(errors={2: EmptyTermError("empty pattern")})

        with pytest.raises(EmptyTermError):
            await run_batch(extractor, FakeStore(_answers(3)))

    @pytest.mark.asyncio
    async def test_unexpected_errors_recorded(self):
        extractor = FakeExtractor(errors={1: RuntimeError("boom")})

        summary = await run_batch(extractor, FakeStore(_answers(2)))

        assert summary.failures[0]["error_type"] == "RuntimeError"
        assert summary.processed == 1


class TestBatchSummary:
    @pytest.mark.parametrize(
        "counts,status",
        [
            ({}, "empty"),
            ({"selected": 2, "processed": 2}, "success"),
            ({"selected": 2, "processed": 1, "failed": 1}, "partial"),
            ({"selected": 2, "failed": 2}, "failed"),
            ({"selected": 2, "skipped": 2, "cancelled": True}, "partial"),
        ],
    )
    def test_status(self, counts, status):
        assert BatchSummary(batch_id="b", **counts).status == status

    def test_to_dict(self):
        summary = BatchSummary(batch_id="2025-11-02T08-30-00Z", selected=1, processed=1, records_written=2)

        data = summary.to_dict()

        assert data["batch_id"] == "2025-11-02T08-30-00Z"
        assert data["status"] == "success"
        assert data["records_written"] == 2
        assert data["failures"] == []
