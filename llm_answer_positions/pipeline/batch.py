"""
Batch runner: extracts positions for many answers with bounded concurrency.

Selects answers that have no position records yet (or exactly the requested
answer ids), processes them through a PositionExtractor behind an
asyncio.Semaphore, and reports a BatchSummary. A failing answer is logged and
skipped; the batch carries on. Only a streak of database failures aborts the
batch, and matcher invariant violations (EmptyTermError) always propagate.

Cancellation is cooperative: once cancel_event is set no new answer starts,
and answers already in flight finish normally.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from llm_answer_positions.config.constants import (
    DEFAULT_BATCH_LIMIT,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_MAX_CONSECUTIVE_FAILURES,
)
from llm_answer_positions.exceptions import (
    BatchAbortedError,
    DatabaseError,
    EmptyTermError,
)
from llm_answer_positions.pipeline.models import AnswerRecord, PositionStore
from llm_answer_positions.pipeline.orchestrator import PositionExtractor
from llm_answer_positions.utils.logging import log_with_context
from llm_answer_positions.utils.time import batch_id_from_timestamp

logger = logging.getLogger(__name__)

# progress_callback(answer_id, status) with status "processed", "failed" or "skipped"
ProgressCallback = Callable[[int, str], None]


@dataclass(frozen=True)
class BatchOptions:
    """
    Selection and execution options for one batch.

    Attributes:
        limit: Maximum number of unprocessed answers to select
        max_concurrency: Answers processed at the same time
        max_consecutive_failures: Consecutive DatabaseErrors before aborting
        brand_ids: Only select answers of these brands (empty = all)
        answer_ids: Process exactly these answers, even if already processed
        since: Only select answers created at or after this instant
        customer_id: Only select answers of this customer
    """

    limit: int = DEFAULT_BATCH_LIMIT
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    max_consecutive_failures: int = DEFAULT_MAX_CONSECUTIVE_FAILURES
    brand_ids: tuple[str, ...] = ()
    answer_ids: tuple[int, ...] = ()
    since: datetime | None = None
    customer_id: str | None = None


@dataclass
class BatchSummary:
    """
    Outcome of one batch.

    Attributes:
        batch_id: Timestamp-based batch identifier
        selected: Answers selected for the batch
        processed: Answers whose records were written
        failed: Answers that failed
        skipped: Answers never started (cancellation or abort)
        records_written: Position records written
        failures: {answer_id, error_type, error_message} per failed answer
        cancelled: cancel_event was set during the batch
        aborted: Too many consecutive database failures
    """

    batch_id: str
    selected: int = 0
    processed: int = 0
    failed: int = 0
    skipped: int = 0
    records_written: int = 0
    failures: list[dict[str, Any]] = field(default_factory=list)
    cancelled: bool = False
    aborted: bool = False

    @property
    def status(self) -> str:
        """'empty', 'success', 'partial' or 'failed'."""
        if self.selected == 0:
            return "empty"
        if self.failed == 0 and self.skipped == 0 and not self.aborted:
            return "success"
        if self.processed == 0 and self.failed > 0:
            return "failed"
        return "partial"

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "status": self.status,
            "selected": self.selected,
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "records_written": self.records_written,
            "failures": list(self.failures),
            "cancelled": self.cancelled,
            "aborted": self.aborted,
        }


def select_answers(store: PositionStore, options: BatchOptions) -> list[AnswerRecord]:
    """Pick the answers for a batch: explicit ids, or unprocessed newest first."""
    if options.answer_ids:
        return store.get_answers(list(options.answer_ids))

    return store.select_unprocessed_answers(
        limit=options.limit,
        brand_ids=list(options.brand_ids),
        since=options.since,
        customer_id=options.customer_id,
    )


async def run_batch(
    extractor: PositionExtractor,
    store: PositionStore,
    options: BatchOptions | None = None,
    cancel_event: asyncio.Event | None = None,
    progress_callback: ProgressCallback | None = None,
) -> BatchSummary:
    """
    Extract positions for a batch of answers.

    Args:
        extractor: Extractor shared by every answer of the batch
        store: Store used to select answers
        options: Selection and concurrency options
        cancel_event: When set, no new answer starts
        progress_callback: Called once per answer with (answer_id, status)

    Returns:
        BatchSummary with per-answer failures

    Raises:
        BatchAbortedError: After max_consecutive_failures consecutive
            DatabaseErrors; the partial summary is attached
        EmptyTermError: Matcher invariant violation (a bug, never swallowed)

    Example:
        >>> summary = await run_batch(extractor, store, BatchOptions(limit=100))
        >>> summary.processed, summary.failed
        (98, 2)
    """
    options = options or BatchOptions()
    summary = BatchSummary(batch_id=batch_id_from_timestamp())

    records = select_answers(store, options)
    summary.selected = len(records)

    log_with_context(
        logger,
        logging.INFO,
        f"Starting batch: {len(records)} answers selected",
        context={
            "limit": options.limit,
            "max_concurrency": options.max_concurrency,
            "brand_ids": list(options.brand_ids),
            "answer_ids": list(options.answer_ids),
        },
        batch_id=summary.batch_id,
    )

    if not records:
        return summary

    semaphore = asyncio.Semaphore(options.max_concurrency)
    abort_event = asyncio.Event()
    consecutive_db_failures = 0

    def report(answer_id: int, status: str) -> None:
        if progress_callback is not None:
            progress_callback(answer_id, status)

    def record_failure(record: AnswerRecord, error: Exception) -> None:
        summary.failed += 1
        summary.failures.append(
            {
                "answer_id": record.id,
                "error_type": type(error).__name__,
                "error_message": str(error),
            }
        )
        log_with_context(
            logger,
            logging.ERROR,
            f"Failed to process answer: {type(error).__name__}: {error}",
            answer_id=record.id,
            batch_id=summary.batch_id,
        )
        report(record.id, "failed")

    async def process_one(record: AnswerRecord) -> None:
        nonlocal consecutive_db_failures

        async with semaphore:
            if cancel_event is not None and cancel_event.is_set():
                summary.cancelled = True
                summary.skipped += 1
                report(record.id, "skipped")
                return

            if abort_event.is_set():
                summary.skipped += 1
                report(record.id, "skipped")
                return

            try:
                extraction = await extractor.process(record)
            except EmptyTermError:
                raise
            except DatabaseError as e:
                consecutive_db_failures += 1
                record_failure(record, e)
                if consecutive_db_failures >= options.max_consecutive_failures:
                    abort_event.set()
                return
            except Exception as e:
                consecutive_db_failures = 0
                record_failure(record, e)
                return

            consecutive_db_failures = 0
            summary.processed += 1
            summary.records_written += len(extraction.records)
            report(record.id, "processed")

    results = await asyncio.gather(
        *(process_one(record) for record in records), return_exceptions=True
    )

    # Surface invariant violations; everything else was recorded per answer
    for result in results:
        if isinstance(result, BaseException):
            raise result

    if abort_event.is_set():
        summary.aborted = True
        logger.error(
            f"Batch {summary.batch_id} aborted after "
            f"{options.max_consecutive_failures} consecutive database failures"
        )
        raise BatchAbortedError(
            f"Batch aborted after {options.max_consecutive_failures} consecutive "
            f"database failures ({summary.processed} processed, "
            f"{summary.failed} failed, {summary.skipped} skipped)",
            summary=summary,
        )

    log_with_context(
        logger,
        logging.INFO,
        f"Batch complete: {summary.processed} processed, {summary.failed} failed, "
        f"{summary.skipped} skipped",
        context=summary.to_dict(),
        batch_id=summary.batch_id,
    )
    return summary

