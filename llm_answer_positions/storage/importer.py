"""
Fixture importer: loads brands, competitors and answers from a JSON file.

Expected layout::

    {
      "brands": [
        {"id": "brand-1", "name": "Nike",
         "metadata": {"products": ["Air Max"]},
         "competitors": ["Adidas", {"name": "Puma", "metadata": {"products": ["Suede"]}}]}
      ],
      "answers": [
        {"id": 1, "brand_id": "brand-1", "answer_text": "...",
         "created_at": "2025-11-02T08:00:00Z", "competitors": ["Adidas"],
         "topic": "running shoes"}
      ]
    }

Importing the same file twice updates rows in place.
"""

import json
import logging
import sqlite3
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from llm_answer_positions.exceptions import DatabaseQueryError, InvalidAnswerRecordError
from llm_answer_positions.pipeline.models import normalize_competitor_inputs
from llm_answer_positions.storage.db import (
    connect,
    init_db_if_needed,
    insert_answer,
    insert_brand,
    insert_competitor,
)
from llm_answer_positions.utils.time import parse_timestamp, utc_timestamp

logger = logging.getLogger(__name__)


@dataclass
class ImportSummary:
    brands: int = 0
    competitors: int = 0
    answers: int = 0


def _competitor_metadata(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    metadata = dict(raw.get("metadata") or {})
    if raw.get("products"):
        metadata.setdefault("products", list(raw["products"]))
    return metadata or None


def _validate_answer(raw: dict[str, Any], index: int) -> None:
    for key in ("id", "brand_id", "answer_text"):
        if raw.get(key) is None:
            raise InvalidAnswerRecordError(f"answers[{index}] is missing '{key}'")
    if not isinstance(raw["id"], int) or isinstance(raw["id"], bool):
        raise InvalidAnswerRecordError(f"answers[{index}].id must be an integer")
    if "created_at" in raw:
        try:
            parse_timestamp(raw["created_at"])
        except ValueError as e:
            raise InvalidAnswerRecordError(f"answers[{index}].created_at: {e}") from e


def import_fixture(fixture_path: str | Path, db_path: str) -> ImportSummary:
    """
    Load a JSON fixture into the database (created and migrated if needed).

    Everything is written in one transaction: a bad answer leaves the
    database untouched.

    Raises:
        InvalidAnswerRecordError: If the fixture is malformed
        DatabaseError: If the database cannot be initialized or written
        OSError: If the fixture cannot be read
    """
    fixture_path = Path(fixture_path)
    try:
        data = json.loads(fixture_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise InvalidAnswerRecordError(f"Invalid JSON in {fixture_path}: {e}") from e

    if not isinstance(data, dict):
        raise InvalidAnswerRecordError(f"Fixture root must be an object: {fixture_path}")

    brands = data.get("brands") or []
    answers = data.get("answers") or []
    for index, raw in enumerate(answers):
        _validate_answer(raw, index)

    init_db_if_needed(db_path)
    summary = ImportSummary()

    try:
        with connect(db_path) as conn:
            for raw_brand in brands:
                insert_brand(conn, raw_brand["id"], raw_brand["name"], raw_brand.get("metadata"))
                summary.brands += 1

                for raw_competitor in raw_brand.get("competitors") or []:
                    specs = normalize_competitor_inputs([raw_competitor])
                    if not specs:
                        continue
                    insert_competitor(
                        conn,
                        raw_brand["id"],
                        specs[0].name,
                        _competitor_metadata(raw_competitor),
                    )
                    summary.competitors += 1

            for raw in answers:
                insert_answer(
                    conn,
                    answer_id=raw["id"],
                    brand_id=raw["brand_id"],
                    answer_text=raw["answer_text"],
                    created_at=raw.get("created_at") or utc_timestamp(),
                    topic=raw.get("topic"),
                    competitors=raw.get("competitors") or [],
                    query_id=raw.get("query_id"),
                    collector_type=raw.get("collector_type"),
                    customer_id=raw.get("customer_id"),
                    metadata=raw.get("metadata"),
                )
                summary.answers += 1
    except KeyError as e:
        raise InvalidAnswerRecordError(f"Brand entry is missing {e}") from e
    except sqlite3.Error as e:
        raise DatabaseQueryError(f"Failed to import {fixture_path}: {e}") from e

    logger.info(
        f"Imported {summary.brands} brands, {summary.competitors} competitors, "
        f"{summary.answers} answers from {fixture_path}"
    )
    return summary
