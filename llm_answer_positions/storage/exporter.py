"""
Data export utilities for LLM Answer Positions.

Exports position records from the SQLite database to CSV or JSON for
external analysis, optionally filtered by brand.

Example:
    >>> export_positions_csv("./output/positions.csv", db_path="./output/positions.db")
    >>> export_positions_json("./output/positions.json", db_path="./output/positions.db",
    ...     brand_id="brand-1")

Security:
    - Uses parameterized SQL queries (no injection)
    - UTF-8 encoding
    - Read-only database access
"""

import csv
import json
import logging
import sqlite3
from pathlib import Path
from typing import Any

from llm_answer_positions.exceptions import DatabaseQueryError
from llm_answer_positions.storage.db import connect

logger = logging.getLogger(__name__)

POSITION_EXPORT_COLUMNS = [
    "answer_id",
    "brand_id",
    "brand_name",
    "entity_type",
    "entity_name",
    "first_position",
    "mention_positions",
    "product_positions",
    "product_names",
    "mention_count",
    "product_mention_count",
    "total_word_count",
    "visibility_index",
    "share_of_answer",
    "has_presence",
    "topic",
    "query_id",
    "collector_type",
    "customer_id",
    "processed_at",
]


def _fetch_positions(db_path: str, brand_id: str | None) -> list[dict[str, Any]]:
    query = """
        SELECT
            answer_id, brand_id, brand_name, entity_type, entity_name,
            first_position, mention_positions_json, product_positions_json,
            product_names_json, mention_count, product_mention_count, total_word_count,
            visibility_index, share_of_answer, has_presence,
            topic, query_id, collector_type, customer_id, processed_at
        FROM position_records
        WHERE 1=1
    """
    params: list[Any] = []

    if brand_id:
        query += " AND brand_id = ?"
        params.append(brand_id)

    query += " ORDER BY answer_id DESC, CASE entity_type WHEN 'brand' THEN 0 ELSE 1 END, id"

    if not Path(db_path).exists():
        raise DatabaseQueryError(f"Database not found: {db_path}")

    try:
        with connect(db_path) as conn:
            rows = conn.execute(query, params).fetchall()
    except sqlite3.Error as e:
        logger.error(f"Database error during export: {e}", exc_info=True)
        raise DatabaseQueryError(f"Failed to read position records: {e}") from e

    results = []
    for row in rows:
        item = dict(row)
        item["mention_positions"] = json.loads(item.pop("mention_positions_json"))
        item["product_positions"] = json.loads(item.pop("product_positions_json"))
        item["product_names"] = json.loads(item.pop("product_names_json"))
        item["has_presence"] = bool(item["has_presence"])
        results.append({column: item[column] for column in POSITION_EXPORT_COLUMNS})
    return results


def export_positions_csv(
    output_path: str, db_path: str, brand_id: str | None = None
) -> int:
    """
    Export position records to a CSV file.

    Position lists and product names are written as JSON arrays (e.g.
    [3, 6] and ["Air Max"]). An empty result still produces a file with
    the header row.

    Args:
        output_path: Path to output CSV file
        db_path: Path to SQLite database
        brand_id: Optional brand filter

    Returns:
        Number of rows exported

    Raises:
        DatabaseQueryError: If the database cannot be read
        OSError: If file cannot be written
    """
    logger.info(f"Exporting position records to CSV: {output_path}")
    rows = _fetch_positions(db_path, brand_id)

    if not rows:
        logger.warning("No position records found matching criteria")

    try:
        with open(output_path, "w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=POSITION_EXPORT_COLUMNS)
            writer.writeheader()
            for row in rows:
                writer.writerow(
                    {
                        **row,
                        "mention_positions": json.dumps(row["mention_positions"]),
                        "product_positions": json.dumps(row["product_positions"]),
                        "product_names": json.dumps(row["product_names"], ensure_ascii=False),
                    }
                )
    except OSError as e:
        logger.error(f"File write error: {e}", exc_info=True)
        raise

    logger.info(f"Exported {len(rows)} position records to {output_path}")
    return len(rows)


def export_positions_json(
    output_path: str, db_path: str, brand_id: str | None = None
) -> int:
    """
    Export position records to a JSON file (array of objects).

    Position lists stay JSON arrays; has_presence is a boolean.

    Returns:
        Number of records exported

    Raises:
        DatabaseQueryError: If the database cannot be read
        OSError: If file cannot be written
    """
    logger.info(f"Exporting position records to JSON: {output_path}")
    rows = _fetch_positions(db_path, brand_id)

    try:
        with open(output_path, "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2, ensure_ascii=False)
    except OSError as e:
        logger.error(f"File write error: {e}", exc_info=True)
        raise

    logger.info(f"Exported {len(rows)} position records to {output_path}")
    return len(rows)
