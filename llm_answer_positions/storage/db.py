"""
SQLite database schema and operations for LLM Answer Positions.

This module provides database setup with schema versioning and migration
support, plus the SQLite implementations of the pipeline's BrandRepository
and PositionStore protocols. All timestamps are stored in ISO 8601 format
with 'Z' suffix (UTC).

Schema design:
- brands: Tracked brands with free-form JSON metadata
- brand_competitors: Competitors per brand with JSON metadata (products...)
- answers: Stored AI answers (text, brand, competitors, context)
- position_records: One row per (answer, entity) with positions and metrics
- schema_version: Migration tracking

"Unprocessed" is derived, not flagged: an answer is unprocessed when it has
no row in position_records.

Example:
    >>> from llm_answer_positions.storage.db import init_db_if_needed, SQLitePositionStore
    >>> init_db_if_needed("./output/positions.db")
    >>> store = SQLitePositionStore("./output/positions.db")
    >>> answers = store.select_unprocessed_answers(limit=100)
"""

import json
import logging
import sqlite3
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from llm_answer_positions.config.constants import MAX_COMPETITOR_PRODUCTS
from llm_answer_positions.exceptions import (
    DatabaseInitError,
    DatabaseMigrationError,
    DatabaseQueryError,
)
from llm_answer_positions.extractor.product_names import clean_product_names
from llm_answer_positions.pipeline.models import (
    AnswerRecord,
    BrandRecord,
    PositionRecord,
    normalize_competitor_inputs,
)
from llm_answer_positions.utils.time import utc_timestamp

logger = logging.getLogger(__name__)

# Current schema version - increment when adding migrations
CURRENT_SCHEMA_VERSION = 3


def init_db_if_needed(db_path: str) -> None:
    """
    Initialize SQLite database with schema versioning.

    Creates the database file if it doesn't exist, initializes the
    schema_version table, checks the current schema version, and applies any
    needed migrations. Idempotent: a no-op on a current database.

    Args:
        db_path: Filesystem path to SQLite database file.
                 Parent directory is created if needed.

    Raises:
        DatabaseInitError: If the file cannot be created or opened, or the
            schema is newer than this software
        DatabaseMigrationError: If a migration fails (rolled back)

    Example:
        >>> init_db_if_needed("./output/positions.db")
        # First call: creates database with the current schema
        # Subsequent calls: no-op if schema is current
    """
    try:
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DatabaseInitError(f"Cannot create database directory for {db_path}: {e}") from e

    try:
        conn = sqlite3.connect(db_path)
    except sqlite3.Error as e:
        raise DatabaseInitError(f"Cannot open database {db_path}: {e}") from e

    try:
        # Enable foreign key constraints (disabled by default in SQLite)
        conn.execute("PRAGMA foreign_keys = ON")

        conn.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TEXT NOT NULL
            )
        """)
        conn.commit()

        current_version = get_schema_version(conn)

        if current_version < CURRENT_SCHEMA_VERSION:
            logger.info(
                f"Database schema upgrade needed: "
                f"v{current_version} -> v{CURRENT_SCHEMA_VERSION}"
            )
            apply_migrations(conn, current_version, CURRENT_SCHEMA_VERSION)
            logger.info(f"Database schema upgraded to v{CURRENT_SCHEMA_VERSION}")
        elif current_version == CURRENT_SCHEMA_VERSION:
            logger.debug(f"Database schema is current (v{CURRENT_SCHEMA_VERSION})")
        else:
            raise DatabaseInitError(
                f"Database schema version {current_version} is newer than "
                f"expected {CURRENT_SCHEMA_VERSION}. Update your software or "
                f"use a different database file."
            )
    except sqlite3.Error as e:
        raise DatabaseInitError(f"Failed to initialize database {db_path}: {e}") from e
    finally:
        conn.close()


def get_schema_version(conn: sqlite3.Connection) -> int:
    """
    Get current schema version from database (0 for a fresh database).

    Note:
        This function does NOT create the schema_version table.
        Call init_db_if_needed() first to ensure table exists.
    """
    cursor = conn.execute("SELECT MAX(version) FROM schema_version")
    result = cursor.fetchone()[0]

    # MAX() returns None if table is empty
    return result if result is not None else 0


def apply_migrations(
    conn: sqlite3.Connection, from_version: int, to_version: int
) -> None:
    """
    Apply schema migrations from one version to another.

    Each migration runs in its own transaction; schema_version is updated
    in the same transaction. If migration to version N fails, the database
    remains at version N-1.

    Args:
        conn: Active SQLite database connection
        from_version: Starting schema version (0 for fresh database)
        to_version: Target schema version (usually CURRENT_SCHEMA_VERSION)

    Raises:
        DatabaseMigrationError: If any migration fails (transaction rolled back)
            or from_version > to_version (downgrades not supported)
    """
    if from_version > to_version:
        raise DatabaseMigrationError(
            f"Cannot downgrade schema from v{from_version} to v{to_version}. "
            f"Downgrades are not supported. Use a database backup instead."
        )

    migrations = {
        1: _migrate_to_v1,
        2: _migrate_to_v2,
        3: _migrate_to_v3,
    }

    for target_version in range(from_version + 1, to_version + 1):
        logger.info(f"Applying migration to schema version {target_version}")

        migration = migrations.get(target_version)
        if migration is None:
            raise DatabaseMigrationError(
                f"No migration defined for version {target_version}"
            )

        try:
            conn.execute("BEGIN")
            migration(conn)

            timestamp = utc_timestamp()
            conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (target_version, timestamp),
            )

            conn.commit()
            logger.info(
                f"Successfully migrated to schema version {target_version} "
                f"at {timestamp}"
            )

        except sqlite3.Error as e:
            conn.rollback()
            logger.error(
                f"Migration to version {target_version} failed: {e}", exc_info=True
            )
            raise DatabaseMigrationError(
                f"Failed to migrate database to version {target_version}: {e}"
            ) from e


def _migrate_to_v1(conn: sqlite3.Connection) -> None:
    """
    Migrate database schema to version 1.

    Creates the input tables:
    - brands: id, display name, JSON metadata
    - brand_competitors: competitor name and JSON metadata per brand
    - answers: answer text with brand, competitors (JSON) and context
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS brands (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            metadata_json TEXT,
            created_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS brand_competitors (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            brand_id TEXT NOT NULL,
            competitor_name TEXT NOT NULL COLLATE NOCASE,
            metadata_json TEXT,
            created_at TEXT NOT NULL,
            FOREIGN KEY (brand_id) REFERENCES brands(id) ON DELETE CASCADE,
            UNIQUE (brand_id, competitor_name)
        )
    """)

    conn.execute("""
        CREATE TABLE IF NOT EXISTS answers (
            id INTEGER PRIMARY KEY,
            brand_id TEXT NOT NULL,
            answer_text TEXT NOT NULL,
            topic TEXT,
            competitors_json TEXT NOT NULL DEFAULT '[]',
            query_id TEXT,
            collector_type TEXT,
            customer_id TEXT,
            metadata_json TEXT,
            created_at TEXT NOT NULL
        )
    """)

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_answers_brand_created
        ON answers(brand_id, created_at)
    """)

    logger.debug("Created brands, brand_competitors, answers tables (schema v1)")


def _migrate_to_v2(conn: sqlite3.Connection) -> None:
    """
    Migrate database schema to version 2.

    Adds position_records: one row per (answer, entity). Position lists are
    stored as JSON arrays; processed_at is stamped when the row is written.
    Rows are deleted together with their answer.
    """
    conn.execute("""
        CREATE TABLE IF NOT EXISTS position_records (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            answer_id INTEGER NOT NULL,
            brand_id TEXT NOT NULL,
            brand_name TEXT NOT NULL,
            entity_type TEXT NOT NULL CHECK (entity_type IN ('brand', 'competitor')),
            entity_name TEXT NOT NULL,
            first_position INTEGER,
            mention_positions_json TEXT NOT NULL,
            product_positions_json TEXT NOT NULL,
            mention_count INTEGER NOT NULL,
            product_mention_count INTEGER NOT NULL,
            total_word_count INTEGER NOT NULL,
            visibility_index REAL NOT NULL,
            share_of_answer REAL,
            has_presence INTEGER NOT NULL,
            topic TEXT,
            query_id TEXT,
            collector_type TEXT,
            customer_id TEXT,
            processed_at TEXT NOT NULL,
            FOREIGN KEY (answer_id) REFERENCES answers(id) ON DELETE CASCADE
        )
    """)

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_position_records_answer
        ON position_records(answer_id)
    """)

    conn.execute("""
        CREATE INDEX IF NOT EXISTS idx_position_records_brand
        ON position_records(brand_id, entity_type)
    """)

    logger.debug("Created position_records table (schema v2)")


def _migrate_to_v3(conn: sqlite3.Connection) -> None:
    """
    Migrate database schema to version 3.

    Adds position_records.product_names_json: the product names each row was
    matched with. Rows written before v3 get an empty list.
    """
    conn.execute("""
        ALTER TABLE position_records
        ADD COLUMN product_names_json TEXT NOT NULL DEFAULT '[]'
    """)

    logger.debug("Added position_records.product_names_json (schema v3)")


@contextmanager
def connect(db_path: str) -> Iterator[sqlite3.Connection]:
    """
    Open a connection with Row factory and foreign keys enabled.

    Commits on success, rolls back on exception, always closes.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    try:
        conn.execute("PRAGMA foreign_keys = ON")
        yield conn
        conn.commit()
    except BaseException:
        conn.rollback()
        raise
    finally:
        conn.close()


def _dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _loads(value: str | None) -> Any:
    if not value:
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring malformed JSON column value: {value[:80]!r}")
        return None


def _format_since(since: datetime) -> str:
    if since.tzinfo is None:
        raise ValueError("since must be timezone-aware")
    return since.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


# ============================================================================
# Insert helpers (used by the fixture importer and tests)
# ============================================================================


def insert_brand(
    conn: sqlite3.Connection,
    brand_id: str,
    name: str,
    metadata: Mapping[str, Any] | None = None,
) -> None:
    """
    Insert or update a brand.

    Args:
        conn: Active SQLite database connection
        brand_id: Brand identifier
        name: Brand display name
        metadata: Free-form metadata (products, aliases, ...)

    Note:
        Caller commits (connect() commits on exit).
    """
    conn.execute(
        """
        INSERT INTO brands (id, name, metadata_json, created_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            name = excluded.name,
            metadata_json = excluded.metadata_json
        """,
        (brand_id, name, _dumps(metadata), utc_timestamp()),
    )
    logger.debug(f"Upserted brand {brand_id} ({name})")


def insert_competitor(
    conn: sqlite3.Connection,
    brand_id: str,
    competitor_name: str,
    metadata: Mapping[str, Any] | None = None,
) -> None:
    """
    Insert or update a competitor of a brand (name match is case-insensitive).
    """
    conn.execute(
        """
        INSERT INTO brand_competitors (brand_id, competitor_name, metadata_json, created_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT(brand_id, competitor_name) DO UPDATE SET
            metadata_json = excluded.metadata_json
        """,
        (brand_id, competitor_name.strip(), _dumps(metadata), utc_timestamp()),
    )


def insert_answer(
    conn: sqlite3.Connection,
    answer_id: int,
    brand_id: str,
    answer_text: str,
    created_at: str,
    topic: str | None = None,
    competitors: Sequence[Any] = (),
    query_id: str | None = None,
    collector_type: str | None = None,
    customer_id: str | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> None:
    """
    Insert or replace an answer.

    Args:
        conn: Active SQLite database connection
        answer_id: Answer identifier
        brand_id: Brand the answer is tracked for
        answer_text: Raw answer text
        created_at: ISO 8601 timestamp with 'Z' suffix
        topic: Optional topic label
        competitors: Competitor names or {"competitor_name", "products"} dicts
        query_id: Optional query id
        collector_type: Optional collector label
        customer_id: Optional customer id
        metadata: Free-form answer metadata
    """
    specs = normalize_competitor_inputs(competitors)
    competitors_json = json.dumps(
        [{"name": spec.name, "products": list(spec.products)} for spec in specs],
        ensure_ascii=False,
    )

    conn.execute(
        """
        INSERT OR REPLACE INTO answers (
            id, brand_id, answer_text, topic, competitors_json,
            query_id, collector_type, customer_id, metadata_json, created_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            answer_id,
            brand_id,
            answer_text,
            topic,
            competitors_json,
            query_id,
            collector_type,
            customer_id,
            _dumps(metadata),
            created_at,
        ),
    )


def _answer_from_row(row: sqlite3.Row) -> AnswerRecord:
    return AnswerRecord(
        id=row["id"],
        answer_text=row["answer_text"],
        brand_id=row["brand_id"],
        topic=row["topic"],
        competitors=normalize_competitor_inputs(_loads(row["competitors_json"]) or []),
        query_id=row["query_id"],
        collector_type=row["collector_type"],
        customer_id=row["customer_id"],
        metadata=_loads(row["metadata_json"]),
    )


def _record_params(record: PositionRecord, processed_at: str) -> tuple:
    return (
        record.answer_id,
        record.brand_id,
        record.brand_name,
        record.entity_type,
        record.entity_name,
        record.first_position,
        json.dumps(list(record.mention_positions)),
        json.dumps(list(record.product_positions)),
        record.mention_count,
        record.product_mention_count,
        record.total_word_count,
        record.visibility_index,
        record.share_of_answer,
        int(record.has_presence),
        record.topic,
        record.query_id,
        record.collector_type,
        record.customer_id,
        json.dumps(list(record.product_names), ensure_ascii=False),
        processed_at,
    )


_INSERT_POSITION_SQL = """
    INSERT INTO position_records (
        answer_id, brand_id, brand_name, entity_type, entity_name,
        first_position, mention_positions_json, product_positions_json,
        mention_count, product_mention_count, total_word_count,
        visibility_index, share_of_answer, has_presence,
        topic, query_id, collector_type, customer_id, product_names_json, processed_at
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


def position_record_from_row(row: sqlite3.Row) -> PositionRecord:
    """Rebuild a PositionRecord from a position_records row."""
    return PositionRecord(
        answer_id=row["answer_id"],
        brand_id=row["brand_id"],
        brand_name=row["brand_name"],
        entity_type=row["entity_type"],
        entity_name=row["entity_name"],
        first_position=row["first_position"],
        mention_positions=tuple(json.loads(row["mention_positions_json"])),
        product_positions=tuple(json.loads(row["product_positions_json"])),
        mention_count=row["mention_count"],
        product_mention_count=row["product_mention_count"],
        total_word_count=row["total_word_count"],
        visibility_index=row["visibility_index"],
        share_of_answer=row["share_of_answer"],
        has_presence=bool(row["has_presence"]),
        topic=row["topic"],
        query_id=row["query_id"],
        collector_type=row["collector_type"],
        customer_id=row["customer_id"],
        product_names=tuple(json.loads(row["product_names_json"])),
    )


class SQLiteBrandRepository:
    """
    BrandRepository backed by the brands and brand_competitors tables.

    Static competitor products from the configuration are merged into the
    database metadata: their names are added to the "products" list.

    Attributes:
        db_path: SQLite database path
        competitor_products: Competitor name -> product names (from config)
    """

    def __init__(
        self,
        db_path: str,
        competitor_products: Mapping[str, Sequence[str]] | None = None,
    ):
        self.db_path = db_path
        self.competitor_products = {
            name.strip().lower(): list(products)
            for name, products in (competitor_products or {}).items()
        }

    def get_brand(self, brand_id: str) -> BrandRecord | None:
        try:
            with connect(self.db_path) as conn:
                row = conn.execute(
                    "SELECT id, name, metadata_json FROM brands WHERE id = ?",
                    (brand_id,),
                ).fetchone()
        except sqlite3.Error as e:
            raise DatabaseQueryError(f"Failed to load brand {brand_id}: {e}") from e

        if row is None:
            return None

        return BrandRecord(
            id=row["id"], name=row["name"], metadata=_loads(row["metadata_json"])
        )

    def get_competitor_metadata(self, brand_id: str) -> dict[str, Any]:
        """
        Return competitor metadata keyed by lowercased competitor name.

        Product lists are cleaned and capped at MAX_COMPETITOR_PRODUCTS, stored
        products first.

        Example:
            >>> repository.get_competitor_metadata("brand-1")
            {'adidas': {'products': ['Ultraboost', 'Stan Smith']}}
        """
        try:
            with connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT competitor_name, metadata_json FROM brand_competitors "
                    "WHERE brand_id = ? ORDER BY id",
                    (brand_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseQueryError(
                f"Failed to load competitors of brand {brand_id}: {e}"
            ) from e

        metadata: dict[str, Any] = {}
        for row in rows:
            parsed = _loads(row["metadata_json"])
            entry = dict(parsed) if isinstance(parsed, dict) else {}
            if isinstance(entry.get("products"), list):
                entry["products"] = clean_product_names(
                    entry["products"], limit=MAX_COMPETITOR_PRODUCTS
                )
            metadata[row["competitor_name"].strip().lower()] = entry

        for name, products in self.competitor_products.items():
            entry = metadata.setdefault(name, {})
            existing = entry.get("products")
            existing = existing if isinstance(existing, list) else []
            entry["products"] = clean_product_names(
                [*existing, *products], limit=MAX_COMPETITOR_PRODUCTS
            )

        return metadata


class SQLitePositionStore:
    """
    PositionStore backed by the answers and position_records tables.

    Every method opens its own short-lived connection.
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    def delete_position_records(self, answer_id: int) -> int:
        """Delete all position rows of an answer. Returns rows deleted."""
        try:
            with connect(self.db_path) as conn:
                cursor = conn.execute(
                    "DELETE FROM position_records WHERE answer_id = ?", (answer_id,)
                )
                return cursor.rowcount
        except sqlite3.Error as e:
            raise DatabaseQueryError(
                f"Failed to delete position records of answer {answer_id}: {e}"
            ) from e

    def insert_position_records(self, records: Sequence[PositionRecord]) -> int:
        """Insert position rows stamped with the current time. Returns rows inserted."""
        if not records:
            return 0

        processed_at = utc_timestamp()
        try:
            with connect(self.db_path) as conn:
                conn.executemany(
                    _INSERT_POSITION_SQL,
                    [_record_params(record, processed_at) for record in records],
                )
        except sqlite3.Error as e:
            raise DatabaseQueryError(f"Failed to insert position records: {e}") from e

        return len(records)

    def replace_position_records(
        self, answer_id: int, records: Sequence[PositionRecord]
    ) -> int:
        """
        Replace an answer's position rows in one transaction.

        The delete runs before the insert; on any error both are rolled back
        and the previous rows stay in place.

        Raises:
            DatabaseQueryError: If the replacement fails
            ValueError: If a record belongs to another answer
        """
        for record in records:
            if record.answer_id != answer_id:
                raise ValueError(
                    f"Position record for answer {record.answer_id} "
                    f"cannot replace rows of answer {answer_id}"
                )

        processed_at = utc_timestamp()
        try:
            with connect(self.db_path) as conn:
                conn.execute(
                    "DELETE FROM position_records WHERE answer_id = ?", (answer_id,)
                )
                conn.executemany(
                    _INSERT_POSITION_SQL,
                    [_record_params(record, processed_at) for record in records],
                )
        except sqlite3.Error as e:
            raise DatabaseQueryError(
                f"Failed to save position records of answer {answer_id}: {e}"
            ) from e

        return len(records)

    def select_unprocessed_answers(
        self,
        limit: int,
        brand_ids: Sequence[str] = (),
        since: datetime | None = None,
        customer_id: str | None = None,
    ) -> list[AnswerRecord]:
        """
        Select answers with no position rows, newest first.

        Args:
            limit: Maximum number of answers
            brand_ids: Only answers of these brands (empty = all brands)
            since: Only answers created at or after this timezone-aware instant
            customer_id: Only answers of this customer
        """
        query = """
            SELECT a.* FROM answers a
            WHERE NOT EXISTS (
                SELECT 1 FROM position_records p WHERE p.answer_id = a.id
            )
        """
        params: list[Any] = []

        if brand_ids:
            placeholders = ", ".join("?" for _ in brand_ids)
            query += f" AND a.brand_id IN ({placeholders})"
            params.extend(brand_ids)

        if since is not None:
            query += " AND a.created_at >= ?"
            params.append(_format_since(since))

        if customer_id is not None:
            query += " AND a.customer_id = ?"
            params.append(customer_id)

        query += " ORDER BY a.created_at DESC, a.id DESC LIMIT ?"
        params.append(limit)

        try:
            with connect(self.db_path) as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise DatabaseQueryError(f"Failed to select unprocessed answers: {e}") from e

        return [_answer_from_row(row) for row in rows]

    def get_answers(self, answer_ids: Sequence[int]) -> list[AnswerRecord]:
        """Load answers by id, in the order requested; unknown ids are skipped."""
        if not answer_ids:
            return []

        placeholders = ", ".join("?" for _ in answer_ids)
        try:
            with connect(self.db_path) as conn:
                rows = conn.execute(
                    f"SELECT * FROM answers WHERE id IN ({placeholders})",
                    list(answer_ids),
                ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseQueryError(f"Failed to load answers: {e}") from e

        by_id = {row["id"]: _answer_from_row(row) for row in rows}
        missing = [answer_id for answer_id in answer_ids if answer_id not in by_id]
        if missing:
            logger.warning(f"Answers not found: {missing}")

        return [by_id[answer_id] for answer_id in dict.fromkeys(answer_ids) if answer_id in by_id]

    def get_position_records(self, answer_id: int) -> list[PositionRecord]:
        """Stored rows of one answer, brand row first."""
        try:
            with connect(self.db_path) as conn:
                rows = conn.execute(
                    "SELECT * FROM position_records WHERE answer_id = ? "
                    "ORDER BY CASE entity_type WHEN 'brand' THEN 0 ELSE 1 END, id",
                    (answer_id,),
                ).fetchall()
        except sqlite3.Error as e:
            raise DatabaseQueryError(
                f"Failed to load position records of answer {answer_id}: {e}"
            ) from e

        return [position_record_from_row(row) for row in rows]
