"""
Tests for utils.time module - UTC timestamp utilities.

This module tests all time utility functions to ensure:
- All timestamps are timezone-aware (UTC)
- Formats are ISO 8601 with a 'Z' suffix
- Batch ids are filesystem-safe (hyphens instead of colons)
- Naive datetimes and malformed strings are rejected
"""

from datetime import UTC, datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from llm_answer_positions.utils.time import (
    batch_id_from_timestamp,
    parse_timestamp,
    utc_now,
    utc_timestamp,
)


class TestUtcNow:
    def test_has_utc_timezone(self):
        """utc_now() should return a timezone-aware datetime in UTC."""
        assert utc_now().tzinfo == UTC

    @freeze_time("2025-11-02 08:30:45")
    def test_frozen_time(self):
        assert utc_now() == datetime(2025, 11, 2, 8, 30, 45, tzinfo=UTC)


class TestUtcTimestamp:
    @freeze_time("2025-11-02 08:30:45.123456")
    def test_format(self):
        """Microseconds are dropped and a 'Z' is appended."""
        assert utc_timestamp() == "2025-11-02T08:30:45Z"


class TestBatchId:
    @freeze_time("2025-11-02 08:30:45")
    def test_default_is_now(self):
        assert batch_id_from_timestamp() == "2025-11-02T08-30-45Z"

    def test_explicit_datetime(self):
        dt = datetime(2025, 1, 5, 23, 59, 1, tzinfo=UTC)

        assert batch_id_from_timestamp(dt) == "2025-01-05T23-59-01Z"

    def test_no_colons(self):
        assert ":" not in batch_id_from_timestamp()

    def test_naive_datetime_rejected(self):
        with pytest.raises(ValueError, match="timezone-aware"):
            batch_id_from_timestamp(datetime(2025, 11, 2, 8, 30, 45))


class TestParseTimestamp:
    def test_z_suffix(self):
        assert parse_timestamp("2025-11-02T08:30:45Z") == datetime(
            2025, 11, 2, 8, 30, 45, tzinfo=UTC
        )

    def test_offset(self):
        parsed = parse_timestamp("2025-11-02T10:30:45+02:00")

        assert parsed.utcoffset() == timedelta(hours=2)
        assert parsed.astimezone(timezone.utc).hour == 8

    def test_round_trip_with_utc_timestamp(self):
        parsed = parse_timestamp(utc_timestamp())

        assert parsed.tzinfo is not None

    def test_missing_timezone(self):
        with pytest.raises(ValueError, match="must include a timezone"):
            parse_timestamp("2025-11-02T08:30:45")

    @pytest.mark.parametrize("value", ["", "yesterday", "2025-13-45T00:00:00Z"])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="Invalid ISO 8601"):
            parse_timestamp(value)
