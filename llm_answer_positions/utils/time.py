"""
UTC timestamp utilities for LLM Answer Positions.

All timestamps are UTC with an explicit 'Z' marker. Position records get
their processed_at value from utc_timestamp() when the store writes them,
and every batch is labelled with a run id derived from its start time.

Examples:
    >>> utc_timestamp()
    '2025-11-02T08:30:45Z'
    >>> batch_id_from_timestamp()
    '2025-11-02T08-30-45Z'
"""

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Return current time in UTC with timezone info.

    NEVER use datetime.now() without a timezone or datetime.utcnow();
    both produce naive datetimes.
    """
    return datetime.now(UTC)


def utc_timestamp() -> str:
    """
    Return ISO 8601 timestamp string with 'Z' suffix.

    Format: YYYY-MM-DDTHH:MM:SSZ

    Used for database storage, JSON exports and logging.
    """
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


def batch_id_from_timestamp(dt: datetime | None = None) -> str:
    """
    Generate a batch id slug from a UTC timestamp.

    Format: YYYY-MM-DDTHH-MM-SSZ (hyphens instead of colons) so the id is
    filesystem-safe and still sorts chronologically.

    Args:
        dt: Optional timezone-aware datetime. Defaults to utc_now().

    Returns:
        str: Timestamp slug

    Raises:
        ValueError: If dt is naive (missing timezone)

    Example:
        >>> from datetime import datetime, timezone
        >>> batch_id_from_timestamp(datetime(2025, 11, 2, 8, 30, 45, tzinfo=timezone.utc))
        '2025-11-02T08-30-45Z'
    """
    if dt is None:
        dt = utc_now()

    if dt.tzinfo is None:
        raise ValueError(
            "Datetime must be timezone-aware (use timezone.utc). "
            "Got naive datetime. Use utc_now() or ensure dt has tzinfo set."
        )

    return dt.strftime("%Y-%m-%dT%H-%M-%SZ")


def parse_timestamp(timestamp_str: str) -> datetime:
    """
    Parse ISO 8601 timestamp string to timezone-aware datetime.

    Accepts a 'Z' suffix or an explicit UTC offset ("+00:00"). Used to
    validate the --since filter of the extract command.

    Args:
        timestamp_str: ISO 8601 timestamp string

    Returns:
        datetime: Timezone-aware datetime

    Raises:
        ValueError: If the string is not ISO 8601 or carries no timezone

    Examples:
        >>> parse_timestamp('2025-11-02T08:30:45Z').year
        2025
        >>> parse_timestamp('2025-11-02T08:30:45')
        Traceback (most recent call last):
        ...
        ValueError: Timestamp must include a timezone (e.g. 'Z'): 2025-11-02T08:30:45
    """
    try:
        parsed = datetime.fromisoformat(timestamp_str.replace("Z", "+00:00"))
    except ValueError as e:
        raise ValueError(f"Invalid ISO 8601 timestamp format: {timestamp_str}") from e

    if parsed.tzinfo is None:
        raise ValueError(f"Timestamp must include a timezone (e.g. 'Z'): {timestamp_str}")

    return parsed
