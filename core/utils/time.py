"""
Time Utilities

The subgraph reports every timestamp as unix seconds, usually encoded as a
string (``"1589285616"``). The dashboard works with timezone-aware UTC
datetimes and derives the historical windows from them:

- daily series: from the pair's creation time until now
- hourly series: from now minus the lookback window (7 days) until now
"""

from datetime import datetime, timedelta, timezone
from typing import Union


def to_utc_datetime(timestamp: Union[int, float, str]) -> datetime:
    """
    Convert a unix timestamp in seconds to a UTC datetime.

    Strings are accepted because the subgraph serializes BigInt fields as
    strings.

    Raises:
        ValueError: If the timestamp is negative or cannot be parsed

    Examples:
        >>> to_utc_datetime(1589285616)
        datetime.datetime(2020, 5, 12, 12, 13, 36, tzinfo=datetime.timezone.utc)

        >>> to_utc_datetime("1589285616")
        datetime.datetime(2020, 5, 12, 12, 13, 36, tzinfo=datetime.timezone.utc)
    """
    if isinstance(timestamp, str):
        try:
            timestamp = int(timestamp.strip(), 10)
        except ValueError:
            raise ValueError(f"Invalid timestamp string: '{timestamp}'")

    if timestamp < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc)
    except (OSError, OverflowError, ValueError) as e:
        raise ValueError(f"Invalid timestamp: {timestamp}. Error: {e}")


def to_unix_seconds(dt: datetime) -> int:
    """
    Convert a datetime to unix seconds; naive datetimes are taken as UTC.

    Example:
        >>> to_unix_seconds(datetime(2020, 5, 12, 12, 13, 36, tzinfo=timezone.utc))
        1589285616
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


def current_utc_datetime() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def daily_series_start(created_at_timestamp: Union[int, str]) -> datetime:
    """Start of the daily series: the pair's creation time."""
    return to_utc_datetime(created_at_timestamp)


def hourly_series_start(now: datetime, lookback_days: int = 7) -> datetime:
    """
    Start of the hourly series: ``now`` minus the lookback window.

    Example:
        >>> hourly_series_start(datetime(2024, 1, 8, tzinfo=timezone.utc))
        datetime.datetime(2024, 1, 1, 0, 0, tzinfo=datetime.timezone.utc)
    """
    return now - timedelta(days=lookback_days)
