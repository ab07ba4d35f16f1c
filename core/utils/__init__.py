"""
Core Utilities Package

This package contains utility functions and helpers used throughout the application.

Modules:
    - time: Timestamp conversion and historical window helpers
    - formatting: Display formatting for USD amounts
"""

from core.utils.time import (
    to_utc_datetime,
    to_unix_seconds,
    current_utc_datetime,
    daily_series_start,
    hourly_series_start,
)
from core.utils.formatting import format_usd

__all__ = [
    "to_utc_datetime",
    "to_unix_seconds",
    "current_utc_datetime",
    "daily_series_start",
    "hourly_series_start",
    "format_usd",
]
