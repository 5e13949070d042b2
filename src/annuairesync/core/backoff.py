"""Retry delay computation.

Delays are a pure function of the retry count so they can be tested
without touching the database or the registry.
"""

from __future__ import annotations

from datetime import datetime, timedelta

# Default retry configuration
DEFAULT_MAX_RETRY_ATTEMPTS = 5
DEFAULT_BACKOFF_BASE = 2
DEFAULT_BACKOFF_UNIT = timedelta(minutes=1)


def backoff(retry_count: int, unit: timedelta = DEFAULT_BACKOFF_UNIT) -> timedelta:
    """Return the delay before the next attempt.

    The delay doubles with each failed attempt: 2, 4, 8, 16... units.

    Args:
        retry_count: Number of failed attempts so far (>= 1).
        unit: Duration of one backoff unit (default: one minute).

    Returns:
        Delay before the record becomes eligible again.

    Raises:
        ValueError: If retry_count is lower than 1.
    """
    if retry_count < 1:
        raise ValueError(f"retry_count must be >= 1, got {retry_count}")
    return unit * (DEFAULT_BACKOFF_BASE**retry_count)


def next_retry_at(
    now: datetime,
    retry_count: int,
    unit: timedelta = DEFAULT_BACKOFF_UNIT,
) -> datetime:
    """Return the time at which a failed record becomes eligible again."""
    return now + backoff(retry_count, unit)
