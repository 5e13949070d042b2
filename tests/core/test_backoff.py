"""Tests for retry delay computation."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from annuairesync.core.backoff import backoff, next_retry_at


class TestBackoff:
    """Tests for backoff function."""

    @pytest.mark.parametrize(
        ("retry_count", "minutes"),
        [(1, 2), (2, 4), (3, 8), (4, 16), (5, 32)],
    )
    def test_doubles_per_attempt(self, retry_count: int, minutes: int) -> None:
        """Delay should be 2^n minutes."""
        assert backoff(retry_count) == timedelta(minutes=minutes)

    def test_is_deterministic(self) -> None:
        """Same input should always give the same delay."""
        assert backoff(3) == backoff(3)

    def test_custom_unit(self) -> None:
        """Delay should scale with the unit."""
        assert backoff(2, unit=timedelta(hours=1)) == timedelta(hours=4)

    @pytest.mark.parametrize("retry_count", [0, -1])
    def test_rejects_non_positive_count(self, retry_count: int) -> None:
        """Retry count below 1 should raise ValueError."""
        with pytest.raises(ValueError):
            backoff(retry_count)


class TestNextRetryAt:
    """Tests for next_retry_at function."""

    def test_adds_delay_to_now(self) -> None:
        """A record reaching retry_count=2 should wait exactly 4 minutes."""
        now = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)
        assert next_retry_at(now, 2) == datetime(2026, 3, 2, 10, 4, tzinfo=UTC)

    def test_always_in_the_future(self) -> None:
        """Next retry time should be strictly after now."""
        now = datetime(2026, 3, 2, 10, 0, tzinfo=UTC)
        for retry_count in range(1, 6):
            assert next_retry_at(now, retry_count) > now
