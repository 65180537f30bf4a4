"""
Tests for time utility functions.
"""

from datetime import datetime, timedelta, timezone

from helpers.time_utils import ensure_utc, hours_ago, hours_between


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_naive_treated_as_utc(self):
        """SQLite hands back naive values; they are UTC."""
        naive = datetime(2024, 1, 15, 10, 30)
        result = ensure_utc(naive)
        assert result.tzinfo == timezone.utc
        assert result.hour == 10

    def test_aware_converted(self):
        """Other offsets are converted to UTC."""
        ist = timezone(timedelta(hours=5, minutes=30))
        result = ensure_utc(datetime(2024, 1, 15, 16, 0, tzinfo=ist))
        assert result == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)


class TestHoursBetween:
    """Tests for hours_between function."""

    def test_whole_hours(self):
        start = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert hours_between(start, start + timedelta(hours=5)) == 5

    def test_rounds_to_nearest(self):
        start = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert hours_between(start, start + timedelta(hours=2, minutes=40)) == 3
        assert hours_between(start, start + timedelta(hours=2, minutes=10)) == 2

    def test_mixed_naive_and_aware(self):
        start = datetime(2024, 1, 15, 10, 0)
        end = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
        assert hours_between(start, end) == 2


class TestHoursAgo:
    """Tests for hours_ago function."""

    def test_relative_to_given_now(self):
        now = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc)
        assert hours_ago(24, now=now) == datetime(2024, 1, 14, 10, 0, tzinfo=timezone.utc)

    def test_defaults_to_current_time(self):
        cutoff = hours_ago(1)
        delta = datetime.now(timezone.utc) - cutoff
        assert timedelta(minutes=59) < delta < timedelta(minutes=61)
