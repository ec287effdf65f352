"""
Tests for the retry backoff schedule.
"""

from datetime import UTC, datetime, timedelta

import pytest

from txmsg.backoff import backoff_interval, next_retry_time


class TestBackoffInterval:
    """interval = init + round(retry_times * multiplier), capped at max."""

    @pytest.mark.parametrize(
        ("retry_times", "expected"),
        [
            (0, 1000),
            (1, 1002),
            (2, 1004),
            (3, 1006),
        ],
    )
    def test_schedule(self, retry_times, expected):
        assert backoff_interval(1000, 2.0, 5000, retry_times) == expected

    def test_capped_at_max(self):
        assert backoff_interval(1000, 2000.0, 5000, 1) == 3000
        assert backoff_interval(1000, 2000.0, 5000, 2) == 5000
        assert backoff_interval(1000, 2000.0, 5000, 10) == 5000

    def test_init_above_max_is_capped(self):
        assert backoff_interval(8000, 1.0, 5000, 0) == 5000

    def test_rounds_half_up(self):
        # 1 * 2.5 = 2.5 -> 3 (not banker's rounding to 2)
        assert backoff_interval(1000, 2.5, 60000, 1) == 1003
        # 1 * 0.4 = 0.4 -> 0
        assert backoff_interval(1000, 0.4, 60000, 1) == 1000

    def test_monotonic_in_retry_times(self):
        values = [backoff_interval(1000, 1.5, 60000, r) for r in range(20)]
        assert values == sorted(values)

    def test_negative_retry_times_rejected(self):
        with pytest.raises(ValueError, match="retry_times"):
            backoff_interval(1000, 2.0, 5000, -1)


class TestNextRetryTime:
    def test_adds_interval_in_milliseconds(self):
        reference = datetime(2024, 1, 1, tzinfo=UTC)

        result = next_retry_time(reference, 1000, 2.0, 5000, 1)

        assert result == reference + timedelta(milliseconds=1002)

    def test_first_registration(self):
        reference = datetime(2024, 1, 1, tzinfo=UTC)

        assert next_retry_time(reference, 1000, 2.0, 5000, 0) == reference + timedelta(seconds=1)
