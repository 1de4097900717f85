"""
Unit tests for schedule evaluation.
"""

from datetime import datetime, timedelta, timezone

import pytest

from analytics_pipeline.core.errors import ConfigurationError
from analytics_pipeline.core.schedule import (
    DIRECT_PROCESSOR_INTERVAL,
    JDBC_PROCESSOR_INTERVAL,
    REPORT_FETCH_INTERVAL,
    next_occurrence,
    validate_schedule,
)

NOW = datetime(2025, 11, 17, 10, 2, 30, tzinfo=timezone.utc)


@pytest.mark.unit
class TestNextOccurrence:
    """Tests for next_occurrence()"""

    def test_every_five_minutes(self):
        assert next_occurrence("*/5 * * * *", NOW) == datetime(2025, 11, 17, 10, 5, tzinfo=timezone.utc)

    def test_daily_midnight(self):
        assert next_occurrence("0 0 * * *", NOW) == datetime(2025, 11, 18, 0, 0, tzinfo=timezone.utc)

    def test_strictly_after_now_on_boundary(self):
        boundary = datetime(2025, 11, 17, 10, 5, tzinfo=timezone.utc)
        assert next_occurrence("*/5 * * * *", boundary) == datetime(2025, 11, 17, 10, 10, tzinfo=timezone.utc)

    def test_deterministic(self):
        assert next_occurrence("*/10 * * * *", NOW) == next_occurrence("*/10 * * * *", NOW)

    def test_naive_now_treated_as_utc(self):
        naive = NOW.replace(tzinfo=None)
        assert next_occurrence("*/5 * * * *", naive) == next_occurrence("*/5 * * * *", NOW)

    def test_other_timezone_converted(self):
        plus_two = NOW.astimezone(timezone(timedelta(hours=2)))
        result = next_occurrence("0 0 * * *", plus_two)
        assert result == datetime(2025, 11, 18, 0, 0, tzinfo=timezone.utc)
        assert result.utcoffset() == timedelta(0)

    @pytest.mark.parametrize("schedule", [None, "", "   "])
    def test_fallback_interval_without_schedule(self, schedule):
        assert next_occurrence(schedule, NOW) == NOW + DIRECT_PROCESSOR_INTERVAL
        assert next_occurrence(schedule, NOW, JDBC_PROCESSOR_INTERVAL) == NOW + timedelta(minutes=10)
        assert next_occurrence(schedule, NOW, REPORT_FETCH_INTERVAL) == NOW + timedelta(hours=1)

    def test_invalid_schedule_raises(self):
        with pytest.raises(ConfigurationError):
            next_occurrence("every five minutes", NOW)


@pytest.mark.unit
class TestValidateSchedule:
    """Tests for validate_schedule()"""

    def test_strips_valid_expression(self):
        assert validate_schedule("  */5 * * * * ") == "*/5 * * * *"

    def test_empty_means_interval_mode(self):
        assert validate_schedule("") is None
        assert validate_schedule(None) is None

    def test_rejects_garbage(self):
        with pytest.raises(ConfigurationError):
            validate_schedule("61 * * * *")
