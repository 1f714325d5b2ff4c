"""
Tests for due-date scheduling
"""

import pytest
from datetime import datetime, timezone, timedelta

from docflow.scheduling import (
    default_due_date, days_per_stage, stage_due_date, stage_due_dates,
    is_overdue, duration_minutes
)


NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


class TestDefaultDueDate:

    def test_five_days_per_stage(self):
        assert default_due_date(3, NOW) == NOW + timedelta(days=15)

    def test_custom_days_per_stage(self):
        assert default_due_date(2, NOW, days_per_stage=7) == NOW + timedelta(days=14)


class TestStageDueDates:
    """Test the even split of remaining days across stages"""

    def test_even_split(self):
        due = NOW + timedelta(days=15)

        assert stage_due_dates(due, 3, NOW) == [
            NOW + timedelta(days=5), NOW + timedelta(days=10), NOW + timedelta(days=15)
        ]

    def test_partial_day_rounds_up_before_division(self):
        # 10.5 days -> 11 whole days -> 5 per stage
        due = NOW + timedelta(days=10, hours=12)

        assert days_per_stage(due, 2, NOW) == 5
        assert stage_due_date(due, 1, 2, NOW) == NOW + timedelta(days=10)

    def test_remainder_is_dropped(self):
        # 10 days over 3 stages -> 3 days each, last stage due before the workflow
        due = NOW + timedelta(days=10)

        dates = stage_due_dates(due, 3, NOW)

        assert dates[-1] == NOW + timedelta(days=9)
        assert dates[-1] < due

    def test_single_stage_gets_whole_span(self):
        due = NOW + timedelta(days=4)

        assert stage_due_date(due, 0, 1, NOW) == due

    def test_fewer_days_than_stages(self):
        due = NOW + timedelta(days=2)

        assert stage_due_dates(due, 3, NOW) == [NOW, NOW, NOW]

    def test_zero_stages_rejected(self):
        with pytest.raises(ValueError):
            days_per_stage(NOW + timedelta(days=5), 0, NOW)


class TestHelpers:

    def test_is_overdue(self):
        assert is_overdue(NOW - timedelta(seconds=1), NOW)
        assert not is_overdue(NOW + timedelta(days=1), NOW)
        assert not is_overdue(None, NOW)

    def test_duration_minutes(self):
        assert duration_minutes(NOW, NOW + timedelta(hours=2, seconds=59)) == 120
        assert duration_minutes(None, NOW) is None
