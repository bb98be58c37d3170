"""
Tests for recurrence interval mapping and occurrence date generation
"""
from datetime import date

import pytest
from dateutil.relativedelta import relativedelta

from booking_engine.domain.scheduling.capacity import HolidayCalendar
from booking_engine.domain.scheduling.recurring import (
    compute_next_occurrence_date,
    compute_occurrence_dates,
    resolve_interval,
)


@pytest.mark.unit
class TestResolveInterval:
    """Tests for frequency to interval mapping"""

    @pytest.mark.parametrize(
        "name,repeats,expected",
        [
            ("Daily", None, relativedelta(days=1)),
            ("Weekly", None, relativedelta(days=7)),
            ("Bi-Weekly", None, relativedelta(days=14)),
            ("biweekly", None, relativedelta(days=14)),
            ("Every Other Week", None, relativedelta(days=14)),
            ("Monthly", None, relativedelta(months=1)),
            ("Yearly", None, relativedelta(years=1)),
            ("Whenever", None, relativedelta(days=7)),
            (None, None, relativedelta(days=7)),
        ],
    )
    def test_frequency_names(self, name, repeats, expected):
        assert resolve_interval(name, repeats) == expected

    def test_repeats_is_checked_before_name(self):
        assert resolve_interval("Weekly", "every-2-weeks") == relativedelta(days=14)
        assert resolve_interval("Custom plan", "monthly") == relativedelta(months=1)

    def test_unrecognised_repeats_falls_back_to_name(self):
        assert resolve_interval("Monthly", "on a whim") == relativedelta(months=1)

    def test_whitespace_in_name_is_normalised(self):
        assert resolve_interval("every  2 weeks") == relativedelta(days=14)


@pytest.mark.unit
class TestOccurrenceDates:
    """Tests for occurrence date sequences"""

    def test_weekly_four_occurrences(self):
        dates = compute_occurrence_dates(date(2024, 1, 1), "weekly", None, 4)
        assert dates == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15), date(2024, 1, 22)]

    def test_monthly_from_month_end_clamps_to_leap_day(self):
        dates = compute_occurrence_dates(date(2024, 1, 31), "monthly", None, 2)
        assert dates == [date(2024, 1, 31), date(2024, 2, 29)]

    def test_monthly_from_month_end_non_leap_year(self):
        dates = compute_occurrence_dates(date(2023, 1, 31), "Monthly", None, 2)
        assert dates[1] == date(2023, 2, 28)

    def test_end_date_stops_generation(self):
        dates = compute_occurrence_dates(
            date(2024, 1, 1), "weekly", None, 10, end_date=date(2024, 1, 20)
        )
        assert dates == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]

    def test_start_after_end_date_yields_nothing(self):
        assert compute_occurrence_dates(date(2024, 2, 1), "weekly", None, 3, end_date=date(2024, 1, 1)) == []

    def test_zero_count(self):
        assert compute_occurrence_dates(date(2024, 1, 1), "weekly", None, 0) == []


@pytest.mark.unit
class TestHolidaySkip:
    """Tests for skip-to-next-day on holidays"""

    def test_skips_to_first_non_holiday(self):
        calendar = HolidayCalendar(exact_dates={date(2024, 1, 8), date(2024, 1, 9)})
        assert compute_next_occurrence_date(date(2024, 1, 1), "weekly", holidays=calendar) == date(2024, 1, 10)

    def test_recurring_holiday_matches_any_year(self):
        calendar = HolidayCalendar(recurring_days={(12, 25)})
        assert compute_next_occurrence_date(date(2025, 12, 18), "weekly", holidays=calendar) == date(2025, 12, 26)

    def test_without_calendar_lands_on_holiday(self):
        assert compute_next_occurrence_date(date(2024, 1, 1), "weekly") == date(2024, 1, 8)

    def test_lookahead_is_bounded(self):
        everything = HolidayCalendar(exact_dates={date(2024, 1, 8) + relativedelta(days=i) for i in range(100)})
        result = compute_next_occurrence_date(date(2024, 1, 1), "weekly", holidays=everything)
        assert result == date(2024, 1, 8) + relativedelta(days=31)
