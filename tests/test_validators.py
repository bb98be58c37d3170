"""
Tests for shared validation utilities
"""
from datetime import date, datetime

import pytest

from booking_engine.shared.validators import (
    day_of_week_name,
    normalize_time,
    parse_iso_date,
    validate_email,
    validate_time_hhmm,
)


@pytest.mark.unit
class TestNormalizeTime:
    """Tests for slot time normalisation"""

    @pytest.mark.parametrize(
        "value,expected",
        [
            ("6:00 PM", "18:00"),
            ("6pm", "18:00"),
            ("12:30 am", "00:30"),
            ("12:00 PM", "12:00"),
            ("18:00", "18:00"),
            ("18:00:00", "18:00"),
            ("9:05", "09:05"),
            ("2024-01-01T18:00:00Z", "18:00"),
            ("2024-01-01 18:00", "18:00"),
        ],
    )
    def test_accepted_formats(self, value, expected):
        assert normalize_time(value) == expected

    @pytest.mark.parametrize("value", [None, "", "   ", "soon", "25:00", "13:00 PM", "10:75"])
    def test_unparseable_returns_none(self, value):
        assert normalize_time(value) is None

    def test_validate_time_raises_on_garbage(self):
        with pytest.raises(ValueError):
            validate_time_hhmm("noon-ish")

    def test_validate_time_normalises(self):
        assert validate_time_hhmm("9:00 AM") == "09:00"


@pytest.mark.unit
class TestDates:
    """Tests for date helpers"""

    def test_parse_iso_date_string(self):
        assert parse_iso_date("2024-02-29") == date(2024, 2, 29)

    def test_parse_iso_date_accepts_datetime(self):
        assert parse_iso_date(datetime(2024, 3, 1, 12, 30)) == date(2024, 3, 1)

    def test_parse_iso_date_rejects_invalid(self):
        with pytest.raises(ValueError):
            parse_iso_date("2023-02-29")

    def test_day_of_week_name(self):
        assert day_of_week_name(date(2024, 1, 1)) == "monday"
        assert day_of_week_name(date(2024, 1, 7)) == "sunday"


@pytest.mark.unit
class TestEmailValidation:
    """Tests for email validation"""

    def test_valid_email_is_lowercased(self):
        assert validate_email(" Casey@Example.COM ") == "casey@example.com"

    def test_invalid_email(self):
        with pytest.raises(ValueError):
            validate_email("not-an-email")

    def test_empty_email_passes_through(self):
        assert validate_email(None) is None
