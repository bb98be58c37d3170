"""Shared validation utilities"""

import re
from datetime import date, datetime, timezone
from typing import Optional, Union

DAY_NAMES = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

_TWELVE_HOUR = re.compile(r"\b(\d{1,2})(?::(\d{2}))?(?::\d{2})?\s*([AaPp])\.?[Mm]\.?(?!\w)")
_TWENTY_FOUR_HOUR = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2}(?:\.\d+)?)?")
_ISO_DATETIME = re.compile(r"^\d{4}-\d{2}-\d{2}[Tt]")


def validate_email(email: Optional[str]) -> Optional[str]:
    """
    Validate email format.

    Args:
        email: Email address string

    Returns:
        Lowercase email address

    Raises:
        ValueError: If email format is invalid
    """
    if not email:
        return email

    email = email.strip().lower()

    # Basic email validation pattern
    email_pattern = r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$"

    if not re.match(email_pattern, email):
        raise ValueError("Invalid email format")

    return email


def parse_iso_date(value: Union[str, date, datetime]) -> date:
    """
    Parse a YYYY-MM-DD string (or a date/datetime) into a date.

    Raises:
        ValueError: If the value is not a calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValueError("Date is required")
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as e:
        raise ValueError(f"Invalid date format, expected YYYY-MM-DD: {value}") from e


def normalize_time(value) -> Optional[str]:
    """
    Normalize a stored or requested time to "HH:mm".

    Accepts 12h ("6:00 PM", "6pm"), 24h ("18:00", "18:00:00"),
    ISO-embedded ("2024-01-01T18:00:00Z") and space-delimited
    ("2024-01-01 18:00") forms. Returns None when nothing parses.
    """
    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    match = _TWELVE_HOUR.search(text)
    if match:
        hours = int(match.group(1))
        minutes = int(match.group(2) or 0)
        if not 1 <= hours <= 12 or minutes > 59:
            return None
        hours = hours % 12
        if match.group(3).lower() == "p":
            hours += 12
        return f"{hours:02d}:{minutes:02d}"

    if _ISO_DATETIME.match(text):
        text = re.split(r"[Tt]", text, maxsplit=1)[1]
    elif " " in text:
        # "2024-01-01 18:00" - take the first token that looks like a clock time
        text = next((part for part in text.split() if ":" in part), text)

    match = _TWENTY_FOUR_HOUR.match(text)
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def validate_time_hhmm(value: str) -> str:
    """Validate a slot time and return it as "HH:mm"."""
    normalized = normalize_time(value)
    if normalized is None:
        raise ValueError(f"Invalid time: {value}")
    return normalized


def utc_today() -> date:
    return datetime.now(timezone.utc).date()


def day_of_week_name(day: date) -> str:
    """Lowercase English weekday name ("monday" ... "sunday")."""
    return DAY_NAMES[day.weekday()]
