"""
Capacity gate: holidays, spot limits and reserve-slot limits.

Read-only checks used by slot generation, booking intake and the recurring
series generator.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.orm import Session

from ...models import BusinessHoliday
from ...shared.validators import day_of_week_name, normalize_time
from .repository import SchedulingRepository

logger = logging.getLogger(__name__)


@dataclass
class HolidayCalendar:
    """A tenant's holidays, loaded once for repeated lookups."""

    exact_dates: set = field(default_factory=set)
    recurring_days: set = field(default_factory=set)  # (month, day)

    @classmethod
    def from_holidays(cls, holidays: list[BusinessHoliday]) -> "HolidayCalendar":
        calendar = cls()
        for holiday in holidays:
            if holiday.holiday_date is None:
                continue
            calendar.exact_dates.add(holiday.holiday_date)
            if holiday.recurring:
                calendar.recurring_days.add((holiday.holiday_date.month, holiday.holiday_date.day))
        return calendar

    def is_holiday(self, day: date) -> bool:
        return day in self.exact_dates or (day.month, day.day) in self.recurring_days


@dataclass
class CapacityDecision:
    allowed: bool
    reason: Optional[str] = None


def _find_slot_entry(maximum_by_day: dict, day_name: str, time_hhmm: str) -> Optional[dict]:
    """Look up the reserve-slot entry for a weekday and "HH:mm" time."""
    if not isinstance(maximum_by_day, dict):
        return None
    entries = None
    for key, value in maximum_by_day.items():
        if str(key).strip().lower() == day_name:
            entries = value
            break
    if not isinstance(entries, list):
        return None
    for entry in entries:
        if isinstance(entry, dict) and normalize_time(entry.get("time")) == time_hhmm:
            return entry
    return None


class CapacityGate:
    """Booking-count, holiday and reserve-slot checks for one tenant store"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = SchedulingRepository()

    # Holidays
    def get_holiday_calendar(self, business_id: int) -> HolidayCalendar:
        return HolidayCalendar.from_holidays(self.repo.get_holidays(self.db, business_id))

    def is_date_holiday(self, business_id: int, day: date) -> bool:
        """Exact date match or recurring month+day match"""
        return self.get_holiday_calendar(business_id).is_holiday(day)

    # Booking counts (pending, confirmed, in_progress only)
    def get_booking_count_for_date(self, business_id: int, day: date) -> int:
        return self.repo.count_bookings_between(self.db, business_id, day, day)

    def get_booking_count_for_week(self, business_id: int, week_start: date) -> int:
        return self.repo.count_bookings_between(
            self.db, business_id, week_start, week_start + timedelta(days=6)
        )

    def get_booking_count_for_month(self, business_id: int, day: date) -> int:
        month_start = day.replace(day=1)
        month_end = month_start + relativedelta(months=1) - timedelta(days=1)
        return self.repo.count_bookings_between(self.db, business_id, month_start, month_end)

    def get_booking_count_by_time_for_date(self, business_id: int, day: date) -> dict[str, int]:
        """Counts keyed by "HH:mm"; bookings without a parseable time are skipped"""
        counts: dict[str, int] = {}
        for stored_time in self.repo.get_active_booking_times(self.db, business_id, day):
            normalized = normalize_time(stored_time)
            if normalized:
                counts[normalized] = counts.get(normalized, 0) + 1
        return counts

    # Reserve slots
    def is_time_slot_available_for_booking(self, business_id: int, day: date, time_value) -> bool:
        """
        False only when a reserve-slot entry exists for that weekday and time
        and the slot already holds maxJobs or more bookings.
        """
        time_hhmm = normalize_time(time_value)
        if not time_hhmm:
            return True

        settings = self.repo.get_reserve_slot_settings(self.db, business_id)
        if not settings or not settings.maximum_by_day:
            return True

        entry = _find_slot_entry(settings.maximum_by_day, day_of_week_name(day), time_hhmm)
        if entry is None:
            return True

        try:
            max_jobs = int(entry.get("maxJobs"))
        except (TypeError, ValueError):
            logger.warning(f"⚠️ Ignoring reserve slot with invalid maxJobs for business {business_id}: {entry}")
            return True

        current = self.get_booking_count_by_time_for_date(business_id, day).get(time_hhmm, 0)
        if current >= max_jobs:
            logger.info(
                f"🚫 Slot {day.isoformat()} {time_hhmm} full for business {business_id} ({current}/{max_jobs})"
            )
            return False
        return True

    # Spot limits
    def check_spot_limits(self, business_id: int, day: date, today: date) -> CapacityDecision:
        """Apply day/week/month limits and the advance-booking window when enabled"""
        config = self.repo.get_scheduling_config(self.db, business_id)
        if not config or not config.spot_limits_enabled:
            return CapacityDecision(True)

        limits = self.repo.get_spot_limits(self.db, business_id)
        if not limits or not limits.enabled:
            return CapacityDecision(True)

        if limits.max_advance_booking_days and (day - today).days > limits.max_advance_booking_days:
            return CapacityDecision(
                False, f"Bookings can be made at most {limits.max_advance_booking_days} days ahead"
            )

        if limits.max_bookings_per_day and (
            self.get_booking_count_for_date(business_id, day) >= limits.max_bookings_per_day
        ):
            return CapacityDecision(False, "Daily booking limit reached")

        week_start = day - timedelta(days=day.weekday())
        if limits.max_bookings_per_week and (
            self.get_booking_count_for_week(business_id, week_start) >= limits.max_bookings_per_week
        ):
            return CapacityDecision(False, "Weekly booking limit reached")

        if limits.max_bookings_per_month and (
            self.get_booking_count_for_month(business_id, day) >= limits.max_bookings_per_month
        ):
            return CapacityDecision(False, "Monthly booking limit reached")

        return CapacityDecision(True)
