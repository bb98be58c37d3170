"""
Recurring bookings: create N occurrences ahead and extend on demand.

There is no cron job. Series are topped up lazily whenever a caller asks
(e.g. when the admin calendar loads), keeping occurrences_ahead future
bookings materialised per active series.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEFAULT_OCCURRENCES_AHEAD, HOLIDAY_SKIP_MAX_ATTEMPTS
from ...models import Booking, RecurringSeries
from ...shared.validators import utc_today
from .capacity import CapacityGate, HolidayCalendar
from .errors import (
    PersistenceTimeout,
    ProviderNotFound,
    SeriesNotFound,
    SeriesWriteFailure,
    ServiceNotFound,
)
from .repository import SchedulingRepository, is_timeout_error

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = relativedelta(days=7)
SERIES_STATUSES = ("active", "paused", "ended")

# Template keys copied from the series onto every generated booking
TEMPLATE_FIELDS = (
    "service_id",
    "service",
    "customer_name",
    "customer_email",
    "customer_phone",
    "address",
    "notes",
    "total_price",
    "scheduled_time",
    "duration_minutes",
    "provider_id",
    "provider_name",
    "provider_wage",
    "provider_wage_type",
)

# Upper bound on steps taken while catching an idle series up to today
MAX_CATCH_UP_STEPS = 1000


def _normalize_frequency(value: Optional[str]) -> str:
    return "-".join((value or "").lower().split())


def _interval_for(text: str) -> Optional[relativedelta]:
    """First matching rule wins"""
    if not text:
        return None
    if "daily" in text:
        return relativedelta(days=1)
    if "weekly" in text and "bi" not in text and "every-2" not in text:
        return relativedelta(days=7)
    if "bi" in text or "every-other" in text or "every-2" in text:
        return relativedelta(days=14)
    if "monthly" in text:
        return relativedelta(months=1)
    if "yearly" in text:
        return relativedelta(years=1)
    return None


def resolve_interval(frequency_name: Optional[str], frequency_repeats: Optional[str] = None) -> relativedelta:
    """
    Map a frequency to the step between occurrences.

    frequency_repeats (e.g. "every-2-weeks") is more specific than the display
    name (e.g. "Bi-Weekly") so it is consulted first. Unknown → weekly.
    """
    return (
        _interval_for(_normalize_frequency(frequency_repeats))
        or _interval_for(_normalize_frequency(frequency_name))
        or DEFAULT_INTERVAL
    )


def compute_next_occurrence_date(
    last_date: date,
    frequency_name: Optional[str],
    frequency_repeats: Optional[str] = None,
    holidays: Optional[HolidayCalendar] = None,
    max_attempts: int = HOLIDAY_SKIP_MAX_ATTEMPTS,
) -> date:
    """
    Apply the frequency interval once. With a holiday calendar (skip-to-next
    enabled), move forward a day at a time past holidays, at most max_attempts days.
    """
    next_date = last_date + resolve_interval(frequency_name, frequency_repeats)
    if holidays is not None:
        attempts = 0
        while holidays.is_holiday(next_date) and attempts < max_attempts:
            next_date += relativedelta(days=1)
            attempts += 1
    return next_date


def compute_occurrence_dates(
    start_date: date,
    frequency_name: Optional[str],
    frequency_repeats: Optional[str],
    count: int,
    end_date: Optional[date] = None,
    holidays: Optional[HolidayCalendar] = None,
) -> list[date]:
    """Up to count dates beginning with start_date, stopping once end_date is exceeded"""
    if count <= 0 or (end_date is not None and start_date > end_date):
        return []

    dates = [start_date]
    current = start_date
    for _ in range(1, count):
        next_date = compute_next_occurrence_date(current, frequency_name, frequency_repeats, holidays)
        if end_date is not None and next_date > end_date:
            break
        dates.append(next_date)
        current = next_date
    return dates


def booking_from_series(series: RecurringSeries, day: date, include_provider: bool = True) -> Booking:
    """Build a pending booking row from a series template for one date"""
    return Booking(
        business_id=series.business_id,
        recurring_series_id=series.id,
        scheduled_date=day,
        scheduled_time=series.scheduled_time,
        duration_minutes=series.duration_minutes,
        service_id=series.service_id,
        service=series.service,
        customer_name=series.customer_name,
        customer_email=series.customer_email,
        customer_phone=series.customer_phone,
        address=series.address,
        notes=series.notes,
        total_price=series.total_price or 0,
        provider_id=series.provider_id if include_provider else None,
        provider_name=series.provider_name if include_provider else None,
        provider_wage=series.provider_wage,
        provider_wage_type=series.provider_wage_type,
        status="pending",
    )


@dataclass
class SeriesCreation:
    series_id: int
    booking_ids: list[int] = field(default_factory=list)


class RecurringSeriesGenerator:
    """Creates recurring series and keeps their lookahead window filled"""

    def __init__(self, db: Session, today: Callable[[], date] = utc_today):
        self.db = db
        self.today = today
        self.repo = SchedulingRepository()
        self.gate = CapacityGate(db)

    def _holidays_to_skip(self, business_id: int) -> Optional[HolidayCalendar]:
        config = self.repo.get_scheduling_config(self.db, business_id)
        if config and config.holiday_skip_to_next:
            return self.gate.get_holiday_calendar(business_id)
        return None

    def _check_template_bindings(self, business_id: int, values: dict) -> None:
        """Provider and service on a template must belong to the same business"""
        provider_id = values.get("provider_id")
        if provider_id is not None:
            provider = self.repo.get_provider(self.db, business_id, provider_id)
            if provider is None:
                raise ProviderNotFound(f"Provider {provider_id} not found")
            values.setdefault("provider_name", provider.display_name)
        service_id = values.get("service_id")
        if service_id is not None and self.repo.get_service(self.db, business_id, service_id) is None:
            raise ServiceNotFound(f"Service {service_id} not found")

    def _write_failed(self, e: SQLAlchemyError, what: str):
        self.db.rollback()
        if is_timeout_error(e):
            return PersistenceTimeout(f"{what} timed out")
        logger.error(f"❌ {what} failed: {e}")
        return SeriesWriteFailure(f"{what} failed")

    def create_series(
        self,
        business_id: int,
        template: dict,
        start_date: date,
        frequency_name: str,
        end_date: Optional[date] = None,
        frequency_repeats: Optional[str] = None,
        occurrences_ahead: Optional[int] = None,
        same_provider: bool = True,
    ) -> SeriesCreation:
        """Persist one series row plus its first occurrences_ahead bookings, all or nothing"""
        count = occurrences_ahead if occurrences_ahead is not None else DEFAULT_OCCURRENCES_AHEAD
        values = {key: template.get(key) for key in TEMPLATE_FIELDS if template.get(key) is not None}
        self._check_template_bindings(business_id, values)

        series = RecurringSeries(
            business_id=business_id,
            frequency=frequency_name,
            frequency_repeats=frequency_repeats,
            start_date=start_date,
            end_date=end_date,
            occurrences_ahead=count,
            same_provider=same_provider,
            status="active",
            **values,
        )

        dates = compute_occurrence_dates(
            start_date,
            frequency_name,
            frequency_repeats,
            count,
            end_date=end_date,
            holidays=self._holidays_to_skip(business_id),
        )

        try:
            self.repo.add_series(self.db, series)
            bookings = self.repo.add_bookings(self.db, [booking_from_series(series, d) for d in dates])
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._write_failed(e, f"Creating recurring series for business {business_id}") from e

        booking_ids = [booking.id for booking in bookings]
        logger.info(
            f"🔁 Created recurring series {series.id} ({frequency_name}) with {len(booking_ids)} bookings"
        )
        return SeriesCreation(series_id=series.id, booking_ids=booking_ids)

    def extend_series(self, business_id: int, series_id: int) -> int:
        """
        Top up a series so it holds occurrences_ahead bookings dated today or later.
        Returns the number of bookings created.
        """
        series = self.repo.get_series(self.db, business_id, series_id)
        if series is None:
            raise SeriesNotFound(f"Recurring series {series_id} not found")
        if series.status != "active":
            return 0

        existing_dates = self.repo.get_series_booking_dates(self.db, business_id, series_id)
        today = self.today()
        future_count = sum(1 for d in existing_dates if d >= today)
        wanted = series.occurrences_ahead if series.occurrences_ahead is not None else DEFAULT_OCCURRENCES_AHEAD
        if future_count >= wanted:
            return 0
        to_create = wanted - future_count

        holidays = self._holidays_to_skip(business_id)
        current = existing_dates[0] if existing_dates else series.start_date
        dates: list[date] = []
        for _ in range(MAX_CATCH_UP_STEPS):
            if len(dates) >= to_create:
                break
            next_date = compute_next_occurrence_date(
                current, series.frequency, series.frequency_repeats, holidays
            )
            if series.end_date is not None and next_date > series.end_date:
                break
            current = next_date
            if next_date >= today:
                dates.append(next_date)

        if not dates:
            return 0

        try:
            bookings = self.repo.add_bookings(
                self.db,
                [booking_from_series(series, d, include_provider=series.same_provider) for d in dates],
            )
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._write_failed(e, f"Extending recurring series {series_id}") from e

        logger.info(f"🔁 Extended recurring series {series_id} with {len(bookings)} bookings")
        return len(bookings)

    def extend_all_series(self, business_id: int) -> tuple[int, int]:
        """Extend every active series of a business. Returns (series_checked, total_created)."""
        series_ids = self.repo.get_active_series_ids(self.db, business_id)
        total_created = 0
        for series_id in series_ids:
            try:
                total_created += self.extend_series(business_id, series_id)
            except SeriesWriteFailure as e:
                logger.error(f"❌ Skipping series {series_id}: {e.message}")
        return len(series_ids), total_created

    def set_series_status(self, business_id: int, series_id: int, status: str) -> RecurringSeries:
        if status not in SERIES_STATUSES:
            raise ValueError(f"Invalid series status: {status}")
        series = self.repo.get_series(self.db, business_id, series_id)
        if series is None:
            raise SeriesNotFound(f"Recurring series {series_id} not found")
        series.status = status
        self.db.commit()
        self.db.refresh(series)
        logger.info(f"🔁 Recurring series {series_id} is now {status}")
        return series
