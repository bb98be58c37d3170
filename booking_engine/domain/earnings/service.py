"""
Earnings Service
Resolves what a provider is owed for a completed booking and records it once.

Rate precedence:
1. the booking's own wage override (provider_wage + provider_wage_type)
2. the provider's active pay rate for the booking's service
3. the business default split (DEFAULT_COMMISSION_RATE commission, rest to the provider)
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import DEFAULT_COMMISSION_RATE
from ...models import Booking, ProviderEarning, ProviderPayRate
from ..scheduling.errors import (
    BookingNotFound,
    EarningsNotApplicable,
    EarningsWriteFailure,
    InvalidStatusTransition,
    PersistenceTimeout,
)
from ..scheduling.repository import is_timeout_error, persistence_guard
from .repository import EarningsRepository

logger = logging.getLogger(__name__)

BOOKING_OVERRIDE = "booking_override"
PROVIDER_PAY_RATE = "provider_pay_rate"
DEFAULT_SPLIT = "default_split"

RATE_TYPES = ("percentage", "fixed", "hourly")
_RATE_TYPE_ALIASES = {"flat": "fixed"}

# Allowed booking status changes; completed and cancelled are terminal
STATUS_TRANSITIONS = {
    "pending": ("confirmed", "cancelled"),
    "confirmed": ("in_progress", "cancelled", "completed"),
    "in_progress": ("completed", "cancelled"),
    "completed": (),
    "cancelled": (),
}

_HOURS_IN_NOTES = re.compile(r"(\d+(?:\.\d+)?)\s*(?:hours?|hrs?|h)\b", re.IGNORECASE)
_MINUTES_IN_NOTES = re.compile(r"(\d+(?:\.\d+)?)\s*(?:minutes?|mins?|m)\b", re.IGNORECASE)


@dataclass
class EarningsBreakdown:
    gross_amount: float
    commission_amount: float
    net_amount: float
    pay_rate_type: str
    rate_source: str
    hours_worked: Optional[float] = None


def normalize_rate_type(rate_type: Optional[str]) -> Optional[str]:
    if not rate_type:
        return None
    value = rate_type.strip().lower()
    value = _RATE_TYPE_ALIASES.get(value, value)
    return value if value in RATE_TYPES else None


def hours_from_notes(notes: Optional[str]) -> Optional[float]:
    """Deprecated: parse "2.5 hours", "3h" or "90 min" out of free text"""
    if not notes:
        return None
    match = _HOURS_IN_NOTES.search(notes)
    if match:
        return float(match.group(1))
    match = _MINUTES_IN_NOTES.search(notes)
    if match:
        return float(match.group(1)) / 60
    return None


def resolve_hours(booking: Booking) -> float:
    """Hours worked for hourly pay: recorded duration, then booked duration, then notes, then 1"""
    if booking.actual_duration_minutes:
        return booking.actual_duration_minutes / 60
    if booking.duration_minutes:
        return booking.duration_minutes / 60

    hours = hours_from_notes(booking.notes)
    if hours:
        logger.warning(
            f"⚠️ Booking {booking.id} has no duration, hours ({hours:g}) taken from notes. "
            "Record duration_minutes instead."
        )
        return hours
    return 1.0


def _rate_amount(pay_rate: ProviderPayRate, rate_type: str) -> Optional[float]:
    if rate_type == "percentage":
        return pay_rate.percentage_rate
    if rate_type == "fixed":
        return pay_rate.flat_rate
    return pay_rate.hourly_rate


def resolve_rate(booking: Booking, pay_rate: Optional[ProviderPayRate]) -> tuple[str, float, str]:
    """Returns (rate_type, amount, rate_source) following the precedence chain"""
    override_type = normalize_rate_type(booking.provider_wage_type)
    if booking.provider_wage is not None and override_type:
        return override_type, float(booking.provider_wage), BOOKING_OVERRIDE
    if booking.provider_wage is not None:
        logger.warning(
            f"⚠️ Ignoring wage override on booking {booking.id} with unknown type '{booking.provider_wage_type}'"
        )

    if pay_rate is not None:
        rate_type = normalize_rate_type(pay_rate.rate_type)
        amount = _rate_amount(pay_rate, rate_type) if rate_type else None
        if rate_type and amount is not None:
            return rate_type, float(amount), PROVIDER_PAY_RATE
        logger.warning(f"⚠️ Pay rate {pay_rate.id} is incomplete ({pay_rate.rate_type}), using default split")

    return "percentage", 100.0 - DEFAULT_COMMISSION_RATE, DEFAULT_SPLIT


def compute_earnings(booking: Booking, pay_rate: Optional[ProviderPayRate] = None) -> EarningsBreakdown:
    """Net is clamped to [0, gross]; commission is whatever the provider does not get"""
    gross = max(float(booking.total_price or 0), 0.0)
    rate_type, amount, rate_source = resolve_rate(booking, pay_rate)

    hours = None
    if rate_type == "percentage":
        net = gross * amount / 100
    elif rate_type == "fixed":
        net = amount
    else:
        hours = resolve_hours(booking)
        net = amount * hours

    net = round(min(max(net, 0.0), gross), 2)
    return EarningsBreakdown(
        gross_amount=round(gross, 2),
        commission_amount=round(gross - net, 2),
        net_amount=net,
        pay_rate_type=rate_type,
        rate_source=rate_source,
        hours_worked=hours,
    )


class EarningsService:
    """Service layer for booking completion and provider earnings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = EarningsRepository()

    def _get_booking(self, business_id: int, booking_id: int) -> Booking:
        booking = self.repo.get_booking(self.db, business_id, booking_id)
        if not booking:
            raise BookingNotFound(f"Booking {booking_id} not found", booking_id=booking_id)
        return booking

    def calculate_for_booking(self, business_id: int, booking_id: int) -> ProviderEarning:
        """Record earnings for a completed booking; returns the existing row on repeat calls"""
        with persistence_guard(self.db):
            booking = self._get_booking(business_id, booking_id)
            return self._record_earnings(business_id, booking)

    def _record_earnings(self, business_id: int, booking: Booking) -> ProviderEarning:
        if booking.status != "completed":
            raise EarningsNotApplicable(
                f"Booking {booking.id} is {booking.status}, earnings need a completed booking",
                booking_id=booking.id,
            )
        if booking.provider_id is None:
            raise EarningsNotApplicable(f"Booking {booking.id} has no provider", booking_id=booking.id)

        existing = self.repo.get_earning_for_booking(self.db, business_id, booking.id)
        if existing:
            return existing

        pay_rate = self.repo.get_pay_rate(self.db, business_id, booking.provider_id, booking.service_id)
        breakdown = compute_earnings(booking, pay_rate)
        earning = ProviderEarning(
            business_id=business_id,
            provider_id=booking.provider_id,
            booking_id=booking.id,
            service_id=booking.service_id,
            gross_amount=breakdown.gross_amount,
            commission_amount=breakdown.commission_amount,
            net_amount=breakdown.net_amount,
            pay_rate_type=breakdown.pay_rate_type,
            rate_source=breakdown.rate_source,
            hours_worked=breakdown.hours_worked,
            status="pending",
        )

        try:
            self.repo.add_earning(self.db, earning)
            self.db.commit()
        except IntegrityError:
            # A concurrent completion already recorded this booking
            self.db.rollback()
            existing = self.repo.get_earning_for_booking(self.db, business_id, booking.id)
            if existing:
                return existing
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            if is_timeout_error(e):
                raise PersistenceTimeout(f"Recording earnings for booking {booking.id} timed out") from e
            logger.error(f"❌ Failed to record earnings for booking {booking.id}: {e}")
            raise EarningsWriteFailure(
                f"Failed to record earnings for booking {booking.id}", booking_id=booking.id
            ) from e

        self.db.refresh(earning)
        logger.info(
            f"💰 Booking {booking.id}: provider {booking.provider_id} earns {breakdown.net_amount:.2f} "
            f"of {breakdown.gross_amount:.2f} ({breakdown.rate_source}, {breakdown.pay_rate_type})"
        )
        return earning

    def update_booking_status(
        self,
        business_id: int,
        booking_id: int,
        status: str,
        actual_duration_minutes: Optional[int] = None,
    ) -> tuple[Booking, Optional[ProviderEarning]]:
        """Move a booking along its lifecycle; completing it records earnings"""
        with persistence_guard(self.db):
            booking = self._get_booking(business_id, booking_id)

            if status not in STATUS_TRANSITIONS:
                raise InvalidStatusTransition(f"Unknown booking status: {status}", booking_id=booking_id)
            if status != booking.status and status not in STATUS_TRANSITIONS.get(booking.status, ()):
                raise InvalidStatusTransition(
                    f"Cannot change booking {booking_id} from {booking.status} to {status}",
                    booking_id=booking_id,
                )
            if status == "completed" and booking.provider_id is None:
                raise InvalidStatusTransition(
                    f"Booking {booking_id} cannot be completed without a provider", booking_id=booking_id
                )

            if status != booking.status or actual_duration_minutes is not None:
                previous = booking.status
                booking.status = status
                if actual_duration_minutes is not None:
                    booking.actual_duration_minutes = actual_duration_minutes
                self.db.commit()
                self.db.refresh(booking)
                logger.info(f"📋 Booking {booking_id} status: {previous} → {status}")

            earning = None
            if booking.status == "completed":
                earning = self._record_earnings(business_id, booking)
            return booking, earning

    def get_provider_earnings_summary(self, business_id: int, provider_id: int) -> dict:
        with persistence_guard(self.db):
            totals = self.repo.get_provider_totals(self.db, business_id, provider_id)
        return {
            "providerId": provider_id,
            "totalGross": round(totals["gross"], 2),
            "totalCommission": round(totals["commission"], 2),
            "totalNet": round(totals["net"], 2),
            "pendingPayout": round(totals["pending"], 2),
            "completedJobs": totals["jobs"],
        }
