"""
Tests for provider earnings calculation and booking completion
"""
from datetime import date

import pytest

from booking_engine import models
from booking_engine.domain.earnings.service import (
    EarningsService,
    compute_earnings,
    hours_from_notes,
    resolve_hours,
)
from booking_engine.domain.scheduling.errors import (
    BookingNotFound,
    EarningsNotApplicable,
    InvalidStatusTransition,
)
from booking_engine.models import Booking, ProviderPayRate


def booking(**fields):
    values = {"id": 1, "total_price": 200.0}
    values.update(fields)
    return Booking(**values)


@pytest.mark.unit
class TestComputeEarnings:
    """Tests for the rate precedence chain and amount rules"""

    def test_default_split_when_nothing_configured(self):
        result = compute_earnings(booking())
        assert result.net_amount == 160.0
        assert result.commission_amount == 40.0
        assert result.rate_source == "default_split"
        assert result.pay_rate_type == "percentage"

    def test_booking_override_wins_over_pay_rate(self):
        rate = ProviderPayRate(id=1, rate_type="percentage", percentage_rate=50)
        result = compute_earnings(booking(provider_wage=70, provider_wage_type="fixed"), rate)
        assert result.net_amount == 70.0
        assert result.commission_amount == 130.0
        assert result.rate_source == "booking_override"

    def test_provider_percentage_rate(self):
        rate = ProviderPayRate(id=1, rate_type="percentage", percentage_rate=65)
        result = compute_earnings(booking(), rate)
        assert result.net_amount == 130.0
        assert result.rate_source == "provider_pay_rate"

    def test_legacy_flat_rate_type(self):
        rate = ProviderPayRate(id=1, rate_type="flat", flat_rate=90)
        result = compute_earnings(booking(), rate)
        assert result.pay_rate_type == "fixed"
        assert result.net_amount == 90.0

    def test_hourly_uses_recorded_duration(self):
        rate = ProviderPayRate(id=1, rate_type="hourly", hourly_rate=30)
        result = compute_earnings(booking(duration_minutes=120, actual_duration_minutes=150), rate)
        assert result.hours_worked == 2.5
        assert result.net_amount == 75.0

    def test_net_is_clamped_to_gross(self):
        result = compute_earnings(booking(total_price=50, provider_wage=80, provider_wage_type="fixed"))
        assert result.net_amount == 50.0
        assert result.commission_amount == 0.0

    def test_net_is_never_negative(self):
        result = compute_earnings(booking(provider_wage=-10, provider_wage_type="fixed"))
        assert result.net_amount == 0.0
        assert result.commission_amount == 200.0

    def test_unknown_override_type_falls_through(self):
        rate = ProviderPayRate(id=1, rate_type="percentage", percentage_rate=50)
        result = compute_earnings(booking(provider_wage=10, provider_wage_type="bonus"), rate)
        assert result.rate_source == "provider_pay_rate"
        assert result.net_amount == 100.0

    def test_incomplete_pay_rate_uses_default_split(self):
        rate = ProviderPayRate(id=1, rate_type="hourly", hourly_rate=None)
        assert compute_earnings(booking(), rate).rate_source == "default_split"


@pytest.mark.unit
class TestHours:
    """Tests for hours worked resolution"""

    def test_booked_duration_used_when_no_actual(self):
        assert resolve_hours(booking(duration_minutes=90)) == 1.5

    def test_notes_are_a_last_resort(self):
        assert resolve_hours(booking(notes="Deep clean, about 3h")) == 3.0

    def test_defaults_to_one_hour(self):
        assert resolve_hours(booking(notes="ring the bell")) == 1.0

    @pytest.mark.parametrize(
        "notes,expected",
        [("2.5 hours", 2.5), ("3 hrs", 3.0), ("90 min", 1.5), ("no numbers", None), (None, None)],
    )
    def test_hours_from_notes(self, notes, expected):
        assert hours_from_notes(notes) == expected


@pytest.fixture
def earnings(db):
    return EarningsService(db)


@pytest.fixture
def provider(make_provider):
    return make_provider("Dana")


@pytest.mark.integration
class TestEarningsService:
    """Tests for recording earnings and status transitions"""

    def test_completion_records_earnings_once(self, db, business, earnings, provider, make_booking):
        job = make_booking(status="in_progress", provider_id=provider.id, total_price=150.0)

        updated, earning = earnings.update_booking_status(business.id, job.id, "completed")

        assert updated.status == "completed"
        assert earning.net_amount == 120.0
        assert earning.rate_source == "default_split"
        again = earnings.calculate_for_booking(business.id, job.id)
        assert again.id == earning.id
        assert db.query(models.ProviderEarning).count() == 1

    def test_service_specific_rate_is_preferred(self, db, business, earnings, provider, make_booking, make_service):
        service = make_service()
        db.add_all(
            [
                models.ProviderPayRate(
                    business_id=business.id, provider_id=provider.id, rate_type="fixed", flat_rate=40
                ),
                models.ProviderPayRate(
                    business_id=business.id,
                    provider_id=provider.id,
                    service_id=service.id,
                    rate_type="percentage",
                    percentage_rate=70,
                ),
            ]
        )
        db.commit()
        job = make_booking(status="completed", provider_id=provider.id, service_id=service.id, total_price=100.0)

        earning = earnings.calculate_for_booking(business.id, job.id)

        assert earning.net_amount == 70.0
        assert earning.rate_source == "provider_pay_rate"

    def test_inactive_rate_is_ignored(self, db, business, earnings, provider, make_booking):
        db.add(
            models.ProviderPayRate(
                business_id=business.id, provider_id=provider.id, rate_type="fixed", flat_rate=40, is_active=False
            )
        )
        db.commit()
        job = make_booking(status="completed", provider_id=provider.id)
        assert earnings.calculate_for_booking(business.id, job.id).rate_source == "default_split"

    def test_actual_duration_is_recorded_on_completion(self, db, business, earnings, provider, make_booking):
        db.add(
            models.ProviderPayRate(business_id=business.id, provider_id=provider.id, rate_type="hourly", hourly_rate=25)
        )
        db.commit()
        job = make_booking(status="in_progress", provider_id=provider.id, duration_minutes=60, total_price=300.0)

        _, earning = earnings.update_booking_status(business.id, job.id, "completed", actual_duration_minutes=180)

        assert earning.hours_worked == 3.0
        assert earning.net_amount == 75.0

    def test_uncompleted_booking_has_no_earnings(self, business, earnings, provider, make_booking):
        job = make_booking(status="confirmed", provider_id=provider.id)
        with pytest.raises(EarningsNotApplicable):
            earnings.calculate_for_booking(business.id, job.id)

    @pytest.mark.parametrize(
        "current,target",
        [("pending", "completed"), ("completed", "pending"), ("cancelled", "confirmed"), ("pending", "archived")],
    )
    def test_invalid_transitions(self, business, earnings, provider, make_booking, current, target):
        job = make_booking(status=current, provider_id=provider.id)
        with pytest.raises(InvalidStatusTransition):
            earnings.update_booking_status(business.id, job.id, target)

    def test_completion_requires_a_provider(self, business, earnings, make_booking):
        job = make_booking(status="confirmed")
        with pytest.raises(InvalidStatusTransition):
            earnings.update_booking_status(business.id, job.id, "completed")

    def test_cancelling_records_nothing(self, db, business, earnings, provider, make_booking):
        job = make_booking(status="confirmed", provider_id=provider.id)
        updated, earning = earnings.update_booking_status(business.id, job.id, "cancelled")
        assert updated.status == "cancelled"
        assert earning is None
        assert db.query(models.ProviderEarning).count() == 0

    def test_missing_booking(self, business, earnings):
        with pytest.raises(BookingNotFound):
            earnings.update_booking_status(business.id, 404, "confirmed")

    def test_summary(self, db, business, earnings, provider, make_booking):
        for price in (100.0, 50.0):
            job = make_booking(status="completed", provider_id=provider.id, total_price=price)
            earnings.calculate_for_booking(business.id, job.id)
        paid = db.query(models.ProviderEarning).first()
        paid.status = "paid"
        db.commit()

        summary = earnings.get_provider_earnings_summary(business.id, provider.id)

        assert summary["totalGross"] == 150.0
        assert summary["totalNet"] == 120.0
        assert summary["totalCommission"] == 30.0
        assert summary["completedJobs"] == 2
        assert summary["pendingPayout"] == 120.0 - paid.net_amount

    def test_scheduled_date_does_not_matter(self, business, earnings, provider, make_booking):
        job = make_booking(status="completed", provider_id=provider.id, scheduled_date=date(2030, 1, 1))
        assert earnings.calculate_for_booking(business.id, job.id).gross_amount == 100.0
