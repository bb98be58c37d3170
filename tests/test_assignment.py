"""
Tests for auto-assignment and scheduling mode routing
"""
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm.attributes import set_committed_value

from booking_engine import models
from booking_engine.domain.scheduling.assignment import AssignmentSelector
from booking_engine.domain.scheduling.errors import BookingNotFound, PersistenceTimeout
from booking_engine.domain.scheduling.mode_router import SchedulingModeRouter
from booking_engine.domain.scheduling.repository import SchedulingRepository
from tests.conftest import FIXED_TODAY, FakeDispatcher


@pytest.fixture
def router(db, dispatcher, today):
    return SchedulingModeRouter(db, dispatcher, today=today)


def assignments_for(db, booking_id):
    return db.query(models.BookingAssignment).filter(models.BookingAssignment.booking_id == booking_id).all()


@pytest.mark.integration
class TestAutoAssign:
    """Tests for provider selection and the assignment write"""

    def test_assigns_best_eligible_provider(self, db, business, dispatcher, make_provider, make_booking, make_service):
        service = make_service()
        make_provider("Low", priority=0, services=[service.id])
        high = make_provider("High", priority=5, services=[service.id])
        make_provider("Other", priority=9, services=[])
        booking = make_booking(service_id=service.id)

        result = AssignmentSelector(db, dispatcher).auto_assign(business.id, booking.id)

        assert result.outcome == "assigned"
        assert result.provider_id == high.id
        assert result.fallback is False
        db.refresh(booking)
        assert booking.provider_id == high.id
        assert booking.provider_name == "High"
        assert booking.status == "confirmed"
        assert len(assignments_for(db, booking.id)) == 1
        log = db.query(models.AssignmentLog).filter(models.AssignmentLog.booking_id == booking.id).one()
        assert log.rule_applied == "auto-assignment"

    def test_notifies_admin_and_provider(self, db, business, dispatcher, make_provider, make_booking):
        provider = make_provider("Jamie")
        booking = make_booking()

        AssignmentSelector(db, dispatcher).auto_assign(business.id, booking.id)

        assert dispatcher.admin_types() == ["booking_assigned"]
        assert "Jamie" in dispatcher.admin_notifications[0][2]["message"]
        assert dispatcher.provider_emails == [(provider.id, booking.id)]

    def test_falls_back_by_priority_when_nobody_is_eligible(
        self, db, business, dispatcher, make_provider, make_booking, configure
    ):
        configure(max_minutes_per_provider_per_booking=60)
        make_provider("A", priority=1)
        top = make_provider("B", priority=3)
        booking = make_booking(duration_minutes=90)

        result = AssignmentSelector(db, dispatcher).auto_assign(business.id, booking.id)

        assert result.fallback is True
        assert result.provider_id == top.id
        assert result.reasons == ["Fallback by priority"]
        log = db.query(models.AssignmentLog).filter(models.AssignmentLog.booking_id == booking.id).one()
        assert log.rule_applied == "fallback-by-priority"

    def test_second_call_is_a_no_op(self, db, business, dispatcher, make_provider, make_booking):
        make_provider("Only")
        booking = make_booking()
        selector = AssignmentSelector(db, dispatcher)

        selector.auto_assign(business.id, booking.id)
        again = selector.auto_assign(business.id, booking.id)

        assert again.outcome == "already_assigned"
        assert len(assignments_for(db, booking.id)) == 1
        assert len(dispatcher.admin_notifications) == 1

    def test_concurrent_assignment_writes_nothing(
        self, db, business, dispatcher, make_provider, make_booking, monkeypatch
    ):
        first = make_provider("First")
        make_provider("Second", priority=2)
        booking = make_booking()
        selector = AssignmentSelector(db, dispatcher)

        # Another request assigns the booking after we read it unassigned
        stale = selector.repo.get_booking(db, business.id, booking.id)
        db.query(models.Booking).filter(models.Booking.id == booking.id).update(
            {models.Booking.provider_id: first.id}, synchronize_session=False
        )
        db.commit()
        set_committed_value(stale, "provider_id", None)
        monkeypatch.setattr(selector.repo, "get_booking", lambda *args: stale)

        result = selector.auto_assign(business.id, booking.id)

        assert result.outcome == "already_assigned"
        assert result.provider_id == first.id
        assert assignments_for(db, booking.id) == []
        assert dispatcher.admin_notifications == []

    @pytest.mark.parametrize("status", ["cancelled", "completed", "confirmed"])
    def test_only_pending_bookings_are_assigned(self, db, business, dispatcher, make_provider, make_booking, status):
        make_provider("Idle")
        booking = make_booking(status=status)

        result = AssignmentSelector(db, dispatcher).auto_assign(business.id, booking.id)

        assert result.outcome == "not_schedulable"
        db.refresh(booking)
        assert booking.status == status
        assert booking.provider_id is None
        assert assignments_for(db, booking.id) == []
        assert dispatcher.admin_notifications == []

    def test_cancelled_while_assigning_writes_nothing(
        self, db, business, dispatcher, make_provider, make_booking, monkeypatch
    ):
        make_provider("Late")
        booking = make_booking()
        selector = AssignmentSelector(db, dispatcher)

        # The customer cancels after we read the booking as pending
        stale = selector.repo.get_booking(db, business.id, booking.id)
        db.query(models.Booking).filter(models.Booking.id == booking.id).update(
            {models.Booking.status: "cancelled"}, synchronize_session=False
        )
        db.commit()
        set_committed_value(stale, "status", "pending")
        monkeypatch.setattr(selector.repo, "get_booking", lambda *args: stale)

        result = selector.auto_assign(business.id, booking.id)

        assert result.outcome == "not_schedulable"
        db.refresh(booking)
        assert booking.status == "cancelled"
        assert booking.provider_id is None
        assert assignments_for(db, booking.id) == []
        assert dispatcher.provider_emails == []

    def test_missing_booking(self, db, business, dispatcher):
        with pytest.raises(BookingNotFound):
            AssignmentSelector(db, dispatcher).auto_assign(business.id, 999)

    def test_booking_from_other_tenant_is_not_found(
        self, db, business, other_business, dispatcher, make_provider, make_booking
    ):
        make_provider("Mine")
        foreign = make_booking(business_id=other_business.id)
        with pytest.raises(BookingNotFound):
            AssignmentSelector(db, dispatcher).auto_assign(business.id, foreign.id)

    def test_notification_failure_does_not_undo_assignment(self, db, business, make_provider, make_booking):
        provider = make_provider("Robin")
        booking = make_booking()

        result = AssignmentSelector(db, FakeDispatcher(fail=True)).auto_assign(business.id, booking.id)

        assert result.outcome == "assigned"
        db.refresh(booking)
        assert booking.provider_id == provider.id


@pytest.mark.integration
class TestModeRouter:
    """Tests for routing new bookings by scheduling mode"""

    def test_preselected_provider_is_honoured(self, router, business, make_booking, make_provider):
        provider = make_provider()
        booking = make_booking()
        result = router.route(business.id, booking.id, provider_id=provider.id)
        assert result.outcome == "provider_preselected"
        assert result.provider_id == provider.id

    def test_manual_mode_leaves_booking_unassigned(self, db, router, business, make_booking, make_provider, configure):
        configure(provider_assignment_mode="manual")
        make_provider()
        booking = make_booking()

        result = router.route(business.id, booking.id)

        assert result.outcome == "manual_mode"
        db.refresh(booking)
        assert booking.provider_id is None

    def test_cancelled_booking_is_left_alone(self, db, router, business, dispatcher, make_booking, make_provider):
        make_provider()
        booking = make_booking(status="cancelled")

        result = router.route(business.id, booking.id)

        assert result.outcome == "not_schedulable"
        db.refresh(booking)
        assert booking.status == "cancelled"
        assert booking.provider_id is None
        assert assignments_for(db, booking.id) == []
        assert dispatcher.admin_notifications == []

    def test_completed_booking_gets_no_invitation(self, db, router, business, make_booking, make_provider, configure):
        configure(scheduling_type="accept_or_decline")
        make_provider()
        booking = make_booking(status="completed")

        assert router.route(business.id, booking.id).outcome == "not_schedulable"
        assert db.query(models.ProviderBookingInvitation).count() == 0

    def test_default_mode_auto_assigns(self, router, business, make_booking, make_provider):
        provider = make_provider()
        booking = make_booking()
        result = router.route(business.id, booking.id)
        assert result.outcome == "assigned"
        assert result.provider_id == provider.id

    def test_accept_or_decline_invites_top_provider(
        self, db, router, business, dispatcher, make_booking, make_provider, configure
    ):
        configure(scheduling_type="accept_or_decline")
        make_provider("Second", priority=1)
        top = make_provider("Top", priority=4)
        booking = make_booking()

        result = router.route(business.id, booking.id)

        assert result.outcome == "invited"
        assert result.provider_id == top.id
        invitation = db.get(models.ProviderBookingInvitation, result.invitation_id)
        assert invitation.status == "pending"
        assert invitation.sort_order == 0
        db.refresh(booking)
        assert booking.provider_id is None
        assert dispatcher.admin_types() == ["invitation_sent"]

    def test_invitation_is_not_duplicated(self, db, router, business, make_booking, make_provider, configure):
        configure(scheduling_type="accept_or_decline")
        make_provider()
        booking = make_booking()

        first = router.route(business.id, booking.id)
        second = router.route(business.id, booking.id)

        assert second.invitation_id == first.invitation_id
        assert db.query(models.ProviderBookingInvitation).count() == 1

    def test_same_day_only_invites_for_today(self, router, business, make_booking, make_provider, configure):
        configure(scheduling_type="accepts_same_day_only")
        make_provider()
        booking = make_booking(scheduled_date=FIXED_TODAY)
        assert router.route(business.id, booking.id).outcome == "invited"

    def test_same_day_only_auto_assigns_future_dates(self, router, business, make_booking, make_provider, configure):
        configure(scheduling_type="accepts_same_day_only")
        make_provider()
        booking = make_booking(scheduled_date=date(2024, 1, 11))
        assert router.route(business.id, booking.id).outcome == "assigned"

    def test_unknown_scheduling_type_auto_assigns(self, router, business, make_booking, make_provider, configure):
        configure(scheduling_type="something_new")
        make_provider()
        booking = make_booking()
        assert router.route(business.id, booking.id).outcome == "assigned"

    def test_no_providers_notifies_admin_and_customer(self, db, router, business, dispatcher, make_booking):
        booking = make_booking(customer_email="casey@example.com")

        result = router.route(business.id, booking.id)

        assert result.outcome == "no_providers"
        assert result.error == "no_providers_available"
        assert dispatcher.admin_types() == ["no_providers"]
        assert dispatcher.customer_emails == [("casey@example.com", booking.id)]
        db.refresh(booking)
        assert booking.provider_id is None

    def test_invite_falls_back_to_inactive_roster(self, router, business, make_booking, make_provider, configure):
        configure(scheduling_type="accept_or_decline")
        inactive = make_provider(status="inactive")
        booking = make_booking()
        result = router.route(business.id, booking.id)
        assert result.outcome == "invited"
        assert result.provider_id == inactive.id

    def test_assignment_write_failure_asks_for_manual_assignment(
        self, db, router, business, dispatcher, make_booking, make_provider, monkeypatch
    ):
        make_provider()
        booking = make_booking()

        def broken_insert(*args, **kwargs):
            raise SQLAlchemyError("insert failed")

        monkeypatch.setattr(SchedulingRepository, "add_assignment", staticmethod(broken_insert))

        result = router.route(business.id, booking.id)

        assert result.outcome == "assignment_failed"
        assert result.error == "assignment_write_failure"
        assert dispatcher.admin_types() == ["assignment_failed"]
        db.refresh(booking)
        assert booking.provider_id is None

    def test_invitation_write_failure(self, db, router, business, dispatcher, make_booking, make_provider, configure, monkeypatch):
        configure(scheduling_type="accept_or_decline")
        make_provider()
        booking = make_booking()

        def broken_insert(*args, **kwargs):
            raise SQLAlchemyError("insert failed")

        monkeypatch.setattr(SchedulingRepository, "add_invitation", staticmethod(broken_insert))

        result = router.route(business.id, booking.id)

        assert result.outcome == "invitation_failed"
        assert dispatcher.admin_types() == ["assignment_failed"]
        assert db.query(models.ProviderBookingInvitation).count() == 0

    def test_statement_timeout_is_retryable(self, router, business, make_booking, make_provider, monkeypatch):
        make_provider()
        booking = make_booking()

        def timed_out(*args, **kwargs):
            raise OperationalError("UPDATE bookings", {}, Exception("canceling statement due to statement timeout"))

        monkeypatch.setattr(SchedulingRepository, "assign_booking_if_unassigned", staticmethod(timed_out))

        with pytest.raises(PersistenceTimeout) as excinfo:
            router.route(business.id, booking.id)
        assert excinfo.value.retryable is True


@pytest.mark.integration
class TestAssignmentStats:
    """Tests for the auto-assignment summary"""

    def test_summarises_recent_auto_assignments(self, db, business, dispatcher, make_provider, make_booking):
        make_provider("Quinn")
        selector = AssignmentSelector(db, dispatcher)
        first = make_booking(service="Deep Clean")
        second = make_booking(scheduled_date=date(2024, 1, 16))
        selector.auto_assign(business.id, first.id)
        selector.auto_assign(business.id, second.id)

        stats = selector.stats(business.id)

        scores = [a.auto_assignment_score for a in db.query(models.BookingAssignment).all()]
        assert stats["totalAutoAssignments"] == 2
        assert stats["averageScore"] == round(sum(scores) / len(scores), 2)
        assert {item["bookingId"] for item in stats["recentAssignments"]} == {first.id, second.id}
        by_booking = {item["bookingId"]: item for item in stats["recentAssignments"]}
        assert by_booking[first.id]["providerName"] == "Quinn"
        assert by_booking[first.id]["service"] == "Deep Clean"

    def test_other_tenants_and_manual_rows_are_excluded(
        self, db, business, other_business, dispatcher, make_provider, make_booking
    ):
        mine = make_provider("Mine")
        make_provider("Theirs", business_id=other_business.id)
        selector = AssignmentSelector(db, dispatcher)
        selector.auto_assign(other_business.id, make_booking(business_id=other_business.id).id)
        SchedulingRepository.add_assignment(
            db, business.id, make_booking().id, mine.id, score=None, assignment_type="manual"
        )
        db.commit()

        stats = selector.stats(business.id)

        assert stats == {"totalAutoAssignments": 0, "averageScore": 0.0, "recentAssignments": []}
        assert selector.stats(other_business.id)["recentAssignments"][0]["providerName"] == "Theirs"
