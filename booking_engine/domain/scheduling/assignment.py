"""Auto-assignment: pick one provider for a booking and commit the assignment"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import SCHEDULABLE_BOOKING_STATUSES, Booking, Provider
from ...services.notification_service import (
    NotificationDispatcher,
    booking_reference,
    notify_safely,
)
from .eligibility import (
    EligibilityEvaluator,
    EligibilityProvider,
    EligibilityRequest,
    rank_candidates,
)
from .errors import (
    AssignmentWriteFailure,
    BookingNotFound,
    NoEligibleProviders,
    NoProvidersAvailable,
    PersistenceTimeout,
)
from .repository import SchedulingRepository, is_timeout_error

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Fallback by priority"


@dataclass
class AssignmentResult:
    outcome: str  # assigned, already_assigned, not_schedulable
    booking_id: int
    provider_id: Optional[int] = None
    provider_name: Optional[str] = None
    score: float = 0.0
    fallback: bool = False
    reasons: list[str] = field(default_factory=list)


@dataclass
class Selection:
    provider: Provider
    score: float
    reasons: list[str]
    fallback: bool = False


class AssignmentSelector:
    """
    Ranks eligible providers and writes a single assignment.

    Ordering is invitation_priority desc, score desc, created_at asc. When
    nobody is eligible the highest-priority active provider is used instead.
    """

    def __init__(self, db: Session, dispatcher: NotificationDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.repo = SchedulingRepository()

    def _evaluator(self, business_id: int) -> EligibilityEvaluator:
        config = self.repo.get_scheduling_config(self.db, business_id)
        max_minutes = config.max_minutes_per_provider_per_booking if config else None
        return EligibilityEvaluator(max_minutes_per_booking=max_minutes)

    def preview(self, business_id: int, request: EligibilityRequest) -> list[EligibilityProvider]:
        """Rank every active provider for a hypothetical booking without writing anything"""
        providers = self.repo.get_providers(self.db, business_id, active_only=True)
        candidates = self._evaluator(business_id).evaluate_all(providers, request)
        return rank_candidates(candidates)

    def select_eligible(self, business_id: int, request: EligibilityRequest) -> Selection:
        """Best eligible provider; raises NoEligibleProviders when the eligible set is empty"""
        providers = self.repo.get_providers(self.db, business_id, active_only=True)
        by_id = {provider.id: provider for provider in providers}
        candidates = self._evaluator(business_id).evaluate_all(providers, request)
        eligible = rank_candidates(c for c in candidates if c.eligible)
        if not eligible:
            raise NoEligibleProviders(f"No provider passed the eligibility filters for business {business_id}")
        best = eligible[0]
        return Selection(provider=by_id[best.id], score=best.score, reasons=best.reasons)

    def select(self, business_id: int, request: EligibilityRequest) -> Selection:
        try:
            return self.select_eligible(business_id, request)
        except NoEligibleProviders as e:
            fallback = self.repo.get_top_provider(self.db, business_id, active_only=True)
            if fallback is None:
                raise NoProvidersAvailable(f"No active providers for business {business_id}") from e
            logger.warning(f"⚠️ {e.message}, falling back to provider {fallback.id} by priority")
            return Selection(provider=fallback, score=0.0, reasons=[FALLBACK_REASON], fallback=True)

    def _commit(self, business_id: int, booking: Booking, selection: Selection) -> bool:
        """
        Write the assignment atomically. Returns False when the booking was
        assigned by someone else in the meantime.
        """
        provider = selection.provider
        try:
            updated = self.repo.assign_booking_if_unassigned(self.db, business_id, booking.id, provider)
            if updated == 0:
                self.db.rollback()
                return False
            self.repo.add_assignment(
                self.db, business_id, booking.id, provider.id, selection.score, assignment_type="auto"
            )
            self.repo.add_assignment_log(
                self.db,
                business_id,
                booking.id,
                provider.id,
                action="assigned",
                score=selection.score,
                rule_applied="fallback-by-priority" if selection.fallback else "auto-assignment",
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            if is_timeout_error(e):
                raise PersistenceTimeout(f"Assignment write timed out for booking {booking.id}") from e
            logger.error(f"❌ Auto-assign write failed for booking {booking.id}: {e}")
            raise AssignmentWriteFailure(
                f"Failed to create assignment for booking {booking.id}", booking_id=booking.id
            ) from e
        return True

    def auto_assign(self, business_id: int, booking_id: int) -> AssignmentResult:
        booking = self.repo.get_booking(self.db, business_id, booking_id)
        if not booking:
            raise BookingNotFound(f"Booking {booking_id} not found", booking_id=booking_id)

        if booking.provider_id is not None:
            logger.info(f"ℹ️ Booking {booking_id} already has provider {booking.provider_id}, skipping")
            return AssignmentResult(
                outcome="already_assigned",
                booking_id=booking_id,
                provider_id=booking.provider_id,
                provider_name=booking.provider_name,
            )

        if booking.status not in SCHEDULABLE_BOOKING_STATUSES:
            logger.info(f"ℹ️ Booking {booking_id} is {booking.status}, not assigning")
            return AssignmentResult(outcome="not_schedulable", booking_id=booking_id)

        request = EligibilityRequest(
            service_id=booking.service_id,
            duration_minutes=booking.duration_minutes,
            scheduled_date=booking.scheduled_date,
        )
        selection = self.select(business_id, request)
        provider = selection.provider

        if not self._commit(business_id, booking, selection):
            self.db.refresh(booking)
            if booking.provider_id is None:
                logger.info(f"ℹ️ Booking {booking_id} became {booking.status} before it could be assigned")
                return AssignmentResult(outcome="not_schedulable", booking_id=booking_id)
            logger.info(f"ℹ️ Booking {booking_id} was assigned concurrently to provider {booking.provider_id}")
            return AssignmentResult(
                outcome="already_assigned",
                booking_id=booking_id,
                provider_id=booking.provider_id,
                provider_name=booking.provider_name,
            )

        self.db.refresh(booking)
        logger.info(
            f"✅ Booking {booking_id} assigned to provider {provider.id} (score={selection.score}, fallback={selection.fallback})"
        )

        notify_safely(
            "booking_assigned",
            self.dispatcher.create_admin_notification,
            business_id,
            "booking_assigned",
            {
                "title": "Booking assigned",
                "message": f"Provider {provider.display_name} was assigned to booking {booking_reference(booking.id)}.",
                "link": "/admin/bookings",
            },
        )
        notify_safely(
            "provider_booking_assigned",
            self.dispatcher.send_provider_booking_assigned,
            provider,
            booking,
        )

        return AssignmentResult(
            outcome="assigned",
            booking_id=booking_id,
            provider_id=provider.id,
            provider_name=provider.display_name,
            score=selection.score,
            fallback=selection.fallback,
            reasons=selection.reasons,
        )

    def stats(self, business_id: int, limit: int = 10) -> dict:
        """Recent auto assignments and their average score"""
        rows = self.repo.get_recent_auto_assignments(self.db, business_id, limit=limit)
        recent = [
            {
                "id": assignment.id,
                "bookingId": assignment.booking_id,
                "providerName": provider.display_name if provider else "Unknown",
                "service": booking.service or "Unknown",
                "score": assignment.auto_assignment_score,
                "assignedAt": assignment.assigned_at,
            }
            for assignment, provider, booking in rows
        ]
        average = sum(item["score"] or 0 for item in recent) / len(recent) if recent else 0.0
        return {
            "totalAutoAssignments": len(recent),
            "averageScore": round(average, 2),
            "recentAssignments": recent,
        }
