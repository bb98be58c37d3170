"""Scheduling service - Entry points for booking assignment, recurring series and capacity"""

import logging
from datetime import date
from typing import Callable, Optional

from sqlalchemy.orm import Session

from ...models import RecurringSeries
from ...services.notification_service import NotificationDispatcher
from ...shared.validators import utc_today
from .assignment import AssignmentSelector
from .capacity import CapacityDecision, CapacityGate
from .eligibility import EligibilityProvider, EligibilityRequest
from .invitations import InvitationResponder, InvitationResponse
from .mode_router import SchedulingModeRouter, SchedulingResult
from .recurring import RecurringSeriesGenerator, SeriesCreation
from .repository import persistence_guard

logger = logging.getLogger(__name__)


class SchedulingService:
    """Service layer for scheduling business logic"""

    def __init__(
        self,
        db: Session,
        dispatcher: NotificationDispatcher,
        today: Callable[[], date] = utc_today,
    ):
        self.db = db
        self.today = today
        self.gate = CapacityGate(db)
        self.router = SchedulingModeRouter(db, dispatcher, today=today)
        self.selector = AssignmentSelector(db, dispatcher)
        self.recurring = RecurringSeriesGenerator(db, today=today)
        self.invitations = InvitationResponder(db, dispatcher)

    def schedule_booking(
        self,
        business_id: int,
        booking_id: int,
        provider_id: Optional[int] = None,
        scheduled_date: Optional[date] = None,
        service: Optional[str] = None,
    ) -> SchedulingResult:
        """Route a newly created booking per the tenant's assignment mode"""
        with persistence_guard(self.db):
            return self.router.route(
                business_id,
                booking_id,
                provider_id=provider_id,
                scheduled_date=scheduled_date,
                service=service,
            )

    def preview_eligibility(
        self,
        business_id: int,
        service_id: Optional[int] = None,
        duration_minutes: Optional[int] = None,
        scheduled_date: Optional[date] = None,
    ) -> list[EligibilityProvider]:
        """Read-only ranking of active providers, eligible or not"""
        request = EligibilityRequest(
            service_id=service_id, duration_minutes=duration_minutes, scheduled_date=scheduled_date
        )
        with persistence_guard(self.db):
            return self.selector.preview(business_id, request)

    def respond_to_invitation(
        self, business_id: int, invitation_id: int, action: str, notes: Optional[str] = None
    ) -> InvitationResponse:
        """Accept (assigns the booking) or decline a pending invitation"""
        with persistence_guard(self.db):
            return self.invitations.respond(business_id, invitation_id, action, notes=notes)

    def assignment_stats(self, business_id: int) -> dict:
        with persistence_guard(self.db):
            return self.selector.stats(business_id)

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
        with persistence_guard(self.db):
            return self.recurring.create_series(
                business_id,
                template,
                start_date,
                frequency_name,
                end_date=end_date,
                frequency_repeats=frequency_repeats,
                occurrences_ahead=occurrences_ahead,
                same_provider=same_provider,
            )

    def extend_series(self, business_id: int, series_id: int) -> int:
        with persistence_guard(self.db):
            return self.recurring.extend_series(business_id, series_id)

    def extend_all_series(self, business_id: int) -> tuple[int, int]:
        with persistence_guard(self.db):
            extended, total_created = self.recurring.extend_all_series(business_id)
        if total_created:
            logger.info(f"🔁 Business {business_id}: {total_created} bookings created across {extended} series")
        return extended, total_created

    def set_series_status(self, business_id: int, series_id: int, status: str) -> RecurringSeries:
        with persistence_guard(self.db):
            return self.recurring.set_series_status(business_id, series_id, status)

    def is_slot_available(self, business_id: int, day: date, time_value: str) -> bool:
        """A slot is bookable when the date is not a holiday and its reserve-slot cap is not reached"""
        with persistence_guard(self.db):
            if self.gate.is_date_holiday(business_id, day):
                return False
            return self.gate.is_time_slot_available_for_booking(business_id, day, time_value)

    def check_spot_limits(self, business_id: int, day: date) -> CapacityDecision:
        with persistence_guard(self.db):
            return self.gate.check_spot_limits(business_id, day, self.today())

    def booking_counts_by_time(self, business_id: int, day: date) -> dict[str, int]:
        with persistence_guard(self.db):
            return self.gate.get_booking_count_by_time_for_date(business_id, day)
