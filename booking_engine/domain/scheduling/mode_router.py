"""
Scheduling mode routing for new bookings

Decides per booking, from the tenant's store options, whether to:
- leave it alone (customer picked a provider, or assignment mode is manual)
- auto-assign it (accepted_automatically, or future dates under accepts_same_day_only)
- invite the top-priority provider (accept_or_decline, or same-day under accepts_same_day_only)
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import SCHEDULABLE_BOOKING_STATUSES, Booking, Provider
from ...services.notification_service import (
    NotificationDispatcher,
    booking_reference,
    notify_safely,
)
from ...shared.validators import utc_today
from .assignment import AssignmentSelector
from .errors import (
    AssignmentWriteFailure,
    BookingNotFound,
    InvitationWriteFailure,
    NoProvidersAvailable,
    PersistenceTimeout,
)
from .repository import SchedulingRepository, is_timeout_error

logger = logging.getLogger(__name__)

ACCEPTED_AUTOMATICALLY = "accepted_automatically"
ACCEPT_OR_DECLINE = "accept_or_decline"
ACCEPTS_SAME_DAY_ONLY = "accepts_same_day_only"
SCHEDULING_TYPES = (ACCEPTED_AUTOMATICALLY, ACCEPT_OR_DECLINE, ACCEPTS_SAME_DAY_ONLY)


@dataclass
class SchedulingResult:
    # provider_preselected, manual_mode, assigned, already_assigned, not_schedulable,
    # invited, no_providers, assignment_failed, invitation_failed
    outcome: str
    booking_id: int
    provider_id: Optional[int] = None
    provider_name: Optional[str] = None
    invitation_id: Optional[int] = None
    fallback: bool = False
    error: Optional[str] = None  # Error kind when the outcome is a failure

    def to_dict(self) -> dict:
        return asdict(self)


class SchedulingModeRouter:
    """Routes a new booking to auto-assignment, an invitation, or nothing"""

    def __init__(
        self,
        db: Session,
        dispatcher: NotificationDispatcher,
        today: Callable[[], date] = utc_today,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.today = today
        self.repo = SchedulingRepository()
        self.selector = AssignmentSelector(db, dispatcher)

    def route(
        self,
        business_id: int,
        booking_id: int,
        provider_id: Optional[int] = None,
        scheduled_date: Optional[date] = None,
        service: Optional[str] = None,
    ) -> SchedulingResult:
        # Customer already selected a provider - honored unconditionally
        if provider_id:
            return SchedulingResult(outcome="provider_preselected", booking_id=booking_id, provider_id=provider_id)

        booking = self.repo.get_booking(self.db, business_id, booking_id)
        if not booking:
            raise BookingNotFound(f"Booking {booking_id} not found", booking_id=booking_id)

        if booking.provider_id is not None:
            return SchedulingResult(
                outcome="already_assigned",
                booking_id=booking_id,
                provider_id=booking.provider_id,
                provider_name=booking.provider_name,
            )

        if booking.status not in SCHEDULABLE_BOOKING_STATUSES:
            logger.info(f"ℹ️ Booking {booking_id} is {booking.status}, nothing to schedule")
            return SchedulingResult(outcome="not_schedulable", booking_id=booking_id)

        config = self.repo.get_scheduling_config(self.db, business_id)
        if config and config.provider_assignment_mode == "manual":
            logger.info(f"ℹ️ Business {business_id} assigns manually, booking {booking_id} left unassigned")
            return SchedulingResult(outcome="manual_mode", booking_id=booking_id)

        scheduling_type = (config.scheduling_type if config else None) or ACCEPTED_AUTOMATICALLY
        if scheduling_type not in SCHEDULING_TYPES:
            logger.warning(f"⚠️ Unknown scheduling_type '{scheduling_type}' for business {business_id}, auto-assigning")
            scheduling_type = ACCEPTED_AUTOMATICALLY

        booking_date = scheduled_date or booking.scheduled_date
        is_same_day = booking_date is not None and booking_date == self.today()

        should_invite = scheduling_type == ACCEPT_OR_DECLINE or (
            scheduling_type == ACCEPTS_SAME_DAY_ONLY and is_same_day
        )
        logger.info(
            f"📋 Routing booking {booking_id} ({service or booking.service or 'any service'}): "
            f"type={scheduling_type}, same_day={is_same_day}, invite={should_invite}"
        )

        if should_invite:
            return self._invite(business_id, booking)
        return self._auto_assign(business_id, booking)

    def _auto_assign(self, business_id: int, booking: Booking) -> SchedulingResult:
        try:
            result = self.selector.auto_assign(business_id, booking.id)
        except NoProvidersAvailable as e:
            self._notify_no_providers(business_id, booking)
            return SchedulingResult(outcome="no_providers", booking_id=booking.id, error=e.kind)
        except AssignmentWriteFailure as e:
            self._notify_assign_manually(business_id, booking, "auto-assignment could not be saved")
            return SchedulingResult(outcome="assignment_failed", booking_id=booking.id, error=e.kind)

        return SchedulingResult(
            outcome=result.outcome,
            booking_id=booking.id,
            provider_id=result.provider_id,
            provider_name=result.provider_name,
            fallback=result.fallback,
        )

    def _pick_invitee(self, business_id: int) -> Optional[Provider]:
        provider = self.repo.get_top_provider(self.db, business_id, active_only=True)
        if provider is None:
            # Fall back to the full roster, regardless of status
            provider = self.repo.get_top_provider(self.db, business_id, active_only=False)
            if provider is not None:
                logger.warning(
                    f"⚠️ No active providers for business {business_id}, inviting {provider.status} provider {provider.id}"
                )
        return provider

    def _write_invitation(self, business_id: int, booking: Booking, provider: Provider) -> Optional[int]:
        """Returns None when another request created the pending invitation first"""
        try:
            invitation = self.repo.add_invitation(self.db, business_id, booking.id, provider.id, sort_order=0)
            self.repo.add_assignment_log(
                self.db, business_id, booking.id, provider.id, action="invited", rule_applied="invitation"
            )
            self.db.commit()
        except IntegrityError:
            # Partial unique index: one pending invitation per booking
            self.db.rollback()
            logger.info(f"ℹ️ Booking {booking.id} already has a pending invitation")
            return None
        except SQLAlchemyError as e:
            self.db.rollback()
            if is_timeout_error(e):
                raise PersistenceTimeout(f"Invitation write timed out for booking {booking.id}") from e
            logger.error(f"❌ Invitation write failed for booking {booking.id}: {e}")
            raise InvitationWriteFailure(
                f"Failed to create invitation for booking {booking.id}", booking_id=booking.id
            ) from e
        return invitation.id

    def _existing_invitation(self, business_id: int, booking: Booking) -> Optional[SchedulingResult]:
        existing = self.repo.get_pending_invitation(self.db, business_id, booking.id)
        if existing is None:
            return None
        return SchedulingResult(
            outcome="invited",
            booking_id=booking.id,
            provider_id=existing.provider_id,
            invitation_id=existing.id,
        )

    def _invite(self, business_id: int, booking: Booking) -> SchedulingResult:
        existing = self._existing_invitation(business_id, booking)
        if existing is not None:
            return existing

        provider = self._pick_invitee(business_id)
        if provider is None:
            self._notify_no_providers(business_id, booking)
            return SchedulingResult(
                outcome="no_providers", booking_id=booking.id, error=NoProvidersAvailable.kind
            )

        try:
            invitation_id = self._write_invitation(business_id, booking, provider)
        except InvitationWriteFailure as e:
            self._notify_assign_manually(business_id, booking, "the provider invitation could not be saved")
            return SchedulingResult(
                outcome="invitation_failed", booking_id=booking.id, provider_id=provider.id, error=e.kind
            )

        if invitation_id is None:
            existing = self._existing_invitation(business_id, booking)
            if existing is not None:
                return existing
            self._notify_assign_manually(business_id, booking, "the provider invitation could not be saved")
            return SchedulingResult(
                outcome="invitation_failed",
                booking_id=booking.id,
                provider_id=provider.id,
                error=InvitationWriteFailure.kind,
            )

        logger.info(f"✅ Invitation {invitation_id} sent to provider {provider.id} for booking {booking.id}")
        notify_safely(
            "invitation_sent",
            self.dispatcher.create_admin_notification,
            business_id,
            "invitation_sent",
            {
                "title": "Booking invitation sent",
                "message": f"Invitation sent to {provider.display_name}. Booking is in Unassigned until accepted.",
                "link": "/admin/bookings",
            },
        )
        return SchedulingResult(
            outcome="invited",
            booking_id=booking.id,
            provider_id=provider.id,
            provider_name=provider.display_name,
            invitation_id=invitation_id,
        )

    def _notify_no_providers(self, business_id: int, booking: Booking) -> None:
        logger.warning(f"⚠️ No providers available for booking {booking.id} (business {business_id})")
        notify_safely(
            "no_providers",
            self.dispatcher.create_admin_notification,
            business_id,
            "no_providers",
            {
                "title": "No providers for new booking",
                "message": f"Booking {booking_reference(booking.id)} was placed but no providers are available.",
                "link": "/admin/bookings",
            },
        )
        notify_safely(
            "never_found_provider",
            self.dispatcher.send_never_found_provider_email,
            booking.customer_email,
            booking.customer_name,
            booking,
        )

    def _notify_assign_manually(self, business_id: int, booking: Booking, what_failed: str) -> None:
        notify_safely(
            "assign_manually",
            self.dispatcher.create_admin_notification,
            business_id,
            "assignment_failed",
            {
                "title": "Booking needs manual assignment",
                "message": f"Booking {booking_reference(booking.id)}: {what_failed}. Please assign manually.",
                "link": "/admin/bookings",
            },
        )
