"""Provider responses to booking invitations

Accepting assigns the booking through the same conditional update auto-assignment
uses, so an invitation can never overwrite a booking that was assigned or
cancelled in the meantime. Declining leaves the booking in Unassigned; the
admin decides who to ask next.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ...models import Booking, Provider, ProviderBookingInvitation
from ...services.notification_service import (
    NotificationDispatcher,
    booking_reference,
    notify_safely,
)
from .errors import (
    AssignmentWriteFailure,
    BookingNotFound,
    InvitationNotFound,
    PersistenceTimeout,
    ProviderNotFound,
)
from .repository import SchedulingRepository, is_timeout_error

logger = logging.getLogger(__name__)

INVITATION_ACTIONS = ("accept", "decline")


@dataclass
class InvitationResponse:
    # accepted, declined, already_assigned, not_schedulable
    outcome: str
    invitation_id: int
    booking_id: int
    provider_id: int
    provider_name: Optional[str] = None


class InvitationResponder:
    """Applies a provider's accept or decline to a pending invitation"""

    def __init__(self, db: Session, dispatcher: NotificationDispatcher):
        self.db = db
        self.dispatcher = dispatcher
        self.repo = SchedulingRepository()

    def _load(self, business_id: int, invitation_id: int) -> tuple[ProviderBookingInvitation, Booking, Provider]:
        invitation = self.repo.get_invitation(self.db, business_id, invitation_id)
        if invitation is None or invitation.status != "pending":
            raise InvitationNotFound(f"Invitation {invitation_id} not found or already responded")
        booking = self.repo.get_booking(self.db, business_id, invitation.booking_id)
        if booking is None:
            raise BookingNotFound(f"Booking {invitation.booking_id} not found", booking_id=invitation.booking_id)
        provider = self.repo.get_provider(self.db, business_id, invitation.provider_id)
        if provider is None:
            raise ProviderNotFound(f"Provider {invitation.provider_id} not found")
        return invitation, booking, provider

    def _write_failed(self, e: SQLAlchemyError, booking_id: int):
        self.db.rollback()
        if is_timeout_error(e):
            return PersistenceTimeout(f"Invitation response timed out for booking {booking_id}")
        logger.error(f"❌ Invitation response write failed for booking {booking_id}: {e}")
        return AssignmentWriteFailure(f"Failed to record invitation response for booking {booking_id}", booking_id=booking_id)

    def respond(
        self, business_id: int, invitation_id: int, action: str, notes: Optional[str] = None
    ) -> InvitationResponse:
        if action not in INVITATION_ACTIONS:
            raise ValueError(f"Invalid invitation action: {action}")

        invitation, booking, provider = self._load(business_id, invitation_id)
        if action == "accept":
            return self._accept(business_id, invitation, booking, provider, notes)
        return self._decline(business_id, invitation, booking, provider, notes)

    def _accept(
        self,
        business_id: int,
        invitation: ProviderBookingInvitation,
        booking: Booking,
        provider: Provider,
        notes: Optional[str],
    ) -> InvitationResponse:
        try:
            if not self.repo.respond_to_invitation_if_pending(
                self.db, business_id, invitation.id, "accepted", notes
            ):
                self.db.rollback()
                raise InvitationNotFound(f"Invitation {invitation.id} not found or already responded")

            if not self.repo.assign_booking_if_unassigned(self.db, business_id, booking.id, provider):
                # Keep the invitation pending; the booking moved on without it
                self.db.rollback()
                self.db.refresh(booking)
                outcome = "already_assigned" if booking.provider_id is not None else "not_schedulable"
                logger.info(f"ℹ️ Invitation {invitation.id} not applied, booking {booking.id} is {outcome}")
                return InvitationResponse(
                    outcome=outcome,
                    invitation_id=invitation.id,
                    booking_id=booking.id,
                    provider_id=provider.id,
                    provider_name=provider.display_name,
                )

            self.repo.add_assignment(
                self.db, business_id, booking.id, provider.id, score=None, assignment_type="invitation"
            )
            self.repo.add_assignment_log(
                self.db, business_id, booking.id, provider.id, action="accepted", rule_applied="invitation"
            )
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._write_failed(e, booking.id) from e

        logger.info(f"✅ Provider {provider.id} accepted invitation {invitation.id} for booking {booking.id}")
        notify_safely(
            "invitation_accepted",
            self.dispatcher.create_admin_notification,
            business_id,
            "invitation_accepted",
            {
                "title": "Provider accepted booking",
                "message": f"{provider.display_name} accepted booking {booking_reference(booking.id)}.",
                "link": "/admin/bookings",
            },
        )
        return InvitationResponse(
            outcome="accepted",
            invitation_id=invitation.id,
            booking_id=booking.id,
            provider_id=provider.id,
            provider_name=provider.display_name,
        )

    def _decline(
        self,
        business_id: int,
        invitation: ProviderBookingInvitation,
        booking: Booking,
        provider: Provider,
        notes: Optional[str],
    ) -> InvitationResponse:
        try:
            if not self.repo.respond_to_invitation_if_pending(
                self.db, business_id, invitation.id, "declined", notes
            ):
                self.db.rollback()
                raise InvitationNotFound(f"Invitation {invitation.id} not found or already responded")
            self.repo.add_assignment_log(
                self.db, business_id, booking.id, provider.id, action="declined", rule_applied="invitation"
            )
            self.db.commit()
        except SQLAlchemyError as e:
            raise self._write_failed(e, booking.id) from e

        logger.info(f"↩️ Provider {provider.id} declined invitation {invitation.id} for booking {booking.id}")
        notify_safely(
            "invitation_declined",
            self.dispatcher.create_admin_notification,
            business_id,
            "invitation_declined",
            {
                "title": "Provider declined booking",
                "message": (
                    f"{provider.display_name} declined booking {booking_reference(booking.id)}. "
                    "It remains in Unassigned."
                ),
                "link": "/admin/bookings",
            },
        )
        return InvitationResponse(
            outcome="declined",
            invitation_id=invitation.id,
            booking_id=booking.id,
            provider_id=provider.id,
            provider_name=provider.display_name,
        )
