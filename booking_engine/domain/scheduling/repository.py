"""Scheduling repository - Database operations for bookings, providers and store options

Every query is scoped by business_id. Methods prefixed with ``add_`` only stage
rows on the session; the calling service owns the transaction.
"""

from contextlib import contextmanager
from datetime import date
from typing import Optional

from sqlalchemy import func
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session, selectinload

from ...models import (
    ACTIVE_BOOKING_STATUSES,
    SCHEDULABLE_BOOKING_STATUSES,
    AdminNotification,
    AssignmentLog,
    Booking,
    BookingAssignment,
    BusinessHoliday,
    Provider,
    ProviderBookingInvitation,
    RecurringSeries,
    ReserveSlotSettings,
    SchedulingConfig,
    Service,
    SpotLimits,
)
from .errors import PersistenceTimeout

_TIMEOUT_MARKERS = ("statement timeout", "canceling statement", "querycanceled", "lock timeout")


def is_timeout_error(error: Exception) -> bool:
    """True when the driver reports a cancelled or timed-out statement"""
    orig = getattr(error, "orig", None)
    message = str(orig if orig is not None else error).lower()
    return any(marker in message for marker in _TIMEOUT_MARKERS)


@contextmanager
def persistence_guard(db: Session):
    """Roll back and re-raise store timeouts as retryable PersistenceTimeout."""
    try:
        yield
    except OperationalError as e:
        db.rollback()
        if is_timeout_error(e):
            raise PersistenceTimeout(f"Store call timed out: {str(e)[:200]}") from e
        raise


class SchedulingRepository:
    """Repository for scheduling database operations"""

    # Bookings
    @staticmethod
    def get_booking(db: Session, business_id: int, booking_id: int) -> Optional[Booking]:
        """Get a booking by ID within a business"""
        return (
            db.query(Booking)
            .filter(Booking.id == booking_id, Booking.business_id == business_id)
            .first()
        )

    @staticmethod
    def assign_booking_if_unassigned(
        db: Session, business_id: int, booking_id: int, provider: Provider
    ) -> int:
        """
        Conditionally set the booking's provider while it is still pending and unassigned.
        Returns the number of rows updated (0 when another request assigned or cancelled it first).
        """
        return (
            db.query(Booking)
            .filter(
                Booking.id == booking_id,
                Booking.business_id == business_id,
                Booking.provider_id.is_(None),
                Booking.status.in_(SCHEDULABLE_BOOKING_STATUSES),
            )
            .update(
                {
                    Booking.provider_id: provider.id,
                    Booking.provider_name: provider.display_name,
                    Booking.status: "confirmed",
                },
                synchronize_session=False,
            )
        )

    @staticmethod
    def count_bookings_between(db: Session, business_id: int, start: date, end: date) -> int:
        """Count capacity-occupying bookings with start <= scheduled_date <= end"""
        return (
            db.query(func.count(Booking.id))
            .filter(
                Booking.business_id == business_id,
                Booking.scheduled_date >= start,
                Booking.scheduled_date <= end,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .scalar()
            or 0
        )

    @staticmethod
    def get_active_booking_times(db: Session, business_id: int, day: date) -> list[Optional[str]]:
        """Stored scheduled_time values of capacity-occupying bookings on a date"""
        rows = (
            db.query(Booking.scheduled_time)
            .filter(
                Booking.business_id == business_id,
                Booking.scheduled_date == day,
                Booking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def add_bookings(db: Session, bookings: list[Booking]) -> list[Booking]:
        db.add_all(bookings)
        db.flush()
        return bookings

    # Providers
    @staticmethod
    def get_providers(db: Session, business_id: int, active_only: bool = True) -> list[Provider]:
        """Get the provider roster with services, preferences and capacity loaded"""
        query = (
            db.query(Provider)
            .options(
                selectinload(Provider.services),
                selectinload(Provider.preferences),
                selectinload(Provider.capacity),
            )
            .filter(Provider.business_id == business_id)
        )
        if active_only:
            query = query.filter(Provider.status == "active")
        return query.order_by(Provider.invitation_priority.desc(), Provider.created_at.asc()).all()

    @staticmethod
    def get_top_provider(db: Session, business_id: int, active_only: bool = True) -> Optional[Provider]:
        """Highest invitation_priority provider, earliest created_at on ties"""
        query = db.query(Provider).filter(Provider.business_id == business_id)
        if active_only:
            query = query.filter(Provider.status == "active")
        return query.order_by(
            Provider.invitation_priority.desc(), Provider.created_at.asc(), Provider.id.asc()
        ).first()

    @staticmethod
    def get_provider(db: Session, business_id: int, provider_id: int) -> Optional[Provider]:
        return (
            db.query(Provider)
            .options(selectinload(Provider.preferences))
            .filter(Provider.id == provider_id, Provider.business_id == business_id)
            .first()
        )

    # Assignments and invitations
    @staticmethod
    def add_assignment(
        db: Session,
        business_id: int,
        booking_id: int,
        provider_id: int,
        score: Optional[float],
        assignment_type: str = "auto",
    ) -> BookingAssignment:
        assignment = BookingAssignment(
            business_id=business_id,
            booking_id=booking_id,
            provider_id=provider_id,
            assignment_type=assignment_type,
            status="assigned",
            auto_assignment_score=score,
        )
        db.add(assignment)
        return assignment

    @staticmethod
    def add_assignment_log(
        db: Session,
        business_id: int,
        booking_id: int,
        provider_id: Optional[int],
        action: str,
        score: Optional[float] = None,
        rule_applied: Optional[str] = None,
    ) -> AssignmentLog:
        log = AssignmentLog(
            business_id=business_id,
            booking_id=booking_id,
            provider_id=provider_id,
            action=action,
            assignment_score=score,
            rule_applied=rule_applied,
        )
        db.add(log)
        return log

    @staticmethod
    def add_invitation(
        db: Session, business_id: int, booking_id: int, provider_id: int, sort_order: int = 0
    ) -> ProviderBookingInvitation:
        invitation = ProviderBookingInvitation(
            business_id=business_id,
            booking_id=booking_id,
            provider_id=provider_id,
            status="pending",
            sort_order=sort_order,
        )
        db.add(invitation)
        return invitation

    @staticmethod
    def get_pending_invitation(
        db: Session, business_id: int, booking_id: int
    ) -> Optional[ProviderBookingInvitation]:
        return (
            db.query(ProviderBookingInvitation)
            .filter(
                ProviderBookingInvitation.business_id == business_id,
                ProviderBookingInvitation.booking_id == booking_id,
                ProviderBookingInvitation.status == "pending",
            )
            .order_by(ProviderBookingInvitation.sort_order.asc())
            .first()
        )

    @staticmethod
    def get_invitation(
        db: Session, business_id: int, invitation_id: int
    ) -> Optional[ProviderBookingInvitation]:
        return (
            db.query(ProviderBookingInvitation)
            .filter(
                ProviderBookingInvitation.id == invitation_id,
                ProviderBookingInvitation.business_id == business_id,
            )
            .first()
        )

    @staticmethod
    def respond_to_invitation_if_pending(
        db: Session,
        business_id: int,
        invitation_id: int,
        status: str,
        notes: Optional[str] = None,
    ) -> int:
        """Move a pending invitation to accepted/declined. Returns rows updated."""
        return (
            db.query(ProviderBookingInvitation)
            .filter(
                ProviderBookingInvitation.id == invitation_id,
                ProviderBookingInvitation.business_id == business_id,
                ProviderBookingInvitation.status == "pending",
            )
            .update(
                {
                    ProviderBookingInvitation.status: status,
                    ProviderBookingInvitation.response_notes: notes,
                    ProviderBookingInvitation.responded_at: func.now(),
                },
                synchronize_session=False,
            )
        )

    @staticmethod
    def get_recent_auto_assignments(
        db: Session, business_id: int, limit: int = 10
    ) -> list[tuple[BookingAssignment, Optional[Provider], Booking]]:
        """Newest auto assignments with their provider and booking"""
        return (
            db.query(BookingAssignment, Provider, Booking)
            .outerjoin(Provider, Provider.id == BookingAssignment.provider_id)
            .join(Booking, Booking.id == BookingAssignment.booking_id)
            .filter(
                BookingAssignment.business_id == business_id,
                BookingAssignment.assignment_type == "auto",
            )
            .order_by(BookingAssignment.assigned_at.desc(), BookingAssignment.id.desc())
            .limit(limit)
            .all()
        )

    # Catalog
    @staticmethod
    def get_service(db: Session, business_id: int, service_id: int) -> Optional[Service]:
        return db.query(Service).filter(Service.id == service_id, Service.business_id == business_id).first()

    # Store options
    @staticmethod
    def get_scheduling_config(db: Session, business_id: int) -> Optional[SchedulingConfig]:
        return db.query(SchedulingConfig).filter(SchedulingConfig.business_id == business_id).first()

    @staticmethod
    def get_holidays(db: Session, business_id: int) -> list[BusinessHoliday]:
        return db.query(BusinessHoliday).filter(BusinessHoliday.business_id == business_id).all()

    @staticmethod
    def get_reserve_slot_settings(db: Session, business_id: int) -> Optional[ReserveSlotSettings]:
        return (
            db.query(ReserveSlotSettings)
            .filter(ReserveSlotSettings.business_id == business_id)
            .first()
        )

    @staticmethod
    def get_spot_limits(db: Session, business_id: int) -> Optional[SpotLimits]:
        return db.query(SpotLimits).filter(SpotLimits.business_id == business_id).first()

    # Recurring series
    @staticmethod
    def get_series(
        db: Session, business_id: int, series_id: int, active_only: bool = False
    ) -> Optional[RecurringSeries]:
        query = db.query(RecurringSeries).filter(
            RecurringSeries.id == series_id, RecurringSeries.business_id == business_id
        )
        if active_only:
            query = query.filter(RecurringSeries.status == "active")
        return query.first()

    @staticmethod
    def get_active_series_ids(db: Session, business_id: int) -> list[int]:
        rows = (
            db.query(RecurringSeries.id)
            .filter(RecurringSeries.business_id == business_id, RecurringSeries.status == "active")
            .order_by(RecurringSeries.id.asc())
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def get_series_booking_dates(db: Session, business_id: int, series_id: int) -> list[date]:
        """All scheduled dates in a series, latest first"""
        rows = (
            db.query(Booking.scheduled_date)
            .filter(Booking.business_id == business_id, Booking.recurring_series_id == series_id)
            .order_by(Booking.scheduled_date.desc())
            .all()
        )
        return [row[0] for row in rows]

    @staticmethod
    def add_series(db: Session, series: RecurringSeries) -> RecurringSeries:
        db.add(series)
        db.flush()
        return series

    # Admin feed
    @staticmethod
    def create_admin_notification(
        db: Session, business_id: int, type: str, title: str, message: str, link: Optional[str]
    ) -> AdminNotification:
        notification = AdminNotification(
            business_id=business_id, type=type, title=title, message=message, link=link
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        return notification
