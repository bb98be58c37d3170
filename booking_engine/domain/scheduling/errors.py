"""Scheduling error kinds.

Each error carries a stable ``kind`` string so callers can branch on it and
results can report it without formatting user-facing text.
"""

from typing import Optional

from fastapi import HTTPException


class SchedulingError(Exception):
    kind = "scheduling_error"
    retryable = False

    def __init__(self, message: str = "", *, booking_id: Optional[int] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.booking_id = booking_id


class BookingNotFound(SchedulingError):
    kind = "booking_not_found"


class SeriesNotFound(SchedulingError):
    kind = "series_not_found"


class ProviderNotFound(SchedulingError):
    kind = "provider_not_found"


class ServiceNotFound(SchedulingError):
    kind = "service_not_found"


class InvitationNotFound(SchedulingError):
    """No pending invitation with that id in this business."""

    kind = "invitation_not_found"


class NoEligibleProviders(SchedulingError):
    """Nobody passed the eligibility filters; the selector falls back by priority."""

    kind = "no_eligible_providers"


class NoProvidersAvailable(SchedulingError):
    """The tenant has no provider to assign or invite; the booking stays unassigned."""

    kind = "no_providers_available"


class AssignmentWriteFailure(SchedulingError):
    kind = "assignment_write_failure"


class InvitationWriteFailure(SchedulingError):
    kind = "invitation_write_failure"


class SeriesWriteFailure(SchedulingError):
    kind = "series_write_failure"


class NotificationSendFailure(SchedulingError):
    kind = "notification_send_failure"


class InvalidStatusTransition(SchedulingError):
    kind = "invalid_status_transition"


class EarningsNotApplicable(SchedulingError):
    """Earnings are only recorded for completed bookings with a provider."""

    kind = "earnings_not_applicable"


class EarningsWriteFailure(SchedulingError):
    kind = "earnings_write_failure"


class PersistenceTimeout(SchedulingError):
    """A store call exceeded its bound. Safe to retry; not a scheduling decision."""

    kind = "persistence_timeout"
    retryable = True


_HTTP_STATUS = {
    BookingNotFound: 404,
    SeriesNotFound: 404,
    ProviderNotFound: 404,
    ServiceNotFound: 404,
    InvitationNotFound: 404,
    InvalidStatusTransition: 409,
    EarningsNotApplicable: 409,
    PersistenceTimeout: 503,
}


def to_http_exception(error: SchedulingError) -> HTTPException:
    """Map an error kind to the HTTP status routers respond with"""
    status_code = next(
        (code for cls, code in _HTTP_STATUS.items() if isinstance(error, cls)),
        500,
    )
    headers = {"Retry-After": "1"} if error.retryable else None
    return HTTPException(
        status_code=status_code,
        detail={"error": error.kind, "message": error.message},
        headers=headers,
    )
