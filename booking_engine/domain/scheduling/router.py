"""Scheduling router - FastAPI endpoints for assignment, recurring series and capacity"""

import logging
from datetime import date

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Business
from ...services.notification_service import DefaultNotificationDispatcher
from ...shared.validators import validate_time_hhmm
from ...tenant import get_current_business
from .errors import SchedulingError, to_http_exception
from .schemas import (
    AssignmentStatsResponse,
    EligibilityPreviewRequest,
    EligibilityProviderResponse,
    InvitationResponseRequest,
    InvitationResultResponse,
    ScheduleBookingRequest,
    SchedulingResultResponse,
    SeriesCreate,
    SeriesCreateResponse,
    SeriesStatusUpdate,
)
from .service import SchedulingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scheduling", tags=["Scheduling"])


def get_scheduling_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
) -> SchedulingService:
    """Dependency injection for SchedulingService"""
    return SchedulingService(db, DefaultNotificationDispatcher(db, background_tasks))


# ============================================================================
# BOOKING ASSIGNMENT
# ============================================================================


@router.post("/bookings/{booking_id}/schedule", response_model=SchedulingResultResponse)
async def schedule_booking(
    booking_id: int,
    data: ScheduleBookingRequest,
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Assign, invite or leave a new booking per the business's scheduling mode"""
    try:
        result = service.schedule_booking(
            business.id,
            booking_id,
            provider_id=data.providerId,
            scheduled_date=data.scheduledDate,
            service=data.service,
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e

    return SchedulingResultResponse(
        outcome=result.outcome,
        bookingId=result.booking_id,
        providerId=result.provider_id,
        providerName=result.provider_name,
        invitationId=result.invitation_id,
        fallback=result.fallback,
        error=result.error,
    )


@router.post("/auto-assign/preview", response_model=list[EligibilityProviderResponse])
async def preview_eligibility(
    data: EligibilityPreviewRequest,
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Explain how active providers rank for a hypothetical booking"""
    try:
        candidates = service.preview_eligibility(
            business.id,
            service_id=data.serviceId,
            duration_minutes=data.durationMinutes,
            scheduled_date=data.scheduledDate,
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e

    return [
        EligibilityProviderResponse(
            id=c.id,
            name=c.name,
            invitationPriority=c.invitation_priority,
            score=c.score,
            eligible=c.eligible,
            reasons=c.reasons,
        )
        for c in candidates
    ]


@router.get("/auto-assign/stats", response_model=AssignmentStatsResponse)
async def get_assignment_stats(
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Recent auto assignments and their average score"""
    try:
        return service.assignment_stats(business.id)
    except SchedulingError as e:
        raise to_http_exception(e) from e


# ============================================================================
# INVITATIONS
# ============================================================================


@router.post("/invitations/{invitation_id}/respond", response_model=InvitationResultResponse)
async def respond_to_invitation(
    invitation_id: int,
    data: InvitationResponseRequest,
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Accept (assigns the booking) or decline a pending invitation"""
    try:
        result = service.respond_to_invitation(business.id, invitation_id, data.action, notes=data.notes)
    except SchedulingError as e:
        raise to_http_exception(e) from e

    return InvitationResultResponse(
        outcome=result.outcome,
        invitationId=result.invitation_id,
        bookingId=result.booking_id,
        providerId=result.provider_id,
        providerName=result.provider_name,
    )


# ============================================================================
# RECURRING SERIES
# ============================================================================


@router.post("/recurring", response_model=SeriesCreateResponse)
async def create_series(
    data: SeriesCreate,
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Create a recurring series and its first occurrences"""
    if data.endDate and data.endDate < data.startDate:
        raise HTTPException(status_code=400, detail="endDate must not be before startDate")
    try:
        created = service.create_series(
            business.id,
            data.template.to_template(),
            data.startDate,
            data.frequencyName,
            end_date=data.endDate,
            frequency_repeats=data.frequencyRepeats,
            occurrences_ahead=data.occurrencesAhead,
            same_provider=data.sameProvider,
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return SeriesCreateResponse(seriesId=created.series_id, bookingIds=created.booking_ids)


@router.get("/recurring/extend")
async def extend_all_series(
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Top up every active series (called when the admin calendar loads)"""
    try:
        extended, total_created = service.extend_all_series(business.id)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return {"extended": extended, "totalCreated": total_created}


@router.post("/recurring/{series_id}/extend")
async def extend_series(
    series_id: int,
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Top up one series to its lookahead count"""
    try:
        created = service.extend_series(business.id, series_id)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return {"created": created}


@router.patch("/recurring/{series_id}/status")
async def update_series_status(
    series_id: int,
    data: SeriesStatusUpdate,
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Pause, resume or end a series"""
    try:
        series = service.set_series_status(business.id, series_id, data.status)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return {"id": series.id, "status": series.status}


# ============================================================================
# CAPACITY
# ============================================================================


@router.get("/slots/availability")
async def check_slot_availability(
    day: date = Query(..., alias="date", description="YYYY-MM-DD"),
    time: str = Query(..., description="Slot time, e.g. 09:00 or 9:00 AM"),
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Whether a reserve slot can take another booking"""
    try:
        slot_time = validate_time_hhmm(time)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    try:
        available = service.is_slot_available(business.id, day, slot_time)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return {"date": day.isoformat(), "time": slot_time, "available": available}


@router.get("/spot-limits/check")
async def check_spot_limits(
    day: date = Query(..., alias="date", description="YYYY-MM-DD"),
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Whether the business's daily, weekly and monthly limits allow a booking on a date"""
    try:
        decision = service.check_spot_limits(business.id, day)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return {"date": day.isoformat(), "allowed": decision.allowed, "reason": decision.reason}


@router.get("/booking-counts-by-time")
async def get_booking_counts_by_time(
    day: date = Query(..., alias="date", description="YYYY-MM-DD"),
    business: Business = Depends(get_current_business),
    service: SchedulingService = Depends(get_scheduling_service),
):
    """Active booking counts per HH:mm for one day"""
    try:
        counts = service.booking_counts_by_time(business.id, day)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return {"date": day.isoformat(), "counts": counts}
