"""Earnings router - FastAPI endpoints for booking completion and provider pay"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...database import get_db
from ...models import Business, ProviderEarning
from ...tenant import get_current_business
from ..scheduling.errors import SchedulingError, to_http_exception
from .schemas import (
    BookingStatusResponse,
    BookingStatusUpdate,
    EarningResponse,
    EarningsSummaryResponse,
)
from .service import EarningsService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/earnings", tags=["Earnings"])


def get_earnings_service(db: Session = Depends(get_db)) -> EarningsService:
    """Dependency injection for EarningsService"""
    return EarningsService(db)


def _earning_response(earning: ProviderEarning) -> EarningResponse:
    return EarningResponse(
        id=earning.id,
        bookingId=earning.booking_id,
        providerId=earning.provider_id,
        grossAmount=earning.gross_amount,
        commissionAmount=earning.commission_amount,
        netAmount=earning.net_amount,
        payRateType=earning.pay_rate_type,
        rateSource=earning.rate_source,
        hoursWorked=earning.hours_worked,
        status=earning.status,
        created_at=earning.created_at,
    )


@router.patch("/bookings/{booking_id}/status", response_model=BookingStatusResponse)
async def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    business: Business = Depends(get_current_business),
    service: EarningsService = Depends(get_earnings_service),
):
    """Change a booking's status; completing it records the provider's earnings"""
    try:
        booking, earning = service.update_booking_status(
            business.id, booking_id, data.status, actual_duration_minutes=data.actualDurationMinutes
        )
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return BookingStatusResponse(
        bookingId=booking.id,
        status=booking.status,
        earning=_earning_response(earning) if earning else None,
    )


@router.post("/bookings/{booking_id}/calculate", response_model=EarningResponse)
async def calculate_booking_earnings(
    booking_id: int,
    business: Business = Depends(get_current_business),
    service: EarningsService = Depends(get_earnings_service),
):
    """Record earnings for an already completed booking (no-op if recorded)"""
    try:
        earning = service.calculate_for_booking(business.id, booking_id)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return _earning_response(earning)


@router.get("/providers/{provider_id}/summary", response_model=EarningsSummaryResponse)
async def get_provider_earnings_summary(
    provider_id: int,
    business: Business = Depends(get_current_business),
    service: EarningsService = Depends(get_earnings_service),
):
    """Totals of a provider's recorded earnings"""
    try:
        summary = service.get_provider_earnings_summary(business.id, provider_id)
    except SchedulingError as e:
        raise to_http_exception(e) from e
    return EarningsSummaryResponse(**summary)
