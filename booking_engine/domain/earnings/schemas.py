"""Earnings domain schemas - Pydantic models for validation"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .service import STATUS_TRANSITIONS


class BookingStatusUpdate(BaseModel):
    """Schema for moving a booking along its lifecycle"""

    status: str
    actualDurationMinutes: Optional[int] = None

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in STATUS_TRANSITIONS:
            raise ValueError(f"Status must be one of: {', '.join(STATUS_TRANSITIONS)}")
        return v

    @field_validator("actualDurationMinutes")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Duration must be greater than 0")
        return v


class EarningResponse(BaseModel):
    """Schema for a recorded provider earning"""

    id: int
    bookingId: int
    providerId: int
    grossAmount: float
    commissionAmount: float
    netAmount: float
    payRateType: str
    rateSource: str
    hoursWorked: Optional[float] = None
    status: str
    created_at: Optional[datetime] = None


class BookingStatusResponse(BaseModel):
    bookingId: int
    status: str
    earning: Optional[EarningResponse] = None


class EarningsSummaryResponse(BaseModel):
    providerId: int
    totalGross: float
    totalCommission: float
    totalNet: float
    pendingPayout: float
    completedJobs: int
