"""Scheduling domain schemas - Pydantic models for validation"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from ...shared.validators import validate_email, validate_time_hhmm
from .invitations import INVITATION_ACTIONS
from .recurring import SERIES_STATUSES


class ScheduleBookingRequest(BaseModel):
    """Schema for routing a newly created booking"""

    providerId: Optional[int] = None
    scheduledDate: Optional[date] = None
    service: Optional[str] = None


class SchedulingResultResponse(BaseModel):
    outcome: str
    bookingId: int
    providerId: Optional[int] = None
    providerName: Optional[str] = None
    invitationId: Optional[int] = None
    fallback: bool = False
    error: Optional[str] = None


class EligibilityPreviewRequest(BaseModel):
    """Schema for a hypothetical booking to rank providers against"""

    scheduledDate: Optional[date] = None
    serviceId: Optional[int] = None
    durationMinutes: Optional[int] = None

    @field_validator("durationMinutes")
    @classmethod
    def validate_duration(cls, v):
        if v is not None and v <= 0:
            raise ValueError("Duration must be greater than 0")
        return v


class EligibilityProviderResponse(BaseModel):
    id: int
    name: str
    invitationPriority: int
    score: float
    eligible: bool
    reasons: list[str]


class InvitationResponseRequest(BaseModel):
    """Schema for a provider answering an invitation"""

    action: str
    notes: Optional[str] = None

    @field_validator("action")
    @classmethod
    def validate_action(cls, v):
        v = (v or "").strip().lower()
        if v not in INVITATION_ACTIONS:
            raise ValueError("Action must be accept or decline")
        return v


class InvitationResultResponse(BaseModel):
    outcome: str
    invitationId: int
    bookingId: int
    providerId: int
    providerName: Optional[str] = None


class RecentAssignment(BaseModel):
    id: int
    bookingId: int
    providerName: str
    service: str
    score: Optional[float] = None
    assignedAt: Optional[datetime] = None


class AssignmentStatsResponse(BaseModel):
    totalAutoAssignments: int
    averageScore: float
    recentAssignments: list[RecentAssignment]


class SeriesTemplate(BaseModel):
    """Booking fields copied onto every occurrence of a series"""

    serviceId: Optional[int] = None
    service: Optional[str] = None
    customerName: Optional[str] = None
    customerEmail: Optional[str] = None
    customerPhone: Optional[str] = None
    address: Optional[str] = None
    notes: Optional[str] = None
    totalPrice: Optional[float] = None
    scheduledTime: Optional[str] = None
    durationMinutes: Optional[int] = None
    providerId: Optional[int] = None
    providerName: Optional[str] = None
    providerWage: Optional[float] = None
    providerWageType: Optional[str] = None

    @field_validator("customerEmail")
    @classmethod
    def validate_customer_email(cls, v):
        return validate_email(v)

    @field_validator("scheduledTime")
    @classmethod
    def validate_scheduled_time(cls, v):
        if v:
            return validate_time_hhmm(v)
        return v

    @field_validator("providerWageType")
    @classmethod
    def validate_wage_type(cls, v):
        if v and v not in ("percentage", "fixed", "hourly"):
            raise ValueError("Wage type must be percentage, fixed or hourly")
        return v

    def to_template(self) -> dict:
        """Model column names for the generator"""
        return {
            "service_id": self.serviceId,
            "service": self.service,
            "customer_name": self.customerName,
            "customer_email": self.customerEmail,
            "customer_phone": self.customerPhone,
            "address": self.address,
            "notes": self.notes,
            "total_price": self.totalPrice,
            "scheduled_time": self.scheduledTime,
            "duration_minutes": self.durationMinutes,
            "provider_id": self.providerId,
            "provider_name": self.providerName,
            "provider_wage": self.providerWage,
            "provider_wage_type": self.providerWageType,
        }


class SeriesCreate(BaseModel):
    """Schema for creating a recurring series"""

    template: SeriesTemplate
    startDate: date
    endDate: Optional[date] = None
    frequencyName: str
    frequencyRepeats: Optional[str] = None
    occurrencesAhead: Optional[int] = None
    sameProvider: bool = True

    @field_validator("occurrencesAhead")
    @classmethod
    def validate_occurrences(cls, v):
        if v is not None and v < 1:
            raise ValueError("occurrencesAhead must be at least 1")
        return v


class SeriesCreateResponse(BaseModel):
    seriesId: int
    bookingIds: list[int]


class SeriesStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def validate_status(cls, v):
        if v not in SERIES_STATUSES:
            raise ValueError(f"Status must be one of: {', '.join(SERIES_STATUSES)}")
        return v
