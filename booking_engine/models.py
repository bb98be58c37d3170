import uuid

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from .database import Base

# Statuses that occupy capacity; completed/cancelled never count against limits
ACTIVE_BOOKING_STATUSES = ("pending", "confirmed", "in_progress")
BOOKING_STATUSES = ("pending", "confirmed", "in_progress", "completed", "cancelled")
# Only these bookings may be auto-assigned or have an invitation accepted
SCHEDULABLE_BOOKING_STATUSES = ("pending",)


def generate_public_id():
    """Generate a unique public ID for secure public access"""
    return str(uuid.uuid4())


class Business(Base):
    """Tenant. Every other row is scoped by business_id."""

    __tablename__ = "businesses"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    admin_email = Column(String(255), nullable=True)
    created_at = Column(DateTime, server_default=func.now())

    scheduling_config = relationship("SchedulingConfig", back_populates="business", uselist=False)
    providers = relationship("Provider", back_populates="business")


class Service(Base):
    __tablename__ = "services"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    default_duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class Provider(Base):
    __tablename__ = "service_providers"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    first_name = Column(String(255), nullable=True)
    last_name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    status = Column(String(20), default="active", nullable=False, index=True)  # active, inactive
    # Higher = preferred when ranking and when choosing who gets invited first
    invitation_priority = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime, server_default=func.now())  # Tie-break key (oldest wins)

    business = relationship("Business", back_populates="providers")
    services = relationship("ProviderService", back_populates="provider", cascade="all, delete-orphan")
    preferences = relationship(
        "ProviderPreferences", back_populates="provider", uselist=False, cascade="all, delete-orphan"
    )
    capacity = relationship(
        "ProviderCapacity", back_populates="provider", uselist=False, cascade="all, delete-orphan"
    )
    pay_rates = relationship("ProviderPayRate", back_populates="provider", cascade="all, delete-orphan")

    @property
    def display_name(self) -> str:
        name = f"{self.first_name or ''} {self.last_name or ''}".strip()
        return name or "Provider"


class ProviderService(Base):
    __tablename__ = "provider_services"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    skill_level = Column(String(50), nullable=True)
    is_primary_service = Column(Boolean, default=False, nullable=False)

    provider = relationship("Provider", back_populates="services")


class ProviderPreferences(Base):
    __tablename__ = "provider_preferences"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(
        Integer, ForeignKey("service_providers.id"), nullable=False, unique=True, index=True
    )
    auto_assignments = Column(Boolean, default=True, nullable=False)
    email_notifications = Column(Boolean, default=True, nullable=False)

    provider = relationship("Provider", back_populates="preferences")


class ProviderCapacity(Base):
    __tablename__ = "provider_capacity"

    id = Column(Integer, primary_key=True, index=True)
    provider_id = Column(
        Integer, ForeignKey("service_providers.id"), nullable=False, unique=True, index=True
    )
    max_concurrent_bookings = Column(Integer, nullable=True)
    max_daily_bookings = Column(Integer, nullable=True)
    current_workload = Column(Float, default=0, nullable=False)  # Percent, 100 = full

    provider = relationship("Provider", back_populates="capacity")


class ProviderPayRate(Base):
    __tablename__ = "provider_pay_rates"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    rate_type = Column(String(20), nullable=False)  # percentage, fixed (legacy: flat), hourly
    percentage_rate = Column(Float, nullable=True)
    flat_rate = Column(Float, nullable=True)
    hourly_rate = Column(Float, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    provider = relationship("Provider", back_populates="pay_rates")


class Booking(Base):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    public_id = Column(String(36), unique=True, nullable=False, default=generate_public_id)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    service = Column(String(255), nullable=True)  # Service display name

    scheduled_date = Column(Date, nullable=False, index=True)
    scheduled_time = Column(String(32), nullable=True)  # Stored as entered; normalised on read
    duration_minutes = Column(Integer, nullable=True)
    actual_duration_minutes = Column(Integer, nullable=True)  # Recorded on completion

    # Status workflow: pending → confirmed → in_progress → completed, cancelled is terminal
    status = Column(String(20), default="pending", nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=True, index=True)
    provider_name = Column(String(255), nullable=True)
    recurring_series_id = Column(
        Integer, ForeignKey("recurring_series.id"), nullable=True, index=True
    )

    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)

    total_price = Column(Float, default=0, nullable=False)
    # Per-booking wage override, wins over provider pay rates
    provider_wage = Column(Float, nullable=True)
    provider_wage_type = Column(String(20), nullable=True)  # percentage, fixed, hourly

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    provider = relationship("Provider")
    series = relationship("RecurringSeries", back_populates="bookings")
    assignment = relationship("BookingAssignment", back_populates="booking", uselist=False)


class BookingAssignment(Base):
    __tablename__ = "booking_assignments"
    # One assignment row per booking makes concurrent assignment attempts at-most-once
    __table_args__ = (UniqueConstraint("booking_id", name="uq_booking_assignments_booking"),)

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=False)
    assignment_type = Column(String(20), default="auto", nullable=False)  # auto, invitation, manual
    status = Column(String(20), default="assigned", nullable=False)
    auto_assignment_score = Column(Float, nullable=True)
    assigned_at = Column(DateTime, server_default=func.now())

    booking = relationship("Booking", back_populates="assignment")


class AssignmentLog(Base):
    __tablename__ = "assignment_logs"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=True)
    action = Column(String(50), nullable=False)  # assigned, invited, accepted, declined
    assignment_score = Column(Float, nullable=True)
    rule_applied = Column(String(100), nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class ProviderBookingInvitation(Base):
    __tablename__ = "provider_booking_invitations"
    # At most one pending invitation per booking
    __table_args__ = (
        Index(
            "uq_provider_booking_invitations_pending",
            "booking_id",
            unique=True,
            postgresql_where=text("status = 'pending'"),
            sqlite_where=text("status = 'pending'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, accepted, declined
    sort_order = Column(Integer, default=0, nullable=False)
    response_notes = Column(Text, nullable=True)
    responded_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())


class RecurringSeries(Base):
    __tablename__ = "recurring_series"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)

    # Booking template
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    service = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_email = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    address = Column(Text, nullable=True)
    notes = Column(Text, nullable=True)
    total_price = Column(Float, default=0, nullable=False)
    scheduled_time = Column(String(32), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=True)
    provider_name = Column(String(255), nullable=True)
    provider_wage = Column(Float, nullable=True)
    provider_wage_type = Column(String(20), nullable=True)

    # Recurrence
    frequency = Column(String(100), nullable=False)  # e.g. "Weekly", "Bi-Weekly"
    frequency_repeats = Column(String(100), nullable=True)  # e.g. "every-2-weeks", "monthly"
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    occurrences_ahead = Column(Integer, default=8, nullable=False)
    same_provider = Column(Boolean, default=True, nullable=False)
    status = Column(String(20), default="active", nullable=False, index=True)  # active, paused, ended

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    bookings = relationship("Booking", back_populates="series")


class SchedulingConfig(Base):
    """Per-tenant scheduling store options"""

    __tablename__ = "business_store_options"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, unique=True)
    provider_assignment_mode = Column(String(20), default="automatic", nullable=False)  # manual, automatic
    # accepted_automatically, accept_or_decline, accepts_same_day_only
    scheduling_type = Column(String(50), default="accepted_automatically", nullable=False)
    max_minutes_per_provider_per_booking = Column(Integer, nullable=True)
    holiday_skip_to_next = Column(Boolean, default=False, nullable=False)
    holiday_blocked_who = Column(String(20), default="customer", nullable=False)  # customer, both
    spot_limits_enabled = Column(Boolean, default=False, nullable=False)
    spots_based_on_provider_availability = Column(Boolean, default=True, nullable=False)

    business = relationship("Business", back_populates="scheduling_config")


class BusinessHoliday(Base):
    __tablename__ = "business_holidays"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    holiday_date = Column(Date, nullable=False)
    recurring = Column(Boolean, default=False, nullable=False)  # Matches month+day every year


class ReserveSlotSettings(Base):
    __tablename__ = "business_reserve_slot_settings"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, unique=True)
    # {"monday": [{"time": "09:00", "maxJobs": 2, "displayOn": "Both"}], ...}
    maximum_by_day = Column(JSON, default=dict, nullable=False)


class SpotLimits(Base):
    __tablename__ = "business_spot_limits"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, unique=True)
    max_bookings_per_day = Column(Integer, default=0, nullable=False)  # 0 = unlimited
    max_bookings_per_week = Column(Integer, default=0, nullable=False)
    max_bookings_per_month = Column(Integer, default=0, nullable=False)
    max_advance_booking_days = Column(Integer, default=0, nullable=False)
    enabled = Column(Boolean, default=True, nullable=False)


class ProviderEarning(Base):
    __tablename__ = "provider_earnings"
    # Earnings are computed once per completed booking
    __table_args__ = (UniqueConstraint("booking_id", name="uq_provider_earnings_booking"),)

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    provider_id = Column(Integer, ForeignKey("service_providers.id"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=True)
    gross_amount = Column(Float, nullable=False)
    commission_amount = Column(Float, nullable=False)
    net_amount = Column(Float, nullable=False)
    pay_rate_type = Column(String(20), nullable=False)  # percentage, fixed, hourly
    rate_source = Column(String(30), nullable=False)  # booking_override, provider_pay_rate, default_split
    hours_worked = Column(Float, nullable=True)
    status = Column(String(20), default="pending", nullable=False)  # pending, approved, paid
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class AdminNotification(Base):
    __tablename__ = "admin_notifications"

    id = Column(Integer, primary_key=True, index=True)
    business_id = Column(Integer, ForeignKey("businesses.id"), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    link = Column(String(500), nullable=True)
    is_read = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
