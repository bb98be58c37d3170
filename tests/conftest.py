"""
Pytest configuration and shared fixtures
"""
import os
from datetime import date, datetime

import pytest

# Point the engine at an in-memory database before the package is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("DB_LOG_SLOW_QUERIES", "false")

from booking_engine import models  # noqa: E402
from booking_engine.database import Base, SessionLocal, engine  # noqa: E402

FIXED_TODAY = date(2024, 1, 10)


class FakeDispatcher:
    """Records every notification instead of sending it"""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.admin_notifications = []
        self.provider_emails = []
        self.customer_emails = []

    def create_admin_notification(self, business_id, type, data):
        if self.fail:
            raise RuntimeError("notification backend down")
        self.admin_notifications.append((business_id, type, data))

    def send_provider_booking_assigned(self, provider, booking):
        if self.fail:
            raise RuntimeError("email backend down")
        self.provider_emails.append((provider.id, booking.id))
        return True

    def send_never_found_provider_email(self, customer_email, customer_name, booking):
        if self.fail:
            raise RuntimeError("email backend down")
        self.customer_emails.append((customer_email, booking.id))
        return True

    def admin_types(self):
        return [notification_type for _, notification_type, _ in self.admin_notifications]


@pytest.fixture
def db():
    """Fresh schema per test on the shared in-memory connection"""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def today():
    """Injected clock pinned to FIXED_TODAY"""
    return lambda: FIXED_TODAY


@pytest.fixture
def business(db):
    business = models.Business(name="Sparkle Cleaning", admin_email="admin@sparkle.example")
    db.add(business)
    db.commit()
    return business


@pytest.fixture
def other_business(db):
    business = models.Business(name="Other Co")
    db.add(business)
    db.commit()
    return business


@pytest.fixture
def make_provider(db, business):
    counter = {"n": 0}

    def _make(
        first_name="Pat",
        last_name=None,
        business_id=None,
        priority=0,
        status="active",
        services=(),
        auto_assignments=True,
        workload=None,
        email=None,
        created_at=None,
    ):
        counter["n"] += 1
        provider = models.Provider(
            business_id=business_id or business.id,
            first_name=first_name,
            last_name=last_name,
            email=email,
            status=status,
            invitation_priority=priority,
            created_at=created_at or datetime(2023, 1, 1, 9, 0, counter["n"]),
        )
        provider.preferences = models.ProviderPreferences(auto_assignments=auto_assignments)
        if workload is not None:
            provider.capacity = models.ProviderCapacity(current_workload=workload)
        provider.services = [models.ProviderService(service_id=sid) for sid in services]
        db.add(provider)
        db.commit()
        return provider

    return _make


@pytest.fixture
def make_booking(db, business):
    def _make(
        scheduled_date=date(2024, 1, 15),
        scheduled_time="09:00",
        business_id=None,
        status="pending",
        provider_id=None,
        **fields,
    ):
        booking = models.Booking(
            business_id=business_id or business.id,
            scheduled_date=scheduled_date,
            scheduled_time=scheduled_time,
            status=status,
            provider_id=provider_id,
            customer_name=fields.pop("customer_name", "Casey Customer"),
            customer_email=fields.pop("customer_email", "casey@example.com"),
            total_price=fields.pop("total_price", 100.0),
            **fields,
        )
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def make_service(db, business):
    def _make(name="Standard Clean"):
        service = models.Service(business_id=business.id, name=name)
        db.add(service)
        db.commit()
        return service

    return _make


@pytest.fixture
def configure(db, business):
    """Create or update the business's scheduling options"""

    def _configure(**options):
        config = (
            db.query(models.SchedulingConfig)
            .filter(models.SchedulingConfig.business_id == business.id)
            .first()
        )
        if config is None:
            config = models.SchedulingConfig(business_id=business.id)
            db.add(config)
        for key, value in options.items():
            setattr(config, key, value)
        db.commit()
        return config

    return _configure
