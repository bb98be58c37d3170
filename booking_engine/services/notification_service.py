"""
Booking Notification Dispatcher
Admin feed entries and provider/customer emails triggered by scheduling decisions.

Every call is fire-and-forget for the scheduling engine: failures are logged
and never undo an assignment or invitation that has already been committed.
"""

import asyncio
import logging
from typing import Optional, Protocol

from fastapi import BackgroundTasks
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Booking, Business, Provider

logger = logging.getLogger(__name__)


def booking_reference(booking_id) -> str:
    """Short human booking reference, e.g. BK000042"""
    return f"BK{str(booking_id).zfill(6)[-6:].upper()}"


class NotificationDispatcher(Protocol):
    def create_admin_notification(self, business_id: int, type: str, data: dict) -> None: ...

    def send_provider_booking_assigned(self, provider: Provider, booking: Booking) -> bool: ...

    def send_never_found_provider_email(
        self, customer_email: Optional[str], customer_name: Optional[str], booking: Booking
    ) -> bool: ...


def notify_safely(kind: str, func, *args, **kwargs) -> None:
    """Run a dispatcher call, logging instead of raising on failure."""
    try:
        func(*args, **kwargs)
    except Exception as e:
        logger.error(f"❌ NotificationSendFailure ({kind}): {e}")


async def _send_and_log(notification_type: str, email_func, email_kwargs: dict) -> None:
    try:
        logger.info(f"📧 Sending {notification_type} email to {email_kwargs.get('to')}")
        await email_func(**email_kwargs)
        logger.info(f"✅ {notification_type} email sent successfully to {email_kwargs.get('to')}")
    except Exception as e:
        logger.error(f"❌ Failed to send {notification_type} email to {email_kwargs.get('to')}: {e}")


class DefaultNotificationDispatcher:
    """
    Persists admin notifications and sends booking emails through email_service.

    When a BackgroundTasks instance is given (inside a request), emails are queued
    to run after the response; otherwise they are sent inline.
    """

    def __init__(self, db: Session, background_tasks: Optional[BackgroundTasks] = None):
        self.db = db
        self.background_tasks = background_tasks

    def _business_name(self, business_id: int) -> str:
        business = self.db.query(Business).filter(Business.id == business_id).first()
        return business.name if business and business.name else "Your business"

    def _dispatch_email(self, notification_type: str, email_func, email_kwargs: dict) -> None:
        if self.background_tasks is not None:
            self.background_tasks.add_task(_send_and_log, notification_type, email_func, email_kwargs)
            return
        try:
            asyncio.run(_send_and_log(notification_type, email_func, email_kwargs))
        except RuntimeError as e:
            # Called from inside a running event loop without BackgroundTasks
            logger.error(f"❌ Could not send {notification_type} email inline: {e}")

    def create_admin_notification(self, business_id: int, type: str, data: dict) -> None:
        from ..domain.scheduling.repository import SchedulingRepository

        try:
            SchedulingRepository.create_admin_notification(
                self.db,
                business_id,
                type=type,
                title=data.get("title", ""),
                message=data.get("message", ""),
                link=data.get("link"),
            )
            logger.info(f"🔔 Admin notification '{type}' created for business {business_id}")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"❌ Failed to create admin notification '{type}' for business {business_id}: {e}")

    def send_provider_booking_assigned(self, provider: Provider, booking: Booking) -> bool:
        """No-op when the provider has no email or has email notifications disabled"""
        from ..email_service import send_provider_booking_assigned_email

        email = (provider.email or "").strip()
        if not email:
            logger.debug(f"⚠️ Provider {provider.id} has no email, skipping booking assigned email")
            return False

        prefs = provider.preferences
        if prefs is not None and prefs.email_notifications is False:
            logger.debug(f"ℹ️ Provider {provider.id} has email notifications disabled")
            return False

        self._dispatch_email(
            "provider_booking_assigned",
            send_provider_booking_assigned_email,
            {
                "to": email,
                "provider_first_name": provider.first_name or "Provider",
                "business_name": self._business_name(booking.business_id),
                "booking_ref": booking_reference(booking.id),
                "service": booking.service,
                "scheduled_date": booking.scheduled_date.isoformat() if booking.scheduled_date else None,
                "scheduled_time": booking.scheduled_time,
                "address": booking.address,
                "customer_name": booking.customer_name,
            },
        )
        return True

    def send_never_found_provider_email(
        self, customer_email: Optional[str], customer_name: Optional[str], booking: Booking
    ) -> bool:
        from ..email_service import send_never_found_provider_email

        email = (customer_email or "").strip()
        if not email:
            logger.debug(f"⚠️ No customer email on booking {booking.id}, skipping no-provider email")
            return False

        self._dispatch_email(
            "never_found_provider",
            send_never_found_provider_email,
            {
                "to": email,
                "customer_name": customer_name or "there",
                "business_name": self._business_name(booking.business_id),
                "booking_ref": booking_reference(booking.id),
                "scheduled_date": booking.scheduled_date.isoformat() if booking.scheduled_date else None,
            },
        )
        return True
