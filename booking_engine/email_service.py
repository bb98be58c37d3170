"""
Email Service using Resend
Provides booking email functionality using MJML templates for responsive design
"""

import logging
from typing import Optional, Union

import resend
from mjml import mjml_to_html

from .config import EMAIL_FROM_ADDRESS, FRONTEND_URL, RESEND_API_KEY
from .email_templates import never_found_provider_template, provider_booking_assigned_template

logger = logging.getLogger(__name__)

resend.api_key = RESEND_API_KEY


def compile_mjml_to_html(mjml_content: str) -> str:
    """Compile MJML template to production-ready HTML"""
    try:
        result = mjml_to_html(mjml_content)
        # mjml_to_html returns a dict with 'html' and 'errors' keys
        if isinstance(result, dict):
            if result.get("errors"):
                logger.warning(f"MJML compilation warnings: {result['errors']}")
            return result.get("html", "")
        # Newer releases return an object with an html attribute
        html = getattr(result, "html", None)
        return html if html is not None else str(result)
    except Exception as e:
        logger.error(f"MJML compilation error: {e}")
        raise Exception(f"Failed to compile MJML template: {str(e)}") from e


async def send_email(
    to: Union[str, list[str]],
    subject: str,
    mjml_content: str,
    from_address: Optional[str] = None,
) -> dict:
    """
    Send an email via Resend

    Args:
        to: Recipient email(s)
        subject: Email subject line
        mjml_content: MJML template content (will be compiled to HTML)
        from_address: Optional custom from address

    Returns:
        Send response dict
    """
    if not RESEND_API_KEY:
        logger.error("❌ No email service configured - RESEND_API_KEY missing")
        raise Exception("Email service not configured")

    html_content = compile_mjml_to_html(mjml_content)
    recipients = [to] if isinstance(to, str) else to

    try:
        logger.info(f"📧 Sending email via Resend to: {to}")
        response = resend.Emails.send(
            {
                "from": from_address or EMAIL_FROM_ADDRESS,
                "to": recipients,
                "subject": subject,
                "html": html_content,
            }
        )
        logger.info(f"✅ Email sent successfully via Resend: {response}")
        return response
    except Exception as e:
        logger.error(f"❌ Email send error to {recipients}: {e}")
        raise Exception(f"Failed to send email: {str(e)}") from e


async def send_provider_booking_assigned_email(
    to: str,
    provider_first_name: str,
    business_name: str,
    booking_ref: str,
    service: Optional[str] = None,
    scheduled_date: Optional[str] = None,
    scheduled_time: Optional[str] = None,
    address: Optional[str] = None,
    customer_name: Optional[str] = None,
) -> dict:
    """Tell a provider a booking was assigned to them"""
    mjml_content = provider_booking_assigned_template(
        provider_first_name=provider_first_name,
        business_name=business_name,
        booking_ref=booking_ref,
        service=service,
        scheduled_date=scheduled_date,
        scheduled_time=scheduled_time,
        address=address,
        customer_name=customer_name,
        dashboard_url=f"{FRONTEND_URL}/provider/bookings",
    )
    return await send_email(
        to=to,
        subject=f"New booking assigned: {booking_ref}",
        mjml_content=mjml_content,
    )


async def send_never_found_provider_email(
    to: str,
    customer_name: str,
    business_name: str,
    booking_ref: str,
    scheduled_date: Optional[str] = None,
) -> dict:
    """Tell a customer no provider could be found for their booking"""
    mjml_content = never_found_provider_template(
        customer_name=customer_name,
        business_name=business_name,
        booking_ref=booking_ref,
        scheduled_date=scheduled_date,
    )
    return await send_email(
        to=to,
        subject=f"Update on your booking {booking_ref}",
        mjml_content=mjml_content,
    )
