"""
MJML Email Templates
Booking emails sent by the default notification dispatcher
"""

from typing import Optional

THEME = {
    "primary": "#14b8a6",
    "background": "#f8fafc",
    "text_primary": "#0f172a",
    "text_secondary": "#334155",
    "text_muted": "#64748b",
    "border": "#e2e8f0",
}


def get_base_template(
    title: str,
    preview_text: str,
    content_sections: str,
    cta_url: Optional[str] = None,
    cta_label: Optional[str] = None,
) -> str:
    """Base MJML template wrapper for all emails"""

    cta_section = ""
    if cta_url and cta_label:
        cta_section = f"""
        <mj-section padding="20px 0">
          <mj-column>
            <mj-button
              href="{cta_url}"
              background-color="{THEME['primary']}"
              color="#ffffff"
              font-weight="600"
              border-radius="8px"
              padding="18px 40px"
              font-size="16px">
              {cta_label}
            </mj-button>
          </mj-column>
        </mj-section>
        """

    return f"""
    <mjml>
      <mj-head>
        <mj-title>{title}</mj-title>
        <mj-preview>{preview_text}</mj-preview>
        <mj-attributes>
          <mj-all font-family="-apple-system, BlinkMacSystemFont, 'Segoe UI', 'Helvetica Neue', Arial, sans-serif" />
          <mj-text font-size="16px" line-height="1.6" color="{THEME['text_secondary']}" />
        </mj-attributes>
      </mj-head>
      <mj-body background-color="{THEME['background']}">
        <mj-section background-color="#ffffff" padding="40px 40px 48px 40px">
          <mj-column>
            <mj-text font-size="24px" font-weight="600" color="{THEME['text_primary']}" line-height="1.3" padding="0 0 16px 0">
              {title}
            </mj-text>

            {content_sections}
          </mj-column>
        </mj-section>

        {cta_section}
      </mj-body>
    </mjml>
    """


def provider_booking_assigned_template(
    provider_first_name: str,
    business_name: str,
    booking_ref: str,
    service: Optional[str] = None,
    scheduled_date: Optional[str] = None,
    scheduled_time: Optional[str] = None,
    address: Optional[str] = None,
    customer_name: Optional[str] = None,
    dashboard_url: Optional[str] = None,
) -> str:
    """Booking assigned notification for provider"""
    details = ""
    for label, value in (
        ("Service", service),
        ("Date", scheduled_date),
        ("Time", scheduled_time),
        ("Address", address),
        ("Customer", customer_name),
    ):
        if value:
            details += f"""
    <mj-text font-size="15px" color="{THEME['text_primary']}" padding="0">
      <strong>{label}:</strong> {value}
    </mj-text>
    """

    content = f"""
    <mj-text>
      Hi {provider_first_name},
    </mj-text>

    <mj-text>
      {business_name} assigned booking <strong>{booking_ref}</strong> to you.
    </mj-text>

    {details}
    """

    return get_base_template(
        title="New Booking Assigned",
        preview_text=f"Booking {booking_ref} was assigned to you",
        content_sections=content,
        cta_url=dashboard_url,
        cta_label="View Booking" if dashboard_url else None,
    )


def never_found_provider_template(
    customer_name: str,
    business_name: str,
    booking_ref: str,
    scheduled_date: Optional[str] = None,
) -> str:
    """Customer notice that no provider could be found for a booking"""
    date_line = f" on <strong>{scheduled_date}</strong>" if scheduled_date else ""
    content = f"""
    <mj-text>
      Hi {customer_name},
    </mj-text>

    <mj-text>
      We received your booking {booking_ref}{date_line}, but {business_name} could not find an
      available provider for it yet. The team has been notified and will contact you shortly.
    </mj-text>

    <mj-text font-size="14px" color="{THEME['text_muted']}" padding="20px 0">
      No action is needed from you right now.
    </mj-text>
    """

    return get_base_template(
        title="We're Finding You a Provider",
        preview_text=f"Update on booking {booking_ref}",
        content_sections=content,
    )


__all__ = [
    "THEME",
    "get_base_template",
    "provider_booking_assigned_template",
    "never_found_provider_template",
]
