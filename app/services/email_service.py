import logging
import smtplib
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from app.core.config import settings
from app.services.calendar_utils import format_instant

logger = logging.getLogger(__name__)


def _send_email_sync(to_email: str, subject: str, html_body: str) -> None:
    """Send email via SMTP (blocking). Use from background task."""
    if not settings.email_enabled:
        logger.debug("Email disabled (SMTP not configured), skipping send")
        return
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.from_name} <{settings.from_email}>"
    msg["To"] = to_email
    msg.attach(MIMEText(html_body, "html", "utf-8"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.sendmail(settings.from_email, [to_email], msg.as_string())
        logger.info("Email sent to %s", to_email)
    except Exception as e:
        logger.exception("Failed to send email to %s: %s", to_email, e)


def _html_escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def _when(start: datetime, end: datetime, zone: str) -> tuple[str, str]:
    date_str = format_instant(start, zone, "date")
    time_str = f"{format_instant(start, zone, 'time')} – {format_instant(end, zone, 'time')}"
    return date_str, time_str


def build_booking_email_html(
    heading: str,
    intro: str,
    booking_name: str,
    start: datetime,
    end: datetime,
    zone: str,
    meeting_link: str | None = None,
    manage_url: str | None = None,
    note: str | None = None,
) -> str:
    """HTML body shared by confirmation, reschedule and cancellation emails."""
    date_str, time_str = _when(start, end, zone)
    logo_html = ""
    if settings.email_logo_url:
        logo_html = f'<img src="{settings.email_logo_url}" alt="{settings.site_name}" width="120" style="display:block;margin-bottom:24px;" />'
    link_html = ""
    if meeting_link:
        safe_link = _html_escape(meeting_link)
        link_html = f'<p style="margin:0 0 16px 0;color:#374151;">Join: <a href="{safe_link}">{safe_link}</a></p>'
    manage_html = ""
    if manage_url:
        manage_html = f'<p style="margin:0 0 8px 0;font-size:14px;color:#374151;">Need to change something? <a href="{_html_escape(manage_url)}">Reschedule or cancel</a>.</p>'
    note_html = ""
    if note:
        note_html = f'<p style="margin:0 0 24px 0;color:#6b7280;font-size:14px;">{_html_escape(note)}</p>'
    contact = _html_escape(settings.contact_email) if settings.contact_email else ""
    return f"""
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{_html_escape(heading)}</title>
</head>
<body style="margin:0;padding:0;font-family:-apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;background-color:#f3f4f6;">
  <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background-color:#f3f4f6;">
    <tr>
      <td align="center" style="padding:40px 16px;">
        <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="max-width:560px;background:#ffffff;border-radius:12px;overflow:hidden;">
          <tr>
            <td style="padding:32px 32px 24px 32px;">
              {logo_html}
              <h1 style="margin:0 0 8px 0;font-size:22px;font-weight:600;color:#111827;">{_html_escape(heading)}</h1>
              <p style="margin:0 0 24px 0;font-size:15px;color:#6b7280;">{intro}</p>
              <table role="presentation" width="100%" cellspacing="0" cellpadding="0" style="background:#f9fafb;border-radius:8px;margin-bottom:24px;">
                <tr>
                  <td style="padding:20px 24px;">
                    <p style="margin:0 0 8px 0;font-size:12px;text-transform:uppercase;color:#6b7280;">{_html_escape(booking_name)}</p>
                    <p style="margin:0;font-size:16px;font-weight:600;color:#111827;">{date_str}</p>
                    <p style="margin:4px 0 0 0;font-size:16px;font-weight:600;color:#111827;">{time_str}</p>
                  </td>
                </tr>
              </table>
              {link_html}
              {note_html}
              {manage_html}
            </td>
          </tr>
          <tr>
            <td style="padding:24px 32px 32px 32px;background:#f9fafb;border-top:1px solid #e5e7eb;">
              <p style="margin:0 0 4px 0;font-size:13px;font-weight:600;color:#111827;">{_html_escape(settings.site_name)}</p>
              <p style="margin:0;font-size:13px;color:#6b7280;">{contact}</p>
            </td>
          </tr>
        </table>
      </td>
    </tr>
  </table>
</body>
</html>
"""


def send_booking_confirmation_email(
    to_email: str,
    guest_name: str,
    booking_name: str,
    start: datetime,
    end: datetime,
    zone: str,
    meeting_link: str | None = None,
    manage_url: str | None = None,
) -> None:
    """Compose and send the guest's booking confirmation (call from background task)."""
    html = build_booking_email_html(
        heading="Booking Confirmed",
        intro=f"Hi {_html_escape(guest_name or 'there')}, your meeting is booked.",
        booking_name=booking_name,
        start=start,
        end=end,
        zone=zone,
        meeting_link=meeting_link,
        manage_url=manage_url,
    )
    _send_email_sync(to_email, f"{settings.site_name} – {booking_name} confirmed", html)


def send_booking_rescheduled_email(
    to_email: str,
    guest_name: str,
    booking_name: str,
    start: datetime,
    end: datetime,
    zone: str,
    previous_start: datetime | None = None,
    meeting_link: str | None = None,
    manage_url: str | None = None,
) -> None:
    note = None
    if previous_start is not None:
        note = f"Previously: {format_instant(previous_start, zone, 'datetime')}"
    html = build_booking_email_html(
        heading="Booking Rescheduled",
        intro=f"Hi {_html_escape(guest_name or 'there')}, your meeting has a new time.",
        booking_name=booking_name,
        start=start,
        end=end,
        zone=zone,
        meeting_link=meeting_link,
        manage_url=manage_url,
        note=note,
    )
    _send_email_sync(to_email, f"{settings.site_name} – {booking_name} rescheduled", html)


def send_booking_cancellation_email(
    to_email: str,
    guest_name: str,
    booking_name: str,
    start: datetime,
    end: datetime,
    zone: str,
    reason: str | None = None,
) -> None:
    html = build_booking_email_html(
        heading="Booking Cancelled",
        intro=f"Hi {_html_escape(guest_name or 'there')}, this meeting has been cancelled.",
        booking_name=booking_name,
        start=start,
        end=end,
        zone=zone,
        note=f"Reason: {reason}" if reason else None,
    )
    _send_email_sync(to_email, f"{settings.site_name} – {booking_name} cancelled", html)


def send_host_booking_notification_email(
    host_email: str,
    event: str,
    guest_name: str,
    guest_email: str,
    booking_name: str,
    start: datetime,
    end: datetime,
    zone: str,
) -> None:
    """Notify the host that a guest booked, rescheduled or cancelled."""
    html = build_booking_email_html(
        heading=f"Booking {event}",
        intro=f"{_html_escape(guest_name)} ({_html_escape(guest_email)}) {event.lower()} a meeting with you.",
        booking_name=booking_name,
        start=start,
        end=end,
        zone=zone,
    )
    _send_email_sync(host_email, f"{booking_name} {event.lower()}: {guest_name}", html)
