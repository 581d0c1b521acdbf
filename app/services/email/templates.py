# app/services/email/templates.py
"""Subject/body pairs for every notification the engine sends"""
from datetime import date, time
from html import escape
from typing import Optional, Tuple

from app.config.settings import get_settings

Message = Tuple[str, str]


def _layout(heading: str, content: str) -> str:
    return f"""
    <!DOCTYPE html>
    <html>
    <head><meta charset="UTF-8"></head>
    <body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333; max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2 style="color: #333; margin-top: 0;">{escape(heading)}</h2>
        {content}
        <p style="font-size: 12px; color: #999; margin-top: 30px;">
            This is an automated message from {escape(get_settings().APP_NAME)}.
        </p>
    </body>
    </html>
    """


def _button(url: str, label: str) -> str:
    return (
        f'<p><a href="{escape(url)}" style="background-color: #667eea; color: white; '
        f'padding: 12px 24px; text-decoration: none; border-radius: 5px;">{escape(label)}</a></p>'
    )


def _when(day: date, start: time, end: time) -> str:
    return f"{day:%A %d %B %Y}, {start:%H:%M}-{end:%H:%M}"


def _link(path: str) -> str:
    return f"{get_settings().SITE_URL.rstrip('/')}{path}"


def booking_verification(name: str, practitioner_name: str, day, start, end, token: str) -> Message:
    url = _link(f"/booking/verify?token={token}")
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>Please confirm your e-mail address to complete your booking request with "
        f"{escape(practitioner_name)} on <strong>{_when(day, start, end)}</strong>.</p>"
        f"{_button(url, 'Confirm my booking request')}"
        f"<p>This link expires in {get_settings().BOOKING_VERIFICATION_HOURS} hours.</p>"
    )
    return "Please confirm your booking request", _layout("Confirm your booking", body)


def practitioner_new_booking(practitioner_name: str, client_name: str, client_email: str,
                             day, start, end, requires_approval: bool) -> Message:
    action = "It is waiting for your approval." if requires_approval else "It has been confirmed automatically."
    body = (
        f"<p>Hi {escape(practitioner_name)},</p>"
        f"<p>{escape(client_name)} ({escape(client_email)}) booked "
        f"<strong>{_when(day, start, end)}</strong>. {action}</p>"
        f"{_button(_link('/dashboard/appointments'), 'View bookings')}"
    )
    return f"New booking request from {client_name}", _layout("New booking", body)


def booking_confirmed(name: str, practitioner_name: str, day, start, end, visitor_token: Optional[str]) -> Message:
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>Your booking with {escape(practitioner_name)} on "
        f"<strong>{_when(day, start, end)}</strong> is confirmed.</p>"
    )
    if visitor_token:
        body += _button(_link(f"/booking/{visitor_token}"), "View or cancel booking")
    return "Your booking is confirmed", _layout("Booking confirmed", body)


def booking_cancelled(name: str, practitioner_name: str, day, start, end, reason: Optional[str]) -> Message:
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>The booking with {escape(practitioner_name)} on "
        f"<strong>{_when(day, start, end)}</strong> has been cancelled.</p>"
    )
    if reason:
        body += f"<p>Reason: {escape(reason)}</p>"
    return "Booking cancelled", _layout("Booking cancelled", body)


def session_rsvp_request(name: str, practitioner_name: str, day, start, end, token: str,
                         reminder: bool = False) -> Message:
    url = _link(f"/session-rsvp?token={token}")
    intro = "A reminder: please let" if reminder else "Please let"
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>{escape(practitioner_name)} has scheduled a session with you on "
        f"<strong>{_when(day, start, end)}</strong>.</p>"
        f"<p>{intro} {escape(practitioner_name)} know whether you can attend.</p>"
        f"{_button(url, 'Respond')}"
    )
    subject = f"Reminder: please confirm your session with {practitioner_name}" if reminder \
        else f"Please confirm your session with {practitioner_name}"
    return subject, _layout("Session invitation", body)


def session_reminder(name: str, other_party: str, day, start, end, hours: int) -> Message:
    lead = "tomorrow" if hours == 24 else "in one hour"
    body = (
        f"<p>Hi {escape(name)},</p>"
        f"<p>This is a reminder that your session with {escape(other_party)} starts {lead}: "
        f"<strong>{_when(day, start, end)}</strong>.</p>"
    )
    return f"Reminder: session {lead}", _layout("Upcoming session", body)


def reschedule_requested(practitioner_name: str, client_name: str, day, start, end, message: Optional[str]) -> Message:
    body = (
        f"<p>Hi {escape(practitioner_name)},</p>"
        f"<p>{escape(client_name)} asked to move their session to "
        f"<strong>{_when(day, start, end)}</strong>.</p>"
    )
    if message:
        body += f"<blockquote>{escape(message)}</blockquote>"
    body += _button(_link("/dashboard/appointments"), "Review request")
    return f"{client_name} requested a new time", _layout("Reschedule request", body)


def rsvp_response(practitioner_name: str, client_name: str, day, start, end, accepted: bool) -> Message:
    verb = "accepted" if accepted else "declined"
    body = (
        f"<p>Hi {escape(practitioner_name)},</p>"
        f"<p>{escape(client_name)} {verb} the session on <strong>{_when(day, start, end)}</strong>.</p>"
    )
    return f"{client_name} {verb} your session", _layout(f"Session {verb}", body)


def reschedule_outcome(name: str, practitioner_name: str, day, start, end, accepted: bool,
                       rsvp_token: Optional[str] = None) -> Message:
    if accepted:
        text = f"{escape(practitioner_name)} accepted your proposed time. Your session is now on " \
               f"<strong>{_when(day, start, end)}</strong>."
        subject = "Your session has been moved"
    else:
        text = f"{escape(practitioner_name)} could not accommodate the proposed time. Your session " \
               f"stays on <strong>{_when(day, start, end)}</strong>."
        subject = "Your reschedule request was declined"
    body = f"<p>Hi {escape(name)},</p><p>{text}</p>"
    if rsvp_token:
        body += _button(_link(f"/session-rsvp?token={rsvp_token}"), "Confirm the new time")
    return subject, _layout("Reschedule request", body)
