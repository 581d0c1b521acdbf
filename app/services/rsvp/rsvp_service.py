# app/services/rsvp/rsvp_service.py
"""
Practitioner-scheduled sessions and the client RSVP negotiation.

A session starts `scheduled` with rsvp_status `pending` and a time-limited
RSVP token. The client accepts, declines or proposes another time; a
proposal waits for the practitioner, whose acceptance moves the session
through ConflictGuard and re-opens the RSVP.
"""
from datetime import date, datetime, timedelta
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.appointment import Appointment, AppointmentKind, AppointmentStatus, RsvpStatus
from app.models.practitioner import Practitioner
from app.services.availability.availability_service import AvailabilityService
from app.services.booking.booking_service import new_token, notify
from app.services.booking.conflict_guard import ConflictGuard
from app.services.email import templates
from app.utils.time_utils import ensure_utc, get_zone, local_today, parse_time, validate_time_range

logger = logging.getLogger(__name__)

CLIENT_RESPONSES = (RsvpStatus.ACCEPTED, RsvpStatus.DECLINED)


def _rsvp_expiry(now: datetime) -> datetime:
    return now + timedelta(days=get_settings().RSVP_TOKEN_DAYS)


class RsvpService:

    @staticmethod
    def create_session(db: Session, sender, practitioner: Practitioner, data: Dict, now: datetime) -> Appointment:
        """Schedule a session for a client and send the RSVP request"""
        name = (data.get("client_name") or "").strip()
        email = (data.get("client_email") or "").strip().lower()
        if not name or not email:
            raise ValidationError("Client name and e-mail are required")

        fields = {
            "kind": AppointmentKind.SESSION,
            "status": AppointmentStatus.SCHEDULED,
            "session_date": data["date"],
            "start_time": parse_time(data["start_time"]),
            "end_time": parse_time(data["end_time"]),
            "client_name": name,
            "client_email": email,
            "session_format": data.get("session_format") or None,
            "notes": data.get("notes") or None,
            "rsvp_status": RsvpStatus.PENDING,
            "rsvp_token": new_token(),
            "rsvp_token_expires_at": _rsvp_expiry(now),
        }
        session = ConflictGuard.create(db, practitioner.id, fields, now, enforce_availability=False)

        notify(sender, session.client_email, templates.session_rsvp_request(
            session.client_name, practitioner.name, session.session_date,
            session.start_time, session.end_time, session.rsvp_token,
        ))
        return session

    @staticmethod
    def get_by_token(db: Session, token: str, now: datetime) -> Appointment:
        session = db.query(Appointment).filter_by(rsvp_token=token, kind=AppointmentKind.SESSION).first()
        if not session:
            raise NotFoundError("Invalid or expired RSVP link")
        if session.rsvp_token_expires_at and ensure_utc(session.rsvp_token_expires_at) < now:
            raise ValidationError("This RSVP link has expired. Please contact your practitioner directly.")
        if session.status == AppointmentStatus.CANCELLED:
            raise ValidationError("This session has been cancelled")
        if session.status != AppointmentStatus.SCHEDULED:
            raise ValidationError("This session has already taken place")
        return session

    @staticmethod
    def respond(db: Session, sender, token: str, response: RsvpStatus, now: datetime) -> Appointment:
        """Client accepts or declines the session"""
        if response not in CLIENT_RESPONSES:
            raise ValidationError("Response must be accepted or declined")

        session = RsvpService.get_by_token(db, token, now)
        session.rsvp_status = response
        session.rsvp_responded_at = now
        db.commit()
        db.refresh(session)
        logger.info(f"Session {session.id} RSVP {response.value}")

        practitioner = AvailabilityService.get_practitioner(db, session.practitioner_id)
        notify(sender, practitioner.email, templates.rsvp_response(
            practitioner.name, session.client_name, session.session_date,
            session.start_time, session.end_time, response == RsvpStatus.ACCEPTED,
        ))
        return session

    @staticmethod
    def propose_reschedule(db: Session, sender, token: str, proposed_date: date, start_time, end_time,
                           message: Optional[str], now: datetime) -> Appointment:
        session = RsvpService.get_by_token(db, token, now)

        start, end = parse_time(start_time), parse_time(end_time)
        validate_time_range(start, end)
        settings = AvailabilityService.get_or_create_settings(db, session.practitioner_id)
        if proposed_date < local_today(now, get_zone(settings.timezone)):
            raise ValidationError("The proposed date is in the past")

        session.rsvp_status = RsvpStatus.RESCHEDULE_REQUESTED
        session.rsvp_responded_at = now
        session.proposed_date = proposed_date
        session.proposed_start_time = start
        session.proposed_end_time = end
        session.proposed_message = (message or "").strip() or None
        db.commit()
        db.refresh(session)
        logger.info(f"Session {session.id} reschedule requested for {proposed_date} {start:%H:%M}")

        practitioner = AvailabilityService.get_practitioner(db, session.practitioner_id)
        notify(sender, practitioner.email, templates.reschedule_requested(
            practitioner.name, session.client_name, proposed_date, start, end, session.proposed_message,
        ))
        return session

    @staticmethod
    def respond_to_reschedule(db: Session, sender, practitioner: Practitioner, session_id,
                              accept: bool, now: datetime) -> Appointment:
        """Practitioner accepts (moves the session) or declines the client's proposal"""
        session = db.query(Appointment).filter_by(
            id=session_id,
            practitioner_id=practitioner.id,
            kind=AppointmentKind.SESSION,
            rsvp_status=RsvpStatus.RESCHEDULE_REQUESTED,
        ).first()
        if not session:
            raise NotFoundError("Session not found or no pending reschedule request")
        if session.status != AppointmentStatus.SCHEDULED:
            raise ValidationError(f"Cannot reschedule a {session.status.value} session")

        cleared_proposal = {
            "proposed_date": None,
            "proposed_start_time": None,
            "proposed_end_time": None,
            "proposed_message": None,
            "rsvp_status": RsvpStatus.PENDING,
            "rsvp_responded_at": None,
        }

        if accept:
            session = ConflictGuard.move(
                db, session, session.proposed_date, session.proposed_start_time, session.proposed_end_time,
                extra_changes={
                    **cleared_proposal,
                    "rsvp_token": new_token(),
                    "rsvp_token_expires_at": _rsvp_expiry(now),
                    "rsvp_reminder_1_sent_at": None,
                    "rsvp_reminder_2_sent_at": None,
                    "reminder_24h_sent_at": None,
                    "reminder_1h_sent_at": None,
                },
            )
        else:
            for field, value in cleared_proposal.items():
                setattr(session, field, value)
            db.commit()
            db.refresh(session)
            logger.info(f"Session {session.id} reschedule declined")

        notify(sender, session.client_email, templates.reschedule_outcome(
            session.client_name, practitioner.name, session.session_date,
            session.start_time, session.end_time, accept,
            rsvp_token=session.rsvp_token if accept else None,
        ))
        return session
