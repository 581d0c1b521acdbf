# app/services/booking/booking_service.py
from datetime import datetime, timedelta
from typing import Dict, List, Optional
import logging
import secrets

from kombu.exceptions import KombuError
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.appointment import (
    Appointment,
    AppointmentKind,
    AppointmentStatus,
    BLOCKING_STATUSES,
    can_transition,
)
from app.models.practitioner import Practitioner
from app.models.verified_email import VerifiedVisitorEmail
from app.services.availability.availability_service import AvailabilityService
from app.services.booking.conflict_guard import ConflictGuard
from app.services.email import templates
from app.utils.time_utils import ensure_utc, get_zone, local_today, parse_time

logger = logging.getLogger(__name__)

LIST_FILTERS = ("pending", "upcoming", "past", "all")


def new_token() -> str:
    return secrets.token_urlsafe(32)


def notify(sender, to: str, message) -> bool:
    """Send one notification; failures are logged and reported, never raised"""
    subject, body = message
    try:
        result = sender.send(to, subject, body)
    except Exception:
        logger.exception(f"Notification '{subject}' to {to} raised")
        return False
    if not result.success:
        logger.warning(f"Notification '{subject}' to {to} failed: {result.error}")
    return result.success


def queue_calendar_push(appointment: Appointment) -> None:
    """Hand a confirmed booking to the calendar worker"""
    if appointment.kind != AppointmentKind.BOOKING or appointment.status != AppointmentStatus.CONFIRMED:
        return
    from app.tasks.calendar_tasks import push_booking_to_calendars

    try:
        push_booking_to_calendars.delay(str(appointment.id))
    except (KombuError, OSError) as e:
        logger.error(f"Could not queue calendar push for booking {appointment.id}: {e}")


def transition(appointment: Appointment, target: AppointmentStatus, now: datetime) -> None:
    """Move an appointment through its status state machine"""
    if not can_transition(appointment.kind, appointment.status, target):
        raise ValidationError(
            f"Cannot change a {appointment.kind.value} from {appointment.status.value} to {target.value}"
        )
    appointment.status = target
    if target == AppointmentStatus.CONFIRMED:
        appointment.confirmed_at = now
    elif target in (AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW):
        appointment.completed_at = now
    elif target == AppointmentStatus.CANCELLED:
        appointment.cancelled_at = now


class BookingService:
    """Visitor bookings: submission, e-mail verification, approval and cancellation"""

    @staticmethod
    def is_email_verified(db: Session, email: str) -> bool:
        return db.query(VerifiedVisitorEmail).filter_by(email=email.strip().lower()).first() is not None

    @staticmethod
    def _remember_email(db: Session, email: str, now: datetime) -> None:
        email = email.strip().lower()
        if not db.query(VerifiedVisitorEmail).filter_by(email=email).first():
            db.add(VerifiedVisitorEmail(email=email, verified_at=now))

    @staticmethod
    def submit_booking(db: Session, sender, practitioner: Practitioner, data: Dict, now: datetime) -> Appointment:
        """
        Create a pending booking for a public visitor.

        Visitors with an already-verified e-mail skip verification; with
        requires_approval off their booking is confirmed straight away.
        """
        if data.get("website"):
            logger.warning(f"Honeypot field filled on booking for practitioner {practitioner.id}")
            raise ValidationError("Invalid submission")

        name = (data.get("name") or "").strip()
        email = (data.get("email") or "").strip().lower()
        if not name or not email:
            raise ValidationError("Name and e-mail are required")

        settings = AvailabilityService.get_or_create_settings(db, practitioner.id)
        verified = BookingService.is_email_verified(db, email)
        auto_confirm = verified and not settings.requires_approval

        fields = {
            "kind": AppointmentKind.BOOKING,
            "status": AppointmentStatus.CONFIRMED if auto_confirm else AppointmentStatus.PENDING,
            "session_date": data["date"],
            "start_time": parse_time(data["start_time"]),
            "end_time": parse_time(data["end_time"]),
            "client_name": name,
            "client_email": email,
            "client_phone": data.get("phone") or None,
            "session_format": data.get("session_format") or None,
            "notes": data.get("notes") or None,
            "visitor_token": new_token(),
        }
        if verified:
            fields["verified_at"] = now
            if auto_confirm:
                fields["confirmed_at"] = now
        else:
            fields["verification_token"] = new_token()
            fields["verification_expires_at"] = now + timedelta(hours=get_settings().BOOKING_VERIFICATION_HOURS)

        booking = ConflictGuard.create(db, practitioner.id, fields, now)
        queue_calendar_push(booking)

        if verified:
            BookingService._notify_verified(sender, practitioner, booking, settings.requires_approval)
        else:
            notify(sender, booking.client_email, templates.booking_verification(
                booking.client_name, practitioner.name, booking.session_date,
                booking.start_time, booking.end_time, booking.verification_token,
            ))
        return booking

    @staticmethod
    def _notify_verified(sender, practitioner: Practitioner, booking: Appointment, requires_approval: bool) -> None:
        notify(sender, practitioner.email, templates.practitioner_new_booking(
            practitioner.name, booking.client_name, booking.client_email,
            booking.session_date, booking.start_time, booking.end_time, requires_approval,
        ))
        if booking.status == AppointmentStatus.CONFIRMED:
            notify(sender, booking.client_email, templates.booking_confirmed(
                booking.client_name, practitioner.name, booking.session_date,
                booking.start_time, booking.end_time, booking.visitor_token,
            ))

    @staticmethod
    def verify_booking(db: Session, sender, token: str, now: datetime) -> Appointment:
        booking = db.query(Appointment).filter_by(
            verification_token=token, kind=AppointmentKind.BOOKING
        ).first()
        if not booking:
            raise NotFoundError("Invalid verification link")
        if booking.verified_at is not None:
            return booking
        if booking.status == AppointmentStatus.CANCELLED:
            raise ValidationError("This booking has been cancelled")
        if ensure_utc(booking.verification_expires_at) < now:
            raise ValidationError("This verification link has expired. Please book again.")

        practitioner = AvailabilityService.get_practitioner(db, booking.practitioner_id)
        settings = AvailabilityService.get_or_create_settings(db, practitioner.id)

        booking.verified_at = now
        BookingService._remember_email(db, booking.client_email, now)
        if not settings.requires_approval:
            transition(booking, AppointmentStatus.CONFIRMED, now)
        db.commit()
        db.refresh(booking)
        logger.info(f"Booking {booking.id} verified")
        queue_calendar_push(booking)

        BookingService._notify_verified(sender, practitioner, booking, settings.requires_approval)
        return booking

    @staticmethod
    def get_by_visitor_token(db: Session, visitor_token: str) -> Appointment:
        booking = db.query(Appointment).filter_by(
            visitor_token=visitor_token, kind=AppointmentKind.BOOKING
        ).first()
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    @staticmethod
    def cancel_by_visitor(db: Session, sender, visitor_token: str, reason: Optional[str], now: datetime) -> Appointment:
        booking = BookingService.get_by_visitor_token(db, visitor_token)
        practitioner = AvailabilityService.get_practitioner(db, booking.practitioner_id)
        return BookingService._cancel(db, sender, practitioner, booking, reason, "visitor", now)

    @staticmethod
    def _get_owned(db: Session, practitioner_id, appointment_id) -> Appointment:
        appointment = db.query(Appointment).filter_by(id=appointment_id, practitioner_id=practitioner_id).first()
        if not appointment:
            raise NotFoundError("Appointment not found")
        return appointment

    @staticmethod
    def confirm_booking(db: Session, sender, practitioner: Practitioner, appointment_id, now: datetime) -> Appointment:
        booking = BookingService._get_owned(db, practitioner.id, appointment_id)
        if booking.kind != AppointmentKind.BOOKING:
            raise ValidationError("Only bookings can be confirmed")
        if booking.verified_at is None:
            raise ValidationError("The visitor has not verified their e-mail yet")
        transition(booking, AppointmentStatus.CONFIRMED, now)
        db.commit()
        db.refresh(booking)
        logger.info(f"Booking {booking.id} confirmed by practitioner {practitioner.id}")
        queue_calendar_push(booking)

        notify(sender, booking.client_email, templates.booking_confirmed(
            booking.client_name, practitioner.name, booking.session_date,
            booking.start_time, booking.end_time, booking.visitor_token,
        ))
        return booking

    @staticmethod
    def cancel_appointment(db: Session, sender, practitioner: Practitioner, appointment_id,
                           reason: Optional[str], now: datetime) -> Appointment:
        appointment = BookingService._get_owned(db, practitioner.id, appointment_id)
        return BookingService._cancel(db, sender, practitioner, appointment, reason, "practitioner", now)

    @staticmethod
    def _cancel(db: Session, sender, practitioner: Practitioner, appointment: Appointment,
                reason: Optional[str], cancelled_by: str, now: datetime) -> Appointment:
        transition(appointment, AppointmentStatus.CANCELLED, now)
        appointment.cancelled_by = cancelled_by
        appointment.cancellation_reason = reason or None
        db.commit()
        db.refresh(appointment)
        logger.info(f"{appointment.kind.value.capitalize()} {appointment.id} cancelled by {cancelled_by}")

        message = templates.booking_cancelled(
            appointment.client_name, practitioner.name, appointment.session_date,
            appointment.start_time, appointment.end_time, reason,
        )
        if cancelled_by == "visitor":
            notify(sender, practitioner.email, message)
        elif appointment.kind == AppointmentKind.SESSION or appointment.verified_at is not None:
            notify(sender, appointment.client_email, message)
        return appointment

    @staticmethod
    def update_status(db: Session, practitioner: Practitioner, appointment_id,
                      status: AppointmentStatus, now: datetime) -> Appointment:
        """Mark an appointment completed or no_show"""
        if status not in (AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW):
            raise ValidationError("Status can only be set to completed or no_show here")
        appointment = BookingService._get_owned(db, practitioner.id, appointment_id)
        transition(appointment, status, now)
        db.commit()
        db.refresh(appointment)
        return appointment

    @staticmethod
    def list_appointments(db: Session, practitioner: Practitioner, list_filter: str, now: datetime) -> List[Appointment]:
        if list_filter not in LIST_FILTERS:
            raise ValidationError(f"filter must be one of {', '.join(LIST_FILTERS)}")

        settings = AvailabilityService.get_or_create_settings(db, practitioner.id)
        today = local_today(now, get_zone(settings.timezone))
        query = db.query(Appointment).filter(Appointment.practitioner_id == practitioner.id)
        order = (Appointment.session_date, Appointment.start_time)

        if list_filter == "pending":
            query = query.filter(
                Appointment.kind == AppointmentKind.BOOKING,
                Appointment.status == AppointmentStatus.PENDING,
                Appointment.verified_at.isnot(None),
            )
        elif list_filter == "upcoming":
            query = query.filter(
                Appointment.status.in_(BLOCKING_STATUSES),
                Appointment.session_date >= today,
            )
        elif list_filter == "past":
            query = query.filter(or_(
                Appointment.session_date < today,
                Appointment.status.notin_(BLOCKING_STATUSES),
            ))
            order = (Appointment.session_date.desc(), Appointment.start_time.desc())

        return query.order_by(*order).all()

    @staticmethod
    def expire_unverified_bookings(db: Session, now: datetime) -> int:
        """Cancel pending bookings whose verification link lapsed, releasing their slots"""
        expired = db.query(Appointment).filter(
            Appointment.kind == AppointmentKind.BOOKING,
            Appointment.status == AppointmentStatus.PENDING,
            Appointment.verified_at.is_(None),
            Appointment.verification_expires_at < now,
        ).all()

        for booking in expired:
            transition(booking, AppointmentStatus.CANCELLED, now)
            booking.cancelled_by = "system"
            booking.cancellation_reason = "E-mail verification expired"

        if expired:
            db.commit()
            logger.info(f"Cancelled {len(expired)} bookings with expired verification")
        return len(expired)
