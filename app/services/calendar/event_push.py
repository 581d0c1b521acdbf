# app/services/calendar/event_push.py
"""
Writes confirmed bookings to the practitioner's connected calendars.

Each provider's event id is kept on the appointment, so a repeated push
only creates events on calendars that do not have one yet. A provider
failure is logged and left for the next push; nothing retries here.
"""
from typing import Dict, Optional
import logging

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError, UpstreamSyncError
from app.models.appointment import Appointment, AppointmentKind, AppointmentStatus
from app.models.calendar_integration import CalendarIntegration
from app.services.availability.availability_service import AvailabilityService
from app.services.calendar.busy_time_sync import DEFAULT_PROVIDERS
from app.utils.time_utils import get_zone, local_to_utc

logger = logging.getLogger(__name__)


def booking_event(appointment: Appointment, timezone_name: str) -> Dict:
    zone = get_zone(timezone_name)
    lines = [f"Booked by {appointment.client_name} ({appointment.client_email})"]
    if appointment.client_phone:
        lines.append(f"Phone: {appointment.client_phone}")
    if appointment.session_format:
        lines.append(f"Format: {appointment.session_format}")
    if appointment.notes:
        lines.append(appointment.notes)
    return {
        'summary': f"Session with {appointment.client_name}",
        'description': "<br>".join(lines),
        'start': local_to_utc(appointment.session_date, appointment.start_time, zone),
        'end': local_to_utc(appointment.session_date, appointment.end_time, zone),
    }


class CalendarEventPusher:

    def __init__(self, db: Session, providers: Optional[Dict] = None):
        self.db = db
        if providers is None:
            providers = {name: cls() for name, cls in DEFAULT_PROVIDERS.items()}
        self.providers = providers

    def push(self, appointment_id) -> Dict[str, str]:
        """Returns provider -> 'created' | 'exists' | 'failed'"""
        appointment = self.db.get(Appointment, appointment_id)
        if appointment is None:
            raise NotFoundError("Appointment not found")
        if appointment.kind != AppointmentKind.BOOKING or appointment.status != AppointmentStatus.CONFIRMED:
            logger.info(f"Not pushing {appointment.kind.value} {appointment.id} in status {appointment.status.value}")
            return {}

        settings = AvailabilityService.get_or_create_settings(self.db, appointment.practitioner_id)
        event = booking_event(appointment, settings.timezone)
        event_ids = dict(appointment.calendar_event_ids or {})
        outcome = {}

        integrations = self.db.query(CalendarIntegration).filter_by(
            practitioner_id=appointment.practitioner_id, is_active=True
        ).order_by(CalendarIntegration.provider).all()

        for integration in integrations:
            if integration.provider in event_ids:
                outcome[integration.provider] = 'exists'
                continue
            provider = self.providers.get(integration.provider)
            try:
                if provider is None:
                    raise UpstreamSyncError(integration.provider, f"Unknown calendar provider: {integration.provider}")
                event_ids[integration.provider] = provider.create_event(integration, self.db, event)
            except UpstreamSyncError as e:
                logger.error(f"Could not push booking {appointment.id} to {e.provider}: {e}")
                outcome[integration.provider] = 'failed'
                continue
            outcome[integration.provider] = 'created'

        # Assign a new dict so the JSON column is flagged dirty
        appointment.calendar_event_ids = event_ids
        self.db.commit()
        logger.info(f"Pushed booking {appointment.id} to calendars: {outcome}")
        return outcome
