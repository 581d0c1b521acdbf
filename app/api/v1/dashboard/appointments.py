# ============================================================================
# FILE: app/api/v1/dashboard/appointments.py
# Practitioner booking & session management - thin HTTP layer
# ============================================================================
from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session

from app.api.dependencies import get_current_practitioner
from app.config.database import get_db
from app.models.practitioner import Practitioner
from app.schemas.booking import AppointmentResponse, CancelRequest, SessionCreate, StatusUpdate
from app.schemas.rsvp import RescheduleResponse
from app.services.booking.booking_service import BookingService
from app.services.email.email_service import get_notification_sender
from app.services.rsvp.rsvp_service import RsvpService
from app.utils.time_utils import get_clock

router = APIRouter(tags=["dashboard-appointments"])


@router.get("/appointments", response_model=List[AppointmentResponse])
async def list_appointments(
        filter: str = Query("upcoming", description="pending, upcoming, past or all"),
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db),
        clock=Depends(get_clock)
):
    """
    Bookings and sessions of the authenticated practitioner.
    `pending` lists verified bookings awaiting approval.
    """
    return BookingService.list_appointments(db, practitioner, filter, clock.now())


@router.post("/appointments/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_booking(
        appointment_id: UUID = Path(...),
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    return BookingService.confirm_booking(db, sender, practitioner, appointment_id, clock.now())


@router.post("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
        payload: CancelRequest,
        appointment_id: UUID = Path(...),
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    return BookingService.cancel_appointment(db, sender, practitioner, appointment_id, payload.reason, clock.now())


@router.post("/appointments/{appointment_id}/status", response_model=AppointmentResponse)
async def update_status(
        payload: StatusUpdate,
        appointment_id: UUID = Path(...),
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db),
        clock=Depends(get_clock)
):
    """Mark as completed or no_show"""
    return BookingService.update_status(db, practitioner, appointment_id, payload.status, clock.now())


@router.post("/sessions", response_model=AppointmentResponse, status_code=201)
async def create_session(
        payload: SessionCreate,
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    return RsvpService.create_session(db, sender, practitioner, payload.model_dump(), clock.now())


@router.post("/sessions/{session_id}/reschedule-response", response_model=AppointmentResponse)
async def respond_to_reschedule(
        payload: RescheduleResponse,
        session_id: UUID = Path(...),
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    return RsvpService.respond_to_reschedule(db, sender, practitioner, session_id, payload.accept, clock.now())
