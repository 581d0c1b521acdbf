# ============================================================================
# FILE: app/api/v1/public/booking.py
# Public booking page endpoints - thin HTTP layer, no authentication
# ============================================================================
from datetime import date, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.schemas.availability import AvailableDatesResponse, SlotsResponse
from app.schemas.booking import (
    BookingRequest,
    BookingSubmitted,
    CancelRequest,
    VisitorBookingResponse,
)
from app.services.availability.availability_service import AvailabilityService
from app.services.booking.booking_service import BookingService
from app.services.email.email_service import get_notification_sender
from app.utils.time_utils import get_clock, get_zone, local_today

router = APIRouter(tags=["public-booking"])


@router.get("/practitioners/{slug}/slots", response_model=SlotsResponse)
async def get_slots(
        slug: str = Path(..., description="Practitioner slug"),
        start_date: Optional[date] = Query(None, description="First local date (defaults to today)"),
        end_date: Optional[date] = Query(None, description="Last local date (defaults to the booking horizon)"),
        db: Session = Depends(get_db),
        clock=Depends(get_clock)
):
    """Free slots for the practitioner's public booking page"""
    practitioner = AvailabilityService.get_bookable_practitioner(db, slug)
    settings = AvailabilityService.get_or_create_settings(db, practitioner.id)
    now = clock.now()
    today = local_today(now, get_zone(settings.timezone))

    slots = AvailabilityService.get_available_slots(
        db,
        practitioner,
        start_date or today,
        end_date or today + timedelta(days=settings.max_booking_days_ahead),
        now,
    )
    return {
        "timezone": settings.timezone,
        "slot_duration_minutes": settings.slot_duration_minutes,
        "slots": [slot.to_dict() for slot in slots],
    }


@router.get("/practitioners/{slug}/available-dates", response_model=AvailableDatesResponse)
async def get_available_dates(
        slug: str = Path(..., description="Practitioner slug"),
        year: int = Query(..., ge=2000, le=2100),
        month: int = Query(..., ge=1, le=12),
        db: Session = Depends(get_db),
        clock=Depends(get_clock)
):
    practitioner = AvailabilityService.get_bookable_practitioner(db, slug)
    dates = AvailabilityService.get_available_dates(db, practitioner, year, month, clock.now())
    return {"year": year, "month": month, "dates": dates}


@router.post("/practitioners/{slug}/bookings", response_model=BookingSubmitted, status_code=201)
async def submit_booking(
        payload: BookingRequest,
        slug: str = Path(..., description="Practitioner slug"),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    """
    Request a slot. The slot is held immediately; the visitor confirms their
    e-mail through the link we send unless it was verified before.
    """
    practitioner = AvailabilityService.get_bookable_practitioner(db, slug)
    booking = BookingService.submit_booking(db, sender, practitioner, payload.model_dump(), clock.now())
    return {
        "booking_id": booking.id,
        "status": booking.status,
        "requires_verification": booking.verified_at is None,
        "visitor_token": booking.visitor_token,
    }


@router.get("/bookings/verify", response_model=VisitorBookingResponse)
async def verify_booking(
        token: str = Query(..., min_length=16),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    return BookingService.verify_booking(db, sender, token, clock.now())


@router.get("/bookings/{visitor_token}", response_model=VisitorBookingResponse)
async def get_booking(
        visitor_token: str = Path(..., min_length=16),
        db: Session = Depends(get_db)
):
    return BookingService.get_by_visitor_token(db, visitor_token)


@router.post("/bookings/{visitor_token}/cancel", response_model=VisitorBookingResponse)
async def cancel_booking(
        payload: CancelRequest,
        visitor_token: str = Path(..., min_length=16),
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    return BookingService.cancel_by_visitor(db, sender, visitor_token, payload.reason, clock.now())
