# app/schemas/booking.py
from datetime import date, datetime, time
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from app.models.appointment import AppointmentKind, AppointmentStatus, RsvpStatus


class BookingRequest(BaseModel):
    """Public booking form"""
    date: date
    start_time: str = Field(..., description="HH:MM")
    end_time: str = Field(..., description="HH:MM")
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=40)
    session_format: Optional[str] = Field(None, max_length=40)
    notes: Optional[str] = Field(None, max_length=2000)
    website: Optional[str] = Field(None, description="Honeypot, must stay empty")


class BookingSubmitted(BaseModel):
    booking_id: UUID
    status: AppointmentStatus
    requires_verification: bool
    visitor_token: str


class VisitorBookingResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    client_name: str
    session_format: Optional[str] = None
    verified_at: Optional[datetime] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000)


class StatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: AppointmentKind
    status: AppointmentStatus
    session_date: date
    start_time: time
    end_time: time
    client_name: str
    client_email: str
    client_phone: Optional[str] = None
    session_format: Optional[str] = None
    notes: Optional[str] = None
    verified_at: Optional[datetime] = None
    rsvp_status: Optional[RsvpStatus] = None
    proposed_date: Optional[date] = None
    proposed_start_time: Optional[time] = None
    proposed_end_time: Optional[time] = None
    proposed_message: Optional[str] = None
    created_at: datetime
    cancelled_by: Optional[str] = None
    cancellation_reason: Optional[str] = None


class SessionCreate(BaseModel):
    date: date
    start_time: str = Field(..., description="HH:MM")
    end_time: str = Field(..., description="HH:MM")
    client_name: str = Field(..., min_length=1, max_length=200)
    client_email: EmailStr
    session_format: Optional[str] = Field(None, max_length=40)
    notes: Optional[str] = Field(None, max_length=2000)
