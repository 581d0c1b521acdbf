# app/schemas/rsvp.py
from datetime import date, time
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from app.models.appointment import RsvpStatus


class RsvpRespond(BaseModel):
    token: str = Field(..., min_length=16)
    response: Literal["accepted", "declined"]


class RsvpPropose(BaseModel):
    token: str = Field(..., min_length=16)
    proposed_date: date
    proposed_start_time: str = Field(..., description="HH:MM")
    proposed_end_time: str = Field(..., description="HH:MM")
    message: Optional[str] = Field(None, max_length=1000)


class RescheduleResponse(BaseModel):
    accept: bool


class RsvpSessionView(BaseModel):
    """What the client sees behind an RSVP link"""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    session_date: date
    start_time: time
    end_time: time
    client_name: str
    session_format: Optional[str] = None
    rsvp_status: Optional[RsvpStatus] = None
