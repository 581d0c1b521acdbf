# ============================================================================
# FILE: app/api/v1/public/rsvp.py
# Token-based session RSVP endpoints, no authentication
# ============================================================================
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.models.appointment import RsvpStatus
from app.schemas.rsvp import RsvpPropose, RsvpRespond, RsvpSessionView
from app.services.email.email_service import get_notification_sender
from app.services.rsvp.rsvp_service import RsvpService
from app.utils.time_utils import get_clock

router = APIRouter(prefix="/session-rsvp", tags=["public-rsvp"])


@router.get("", response_model=RsvpSessionView)
async def view_session(
        token: str = Query(..., min_length=16),
        db: Session = Depends(get_db),
        clock=Depends(get_clock)
):
    return RsvpService.get_by_token(db, token, clock.now())


@router.post("", response_model=RsvpSessionView)
async def respond(
        payload: RsvpRespond,
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    """Accept or decline a scheduled session"""
    return RsvpService.respond(db, sender, payload.token, RsvpStatus(payload.response), clock.now())


@router.post("/propose", response_model=RsvpSessionView)
async def propose(
        payload: RsvpPropose,
        db: Session = Depends(get_db),
        clock=Depends(get_clock),
        sender=Depends(get_notification_sender)
):
    """Ask the practitioner for a different time"""
    return RsvpService.propose_reschedule(
        db,
        sender,
        payload.token,
        payload.proposed_date,
        payload.proposed_start_time,
        payload.proposed_end_time,
        payload.message,
        clock.now(),
    )
