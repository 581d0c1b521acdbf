# ============================================================================
# FILE: app/api/v1/dashboard/availability.py
# Practitioner availability settings - thin HTTP layer
# IMPORTANT: Specific routes MUST come before parameterized routes
# ============================================================================
from datetime import date
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session

from app.api.dependencies import get_calendar_connect, get_current_practitioner
from app.config.database import get_db
from app.models.practitioner import Practitioner
from app.schemas.availability import (
    BookingSettingsResponse,
    BookingSettingsUpdate,
    CalendarIntegrationResponse,
    OverrideIn,
    OverrideResponse,
    WeeklyRuleResponse,
    WeeklyScheduleIn,
)
from app.services.availability.availability_service import AvailabilityService
from app.services.calendar.busy_time_sync import BusyTimeSyncService
from app.services.calendar.calendar_connect import CalendarConnectService
from app.utils.time_utils import get_clock

router = APIRouter(prefix="/availability", tags=["dashboard-availability"])


def get_busy_time_sync(db: Session = Depends(get_db), clock=Depends(get_clock)) -> BusyTimeSyncService:
    return BusyTimeSyncService(db, clock)


# ========== BOOKING SETTINGS ==========

@router.get("/settings", response_model=BookingSettingsResponse)
async def read_settings(
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db)
):
    return AvailabilityService.get_or_create_settings(db, practitioner.id)


@router.put("/settings", response_model=BookingSettingsResponse)
async def update_settings(
        payload: BookingSettingsUpdate,
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db)
):
    return AvailabilityService.update_settings(db, practitioner.id, payload.model_dump(exclude_unset=True))


# ========== WEEKLY SCHEDULE ==========

@router.get("/weekly", response_model=List[WeeklyRuleResponse])
async def read_weekly_schedule(
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db)
):
    return AvailabilityService.get_weekly_schedule(db, practitioner.id)


@router.put("/weekly", response_model=List[WeeklyRuleResponse])
async def replace_weekly_schedule(
        payload: WeeklyScheduleIn,
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db)
):
    """Replace the whole week; overlapping rules on one day are rejected"""
    return AvailabilityService.replace_weekly_schedule(
        db, practitioner.id, [rule.model_dump() for rule in payload.rules]
    )


# ========== DATE OVERRIDES ==========

@router.get("/overrides", response_model=List[OverrideResponse])
async def list_overrides(
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db)
):
    return AvailabilityService.list_overrides(db, practitioner.id, start_date, end_date)


@router.put("/overrides", response_model=OverrideResponse)
async def upsert_override(
        payload: OverrideIn,
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db)
):
    return AvailabilityService.upsert_override(
        db,
        practitioner.id,
        payload.date,
        payload.is_available,
        payload.start_time,
        payload.end_time,
        payload.reason,
    )


@router.delete("/overrides/{override_id}", status_code=204)
async def delete_override(
        override_id: UUID = Path(...),
        practitioner: Practitioner = Depends(get_current_practitioner),
        db: Session = Depends(get_db)
):
    AvailabilityService.delete_override(db, practitioner.id, override_id)


# ========== EXTERNAL CALENDARS ==========

@router.get("/calendar", response_model=List[CalendarIntegrationResponse])
async def list_calendars(
        practitioner: Practitioner = Depends(get_current_practitioner),
        sync: BusyTimeSyncService = Depends(get_busy_time_sync)
):
    return sync.list_integrations(practitioner.id)


@router.post("/calendar/{provider}/authorize")
def authorize_calendar(
        provider: str = Path(..., pattern="^(google|outlook)$"),
        practitioner: Practitioner = Depends(get_current_practitioner),
        connect: CalendarConnectService = Depends(get_calendar_connect)
) -> Dict[str, str]:
    """
    Returns the consent URL the practitioner visits.
    The provider redirects back to the public calendar callback.
    """
    return {"authorization_url": connect.authorization_url(practitioner.id, provider)}


@router.post("/calendar/sync")
def sync_calendars(
        practitioner: Practitioner = Depends(get_current_practitioner),
        sync: BusyTimeSyncService = Depends(get_busy_time_sync)
) -> Dict[str, Dict[str, str]]:
    """Pull busy time now instead of waiting for the periodic sync"""
    return {"providers": sync.sync_practitioner(practitioner.id)}


@router.delete("/calendar/{provider}", status_code=204)
async def disconnect_calendar(
        provider: str = Path(..., pattern="^(google|outlook)$"),
        practitioner: Practitioner = Depends(get_current_practitioner),
        sync: BusyTimeSyncService = Depends(get_busy_time_sync)
):
    sync.disconnect(practitioner.id, provider)
