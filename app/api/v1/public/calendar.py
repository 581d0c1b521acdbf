# ============================================================================
# FILE: app/api/v1/public/calendar.py
# OAuth redirect target for calendar providers - no authentication
# ============================================================================
from typing import Optional
from urllib.parse import urlencode
import logging

from fastapi import APIRouter, Depends, Query, Path
from fastapi.responses import RedirectResponse
from kombu.exceptions import KombuError

from app.api.dependencies import get_calendar_connect
from app.config.settings import get_settings
from app.core.exceptions import BookingEngineError
from app.services.calendar.calendar_connect import CalendarConnectService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["public-calendar"])


def _back_to_dashboard(**params) -> RedirectResponse:
    url = f"{get_settings().SITE_URL.rstrip('/')}/dashboard/availability?{urlencode(params)}"
    return RedirectResponse(url, status_code=303)


@router.get("/calendar/{provider}/callback")
def calendar_callback(
        provider: str = Path(..., pattern="^(google|outlook)$"),
        code: Optional[str] = Query(None),
        state: Optional[str] = Query(None),
        error: Optional[str] = Query(None),
        connect: CalendarConnectService = Depends(get_calendar_connect)
):
    """
    The provider redirects here after consent.
    This endpoint does NOT require authentication; the signed state names the practitioner.
    """
    if error or not code or not state:
        logger.warning(f"{provider} authorization was not completed: {error or 'missing code/state'}")
        return _back_to_dashboard(calendar=provider, error=error or "authorization_incomplete")

    try:
        integration = connect.complete(provider, code, state)
    except BookingEngineError as e:
        logger.error(f"{provider} calendar connect failed: {e}")
        return _back_to_dashboard(calendar=provider, error=str(e))

    from app.tasks.calendar_tasks import sync_practitioner_busy_times
    try:
        sync_practitioner_busy_times.delay(str(integration.practitioner_id))
    except (KombuError, OSError) as e:
        logger.error(f"Could not queue first sync for practitioner {integration.practitioner_id}: {e}")

    return _back_to_dashboard(calendar=provider, connected="true")
