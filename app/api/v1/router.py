"""
API v1 router setup
Organized into: public (no auth) and dashboard (practitioner JWT) routes
"""
from fastapi import APIRouter

from app.api.v1.public import booking, calendar, rsvp
from app.api.v1.dashboard import availability, appointments

api_v1_router = APIRouter()

# ============================================================================
# PUBLIC ROUTES (No authentication required)
# ============================================================================
api_v1_router.include_router(
    booking.router,
    prefix="/public",
    tags=["Public"]
)

api_v1_router.include_router(
    rsvp.router,
    prefix="/public",
    tags=["Public"]
)

api_v1_router.include_router(
    calendar.router,
    prefix="/public",
    tags=["Public"]
)

# ============================================================================
# DASHBOARD ROUTES (JWT authentication required)
# ============================================================================
api_v1_router.include_router(
    availability.router,
    prefix="/dashboard",
    tags=["Dashboard"]
)

api_v1_router.include_router(
    appointments.router,
    prefix="/dashboard",
    tags=["Dashboard"]
)


# ============================================================================
# ROOT ENDPOINT - API Info
# ============================================================================
@api_v1_router.get("/", tags=["Info"])
async def api_info():
    """Shows the structure of the API routes by authentication type."""
    return {
        "version": "1.0",
        "authentication": {
            "public": "No authentication required",
            "dashboard": "Practitioner JWT Bearer token required",
        }
    }
