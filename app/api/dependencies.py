# ============================================================================
# FILE: app/api/dependencies.py
# Authentication dependencies for practitioner JWTs and the reminder trigger
# ============================================================================
import hmac
from typing import Optional
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config.database import get_db
from app.config.settings import get_settings
from app.models.practitioner import Practitioner
from app.services.calendar.calendar_connect import CalendarConnectService

# ============================================================================
# Security Schemes
# ============================================================================

# Practitioner access tokens are issued by the identity service
jwt_security = HTTPBearer(
    scheme_name="JWT Bearer Token",
    description="Enter your practitioner access token"
)

# Shared secret for the scheduler calling /api/reminders/send
reminder_security = HTTPBearer(
    scheme_name="Reminder API Key",
    description="Enter REMINDER_API_KEY",
    auto_error=False,
)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


# ============================================================================
# JWT
# ============================================================================

def verify_access_token(token: str) -> dict:
    """
    Verify and decode a JWT access token.

    Raises:
        HTTPException: If token is invalid, expired or not an access token
    """
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM]
        )
    except JWTError as e:
        raise _unauthorized(f"Could not validate credentials: {str(e)}")

    if payload.get("type", "access") != "access":
        raise _unauthorized("Invalid token type")
    return payload


async def get_current_practitioner(
        credentials: HTTPAuthorizationCredentials = Depends(jwt_security),
        db: Session = Depends(get_db)
) -> Practitioner:
    """
    Practitioner named by the token's `sub` claim.

    Usage in routes:
        @router.get("/settings")
        async def read(practitioner: Practitioner = Depends(get_current_practitioner)):
            ...
    """
    payload = verify_access_token(credentials.credentials)

    practitioner_id: Optional[str] = payload.get("sub")
    if practitioner_id is None:
        raise _unauthorized("Could not validate credentials")

    try:
        practitioner_uuid = UUID(practitioner_id)
    except ValueError:
        raise _unauthorized("Invalid practitioner ID in token")

    practitioner = db.query(Practitioner).filter(Practitioner.id == practitioner_uuid).first()
    if practitioner is None:
        raise _unauthorized("Practitioner not found")

    return practitioner


# ============================================================================
# Reminder trigger
# ============================================================================

async def require_reminder_api_key(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(reminder_security)
) -> None:
    """Constant-time bearer check; an unset REMINDER_API_KEY rejects every call"""
    expected = get_settings().REMINDER_API_KEY
    if not expected or credentials is None:
        raise _unauthorized("Unauthorized")
    if not hmac.compare_digest(credentials.credentials.encode(), expected.encode()):
        raise _unauthorized("Unauthorized")


# ============================================================================
# Calendar connect
# ============================================================================

def get_calendar_connect(db: Session = Depends(get_db)) -> CalendarConnectService:
    return CalendarConnectService(db)
