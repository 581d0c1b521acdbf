# app/services/calendar/calendar_connect.py
"""
OAuth connect flow for external calendars.

The practitioner asks for a consent URL, the provider redirects back to the
public callback with `code` and `state`. The state is a short-lived signed
token naming the practitioner and provider, so the callback needs no session
and no server-side storage.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional
from uuid import UUID
import logging

from jose import JWTError, jwt
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import NotFoundError, ValidationError
from app.models.calendar_integration import CalendarIntegration
from app.services.availability.availability_service import AvailabilityService
from app.services.calendar.busy_time_sync import DEFAULT_PROVIDERS
from app.utils.encryption import encrypt_token

logger = logging.getLogger(__name__)

STATE_TOKEN_TYPE = "calendar_oauth"


def create_oauth_state(practitioner_id, provider: str) -> str:
    settings = get_settings()
    payload = {
        "sub": str(practitioner_id),
        "provider": provider,
        "type": STATE_TOKEN_TYPE,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=settings.CALENDAR_OAUTH_STATE_MINUTES),
    }
    return jwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def read_oauth_state(state: str, provider: str) -> UUID:
    """Practitioner id carried by a valid state for `provider`"""
    settings = get_settings()
    try:
        payload = jwt.decode(state, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        raise ValidationError(f"Invalid or expired authorization state: {e}")

    if payload.get("type") != STATE_TOKEN_TYPE or payload.get("provider") != provider:
        raise ValidationError("Authorization state does not match this calendar provider")
    try:
        return UUID(payload["sub"])
    except (KeyError, ValueError):
        raise ValidationError("Invalid practitioner in authorization state")


class CalendarConnectService:

    def __init__(self, db: Session, providers: Optional[Dict] = None):
        self.db = db
        if providers is None:
            providers = {name: cls() for name, cls in DEFAULT_PROVIDERS.items()}
        self.providers = providers

    def _provider(self, name: str):
        provider = self.providers.get(name)
        if provider is None:
            raise NotFoundError(f"Unknown calendar provider: {name}")
        return provider

    def authorization_url(self, practitioner_id, provider: str) -> str:
        """Step 1: consent URL the practitioner visits"""
        url = self._provider(provider).authorization_url(create_oauth_state(practitioner_id, provider))
        logger.info(f"Issued {provider} authorization URL for practitioner {practitioner_id}")
        return url

    def complete(self, provider: str, code: str, state: str) -> CalendarIntegration:
        """
        Step 2: exchange the callback code and store the integration.

        Reconnecting the same provider updates the existing row; a provider
        that returns no new refresh token keeps the stored one.
        """
        practitioner_id = read_oauth_state(state, provider)
        AvailabilityService.get_practitioner(self.db, practitioner_id)

        tokens = self._provider(provider).exchange_code(code)

        integration = self.db.query(CalendarIntegration).filter_by(
            practitioner_id=practitioner_id, provider=provider
        ).first()
        if integration is None:
            integration = CalendarIntegration(practitioner_id=practitioner_id, provider=provider)
            self.db.add(integration)

        integration.is_active = True
        integration.access_token_encrypted = encrypt_token(tokens['access_token'])
        if tokens.get('refresh_token'):
            integration.refresh_token_encrypted = encrypt_token(tokens['refresh_token'])
        integration.token_expires_at = tokens.get('expires_at')
        integration.provider_config = tokens.get('provider_config') or {}
        integration.last_sync_status = None
        integration.last_sync_error = None
        self.db.commit()
        self.db.refresh(integration)

        logger.info(f"Connected {provider} calendar for practitioner {practitioner_id}")
        return integration
