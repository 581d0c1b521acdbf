# app/services/calendar/google_calendar_service.py
from datetime import timedelta, datetime, timezone
from typing import Dict, List, Tuple
import logging

from cryptography.fernet import InvalidToken
from google.auth.exceptions import GoogleAuthError
from google.auth.transport.requests import Request
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import Flow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import UpstreamSyncError
from app.models import CalendarIntegration
from app.utils.encryption import decrypt_token, encrypt_token
from app.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)

# Token and API failures that mean "this calendar cannot be used right now"
GOOGLE_ERRORS = (HttpError, GoogleAuthError, InvalidToken, OSError, ValueError)


def parse_rfc3339(value: str) -> datetime:
    return ensure_utc(datetime.fromisoformat(value.replace('Z', '+00:00')))


class GoogleCalendarService:
    """Reads busy time from Google Calendar and writes confirmed bookings back"""
    provider = 'google'
    SCOPES = ['https://www.googleapis.com/auth/calendar']
    AUTH_URI = 'https://accounts.google.com/o/oauth2/auth'
    TOKEN_URI = 'https://oauth2.googleapis.com/token'

    def __init__(self):
        self.settings = get_settings()
        self.client_config = {
            "web": {
                "client_id": self.settings.GOOGLE_CLIENT_ID,
                "client_secret": self.settings.GOOGLE_CLIENT_SECRET,
                "redirect_uris": [self.settings.GOOGLE_REDIRECT_URI],
                "auth_uri": self.AUTH_URI,
                "token_uri": self.TOKEN_URI,
            }
        }

    # ========== OAUTH CONNECT ==========

    def _flow(self) -> Flow:
        # The callback runs on a fresh Flow, so no PKCE verifier can be carried over
        return Flow.from_client_config(
            self.client_config,
            scopes=self.SCOPES,
            redirect_uri=self.settings.GOOGLE_REDIRECT_URI,
            autogenerate_code_verifier=False,
        )

    def authorization_url(self, state: str) -> str:
        """Consent URL; `state` comes back unchanged on the callback"""
        url, _ = self._flow().authorization_url(
            access_type='offline',  # Gets refresh token
            include_granted_scopes='true',
            prompt='consent',  # Force consent screen to get refresh token
            state=state,
        )
        return url

    def exchange_code(self, code: str) -> Dict:
        """Swap the callback code for tokens and the account's calendar list"""
        flow = self._flow()
        try:
            flow.fetch_token(code=code)
            credentials = flow.credentials
            service = build('calendar', 'v3', credentials=credentials, cache_discovery=False)
            calendar_list = service.calendarList().list().execute()
        except Exception as e:
            logger.error(f"Failed to exchange Google authorization code: {e}")
            raise UpstreamSyncError(self.provider, f"Google authorization failed: {e}") from e

        return {
            'access_token': credentials.token,
            'refresh_token': credentials.refresh_token,
            'expires_at': credentials.expiry.replace(tzinfo=timezone.utc) if credentials.expiry else None,
            'provider_config': {
                'calendar_list': [
                    {'id': cal['id'], 'name': cal.get('summary', cal['id'])}
                    for cal in calendar_list.get('items', [])
                ],
                'selected_calendar_id': 'primary',
            },
        }

    # ========== TOKENS ==========

    def _credentials(self, access_token, refresh_token) -> Credentials:
        return Credentials(
            token=access_token,
            refresh_token=refresh_token,
            token_uri=self.TOKEN_URI,
            client_id=self.settings.GOOGLE_CLIENT_ID,
            client_secret=self.settings.GOOGLE_CLIENT_SECRET,
        )

    def get_valid_credentials(self, integration: CalendarIntegration, db: Session) -> Credentials:
        """Get valid credentials, refreshing if necessary"""
        now = datetime.now(timezone.utc)
        expires_at = ensure_utc(integration.token_expires_at)
        if expires_at is None or expires_at <= now + timedelta(minutes=5):
            return self.refresh_access_token(integration, db)
        return self._credentials(
            decrypt_token(integration.access_token_encrypted),
            decrypt_token(integration.refresh_token_encrypted),
        )

    def refresh_access_token(self, integration: CalendarIntegration, db: Session) -> Credentials:
        """Refresh expired access token using refresh token"""
        credentials = self._credentials(None, decrypt_token(integration.refresh_token_encrypted))
        credentials.refresh(Request())
        integration.access_token_encrypted = encrypt_token(credentials.token)
        integration.token_expires_at = credentials.expiry.replace(tzinfo=timezone.utc) if credentials.expiry else None
        db.commit()
        logger.info(f"Refreshed Google token for integration {integration.id}")
        return credentials

    def _calendar(self, integration: CalendarIntegration, db: Session):
        credentials = self.get_valid_credentials(integration, db)
        return build('calendar', 'v3', credentials=credentials, cache_discovery=False)

    # ========== BUSY TIME / EVENTS ==========

    def fetch_busy(self, integration: CalendarIntegration, db: Session,
                   time_from: datetime, time_to: datetime) -> List[Tuple[datetime, datetime]]:
        """Busy intervals in UTC between time_from and time_to"""
        calendar_id = (integration.provider_config or {}).get('selected_calendar_id', 'primary')
        try:
            response = self._calendar(integration, db).freebusy().query(body={
                'timeMin': ensure_utc(time_from).isoformat(),
                'timeMax': ensure_utc(time_to).isoformat(),
                'timeZone': 'UTC',
                'items': [{'id': calendar_id}],
            }).execute()
        except GOOGLE_ERRORS as e:
            raise UpstreamSyncError(self.provider, f"Google free/busy query failed: {e!r}") from e

        calendar = response.get('calendars', {}).get(calendar_id, {})
        if calendar.get('errors'):
            raise UpstreamSyncError(self.provider, f"Google calendar errors: {calendar['errors']}")

        return [(parse_rfc3339(period['start']), parse_rfc3339(period['end'])) for period in calendar.get('busy', [])]

    def create_event(self, integration: CalendarIntegration, db: Session, event_data: Dict) -> str:
        """Create an event on the selected calendar; returns the Google event id"""
        calendar_id = (integration.provider_config or {}).get('selected_calendar_id', 'primary')
        event = {
            'summary': event_data['summary'],
            'description': event_data.get('description', ''),
            'start': {'dateTime': ensure_utc(event_data['start']).isoformat(), 'timeZone': 'UTC'},
            'end': {'dateTime': ensure_utc(event_data['end']).isoformat(), 'timeZone': 'UTC'},
        }
        try:
            created = self._calendar(integration, db).events().insert(
                calendarId=calendar_id, body=event
            ).execute()
        except GOOGLE_ERRORS as e:
            raise UpstreamSyncError(self.provider, f"Google event insert failed: {e!r}") from e
        return created['id']
