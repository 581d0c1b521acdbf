# app/services/calendar/outlook_service.py
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Tuple
import logging

import msal
import requests
from cryptography.fernet import InvalidToken
from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import UpstreamSyncError
from app.models import CalendarIntegration
from app.utils.encryption import decrypt_token, encrypt_token
from app.utils.time_utils import ensure_utc

logger = logging.getLogger(__name__)


def parse_graph_datetime(value: str) -> datetime:
    """Graph returns naive UTC strings with 7 fractional digits when asked for UTC"""
    value = value.rstrip('Z')
    if '.' in value:
        head, fraction = value.split('.', 1)
        value = f"{head}.{fraction[:6]}"
    return ensure_utc(datetime.fromisoformat(value))


class OutlookCalendarService:
    """Reads busy time from Outlook through the Microsoft Graph calendar view"""
    provider = 'outlook'
    SCOPES = ['Calendars.ReadWrite']
    AUTHORITY = 'https://login.microsoftonline.com/common'
    GRAPH_ENDPOINT = 'https://graph.microsoft.com/v1.0'
    REQUEST_TIMEOUT = 30

    def __init__(self):
        self.settings = get_settings()

    def _client(self) -> msal.ConfidentialClientApplication:
        return msal.ConfidentialClientApplication(
            self.settings.MICROSOFT_CLIENT_ID,
            authority=self.AUTHORITY,
            client_credential=self.settings.MICROSOFT_CLIENT_SECRET,
        )

    # ========== OAUTH CONNECT ==========

    def authorization_url(self, state: str) -> str:
        """Microsoft consent URL; `state` comes back unchanged on the callback"""
        return self._client().get_authorization_request_url(
            self.SCOPES,
            state=state,
            redirect_uri=self.settings.MICROSOFT_REDIRECT_URI,
        )

    def exchange_code(self, code: str) -> Dict:
        """Swap the callback code for tokens and the account's calendar list"""
        try:
            result = self._client().acquire_token_by_authorization_code(
                code,
                scopes=self.SCOPES,
                redirect_uri=self.settings.MICROSOFT_REDIRECT_URI,
            )
        except (requests.RequestException, ValueError) as e:
            raise UpstreamSyncError(self.provider, f"Microsoft token exchange failed: {e!r}") from e
        if "error" in result:
            logger.error(f"Token exchange error: {result.get('error_description')}")
            raise UpstreamSyncError(self.provider, f"Auth error: {result.get('error_description')}")

        calendars = self._get(result['access_token'], f"{self.GRAPH_ENDPOINT}/me/calendars").get('value', [])
        return {
            'access_token': result['access_token'],
            'refresh_token': result.get('refresh_token'),
            'expires_at': datetime.now(timezone.utc) + timedelta(seconds=result['expires_in']),
            'provider_config': {
                'calendar_list': [{'id': cal['id'], 'name': cal['name']} for cal in calendars],
                'selected_calendar_id': calendars[0]['id'] if calendars else None,
            },
        }

    # ========== TOKENS ==========

    def _get_valid_access_token(self, integration: CalendarIntegration, db: Session) -> str:
        """Get valid access token, refreshing if necessary"""
        now = datetime.now(timezone.utc)
        expires_at = ensure_utc(integration.token_expires_at)
        try:
            if expires_at is None or expires_at <= now + timedelta(minutes=5):
                self.refresh_access_token(integration, db)
            return decrypt_token(integration.access_token_encrypted)
        except (InvalidToken, requests.RequestException, ValueError) as e:
            raise UpstreamSyncError(self.provider, f"Outlook token unavailable: {e!r}") from e

    def refresh_access_token(self, integration: CalendarIntegration, db: Session) -> None:
        """Refresh expired access token"""
        result = self._client().acquire_token_by_refresh_token(
            refresh_token=decrypt_token(integration.refresh_token_encrypted),
            scopes=self.SCOPES,
        )
        if "error" in result:
            raise UpstreamSyncError(self.provider, f"Token refresh failed: {result.get('error_description')}")

        integration.access_token_encrypted = encrypt_token(result['access_token'])
        if result.get('refresh_token'):
            integration.refresh_token_encrypted = encrypt_token(result['refresh_token'])
        integration.token_expires_at = datetime.now(timezone.utc) + timedelta(seconds=result['expires_in'])
        db.commit()
        logger.info(f"Refreshed Outlook token for integration {integration.id}")

    # ========== GRAPH ==========

    def _get(self, access_token: str, url: str, params=None, headers=None) -> Dict:
        headers = {'Authorization': f'Bearer {access_token}', **(headers or {})}
        try:
            response = requests.get(url, headers=headers, params=params, timeout=self.REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise UpstreamSyncError(self.provider, f"Microsoft Graph request failed: {e}") from e
        if response.status_code != 200:
            logger.error(f"Microsoft Graph API error: {response.text}")
            raise UpstreamSyncError(self.provider, f"Microsoft Graph returned {response.status_code}")
        return response.json()

    def fetch_busy(self, integration: CalendarIntegration, db: Session,
                   time_from: datetime, time_to: datetime) -> List[Tuple[datetime, datetime]]:
        """Busy intervals in UTC between time_from and time_to"""
        access_token = self._get_valid_access_token(integration, db)
        calendar_id = (integration.provider_config or {}).get('selected_calendar_id')
        path = f"/me/calendars/{calendar_id}/calendarView" if calendar_id else "/me/calendarView"
        url = f"{self.GRAPH_ENDPOINT}{path}"
        params = {
            'startDateTime': ensure_utc(time_from).isoformat(),
            'endDateTime': ensure_utc(time_to).isoformat(),
            '$select': 'start,end,showAs,isCancelled,responseStatus',
            '$top': 500,
        }

        busy = []
        while url:
            payload = self._get(access_token, url, params, {'Prefer': 'outlook.timezone="UTC"'})
            for event in payload.get('value', []):
                if event.get('isCancelled') or event.get('showAs') == 'free':
                    continue
                if event.get('responseStatus', {}).get('response') == 'declined':
                    continue
                busy.append((
                    parse_graph_datetime(event['start']['dateTime']),
                    parse_graph_datetime(event['end']['dateTime']),
                ))

            # nextLink already carries the query string
            url, params = payload.get('@odata.nextLink'), None

        return busy

    def create_event(self, integration: CalendarIntegration, db: Session, event_data: Dict) -> str:
        """Create a calendar event in Outlook; returns the Graph event id"""
        access_token = self._get_valid_access_token(integration, db)
        calendar_id = (integration.provider_config or {}).get('selected_calendar_id')
        path = f"/me/calendars/{calendar_id}/events" if calendar_id else "/me/events"

        event = {
            'subject': event_data['summary'],
            'body': {'contentType': 'HTML', 'content': event_data.get('description', '')},
            'start': {'dateTime': ensure_utc(event_data['start']).replace(tzinfo=None).isoformat(), 'timeZone': 'UTC'},
            'end': {'dateTime': ensure_utc(event_data['end']).replace(tzinfo=None).isoformat(), 'timeZone': 'UTC'},
        }
        try:
            response = requests.post(
                f"{self.GRAPH_ENDPOINT}{path}",
                headers={'Authorization': f'Bearer {access_token}', 'Content-Type': 'application/json'},
                json=event,
                timeout=self.REQUEST_TIMEOUT,
            )
        except requests.RequestException as e:
            raise UpstreamSyncError(self.provider, f"Microsoft Graph request failed: {e}") from e
        if response.status_code not in (200, 201):
            logger.error(f"Failed to create Outlook event: {response.text}")
            raise UpstreamSyncError(self.provider, f"Microsoft Graph returned {response.status_code}")
        return response.json()['id']
