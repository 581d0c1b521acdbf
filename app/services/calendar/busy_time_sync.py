# app/services/calendar/busy_time_sync.py
"""
External calendar busy-time cache.

Each sync pulls busy intervals per active integration and swaps that
provider's cached rows in a single transaction. A provider that fails keeps
its previous rows; the ledger, not this cache, protects against double
booking, so stale busy time only costs availability.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional
import logging

from sqlalchemy.orm import Session

from app.config.settings import get_settings
from app.core.exceptions import NotFoundError, UpstreamSyncError
from app.models.calendar_integration import CalendarBusyTime, CalendarIntegration
from app.services.calendar.google_calendar_service import GoogleCalendarService
from app.services.calendar.outlook_service import OutlookCalendarService

logger = logging.getLogger(__name__)

DEFAULT_PROVIDERS = {
    'google': GoogleCalendarService,
    'outlook': OutlookCalendarService,
}


class BusyTimeSyncService:

    def __init__(self, db: Session, clock, providers: Optional[Dict] = None):
        self.db = db
        self.clock = clock
        if providers is None:
            providers = {name: cls() for name, cls in DEFAULT_PROVIDERS.items()}
        self.providers = providers

    def list_integrations(self, practitioner_id) -> List[CalendarIntegration]:
        return (
            self.db.query(CalendarIntegration)
            .filter_by(practitioner_id=practitioner_id)
            .order_by(CalendarIntegration.provider)
            .all()
        )

    def _replace_busy_times(self, integration: CalendarIntegration, intervals, now: datetime) -> None:
        try:
            self.db.query(CalendarBusyTime).filter_by(
                practitioner_id=integration.practitioner_id, provider=integration.provider
            ).delete(synchronize_session=False)
            self.db.add_all(
                CalendarBusyTime(
                    practitioner_id=integration.practitioner_id,
                    provider=integration.provider,
                    starts_at=start,
                    ends_at=end,
                    fetched_at=now,
                )
                for start, end in intervals
                if start < end
            )
            integration.last_sync_at = now
            integration.last_sync_status = 'success'
            integration.last_sync_error = None
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

    def _mark_failed(self, integration: CalendarIntegration, error: UpstreamSyncError, now: datetime) -> None:
        self.db.rollback()
        integration.last_sync_at = now
        integration.last_sync_status = 'failed'
        integration.last_sync_error = str(error)[:1000]
        self.db.commit()

    def sync_practitioner(self, practitioner_id) -> Dict[str, str]:
        """Refresh every active integration; returns provider -> 'success' | 'failed'"""
        now = self.clock.now()
        horizon = now + timedelta(days=get_settings().CALENDAR_SYNC_DAYS_AHEAD)
        outcome = {}

        integrations = self.db.query(CalendarIntegration).filter_by(
            practitioner_id=practitioner_id, is_active=True
        ).all()

        for integration in integrations:
            provider = self.providers.get(integration.provider)
            try:
                if provider is None:
                    raise UpstreamSyncError(integration.provider, f"Unknown calendar provider: {integration.provider}")
                intervals = provider.fetch_busy(integration, self.db, now, horizon)
            except UpstreamSyncError as e:
                logger.error(f"Busy-time sync failed for practitioner {practitioner_id} ({e.provider}): {e}")
                self._mark_failed(integration, e, now)
                outcome[integration.provider] = 'failed'
                continue
            except Exception as e:
                logger.exception(f"Unexpected {integration.provider} sync error for practitioner {practitioner_id}")
                self._mark_failed(integration, UpstreamSyncError(integration.provider, repr(e)), now)
                outcome[integration.provider] = 'failed'
                continue

            self._replace_busy_times(integration, intervals, now)
            logger.info(
                f"Synced {len(intervals)} busy intervals from {integration.provider} "
                f"for practitioner {practitioner_id}"
            )
            outcome[integration.provider] = 'success'

        return outcome

    def disconnect(self, practitioner_id, provider: str) -> None:
        """Remove an integration together with its cached busy time"""
        integration = self.db.query(CalendarIntegration).filter_by(
            practitioner_id=practitioner_id, provider=provider
        ).first()
        if not integration:
            raise NotFoundError(f"No {provider} calendar connected")

        self.db.query(CalendarBusyTime).filter_by(
            practitioner_id=practitioner_id, provider=provider
        ).delete(synchronize_session=False)
        self.db.delete(integration)
        self.db.commit()
        logger.info(f"Disconnected {provider} calendar for practitioner {practitioner_id}")


def practitioners_with_calendars(db: Session) -> List:
    rows = db.query(CalendarIntegration.practitioner_id).filter_by(is_active=True).distinct().all()
    return [row[0] for row in rows]
