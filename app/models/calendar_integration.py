# app/models/calendar_integration.py
from sqlalchemy import (
    Column, String, Boolean, DateTime, LargeBinary, ForeignKey, JSON, Text, UniqueConstraint, Uuid
)
from datetime import datetime, timezone
from app.models.base import Base
import uuid


def _utcnow():
    return datetime.now(timezone.utc)


class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"
    __table_args__ = (
        UniqueConstraint("practitioner_id", "provider", name="uq_calendar_integration_provider"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(
        Uuid, ForeignKey("practitioners.id", ondelete="CASCADE"), nullable=False, index=True
    )

    provider = Column(String(20), nullable=False)  # 'google', 'outlook'
    is_active = Column(Boolean, default=True, nullable=False)

    # OAuth tokens, Fernet-encrypted (see app.utils.encryption)
    access_token_encrypted = Column(LargeBinary)
    refresh_token_encrypted = Column(LargeBinary)
    token_expires_at = Column(DateTime(timezone=True))

    # Provider-specific config: calendar_id, account e-mail, ...
    provider_config = Column(JSON, default=dict)

    last_sync_at = Column(DateTime(timezone=True))
    last_sync_status = Column(String(20))  # 'success', 'failed'
    last_sync_error = Column(Text)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class CalendarBusyTime(Base):
    """Busy interval pulled from an external calendar. Replaced wholesale on every sync."""
    __tablename__ = "calendar_busy_times"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(
        Uuid, ForeignKey("practitioners.id", ondelete="CASCADE"), nullable=False, index=True
    )
    provider = Column(String(20), nullable=False)

    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    fetched_at = Column(DateTime(timezone=True), default=_utcnow)
