# app/models/verified_email.py
from sqlalchemy import Column, String, DateTime, Uuid
from datetime import datetime, timezone
import uuid

from app.models.base import Base


class VerifiedVisitorEmail(Base):
    """E-mail addresses that have completed booking verification once"""
    __tablename__ = "verified_visitor_emails"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(320), nullable=False, unique=True, index=True)
    verified_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
