# app/models/availability.py
from sqlalchemy import (
    Column, String, Integer, Boolean, Time, Date, ForeignKey, UniqueConstraint, Uuid
)
from app.models.base import Base
import uuid


class AvailabilityRule(Base):
    """Recurring weekly availability window"""
    __tablename__ = "availability_rules"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(
        Uuid, ForeignKey("practitioners.id", ondelete="CASCADE"), nullable=False, index=True
    )

    day_of_week = Column(Integer, nullable=False)  # 0=Monday, 6=Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)

    is_active = Column(Boolean, default=True, nullable=False)


class AvailabilityOverride(Base):
    """Specific date overrides (holidays, time-off, special hours)"""
    __tablename__ = "availability_overrides"
    __table_args__ = (
        UniqueConstraint("practitioner_id", "date", name="uq_availability_override_date"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    practitioner_id = Column(
        Uuid, ForeignKey("practitioners.id", ondelete="CASCADE"), nullable=False, index=True
    )

    date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False)  # False = day off
    start_time = Column(Time, nullable=True)
    end_time = Column(Time, nullable=True)
    reason = Column(String, nullable=True)  # "Holiday", "Vacation", etc.
