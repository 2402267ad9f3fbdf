"""
Shift model: scheduled hours and thresholds used to classify a day
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Time, Numeric, ForeignKey, JSON
from sqlalchemy.sql import func
from app.db.base import Base


class Shift(Base):
    __tablename__ = "shifts"

    id = Column(Integer, primary_key=True, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    start_time = Column(Time, nullable=False)  # Local wall-clock time in ATTENDANCE_TZ
    end_time = Column(Time, nullable=False)
    grace_period_mins = Column(Integer, nullable=False, default=15)
    full_day_hours = Column(Numeric(4, 2), nullable=False, default=8)
    half_day_threshold_hours = Column(Numeric(4, 2), nullable=False, default=4)
    is_night_shift = Column(Boolean, nullable=False, default=False)
    weekly_offs = Column(JSON, nullable=False, default=lambda: [6])  # date.weekday() values, Mon=0
    active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
