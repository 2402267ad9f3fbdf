"""
Attendance daily model: derived roll-up, exactly one row per (user, work date)
"""
import enum

from sqlalchemy import (
    Column,
    Integer,
    Date,
    DateTime,
    Boolean,
    Numeric,
    Text,
    JSON,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base, enum_values


class DailyStatus(str, enum.Enum):
    PRESENT = "present"
    ABSENT = "absent"
    HALF_DAY = "half_day"
    LATE = "late"
    ON_LEAVE = "on_leave"
    WEEK_OFF = "week_off"
    HOLIDAY = "holiday"
    WEEK_OFF_WORK = "week_off_work"
    HOLIDAY_WORK = "holiday_work"
    WORK_FROM_HOME = "work_from_home"
    ON_DUTY = "on_duty"
    MISSED_PUNCH = "missed_punch"


class AttendanceDaily(Base):
    """
    One row per employee per work date.

    ``date`` is a calendar DATE in ATTENDANCE_TZ, never a timestamp. Hours are
    always recomputed from first_in/last_out rather than accumulated.
    """
    __tablename__ = "attendance_daily"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    shift_id = Column(Integer, ForeignKey("shifts.id"), nullable=True)
    date = Column(Date, nullable=False, index=True)
    first_in = Column(DateTime(timezone=True), nullable=True)
    last_out = Column(DateTime(timezone=True), nullable=True)
    total_work_hours = Column(Numeric(6, 2), nullable=False, default=0)
    overtime_hours = Column(Numeric(6, 2), nullable=False, default=0)
    late_minutes = Column(Integer, nullable=False, default=0)
    status = Column(
        SQLEnum(DailyStatus, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=DailyStatus.PRESENT,
    )
    is_late = Column(Boolean, nullable=False, default=False)
    is_early_departure = Column(Boolean, nullable=False, default=False)
    is_overtime = Column(Boolean, nullable=False, default=False)
    is_half_day = Column(Boolean, nullable=False, default=False)
    payout_multiplier = Column(Numeric(3, 1), nullable=False, default=1)
    logs = Column(MutableList.as_mutable(JSON), nullable=False, default=list)  # Contributing log ids, in order
    attendance_request_id = Column(Integer, ForeignKey("attendance_requests.id"), nullable=True)
    verified_by_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
    remarks = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "date", name="uq_attendance_daily_user_date"),
        CheckConstraint("total_work_hours >= 0", name="ck_attendance_daily_hours_non_negative"),
    )

    user = relationship("Employee", foreign_keys=[user_id])
    shift = relationship("Shift")
