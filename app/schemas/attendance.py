"""
Attendance schemas: punches, logs and the Daily roll-up.
"""
from datetime import date as date_type, datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from app.models.attendance import LogSource, LogType, ProcessingStatus
from app.models.attendance_daily import DailyStatus
from app.utils.datetime_utils import iso_local


class PunchRequest(BaseModel):
    """Self-service punch; the server clock decides the time"""
    type: LogType = Field(default=LogType.IN, description="in, out, break_start, break_end, remote_in, remote_out")
    source: LogSource = Field(default=LogSource.WEB, description="web, mobile or api")
    metadata: Optional[Dict[str, Any]] = Field(None, description="Client context stored with the log (device, location)")


class LogOut(BaseModel):
    """Attendance log output. Datetimes in ATTENDANCE_TZ with offset."""
    id: int
    source: LogSource
    user_id: Optional[int]
    organization_id: int
    branch_id: Optional[int]
    machine_id: Optional[int]
    timestamp: datetime
    server_timestamp: datetime
    type: LogType
    processing_status: ProcessingStatus
    processing_notes: Optional[str] = None
    raw_user_id: Optional[str] = None
    is_verified: bool
    verification_method: Optional[str] = None
    corrected_by_log_id: Optional[int] = None
    attendance_request_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("timestamp", "server_timestamp", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)


class DailyOut(BaseModel):
    """One employee's attendance for one work date"""
    id: int
    user_id: int
    organization_id: int
    branch_id: Optional[int]
    shift_id: Optional[int]
    date: date_type
    first_in: Optional[datetime]
    last_out: Optional[datetime]
    total_work_hours: float
    overtime_hours: float
    late_minutes: int
    status: DailyStatus
    is_late: bool
    is_early_departure: bool
    is_overtime: bool
    is_half_day: bool
    payout_multiplier: float
    logs: List[int]
    attendance_request_id: Optional[int] = None
    verified_by_id: Optional[int] = None
    verified_at: Optional[datetime] = None
    remarks: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("first_in", "last_out", "verified_at", when_used="always")
    @classmethod
    def _ser_datetime(cls, dt: Optional[datetime]) -> Optional[str]:
        return iso_local(dt)


class PunchResponse(BaseModel):
    log: LogOut
    daily: DailyOut


class ReconcileRequest(BaseModel):
    """Attribute an orphan device log to an employee"""
    user_id: int = Field(..., description="Employee the orphan punch belongs to")


class DayCloseRequest(BaseModel):
    date: date_type = Field(..., description="Finished work date to settle")


class DayCloseResponse(BaseModel):
    date: date_type
    organization_id: int
    counts: Dict[str, int]
