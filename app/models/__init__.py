"""
Database models
"""
from app.models.organization import Organization, Branch
from app.models.shift import Shift
from app.models.employee import Employee, Role
from app.models.holiday import Holiday
from app.models.audit_log import AuditLog
from app.models.attendance_machine import AttendanceMachine, MachineStatus, ProviderType
from app.models.attendance import (
    AttendanceLog,
    LogSource,
    LogType,
    ProcessingStatus,
    ImmutableLogError,
)
from app.models.attendance_daily import AttendanceDaily, DailyStatus
from app.models.attendance_request import (
    AttendanceRequest,
    AttendanceRequestApprover,
    AttendanceRequestHistory,
    RequestType,
    RequestStatus,
    ApproverStatus,
    HistoryAction,
)

__all__ = [
    "Organization",
    "Branch",
    "Shift",
    "Employee",
    "Role",
    "Holiday",
    "AuditLog",
    "AttendanceMachine",
    "MachineStatus",
    "ProviderType",
    "AttendanceLog",
    "LogSource",
    "LogType",
    "ProcessingStatus",
    "ImmutableLogError",
    "AttendanceDaily",
    "DailyStatus",
    "AttendanceRequest",
    "AttendanceRequestApprover",
    "AttendanceRequestHistory",
    "RequestType",
    "RequestStatus",
    "ApproverStatus",
    "HistoryAction",
]
