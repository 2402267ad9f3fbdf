"""
Attendance log model: one immutable punch or correction event.

A log is never edited once written. Corrections and orphan reconciliation add
a new log and point the old one at it through ``corrected_by_log_id``, the only
column that may change after insert.
"""
import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Text,
    JSON,
    ForeignKey,
    Index,
    Enum as SQLEnum,
    event,
    inspect,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from app.db.base import Base, enum_values


class LogSource(str, enum.Enum):
    MACHINE = "machine"
    WEB = "web"
    MOBILE = "mobile"
    ADMIN_MANUAL = "admin_manual"
    API = "api"


class LogType(str, enum.Enum):
    IN = "in"
    OUT = "out"
    BREAK_START = "break_start"
    BREAK_END = "break_end"
    REMOTE_IN = "remote_in"
    REMOTE_OUT = "remote_out"
    UNKNOWN = "unknown"


class ProcessingStatus(str, enum.Enum):
    PENDING = "pending"
    PROCESSED = "processed"
    FLAGGED = "flagged"
    REJECTED = "rejected"
    CORRECTED = "corrected"
    ORPHAN = "orphan"


IN_TYPES = frozenset({LogType.IN, LogType.REMOTE_IN})
OUT_TYPES = frozenset({LogType.OUT, LogType.REMOTE_OUT})

IMMUTABLE_LOG_FIELDS = ("type", "timestamp", "user_id", "source", "organization_id", "raw_user_id")


class ImmutableLogError(RuntimeError):
    """Raised when code tries to rewrite a persisted attendance log."""


class AttendanceLog(Base):
    __tablename__ = "attendance_logs"

    id = Column(Integer, primary_key=True, index=True)
    source = Column(SQLEnum(LogSource, values_callable=enum_values, native_enum=False, length=20), nullable=False)
    user_id = Column(Integer, ForeignKey("employees.id"), nullable=True, index=True)  # NULL for orphans
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    machine_id = Column(Integer, ForeignKey("attendance_machines.id"), nullable=True, index=True)
    timestamp = Column(DateTime(timezone=True), nullable=False)  # When the punch happened (device clock, UTC)
    server_timestamp = Column(DateTime(timezone=True), nullable=False)  # When we received it
    type = Column(SQLEnum(LogType, values_callable=enum_values, native_enum=False, length=20), nullable=False)
    processing_status = Column(
        SQLEnum(ProcessingStatus, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=ProcessingStatus.PROCESSED,
    )
    processing_notes = Column(Text, nullable=True)
    raw_user_id = Column(String, nullable=True)
    raw_data = Column(JSON, nullable=True)
    device_event_key = Column(String, nullable=True, unique=True)  # machine:user:seq-or-time
    is_verified = Column(Boolean, nullable=False, default=False)
    verification_method = Column(String, nullable=True)  # biometric / manager / system
    verified_by_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    corrected_by_log_id = Column(Integer, ForeignKey("attendance_logs.id"), nullable=True)
    attendance_request_id = Column(Integer, ForeignKey("attendance_requests.id"), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)

    __table_args__ = (
        Index("ix_attendance_logs_user_timestamp", "user_id", "timestamp"),
        Index("ix_attendance_logs_org_status", "organization_id", "processing_status"),
    )

    user = relationship("Employee", foreign_keys=[user_id])
    machine = relationship("AttendanceMachine")
    corrected_by = relationship("AttendanceLog", remote_side=[id])

    @property
    def is_in_punch(self) -> bool:
        return self.type in IN_TYPES

    @property
    def is_out_punch(self) -> bool:
        return self.type in OUT_TYPES


@event.listens_for(AttendanceLog, "before_update")
def _forbid_log_rewrite(mapper, connection, target):
    state = inspect(target)
    changed = [name for name in IMMUTABLE_LOG_FIELDS if state.attrs[name].history.has_changes()]
    if changed:
        raise ImmutableLogError(
            f"Attendance log {target.id} is immutable; attempted to change {', '.join(changed)}"
        )
