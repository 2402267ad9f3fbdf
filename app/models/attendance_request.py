"""
Attendance regularization models: request, ordered approver chain and history
"""
import enum

from sqlalchemy import (
    Column,
    Integer,
    String,
    Date,
    DateTime,
    Boolean,
    Text,
    JSON,
    ForeignKey,
    Index,
    UniqueConstraint,
    Enum as SQLEnum,
)
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func, text

from app.db.base import Base, enum_values


class RequestType(str, enum.Enum):
    MISSED_PUNCH = "missed_punch"
    ON_DUTY = "on_duty"
    WORK_FROM_HOME = "work_from_home"
    LEAVE_REVERSAL = "leave_reversal"


class RequestStatus(str, enum.Enum):
    DRAFT = "draft"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class ApproverStatus(str, enum.Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FORWARDED = "forwarded"


class HistoryAction(str, enum.Enum):
    CREATED = "created"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    FORWARDED = "forwarded"
    CANCELLED = "cancelled"


OPEN_REQUEST_STATUSES = frozenset({RequestStatus.DRAFT, RequestStatus.PENDING, RequestStatus.UNDER_REVIEW})
DECIDABLE_REQUEST_STATUSES = frozenset({RequestStatus.PENDING, RequestStatus.UNDER_REVIEW})
TERMINAL_REQUEST_STATUSES = frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED, RequestStatus.CANCELLED})

# Partial index predicate; literal values must match RequestStatus values
_OPEN_STATUS_SQL = "status IN ('draft', 'pending', 'under_review')"


class AttendanceRequest(Base):
    __tablename__ = "attendance_requests"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    organization_id = Column(Integer, ForeignKey("organizations.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)
    target_date = Column(Date, nullable=False)
    type = Column(SQLEnum(RequestType, values_callable=enum_values, native_enum=False, length=20), nullable=False)
    status = Column(
        SQLEnum(RequestStatus, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=RequestStatus.PENDING,
    )

    # Correction payload
    new_first_in = Column(DateTime(timezone=True), nullable=True)
    new_last_out = Column(DateTime(timezone=True), nullable=True)
    reason = Column(Text, nullable=False)
    # Snapshot of the Daily before an approved correction was applied
    old_first_in = Column(DateTime(timezone=True), nullable=True)
    old_last_out = Column(DateTime(timezone=True), nullable=True)

    approval_required = Column(Integer, nullable=False, default=0)
    current_approver_level = Column(Integer, nullable=False, default=0)
    approved_by_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)
    rejection_reason = Column(Text, nullable=True)
    cancelled_by_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    linked_log_ids = Column(MutableList.as_mutable(JSON), nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), onupdate=func.current_timestamp(), nullable=False)

    __table_args__ = (
        # At most one open request per employee and day
        Index(
            "uq_attendance_requests_open_user_date",
            "user_id",
            "target_date",
            unique=True,
            sqlite_where=text(_OPEN_STATUS_SQL),
            postgresql_where=text(_OPEN_STATUS_SQL),
        ),
        Index("ix_attendance_requests_org_status", "organization_id", "status"),
    )

    user = relationship("Employee", foreign_keys=[user_id])
    approvers = relationship(
        "AttendanceRequestApprover",
        back_populates="request",
        order_by="AttendanceRequestApprover.order",
        cascade="all, delete-orphan",
    )
    history = relationship(
        "AttendanceRequestHistory",
        back_populates="request",
        order_by="AttendanceRequestHistory.id",
        cascade="all, delete-orphan",
    )

    def add_history(self, action, actor_id, old_status=None, new_status=None, remarks=None, meta=None):
        """Append a history row; history is never rewritten."""
        entry = AttendanceRequestHistory(
            action=action,
            actor_id=actor_id,
            old_status=old_status,
            new_status=new_status,
            remarks=remarks,
            meta=meta,
        )
        self.history.append(entry)
        return entry


class AttendanceRequestApprover(Base):
    __tablename__ = "attendance_request_approvers"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("attendance_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("employees.id"), nullable=False, index=True)
    role = Column(String, nullable=True)
    order = Column(Integer, nullable=False, default=1)
    status = Column(
        SQLEnum(ApproverStatus, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=ApproverStatus.PENDING,
    )
    comments = Column(Text, nullable=True)
    acted_at = Column(DateTime(timezone=True), nullable=True)
    is_admin_override = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("request_id", "user_id", name="uq_request_approver_user"),
    )

    request = relationship("AttendanceRequest", back_populates="approvers")
    user = relationship("Employee")


class AttendanceRequestHistory(Base):
    __tablename__ = "attendance_request_history"

    id = Column(Integer, primary_key=True, index=True)
    request_id = Column(Integer, ForeignKey("attendance_requests.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(SQLEnum(HistoryAction, values_callable=enum_values, native_enum=False, length=20), nullable=False)
    actor_id = Column(Integer, ForeignKey("employees.id"), nullable=True)
    remarks = Column(Text, nullable=True)
    old_status = Column(String, nullable=True)
    new_status = Column(String, nullable=True)
    meta = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.current_timestamp(), nullable=False)

    request = relationship("AttendanceRequest", back_populates="history")
