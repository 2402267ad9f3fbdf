"""
Attendance log service: web/mobile punches and orphan reconciliation.
All timestamps are server UTC time; logs are insert-only.
"""
import logging
from datetime import datetime
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from app.core.constants import EVENT_PUNCH
from app.core.errors import ConflictError, NotFoundError, ValidationFailed
from app.db.transaction import run_in_transaction
from app.models.attendance import AttendanceLog, LogSource, LogType, ProcessingStatus
from app.models.attendance_daily import AttendanceDaily
from app.models.employee import Employee
from app.services.audit_service import log_audit
from app.services.daily_aggregate_service import apply_log
from app.services.notification_service import NotificationSink, dispatch, user_target
from app.utils.datetime_utils import now_utc
from app.utils.json_serializer import sanitize_for_json

logger = logging.getLogger(__name__)

SELF_SERVICE_SOURCES = frozenset({LogSource.WEB, LogSource.MOBILE, LogSource.API})
SELF_SERVICE_TYPES = frozenset({
    LogType.IN,
    LogType.OUT,
    LogType.BREAK_START,
    LogType.BREAK_END,
    LogType.REMOTE_IN,
    LogType.REMOTE_OUT,
})


def record_punch(
    db: Session,
    user: Employee,
    *,
    log_type: LogType,
    source: LogSource = LogSource.WEB,
    metadata: Optional[dict] = None,
    now: Optional[datetime] = None,
    notifier: Optional[NotificationSink] = None,
) -> Tuple[AttendanceLog, AttendanceDaily]:
    """
    Record a self-service punch and fold it into the Daily.

    Uses server time, never client time.

    Raises:
        ValidationFailed: Source or punch type not allowed for self-service
    """
    log_type = LogType(log_type)
    source = LogSource(source)
    if source not in SELF_SERVICE_SOURCES:
        raise ValidationFailed(detail=f"Source '{source.value}' is not allowed for self-service punches")
    if log_type not in SELF_SERVICE_TYPES:
        raise ValidationFailed(detail=f"Punch type '{log_type.value}' is not allowed")

    punch_time = now or now_utc()
    shift = user.shift if user.shift_id else None

    def work(session: Session) -> Tuple[AttendanceLog, AttendanceDaily]:
        log = AttendanceLog(
            source=source,
            user_id=user.id,
            organization_id=user.organization_id,
            branch_id=user.branch_id,
            timestamp=punch_time,
            server_timestamp=punch_time,
            type=log_type,
            processing_status=ProcessingStatus.PROCESSED,
            raw_data=sanitize_for_json(metadata) if metadata else None,
            is_verified=False,
            verification_method="system",
        )
        session.add(log)
        session.flush()
        daily = apply_log(session, log, shift=shift)
        log_audit(
            db=session,
            actor_id=user.id,
            action="ATTENDANCE_PUNCH",
            entity_type="attendance_logs",
            entity_id=log.id,
            meta={"type": log_type, "source": source, "timestamp": punch_time},
        )
        return log, daily

    log, daily = run_in_transaction(db, work, ctx=f"punch:user={user.id}")
    db.refresh(log)
    db.refresh(daily)
    logger.info("Punch recorded: user_id=%s type=%s source=%s log_id=%s", user.id, log_type.value, source.value, log.id)
    dispatch(notifier, user_target(user.id), EVENT_PUNCH, {"log_id": log.id, "type": log_type})
    return log, daily


def list_orphan_logs(
    db: Session,
    organization_id: int,
    *,
    machine_id: Optional[int] = None,
    raw_user_id: Optional[str] = None,
    limit: int = 200,
) -> List[AttendanceLog]:
    """Orphan logs still waiting for reconciliation, oldest first."""
    query = db.query(AttendanceLog).filter(
        AttendanceLog.organization_id == organization_id,
        AttendanceLog.processing_status == ProcessingStatus.ORPHAN,
        AttendanceLog.corrected_by_log_id.is_(None),
    )
    if machine_id is not None:
        query = query.filter(AttendanceLog.machine_id == machine_id)
    if raw_user_id is not None:
        query = query.filter(AttendanceLog.raw_user_id == raw_user_id)
    return query.order_by(AttendanceLog.timestamp.asc()).limit(limit).all()


def reconcile_orphan_log(
    db: Session,
    log_id: int,
    user_id: int,
    actor: Employee,
    *,
    notifier: Optional[NotificationSink] = None,
) -> Tuple[AttendanceLog, AttendanceDaily]:
    """
    Attribute an orphan device log to an employee.

    The orphan stays untouched apart from its corrected_by back-link; a new
    processed log for the employee carries the same time, type and raw payload
    and is applied to the Daily.

    Raises:
        NotFoundError: Log or employee not found in the actor's organization
        ConflictError: Log is not an open orphan
    """
    employee = (
        db.query(Employee)
        .filter(Employee.id == user_id, Employee.organization_id == actor.organization_id)
        .first()
    )
    if not employee:
        raise NotFoundError(detail="Employee not found")
    shift = employee.shift if employee.shift_id else None

    def work(session: Session) -> Tuple[AttendanceLog, AttendanceDaily]:
        orphan = (
            session.query(AttendanceLog)
            .filter(AttendanceLog.id == log_id, AttendanceLog.organization_id == actor.organization_id)
            .populate_existing()
            .with_for_update()
            .first()
        )
        if not orphan:
            raise NotFoundError(detail="Attendance log not found")
        if orphan.processing_status != ProcessingStatus.ORPHAN or orphan.corrected_by_log_id is not None:
            raise ConflictError(detail="Log is not an unreconciled orphan")

        now = now_utc()
        resolved = AttendanceLog(
            source=orphan.source,
            user_id=employee.id,
            organization_id=orphan.organization_id,
            branch_id=employee.branch_id or orphan.branch_id,
            machine_id=orphan.machine_id,
            timestamp=orphan.timestamp,
            server_timestamp=now,
            type=orphan.type,
            processing_status=ProcessingStatus.PROCESSED,
            processing_notes=f"Reconciled from orphan log {orphan.id}",
            raw_user_id=orphan.raw_user_id,
            raw_data=orphan.raw_data,
            is_verified=True,
            verification_method="manager",
            verified_by_id=actor.id,
        )
        session.add(resolved)
        session.flush()
        orphan.corrected_by_log_id = resolved.id
        daily = apply_log(session, resolved, shift=shift)
        log_audit(
            db=session,
            actor_id=actor.id,
            action="ATTENDANCE_ORPHAN_RECONCILE",
            entity_type="attendance_logs",
            entity_id=orphan.id,
            meta={"resolved_log_id": resolved.id, "user_id": employee.id, "raw_user_id": orphan.raw_user_id},
        )
        return resolved, daily

    resolved, daily = run_in_transaction(db, work, ctx=f"orphan_reconcile:{log_id}")
    db.refresh(resolved)
    db.refresh(daily)
    logger.info("Orphan log reconciled: log_id=%s resolved_log_id=%s user_id=%s", log_id, resolved.id, employee.id)
    dispatch(notifier, user_target(employee.id), EVENT_PUNCH, {"log_id": resolved.id, "reconciled": True})
    return resolved, daily
